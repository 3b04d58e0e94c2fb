"""SQLModel implementation of the habit store."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Callable, Iterable, Iterator, Optional, TypeVar

from sqlalchemy import and_, desc, func, or_, update
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import Session, select

from ...errors import Conflict, NotFound
from ...models.habit import Challenge, Day, Habit
from ...models.user import User
from ...services import habits as habit_rules
from ..events import ChangeFeed, ChangeKind

logger = logging.getLogger("active.store")

T = TypeVar("T")


class SQLModelHabitRepository:
    """SQLModel-based habit store.

    Each public method runs in a single session; the aggregate is committed
    together with its version bump or rolled back by the session factory.
    """

    def __init__(self, session_factory: Callable[[], Session], *, feed: ChangeFeed | None = None):
        self.session_factory = session_factory
        self.feed = feed

    # Reads

    @staticmethod
    def _select_aggregate():
        return select(Habit).options(
            selectinload(Habit.challenges).selectinload(Challenge.days),  # type: ignore[arg-type]
            selectinload(Habit.reminders),  # type: ignore[arg-type]
        )

    def _load(self, session: Session, habit_id: int, user_id: int) -> Habit:
        habit = session.exec(
            self._select_aggregate()
            .where(Habit.id == habit_id, Habit.user_id == user_id)
            .execution_options(populate_existing=True)
        ).first()
        if habit is None:
            raise NotFound(f"Habit {habit_id} not found")
        return habit

    def get_by_id(self, habit_id: int, *, user_id: int) -> Optional[Habit]:
        """Retrieve a habit by ID."""
        with self.session_factory() as session:
            try:
                habit = self._load(session, habit_id, user_id)
            except NotFound:
                return None
            session.expunge_all()
            return habit

    def require(self, habit_id: int, *, user_id: int) -> Habit:
        habit = self.get_by_id(habit_id, user_id=user_id)
        if habit is None:
            raise NotFound(f"Habit {habit_id} not found")
        return habit

    def list_page(
        self,
        *,
        user_id: int,
        offset: int = 0,
        limit: int = 200,
        after: Optional[tuple[datetime, int]] = None,
    ) -> list[Habit]:
        """Habits, most recently created first.

        ``after`` is the ``(created_at, id)`` of the last row already seen; only
        rows ordered after it are returned.
        """
        with self.session_factory() as session:
            statement = self._select_aggregate().where(Habit.user_id == user_id)
            if after is not None:
                last_created_at, last_id = after
                statement = statement.where(
                    or_(
                        Habit.created_at < last_created_at,
                        and_(Habit.created_at == last_created_at, Habit.id < last_id),
                    )
                )
            statement = (
                statement.order_by(desc(Habit.created_at), desc(Habit.id))
                .offset(offset)
                .limit(limit)
            )
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def iter_batches(self, *, user_id: int, batch_size: int = 200) -> Iterator[list[Habit]]:
        """Page through the habits by key so commits between pages never shift rows."""
        after = None
        while True:
            batch = self.list_page(user_id=user_id, limit=batch_size, after=after)
            if not batch:
                return
            yield batch
            if len(batch) < batch_size:
                return
            last = batch[-1]
            after = (last.created_at, last.id)

    def count(self, *, user_id: int) -> int:
        with self.session_factory() as session:
            return session.exec(
                select(func.count()).select_from(Habit).where(Habit.user_id == user_id)
            ).one()

    # Writes

    def _check_version(self, habit: Habit, expected_version: int | None) -> None:
        if expected_version is not None and habit.version != expected_version:
            raise Conflict(
                f"Habit {habit.id} is at version {habit.version}, expected {expected_version}"
            )

    def _bump_version(self, session: Session, habit: Habit) -> None:
        """Advance the version only if nobody else did since we read it."""
        current = habit.version
        result = session.execute(
            update(Habit)
            .where(Habit.id == habit.id, Habit.version == current)
            .values(version=current + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise Conflict(f"Habit {habit.id} was modified concurrently")
        set_committed_value(habit, "version", current + 1)

    def _commit(self, session: Session, kind: ChangeKind, habit_id: int, user_id: int) -> None:
        if self.feed is None:
            session.commit()
            return
        with self.feed.lock:
            session.commit()
            self.feed.publish(kind, habit_id=habit_id, user_id=user_id)

    def _reload(self, session: Session, habit_id: int, user_id: int) -> Habit:
        habit = self._load(session, habit_id, user_id)
        session.expunge_all()
        return habit

    def _mutate(
        self,
        habit_id: int,
        user_id: int,
        expected_version: int | None,
        change: Callable[[Habit], T],
    ) -> Habit:
        with self.session_factory() as session:
            habit = self._load(session, habit_id, user_id)
            self._check_version(habit, expected_version)
            change(habit)
            session.flush()
            self._bump_version(session, habit)
            self._commit(session, ChangeKind.UPDATED, habit_id, user_id)
            return self._reload(session, habit_id, user_id)

    def create(self, habit: Habit, *, user_id: int) -> Habit:
        """Create a new habit."""
        with self.session_factory() as session:
            if session.get(User, user_id) is None:
                raise NotFound(f"User {user_id} not found")
            habit.user_id = user_id
            session.add(habit)
            session.flush()
            habit_id = habit.id
            self._commit(session, ChangeKind.CREATED, habit_id, user_id)
            logger.info("Habit created", extra={"habit_id": habit_id, "user_id": user_id})
            return self._reload(session, habit_id, user_id)

    def edit(
        self,
        habit_id: int,
        *,
        user_id: int,
        today: date,
        name: str | None = None,
        days: Iterable[date | datetime] | None = None,
        fire_times: Iterable[time] | None = None,
        expected_version: int | None = None,
    ) -> Habit:
        """Rename the habit and/or regenerate its current challenge."""

        def change(habit: Habit) -> None:
            habit_rules.edit(habit, today=today, name=name, days=days)
            if fire_times is not None:
                habit_rules.replace_reminders(habit, fire_times)

        habit = self._mutate(habit_id, user_id, expected_version, change)
        logger.info("Habit edited", extra={"habit_id": habit_id, "version": habit.version})
        return habit

    def add_challenge(
        self,
        habit_id: int,
        days: Iterable[date | datetime],
        *,
        user_id: int,
        start_date: date | None = None,
        expected_version: int | None = None,
    ) -> Habit:
        days = list(days)
        habit = self._mutate(
            habit_id,
            user_id,
            expected_version,
            lambda h: habit_rules.schedule_challenge(h, days, start_date=start_date),
        )
        logger.info("Challenge scheduled", extra={"habit_id": habit_id})
        return habit

    def delete_challenge(
        self, habit_id: int, challenge_id: int, *, user_id: int, expected_version: int | None = None
    ) -> Habit:
        habit = self._mutate(
            habit_id,
            user_id,
            expected_version,
            lambda h: habit_rules.remove_challenge(h, challenge_id),
        )
        logger.info("Challenge deleted", extra={"habit_id": habit_id, "challenge_id": challenge_id})
        return habit

    def mark_executed(
        self, habit_id: int, day: date | datetime, *, user_id: int, now: datetime | None = None
    ) -> Day:
        """Mark a scheduled day as executed; a repeated call changes nothing."""
        with self.session_factory() as session:
            habit = self._load(session, habit_id, user_id)
            executed = habit_rules.mark_executed(habit, day, now=now)
            day_id = executed.id
            if not session.is_modified(executed):
                session.expunge_all()
                return executed

            session.flush()
            self._bump_version(session, habit)
            self._commit(session, ChangeKind.UPDATED, habit_id, user_id)
            logger.info("Day executed", extra={"habit_id": habit_id, "day_id": day_id})
            stored = session.get(Day, day_id)
            session.expunge_all()
            return stored

    def set_reminders(
        self, habit_id: int, fire_times: Iterable[time], *, user_id: int, expected_version: int | None = None
    ) -> Habit:
        fire_times = list(fire_times)
        return self._mutate(
            habit_id,
            user_id,
            expected_version,
            lambda h: habit_rules.replace_reminders(h, fire_times),
        )

    def delete(self, habit_id: int, *, user_id: int, expected_version: int | None = None) -> None:
        """Delete a habit by ID."""
        with self.session_factory() as session:
            habit = self._load(session, habit_id, user_id)
            self._check_version(habit, expected_version)
            self._bump_version(session, habit)
            session.delete(habit)
            session.flush()
            self._commit(session, ChangeKind.DELETED, habit_id, user_id)
            logger.info("Habit deleted", extra={"habit_id": habit_id, "user_id": user_id})
