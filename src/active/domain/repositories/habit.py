"""Habit store protocol."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Iterable, Iterator, Optional, Protocol

from ...models.habit import Day, Habit


class HabitRepository(Protocol):
    """Durable storage for habit aggregates (habit, challenges, days, reminders).

    Every mutation commits the whole aggregate or nothing, bumps the habit's
    ``version`` and raises ``Conflict`` when ``expected_version`` is stale.
    """

    def get_by_id(self, habit_id: int, *, user_id: int) -> Optional[Habit]:
        """Retrieve a habit with its challenges, days and reminders."""
        ...

    def require(self, habit_id: int, *, user_id: int) -> Habit:
        """Like get_by_id but raise NotFound for a missing habit."""
        ...

    def list_page(
        self,
        *,
        user_id: int,
        offset: int = 0,
        limit: int = 200,
        after: Optional[tuple[datetime, int]] = None,
    ) -> list[Habit]:
        """Habits ordered by created_at, then id, descending; ``after`` is a keyset cursor."""
        ...

    def iter_batches(self, *, user_id: int, batch_size: int) -> Iterator[list[Habit]]:
        """Yield consecutive keyset pages until the store is exhausted."""
        ...

    def count(self, *, user_id: int) -> int:
        """Number of habits owned by the user."""
        ...

    def create(self, habit: Habit, *, user_id: int) -> Habit:
        """Persist a new habit aggregate."""
        ...

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
        """Rename and/or regenerate the current challenge."""
        ...

    def add_challenge(
        self,
        habit_id: int,
        days: Iterable[date | datetime],
        *,
        user_id: int,
        start_date: date | None = None,
        expected_version: int | None = None,
    ) -> Habit:
        """Schedule a new, non-overlapping challenge."""
        ...

    def delete_challenge(
        self, habit_id: int, challenge_id: int, *, user_id: int, expected_version: int | None = None
    ) -> Habit:
        """Delete a challenge that has no executed day."""
        ...

    def mark_executed(
        self, habit_id: int, day: date | datetime, *, user_id: int, now: datetime | None = None
    ) -> Day:
        """Mark a scheduled day as executed (idempotent)."""
        ...

    def set_reminders(
        self, habit_id: int, fire_times: Iterable[time], *, user_id: int, expected_version: int | None = None
    ) -> Habit:
        """Replace the reminder fire times."""
        ...

    def delete(self, habit_id: int, *, user_id: int, expected_version: int | None = None) -> None:
        """Delete a habit and everything it owns."""
        ...
