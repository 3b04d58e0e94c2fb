"""Application context for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from .clock import Clock, utc_now
from .config import BaseConfig
from .errors import NotFound
from .infra.database import bootstrap_database
from .infra.events import ChangeFeed
from .infra.repositories import SQLModelHabitRepository
from .models.user import User
from .services import users
from .services.catalog import HabitCatalog
from .services.reminders import ReminderScheduler, resolve_timezone
from .services.tracker import HabitTracker


@dataclass
class AppContext:
    """Everything a front end needs, wired explicitly instead of via globals."""

    config: BaseConfig
    engine: Engine
    session_factory: Callable[[], Session]
    feed: ChangeFeed
    habit_repo: SQLModelHabitRepository
    clock: Clock
    reminder_tz: tzinfo
    reminders: Optional[ReminderScheduler] = None
    current_user: Optional[User] = None

    def require_user_id(self) -> int:
        """Return the current user id or raise if not set."""
        if self.current_user is None or self.current_user.id is None:
            raise NotFound("No current user is set")
        return self.current_user.id

    def tracker(self, user_id: int | None = None) -> HabitTracker:
        return HabitTracker(
            self.habit_repo,
            user_id=user_id if user_id is not None else self.require_user_id(),
            reminders=self.reminders,
            clock=self.clock,
            reminder_tz=self.reminder_tz,
        )

    def catalog(self, user_id: int | None = None) -> HabitCatalog:
        return HabitCatalog(
            self.habit_repo,
            user_id=user_id if user_id is not None else self.require_user_id(),
            feed=self.feed,
            clock=self.clock,
            batch_size=self.config.SCAN_BATCH_SIZE,
        )

    def close(self) -> None:
        self.feed.close()
        self.engine.dispose()


def create_app_context(
    config: Optional[BaseConfig] = None,
    *,
    clock: Clock = utc_now,
    reminders: Optional[ReminderScheduler] = None,
    username: str | None = None,
) -> AppContext:
    """Create the engine, schema, store and default user."""

    if config is None:
        config = BaseConfig()

    engine, session_factory = bootstrap_database(config)

    feed = ChangeFeed(asynchronous=config.ASYNC_EVENTS)
    habit_repo = SQLModelHabitRepository(session_factory, feed=feed)
    current_user = users.ensure_user(username or config.DEFAULT_USERNAME, session_factory)

    return AppContext(
        config=config,
        engine=engine,
        session_factory=session_factory,
        feed=feed,
        habit_repo=habit_repo,
        clock=clock,
        reminder_tz=resolve_timezone(config.REMINDER_TIMEZONE),
        reminders=reminders,
        current_user=current_user,
    )
