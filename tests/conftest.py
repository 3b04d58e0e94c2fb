"""Pytest configuration and shared fixtures for the habit tracking tests.

Provides temp-file SQLite databases, a settable clock, and factories for
habits so repository, catalog and tracker tests never touch a real data dir.
"""

from __future__ import annotations

import tempfile
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlmodel import SQLModel, create_engine

from active import models  # noqa: F401  # register tables on the metadata
from active.clock import FixedClock
from active.infra.database import create_session_factory
from active.infra.events import ChangeFeed
from active.infra.repositories import SQLModelHabitRepository
from active.models import Habit, HabitColor, User
from active.services import habits as habit_rules
from active.services import users
from active.services.catalog import HabitCatalog
from active.services.tracker import HabitTracker

# Monday of the reference week used throughout the suite
MONDAY = date(2026, 10, 19)
WEDNESDAY = MONDAY + timedelta(days=2)
FRIDAY = MONDAY + timedelta(days=4)


def at_noon(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, 12, tzinfo=timezone.utc)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def db_engine():
    """Create an isolated temp-file SQLite database for each test.

    Yields:
        Engine: SQLModel engine with every table created
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    engine = create_engine(
        f"sqlite:///{db_path}", echo=False, connect_args={"check_same_thread": False}
    )
    SQLModel.metadata.create_all(engine)

    yield engine

    engine.dispose()
    db_path.unlink(missing_ok=True)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """Session factory matching what the repositories expect."""
    return create_session_factory(db_engine)


@pytest.fixture
def user(session_factory) -> User:
    """Default user for scoping data."""
    return users.ensure_user("tester", session_factory)


@pytest.fixture
def other_user(session_factory) -> User:
    return users.ensure_user("someone-else", session_factory)


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at noon UTC on the reference Monday."""
    return FixedClock(at_noon(MONDAY))


@pytest.fixture
def feed():
    change_feed = ChangeFeed()
    yield change_feed
    change_feed.close()


@pytest.fixture
def habit_repo(session_factory, feed) -> SQLModelHabitRepository:
    return SQLModelHabitRepository(session_factory, feed=feed)


@pytest.fixture
def tracker(habit_repo, user, clock) -> HabitTracker:
    return HabitTracker(habit_repo, user_id=user.id, clock=clock)


@pytest.fixture
def catalog(habit_repo, user, feed, clock) -> HabitCatalog:
    # Small batches so paging is exercised with a handful of habits
    return HabitCatalog(habit_repo, user_id=user.id, feed=feed, clock=clock, batch_size=2)


# =============================================================================
# Test Data Factories
# =============================================================================


@pytest.fixture
def habit_factory(habit_repo, user):
    """Factory for creating persisted habits.

    Returns:
        Callable: Function that creates and persists Habit instances
    """

    def _create_habit(
        name: str = "Read",
        color: HabitColor = HabitColor.BLUE,
        days=(MONDAY, WEDNESDAY, FRIDAY),
        created_at: datetime | None = None,
        owner: User | None = None,
        fire_times=None,
    ) -> Habit:
        """Create a habit whose first challenge schedules ``days``.

        Args:
            name: Habit name
            color: Palette colour
            days: Scheduled days of the first challenge
            created_at: Creation timestamp used for list ordering

        Returns:
            Habit: Persisted habit with challenges loaded
        """
        owner = owner or user
        draft = habit_rules.create(
            name,
            color,
            days,
            user_id=owner.id,
            created_at=created_at,
            fire_times=fire_times,
        )
        return habit_repo.create(draft, user_id=owner.id)

    return _create_habit
