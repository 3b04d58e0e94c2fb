"""Time helpers.

Calendar days are always taken on the UTC day boundary so that a device
changing timezone never moves a scheduled day.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: the current aware UTC datetime."""

    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Return ``moment`` as an aware UTC datetime (naive values are UTC)."""

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def as_day(value: date | datetime) -> date:
    """Reduce a date or datetime to its UTC calendar day."""

    # datetime is a date subclass, so test it first
    if isinstance(value, datetime):
        return as_utc(value).date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def today(clock: Clock = utc_now) -> date:
    """Return the current UTC calendar day according to ``clock``."""

    return as_day(clock())


class FixedClock:
    """A settable clock for tests, scripts and replaying history."""

    def __init__(self, moment: datetime):
        self.moment = as_utc(moment)

    def __call__(self) -> datetime:
        return self.moment

    def set(self, moment: datetime) -> None:
        self.moment = as_utc(moment)

    def set_day(self, day: date, hour: int = 12) -> None:
        self.moment = datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)

    def advance(self, **delta) -> None:
        self.moment = self.moment + timedelta(**delta)
