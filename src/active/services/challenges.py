"""Rules for a single challenge: its scheduled days and their execution."""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Optional

from ..clock import as_day, as_utc, utc_now
from ..errors import InvalidInput, NotFound
from ..models.habit import Challenge, Day


def normalize_days(days: Iterable[date | datetime]) -> list[date]:
    """Return the unique UTC calendar days of ``days`` in ascending order."""

    return sorted({as_day(value) for value in days})


def create(days: Iterable[date | datetime], start_date: date | datetime | None = None) -> Challenge:
    """Build an unsaved challenge scheduling each of ``days`` once.

    ``start_date`` defaults to the earliest day. It may start earlier than the
    first scheduled day (a challenge announced ahead of time) but never later.
    """

    ordered = normalize_days(days)
    if not ordered:
        raise InvalidInput("A challenge needs at least one day")

    start = as_day(start_date) if start_date is not None else ordered[0]
    if start > ordered[0]:
        raise InvalidInput(
            f"Challenge start {start.isoformat()} is after its first day {ordered[0].isoformat()}"
        )

    return Challenge(
        start_date=start,
        end_date=ordered[-1],
        days=[Day(scheduled_on=day) for day in ordered],
    )


def ordered_days(challenge: Challenge) -> list[Day]:
    return sorted(challenge.days, key=lambda d: d.scheduled_on)


def find_day(challenge: Challenge, day: date | datetime) -> Optional[Day]:
    target = as_day(day)
    for candidate in challenge.days:
        if candidate.scheduled_on == target:
            return candidate
    return None


def mark_executed(
    challenge: Challenge, day: date | datetime, *, now: datetime | None = None
) -> Day:
    """Mark the scheduled ``day`` as executed and return it.

    Marking an already executed day keeps its original ``executed_at``.
    """

    found = find_day(challenge, day)
    if found is None:
        raise NotFound(f"{as_day(day).isoformat()} is not scheduled in this challenge")
    if not found.executed:
        found.executed = True
        found.executed_at = as_utc(now) if now is not None else utc_now()
    return found


def current_day(challenge: Challenge, today: date) -> Optional[Day]:
    """Return the day scheduled for ``today``, if any."""

    return find_day(challenge, today)


def past_days(challenge: Challenge, today: date) -> list[Day]:
    """Scheduled days strictly before ``today``, ascending."""

    return [d for d in ordered_days(challenge) if d.scheduled_on < today]


def is_current(challenge: Challenge, reference_date: date | datetime) -> bool:
    reference = as_day(reference_date)
    return challenge.start_date <= reference <= challenge.end_date


def has_executed_days(challenge: Challenge) -> bool:
    return any(d.executed for d in challenge.days)


def overlaps(first: Challenge, second: Challenge) -> bool:
    """True when the two date ranges share at least one day."""

    return first.start_date <= second.end_date and second.start_date <= first.end_date


__all__ = [
    "create",
    "current_day",
    "find_day",
    "has_executed_days",
    "is_current",
    "mark_executed",
    "normalize_days",
    "ordered_days",
    "overlaps",
    "past_days",
]
