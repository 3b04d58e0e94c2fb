"""Habit rules: current challenge, progress, status and edits.

Everything here works on in-memory model instances and takes ``today``
explicitly, so the same habit can be evaluated for any clock value. The
repository calls these helpers inside its sessions to keep mutations atomic.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Iterable, Optional

from ..clock import as_day
from ..errors import Conflict, InvalidInput, NotFound
from ..models.habit import Challenge, Day, Habit, HabitColor, HabitReminder, HabitStatus
from . import challenges as challenge_rules

NAME_MAX_LENGTH = 80


class HabitLifecycle(str, Enum):
    """Where a habit sits in its challenge history."""

    PENDING = "pending"  # no challenge yet
    SCHEDULED = "scheduled"  # next challenge has not started
    ACTIVE = "active"  # a challenge covers today
    COMPLETED = "completed"  # every challenge has ended


@dataclass(frozen=True)
class Progress:
    """Executed days of the current challenge over its scheduled days."""

    completed: int
    total: int

    @property
    def ratio(self) -> float:
        return self.completed / self.total

    def __str__(self) -> str:
        return f"{self.completed} / {self.total} completed days"


def validate_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidInput("Habit name must not be empty")
    if len(cleaned) > NAME_MAX_LENGTH:
        raise InvalidInput(f"Habit name must be at most {NAME_MAX_LENGTH} characters")
    return cleaned


def coerce_color(color: HabitColor | str) -> HabitColor:
    if isinstance(color, HabitColor):
        return color
    try:
        return HabitColor(str(color).strip().lower())
    except ValueError as exc:
        raise InvalidInput(f"Unknown habit color: {color!r}") from exc


def build_reminders(fire_times: Iterable[time] | None) -> list[HabitReminder]:
    """Unique fire times (seconds dropped), ascending."""

    if not fire_times:
        return []
    unique = sorted({t.replace(second=0, microsecond=0, tzinfo=None) for t in fire_times})
    return [HabitReminder(fire_time=t) for t in unique]


def create(
    name: str,
    color: HabitColor | str,
    days: Iterable[date | datetime],
    *,
    user_id: int | None = None,
    created_at: datetime | None = None,
    fire_times: Iterable[time] | None = None,
) -> Habit:
    """Build an unsaved habit whose first challenge schedules ``days``."""

    cleaned = validate_name(name)
    palette = coerce_color(color)
    first = challenge_rules.create(days)

    habit = Habit(user_id=user_id, name=cleaned, color=palette)
    if created_at is not None:
        habit.created_at = created_at
    habit.challenges.append(first)
    for reminder in build_reminders(fire_times):
        habit.reminders.append(reminder)
    return habit


def sorted_challenges(habit: Habit) -> list[Challenge]:
    """Challenges with the most recent start first."""

    return sorted(
        habit.challenges,
        key=lambda c: (c.start_date, c.id or 0),
        reverse=True,
    )


def current_challenge(habit: Habit, today: date) -> Optional[Challenge]:
    """Return the challenge whose range contains ``today``."""

    matches = [c for c in habit.challenges if challenge_rules.is_current(c, today)]
    if len(matches) > 1:
        raise Conflict(f"Habit {habit.id} has {len(matches)} challenges covering {today.isoformat()}")
    return matches[0] if matches else None


def progress(habit: Habit, today: date) -> Progress:
    """Progress of the current challenge.

    Past scheduled days count as completed, and so does today once it has
    been executed. Without a current challenge the result is ``0 / 1``.
    """

    challenge = current_challenge(habit, today)
    if challenge is None:
        return Progress(completed=0, total=1)

    completed = len(challenge_rules.past_days(challenge, today))
    today_day = challenge_rules.current_day(challenge, today)
    if today_day is not None and today_day.executed:
        completed += 1
    return Progress(completed=completed, total=max(len(challenge.days), 1))


def status(habit: Habit, today: date) -> HabitStatus:
    if habit.challenges and all(c.end_date < today for c in habit.challenges):
        return HabitStatus.COMPLETED
    return HabitStatus.IN_PROGRESS


def lifecycle(habit: Habit, today: date) -> HabitLifecycle:
    if not habit.challenges:
        return HabitLifecycle.PENDING
    if current_challenge(habit, today) is not None:
        return HabitLifecycle.ACTIVE
    if any(c.start_date > today for c in habit.challenges):
        return HabitLifecycle.SCHEDULED
    return HabitLifecycle.COMPLETED


def _ensure_no_overlap(habit: Habit, candidate: Challenge, *, ignore: Challenge | None = None) -> None:
    for other in habit.challenges:
        if other is candidate or other is ignore:
            continue
        if challenge_rules.overlaps(other, candidate):
            raise InvalidInput(
                "Challenge {0}..{1} overlaps an existing challenge {2}..{3}".format(
                    candidate.start_date.isoformat(),
                    candidate.end_date.isoformat(),
                    other.start_date.isoformat(),
                    other.end_date.isoformat(),
                )
            )


def _regenerated_start(challenge: Challenge, days: list[date]) -> date:
    """Start date after replacing the days of ``challenge`` with ``days``.

    A start set explicitly before the first scheduled day is kept.
    """

    scheduled = [d.scheduled_on for d in challenge.days]
    if scheduled and challenge.start_date < min(scheduled):
        return min(challenge.start_date, days[0])
    return days[0]


def _regenerate(challenge: Challenge, days: list[date]) -> None:
    """Replace the scheduled days of ``challenge`` in place.

    Days kept across the edit keep their execution state; executed days may
    not be dropped.
    """

    existing = {d.scheduled_on: d for d in challenge.days}
    dropped = [d for day, d in existing.items() if day not in days and d.executed]
    if dropped:
        raise Conflict(
            "Cannot unschedule executed days: "
            + ", ".join(d.scheduled_on.isoformat() for d in sorted(dropped, key=lambda d: d.scheduled_on))
        )
    start = _regenerated_start(challenge, days)
    challenge.days = [existing.get(day) or Day(scheduled_on=day) for day in days]
    challenge.start_date = start
    challenge.end_date = days[-1]


def edit(
    habit: Habit,
    *,
    today: date,
    name: str | None = None,
    days: Iterable[date | datetime] | None = None,
) -> Optional[Challenge]:
    """Apply a name and/or day-set edit to ``habit`` in place.

    Returns the regenerated (or newly created) current challenge when days were
    given, ``None`` otherwise.
    """

    new_name = validate_name(name) if name is not None else None
    if days is None:
        if new_name is not None:
            habit.name = new_name
        return None

    ordered = challenge_rules.normalize_days(days)
    if not ordered:
        raise InvalidInput("A challenge needs at least one day")

    current = current_challenge(habit, today)
    if current is None:
        candidate = challenge_rules.create(ordered)
        _ensure_no_overlap(habit, candidate)
        habit.challenges.append(candidate)
        result = candidate
    else:
        probe = Challenge(start_date=_regenerated_start(current, ordered), end_date=ordered[-1])
        _ensure_no_overlap(habit, probe, ignore=current)
        _regenerate(current, ordered)
        result = current

    if new_name is not None:
        habit.name = new_name
    return result


def schedule_challenge(
    habit: Habit,
    days: Iterable[date | datetime],
    *,
    start_date: date | datetime | None = None,
) -> Challenge:
    """Append a new challenge that must not overlap any existing one."""

    candidate = challenge_rules.create(days, start_date=start_date)
    _ensure_no_overlap(habit, candidate)
    habit.challenges.append(candidate)
    return candidate


def find_challenge(habit: Habit, challenge_id: int) -> Challenge:
    for challenge in habit.challenges:
        if challenge.id == challenge_id:
            return challenge
    raise NotFound(f"Challenge {challenge_id} does not belong to habit {habit.id}")


def remove_challenge(habit: Habit, challenge_id: int) -> Challenge:
    """Detach a challenge without executed days from ``habit``."""

    challenge = find_challenge(habit, challenge_id)
    if challenge_rules.has_executed_days(challenge):
        raise Conflict(f"Challenge {challenge_id} has executed days and cannot be deleted")
    habit.challenges.remove(challenge)
    return challenge


def mark_executed(habit: Habit, day: date | datetime, *, now: datetime | None = None) -> Day:
    """Mark ``day`` as executed in whichever challenge schedules it."""

    for challenge in sorted_challenges(habit):
        if challenge_rules.find_day(challenge, day) is not None:
            return challenge_rules.mark_executed(challenge, day, now=now)
    raise NotFound(f"{as_day(day).isoformat()} is not scheduled for habit {habit.id}")


def replace_reminders(habit: Habit, fire_times: Iterable[time]) -> list[HabitReminder]:
    """Replace the habit's reminder fire times, reusing unchanged rows."""

    existing = {r.fire_time: r for r in habit.reminders}
    fresh = build_reminders(fire_times)
    habit.reminders = [existing.get(r.fire_time) or r for r in fresh]
    return habit.reminders


def fire_times(habit: Habit) -> list[time]:
    return sorted(r.fire_time for r in habit.reminders)


__all__ = [
    "HabitLifecycle",
    "NAME_MAX_LENGTH",
    "Progress",
    "build_reminders",
    "coerce_color",
    "create",
    "current_challenge",
    "edit",
    "find_challenge",
    "fire_times",
    "lifecycle",
    "mark_executed",
    "progress",
    "remove_challenge",
    "replace_reminders",
    "schedule_challenge",
    "sorted_challenges",
    "status",
]
