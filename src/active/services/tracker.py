"""Mutation entry point used by the presentation layer.

``HabitTracker`` wraps the habit store for one user. It serialises mutations
of the same habit inside the process, forwards reminder fire times to the
reminder scheduler, and reports scheduler failures as warnings instead of
failing the habit mutation that already committed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone, tzinfo
from typing import Iterable, Optional

from ..clock import Clock, today as clock_today, utc_now
from ..domain.repositories.habit import HabitRepository
from ..errors import ReminderError
from ..models.habit import Day, Habit, HabitColor, HabitStatus
from . import habits as habit_rules
from .reminders import ReminderScheduler, schedule_for

logger = logging.getLogger("active.tracker")


@dataclass
class MutationResult:
    """A committed habit plus any non-fatal warnings raised on the side."""

    habit: Habit
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings


@dataclass
class ExecutionResult:
    """A day marked executed plus warnings from resyncing its reminders."""

    day: Day
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings


class HabitTracker:
    def __init__(
        self,
        repository: HabitRepository,
        *,
        user_id: int,
        reminders: ReminderScheduler | None = None,
        clock: Clock = utc_now,
        reminder_tz: tzinfo = timezone.utc,
    ):
        self.repository = repository
        self.user_id = user_id
        self.reminders = reminders
        self.clock = clock
        self.reminder_tz = reminder_tz
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def today(self) -> date:
        return clock_today(self.clock)

    def _lock_for(self, habit_id: int) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(habit_id, threading.Lock())

    def _sync_reminders(self, habit: Habit) -> list[str]:
        if self.reminders is None:
            return []
        try:
            schedule_for(self.reminders, habit, now=self.clock(), tz=self.reminder_tz)
        except ReminderError as exc:
            logger.warning("Reminder scheduling failed", extra={"habit_id": habit.id, "error": str(exc)})
            return [str(exc)]
        except Exception as exc:
            # The habit change is already committed; never fail it here
            logger.exception("Reminder scheduler raised unexpectedly", extra={"habit_id": habit.id})
            return [f"Reminder scheduling failed: {exc}"]
        return []

    # Reads

    def get(self, habit_id: int) -> Habit:
        return self.repository.require(habit_id, user_id=self.user_id)

    def progress(self, habit: Habit) -> habit_rules.Progress:
        return habit_rules.progress(habit, self.today())

    def status(self, habit: Habit) -> HabitStatus:
        return habit_rules.status(habit, self.today())

    # Mutations

    def create_habit(
        self,
        name: str,
        color: HabitColor | str,
        days: Iterable[date | datetime],
        *,
        fire_times: Iterable[time] | None = None,
    ) -> MutationResult:
        draft = habit_rules.create(
            name,
            color,
            days,
            user_id=self.user_id,
            created_at=self.clock(),
            fire_times=fire_times,
        )
        habit = self.repository.create(draft, user_id=self.user_id)
        return MutationResult(habit, self._sync_reminders(habit))

    def edit_habit(
        self,
        habit_id: int,
        *,
        name: str | None = None,
        days: Iterable[date | datetime] | None = None,
        fire_times: Iterable[time] | None = None,
        expected_version: int | None = None,
    ) -> MutationResult:
        with self._lock_for(habit_id):
            habit = self.repository.edit(
                habit_id,
                user_id=self.user_id,
                today=self.today(),
                name=name,
                days=days,
                fire_times=fire_times,
                expected_version=expected_version,
            )
        warnings = self._sync_reminders(habit) if days is not None or fire_times is not None else []
        return MutationResult(habit, warnings)

    def schedule_challenge(
        self,
        habit_id: int,
        days: Iterable[date | datetime],
        *,
        start_date: date | None = None,
        expected_version: int | None = None,
    ) -> MutationResult:
        with self._lock_for(habit_id):
            habit = self.repository.add_challenge(
                habit_id,
                days,
                user_id=self.user_id,
                start_date=start_date,
                expected_version=expected_version,
            )
        return MutationResult(habit, self._sync_reminders(habit))

    def mark_executed(self, habit_id: int, day: date | datetime | None = None) -> ExecutionResult:
        """Mark ``day`` (default: today) as executed and drop its pending reminders."""
        with self._lock_for(habit_id):
            executed = self.repository.mark_executed(
                habit_id,
                day if day is not None else self.today(),
                user_id=self.user_id,
                now=self.clock(),
            )
            if self.reminders is None:
                return ExecutionResult(executed)
            habit = self.repository.require(habit_id, user_id=self.user_id)
        return ExecutionResult(executed, self._sync_reminders(habit))

    def delete_challenge(
        self, habit_id: int, challenge_id: int, *, expected_version: int | None = None
    ) -> MutationResult:
        with self._lock_for(habit_id):
            habit = self.repository.delete_challenge(
                habit_id, challenge_id, user_id=self.user_id, expected_version=expected_version
            )
        return MutationResult(habit, self._sync_reminders(habit))

    def delete_habit(self, habit_id: int, *, expected_version: int | None = None) -> list[str]:
        """Delete the habit; returns warnings from cancelling its reminders."""
        with self._lock_for(habit_id):
            self.repository.delete(habit_id, user_id=self.user_id, expected_version=expected_version)
        with self._locks_guard:
            self._locks.pop(habit_id, None)

        if self.reminders is None:
            return []
        try:
            self.reminders.cancel(habit_id)
        except ReminderError as exc:
            logger.warning("Reminder cancellation failed", extra={"habit_id": habit_id, "error": str(exc)})
            return [str(exc)]
        except Exception as exc:
            logger.exception("Reminder scheduler raised unexpectedly", extra={"habit_id": habit_id})
            return [f"Reminder cancellation failed: {exc}"]
        return []


def progress_label(progress: habit_rules.Progress, status: Optional[HabitStatus] = None) -> str:
    if status is HabitStatus.COMPLETED:
        return "completed"
    return str(progress)


__all__ = ["ExecutionResult", "HabitTracker", "MutationResult", "progress_label"]
