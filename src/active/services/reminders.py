"""Reminder scheduling.

The core never fires reminders itself. It hands the moments derived from the
fire times a user picked to a :class:`ReminderScheduler`; the APScheduler
implementation below turns each moment into a one-shot job.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone, tzinfo
from typing import Callable, Iterable, Protocol, Sequence
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from ..clock import as_utc
from ..errors import ReminderError
from ..models.habit import Habit
from . import challenges as challenge_rules
from . import habits as habit_rules

logger = logging.getLogger("active.reminders")

DeliverFn = Callable[[int, str, datetime], None]


class ReminderScheduler(Protocol):
    """Notification scheduler contract.

    Implementations report failures as :class:`ReminderError`. The tracker also
    turns any other exception into a warning, since the habit change has
    already been committed when the scheduler is called.
    """

    def schedule(self, habit_id: int, name: str, fire_at: Sequence[datetime]) -> None:
        """Replace every pending reminder of the habit with ``fire_at``."""
        ...

    def cancel(self, habit_id: int) -> None:
        """Drop every pending reminder of the habit."""
        ...


def resolve_timezone(name: str | None) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (KeyError, ValueError) as exc:
        raise ReminderError(f"Unknown reminder timezone: {name!r}") from exc


def fire_moments(habit: Habit, *, now: datetime, tz: tzinfo = timezone.utc) -> list[datetime]:
    """UTC moments at which the habit's reminders should fire.

    Every scheduled, not yet executed day from today on is combined with each
    reminder fire time (read in ``tz``); moments already past are skipped.
    """

    now = as_utc(now)
    times = habit_rules.fire_times(habit)
    if not times:
        return []

    moments: set[datetime] = set()
    for challenge in habit.challenges:
        for day in challenge_rules.ordered_days(challenge):
            if day.executed:
                continue
            for fire_time in times:
                moment = _combine(day.scheduled_on, fire_time, tz)
                if moment > now:
                    moments.add(moment)
    return sorted(moments)


def _combine(day: date, fire_time: time, tz: tzinfo) -> datetime:
    return datetime.combine(day, fire_time.replace(tzinfo=None), tzinfo=tz).astimezone(timezone.utc)


def _log_delivery(habit_id: int, name: str, fire_at: datetime) -> None:
    logger.info("Reminder due", extra={"habit_id": habit_id, "habit_name": name, "fire_at": fire_at})


class APSchedulerReminderScheduler:
    """Reminder scheduler backed by an APScheduler ``BackgroundScheduler``."""

    JOB_PREFIX = "habit-reminder"

    def __init__(
        self,
        deliver: DeliverFn | None = None,
        *,
        scheduler: BackgroundScheduler | None = None,
    ):
        self.deliver = deliver or _log_delivery
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Reminder scheduler started")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
            logger.info("Reminder scheduler stopped")

    def _job_id(self, habit_id: int, fire_at: datetime) -> str:
        return f"{self.JOB_PREFIX}-{habit_id}-{fire_at.strftime('%Y%m%dT%H%M')}"

    def job_ids(self, habit_id: int) -> list[str]:
        prefix = f"{self.JOB_PREFIX}-{habit_id}-"
        return sorted(job.id for job in self.scheduler.get_jobs() if job.id.startswith(prefix))

    def schedule(self, habit_id: int, name: str, fire_at: Sequence[datetime]) -> None:
        self.cancel(habit_id)
        for moment in fire_at:
            moment = as_utc(moment)
            job_id = self._job_id(habit_id, moment)
            try:
                self.scheduler.add_job(
                    self._fire,
                    trigger=DateTrigger(run_date=moment),
                    args=[habit_id, name, moment],
                    id=job_id,
                    name=f"Reminder for {name}",
                    replace_existing=True,
                    misfire_grace_time=None,
                )
            except Exception as exc:
                raise ReminderError(f"Could not schedule reminder {job_id}: {exc}") from exc
        logger.info("Reminders scheduled", extra={"habit_id": habit_id, "count": len(fire_at)})

    def cancel(self, habit_id: int) -> None:
        for job_id in self.job_ids(habit_id):
            try:
                self.scheduler.remove_job(job_id)
            except JobLookupError:
                # Fired in the meantime
                continue
            except Exception as exc:
                raise ReminderError(f"Could not cancel reminder {job_id}: {exc}") from exc

    def _fire(self, habit_id: int, name: str, fire_at: datetime) -> None:
        try:
            self.deliver(habit_id, name, fire_at)
        except Exception:
            logger.exception("Reminder delivery failed", extra={"habit_id": habit_id})


def schedule_for(
    scheduler: ReminderScheduler, habit: Habit, *, now: datetime, tz: tzinfo = timezone.utc
) -> list[datetime]:
    """Pass the habit's upcoming reminder moments to ``scheduler``."""

    moments = fire_moments(habit, now=now, tz=tz)
    if moments:
        scheduler.schedule(habit.id, habit.name, moments)
    else:
        scheduler.cancel(habit.id)
    return moments


def describe(times: Iterable[time]) -> str:
    return ", ".join(t.strftime("%H:%M") for t in times) or "none"


__all__ = [
    "APSchedulerReminderScheduler",
    "DeliverFn",
    "ReminderScheduler",
    "describe",
    "fire_moments",
    "resolve_timezone",
    "schedule_for",
]
