"""Habit catalog: segmented listings and change subscriptions for one user."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

from ..cancellation import CancellationToken, check
from ..clock import Clock, today as clock_today, utc_now
from ..domain.repositories.habit import HabitRepository
from ..errors import NotFound
from ..infra.events import ChangeFeed, ChangeKind, HabitChange
from ..models.habit import Habit, HabitStatus
from . import habits as habit_rules

logger = logging.getLogger("active.catalog")


@dataclass(frozen=True)
class ChangeEntry:
    """A habit touched by a change and the segment it now belongs to."""

    habit_id: int
    segment: Optional[HabitStatus]


@dataclass(frozen=True)
class ChangeSet:
    """What a list consumer needs to reconcile without reloading."""

    sequence: int
    inserted: tuple[ChangeEntry, ...] = ()
    removed: tuple[ChangeEntry, ...] = ()
    updated: tuple[ChangeEntry, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.inserted or self.removed or self.updated)


@dataclass(frozen=True)
class CatalogSnapshot:
    taken_on: date
    in_progress: list[Habit] = field(default_factory=list)
    completed: list[Habit] = field(default_factory=list)

    def segment(self, status: HabitStatus) -> list[Habit]:
        return self.completed if status is HabitStatus.COMPLETED else self.in_progress


ChangeListener = Callable[[ChangeSet], None]


class Subscription:
    """Handle returned by :meth:`HabitCatalog.subscribe`."""

    def __init__(self, catalog: "HabitCatalog", token: int):
        self._catalog = catalog
        self.token = token
        self.active = True

    def unsubscribe(self) -> None:
        self._catalog.unsubscribe(self)


class HabitCatalog:
    """Read side of one user's habits.

    Segments are computed from each habit's status at query time; nothing is
    cached, so a habit moves to ``completed`` as soon as the clock passes the
    end of its last challenge.
    """

    def __init__(
        self,
        repository: HabitRepository,
        *,
        user_id: int,
        feed: ChangeFeed | None = None,
        clock: Clock = utc_now,
        batch_size: int = 200,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be greater than zero")
        self.repository = repository
        self.user_id = user_id
        self.feed = feed
        self.clock = clock
        self.batch_size = batch_size

    def today(self) -> date:
        return clock_today(self.clock)

    def segment_of(self, habit: Habit, today: date | None = None) -> HabitStatus:
        return habit_rules.status(habit, today or self.today())

    def segments(self, cancel: CancellationToken | None = None) -> CatalogSnapshot:
        """Both segments from a single scan of the store."""

        today = self.today()
        snapshot = CatalogSnapshot(taken_on=today)
        check(cancel)
        for batch in self.repository.iter_batches(user_id=self.user_id, batch_size=self.batch_size):
            check(cancel)
            for habit in batch:
                snapshot.segment(habit_rules.status(habit, today)).append(habit)
        check(cancel)
        return snapshot

    def list_in_progress(self, cancel: CancellationToken | None = None) -> list[Habit]:
        return self.segments(cancel).in_progress

    def list_completed(self, cancel: CancellationToken | None = None) -> list[Habit]:
        return self.segments(cancel).completed

    # Subscriptions

    def subscribe(self, listener: ChangeListener) -> Subscription:
        """Forward committed changes of this user's habits as change sets."""

        if self.feed is None:
            raise RuntimeError("This catalog has no change feed to subscribe to")

        def forward(change: HabitChange) -> None:
            if change.user_id != self.user_id:
                return
            listener(self._to_changeset(change))

        return Subscription(self, self.feed.subscribe(forward))

    def unsubscribe(self, subscription: Subscription) -> None:
        if not subscription.active:
            return
        subscription.active = False
        if self.feed is not None:
            self.feed.unsubscribe(subscription.token)

    def _to_changeset(self, change: HabitChange) -> ChangeSet:
        if change.kind is ChangeKind.DELETED:
            return ChangeSet(sequence=change.sequence, removed=(ChangeEntry(change.habit_id, None),))

        try:
            habit = self.repository.require(change.habit_id, user_id=self.user_id)
        except NotFound:
            # Deleted before this event was delivered; a later event reports it too
            logger.debug("Habit vanished before delivery", extra={"habit_id": change.habit_id})
            return ChangeSet(sequence=change.sequence, removed=(ChangeEntry(change.habit_id, None),))

        entry = ChangeEntry(change.habit_id, self.segment_of(habit))
        if change.kind is ChangeKind.CREATED:
            return ChangeSet(sequence=change.sequence, inserted=(entry,))
        return ChangeSet(sequence=change.sequence, updated=(entry,))


__all__ = [
    "CatalogSnapshot",
    "ChangeEntry",
    "ChangeListener",
    "ChangeSet",
    "HabitCatalog",
    "Subscription",
]
