"""In-process change feed published by the habit store after each commit."""

from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger("active.events")


class ChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class HabitChange:
    """One committed mutation of a habit aggregate."""

    sequence: int
    kind: ChangeKind
    habit_id: int
    user_id: int
    committed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Listener = Callable[[HabitChange], None]


class ChangeFeed:
    """Ordered fan-out of :class:`HabitChange` events.

    Writers hold :attr:`lock` across commit and :meth:`publish`, so sequence
    numbers follow commit order. Delivery happens inline or, when
    ``asynchronous`` is set, on a single worker thread which keeps that order
    while letting the writer return immediately. Listener errors are logged
    and never reach the writer or other listeners.
    """

    def __init__(self, *, asynchronous: bool = False):
        self.lock = threading.RLock()
        self._listeners: dict[int, Listener] = {}
        self._tokens = itertools.count(1)
        self._sequence = itertools.count(1)
        self._executor: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="active-events")
            if asynchronous
            else None
        )

    @property
    def asynchronous(self) -> bool:
        return self._executor is not None

    def subscribe(self, listener: Listener) -> int:
        with self.lock:
            token = next(self._tokens)
            self._listeners[token] = listener
        return token

    def unsubscribe(self, token: int) -> bool:
        """Remove a listener; returns False when it was already gone."""
        with self.lock:
            return self._listeners.pop(token, None) is not None

    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, kind: ChangeKind, *, habit_id: int, user_id: int) -> HabitChange:
        with self.lock:
            change = HabitChange(
                sequence=next(self._sequence),
                kind=kind,
                habit_id=habit_id,
                user_id=user_id,
            )
            if self._executor is not None:
                self._executor.submit(self._deliver, change)
            else:
                self._deliver(change)
        return change

    def _deliver(self, change: HabitChange) -> None:
        with self.lock:
            listeners = list(self._listeners.items())
        for token, listener in listeners:
            try:
                listener(change)
            except Exception:
                logger.exception(
                    "Change listener failed",
                    extra={"listener": token, "habit_id": change.habit_id, "sequence": change.sequence},
                )

    def flush(self, timeout: float | None = 5.0) -> None:
        """Block until every event published so far has been delivered."""
        if self._executor is None:
            return
        self._executor.submit(lambda: None).result(timeout=timeout)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None


__all__ = ["ChangeFeed", "ChangeKind", "HabitChange", "Listener"]
