"""Error types raised by the habit tracking core.

Every operation fails with one of these instead of asserting, so callers (UI,
CLI, background jobs) can recover. The classes also derive from the closest
builtin so ``except ValueError`` style handlers keep working.
"""

from __future__ import annotations


class ActiveError(Exception):
    """Base class for all errors raised by the package."""


class InvalidInput(ActiveError, ValueError):
    """Rejected input: empty name or day set, overlapping challenges, bad colour."""


class NotFound(ActiveError, LookupError):
    """The referenced user, habit, challenge or day does not exist."""


class Conflict(ActiveError, RuntimeError):
    """The operation clashes with stored state (stale version, executed days)."""


class OperationCancelled(ActiveError):
    """A cancellable scan was stopped through its token."""


class ReminderError(ActiveError):
    """The reminder scheduler could not register or cancel a reminder."""


__all__ = [
    "ActiveError",
    "Conflict",
    "InvalidInput",
    "NotFound",
    "OperationCancelled",
    "ReminderError",
]
