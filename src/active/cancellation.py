"""Cooperative cancellation for long catalog scans."""

from __future__ import annotations

import threading
from typing import Optional

from .errors import OperationCancelled


class CancellationToken:
    """Flag shared between a scan and whoever may want to stop it.

    The scan calls :meth:`raise_if_cancelled` between batches; any thread may
    call :meth:`cancel`.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason or "Operation cancelled")


def check(token: CancellationToken | None) -> None:
    """Raise when ``token`` is set; a missing token never cancels."""

    if token is not None:
        token.raise_if_cancelled()


__all__ = ["CancellationToken", "check"]
