"""
Cooperative cancellation of long aggregation scans.

Scans stream their rows in chunks and call ``check()`` between chunks. A token
is cancelled explicitly (``cancel()``, e.g. from another thread) or implicitly
once its deadline has passed.
"""

from __future__ import annotations

import threading
import time

from loguru import logger

from umami_common.exceptions import QueryCancelled


class CancellationToken:
    def __init__(self, timeout_seconds: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout_seconds if timeout_seconds else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def check(self) -> None:
        """Raise ``QueryCancelled`` if the scan should stop."""
        if self.cancelled:
            reason = "cancelled" if self._event.is_set() else "deadline exceeded"
            logger.warning(f"Aggregation scan stopped: {reason}")
            msg = f"Query {reason}"
            raise QueryCancelled(msg)


def check_cancelled(token: CancellationToken | None) -> None:
    if token is not None:
        token.check()
