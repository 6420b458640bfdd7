"""Run-scoped cancellation signal shared by the orchestrator and workers."""

from __future__ import annotations

import threading
from enum import Enum

from gmail_spam_counter.core.exceptions import Cancelled, TimeoutExceeded


class CancelReason(str, Enum):
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


class CancellationToken:
    """One-shot stop signal. The first reason recorded wins."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: CancelReason | None = None

    def cancel(self, reason: CancelReason = CancelReason.CANCELLED) -> bool:
        """Fire the signal. Returns False if it had already fired."""
        with self._lock:
            if self._reason is not None:
                return False
            self._reason = reason
        self._event.set()
        return True

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> CancelReason | None:
        return self._reason

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True as soon as the signal fires."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)

    def raise_if_cancelled(self) -> None:
        if not self._event.is_set():
            return
        if self._reason is CancelReason.TIMEOUT:
            raise TimeoutExceeded("Overall deadline exceeded")
        if self._reason is CancelReason.ABORTED:
            raise Cancelled("Run aborted")
        raise Cancelled("Run cancelled")
