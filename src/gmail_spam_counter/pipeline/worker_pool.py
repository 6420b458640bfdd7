"""Bounded pool of concurrent per-message fetches."""

from __future__ import annotations

import logging
import random
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait

from gmail_spam_counter.core.backoff import BackoffPolicy, call_with_retry
from gmail_spam_counter.core.exceptions import (
    FatalRemoteError,
    PipelineAborted,
    RetriesExhaustedError,
)
from gmail_spam_counter.core.models import MessageRecord
from gmail_spam_counter.pipeline.cancellation import CancellationToken

logger = logging.getLogger(__name__)

# How often blocked waits re-check the cancellation token.
_POLL_INTERVAL_SECONDS = 0.05


class WorkerPool:
    """Fetch message records with at most ``max_concurrent`` calls in flight.

    ``submit`` takes one slot of a counting semaphore before scheduling a
    fetch, so a saturated pool blocks the dispatching thread rather than
    queueing work without bound. The slot is given back when the task's
    future completes, however it completes.

    Each task waits a random jitter in ``[0, jitter_seconds)`` once, then
    fetches under ``call_with_retry``. A message whose fetch fails for good is
    logged and dropped; it never fails the run. Nothing reaches ``sink`` once
    the cancellation token has fired.
    """

    def __init__(
        self,
        fetch: Callable[[str], MessageRecord],
        sink: Callable[[MessageRecord], object],
        *,
        max_concurrent: int,
        jitter_seconds: float,
        backoff: BackoffPolicy,
        token: CancellationToken,
        rng: random.Random | None = None,
    ) -> None:
        if max_concurrent <= 0:
            raise ValueError(f"max_concurrent must be positive, got {max_concurrent}")
        self._fetch = fetch
        self._sink = sink
        self._jitter_seconds = jitter_seconds
        self._backoff = backoff
        self._token = token
        self._rng = rng or random.Random()

        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent, thread_name_prefix="spam-fetch"
        )
        self._lock = threading.Lock()
        self._futures: set[Future[None]] = set()
        self._dropped = 0
        self._submitted = 0

    def __enter__(self) -> WorkerPool:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    @property
    def dropped(self) -> int:
        with self._lock:
            return self._dropped

    @property
    def submitted(self) -> int:
        with self._lock:
            return self._submitted

    def submit(self, message_id: str) -> None:
        """Schedule a fetch, blocking until a concurrency slot is free.

        Raises:
            PipelineAborted: If the run is cancelled while waiting for a slot.
        """
        self._acquire_slot()
        try:
            future = self._executor.submit(self._process, message_id)
        except BaseException:
            self._slots.release()
            raise

        with self._lock:
            self._futures.add(future)
            self._submitted += 1
        future.add_done_callback(self._on_done)

    def drain(self) -> bool:
        """Wait for every submitted task.

        Returns True once all tasks finished, False if the cancellation token
        fired first.
        """
        while True:
            if self._token.cancelled:
                return False
            with self._lock:
                pending = [f for f in self._futures if not f.done()]
            if not pending:
                # Tasks woken by cancellation finish without emitting.
                return not self._token.cancelled
            wait(pending, timeout=_POLL_INTERVAL_SECONDS)

    def shutdown(self) -> None:
        """Cancel queued tasks and join the running ones."""
        self._executor.shutdown(wait=True, cancel_futures=True)

    def _acquire_slot(self) -> None:
        while not self._slots.acquire(timeout=_POLL_INTERVAL_SECONDS):
            self._token.raise_if_cancelled()
        if self._token.cancelled:
            self._slots.release()
            self._token.raise_if_cancelled()

    def _on_done(self, future: Future[None]) -> None:
        with self._lock:
            self._futures.discard(future)
        self._slots.release()

    def _process(self, message_id: str) -> None:
        if self._jitter_seconds > 0:
            if self._token.wait(self._rng.random() * self._jitter_seconds):
                return

        try:
            record = call_with_retry(
                lambda: self._fetch(message_id),
                self._backoff,
                self._token,
                f"fetch message {message_id}",
            )
        except PipelineAborted:
            logger.debug("Fetch of %s abandoned: run stopped", message_id)
            return
        except (RetriesExhaustedError, FatalRemoteError) as e:
            logger.warning("Dropping message %s: %s", message_id, e)
            self._record_drop()
            return
        except Exception:
            logger.exception("Unexpected error fetching message %s", message_id)
            self._record_drop()
            return

        if self._token.cancelled:
            return
        try:
            self._sink(record)
        except Exception:
            logger.exception("Failed to record message %s", message_id)
            self._record_drop()

    def _record_drop(self) -> None:
        with self._lock:
            self._dropped += 1
