"""Bounded exponential backoff with jitter for remote calls."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar

from gmail_spam_counter.core.exceptions import RetriesExhaustedError, TransientRemoteError

if TYPE_CHECKING:
    from gmail_spam_counter.pipeline.cancellation import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackoffPolicy:
    """Compute retry delays for a single failing operation.

    The delay for attempt ``n`` (0-based) is ``min(base * 2**n, max)`` plus a
    uniform jitter in ``[0, jitter)``. The jitter is added after the cap so
    workers that all hit the cap still spread out. The policy keeps no
    per-operation state and can be shared between threads.
    """

    def __init__(
        self,
        base_delay_seconds: float = 0.3,
        max_delay_seconds: float = 10.0,
        jitter_seconds: float = 0.2,
        max_attempts: int = 8,
        rng: random.Random | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        if base_delay_seconds < 0 or max_delay_seconds < 0 or jitter_seconds < 0:
            raise ValueError("Backoff delays must be non-negative")
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.jitter_seconds = jitter_seconds
        self.max_attempts = max_attempts
        self._rng = rng or random.Random()

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt ``attempt``."""
        capped = min(self.base_delay_seconds * (2**attempt), self.max_delay_seconds)
        return capped + self._rng.random() * self.jitter_seconds

    def max_total_delay(self) -> float:
        """Upper bound on the time spent sleeping over a full retry budget."""
        return sum(
            min(self.base_delay_seconds * (2**attempt), self.max_delay_seconds)
            + self.jitter_seconds
            for attempt in range(self.max_attempts - 1)
        )


def call_with_retry(
    operation: Callable[[], T],
    policy: BackoffPolicy,
    token: CancellationToken,
    context: str,
) -> T:
    """Run ``operation``, retrying ``TransientRemoteError`` per ``policy``.

    The cancellation token is checked before every attempt and interrupts the
    backoff sleep. Any other exception propagates on the first occurrence.

    Raises:
        RetriesExhaustedError: When every attempt failed transiently.
        PipelineAborted: When the token fired.
    """
    last_error: TransientRemoteError | None = None

    for attempt in range(policy.max_attempts):
        token.raise_if_cancelled()
        try:
            return operation()
        except TransientRemoteError as e:
            last_error = e
            if attempt + 1 >= policy.max_attempts:
                break
            sleep_time = policy.delay(attempt)
            logger.warning(
                "Transient failure during %s (attempt %d/%d), retrying in %.2fs: %s",
                context, attempt + 1, policy.max_attempts, sleep_time, e,
            )
            if token.wait(sleep_time):
                token.raise_if_cancelled()

    raise RetriesExhaustedError(
        f"Gave up on {context} after {policy.max_attempts} attempts: {last_error}",
        attempts=policy.max_attempts,
        last_error=last_error,
    ) from last_error
