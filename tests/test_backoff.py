"""Tests for BackoffPolicy and call_with_retry."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from gmail_spam_counter.core.backoff import BackoffPolicy, call_with_retry
from gmail_spam_counter.core.exceptions import (
    Cancelled,
    FatalRemoteError,
    RetriesExhaustedError,
    TimeoutExceeded,
    TransientRemoteError,
)
from gmail_spam_counter.pipeline.cancellation import CancellationToken, CancelReason


def _fixed_rng(value: float) -> MagicMock:
    rng = MagicMock()
    rng.random.return_value = value
    return rng


# ---------- BackoffPolicy ----------


class TestBackoffPolicy:
    """Delay doubles per attempt, is capped, and gets jitter added after the cap."""

    def test_exponential_backoff_increases(self) -> None:
        policy = BackoffPolicy(
            base_delay_seconds=0.3, max_delay_seconds=10.0, jitter_seconds=0.2, rng=_fixed_rng(0.0)
        )
        assert [policy.delay(n) for n in range(4)] == pytest.approx([0.3, 0.6, 1.2, 2.4])

    def test_backoff_capped_at_max(self) -> None:
        policy = BackoffPolicy(
            base_delay_seconds=2.0, max_delay_seconds=5.0, jitter_seconds=0.0, rng=_fixed_rng(0.0)
        )
        assert [policy.delay(n) for n in range(4)] == pytest.approx([2.0, 4.0, 5.0, 5.0])

    def test_jitter_added_after_cap(self) -> None:
        policy = BackoffPolicy(
            base_delay_seconds=1.0, max_delay_seconds=2.0, jitter_seconds=0.2, rng=_fixed_rng(0.5)
        )
        assert policy.delay(5) == pytest.approx(2.1)

    def test_jitter_stays_below_ceiling(self) -> None:
        policy = BackoffPolicy(base_delay_seconds=0.0, jitter_seconds=0.2)
        delays = [policy.delay(0) for _ in range(200)]
        assert all(0.0 <= d < 0.2 for d in delays)

    def test_max_total_delay(self) -> None:
        policy = BackoffPolicy(
            base_delay_seconds=1.0, max_delay_seconds=3.0, jitter_seconds=0.5, max_attempts=4
        )
        # Sleeps after attempts 0, 1, 2: (1 + .5) + (2 + .5) + (3 + .5)
        assert policy.max_total_delay() == pytest.approx(7.5)

    def test_single_attempt_never_sleeps(self) -> None:
        assert BackoffPolicy(max_attempts=1).max_total_delay() == 0

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            BackoffPolicy(max_attempts=0)


# ---------- call_with_retry ----------


class TestCallWithRetry:
    """call_with_retry retries transient failures only, within the budget."""

    def test_returns_first_success_without_sleeping(self, fast_backoff: BackoffPolicy) -> None:
        token = MagicMock(wraps=CancellationToken())
        operation = MagicMock(return_value="ok")

        assert call_with_retry(operation, fast_backoff, token, "test") == "ok"
        operation.assert_called_once_with()
        token.wait.assert_not_called()

    def test_retries_transient_then_succeeds(self, fast_backoff: BackoffPolicy) -> None:
        operation = MagicMock(side_effect=[TransientRemoteError("503"), "ok"])

        result = call_with_retry(operation, fast_backoff, CancellationToken(), "test")

        assert result == "ok"
        assert operation.call_count == 2

    def test_sleeps_policy_delay_between_attempts(self) -> None:
        policy = BackoffPolicy(
            base_delay_seconds=1.0, max_delay_seconds=10.0, jitter_seconds=0.0, max_attempts=4
        )
        token = MagicMock()
        token.wait.return_value = False
        operation = MagicMock(
            side_effect=[TransientRemoteError("a"), TransientRemoteError("b"), "ok"]
        )

        call_with_retry(operation, policy, token, "test")

        assert [c.args[0] for c in token.wait.call_args_list] == [1.0, 2.0]

    def test_raises_retries_exhausted(self, fast_backoff: BackoffPolicy) -> None:
        last = TransientRemoteError("still 503")
        operation = MagicMock(side_effect=[TransientRemoteError("503"), TransientRemoteError("503"), last])

        with pytest.raises(RetriesExhaustedError, match="Gave up on list messages") as exc_info:
            call_with_retry(operation, fast_backoff, CancellationToken(), "list messages")

        assert operation.call_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is last
        assert exc_info.value.__cause__ is last

    def test_fatal_error_propagates_immediately(self, fast_backoff: BackoffPolicy) -> None:
        operation = MagicMock(side_effect=FatalRemoteError("400 bad request"))

        with pytest.raises(FatalRemoteError):
            call_with_retry(operation, fast_backoff, CancellationToken(), "test")

        assert operation.call_count == 1

    def test_cancelled_token_skips_the_call(self, fast_backoff: BackoffPolicy) -> None:
        token = CancellationToken()
        token.cancel(CancelReason.TIMEOUT)
        operation = MagicMock()

        with pytest.raises(TimeoutExceeded):
            call_with_retry(operation, fast_backoff, token, "test")

        operation.assert_not_called()

    def test_cancellation_during_sleep_stops_retrying(self) -> None:
        policy = BackoffPolicy(base_delay_seconds=30.0, max_delay_seconds=30.0, max_attempts=5)
        token = CancellationToken()

        def _fail_and_cancel() -> None:
            token.cancel(CancelReason.CANCELLED)
            raise TransientRemoteError("503")

        operation = MagicMock(side_effect=_fail_and_cancel)

        with pytest.raises(Cancelled):
            call_with_retry(operation, policy, token, "test")

        assert operation.call_count == 1
