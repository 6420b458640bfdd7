"""Shared fixtures for Gmail Spam Counter tests."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest

from gmail_spam_counter.core.backoff import BackoffPolicy
from gmail_spam_counter.core.models import MessagePage, MessageQuery, MessageRecord, PipelineConfig
from gmail_spam_counter.pipeline.cancellation import CancellationToken

# Fixed UTC-5 offset so date bucketing does not depend on the machine's timezone.
FIXED_TZ = timezone(timedelta(hours=-5))


def _local_ms(year: int, month: int, day: int, hour: int = 12) -> int:
    return int(datetime(year, month, day, hour, tzinfo=FIXED_TZ).timestamp() * 1000)


class FakeSource:
    """In-memory MessageSource with call instrumentation.

    Pages are chained through tokens ``page-2``, ``page-3``, ... ``records``
    maps ids to internalDate millis. ``fetch_errors`` maps ids to a list of
    exceptions raised, in order, before the fetch succeeds.
    """

    def __init__(
        self,
        pages: list[list[str]],
        records: dict[str, int],
        *,
        fetch_delay: float = 0.0,
        fetch_errors: dict[str, list[Exception]] | None = None,
        list_errors: list[BaseException] | None = None,
        list_error_always: BaseException | None = None,
    ) -> None:
        self._pages = pages
        self._records = records
        self._fetch_delay = fetch_delay
        self._fetch_errors = {k: list(v) for k, v in (fetch_errors or {}).items()}
        self._list_errors = list(list_errors or [])
        self._list_error_always = list_error_always
        self._lock = threading.Lock()

        self.list_calls: list[tuple[MessageQuery, str | None]] = []
        self.fetch_calls: list[str] = []
        self.fetch_intervals: list[tuple[float, float]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def list_page(self, query: MessageQuery, page_token: str | None = None) -> MessagePage:
        with self._lock:
            self.list_calls.append((query, page_token))
            if self._list_error_always is not None:
                raise self._list_error_always
            if self._list_errors:
                raise self._list_errors.pop(0)

        index = 0 if page_token is None else int(page_token.split("-")[1]) - 1
        next_token = f"page-{index + 2}" if index + 1 < len(self._pages) else None
        return MessagePage(message_ids=tuple(self._pages[index]), next_page_token=next_token)

    def get_minimal(self, message_id: str) -> MessageRecord:
        with self._lock:
            self.fetch_calls.append(message_id)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        started = time.monotonic()
        try:
            if self._fetch_delay:
                time.sleep(self._fetch_delay)
            with self._lock:
                errors = self._fetch_errors.get(message_id)
                if errors:
                    raise errors.pop(0)
            return MessageRecord(message_id=message_id, internal_date_ms=self._records[message_id])
        finally:
            with self._lock:
                self.in_flight -= 1
                self.fetch_intervals.append((started, time.monotonic()))


class RecordingToken(CancellationToken):
    """CancellationToken whose waits return at once and are recorded."""

    def __init__(self) -> None:
        super().__init__()
        self.waits: list[float] = []

    def wait(self, seconds: float) -> bool:
        self.waits.append(seconds)
        return super().wait(0)


@pytest.fixture
def fixed_tz() -> timezone:
    """Fixed UTC-5 timezone used to bucket dates."""
    return FIXED_TZ


@pytest.fixture
def local_ms() -> Callable[..., int]:
    """Epoch milliseconds for a wall-clock time in the fixed timezone."""
    return _local_ms


@pytest.fixture
def make_source() -> type[FakeSource]:
    """Factory for instrumented in-memory message sources."""
    return FakeSource


@pytest.fixture
def recording_token() -> RecordingToken:
    """Token that records every sleep instead of sleeping."""
    return RecordingToken()


@pytest.fixture
def fast_backoff() -> BackoffPolicy:
    """Backoff with millisecond delays so retry tests run quickly."""
    return BackoffPolicy(
        base_delay_seconds=0.001,
        max_delay_seconds=0.005,
        jitter_seconds=0.0,
        max_attempts=3,
    )


@pytest.fixture
def make_config() -> Any:
    """Factory for PipelineConfig with test-friendly defaults."""

    def _make(**overrides: Any) -> PipelineConfig:
        params: dict[str, Any] = {
            "lookback_days": 30,
            "overall_timeout_seconds": 10.0,
            "max_concurrent_fetches": 4,
            "fetch_jitter_seconds": 0.0,
            "today": date(2024, 1, 31),
        }
        params.update(overrides)
        return PipelineConfig.create(**params)

    return _make
