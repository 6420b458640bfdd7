"""Frozen dataclasses for the Gmail Spam Counter domain model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gmail_spam_counter.config.settings import SpamCounterSettings

# Calendar date (YYYY-MM-DD, local timezone) -> message count.
DateHistogram = dict[str, int]

SPAM_LABEL = "SPAM"


@dataclass(frozen=True)
class MessageRecord:
    """Minimal metadata for one message: its id and Gmail internalDate."""

    message_id: str
    internal_date_ms: int

    @property
    def is_valid(self) -> bool:
        return self.internal_date_ms > 0


@dataclass(frozen=True)
class MessagePage:
    """One page of message ids from the list endpoint."""

    message_ids: tuple[str, ...] = ()
    next_page_token: str | None = None


@dataclass(frozen=True)
class MessageQuery:
    """Filter handed to the message source: one label plus a search query."""

    label_id: str
    query: str
    page_size: int = 500


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable parameters for a single pipeline run.

    Build with :meth:`create` or :meth:`from_settings` so the cutoff date is
    computed once, from the current date, when the run is set up.
    """

    lookback_days: int
    overall_timeout_seconds: float
    max_concurrent_fetches: int
    fetch_jitter_seconds: float
    cutoff_date: date
    label_id: str = SPAM_LABEL
    page_size: int = 500

    def __post_init__(self) -> None:
        if self.lookback_days <= 0:
            raise ValueError(f"lookback_days must be positive, got {self.lookback_days}")
        if self.overall_timeout_seconds <= 0:
            raise ValueError(
                f"overall_timeout_seconds must be positive, got {self.overall_timeout_seconds}"
            )
        if self.max_concurrent_fetches <= 0:
            raise ValueError(
                f"max_concurrent_fetches must be positive, got {self.max_concurrent_fetches}"
            )
        if self.fetch_jitter_seconds < 0:
            raise ValueError(
                f"fetch_jitter_seconds must be non-negative, got {self.fetch_jitter_seconds}"
            )
        if not 1 <= self.page_size <= 500:
            raise ValueError(f"page_size must be between 1 and 500, got {self.page_size}")

    @classmethod
    def create(
        cls,
        *,
        lookback_days: int = 30,
        overall_timeout_seconds: float = 60.0,
        max_concurrent_fetches: int = 10,
        fetch_jitter_seconds: float = 0.1,
        label_id: str = SPAM_LABEL,
        page_size: int = 500,
        today: date | None = None,
    ) -> PipelineConfig:
        """Build a config whose cutoff is ``today - lookback_days``."""
        today = today or date.today()
        return cls(
            lookback_days=lookback_days,
            overall_timeout_seconds=overall_timeout_seconds,
            max_concurrent_fetches=max_concurrent_fetches,
            fetch_jitter_seconds=fetch_jitter_seconds,
            cutoff_date=today - timedelta(days=lookback_days),
            label_id=label_id,
            page_size=page_size,
        )

    @classmethod
    def from_settings(
        cls, settings: SpamCounterSettings, *, today: date | None = None
    ) -> PipelineConfig:
        return cls.create(
            lookback_days=settings.lookback_days,
            overall_timeout_seconds=settings.timeout_seconds,
            max_concurrent_fetches=settings.max_concurrent_fetches,
            fetch_jitter_seconds=settings.fetch_jitter_seconds,
            label_id=settings.label,
            page_size=settings.max_results_per_page,
            today=today,
        )

    @property
    def cutoff_date_str(self) -> str:
        return self.cutoff_date.strftime("%Y-%m-%d")

    def message_query(self) -> MessageQuery:
        return MessageQuery(
            label_id=self.label_id,
            query=f"after:{self.cutoff_date_str}",
            page_size=self.page_size,
        )


@dataclass
class FetchProgress:
    """Mutable progress tracker for pipeline status reporting."""

    current_stage: str = "idle"
    pages_listed: int = 0
    ids_dispatched: int = 0
    records_counted: int = 0
    records_invalid: int = 0
    records_dropped: int = 0
