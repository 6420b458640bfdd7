"""Thread-safe fold of message records into a per-day histogram."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone, tzinfo

from gmail_spam_counter.core.exceptions import InvalidRecordError
from gmail_spam_counter.core.models import DateHistogram, MessageRecord

logger = logging.getLogger(__name__)


def date_key(internal_date_ms: int, tz: tzinfo | None = None) -> str:
    """Render epoch milliseconds (UTC) as a ``YYYY-MM-DD`` date in ``tz``.

    ``tz=None`` means the system's local timezone.

    Raises:
        InvalidRecordError: If the timestamp is not positive or out of range.
    """
    if internal_date_ms <= 0:
        raise InvalidRecordError(f"Invalid internalDate ({internal_date_ms})")
    try:
        utc_dt = datetime.fromtimestamp(internal_date_ms / 1000, tz=timezone.utc)
        return utc_dt.astimezone(tz).strftime("%Y-%m-%d")
    except (OverflowError, OSError, ValueError) as e:
        raise InvalidRecordError(
            f"internalDate out of range ({internal_date_ms})"
        ) from e


class DateAggregator:
    """Owns the histogram. ``add`` may be called from any worker thread."""

    def __init__(self, tz: tzinfo | None = None) -> None:
        self._tz = tz
        self._lock = threading.Lock()
        self._counts: DateHistogram = {}
        self._invalid = 0
        self._closed = False

    def add(self, record: MessageRecord) -> bool:
        """Count one record. Returns False if it was skipped or arrived after close."""
        try:
            key = date_key(record.internal_date_ms, self._tz)
        except InvalidRecordError as e:
            with self._lock:
                if self._closed:
                    return False
                self._invalid += 1
            logger.warning("Skipping message %s: %s", record.message_id, e)
            return False

        with self._lock:
            if self._closed:
                return False
            self._counts[key] = self._counts.get(key, 0) + 1
        return True

    def close(self) -> None:
        """Reject all further records."""
        with self._lock:
            self._closed = True

    def snapshot(self) -> DateHistogram:
        with self._lock:
            return dict(self._counts)

    @property
    def total(self) -> int:
        with self._lock:
            return sum(self._counts.values())

    @property
    def invalid_count(self) -> int:
        with self._lock:
            return self._invalid
