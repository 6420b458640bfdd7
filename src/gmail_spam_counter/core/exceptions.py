"""Custom exceptions for the Gmail Spam Counter."""

from __future__ import annotations


class SpamCounterError(Exception):
    """Base exception for all Gmail Spam Counter errors."""


class AuthenticationError(SpamCounterError):
    """Failed to authenticate with Gmail API."""


class RemoteError(SpamCounterError):
    """A call to the remote message source failed."""


class TransientRemoteError(RemoteError):
    """Retryable remote failure (rate limit, 5xx, dropped connection)."""


class FatalRemoteError(RemoteError):
    """Non-retryable remote failure (malformed request, permission denied)."""


class RetriesExhaustedError(SpamCounterError):
    """A transient failure persisted through the whole retry budget."""

    def __init__(self, message: str, *, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class PipelineAborted(SpamCounterError):
    """The run was stopped before listing and draining completed."""


class TimeoutExceeded(PipelineAborted):
    """The overall deadline elapsed; partial results were discarded."""


class Cancelled(PipelineAborted):
    """An external stop signal was observed; partial results were discarded."""


class InvalidRecordError(SpamCounterError):
    """A fetched record carries a non-positive internalDate."""
