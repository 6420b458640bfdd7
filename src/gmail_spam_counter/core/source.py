"""Contract for the remote message source consumed by the pipeline."""

from __future__ import annotations

from typing import Protocol

from gmail_spam_counter.core.models import MessagePage, MessageQuery, MessageRecord


class MessageSource(Protocol):
    """List message ids page by page and fetch one message's minimal metadata.

    Both methods raise ``TransientRemoteError`` (retryable) or
    ``FatalRemoteError`` and must be safe to call from several threads.
    """

    def list_page(self, query: MessageQuery, page_token: str | None = None) -> MessagePage:
        """Return one page of ids matching ``query`` starting at ``page_token``."""
        ...

    def get_minimal(self, message_id: str) -> MessageRecord:
        """Return the id and internalDate of a single message."""
        ...
