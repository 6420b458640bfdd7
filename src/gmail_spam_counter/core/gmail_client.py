"""Gmail API client: list message ids by label and fetch minimal metadata."""

from __future__ import annotations

import logging
import threading
from typing import Any

import google_auth_httplib2
import httplib2
from google.auth.credentials import Credentials
from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError

from gmail_spam_counter.core.exceptions import FatalRemoteError, TransientRemoteError
from gmail_spam_counter.core.models import MessagePage, MessageQuery, MessageRecord

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def _is_transient_error(exc: Exception) -> bool:
    """Check whether a failed request is worth retrying."""
    if isinstance(exc, HttpError):
        if exc.status_code in TRANSIENT_STATUS_CODES:
            return True
        # Gmail reports per-user quota exhaustion as 403 rateLimitExceeded.
        return exc.status_code == 403 and any(
            reason in str(exc) for reason in ("rateLimitExceeded", "userRateLimitExceeded")
        )
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return True
    error_str = str(exc)
    return "429" in error_str or "rateLimitExceeded" in error_str


def _parse_internal_date(message_id: str, raw: Any) -> int:
    """Parse Gmail's internalDate (epoch ms as a string). Bad values become 0."""
    if raw is None:
        logger.debug("Message %s has no internalDate", message_id)
        return 0
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning("Could not parse internalDate %r for message %s", raw, message_id)
        return 0


class GmailClient:
    """Thin wrapper around the Gmail API implementing ``MessageSource``.

    ``httplib2.Http`` is not thread-safe. When ``credentials`` are given,
    every thread executes its requests over its own authorized ``Http``
    object so ``get_minimal`` can be called from the worker pool.
    """

    def __init__(
        self,
        service: Resource,
        user_id: str = "me",
        *,
        credentials: Credentials | None = None,
        num_retries: int = 0,
    ) -> None:
        self._service = service
        self._user_id = user_id
        self._credentials = credentials
        self._num_retries = num_retries
        self._local = threading.local()

    def _http(self) -> google_auth_httplib2.AuthorizedHttp | None:
        if self._credentials is None:
            return None
        http = getattr(self._local, "http", None)
        if http is None:
            http = google_auth_httplib2.AuthorizedHttp(self._credentials, http=httplib2.Http())
            self._local.http = http
        return http

    def _execute(self, request: Any, context: str) -> Any:
        """Execute a single API request, classifying any failure.

        Raises:
            TransientRemoteError: Rate limits, server errors, dropped connections.
            FatalRemoteError: Everything else.
        """
        try:
            return request.execute(http=self._http(), num_retries=self._num_retries)
        except Exception as e:
            if _is_transient_error(e):
                raise TransientRemoteError(f"Transient error during {context}: {e}") from e
            raise FatalRemoteError(f"Failed to {context}: {e}") from e

    def list_page(self, query: MessageQuery, page_token: str | None = None) -> MessagePage:
        """Fetch one page of message ids for a label and search query."""
        kwargs: dict[str, Any] = {
            "userId": self._user_id,
            "labelIds": [query.label_id],
            "maxResults": query.page_size,
        }
        if query.query:
            kwargs["q"] = query.query
        if page_token:
            kwargs["pageToken"] = page_token

        request = self._service.users().messages().list(**kwargs)
        response = self._execute(request, "list messages")

        ids = tuple(msg["id"] for msg in response.get("messages", []))
        logger.debug("Listed %d message IDs (page)", len(ids))
        return MessagePage(message_ids=ids, next_page_token=response.get("nextPageToken"))

    def get_minimal(self, message_id: str) -> MessageRecord:
        """Fetch a message in ``minimal`` format and read its internalDate."""
        request = (
            self._service.users()
            .messages()
            .get(userId=self._user_id, id=message_id, format="minimal")
        )
        response = self._execute(request, f"get message {message_id}")
        return MessageRecord(
            message_id=response.get("id", message_id),
            internal_date_ms=_parse_internal_date(message_id, response.get("internalDate")),
        )

    def get_profile_email(self) -> str:
        """Return the authenticated account's address."""
        request = self._service.users().getProfile(userId=self._user_id)
        profile = self._execute(request, "get profile")
        return profile.get("emailAddress", "")
