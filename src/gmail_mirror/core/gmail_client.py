"""Gmail API client for listing, hydrating and mutating mailbox entries."""

from __future__ import annotations

import logging
import time
from typing import Any

from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError

from gmail_mirror.core.exceptions import GmailMirrorError, RateLimitError
from gmail_mirror.core.models import (
    HistoryCheck,
    Label,
    ListPage,
    MailboxFilter,
    Message,
    Profile,
    Thread,
)
from gmail_mirror.core.parser import GmailParser

logger = logging.getLogger(__name__)


def _is_rate_limit_error(exc: Exception) -> bool:
    """Check whether an exception represents a Gmail API 429 rate limit."""
    if isinstance(exc, HttpError) and exc.status_code == 429:
        return True
    error_str = str(exc)
    return "429" in error_str or "rateLimitExceeded" in error_str


class GmailClient:
    """Thin wrapper around the Gmail API for the calls the sync engine needs.

    Calls are not retried here. Hydration retries live in the fetcher pool;
    listing and profile failures surface to the caller as sync failures.
    """

    def __init__(
        self,
        service: Resource,
        user_id: str = "me",
        *,
        num_retries: int = 0,
        parser: GmailParser | None = None,
    ) -> None:
        self._service = service
        self._user_id = user_id
        self._num_retries = num_retries
        self._parser = parser or GmailParser()

    def _execute(self, request: Any, context: str) -> Any:
        """Execute a single API request, classifying failures.

        Args:
            request: A googleapiclient HttpRequest object.
            context: Description for log and error messages (e.g. "list labels").

        Returns:
            The API response dict.

        Raises:
            RateLimitError: On 429 errors.
            GmailMirrorError: On any other API error.
        """
        st = time.monotonic()
        try:
            response = request.execute(num_retries=self._num_retries)
        except Exception as e:
            if _is_rate_limit_error(e):
                raise RateLimitError(f"Rate limited during {context}: {e}") from e
            raise GmailMirrorError(f"Failed to {context}: {e}") from e
        logger.debug("API call %s: %.3fs", context, time.monotonic() - st)
        return response

    def _users(self) -> Any:
        return self._service.users()

    def list_labels(self) -> list[Label]:
        """List all Gmail labels."""
        request = self._users().labels().list(userId=self._user_id)
        return self._parser.parse_labels(self._execute(request, "list labels"))

    def list_entries(
        self,
        mailbox_filter: MailboxFilter,
        page_size: int,
        page_token: str = "",
        *,
        threads: bool = False,
    ) -> ListPage:
        """List one page of stub messages (or threads) matching a filter.

        Args:
            mailbox_filter: Label or search query to list.
            page_size: Maximum number of entries to return.
            page_token: Continuation token from a previous page.
            threads: List threads instead of messages.

        Returns:
            ListPage of stub entries in server order.
        """
        kwargs: dict[str, Any] = {
            "userId": self._user_id,
            "maxResults": page_size,
        }
        if page_token:
            kwargs["pageToken"] = page_token
        if mailbox_filter.label_id:
            kwargs["labelIds"] = [mailbox_filter.label_id]
        if mailbox_filter.query:
            kwargs["q"] = mailbox_filter.query

        collection = self._users().threads() if threads else self._users().messages()
        context = "list threads" if threads else "list messages"
        response = self._execute(collection.list(**kwargs), context)
        page = self._parser.parse_list_page(response, threads=threads)
        logger.debug("Listed %d entries for %s", len(page.entries), mailbox_filter.describe())
        return page

    def get_message(self, message_id: str) -> Message:
        request = self._users().messages().get(userId=self._user_id, id=message_id, format="full")
        return self._parser.parse_message(self._execute(request, f"get message {message_id}"))

    def get_thread(self, thread_id: str) -> Thread:
        request = self._users().threads().get(userId=self._user_id, id=thread_id, format="full")
        return self._parser.parse_thread(self._execute(request, f"get thread {thread_id}"))

    def get_profile(self) -> Profile:
        request = self._users().getProfile(userId=self._user_id)
        return self._parser.parse_profile(self._execute(request, "get profile"))

    def check_history_since(self, history_id: int) -> HistoryCheck:
        """Ask whether anything changed since a history checkpoint.

        Only one history record is requested; its presence is all that matters.
        """
        request = self._users().history().list(
            userId=self._user_id,
            startHistoryId=str(history_id),
            maxResults=1,
        )
        response = self._execute(request, "check history")
        return self._parser.parse_history(response, history_id)

    def modify_labels(
        self,
        entry_id: str,
        add: list[str] | None = None,
        remove: list[str] | None = None,
        *,
        threads: bool = False,
    ) -> None:
        body = {"addLabelIds": list(add or []), "removeLabelIds": list(remove or [])}
        collection = self._users().threads() if threads else self._users().messages()
        request = collection.modify(userId=self._user_id, id=entry_id, body=body)
        self._execute(request, f"modify labels of {entry_id}")

    def trash(self, entry_id: str, *, threads: bool = False) -> None:
        collection = self._users().threads() if threads else self._users().messages()
        self._execute(collection.trash(userId=self._user_id, id=entry_id), f"trash {entry_id}")
