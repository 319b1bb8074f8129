"""Gmail API response parser: header extraction and history/profile decoding."""

from __future__ import annotations

import logging
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any

from gmail_mirror.core.exceptions import ParseError
from gmail_mirror.core.models import (
    EmailHeader,
    HistoryCheck,
    Label,
    ListEntry,
    ListPage,
    Message,
    Profile,
    Thread,
)

logger = logging.getLogger(__name__)

_WANTED_HEADERS = ("subject", "from", "to", "date", "cc", "message-id")


class GmailParser:
    """Parses raw Gmail API dicts into domain objects."""

    def parse_message(self, raw_message: dict[str, Any]) -> Message:
        """Parse a raw Gmail API message dict into a Message.

        A message without a payload (as returned by messages.list) is a stub.

        Args:
            raw_message: Message dict from Gmail API.

        Returns:
            Parsed Message.

        Raises:
            ParseError: If the message structure is invalid.
        """
        try:
            payload = raw_message.get("payload")
            return Message(
                message_id=raw_message["id"],
                thread_id=raw_message.get("threadId", ""),
                label_ids=tuple(raw_message.get("labelIds", [])),
                history_id=self._parse_history_id(raw_message.get("historyId")),
                snippet=raw_message.get("snippet", ""),
                header=self._extract_headers(payload) if payload is not None else None,
            )
        except ParseError:
            raise
        except Exception as e:
            raise ParseError(f"Failed to parse message {raw_message.get('id', '?')}: {e}") from e

    def parse_thread(self, raw_thread: dict[str, Any]) -> Thread:
        """Parse a raw Gmail API thread dict, including any contained messages."""
        try:
            return Thread(
                thread_id=raw_thread["id"],
                history_id=self._parse_history_id(raw_thread.get("historyId")),
                snippet=raw_thread.get("snippet", ""),
                messages=tuple(self.parse_message(m) for m in raw_thread.get("messages", [])),
            )
        except ParseError:
            raise
        except Exception as e:
            raise ParseError(f"Failed to parse thread {raw_thread.get('id', '?')}: {e}") from e

    def parse_list_page(self, response: dict[str, Any], *, threads: bool = False) -> ListPage:
        """Parse a messages.list or threads.list response into stub entries."""
        if threads:
            entries = tuple(
                ListEntry.of_thread(self.parse_thread(t)) for t in response.get("threads", [])
            )
        else:
            entries = tuple(
                ListEntry.of_message(self.parse_message(m)) for m in response.get("messages", [])
            )
        return ListPage(
            entries=entries,
            result_size_estimate=int(response.get("resultSizeEstimate", 0)),
            next_page_token=response.get("nextPageToken", "") or "",
        )

    def parse_profile(self, response: dict[str, Any]) -> Profile:
        try:
            return Profile(
                email_address=response["emailAddress"],
                messages_total=int(response.get("messagesTotal", 0)),
                threads_total=int(response.get("threadsTotal", 0)),
                history_id=self._parse_history_id(response.get("historyId")),
            )
        except Exception as e:
            raise ParseError(f"Failed to parse profile: {e}") from e

    def parse_history(self, response: dict[str, Any], since: int) -> HistoryCheck:
        """Parse a history.list response.

        No history records means nothing changed since ``since``; the
        checkpoint then stays at the server's reported value (or ``since``).
        """
        records = response.get("history", [])
        latest = self._parse_history_id(response.get("historyId")) or since
        changed_ids: dict[str, None] = {}
        for record in records:
            for msg in record.get("messages", []):
                if "id" in msg:
                    changed_ids.setdefault(msg["id"], None)
        return HistoryCheck(
            changed=bool(records),
            latest_history_id=latest,
            changed_ids=tuple(changed_ids),
        )

    @staticmethod
    def parse_labels(response: dict[str, Any]) -> list[Label]:
        return [Label(label_id=lbl["id"], name=lbl["name"]) for lbl in response.get("labels", [])]

    def _extract_headers(self, payload: dict[str, Any]) -> EmailHeader:
        """Extract standard email headers from the payload."""
        headers: dict[str, str] = {}
        for h in payload.get("headers", []):
            name = h.get("name", "").lower()
            if name in _WANTED_HEADERS and name not in headers:
                headers[name] = h.get("value", "")

        return EmailHeader(
            subject=headers.get("subject") or "(no subject)",
            sender=headers.get("from", ""),
            to=headers.get("to", ""),
            date=self._parse_date(headers.get("date", "")),
            cc=headers.get("cc", ""),
            message_id_header=headers.get("message-id", ""),
        )

    @staticmethod
    def _parse_history_id(value: Any) -> int:
        # The API sends history IDs as decimal strings.
        if value in (None, ""):
            return 0
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ParseError(f"Invalid history ID {value!r}") from e

    @staticmethod
    def _parse_date(date_str: str) -> datetime:
        """Parse an RFC 2822 date string into a datetime.

        Args:
            date_str: Email date header value.

        Returns:
            Parsed datetime, or epoch datetime if parsing fails.
        """
        if not date_str:
            return datetime(1970, 1, 1)
        try:
            return parsedate_to_datetime(date_str)
        except Exception:
            logger.warning("Failed to parse date: %s", date_str)
            return datetime(1970, 1, 1)
