"""Frozen dataclasses for the Gmail Mirror domain model."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from email.utils import parseaddr

# Well-known system label IDs.
INBOX = "INBOX"
UNREAD = "UNREAD"
STARRED = "STARRED"
SENT = "SENT"
TRASH = "TRASH"

LOADING = "Loading"


class ViewMode(enum.Enum):
    """Whether the mailbox lists individual messages or whole threads."""

    MESSAGES = "messages"
    THREADS = "threads"


@dataclass(frozen=True)
class MailboxFilter:
    """The active label or free-text search. Exactly one of the two is used.

    An empty label with an empty query means "all mail".
    """

    label_id: str = ""
    query: str = ""

    def __post_init__(self) -> None:
        if self.label_id and self.query:
            raise ValueError("A mailbox filter is either a label or a search, not both")

    @classmethod
    def label(cls, label_id: str) -> MailboxFilter:
        return cls(label_id=label_id)

    @classmethod
    def search(cls, query: str) -> MailboxFilter:
        return cls(query=query)

    def describe(self) -> str:
        if self.query:
            return f"search {self.query!r}"
        return f"label {self.label_id or 'ALL'}"


@dataclass(frozen=True)
class EmailHeader:
    """Parsed email headers."""

    subject: str
    sender: str
    to: str
    date: datetime
    cc: str = ""
    message_id_header: str = ""


@dataclass(frozen=True)
class Message:
    """A Gmail message. Without a header it is a stub from the list API."""

    message_id: str
    thread_id: str = ""
    label_ids: tuple[str, ...] = field(default_factory=tuple)
    history_id: int = 0
    snippet: str = ""
    header: EmailHeader | None = None

    @property
    def is_loaded(self) -> bool:
        return self.header is not None


@dataclass(frozen=True)
class Thread:
    """A Gmail thread. A stub thread has no messages yet."""

    thread_id: str
    history_id: int = 0
    snippet: str = ""
    messages: tuple[Message, ...] = field(default_factory=tuple)

    @property
    def is_loaded(self) -> bool:
        return bool(self.messages)


@dataclass(frozen=True)
class ListEntry:
    """One row of the mailbox list: either a message or a thread.

    Display fields are computed the same way for both variants. A thread takes
    its sender and subject from its first message and its time from its last.
    """

    message: Message | None = None
    thread: Thread | None = None

    def __post_init__(self) -> None:
        if (self.message is None) == (self.thread is None):
            raise ValueError("ListEntry holds exactly one of message or thread")

    @classmethod
    def of_message(cls, message: Message) -> ListEntry:
        return cls(message=message)

    @classmethod
    def of_thread(cls, thread: Thread) -> ListEntry:
        return cls(thread=thread)

    @property
    def _thread(self) -> Thread:
        if self.thread is None:
            raise ValueError(f"ListEntry {self.entry_id} is a message, not a thread")
        return self.thread

    @property
    def entry_id(self) -> str:
        if self.message is not None:
            return self.message.message_id
        return self._thread.thread_id

    @property
    def is_loaded(self) -> bool:
        if self.message is not None:
            return self.message.is_loaded
        return self._thread.is_loaded

    @property
    def history_id(self) -> int:
        if self.message is not None:
            return self.message.history_id
        return self._thread.history_id

    @property
    def label_ids(self) -> tuple[str, ...]:
        if self.message is not None:
            return self.message.label_ids
        seen: dict[str, None] = {}
        for msg in self._thread.messages:
            for label_id in msg.label_ids:
                seen.setdefault(label_id, None)
        return tuple(seen)

    def has_label(self, label_id: str) -> bool:
        return label_id in self.label_ids

    @property
    def snippet(self) -> str:
        if self.message is not None:
            return self.message.snippet
        if not self._thread.messages:
            return LOADING
        return self._thread.snippet

    @property
    def subject(self) -> str:
        first = self._first_message()
        if first is None or first.header is None:
            return LOADING
        return first.header.subject

    @property
    def sender(self) -> str:
        """Display name (or address) of the sender; the recipient for sent mail."""
        first = self._first_message()
        if first is None or first.header is None:
            return LOADING
        raw = first.header.to if SENT in first.label_ids else first.header.sender
        name, address = parseaddr(raw)
        return name or address or raw

    def display_time(self, now: datetime | None = None) -> str:
        """Short timestamp: hours for today, month/day this year, else the year."""
        last = self._last_message()
        if last is None or last.header is None:
            return LOADING
        ts = last.header.date
        if ts.tzinfo is not None:
            ts = ts.astimezone()
            now = now or datetime.now().astimezone()
        else:
            now = now or datetime.now()
        if now - ts > timedelta(days=365):
            return ts.strftime("%Y")
        if (now.month, now.day) != (ts.month, ts.day):
            return ts.strftime("%b %d")
        return ts.strftime("%H:%M")

    def _first_message(self) -> Message | None:
        if self.message is not None:
            return self.message
        return self._thread.messages[0] if self._thread.messages else None

    def _last_message(self) -> Message | None:
        if self.message is not None:
            return self.message
        return self._thread.messages[-1] if self._thread.messages else None


@dataclass(frozen=True)
class ListPage:
    """One page of stub entries from the list API."""

    entries: tuple[ListEntry, ...]
    result_size_estimate: int = 0
    next_page_token: str = ""

    @property
    def ids(self) -> list[str]:
        return [entry.entry_id for entry in self.entries]


@dataclass(frozen=True)
class Profile:
    """Account-level summary from users.getProfile."""

    email_address: str
    messages_total: int = 0
    threads_total: int = 0
    history_id: int = 0


@dataclass(frozen=True)
class HistoryCheck:
    """Answer to "did anything change since this history ID?"."""

    changed: bool
    latest_history_id: int
    changed_ids: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Label:
    """A Gmail label."""

    label_id: str
    name: str
