"""Gmail Mirror - Concurrent mailbox sync engine for a terminal Gmail client."""

from gmail_mirror.core.models import (
    Label,
    ListEntry,
    MailboxFilter,
    Message,
    Thread,
    ViewMode,
)
from gmail_mirror.session import MailboxSession
from gmail_mirror.state.events import Command, CommandEvent
from gmail_mirror.state.mailbox import MailboxState
from gmail_mirror.state.reducer import MailboxReducer
from gmail_mirror.sync.engine import NoChange, SyncEngine, SyncResult

__all__ = [
    "Command",
    "CommandEvent",
    "Label",
    "ListEntry",
    "MailboxFilter",
    "MailboxReducer",
    "MailboxSession",
    "MailboxState",
    "Message",
    "NoChange",
    "SyncEngine",
    "SyncResult",
    "Thread",
    "ViewMode",
]
