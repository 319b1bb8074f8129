"""Events consumed by the mailbox reducer's single event loop."""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass
from typing import Union

from gmail_mirror.core.models import ListEntry, MailboxFilter
from gmail_mirror.state.mailbox import MailboxState
from gmail_mirror.sync.engine import SyncResult
from gmail_mirror.sync.mutations import BatchOutcome


class Command(enum.Enum):
    """User commands coming from the input layer."""

    NAVIGATE_UP = "navigate-up"
    NAVIGATE_DOWN = "navigate-down"
    MARK = "mark"
    OPEN = "open"
    CLOSE = "close"
    SEARCH = "search"
    GOTO_LABEL = "goto-label"
    COMPOSE = "compose"
    ARCHIVE = "archive"
    DELETE = "delete"
    LABEL = "label"
    UNLABEL = "unlabel"
    RELOAD = "reload"
    TOGGLE_DETAILS = "toggle-details"
    QUIT = "quit"


@dataclass(frozen=True)
class CommandEvent:
    """A user command; ``argument`` carries a label name or search query."""

    command: Command
    argument: str = ""


@dataclass(frozen=True)
class RefreshTick:
    """Periodic refresh request from the scheduler."""


@dataclass(frozen=True)
class ListingArrived:
    generation: int
    result: SyncResult


@dataclass(frozen=True)
class ListingUnchanged:
    generation: int
    checkpoint: int


@dataclass(frozen=True)
class ListingFailed:
    generation: int
    error: Exception


@dataclass(frozen=True)
class ItemHydrated:
    generation: int
    entry: ListEntry


@dataclass(frozen=True)
class BatchCompleted:
    """A batch mutation finished; ``filter`` is the view it was issued from."""

    outcome: BatchOutcome
    filter: MailboxFilter
    remove_from_view: bool


@dataclass(frozen=True)
class DeferredAction:
    """State update computed by background work, applied on the owner thread."""

    apply: Callable[[MailboxState], MailboxState]
    description: str = ""


Event = Union[
    CommandEvent,
    RefreshTick,
    ListingArrived,
    ListingUnchanged,
    ListingFailed,
    ItemHydrated,
    BatchCompleted,
    DeferredAction,
]
