"""Mailbox view state and the pure transitions the reducer applies to it.

Every function here takes a MailboxState and returns a new one; nothing is
mutated in place. Only MailboxReducer calls them.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from gmail_mirror.core.models import INBOX, Label, ListEntry, MailboxFilter, ViewMode
from gmail_mirror.sync.mutations import BatchOutcome


@dataclass(frozen=True)
class LabelCache:
    """Bidirectional label name/ID mapping, rebuilt wholesale on every refresh."""

    version: int = 0
    by_name: dict[str, str] = field(default_factory=dict)
    by_id: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_labels(cls, labels: Iterable[Label], version: int) -> LabelCache:
        by_name: dict[str, str] = {}
        by_id: dict[str, str] = {}
        for label in labels:
            by_name[label.name] = label.label_id
            by_id[label.label_id] = label.name
        return cls(version=version, by_name=by_name, by_id=by_id)

    def resolve(self, name: str) -> str | None:
        """Label ID for a human-chosen name (a known ID is accepted as-is)."""
        if name in self.by_name:
            return self.by_name[name]
        if name in self.by_id:
            return name
        return None

    def name_of(self, label_id: str) -> str:
        return self.by_id.get(label_id, label_id)

    def sorted_names(self, names: Iterable[str] | None = None) -> list[str]:
        """Label names with INBOX first, the rest case-insensitively."""
        pool = self.by_name if names is None else names
        return sorted(pool, key=lambda n: (n != INBOX, n.lower()))


@dataclass(frozen=True)
class MailboxState:
    """Read-only snapshot of the mailbox view.

    Attributes:
        items: Entries in remote listing order.
        selection: Index of the highlighted entry, clamped into ``items``.
        marked: IDs selected for bulk commands; may include entries not in ``items``.
        history_checkpoint: Last synchronized history ID, 0 when unknown.
        checkpoint_from_server: The checkpoint came from the history API, so
            hydrated entries must not lower it.
        filter: Active label or search.
        view_mode: Messages or threads; fixed for the session.
        labels: Label cache.
        contacts: Contact cache (addresses for completion).
        status: Last human-readable status line.
        show_details: Whether the renderer shows the selected entry's snippet.
        opened_id: Entry opened for reading, if any.
        generation: Counter of sync cycles started; stale listings are dropped.
        syncing: A listing is in flight.
    """

    items: tuple[ListEntry, ...] = ()
    selection: int = 0
    marked: frozenset[str] = frozenset()
    history_checkpoint: int = 0
    checkpoint_from_server: bool = False
    filter: MailboxFilter = field(default_factory=lambda: MailboxFilter.label(INBOX))
    view_mode: ViewMode = ViewMode.MESSAGES
    labels: LabelCache = field(default_factory=LabelCache)
    contacts: tuple[str, ...] = ()
    status: str = ""
    show_details: bool = False
    opened_id: str | None = None
    generation: int = 0
    syncing: bool = False

    @property
    def current(self) -> ListEntry | None:
        if not self.items:
            return None
        return self.items[self.selection]

    def find(self, entry_id: str) -> int | None:
        for n, entry in enumerate(self.items):
            if entry.entry_id == entry_id:
                return n
        return None


def clamp_selection(selection: int, count: int) -> int:
    if count == 0:
        return 0
    return max(0, min(selection, count - 1))


def merge_listing(state: MailboxState, entries: Iterable[ListEntry]) -> MailboxState:
    """Replace the items, keeping already-held entries for IDs that reappear."""
    previous = {entry.entry_id: entry for entry in state.items}
    items = tuple(previous.get(entry.entry_id, entry) for entry in entries)
    return replace(state, items=items, selection=clamp_selection(state.selection, len(items)))


def apply_hydration(state: MailboxState, entry: ListEntry) -> MailboxState:
    """Swap in a hydrated entry by ID; unchanged if the ID is no longer listed."""
    index = state.find(entry.entry_id)
    if index is None:
        return state
    items = state.items[:index] + (entry,) + state.items[index + 1 :]
    return replace(state, items=items)


def tighten_checkpoint(state: MailboxState, history_id: int) -> MailboxState:
    """Lower the checkpoint to ``history_id`` (or set it when unknown)."""
    if not history_id or state.checkpoint_from_server:
        return state
    if state.history_checkpoint and state.history_checkpoint <= history_id:
        return state
    return replace(state, history_checkpoint=history_id)


def change_filter(state: MailboxState, mailbox_filter: MailboxFilter) -> MailboxState:
    return replace(
        state,
        filter=mailbox_filter,
        history_checkpoint=0,
        checkpoint_from_server=False,
        marked=frozenset(),
        opened_id=None,
    )


def move_selection(state: MailboxState, delta: int) -> MailboxState:
    return replace(state, selection=clamp_selection(state.selection + delta, len(state.items)))


def toggle_mark(state: MailboxState) -> MailboxState:
    current = state.current
    if current is None:
        return state
    return replace(state, marked=state.marked ^ {current.entry_id})


def marked_entries(state: MailboxState) -> list[ListEntry]:
    """Entries that are both marked and currently listed."""
    return [entry for entry in state.items if entry.entry_id in state.marked]


def apply_batch_outcome(
    state: MailboxState, outcome: BatchOutcome, *, remove_from_view: bool
) -> MailboxState:
    """Unmark successful entries and, if asked, drop them from the list.

    Failed entries keep their mark so the user can retry them.
    """
    succeeded = frozenset(outcome.succeeded)
    items = state.items
    selection = state.selection
    if remove_from_view and succeeded:
        removed_before = sum(
            1 for n, entry in enumerate(items) if entry.entry_id in succeeded and n < selection
        )
        items = tuple(entry for entry in items if entry.entry_id not in succeeded)
        selection = clamp_selection(selection - removed_before, len(items))
    return replace(state, items=items, selection=selection, marked=state.marked - succeeded)


def replace_labels(state: MailboxState, labels: Iterable[Label]) -> MailboxState:
    return replace(state, labels=LabelCache.from_labels(labels, state.labels.version + 1))
