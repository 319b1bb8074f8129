"""Tests for the pure mailbox state transitions."""

from __future__ import annotations

from dataclasses import replace

import pytest

from gmail_mirror.core.exceptions import GmailMirrorError
from gmail_mirror.core.models import Label, MailboxFilter
from gmail_mirror.state import mailbox
from gmail_mirror.state.mailbox import LabelCache, MailboxState
from gmail_mirror.sync.mutations import BatchOutcome
from tests.factories import loaded_entry, stub_entry


def _state(*ids: str, **kwargs) -> MailboxState:
    return MailboxState(items=tuple(stub_entry(i) for i in ids), **kwargs)


class TestMergeListing:
    """Listings replace items but keep entries already held by ID."""

    def test_keeps_hydrated_entry_over_fresh_stub(self) -> None:
        hydrated = loaded_entry("a", history_id=10)
        state = MailboxState(items=(hydrated, stub_entry("b")))

        merged = mailbox.merge_listing(state, [stub_entry("c"), stub_entry("a")])

        assert [e.entry_id for e in merged.items] == ["c", "a"]
        assert merged.items[1] is hydrated

    def test_merging_same_listing_twice_is_idempotent(self) -> None:
        stubs = [stub_entry("a"), stub_entry("b")]
        once = mailbox.merge_listing(MailboxState(), stubs)
        twice = mailbox.merge_listing(once, stubs)
        assert twice == once

    def test_selection_clamped_when_list_shrinks(self) -> None:
        state = _state("a", "b", "c", selection=2)
        merged = mailbox.merge_listing(state, [stub_entry("a")])
        assert merged.selection == 0

    def test_empty_listing(self) -> None:
        merged = mailbox.merge_listing(_state("a", selection=0), [])
        assert merged.items == ()
        assert merged.selection == 0
        assert merged.current is None


class TestApplyHydration:
    def test_replaces_in_place(self) -> None:
        state = _state("a", "b")
        hydrated = loaded_entry("b")
        result = mailbox.apply_hydration(state, hydrated)
        assert result.items == (stub_entry("a"), hydrated)

    def test_absent_id_is_noop(self) -> None:
        state = _state("a")
        assert mailbox.apply_hydration(state, loaded_entry("z")) is state


class TestTightenCheckpoint:
    """Checkpoint only ever moves down, and only when not server-supplied."""

    def test_sets_unknown_checkpoint(self) -> None:
        assert mailbox.tighten_checkpoint(MailboxState(), 500).history_checkpoint == 500

    def test_lowers_checkpoint(self) -> None:
        state = MailboxState(history_checkpoint=500)
        assert mailbox.tighten_checkpoint(state, 300).history_checkpoint == 300

    def test_never_raises_checkpoint(self) -> None:
        state = MailboxState(history_checkpoint=500)
        assert mailbox.tighten_checkpoint(state, 900) is state

    def test_zero_history_id_ignored(self) -> None:
        state = MailboxState(history_checkpoint=500)
        assert mailbox.tighten_checkpoint(state, 0) is state

    def test_server_checkpoint_is_kept(self) -> None:
        state = MailboxState(history_checkpoint=500, checkpoint_from_server=True)
        assert mailbox.tighten_checkpoint(state, 100) is state


class TestChangeFilter:
    def test_resets_checkpoint_and_marks(self) -> None:
        state = _state(
            "a",
            history_checkpoint=500,
            checkpoint_from_server=True,
            marked=frozenset({"a"}),
            opened_id="a",
        )
        changed = mailbox.change_filter(state, MailboxFilter.search("from:bob"))
        assert changed.filter == MailboxFilter.search("from:bob")
        assert changed.history_checkpoint == 0
        assert changed.checkpoint_from_server is False
        assert changed.marked == frozenset()
        assert changed.opened_id is None
        # Items stay until the new listing arrives.
        assert changed.items == state.items


class TestSelectionAndMarks:
    def test_move_selection_clamps(self) -> None:
        state = _state("a", "b")
        assert mailbox.move_selection(state, 1).selection == 1
        assert mailbox.move_selection(state, 5).selection == 1
        assert mailbox.move_selection(state, -3).selection == 0

    def test_move_selection_on_empty_list(self) -> None:
        assert mailbox.move_selection(MailboxState(), 1).selection == 0

    def test_toggle_mark(self) -> None:
        state = _state("a", "b", selection=1)
        marked = mailbox.toggle_mark(state)
        assert marked.marked == frozenset({"b"})
        assert mailbox.toggle_mark(marked).marked == frozenset()

    def test_toggle_mark_on_empty_list(self) -> None:
        state = MailboxState()
        assert mailbox.toggle_mark(state) is state

    def test_marked_entries_only_counts_listed_ids(self) -> None:
        state = _state("a", "b", marked=frozenset({"b", "gone"}))
        assert [e.entry_id for e in mailbox.marked_entries(state)] == ["b"]


class TestApplyBatchOutcome:
    """Successes are unmarked (and optionally removed); failures stay marked."""

    def _outcome(self) -> BatchOutcome:
        return BatchOutcome(
            operation="archive",
            succeeded=("a", "c"),
            failures={"b": GmailMirrorError("Failed to modify labels of b")},
        )

    def test_removes_successes_from_view(self) -> None:
        state = _state("a", "b", "c", "d", marked=frozenset({"a", "b", "c"}), selection=3)
        result = mailbox.apply_batch_outcome(state, self._outcome(), remove_from_view=True)
        assert [e.entry_id for e in result.items] == ["b", "d"]
        assert result.marked == frozenset({"b"})
        # "d" stays selected.
        assert result.current is not None and result.current.entry_id == "d"

    def test_keeps_items_when_not_removing(self) -> None:
        state = _state("a", "b", "c", marked=frozenset({"a", "b", "c"}))
        result = mailbox.apply_batch_outcome(state, self._outcome(), remove_from_view=False)
        assert [e.entry_id for e in result.items] == ["a", "b", "c"]
        assert result.marked == frozenset({"b"})


class TestLabelCache:
    @pytest.fixture
    def cache(self) -> LabelCache:
        return LabelCache.from_labels(
            [
                Label("Label_1", "work"),
                Label("INBOX", "INBOX"),
                Label("Label_2", "Archive"),
            ],
            version=1,
        )

    def test_resolve_by_name_and_id(self, cache: LabelCache) -> None:
        assert cache.resolve("work") == "Label_1"
        assert cache.resolve("Label_2") == "Label_2"
        assert cache.resolve("missing") is None

    def test_name_of_falls_back_to_id(self, cache: LabelCache) -> None:
        assert cache.name_of("Label_1") == "work"
        assert cache.name_of("Label_9") == "Label_9"

    def test_sorted_names_inbox_first(self, cache: LabelCache) -> None:
        assert cache.sorted_names() == ["INBOX", "Archive", "work"]

    def test_replace_labels_bumps_version(self, cache: LabelCache) -> None:
        state = replace(MailboxState(), labels=cache)
        result = mailbox.replace_labels(state, [Label("Label_3", "new")])
        assert result.labels.version == 2
        assert result.labels.by_name == {"new": "Label_3"}
