"""Single-owner event loop that merges sync results and user commands into one view."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import replace

from gmail_mirror.core.exceptions import GmailMirrorError
from gmail_mirror.core.gmail_client import GmailClient
from gmail_mirror.core.models import INBOX, TRASH, MailboxFilter, ViewMode
from gmail_mirror.state import mailbox
from gmail_mirror.state.events import (
    BatchCompleted,
    Command,
    CommandEvent,
    DeferredAction,
    Event,
    ItemHydrated,
    ListingArrived,
    ListingFailed,
    ListingUnchanged,
    RefreshTick,
)
from gmail_mirror.state.mailbox import MailboxState
from gmail_mirror.sync.engine import NoChange, SyncEngine
from gmail_mirror.sync.mutations import run_batch

logger = logging.getLogger(__name__)

Spawn = Callable[[Callable[[], None]], None]


def _spawn_thread(target: Callable[[], None]) -> None:
    threading.Thread(target=target, daemon=True).start()


class MailboxReducer:
    """Owns the MailboxState and is the only code that replaces it.

    Background work (listings, hydration, batch mutations, cache refreshes)
    runs through ``spawn`` and reports back exclusively by calling ``post``,
    which is the one method safe to call from any thread. Everything else
    must run on the thread that drives ``run()`` / ``dispatch()``.

    Usage:
        >>> reducer = MailboxReducer(engine, client, page_size=100)
        >>> reducer.run(on_render=draw)

    Args:
        engine: Sync engine used for every listing.
        client: Gmail client used for mutations and label refreshes.
        page_size: Number of entries listed per sync.
        initial_filter: Filter shown at startup (INBOX by default).
        spawn: Runs a callable in the background (a daemon thread by default).
        on_status: Receives every human-readable status message.
        composer: Runs the external compose flow; None disables COMPOSE.
        contacts_source: Returns contact addresses; refreshed with the labels.
        batch_workers: Concurrency cap for batch mutations.
    """

    def __init__(
        self,
        engine: SyncEngine,
        client: GmailClient,
        *,
        page_size: int = 100,
        initial_filter: MailboxFilter | None = None,
        spawn: Spawn = _spawn_thread,
        on_status: Callable[[str], None] | None = None,
        composer: Callable[[], None] | None = None,
        contacts_source: Callable[[], list[str]] | None = None,
        batch_workers: int | None = None,
    ) -> None:
        self._engine = engine
        self._client = client
        self._page_size = page_size
        self._spawn = spawn
        self._on_status = on_status
        self._composer = composer
        self._contacts_source = contacts_source
        self._batch_workers = batch_workers
        self._events: queue.Queue[Event] = queue.Queue()
        self._state = MailboxState(
            filter=initial_filter or MailboxFilter.label(INBOX),
            view_mode=engine.view_mode,
        )
        self._quit = False

    @property
    def snapshot(self) -> MailboxState:
        return self._state

    @property
    def quit_requested(self) -> bool:
        return self._quit

    def post(self, event: Event) -> None:
        """Queue an event for the owner thread. Safe from any thread."""
        self._events.put(event)

    # -------------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Kick off the first sync and cache refresh."""
        self._start_sync()

    def run(self, on_render: Callable[[MailboxState], None] | None = None) -> None:
        """Start syncing and process events until QUIT, rendering after each one."""
        self.start()
        if on_render:
            on_render(self._state)
        while not self._quit:
            self.dispatch(self._events.get())
            if on_render:
                on_render(self._state)
        logger.info("Mailbox loop exiting")

    def process_pending(self) -> int:
        """Dispatch every queued event without blocking. Returns the count."""
        count = 0
        while not self._quit:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break
            self.dispatch(event)
            count += 1
        return count

    def dispatch(self, event: Event) -> None:
        if isinstance(event, CommandEvent):
            self._handle_command(event)
        elif isinstance(event, RefreshTick):
            if self._state.syncing:
                logger.debug("Skipping timed refresh, a sync is already running")
            else:
                self._start_sync()
        elif isinstance(event, ListingArrived):
            self._on_listing(event)
        elif isinstance(event, ListingUnchanged):
            if event.generation == self._state.generation:
                self._state = replace(self._state, syncing=False)
        elif isinstance(event, ListingFailed):
            self._on_listing_failed(event)
        elif isinstance(event, ItemHydrated):
            self._on_hydrated(event)
        elif isinstance(event, BatchCompleted):
            self._on_batch_completed(event)
        elif isinstance(event, DeferredAction):
            logger.debug("Applying deferred action %s", event.description)
            self._state = event.apply(self._state)
        else:
            raise TypeError(f"Unknown event {event!r}")

    def _set_status(self, text: str) -> None:
        logger.info("Status: %s", text)
        self._state = replace(self._state, status=text)
        if self._on_status:
            self._on_status(text)

    # -------------------------------------------------------------------------
    # Sync cycle
    # -------------------------------------------------------------------------

    def _start_sync(self) -> None:
        generation = self._state.generation + 1
        self._state = replace(self._state, generation=generation, syncing=True)
        mailbox_filter = self._state.filter
        checkpoint = self._state.history_checkpoint
        page_size = self._page_size
        engine = self._engine
        post = self.post

        def _load() -> None:
            try:
                outcome = engine.sync(mailbox_filter, page_size, checkpoint)
            except Exception as e:
                if not isinstance(e, GmailMirrorError):
                    logger.exception("Unexpected error while listing %s", mailbox_filter.describe())
                post(ListingFailed(generation, e))
                return
            if isinstance(outcome, NoChange):
                post(ListingUnchanged(generation, outcome.checkpoint))
                return
            post(ListingArrived(generation, outcome))
            for entry in outcome.iter_updates():
                post(ItemHydrated(generation, entry))
            if outcome.updates.abandoned:
                logger.warning(
                    "Gave up hydrating %d entries: %s",
                    len(outcome.updates.abandoned), ", ".join(outcome.updates.abandoned),
                )

        self._spawn(_load)
        self._refresh_caches()

    def _on_listing(self, event: ListingArrived) -> None:
        if event.generation != self._state.generation:
            logger.info(
                "Dropping listing from sync %d, current is %d",
                event.generation, self._state.generation,
            )
            return
        result = event.result
        state = mailbox.merge_listing(self._state, result.stubs)
        if result.server_checkpoint:
            state = replace(
                state,
                history_checkpoint=result.server_checkpoint,
                checkpoint_from_server=True,
            )
        else:
            state = replace(state, checkpoint_from_server=False)
        self._state = replace(state, syncing=False)
        self._set_status(result.status)

    def _on_listing_failed(self, event: ListingFailed) -> None:
        if event.generation != self._state.generation:
            logger.info("Ignoring failure of stale sync %d: %s", event.generation, event.error)
            return
        self._state = replace(self._state, syncing=False)
        self._set_status(f"Sync failed: {event.error}")

    def _on_hydrated(self, event: ItemHydrated) -> None:
        state = mailbox.apply_hydration(self._state, event.entry)
        listed = state is not self._state
        if not listed:
            logger.debug("Hydrated %s is no longer listed", event.entry.entry_id)
        # Entries removed from view mid-sync still count toward the checkpoint.
        if listed or event.generation == self._state.generation:
            self._state = mailbox.tighten_checkpoint(state, event.entry.history_id)

    def _refresh_caches(self) -> None:
        client = self._client
        contacts_source = self._contacts_source
        post = self.post

        def _labels() -> None:
            try:
                labels = client.list_labels()
            except GmailMirrorError as e:
                logger.warning("Failed to refresh labels: %s", e)
                status = f"Listing labels: {e}"
                post(DeferredAction(lambda s: replace(s, status=status), "label refresh failed"))
                return
            post(DeferredAction(lambda s: mailbox.replace_labels(s, labels), "labels refreshed"))

        self._spawn(_labels)

        if contacts_source is not None:

            def _contacts() -> None:
                try:
                    contacts = tuple(contacts_source())
                except GmailMirrorError as e:
                    logger.warning("Failed to refresh contacts: %s", e)
                    return
                post(DeferredAction(lambda s: replace(s, contacts=contacts), "contacts refreshed"))

            self._spawn(_contacts)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def _handle_command(self, event: CommandEvent) -> None:
        command = event.command
        state = self._state
        if command is Command.QUIT:
            self._quit = True
        elif command is Command.NAVIGATE_UP:
            self._state = mailbox.move_selection(state, -1)
        elif command is Command.NAVIGATE_DOWN:
            self._state = mailbox.move_selection(state, 1)
        elif command is Command.MARK:
            self._state = mailbox.toggle_mark(state)
        elif command is Command.TOGGLE_DETAILS:
            self._state = replace(state, show_details=not state.show_details)
        elif command is Command.OPEN:
            if state.current is not None:
                self._state = replace(state, opened_id=state.current.entry_id)
        elif command is Command.CLOSE:
            self._state = replace(state, opened_id=None)
        elif command is Command.RELOAD:
            self._start_sync()
        elif command is Command.SEARCH:
            if not event.argument:
                self._set_status("Empty search")
                return
            self._change_filter(MailboxFilter.search(event.argument))
        elif command is Command.GOTO_LABEL:
            label_id = state.labels.resolve(event.argument)
            if label_id is None:
                self._set_status(f"Unknown label {event.argument!r}")
                return
            logger.info("Going to label %r (%r)", event.argument, label_id)
            self._change_filter(MailboxFilter.label(label_id))
        elif command is Command.COMPOSE:
            self._compose()
        elif command in (Command.ARCHIVE, Command.DELETE, Command.LABEL, Command.UNLABEL):
            self._mutate_marked(event)
        else:
            self._set_status(f"Unknown command {command.value}")

    def _change_filter(self, mailbox_filter: MailboxFilter) -> None:
        self._state = mailbox.change_filter(self._state, mailbox_filter)
        self._start_sync()

    def _compose(self) -> None:
        composer = self._composer
        if composer is None:
            self._set_status("Compose not available")
            return
        post = self.post

        def _run() -> None:
            try:
                composer()
            except Exception as e:
                logger.error("Compose failed: %s", e)
                status = f"Compose failed: {e}"
                post(DeferredAction(lambda s: replace(s, status=status), "compose"))
                return
            post(DeferredAction(lambda s: replace(s, status="Sent email"), "compose"))
            # The sent message may belong in the current view.
            post(CommandEvent(Command.RELOAD))

        self._spawn(_run)

    def removable_labels(self) -> list[str]:
        """Names of labels carried by at least one marked entry, for UNLABEL."""
        state = self._state
        present = {label_id for entry in mailbox.marked_entries(state) for label_id in entry.label_ids}
        names = [state.labels.name_of(label_id) for label_id in present]
        return state.labels.sorted_names(names)

    def _mutate_marked(self, event: CommandEvent) -> None:
        state = self._state
        entries = mailbox.marked_entries(state)
        if not entries:
            self._set_status("No messages marked")
            return

        threads = state.view_mode is ViewMode.THREADS
        client = self._client
        current_label = state.filter.label_id
        command = event.command

        if command is Command.ARCHIVE:
            verb = "archive"
            remove = current_label == INBOX

            def apply(entry_id: str) -> None:
                client.modify_labels(entry_id, remove=[INBOX], threads=threads)

        elif command is Command.DELETE:
            verb = "trash"
            remove = current_label != TRASH

            def apply(entry_id: str) -> None:
                client.trash(entry_id, threads=threads)

        else:
            label_id = state.labels.resolve(event.argument)
            if label_id is None:
                self._set_status(f"Unknown label {event.argument!r}")
                return
            if command is Command.LABEL:
                verb = "label"
                remove = False

                def apply(entry_id: str) -> None:
                    client.modify_labels(entry_id, add=[label_id], threads=threads)

            else:
                verb = "unlabel"
                remove = current_label == label_id

                def apply(entry_id: str) -> None:
                    client.modify_labels(entry_id, remove=[label_id], threads=threads)

        ids = [entry.entry_id for entry in entries]
        mailbox_filter = state.filter
        workers = self._batch_workers
        post = self.post

        def _run() -> None:
            outcome = run_batch(verb, ids, apply, max_workers=workers)
            post(BatchCompleted(outcome, mailbox_filter, remove))

        self._set_status(f"Applying {verb} to {len(ids)} messages")
        self._spawn(_run)

    def _on_batch_completed(self, event: BatchCompleted) -> None:
        outcome = event.outcome
        remove = event.remove_from_view and event.filter == self._state.filter
        self._state = mailbox.apply_batch_outcome(self._state, outcome, remove_from_view=remove)
        error = outcome.error
        if error is not None:
            self._set_status(str(error))
        else:
            self._set_status(f"Applied {outcome.operation} to {len(outcome.succeeded)} messages")
        # Reconcile with the server whatever the per-entry outcome was.
        self._start_sync()
