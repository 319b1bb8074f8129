"""Listing sync: history short-circuit, parallel list+profile, background hydration."""

from __future__ import annotations

import functools
import logging
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from gmail_mirror.core.exceptions import GmailMirrorError, SyncError
from gmail_mirror.core.gmail_client import GmailClient
from gmail_mirror.core.models import ListEntry, ListPage, MailboxFilter, Profile, ViewMode
from gmail_mirror.sync.backoff import BackoffPolicy
from gmail_mirror.sync.fetcher import DetailFetcherPool, HydrationStream
from gmail_mirror.sync.parallel import Completions, ParallelTasks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoChange:
    """Nothing changed since the checkpoint; the caller keeps its current view."""

    checkpoint: int


class SyncResult:
    """Outcome of a full listing.

    ``stubs`` are available immediately; hydrated entries stream in through
    ``iter_updates()``. ``checkpoint`` is the server-reported history ID when
    the history check supplied one, otherwise the oldest history ID observed
    among the entries consumed so far (0 until one arrives).
    """

    def __init__(
        self,
        stubs: list[ListEntry],
        updates: HydrationStream[ListEntry],
        profile: Profile,
        result_size_estimate: int,
        server_checkpoint: int = 0,
        next_page_token: str = "",
    ) -> None:
        self.stubs = stubs
        self.updates = updates
        self.profile = profile
        self.result_size_estimate = result_size_estimate
        self.server_checkpoint = server_checkpoint
        self.next_page_token = next_page_token
        self._lock = threading.Lock()
        self._observed = 0

    @property
    def checkpoint(self) -> int:
        if self.server_checkpoint:
            return self.server_checkpoint
        with self._lock:
            return self._observed

    def observe(self, entry: ListEntry) -> None:
        """Tighten the observed checkpoint with a hydrated entry's history ID."""
        history_id = entry.history_id
        if not history_id:
            return
        with self._lock:
            if self._observed == 0 or history_id < self._observed:
                self._observed = history_id

    def iter_updates(self) -> Iterator[ListEntry]:
        for entry in self.updates:
            self.observe(entry)
            yield entry

    @property
    def status(self) -> str:
        return (
            f"{self.profile.email_address}: Showing {len(self.stubs)}/{self.result_size_estimate}. "
            f"Total: {self.profile.messages_total} emails, {self.profile.threads_total} threads"
        )


class SyncEngine:
    """Lists the current page of a label or search and hydrates it in the background.

    Args:
        client: Gmail API client.
        backoff: Retry policy for per-entry hydration.
        view_mode: List messages or threads.
        enable_history: Use the history API to skip unchanged listings.
        sleep: Sleep function passed to the fetcher pool.
        max_fetch_workers: Hydration concurrency cap (None = one task per entry).
    """

    def __init__(
        self,
        client: GmailClient,
        backoff: BackoffPolicy,
        *,
        view_mode: ViewMode = ViewMode.MESSAGES,
        enable_history: bool = True,
        sleep: Callable[[float], None] = time.sleep,
        max_fetch_workers: int | None = None,
    ) -> None:
        self._client = client
        self._view_mode = view_mode
        self._enable_history = enable_history
        self._pool: DetailFetcherPool[ListEntry] = DetailFetcherPool(
            self._fetch_entry, backoff, sleep=sleep, max_workers=max_fetch_workers
        )

    @property
    def view_mode(self) -> ViewMode:
        return self._view_mode

    def _fetch_entry(self, entry_id: str) -> ListEntry:
        if self._view_mode is ViewMode.THREADS:
            return ListEntry.of_thread(self._client.get_thread(entry_id))
        return ListEntry.of_message(self._client.get_message(entry_id))

    def sync(
        self,
        mailbox_filter: MailboxFilter,
        page_size: int,
        history_checkpoint: int,
        page_token: str = "",
    ) -> NoChange | SyncResult:
        """Run one sync cycle.

        Args:
            mailbox_filter: Label or search to list.
            page_size: Maximum number of entries to list.
            history_checkpoint: Last synchronized history ID, 0 if unknown.
            page_token: Continuation token for later pages.

        Returns:
            NoChange if the history check says nothing changed, else a SyncResult.

        Raises:
            SyncError: If listing or the profile fetch failed.
        """
        logger.info(
            "Listing %s (%s), history ID %d",
            mailbox_filter.describe(), self._view_mode.value, history_checkpoint,
        )

        server_checkpoint = 0
        if self._enable_history and history_checkpoint:
            try:
                check = self._client.check_history_since(history_checkpoint)
            except GmailMirrorError as e:
                logger.warning("Failed to check history: %s", e)
            else:
                if not check.changed:
                    logger.info("Nothing new since history ID %d", history_checkpoint)
                    return NoChange(check.latest_history_id)
                server_checkpoint = check.latest_history_id
                logger.info("New history ID: %d", server_checkpoint)

        errors: list[Exception] = []
        page: ListPage | None = None
        profile: Profile | None = None
        threads = self._view_mode is ViewMode.THREADS

        def _list(done: Completions) -> None:
            try:
                result = self._client.list_entries(
                    mailbox_filter, page_size, page_token, threads=threads
                )
            except GmailMirrorError as e:
                done.put(functools.partial(errors.append, e))
                return

            def _store() -> None:
                nonlocal page
                page = result

            done.put(_store)

        def _profile(done: Completions) -> None:
            try:
                result = self._client.get_profile()
            except GmailMirrorError as e:
                done.put(functools.partial(errors.append, e))
                return

            def _store() -> None:
                nonlocal profile
                profile = result

            done.put(_store)

        tasks = ParallelTasks()
        tasks.add(_list)
        tasks.add(_profile)
        tasks.run()

        if errors or page is None or profile is None:
            raise SyncError(errors)

        stubs = list(page.entries)
        updates = self._pool.start(page.ids)
        result = SyncResult(
            stubs=stubs,
            updates=updates,
            profile=profile,
            result_size_estimate=page.result_size_estimate,
            server_checkpoint=server_checkpoint,
            next_page_token=page.next_page_token,
        )
        logger.info("%s", result.status)
        return result
