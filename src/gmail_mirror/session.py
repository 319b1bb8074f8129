"""Wires settings, Gmail client, sync engine and reducer into one mailbox session."""

from __future__ import annotations

import logging
from collections.abc import Callable

from gmail_mirror.config.settings import GmailMirrorSettings
from gmail_mirror.core.auth import authenticate, build_gmail_service
from gmail_mirror.core.exceptions import GmailMirrorError
from gmail_mirror.core.gmail_client import GmailClient
from gmail_mirror.core.models import Label, MailboxFilter, Profile, ViewMode
from gmail_mirror.state.mailbox import LabelCache
from gmail_mirror.state.reducer import MailboxReducer
from gmail_mirror.state.scheduler import RefreshScheduler
from gmail_mirror.sync.backoff import BackoffPolicy
from gmail_mirror.sync.engine import NoChange, SyncEngine, SyncResult

logger = logging.getLogger(__name__)


class MailboxSession:
    """Builds the sync stack from settings.

    Components are created lazily so that constructing a session never
    touches the network; the first call needing the API authenticates.

    Args:
        settings: Application settings (loaded from the environment if None).
        client: Pre-built client, mainly for tests.
    """

    def __init__(
        self,
        settings: GmailMirrorSettings | None = None,
        client: GmailClient | None = None,
    ) -> None:
        self._settings = settings or GmailMirrorSettings()
        self._client = client
        self._engine: SyncEngine | None = None

    @property
    def settings(self) -> GmailMirrorSettings:
        return self._settings

    @property
    def view_mode(self) -> ViewMode:
        return ViewMode.THREADS if self._settings.thread_view else ViewMode.MESSAGES

    def _ensure_client(self) -> GmailClient:
        if self._client is None:
            self._settings.ensure_directories()
            creds = authenticate(self._settings.credentials_path, self._settings.token_path)
            service = build_gmail_service(creds)
            self._client = GmailClient(service, num_retries=self._settings.num_retries)
        return self._client

    def engine(self) -> SyncEngine:
        if self._engine is None:
            self._engine = SyncEngine(
                self._ensure_client(),
                BackoffPolicy.from_settings(self._settings),
                view_mode=self.view_mode,
                enable_history=self._settings.enable_history,
                max_fetch_workers=self._settings.max_fetch_workers,
            )
        return self._engine

    def resolve_filter(self, label: str | None = None, query: str | None = None) -> MailboxFilter:
        """Turn CLI-style arguments into a filter, resolving label names to IDs.

        Raises:
            ValueError: If both are given or the label is unknown.
        """
        if label and query:
            raise ValueError("Use either a label or a query, not both")
        if query:
            return MailboxFilter.search(query)
        name = label or self._settings.label
        label_id = LabelCache.from_labels(self.list_labels(), 0).resolve(name)
        if label_id is None:
            raise ValueError(f"Unknown label {name!r}")
        return MailboxFilter.label(label_id)

    def list_labels(self) -> list[Label]:
        return self._ensure_client().list_labels()

    def profile(self) -> Profile:
        return self._ensure_client().get_profile()

    def sync_once(self, mailbox_filter: MailboxFilter, page_size: int | None = None) -> SyncResult:
        """Run a single full listing (no history short-circuit)."""
        outcome = self.engine().sync(mailbox_filter, page_size or self._settings.page_size, 0)
        if isinstance(outcome, NoChange):
            raise GmailMirrorError("History check ran on a full listing")
        return outcome

    def reducer(
        self,
        mailbox_filter: MailboxFilter,
        *,
        page_size: int | None = None,
        on_status: Callable[[str], None] | None = None,
        composer: Callable[[], None] | None = None,
        contacts_source: Callable[[], list[str]] | None = None,
    ) -> MailboxReducer:
        """Build a reducer for ``mailbox_filter``.

        Args:
            mailbox_filter: Filter shown at startup.
            page_size: Overrides the configured page size.
            on_status: Receives every status message.
            composer: Sends a new message; compose is unavailable without it.
            contacts_source: Returns contact addresses, refreshed on every sync.
        """
        return MailboxReducer(
            self.engine(),
            self._ensure_client(),
            page_size=page_size or self._settings.page_size,
            initial_filter=mailbox_filter,
            on_status=on_status,
            composer=composer,
            contacts_source=contacts_source,
            batch_workers=self._settings.batch_workers,
        )

    def scheduler(self, reducer: MailboxReducer) -> RefreshScheduler:
        return RefreshScheduler(self._settings.refresh_interval_seconds, reducer.post)
