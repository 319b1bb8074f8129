"""Timer that feeds periodic refresh ticks into the mailbox reducer."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from gmail_mirror.state.events import Command, CommandEvent, Event, RefreshTick

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Posts a RefreshTick every ``interval`` seconds until stopped.

    Ticks are only requests: the reducer ignores them while a sync is
    already in flight.
    """

    def __init__(self, interval: float, post: Callable[[Event], None]) -> None:
        if interval <= 0:
            raise ValueError(f"Refresh interval must be positive, got {interval}")
        self._interval = interval
        self._post = post
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="refresh", daemon=True)
        self._thread.start()
        logger.debug("Refresh scheduler started, every %.1fs", self._interval)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def reload(self) -> None:
        """Request an immediate refresh."""
        self._post(CommandEvent(Command.RELOAD))

    def _loop(self) -> None:
        while not self._stop.wait(self._interval):
            self._post(RefreshTick())
