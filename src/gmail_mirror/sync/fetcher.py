"""Concurrent detail fetcher: hydrate stub entries, retrying per the backoff policy."""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Generic, TypeVar

from gmail_mirror.core.exceptions import GmailMirrorError, ParseError
from gmail_mirror.sync.backoff import BackoffPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class HydrationStream(Generic[T]):
    """Single delivery channel for hydrated items.

    Iterating yields items as soon as each fetch succeeds, in completion
    order, and stops once every fetch task has finished or given up.
    Abandoned IDs never appear; see ``abandoned``.
    """

    def __init__(self, expected: int) -> None:
        self.expected = expected
        self._queue: queue.Queue[object] = queue.Queue()
        self._lock = threading.Lock()
        self._abandoned: list[str] = []
        self._delivered = 0

    @property
    def abandoned(self) -> list[str]:
        with self._lock:
            return list(self._abandoned)

    @property
    def delivered(self) -> int:
        with self._lock:
            return self._delivered

    def _deliver(self, item: T) -> None:
        with self._lock:
            self._delivered += 1
        self._queue.put(item)

    def _abandon(self, item_id: str) -> None:
        with self._lock:
            self._abandoned.append(item_id)

    def _close(self) -> None:
        self._queue.put(_CLOSED)

    def __iter__(self) -> Iterator[T]:
        while (item := self._queue.get()) is not _CLOSED:
            yield item  # type: ignore[misc]
        # Leave the marker for any other consumer.
        self._queue.put(_CLOSED)


class DetailFetcherPool(Generic[T]):
    """Fetches full detail for many IDs concurrently.

    Args:
        fetch: Retrieves one item by ID; raises GmailMirrorError on failure.
            ParseError is not retried.
        backoff: Retry policy applied per ID.
        sleep: Sleep function (injectable for tests).
        max_workers: Concurrency cap. None runs one task per ID.
    """

    def __init__(
        self,
        fetch: Callable[[str], T],
        backoff: BackoffPolicy,
        *,
        sleep: Callable[[float], None] = time.sleep,
        max_workers: int | None = None,
    ) -> None:
        self._fetch = fetch
        self._backoff = backoff
        self._sleep = sleep
        self._max_workers = max_workers

    def start(self, ids: list[str]) -> HydrationStream[T]:
        """Begin hydrating ``ids`` in the background and return the stream at once."""
        stream: HydrationStream[T] = HydrationStream(len(ids))
        if not ids:
            stream._close()
            return stream

        workers = self._max_workers or len(ids)
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="hydrate")
        futures = [executor.submit(self._hydrate, item_id, stream) for item_id in ids]

        def _close_when_done() -> None:
            wait(futures)
            executor.shutdown(wait=False)
            for future in futures:
                exc = future.exception()
                if exc is not None:
                    logger.error("Hydration task crashed: %s", exc)
            logger.debug(
                "Hydration finished: %d delivered, %d abandoned of %d",
                stream.delivered, len(stream.abandoned), stream.expected,
            )
            stream._close()

        threading.Thread(target=_close_when_done, name="hydrate-join", daemon=True).start()
        return stream

    def _hydrate(self, item_id: str, stream: HydrationStream[T]) -> None:
        st = time.monotonic()
        for attempt in itertools.count():
            try:
                item = self._fetch(item_id)
            except ParseError as e:
                logger.warning("Fetching %s returned malformed data, giving up: %s", item_id, e)
                stream._abandon(item_id)
                return
            except GmailMirrorError as e:
                delay, exhausted = self._backoff(attempt)
                if exhausted:
                    logger.warning("Fetching %s failed, backoff expired, giving up: %s", item_id, e)
                    stream._abandon(item_id)
                    return
                logger.info("Fetching %s failed, retrying after %.2fs: %s", item_id, delay, e)
                self._sleep(delay)
                continue
            logger.debug("Hydrated %s in %.3fs", item_id, time.monotonic() - st)
            stream._deliver(item)
            return
