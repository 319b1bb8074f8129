"""Fan out independent operations, fan their completions back in registration order."""

from __future__ import annotations

import logging
import queue
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

Callback = Callable[[], None]

_END = object()


class Completions:
    """Private per-operation queue of callbacks to run on the joining thread."""

    def __init__(self) -> None:
        self._queue: queue.Queue[object] = queue.Queue()

    def put(self, callback: Callback) -> None:
        self._queue.put(callback)

    def _close(self) -> None:
        self._queue.put(_END)

    def _drain(self) -> list[Callback]:
        callbacks: list[Callback] = []
        while (item := self._queue.get()) is not _END:
            callbacks.append(item)  # type: ignore[arg-type]
        return callbacks


Operation = Callable[[Completions], None]


@dataclass
class _Task:
    completions: Completions
    future: Future[None] = field(repr=False)


class ParallelTasks:
    """Runs operations concurrently but applies their side effects in order.

    Each operation starts as soon as it is added and may ``put`` any number of
    callbacks on its ``Completions``. ``run()`` waits for the operations in
    the order they were added, invoking each one's callbacks on the calling
    thread before looking at the next. Shared results can therefore be
    written from callbacks without locks. An instance is single-use.

    Usage:
        >>> tasks = ParallelTasks()
        >>> tasks.add(lambda done: done.put(lambda: results.append(fetch())))
        >>> tasks.run()
    """

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(thread_name_prefix="parallel")
        self._tasks: list[_Task] = []

    def add(self, operation: Operation) -> None:
        completions = Completions()

        def _run() -> None:
            try:
                operation(completions)
            finally:
                completions._close()

        self._tasks.append(_Task(completions, self._executor.submit(_run)))

    def run(self) -> None:
        """Block until every operation finished, running callbacks in add order.

        Raises:
            Exception: The first exception raised by an operation itself
                (after that operation's callbacks have run).
        """
        try:
            for n, task in enumerate(self._tasks):
                for callback in task.completions._drain():
                    callback()
                exc = task.future.exception()
                if exc is not None:
                    logger.debug("Parallel operation %d raised: %s", n, exc)
                    raise exc
        finally:
            self._tasks = []
            self._executor.shutdown(wait=False)
