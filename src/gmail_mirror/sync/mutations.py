"""Apply one remote mutation to many entries concurrently, tracking per-entry outcome."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from gmail_mirror.core.exceptions import BatchOperationError, GmailMirrorError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchOutcome:
    """Per-entry result of a batch mutation."""

    operation: str
    succeeded: tuple[str, ...] = field(default_factory=tuple)
    failures: dict[str, Exception] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failures)

    @property
    def error(self) -> BatchOperationError | None:
        if not self.failures:
            return None
        return BatchOperationError(self.operation, self.failures, self.total)


def run_batch(
    operation: str,
    entry_ids: list[str],
    apply: Callable[[str], None],
    *,
    max_workers: int | None = None,
) -> BatchOutcome:
    """Call ``apply`` for every entry concurrently.

    Args:
        operation: Verb for logs and error messages (e.g. "archive").
        entry_ids: Entries to mutate.
        apply: Performs the remote call for one entry; raises on failure.
        max_workers: Concurrency cap. None runs one call per entry.

    Returns:
        BatchOutcome with succeeded IDs in input order and failures by ID.
    """
    if not entry_ids:
        return BatchOutcome(operation)

    st = time.monotonic()
    done: set[str] = set()
    failures: dict[str, Exception] = {}
    with ThreadPoolExecutor(max_workers=max_workers or len(entry_ids)) as executor:
        futures = {executor.submit(apply, entry_id): entry_id for entry_id in entry_ids}
        for future in as_completed(futures):
            entry_id = futures[future]
            try:
                future.result()
            except GmailMirrorError as e:
                logger.warning("Failed to %s %s: %s", operation, entry_id, e)
                failures[entry_id] = e
            except Exception as e:
                logger.exception("Unexpected error during %s of %s", operation, entry_id)
                failures[entry_id] = e
            else:
                done.add(entry_id)

    logger.info(
        "Batch operation %s on %d entries: %d failed, %.3fs",
        operation, len(entry_ids), len(failures), time.monotonic() - st,
    )
    return BatchOutcome(
        operation=operation,
        succeeded=tuple(entry_id for entry_id in entry_ids if entry_id in done),
        failures={entry_id: failures[entry_id] for entry_id in entry_ids if entry_id in failures},
    )
