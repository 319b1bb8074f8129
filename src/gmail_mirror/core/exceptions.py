"""Custom exceptions for Gmail Mirror."""

from __future__ import annotations


class GmailMirrorError(Exception):
    """Base exception for all Gmail Mirror errors."""


class AuthenticationError(GmailMirrorError):
    """Failed to authenticate with Gmail API."""


class RateLimitError(GmailMirrorError):
    """Gmail API rate limit exceeded."""


class ParseError(GmailMirrorError):
    """Failed to parse a Gmail API response."""


class SyncError(GmailMirrorError):
    """A sync cycle failed; carries every error seen while listing."""

    def __init__(self, errors: list[Exception]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(str(e) for e in self.errors) or "sync failed")


class BatchOperationError(GmailMirrorError):
    """Some items of a batch mutation failed.

    Args:
        operation: Verb describing the operation (e.g. "archive").
        failures: Mapping of entry ID to the error it raised.
        total: Number of entries the batch was applied to.
    """

    def __init__(self, operation: str, failures: dict[str, Exception], total: int) -> None:
        self.operation = operation
        self.failures = dict(failures)
        self.total = total
        details = ", ".join(f"{entry_id}: {err}" for entry_id, err in self.failures.items())
        super().__init__(
            f"Failed to {operation} {len(self.failures)} of {total} messages ({details})"
        )
