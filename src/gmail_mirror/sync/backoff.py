"""Capped, jittered exponential backoff for per-item API retries."""

from __future__ import annotations

import random
from dataclasses import dataclass

from gmail_mirror.config.settings import GmailMirrorSettings


@dataclass(frozen=True)
class BackoffPolicy:
    """Computes how long to wait before retry ``attempt`` and when to give up.

    The delay for attempt ``n`` is ``initial_delay * base**n`` plus a random
    jitter of at most the gap to the next step, capped at ``max_delay``.
    ``exhausted`` is true once ``attempt`` exceeds ``max_retries``.
    """

    initial_delay: float = 0.05
    base: float = 1.7
    max_delay: float = 5.0
    max_retries: int = 20

    @classmethod
    def from_settings(cls, settings: GmailMirrorSettings) -> BackoffPolicy:
        return cls(
            initial_delay=settings.initial_backoff_seconds,
            base=settings.backoff_base,
            max_delay=settings.max_backoff_seconds,
            max_retries=settings.max_retries,
        )

    def _step(self, attempt: int) -> float:
        return self.initial_delay * self.base**attempt

    def __call__(self, attempt: int) -> tuple[float, bool]:
        if attempt < 0:
            raise ValueError(f"attempt must be non-negative, got {attempt}")
        exhausted = attempt > self.max_retries
        try:
            low = self._step(attempt)
            high = self._step(attempt + 1)
        except OverflowError:
            return max(0.0, self.max_delay), exhausted
        if low >= self.max_delay:
            return max(0.0, self.max_delay), exhausted
        high = min(high, self.max_delay)
        delay = low + (high - low) * random.random()
        return max(0.0, delay), exhausted
