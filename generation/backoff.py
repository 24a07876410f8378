"""Exponential backoff policy for rate-limited generation calls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tenacity import RetryCallState

from config import get_rate_limit_settings


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Delay and attempt ceiling for calls the upstream rejected as rate limited.

    ``next_delay(n)`` is the wait after the n-th failed call:
    ``base_delay_ms * 2 ** (n - 1)`` capped at ``max_delay_ms``.
    """

    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    max_attempts: int = 5

    def next_delay(self, attempt_number: int) -> int:
        attempt = max(1, int(attempt_number))
        return min(self.base_delay_ms * 2 ** (attempt - 1), self.max_delay_ms)

    def is_exhausted(self, attempt_number: int) -> bool:
        return int(attempt_number) > self.max_attempts

    # tenacity hooks: attempt_number counts calls already made

    def wait_seconds(self, retry_state: RetryCallState) -> float:
        return self.next_delay(retry_state.attempt_number) / 1000.0

    def should_stop(self, retry_state: RetryCallState) -> bool:
        return self.is_exhausted(retry_state.attempt_number + 1)

    @classmethod
    def from_settings(cls, overrides: Optional[dict] = None) -> "BackoffPolicy":
        settings = get_rate_limit_settings()
        values = {
            "base_delay_ms": settings.base_delay_ms,
            "max_delay_ms": settings.max_delay_ms,
            "max_attempts": settings.max_attempts,
        }
        values.update(overrides or {})
        return cls(**values)
