from __future__ import annotations


class RateLimitBackoff:
    """Linear deep backoff applied after the upstream reports throttling.

    Sleeps step_ms * attempt, capped at max_ms. No jitter: the feedback
    controller already spaces requests and the value must stay reproducible."""

    def __init__(self, step_ms: int = 30000, max_ms: int = 120000) -> None:
        self._step_ms = step_ms
        self._max_ms = max_ms

    def get_sleep_ms(self, attempt: int) -> int:
        """Calculate the backoff duration in milliseconds for a given attempt (1-based)."""
        return min(self._step_ms * max(attempt, 1), self._max_ms)
