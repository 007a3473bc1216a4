from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from .models import RateLimitConfig, RequestMetrics


class DelayAdjustment(ABC):
    """Abstract base class for one multiplicative step of the pacing delay.

    Each adjustment inspects a RequestMetrics snapshot and, when it applies,
    scales the running delay by its factor. Adjustments are evaluated
    independently, so several of them can compound on the same request."""

    factor: float = 1.0

    @abstractmethod
    def should_apply(self, metrics: RequestMetrics, now: float) -> bool:
        """Return True if this adjustment should scale the delay given current metrics."""
        raise NotImplementedError

    def apply(self, delay: float) -> float:
        return delay * self.factor


class ErrorBurstAdjustment(DelayAdjustment):
    """Triples the delay once the rolling error window reaches the error threshold."""

    factor = 3.0

    def __init__(self, error_threshold: int = 3) -> None:
        self._error_threshold = error_threshold

    def should_apply(self, metrics: RequestMetrics, now: float) -> bool:
        return len(metrics.recent_error_timestamps) >= self._error_threshold


class HighErrorRateAdjustment(DelayAdjustment):
    """Doubles the delay when more than half of all requests failed."""

    factor = 2.0

    def __init__(self, max_error_rate: float = 0.5, min_requests: int = 5) -> None:
        self._max_error_rate = max_error_rate
        self._min_requests = min_requests

    def should_apply(self, metrics: RequestMetrics, now: float) -> bool:
        if metrics.total_requests <= self._min_requests:
            return False
        return metrics.error_rate > self._max_error_rate


class RecentErrorAdjustment(DelayAdjustment):
    """Stretches the delay by half while the last error is still fresh."""

    factor = 1.5

    def __init__(self, window_secs: float = 30.0) -> None:
        self._window_secs = window_secs

    def should_apply(self, metrics: RequestMetrics, now: float) -> bool:
        if metrics.last_error_time is None:
            return False
        return now - metrics.last_error_time < self._window_secs


class StableRecoveryAdjustment(DelayAdjustment):
    """Shortens the delay once enough requests succeeded at a low error rate."""

    factor = 0.8

    def __init__(self, success_threshold: int = 5, max_error_rate: float = 0.2) -> None:
        self._success_threshold = success_threshold
        self._max_error_rate = max_error_rate

    def should_apply(self, metrics: RequestMetrics, now: float) -> bool:
        return (
            metrics.success_count >= self._success_threshold
            and metrics.error_rate < self._max_error_rate
        )


def default_adjustments(config: RateLimitConfig) -> List[DelayAdjustment]:
    """Build the adjustments in evaluation order."""
    return [
        ErrorBurstAdjustment(error_threshold=config.error_threshold),
        HighErrorRateAdjustment(),
        RecentErrorAdjustment(),
        StableRecoveryAdjustment(success_threshold=config.success_threshold),
    ]
