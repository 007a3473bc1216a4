from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Iterable, List, Optional

from .log import log_event
from .models import RateLimitConfig, RequestMetrics
from .strategies import DelayAdjustment, default_adjustments

logger = logging.getLogger(__name__)

ERROR_WINDOW_CAPACITY = 10
BACKOFF_WINDOW_SECS = 60.0
BACKOFF_ERROR_COUNT = 5


class CredentialPool:
    """Round-robin cursor over N interchangeable credential slots."""

    def __init__(self, total: int = 1) -> None:
        self._total = max(1, int(total))
        self._cursor = 0

    @property
    def total(self) -> int:
        return self._total

    @property
    def cursor(self) -> int:
        return self._cursor

    def resize(self, total: int) -> None:
        self._total = max(1, int(total))
        self._cursor = self._cursor % self._total

    def next_index(self) -> int:
        index = self._cursor
        self._cursor = (self._cursor + 1) % self._total
        return index


class RateLimitController:
    """Thread-safe feedback loop deciding how long to pause between upstream requests.

    Outcomes fed through record_outcome() drive compute_delay(): the delay starts
    at the configured base and is scaled by every DelayAdjustment that applies,
    then clamped to [min_delay_ms, max_delay_ms]. should_backoff() is the
    separate circuit breaker signalling severe throttling."""

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        adjustments: Optional[Iterable[DelayAdjustment]] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or RateLimitConfig()
        self._adjustments: List[DelayAdjustment] = (
            list(adjustments) if adjustments is not None else default_adjustments(self._config)
        )
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._pool = CredentialPool()
        self._reset_metrics()

    def _reset_metrics(self) -> None:
        self._total_requests = 0
        self._success_count = 0
        self._error_count = 0
        self._recent_errors: Deque[float] = deque(maxlen=ERROR_WINDOW_CAPACITY)
        self._last_request_time: Optional[float] = None
        self._last_error_time: Optional[float] = None

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    def set_total_credentials(self, count: int) -> None:
        with self._lock:
            self._pool.resize(count)
            total = self._pool.total
        logger.info("Credential pool size set to %d", total)

    def next_credential_index(self) -> int:
        with self._lock:
            return self._pool.next_index()

    @property
    def total_credentials(self) -> int:
        return self._pool.total

    def record_outcome(self, success: bool) -> None:
        """Fold one request outcome into the rolling metrics."""
        now = self._clock()
        with self._lock:
            self._total_requests += 1
            self._last_request_time = now
            if success:
                self._success_count += 1
                self._recent_errors.clear()
            else:
                self._error_count += 1
                self._last_error_time = now
                self._recent_errors.append(now)
            total, ok, failed = self._total_requests, self._success_count, self._error_count
        logger.debug("Request stats: total=%d success=%d errors=%d", total, ok, failed)

    def metrics(self) -> RequestMetrics:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> RequestMetrics:
        return RequestMetrics(
            total_requests=self._total_requests,
            success_count=self._success_count,
            error_count=self._error_count,
            recent_error_timestamps=tuple(self._recent_errors),
            last_request_time=self._last_request_time,
            last_error_time=self._last_error_time,
        )

    def compute_delay(self) -> int:
        """Return the pause before the next request in milliseconds."""
        metrics = self.metrics()
        now = self._clock()
        delay = float(self._config.base_delay_ms)
        applied = []
        for adjustment in self._adjustments:
            if adjustment.should_apply(metrics, now):
                delay = adjustment.apply(delay)
                applied.append(adjustment.__class__.__name__)

        delay = max(delay, self._config.min_delay_ms)
        delay = min(delay, self._config.max_delay_ms)
        delay_ms = int(delay)

        if applied:
            log_event(
                logger,
                "delay_adjusted",
                level=logging.DEBUG,
                adjustments=applied,
                delay_ms=delay_ms,
                recent_errors=len(metrics.recent_error_timestamps),
                error_rate=round(metrics.error_rate, 3),
            )
        return delay_ms

    def wait(self) -> int:
        """Sleep for compute_delay() and return the slept duration in milliseconds."""
        delay_ms = self.compute_delay()
        logger.debug("Waiting %dms before next request", delay_ms)
        self._sleep(delay_ms / 1000.0)
        return delay_ms

    def should_backoff(self) -> bool:
        """True when the rolling window holds enough errors from the last minute."""
        now = self._clock()
        with self._lock:
            recent = [ts for ts in self._recent_errors if now - ts < BACKOFF_WINDOW_SECS]
        if len(recent) >= BACKOFF_ERROR_COUNT:
            log_event(logger, "severe_throttling", level=logging.WARNING, errors_last_minute=len(recent))
            return True
        return False

    def reset(self) -> None:
        """Clear the request metrics; the credential pool is left as is."""
        with self._lock:
            self._reset_metrics()
        logger.info("Rate limit metrics reset")
