"""Sequential sync runner with adaptive pacing, per-target retries and cooperative cancellation."""

from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Any, Callable, Iterable, List, Optional, Union

from .backoff import RateLimitBackoff
from .errors import AlreadyRunningError, ErrorKind, classify_error
from .log import log_event, sanitize_for_log
from .models import (
    FetchResult,
    RunState,
    RunSummary,
    SyncOptions,
    SyncTask,
    Target,
    TaskStatus,
)
from .rate_limiter import RateLimitController

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = ErrorKind.CANCELLED.value

FetchFn = Callable[[Target, int], Union[FetchResult, tuple]]


class CancelToken:
    """Cancellation flag shared between the worker and external callers."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class SyncOrchestrator:
    """Runs a batch of targets against an injected fetch operation, one at a time.

    Each target gets up to ``max_attempts`` fetch attempts. Rate-limited attempts
    sleep a deep backoff, unavailable targets fail at once, everything else waits
    on the RateLimitController before retrying. After every task the controller
    paces the next one and may stop the run when throttling becomes severe.

    Only one run may be active per orchestrator. status() and cancel() are safe
    to call from other threads while run() is executing.
    """

    def __init__(
        self,
        rate_limiter: Optional[RateLimitController] = None,
        backoff: Optional[RateLimitBackoff] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._rate_limiter = rate_limiter or RateLimitController(clock=clock, sleep=sleep)
        self._backoff = backoff or RateLimitBackoff()
        self._clock = clock
        self._sleep = sleep

        self._run_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._state = RunState()
        self._cancel = CancelToken()

    @property
    def rate_limiter(self) -> RateLimitController:
        return self._rate_limiter

    def status(self) -> RunState:
        """Return a deep copy of the current run state."""
        with self._state_lock:
            return copy.deepcopy(self._state)

    def is_running(self) -> bool:
        with self._state_lock:
            return self._state.is_running

    def cancel(self) -> None:
        """Request cancellation; the in-flight fetch is allowed to finish."""
        with self._state_lock:
            if not self._state.is_running:
                return
            self._state.is_running = False
            self._cancel.cancel()
        log_event(logger, "cancel_requested")

    def run(
        self,
        targets: Iterable[Target],
        fetch_one: FetchFn,
        options: Optional[SyncOptions] = None,
    ) -> RunSummary:
        """Sync every target in order and return the run summary.

        Raises:
            AlreadyRunningError: If another run on this orchestrator is active.
        """
        if not self._run_lock.acquire(blocking=False):
            raise AlreadyRunningError("a sync run is already in progress")
        cancel = CancelToken()
        with self._state_lock:
            self._cancel = cancel
            self._state = RunState(is_running=True)
        try:
            return self._run(list(targets), fetch_one, options or SyncOptions(), cancel)
        finally:
            with self._state_lock:
                self._state.is_running = False
            self._run_lock.release()

    def _run(
        self,
        targets: List[Target],
        fetch_one: FetchFn,
        options: SyncOptions,
        cancel: CancelToken,
    ) -> RunSummary:
        start = self._clock()
        tasks = [
            SyncTask(target_id=t.target_id, display_name=t.display_name or t.target_id)
            for t in targets
        ]
        with self._state_lock:
            self._state.tasks = tasks

        if not tasks:
            logger.info("No targets to sync")
            return self._summary(start, "completed")

        self._rate_limiter.set_total_credentials(options.credential_pool_size)
        log_event(
            logger,
            "run_started",
            targets=len(tasks),
            max_results_per_target=options.max_results_per_target,
            credential_pool_size=self._rate_limiter.total_credentials,
        )

        stopped_reason = "completed"
        for index, (target, task) in enumerate(zip(targets, tasks)):
            if cancel.cancelled:
                stopped_reason = "cancelled"
                break

            self._update(task, status=TaskStatus.RUNNING, started_at=self._clock())
            logger.info("[%d/%d] Syncing %s (%s)", index + 1, len(tasks), task.display_name, task.target_id)
            self._run_task(task, target, fetch_one, options, cancel)

            if cancel.cancelled:
                stopped_reason = "cancelled"
                break

            self._rate_limiter.wait()
            if self._rate_limiter.should_backoff():
                logger.warning("Severe throttling detected, leaving %d targets pending", len(tasks) - index - 1)
                stopped_reason = "backoff"
                break

        summary = self._summary(start, stopped_reason)
        log_event(
            logger,
            "run_finished",
            stopped_reason=stopped_reason,
            total_synced=summary.total_synced,
            total_errors=summary.total_errors,
            total_skipped=summary.total_skipped,
            duration_ms=summary.duration_ms,
        )
        return summary

    def _run_task(
        self,
        task: SyncTask,
        target: Target,
        fetch_one: FetchFn,
        options: SyncOptions,
        cancel: CancelToken,
    ) -> None:
        failures = 0
        last_error: Optional[str] = None
        attempt = 1
        while attempt <= options.max_attempts:
            if cancel.cancelled:
                self._finish(task, TaskStatus.FAILED, errors=failures, last_error=CANCELLED_MESSAGE)
                return

            self._update(task, attempts=attempt)
            try:
                result = _as_fetch_result(fetch_one(target, options.max_results_per_target))
            except Exception as exc:  # noqa: BLE001
                self._rate_limiter.record_outcome(False)
                failures += 1
                last_error = str(exc) or type(exc).__name__
                kind = classify_error(exc)
                log_event(
                    logger,
                    "attempt_failed",
                    level=logging.WARNING,
                    target_id=task.target_id,
                    attempt=attempt,
                    max_attempts=options.max_attempts,
                    kind=kind.value,
                    error=sanitize_for_log(last_error),
                )

                if cancel.cancelled:
                    self._finish(task, TaskStatus.FAILED, errors=failures, last_error=CANCELLED_MESSAGE)
                    return
                if kind is ErrorKind.TARGET_UNAVAILABLE:
                    self._finish(task, TaskStatus.FAILED, errors=failures, last_error=last_error)
                    return
                if attempt >= options.max_attempts:
                    break

                if kind is ErrorKind.RATE_LIMITED:
                    sleep_ms = self._backoff.get_sleep_ms(attempt)
                    logger.info("Rate limited on %s, backing off %dms", task.target_id, sleep_ms)
                    self._sleep(sleep_ms / 1000.0)
                else:
                    self._rate_limiter.wait()
                attempt += 1
                continue

            self._rate_limiter.record_outcome(True)
            if cancel.cancelled:
                self._finish(
                    task,
                    TaskStatus.FAILED,
                    synced=result.synced,
                    errors=failures + result.errors,
                    skipped=result.skipped,
                    last_error=CANCELLED_MESSAGE,
                )
                return

            if result.bypassed:
                self._finish(task, TaskStatus.SKIPPED, skipped=result.skipped or 1)
            else:
                self._finish(
                    task,
                    TaskStatus.COMPLETED,
                    synced=result.synced,
                    errors=result.errors,
                    skipped=result.skipped,
                )
            return

        log_event(
            logger,
            "task_exhausted",
            level=logging.ERROR,
            target_id=task.target_id,
            kind=ErrorKind.EXHAUSTED.value,
            attempts=options.max_attempts,
            error=sanitize_for_log(last_error or ""),
        )
        self._finish(task, TaskStatus.FAILED, errors=failures, last_error=last_error)

    def _update(self, task: SyncTask, **changes: Any) -> None:
        with self._state_lock:
            for key, value in changes.items():
                setattr(task, key, value)

    def _finish(
        self,
        task: SyncTask,
        status: TaskStatus,
        synced: int = 0,
        errors: int = 0,
        skipped: int = 0,
        last_error: Optional[str] = None,
    ) -> None:
        with self._state_lock:
            task.status = status
            task.synced_count = synced
            task.error_count = errors
            task.skipped_count = skipped
            task.last_error = last_error
            task.ended_at = self._clock()
            self._state.total_synced += synced
            self._state.total_errors += errors
            self._state.total_skipped += skipped
        log_event(
            logger,
            "task_finished",
            level=logging.INFO if status is not TaskStatus.FAILED else logging.WARNING,
            target_id=task.target_id,
            status=status.value,
            synced=synced,
            errors=errors,
            skipped=skipped,
            error=sanitize_for_log(last_error) if last_error else None,
        )

    def _summary(self, start: float, stopped_reason: str) -> RunSummary:
        state = self.status()
        return RunSummary(
            success=True,
            total_synced=state.total_synced,
            total_errors=state.total_errors,
            total_skipped=state.total_skipped,
            tasks=state.tasks,
            duration_ms=int((self._clock() - start) * 1000),
            stopped_reason=stopped_reason,
        )


def _as_fetch_result(value: Union[FetchResult, tuple]) -> FetchResult:
    if isinstance(value, FetchResult):
        return value
    synced, errors = value
    return FetchResult(synced=int(synced), errors=int(errors))
