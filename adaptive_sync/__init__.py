"""Adaptive sync package.

Runs batches of external targets against a quota-limited upstream service,
pacing requests with a feedback-controlled rate limiter and rotating a pool
of credentials.

Key modules:
    models       -- Target, SyncTask, RunState, RunSummary and config dataclasses
    errors       -- sync error taxonomy and classify_error
    strategies   -- DelayAdjustment steps combined into the pacing delay
    rate_limiter -- RateLimitController and CredentialPool
    backoff      -- RateLimitBackoff for throttled attempts
    orchestrator -- SyncOrchestrator and CancelToken
    base         -- BaseFetcher, HTTP outcome to error mapping
    fetchers     -- JsonApiFetcher with credential rotation
    storage      -- StorageBase and JsonlStorage run reports
    log          -- logging setup and JSON decision lines
"""

from .errors import (
    AlreadyRunningError,
    ErrorKind,
    FetchError,
    RateLimitedError,
    SyncError,
    TargetUnavailableError,
    TransientError,
    classify_error,
)
from .models import (
    FetchResult,
    RateLimitConfig,
    RequestMetrics,
    RunState,
    RunSummary,
    SyncOptions,
    SyncTask,
    Target,
    TaskStatus,
)
from .orchestrator import CancelToken, SyncOrchestrator
from .rate_limiter import CredentialPool, RateLimitController

__all__ = [
    "AlreadyRunningError",
    "CancelToken",
    "CredentialPool",
    "ErrorKind",
    "FetchError",
    "FetchResult",
    "RateLimitConfig",
    "RateLimitController",
    "RateLimitedError",
    "RequestMetrics",
    "RunState",
    "RunSummary",
    "SyncError",
    "SyncOptions",
    "SyncOrchestrator",
    "SyncTask",
    "Target",
    "TargetUnavailableError",
    "TaskStatus",
    "TransientError",
    "classify_error",
]
