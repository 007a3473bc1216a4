from __future__ import annotations

from enum import Enum


class SyncError(Exception):
    """Base exception for sync errors."""


class AlreadyRunningError(SyncError):
    """Raised when a run is requested while another one is still active."""


class FetchError(SyncError):
    """Base class for failures reported by a fetch operation."""


class RateLimitedError(FetchError):
    """The upstream service throttled the request."""


class TargetUnavailableError(FetchError):
    """The target does not exist or is inactive; retrying cannot help."""


class TransientError(FetchError):
    """A failure that may succeed on a later attempt."""


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    TARGET_UNAVAILABLE = "target_unavailable"
    TRANSIENT = "transient"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception raised by a fetch operation to its retry behaviour.

    Anything that is not a typed fetch error counts as transient."""
    if isinstance(exc, RateLimitedError):
        return ErrorKind.RATE_LIMITED
    if isinstance(exc, TargetUnavailableError):
        return ErrorKind.TARGET_UNAVAILABLE
    return ErrorKind.TRANSIENT
