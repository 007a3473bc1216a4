"""Tests for the sync error taxonomy."""

import unittest

from adaptive_sync.errors import (
    ErrorKind,
    FetchError,
    RateLimitedError,
    SyncError,
    TargetUnavailableError,
    TransientError,
    classify_error,
)


class TestClassifyError(unittest.TestCase):
    """Verify that fetch errors map to their retry behaviour."""

    def test_rate_limited(self):
        """RateLimitedError maps to the deep backoff kind."""
        self.assertIs(classify_error(RateLimitedError("slow down")), ErrorKind.RATE_LIMITED)

    def test_target_unavailable(self):
        """TargetUnavailableError maps to the fail-fast kind."""
        self.assertIs(classify_error(TargetUnavailableError("gone")), ErrorKind.TARGET_UNAVAILABLE)

    def test_typed_transient(self):
        """TransientError maps to the plain retry kind."""
        self.assertIs(classify_error(TransientError("blip")), ErrorKind.TRANSIENT)

    def test_untyped_exception_is_transient(self):
        """Exceptions outside the taxonomy are retried as transient failures."""
        self.assertIs(classify_error(ValueError("unexpected")), ErrorKind.TRANSIENT)
        self.assertIs(classify_error(ConnectionError("down")), ErrorKind.TRANSIENT)

    def test_hierarchy(self):
        """All fetch errors share the SyncError base."""
        for exc_type in (RateLimitedError, TargetUnavailableError, TransientError):
            self.assertTrue(issubclass(exc_type, FetchError))
            self.assertTrue(issubclass(exc_type, SyncError))


if __name__ == "__main__":
    unittest.main()
