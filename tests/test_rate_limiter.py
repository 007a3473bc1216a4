"""Tests for the RateLimitController class."""

import random
import unittest

from adaptive_sync.models import RateLimitConfig
from adaptive_sync.rate_limiter import CredentialPool, RateLimitController


class _FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_controller(clock=None, sleeps=None, **config) -> RateLimitController:
    """Helper to build a controller with a fake clock and a recording sleeper."""
    clock = clock or _FakeClock()
    sleeps = sleeps if sleeps is not None else []
    return RateLimitController(config=RateLimitConfig(**config), clock=clock, sleep=sleeps.append)


class TestCredentialRotation(unittest.TestCase):
    """Verify round-robin credential selection."""

    def test_default_pool_has_one_slot(self):
        """Without configuration every request uses slot 0."""
        controller = _make_controller()
        self.assertEqual([controller.next_credential_index() for _ in range(3)], [0, 0, 0])

    def test_round_robin_over_three(self):
        """A pool of three yields 0,1,2,0,1,2."""
        controller = _make_controller()
        controller.set_total_credentials(3)
        self.assertEqual([controller.next_credential_index() for _ in range(6)], [0, 1, 2, 0, 1, 2])

    def test_pool_size_clamped_to_one(self):
        """Non-positive pool sizes fall back to one slot."""
        controller = _make_controller()
        controller.set_total_credentials(0)
        self.assertEqual(controller.total_credentials, 1)
        controller.set_total_credentials(-5)
        self.assertEqual(controller.next_credential_index(), 0)

    def test_shrinking_pool_keeps_cursor_in_range(self):
        """Resizing below the cursor wraps it back into range."""
        pool = CredentialPool(5)
        for _ in range(4):
            pool.next_index()
        pool.resize(2)
        self.assertLess(pool.cursor, pool.total)


class TestRecordOutcome(unittest.TestCase):
    """Verify metric bookkeeping."""

    def test_counts_successes_and_errors(self):
        """Totals count every recorded outcome."""
        controller = _make_controller()
        controller.record_outcome(True)
        controller.record_outcome(False)
        controller.record_outcome(True)
        metrics = controller.metrics()
        self.assertEqual(metrics.total_requests, 3)
        self.assertEqual(metrics.success_count, 2)
        self.assertEqual(metrics.error_count, 1)
        self.assertIsNotNone(metrics.last_request_time)

    def test_success_clears_error_window(self):
        """Any success empties the rolling error window."""
        controller = _make_controller()
        for _ in range(4):
            controller.record_outcome(False)
        controller.record_outcome(True)
        metrics = controller.metrics()
        self.assertEqual(metrics.recent_error_timestamps, ())
        self.assertEqual(metrics.error_count, 4)

    def test_error_window_capacity(self):
        """The window keeps only the ten most recent failures."""
        clock = _FakeClock()
        controller = _make_controller(clock=clock)
        for _ in range(15):
            controller.record_outcome(False)
            clock.advance(1)
        window = controller.metrics().recent_error_timestamps
        self.assertEqual(len(window), 10)
        self.assertEqual(window[0], 1005.0)

    def test_last_error_time(self):
        """The last error time is taken from the clock."""
        clock = _FakeClock()
        controller = _make_controller(clock=clock)
        self.assertIsNone(controller.metrics().last_error_time)
        controller.record_outcome(False)
        self.assertEqual(controller.metrics().last_error_time, 1000.0)


class TestComputeDelay(unittest.TestCase):
    """Verify the feedback-controlled delay."""

    def test_no_history_returns_base(self):
        """With no history the base delay is used."""
        controller = _make_controller()
        self.assertEqual(controller.compute_delay(), 5000)

    def test_stable_successes_shorten_delay(self):
        """Five clean successes reduce the delay below base."""
        controller = _make_controller()
        for _ in range(5):
            controller.record_outcome(True)
        self.assertEqual(controller.compute_delay(), 4000)

    def test_error_burst_escalates_delay(self):
        """Three fresh failures compound the burst and recency factors."""
        controller = _make_controller()
        for _ in range(3):
            controller.record_outcome(False)
        delay = controller.compute_delay()
        self.assertGreaterEqual(delay, 15000)
        self.assertEqual(delay, 22500)

    def test_all_factors_compound(self):
        """Six failures trip burst, error rate and recency together."""
        controller = _make_controller()
        for _ in range(6):
            controller.record_outcome(False)
        self.assertEqual(controller.compute_delay(), 45000)

    def test_stale_single_error_has_no_effect(self):
        """An error older than 30 seconds no longer stretches the delay."""
        clock = _FakeClock()
        controller = _make_controller(clock=clock)
        controller.record_outcome(False)
        clock.advance(31)
        self.assertEqual(controller.compute_delay(), 5000)

    def test_clamped_to_max(self):
        """The delay never exceeds max_delay_ms."""
        controller = _make_controller(base_delay_ms=50000)
        for _ in range(3):
            controller.record_outcome(False)
        self.assertEqual(controller.compute_delay(), 120000)

    def test_clamped_to_min(self):
        """The delay never drops below min_delay_ms."""
        controller = _make_controller(base_delay_ms=3000, min_delay_ms=3000)
        for _ in range(5):
            controller.record_outcome(True)
        self.assertEqual(controller.compute_delay(), 3000)

    def test_burst_after_long_success_streak(self):
        """The burst floor holds even when the overall error rate is low."""
        controller = _make_controller()
        for _ in range(20):
            controller.record_outcome(True)
        for _ in range(3):
            controller.record_outcome(False)
        self.assertGreaterEqual(controller.compute_delay(), 15000)

    def test_always_within_bounds(self):
        """Random outcome histories never push the delay outside [min, max]."""
        rng = random.Random(7)
        clock = _FakeClock()
        controller = _make_controller(clock=clock, base_delay_ms=20000, min_delay_ms=3000, max_delay_ms=60000)
        for _ in range(300):
            controller.record_outcome(rng.random() < 0.5)
            clock.advance(rng.uniform(0, 40))
            delay = controller.compute_delay()
            self.assertGreaterEqual(delay, 3000)
            self.assertLessEqual(delay, 60000)
            self.assertIsInstance(delay, int)


class TestWait(unittest.TestCase):
    """Verify wait() sleeps for the computed delay."""

    def test_wait_sleeps_seconds(self):
        """wait() sleeps the computed delay in seconds and returns milliseconds."""
        sleeps = []
        controller = _make_controller(sleeps=sleeps)
        slept_ms = controller.wait()
        self.assertEqual(slept_ms, 5000)
        self.assertEqual(sleeps, [5.0])


class TestShouldBackoff(unittest.TestCase):
    """Verify the severe-throttling circuit breaker."""

    def test_four_errors_do_not_trip(self):
        """Four recent errors are below the backoff threshold."""
        controller = _make_controller()
        for _ in range(4):
            controller.record_outcome(False)
        self.assertFalse(controller.should_backoff())

    def test_fifth_error_trips(self):
        """Five recent errors trigger a backoff."""
        controller = _make_controller()
        for _ in range(5):
            controller.record_outcome(False)
        self.assertTrue(controller.should_backoff())

    def test_old_errors_do_not_count(self):
        """Errors older than a minute are ignored."""
        clock = _FakeClock()
        controller = _make_controller(clock=clock)
        controller.record_outcome(False)
        clock.advance(61)
        for _ in range(4):
            controller.record_outcome(False)
        self.assertFalse(controller.should_backoff())

    def test_success_resets_breaker(self):
        """A success clears the backoff condition."""
        controller = _make_controller()
        for _ in range(5):
            controller.record_outcome(False)
        controller.record_outcome(True)
        self.assertFalse(controller.should_backoff())


class TestReset(unittest.TestCase):
    """Verify administrative reset."""

    def test_reset_clears_metrics_but_keeps_pool(self):
        """reset() drops history but keeps the credential pool size."""
        controller = _make_controller()
        controller.set_total_credentials(4)
        controller.record_outcome(False)
        controller.reset()
        metrics = controller.metrics()
        self.assertEqual(metrics.total_requests, 0)
        self.assertEqual(metrics.recent_error_timestamps, ())
        self.assertIsNone(metrics.last_error_time)
        self.assertEqual(controller.total_credentials, 4)


if __name__ == "__main__":
    unittest.main()
