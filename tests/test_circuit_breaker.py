# tests/test_circuit_breaker.py

"""Tests for the per-retailer circuit breaker state machine."""

import unittest

from src.models.product import RetailerId
from src.services.circuit_breaker import CircuitBreaker, CircuitState


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestCircuitBreaker(unittest.TestCase):
    """Closed -> open -> half-open -> closed transitions."""

    def setUp(self) -> None:
        self.clock = FakeClock()
        # threshold 3, 30 s cooldown, 2 half-open trials
        self.breaker = CircuitBreaker(
            configs={"shop": (3, 30.0, 2)}, clock=self.clock
        )

    def _trip(self) -> None:
        for _ in range(3):
            self.breaker.record_failure("shop")

    def test_starts_closed(self) -> None:
        self.assertEqual(self.breaker.state("shop"), CircuitState.CLOSED)
        self.assertTrue(self.breaker.allow_request("shop"))

    def test_opens_after_threshold(self) -> None:
        """Three consecutive failures refuse the fourth call."""
        self.breaker.record_failure("shop")
        self.breaker.record_failure("shop")
        self.assertTrue(self.breaker.allow_request("shop"))
        self.breaker.record_failure("shop")
        self.assertEqual(self.breaker.state("shop"), CircuitState.OPEN)
        self.assertFalse(self.breaker.allow_request("shop"))

    def test_enum_member_uses_configured_breaker(self) -> None:
        breaker = CircuitBreaker(
            configs={"ebay": (1, 30.0, 1)}, clock=self.clock
        )
        breaker.record_failure(RetailerId.EBAY)
        self.assertEqual(breaker.state("ebay"), CircuitState.OPEN)
        self.assertFalse(breaker.allow_request(RetailerId.EBAY))

    def test_success_resets_consecutive_count(self) -> None:
        self.breaker.record_failure("shop")
        self.breaker.record_failure("shop")
        self.breaker.record_success("shop")
        self.breaker.record_failure("shop")
        self.assertEqual(self.breaker.state("shop"), CircuitState.CLOSED)
        self.assertEqual(
            self.breaker.snapshot("shop").consecutive_failures, 1
        )

    def test_half_open_after_cooldown(self) -> None:
        self._trip()
        self.clock.advance(29.0)
        self.assertFalse(self.breaker.allow_request("shop"))
        self.clock.advance(1.0)
        self.assertEqual(
            self.breaker.state("shop"), CircuitState.HALF_OPEN
        )
        self.assertTrue(self.breaker.allow_request("shop"))

    def test_half_open_limits_trials(self) -> None:
        """Only ``half_open_trial_limit`` calls are admitted."""
        self._trip()
        self.clock.advance(30.0)
        self.assertTrue(self.breaker.allow_request("shop"))
        self.assertTrue(self.breaker.allow_request("shop"))
        self.assertFalse(self.breaker.allow_request("shop"))

    def test_half_open_successes_close(self) -> None:
        self._trip()
        self.clock.advance(30.0)
        self.breaker.allow_request("shop")
        self.breaker.allow_request("shop")
        self.breaker.record_success("shop")
        self.assertEqual(
            self.breaker.state("shop"), CircuitState.HALF_OPEN
        )
        self.breaker.record_success("shop")
        self.assertEqual(self.breaker.state("shop"), CircuitState.CLOSED)
        self.assertEqual(
            self.breaker.snapshot("shop").consecutive_failures, 0
        )

    def test_half_open_failure_reopens(self) -> None:
        self._trip()
        self.clock.advance(30.0)
        self.breaker.allow_request("shop")
        self.breaker.record_failure("shop")
        self.assertEqual(self.breaker.state("shop"), CircuitState.OPEN)
        self.assertFalse(self.breaker.allow_request("shop"))

        # Cooldown restarts from the re-open
        self.clock.advance(30.0)
        self.assertTrue(self.breaker.allow_request("shop"))

    def test_release_returns_trial_slot(self) -> None:
        """A cancelled trial frees its slot for another caller."""
        self._trip()
        self.clock.advance(30.0)
        self.assertTrue(self.breaker.allow_request("shop"))
        self.assertTrue(self.breaker.allow_request("shop"))
        self.breaker.release("shop")
        self.assertTrue(self.breaker.allow_request("shop"))

    def test_release_is_noop_when_closed(self) -> None:
        self.breaker.release("shop")
        self.assertEqual(self.breaker.state("shop"), CircuitState.CLOSED)

    def test_retailers_are_independent(self) -> None:
        self._trip()
        self.assertTrue(self.breaker.allow_request("other"))

    def test_unknown_retailer_uses_default_config(self) -> None:
        snap = CircuitBreaker(configs={}, clock=self.clock).snapshot("x")
        self.assertEqual(snap.failure_threshold, 5)

    def test_snapshot_is_a_copy(self) -> None:
        snap = self.breaker.snapshot("shop")
        snap.consecutive_failures = 99
        self.assertEqual(
            self.breaker.snapshot("shop").consecutive_failures, 0
        )

    def test_reset_closes(self) -> None:
        self._trip()
        self.breaker.reset("shop")
        self.assertTrue(self.breaker.allow_request("shop"))

    def test_open_is_logged_as_error(self) -> None:
        with self.assertLogs("aggregator.circuit_breaker", "ERROR") as cm:
            self._trip()
        self.assertIn("Circuit opened for 'shop'", cm.output[0])


if __name__ == "__main__":
    unittest.main()
