# tests/test_health_checker.py

"""Tests for the retailer health checker service."""

import unittest

from src.adapters.base_adapter import OperatingMode, RetailerAdapter
from src.models.product import ProductDetail, ProductSummary, RetailerId
from src.services.circuit_breaker import CircuitBreaker
from src.services.health_checker import HealthChecker, HealthResult
from src.services.rate_limiter import RateLimiter
from src.services.search_coordinator import SearchCoordinator
from src.storage.ttl_cache import CacheLayer


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class _IdleAdapter(RetailerAdapter):
    """Adapter that is never called; health checks stay local."""

    retailer_id = RetailerId.EBAY
    credential_setting = "EBAY_OAUTH_TOKEN"

    async def _search(
        self, query: str, max_results: int
    ) -> list[ProductSummary]:
        raise AssertionError("health checks must not call upstream")

    async def _get_details(self, source_id: str) -> ProductDetail:
        raise AssertionError("health checks must not call upstream")

    async def _get_related(self, source_id: str) -> list[ProductSummary]:
        raise AssertionError("health checks must not call upstream")


class _DemoIdleAdapter(_IdleAdapter):
    retailer_id = RetailerId.WALMART
    credential_setting = "WALMART_RAPIDAPI_KEY"
    supports_demo_mode = True


class TestHealthChecker(unittest.TestCase):
    """Status derivation from mode, breaker and quota."""

    def setUp(self) -> None:
        self.clock = FakeClock()

    def _checker(self, *adapters: RetailerAdapter) -> HealthChecker:
        coordinator = SearchCoordinator(
            adapters,
            rate_limiter=RateLimiter(
                {"ebay": [("minute", 2, 60.0)], "walmart": [("minute", 2, 60.0)]},
                clock=self.clock,
            ),
            circuit_breaker=CircuitBreaker(
                {"ebay": (2, 60.0, 1), "walmart": (2, 60.0, 1)},
                clock=self.clock,
            ),
            cache=CacheLayer(clock=self.clock),
        )
        return HealthChecker(coordinator)

    def test_ok(self) -> None:
        checker = self._checker(_IdleAdapter(api_key="k"))
        [result] = checker.check_all()
        self.assertIsInstance(result, HealthResult)
        self.assertEqual(result.status, "ok")
        self.assertEqual(result.mode, "live")
        self.assertEqual(result.circuit, "closed")
        self.assertEqual(result.remaining_quota, {"minute": 2})

    def test_open_circuit_is_down(self) -> None:
        checker = self._checker(_IdleAdapter(api_key="k"))
        breaker = checker.coordinator.circuit_breaker
        breaker.record_failure("ebay")
        breaker.record_failure("ebay")

        [result] = checker.check_all()

        self.assertEqual(result.status, "down")
        self.assertEqual(result.circuit, "open")
        self.assertIn("2 failures", result.message)

    def test_half_open_is_degraded(self) -> None:
        checker = self._checker(_IdleAdapter(api_key="k"))
        breaker = checker.coordinator.circuit_breaker
        breaker.record_failure("ebay")
        breaker.record_failure("ebay")
        self.clock.now += 60.0

        [result] = checker.check_all()

        self.assertEqual(result.status, "degraded")
        self.assertEqual(result.circuit, "half_open")

    def test_missing_key_without_demo_is_down(self) -> None:
        [result] = self._checker(_IdleAdapter(api_key="")).check_all()
        self.assertEqual(result.status, "down")
        self.assertIn("EBAY_OAUTH_TOKEN", result.message)

    def test_demo_mode_is_degraded(self) -> None:
        adapter = _DemoIdleAdapter(api_key="")
        self.assertIs(adapter.mode, OperatingMode.DEGRADED)

        [result] = self._checker(adapter).check_all()

        self.assertEqual(result.status, "degraded")
        self.assertEqual(result.mode, "degraded")

    def test_exhausted_quota_is_degraded(self) -> None:
        checker = self._checker(_IdleAdapter(api_key="k"))
        checker.coordinator.rate_limiter.try_acquire("ebay")
        checker.coordinator.rate_limiter.try_acquire("ebay")

        [result] = checker.check_all()

        self.assertEqual(result.status, "degraded")
        self.assertIn("minute", result.message)

    def test_check_does_not_consume_quota(self) -> None:
        checker = self._checker(_IdleAdapter(api_key="k"))
        checker.check_all()
        checker.check_all()
        self.assertEqual(
            checker.coordinator.rate_limiter.remaining("ebay"), {"minute": 2}
        )

    def test_registry_order(self) -> None:
        checker = self._checker(
            _IdleAdapter(api_key="k"), _DemoIdleAdapter(api_key="k")
        )
        self.assertEqual(
            [r.retailer_id for r in checker.check_all()], ["ebay", "walmart"]
        )


if __name__ == "__main__":
    unittest.main()
