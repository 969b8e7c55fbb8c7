# tests/test_search_coordinator.py

"""Tests for SearchCoordinator fan-out, caching and failure isolation.

Adapters are in-process fakes; the limiter, breaker and caches run on a
manually advanced clock so freshness and cooldowns are deterministic.
"""

import asyncio
import unittest

from src.adapters.base_adapter import OperatingMode, RetailerAdapter
from src.filters.hybrid_resolver import HybridResolver
from src.models.errors import ErrorKind, RetailerError, UnknownRetailerError
from src.models.product import (
    ProductDetail,
    ProductSummary,
    RetailerId,
    SortOrder,
)
from src.models.search import SearchRequest
from src.services.circuit_breaker import CircuitBreaker, CircuitState
from src.services.rate_limiter import RateLimiter
from src.services.search_coordinator import SearchCoordinator
from src.storage.ttl_cache import CacheLayer


# ── Private helpers ──────────────────────────────────


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_product(
    source_id: str,
    retailer: RetailerId = RetailerId.EBAY,
    name: str | None = None,
    price: float | None = 10.0,
) -> ProductSummary:
    return ProductSummary(
        source_id=source_id,
        retailer=retailer,
        name=name or f"Product {source_id}",
        price=price,
    )


class FakeAdapter(RetailerAdapter):
    """Scriptable adapter that counts its upstream calls."""

    retailer_id = RetailerId.EBAY

    def __init__(
        self,
        retailer: RetailerId = RetailerId.EBAY,
        products: list[ProductSummary] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.retailer_id = retailer
        super().__init__(api_key="test-key")
        self.products = products or []
        self.error = error
        self.delay = delay
        self.search_calls = 0
        self.detail_calls = 0
        self.details: dict[str, ProductDetail] = {}

    async def _search(
        self, query: str, max_results: int
    ) -> list[ProductSummary]:
        self.search_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.products[:max_results]

    async def _get_details(self, source_id: str) -> ProductDetail:
        self.detail_calls += 1
        if self.error is not None:
            raise self.error
        try:
            return self.details[source_id]
        except KeyError:
            raise RetailerError(
                ErrorKind.NOT_FOUND, retailer=self.retailer_id.value
            ) from None

    async def _get_related(self, source_id: str) -> list[ProductSummary]:
        if self.error is not None:
            raise self.error
        return list(self.products)


def _generous_limits() -> dict[str, list[tuple[str, int, float]]]:
    return {r.value: [("second", 1000, 1.0)] for r in RetailerId}


class CoordinatorTestCase(unittest.IsolatedAsyncioTestCase):
    """Builds a coordinator on a fake clock."""

    def setUp(self) -> None:
        self.clock = FakeClock()

    def _coordinator(
        self,
        *adapters: RetailerAdapter,
        limits: dict[str, list[tuple[str, int, float]]] | None = None,
        breaker_configs: dict[str, tuple[int, float, int]] | None = None,
        **kwargs: float,
    ) -> SearchCoordinator:
        return SearchCoordinator(
            adapters,
            rate_limiter=RateLimiter(
                limits if limits is not None else _generous_limits(),
                clock=self.clock,
            ),
            circuit_breaker=CircuitBreaker(
                breaker_configs
                if breaker_configs is not None
                else {r.value: (3, 60.0, 1) for r in RetailerId},
                clock=self.clock,
            ),
            cache=CacheLayer(clock=self.clock),
            **kwargs,  # type: ignore[arg-type]
        )


# ── Fan-out and merge ────────────────────────────────


class TestFanOut(CoordinatorTestCase):
    """Merging results from several retailers."""

    async def test_merges_in_registry_order(self) -> None:
        """Relevance order keeps retailer batches in registry order."""
        ebay = FakeAdapter(
            RetailerId.EBAY, [_make_product("e1"), _make_product("e2")]
        )
        amazon = FakeAdapter(
            RetailerId.AMAZON,
            [_make_product("a1", RetailerId.AMAZON)],
        )
        coord = self._coordinator(ebay, amazon)

        outcome = await coord.search(SearchRequest(query="camera"))

        self.assertEqual(
            [p.source_id for p in outcome.products], ["e1", "e2", "a1"]
        )
        self.assertEqual(outcome.failed_retailers, {})
        self.assertFalse(outcome.from_cache)

    async def test_partial_failure_is_data(self) -> None:
        """One retailer down still returns the others' products."""
        ebay = FakeAdapter(
            RetailerId.EBAY,
            error=RetailerError(ErrorKind.SERVER_ERROR, "ebay", 503),
        )
        amazon = FakeAdapter(
            RetailerId.AMAZON,
            [_make_product("a1", RetailerId.AMAZON)],
        )
        coord = self._coordinator(ebay, amazon)

        outcome = await coord.search(SearchRequest(query="camera"))

        self.assertEqual(len(outcome.products), 1)
        self.assertEqual(
            outcome.failed_retailers,
            {RetailerId.EBAY: ErrorKind.SERVER_ERROR},
        )
        self.assertIn("HTTP 503", outcome.error_messages[RetailerId.EBAY])
        self.assertTrue(outcome.is_partial_success)

    async def test_duplicates_removed(self) -> None:
        """The same (source_id, retailer) pair appears only once."""
        ebay = FakeAdapter(
            RetailerId.EBAY,
            [
                _make_product("1", name="Camera A"),
                _make_product("1", name="Camera A (dup)"),
                _make_product("2"),
            ],
        )
        coord = self._coordinator(ebay)

        outcome = await coord.search(SearchRequest(query="camera"))

        self.assertEqual([p.source_id for p in outcome.products], ["1", "2"])
        self.assertEqual(outcome.products[0].name, "Camera A")

    async def test_same_id_different_retailers_kept(self) -> None:
        ebay = FakeAdapter(RetailerId.EBAY, [_make_product("1")])
        amazon = FakeAdapter(
            RetailerId.AMAZON, [_make_product("1", RetailerId.AMAZON)]
        )
        coord = self._coordinator(ebay, amazon)

        outcome = await coord.search(SearchRequest(query="x"))

        self.assertEqual(len(outcome.products), 2)

    async def test_price_sort_puts_unpriced_last(self) -> None:
        ebay = FakeAdapter(
            RetailerId.EBAY,
            [
                _make_product("none", price=None),
                _make_product("high", price=50.0),
                _make_product("low", price=5.0),
            ],
        )
        coord = self._coordinator(ebay)

        outcome = await coord.search(
            SearchRequest(query="x", sort_order=SortOrder.PRICE_ASC)
        )

        self.assertEqual(
            [p.source_id for p in outcome.products], ["low", "high", "none"]
        )

    async def test_max_results_per_retailer_enforced(self) -> None:
        ebay = FakeAdapter(
            RetailerId.EBAY, [_make_product(str(i)) for i in range(10)]
        )
        coord = self._coordinator(ebay)

        outcome = await coord.search(
            SearchRequest(query="x", max_results_per_retailer=3)
        )

        self.assertEqual(len(outcome.products), 3)

    async def test_combined_results_capped(self) -> None:
        ebay = FakeAdapter(
            RetailerId.EBAY, [_make_product(str(i)) for i in range(10)]
        )
        coord = self._coordinator(ebay, max_combined_results=4)

        outcome = await coord.search(SearchRequest(query="x"))

        self.assertEqual(len(outcome.products), 4)

    async def test_retailer_subset(self) -> None:
        ebay = FakeAdapter(RetailerId.EBAY, [_make_product("e")])
        amazon = FakeAdapter(
            RetailerId.AMAZON, [_make_product("a", RetailerId.AMAZON)]
        )
        coord = self._coordinator(ebay, amazon)

        outcome = await coord.search(
            SearchRequest(
                query="x", retailers=frozenset({RetailerId.AMAZON})
            )
        )

        self.assertEqual([p.source_id for p in outcome.products], ["a"])
        self.assertEqual(ebay.search_calls, 0)

    async def test_unknown_retailer_raises(self) -> None:
        """Requesting only unregistered retailers is a caller error."""
        coord = self._coordinator(FakeAdapter(RetailerId.EBAY))

        with self.assertRaises(UnknownRetailerError):
            await coord.search(
                SearchRequest(
                    query="x", retailers=frozenset({RetailerId.WALMART})
                )
            )

    async def test_malformed_payload_is_decoding_failure(self) -> None:
        ebay = FakeAdapter(RetailerId.EBAY, error=KeyError("price"))
        coord = self._coordinator(ebay)

        outcome = await coord.search(SearchRequest(query="x"))

        self.assertEqual(
            outcome.failed_retailers,
            {RetailerId.EBAY: ErrorKind.DECODING_FAILED},
        )

    async def test_unexpected_exception_becomes_custom(self) -> None:
        ebay = FakeAdapter(RetailerId.EBAY, error=RuntimeError("boom"))
        coord = self._coordinator(ebay)

        outcome = await coord.search(SearchRequest(query="x"))

        self.assertEqual(
            outcome.failed_retailers, {RetailerId.EBAY: ErrorKind.CUSTOM}
        )


# ── Caching ──────────────────────────────────────────


class TestCaching(CoordinatorTestCase):
    """Five-minute search cache and in-flight coalescing."""

    async def test_second_search_served_from_cache(self) -> None:
        ebay = FakeAdapter(RetailerId.EBAY, [_make_product("1")])
        coord = self._coordinator(ebay)
        request = SearchRequest(query="Camera")

        first = await coord.search(request)
        second = await coord.search(SearchRequest(query="  camera "))

        self.assertEqual(ebay.search_calls, 1)
        self.assertFalse(first.from_cache)
        self.assertTrue(second.from_cache)
        self.assertEqual(second.products, first.products)

    async def test_stale_after_five_minutes(self) -> None:
        ebay = FakeAdapter(RetailerId.EBAY, [_make_product("1")])
        coord = self._coordinator(ebay)
        request = SearchRequest(query="camera")

        await coord.search(request)
        self.clock.advance(6 * 60)
        outcome = await coord.search(request)

        self.assertEqual(ebay.search_calls, 2)
        self.assertFalse(outcome.from_cache)

    async def test_total_failure_not_cached(self) -> None:
        ebay = FakeAdapter(
            RetailerId.EBAY,
            error=RetailerError(ErrorKind.NETWORK_UNAVAILABLE, "ebay"),
        )
        coord = self._coordinator(ebay)
        request = SearchRequest(query="camera")

        first = await coord.search(request)
        second = await coord.search(request)

        self.assertTrue(first.is_total_failure)
        self.assertFalse(second.from_cache)
        self.assertEqual(ebay.search_calls, 2)

    async def test_partial_failure_cached_with_failures(self) -> None:
        ebay = FakeAdapter(
            RetailerId.EBAY,
            error=RetailerError(ErrorKind.NETWORK_UNAVAILABLE, "ebay"),
        )
        amazon = FakeAdapter(
            RetailerId.AMAZON, [_make_product("a", RetailerId.AMAZON)]
        )
        coord = self._coordinator(ebay, amazon)
        request = SearchRequest(query="camera")

        await coord.search(request)
        cached = await coord.search(request)

        self.assertTrue(cached.from_cache)
        self.assertIn(RetailerId.EBAY, cached.failed_retailers)

    async def test_sort_order_is_part_of_key(self) -> None:
        ebay = FakeAdapter(RetailerId.EBAY, [_make_product("1")])
        coord = self._coordinator(ebay)

        await coord.search(SearchRequest(query="x"))
        await coord.search(
            SearchRequest(query="x", sort_order=SortOrder.PRICE_DESC)
        )

        self.assertEqual(ebay.search_calls, 2)

    async def test_concurrent_identical_searches_coalesce(self) -> None:
        """Two overlapping identical searches hit the adapter once."""
        ebay = FakeAdapter(
            RetailerId.EBAY, [_make_product("1")], delay=0.05
        )
        coord = self._coordinator(ebay)
        request = SearchRequest(query="camera")

        a, b = await asyncio.gather(
            coord.search(request), coord.search(request)
        )

        self.assertEqual(ebay.search_calls, 1)
        self.assertEqual(a.products, b.products)

    async def test_one_cancelled_waiter_does_not_cancel_shared_search(
        self,
    ) -> None:
        ebay = FakeAdapter(
            RetailerId.EBAY, [_make_product("1")], delay=0.05
        )
        coord = self._coordinator(ebay)
        request = SearchRequest(query="camera")

        first = asyncio.create_task(coord.search(request))
        second = asyncio.create_task(coord.search(request))
        await asyncio.sleep(0.01)
        first.cancel()

        outcome = await second
        self.assertEqual(len(outcome.products), 1)
        self.assertTrue(first.cancelled())

    async def test_search_after_last_waiter_cancelled_starts_fresh(
        self,
    ) -> None:
        """A new caller never joins a fan-out that is being torn down."""
        ebay = FakeAdapter(
            RetailerId.EBAY, [_make_product("1")], delay=0.05
        )
        coord = self._coordinator(ebay)
        request = SearchRequest(query="camera")

        first = asyncio.create_task(coord.search(request))
        await asyncio.sleep(0.01)
        first.cancel()
        await asyncio.sleep(0)

        outcome = await coord.search(request)

        self.assertEqual(len(outcome.products), 1)
        self.assertEqual(ebay.search_calls, 2)
        with self.assertRaises(asyncio.CancelledError):
            await first


# ── Admission control ────────────────────────────────


class TestAdmission(CoordinatorTestCase):
    """Quota and circuit refusals never reach the adapter."""

    async def test_quota_exhausted_skips_adapter(self) -> None:
        ebay = FakeAdapter(RetailerId.EBAY, [_make_product("1")])
        coord = self._coordinator(
            ebay, limits={"ebay": [("minute", 1, 60.0)]}
        )

        await coord.search(SearchRequest(query="first"))
        outcome = await coord.search(SearchRequest(query="second"))

        self.assertEqual(ebay.search_calls, 1)
        self.assertEqual(
            outcome.failed_retailers,
            {RetailerId.EBAY: ErrorKind.QUOTA_EXCEEDED},
        )

    async def test_open_circuit_skips_adapter(self) -> None:
        """After three failures the fourth search never calls eBay."""
        ebay = FakeAdapter(
            RetailerId.EBAY,
            error=RetailerError(ErrorKind.SERVER_ERROR, "ebay", 500),
        )
        coord = self._coordinator(ebay)

        for i in range(3):
            await coord.search(SearchRequest(query=f"q{i}"))
        self.assertEqual(
            coord.circuit_breaker.state("ebay"), CircuitState.OPEN
        )

        outcome = await coord.search(SearchRequest(query="q4"))

        self.assertEqual(ebay.search_calls, 3)
        self.assertEqual(
            outcome.failed_retailers,
            {RetailerId.EBAY: ErrorKind.CIRCUIT_OPEN},
        )

    async def test_circuit_recovers_after_cooldown(self) -> None:
        ebay = FakeAdapter(
            RetailerId.EBAY,
            error=RetailerError(ErrorKind.SERVER_ERROR, "ebay", 500),
        )
        coord = self._coordinator(ebay)
        for i in range(3):
            await coord.search(SearchRequest(query=f"q{i}"))

        ebay.error = None
        ebay.products = [_make_product("1")]
        self.clock.advance(60.0)
        outcome = await coord.search(SearchRequest(query="after"))

        self.assertEqual(len(outcome.products), 1)
        self.assertEqual(
            coord.circuit_breaker.state("ebay"), CircuitState.CLOSED
        )

    async def test_open_circuit_isolates_one_retailer(self) -> None:
        ebay = FakeAdapter(
            RetailerId.EBAY,
            error=RetailerError(ErrorKind.SERVER_ERROR, "ebay", 500),
        )
        amazon = FakeAdapter(
            RetailerId.AMAZON, [_make_product("a", RetailerId.AMAZON)]
        )
        coord = self._coordinator(ebay, amazon)
        for i in range(3):
            await coord.search(SearchRequest(query=f"q{i}"))

        outcome = await coord.search(SearchRequest(query="q4"))

        self.assertEqual(len(outcome.products), 1)
        self.assertEqual(amazon.search_calls, 4)

    async def test_not_found_does_not_trip_breaker(self) -> None:
        ebay = FakeAdapter(RetailerId.EBAY)
        coord = self._coordinator(ebay)

        for _ in range(5):
            outcome = await coord.get_details(RetailerId.EBAY, "missing")
            self.assertEqual(outcome.error, ErrorKind.NOT_FOUND)

        self.assertEqual(
            coord.circuit_breaker.state("ebay"), CircuitState.CLOSED
        )


# ── Timeouts ─────────────────────────────────────────


class TestTimeouts(CoordinatorTestCase):
    """Per-unit and whole-search deadlines."""

    async def test_slow_unit_times_out(self) -> None:
        slow = FakeAdapter(
            RetailerId.EBAY, [_make_product("1")], delay=1.0
        )
        fast = FakeAdapter(
            RetailerId.AMAZON, [_make_product("a", RetailerId.AMAZON)]
        )
        coord = self._coordinator(slow, fast, unit_timeout=0.05)

        outcome = await coord.search(SearchRequest(query="x"))

        self.assertEqual(
            outcome.failed_retailers, {RetailerId.EBAY: ErrorKind.TIMEOUT}
        )
        self.assertEqual([p.source_id for p in outcome.products], ["a"])
        self.assertEqual(
            coord.circuit_breaker.snapshot("ebay").consecutive_failures, 1
        )

    async def test_search_deadline_abandons_pending_units(self) -> None:
        slow = FakeAdapter(
            RetailerId.EBAY, [_make_product("1")], delay=1.0
        )
        fast = FakeAdapter(
            RetailerId.AMAZON, [_make_product("a", RetailerId.AMAZON)]
        )
        coord = self._coordinator(
            slow, fast, unit_timeout=5.0, search_timeout=0.05
        )

        outcome = await coord.search(SearchRequest(query="x"))

        self.assertEqual(
            outcome.failed_retailers, {RetailerId.EBAY: ErrorKind.TIMEOUT}
        )
        self.assertIn(
            "deadline", outcome.error_messages[RetailerId.EBAY]
        )
        self.assertEqual(len(outcome.products), 1)


# ── Lookups and comparison ───────────────────────────


class TestLookups(CoordinatorTestCase):
    """get_details, get_related and compare_prices."""

    async def test_details_cached(self) -> None:
        ebay = FakeAdapter(RetailerId.EBAY)
        ebay.details["1"] = ProductDetail("1", RetailerId.EBAY, "Lens", 99.0)
        coord = self._coordinator(ebay)

        first = await coord.get_details(RetailerId.EBAY, "1")
        second = await coord.get_details(RetailerId.EBAY, "1")

        self.assertTrue(first.ok)
        self.assertTrue(second.from_cache)
        self.assertEqual(ebay.detail_calls, 1)

    async def test_details_bypass_cache(self) -> None:
        ebay = FakeAdapter(RetailerId.EBAY)
        ebay.details["1"] = ProductDetail("1", RetailerId.EBAY, "Lens", 99.0)
        coord = self._coordinator(ebay)

        await coord.get_details(RetailerId.EBAY, "1")
        await coord.get_details(RetailerId.EBAY, "1", use_cache=False)

        self.assertEqual(ebay.detail_calls, 2)

    async def test_details_unknown_retailer(self) -> None:
        coord = self._coordinator(FakeAdapter(RetailerId.EBAY))
        with self.assertRaises(UnknownRetailerError):
            await coord.get_details(RetailerId.WALMART, "1")

    async def test_related_failure_recorded(self) -> None:
        ebay = FakeAdapter(
            RetailerId.EBAY,
            error=RetailerError(ErrorKind.RATE_LIMIT_EXCEEDED, "ebay"),
        )
        coord = self._coordinator(ebay)

        outcome = await coord.get_related(RetailerId.EBAY, "1")

        self.assertEqual(
            outcome.failed_retailers,
            {RetailerId.EBAY: ErrorKind.RATE_LIMIT_EXCEEDED},
        )

    async def test_compare_prices_matches_similar_names(self) -> None:
        ebay = FakeAdapter(RetailerId.EBAY)
        ebay.details["1"] = ProductDetail(
            "1", RetailerId.EBAY, "Sony WH-1000XM5 Headphones Black", 350.0
        )
        amazon = FakeAdapter(
            RetailerId.AMAZON,
            [
                _make_product(
                    "a1",
                    RetailerId.AMAZON,
                    "Sony WH-1000XM5 Headphones Black",
                    329.0,
                ),
                _make_product(
                    "a2", RetailerId.AMAZON, "Phone case", 9.0
                ),
            ],
        )
        coord = self._coordinator(ebay, amazon)

        matches = await coord.compare_prices(RetailerId.EBAY, "1")

        self.assertEqual([p.source_id for p in matches], ["a1"])

    async def test_compare_prices_missing_anchor(self) -> None:
        coord = self._coordinator(
            FakeAdapter(RetailerId.EBAY),
            FakeAdapter(RetailerId.AMAZON),
        )
        self.assertEqual(
            await coord.compare_prices(RetailerId.EBAY, "nope"), []
        )


# ── Degraded and hybrid adapters ─────────────────────


class UnreliableAdapter(FakeAdapter):
    """Native search always fails; details work."""

    native_search_unreliable = True

    async def _search(
        self, query: str, max_results: int
    ) -> list[ProductSummary]:
        self.search_calls += 1
        raise RetailerError(ErrorKind.SERVER_ERROR, "bestbuy", 500)


class TestDegradedAndHybrid(CoordinatorTestCase):
    async def test_unreliable_search_goes_through_resolver(self) -> None:
        adapter = UnreliableAdapter(RetailerId.BESTBUY)
        adapter.details["s1"] = ProductDetail(
            "s1", RetailerId.BESTBUY, "Headphones One", 100.0
        )
        adapter.details["s2"] = ProductDetail(
            "s2", RetailerId.BESTBUY, "Headphones Two", 150.0
        )
        resolver = HybridResolver(
            term_ids={"headphones": ["s1", "s2", "s3"]},
            broad_terms={},
            default_ids=["s1"],
            max_lookups=5,
        )
        coord = self._coordinator(adapter)
        coord.resolver = resolver

        outcome = await coord.search(SearchRequest(query="headphones"))

        self.assertEqual(adapter.search_calls, 0)
        self.assertEqual(
            [p.source_id for p in outcome.products], ["s1", "s2"]
        )
        self.assertEqual(outcome.failed_retailers, {})

    async def test_degraded_adapter_flagged(self) -> None:
        adapter = FakeAdapter(RetailerId.WALMART)
        adapter.supports_demo_mode = True
        adapter.mode = OperatingMode.DEGRADED
        coord = self._coordinator(adapter)

        outcome = await coord.search(SearchRequest(query="airpods"))

        self.assertEqual(outcome.degraded_retailers, {RetailerId.WALMART})
        self.assertTrue(outcome.products)
        self.assertEqual(adapter.search_calls, 0)


if __name__ == "__main__":
    unittest.main()
