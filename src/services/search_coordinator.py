# src/services/search_coordinator.py

"""Coordinates guarded multi-retailer searches and lookups."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TypeVar

from src.adapters.base_adapter import OperatingMode, RetailerAdapter
from src.config.settings import Settings
from src.filters.deduplicator import ProductDeduplicator
from src.filters.hybrid_resolver import HybridResolver
from src.models.errors import ErrorKind, RetailerError, UnknownRetailerError
from src.models.product import ProductSummary, RetailerId, SortOrder
from src.models.search import DetailOutcome, SearchOutcome, SearchRequest
from src.services.circuit_breaker import CircuitBreaker
from src.services.rate_limiter import RateLimiter
from src.storage.ttl_cache import CacheLayer, SearchKey, search_key

logger = logging.getLogger("aggregator.coordinator")

T = TypeVar("T")


@dataclass
class _InFlight:
    """A running fan-out shared by every caller with the same key."""

    task: "asyncio.Task[SearchOutcome]"
    waiters: int = 0


@dataclass
class _UnitResult:
    products: list[ProductSummary]
    degraded: bool


class SearchCoordinator:
    """Fans searches out to retailer adapters behind cache, quota and breaker.

    Every upstream call goes through :meth:`_guarded`: the rate limiter
    admits it, the circuit breaker gates it, and the adapter runs under
    the per-unit timeout.  Adapter failures are recorded in the outcome,
    never raised.
    """

    def __init__(
        self,
        adapters: Iterable[RetailerAdapter],
        rate_limiter: RateLimiter,
        circuit_breaker: CircuitBreaker,
        cache: CacheLayer,
        resolver: HybridResolver | None = None,
        unit_timeout: float | None = None,
        search_timeout: float | None = None,
        max_combined_results: int | None = None,
    ) -> None:
        self.adapters: dict[RetailerId, RetailerAdapter] = {
            adapter.retailer_id: adapter for adapter in adapters
        }
        self.rate_limiter = rate_limiter
        self.circuit_breaker = circuit_breaker
        self.cache = cache
        self.resolver = resolver or HybridResolver()
        self.unit_timeout = (
            unit_timeout if unit_timeout is not None else Settings.UNIT_TIMEOUT
        )
        self.search_timeout = (
            search_timeout
            if search_timeout is not None
            else Settings.SEARCH_TIMEOUT
        )
        self.max_combined_results = (
            max_combined_results
            if max_combined_results is not None
            else Settings.MAX_COMBINED_RESULTS
        )
        self._inflight: dict[SearchKey, _InFlight] = {}

    # ── Private helpers ──────────────────────────────────

    def _adapter(self, retailer: RetailerId) -> RetailerAdapter:
        adapter = self.adapters.get(retailer)
        if adapter is None:
            raise UnknownRetailerError(
                f"retailer '{retailer.value}' is not registered"
            )
        return adapter

    def _targets(self, request: SearchRequest) -> list[RetailerAdapter]:
        """Requested retailers ∩ registered ones, in registry order."""
        targets = [
            adapter
            for rid, adapter in self.adapters.items()
            if not request.retailers or rid in request.retailers
        ]
        if not targets:
            raise UnknownRetailerError(
                "no registered adapter matches "
                + (
                    ", ".join(sorted(r.value for r in request.retailers))
                    or "the request"
                )
            )
        return targets

    async def _guarded(
        self,
        adapter: RetailerAdapter,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        """Run one upstream call behind limiter, breaker and timeout.

        Admission is decided before the first await so a cancelled
        call never leaves a half-recorded outcome behind.
        """
        rid = adapter.retailer_id.value
        if not self.rate_limiter.try_acquire(rid):
            raise RetailerError(ErrorKind.QUOTA_EXCEEDED, retailer=rid)
        if not self.circuit_breaker.allow_request(rid):
            raise RetailerError(ErrorKind.CIRCUIT_OPEN, retailer=rid)

        try:
            result = await asyncio.wait_for(call(), timeout=self.unit_timeout)
        except asyncio.CancelledError:
            self.circuit_breaker.release(rid)
            raise
        except RetailerError as exc:
            if exc.kind is ErrorKind.NOT_FOUND:
                self.circuit_breaker.record_success(rid)
            else:
                self.circuit_breaker.record_failure(rid)
            raise
        except asyncio.TimeoutError as exc:
            self.circuit_breaker.record_failure(rid)
            raise RetailerError(
                ErrorKind.TIMEOUT,
                retailer=rid,
                message=f"no response within {self.unit_timeout:.0f}s",
            ) from exc
        except Exception as exc:
            logger.error(
                "Unexpected adapter error from '%s': %s",
                rid,
                exc,
                exc_info=True,
            )
            self.circuit_breaker.record_failure(rid)
            raise RetailerError(
                ErrorKind.CUSTOM, retailer=rid, message=str(exc)
            ) from exc

        self.circuit_breaker.record_success(rid)
        return result

    async def _search_unit(
        self, adapter: RetailerAdapter, request: SearchRequest
    ) -> _UnitResult:
        limit = request.max_results_per_retailer

        async def call() -> list[ProductSummary]:
            if (
                adapter.native_search_unreliable
                and adapter.mode is OperatingMode.LIVE
            ):
                return await self.resolver.resolve(
                    adapter, request.query, limit
                )
            return await adapter.search(request.query, limit)

        products = await self._guarded(adapter, call)
        return _UnitResult(
            products=list(products)[:limit],
            degraded=adapter.mode is OperatingMode.DEGRADED,
        )

    @staticmethod
    def _record_failure(
        outcome: SearchOutcome,
        retailer: RetailerId,
        error: RetailerError,
    ) -> None:
        outcome.failed_retailers[retailer] = error.kind
        outcome.error_messages[retailer] = error.describe()
        if error.kind in (ErrorKind.QUOTA_EXCEEDED, ErrorKind.CIRCUIT_OPEN):
            logger.warning(
                "Skipped '%s' for query '%s': %s",
                retailer.value,
                outcome.query,
                error.describe(),
            )
        else:
            logger.error(
                "Retailer error from '%s' for query '%s': %s",
                retailer.value,
                outcome.query,
                error.describe(),
            )

    async def _execute(
        self,
        request: SearchRequest,
        targets: list[RetailerAdapter],
        key: SearchKey,
    ) -> SearchOutcome:
        """Dispatch, await under the joint deadline, merge and cache."""
        outcome = SearchOutcome(query=request.query)
        tasks: dict[RetailerId, asyncio.Task[_UnitResult]] = {
            adapter.retailer_id: asyncio.create_task(
                self._search_unit(adapter, request),
                name=f"search:{adapter.retailer_id.value}",
            )
            for adapter in targets
        }

        try:
            _done, pending = await asyncio.wait(
                tasks.values(), timeout=self.search_timeout
            )
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            raise

        if pending:
            logger.warning(
                "Search deadline of %.0fs hit for '%s'; abandoning %d unit(s)",
                self.search_timeout,
                request.query,
                len(pending),
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        batches: list[list[ProductSummary]] = []
        for rid, task in tasks.items():
            if task.cancelled():
                self._record_failure(
                    outcome,
                    rid,
                    RetailerError(
                        ErrorKind.TIMEOUT,
                        retailer=rid.value,
                        message="search deadline exceeded",
                    ),
                )
                continue
            exc = task.exception()
            if isinstance(exc, RetailerError):
                self._record_failure(outcome, rid, exc)
            elif exc is not None:
                self._record_failure(
                    outcome,
                    rid,
                    RetailerError(
                        ErrorKind.CUSTOM, retailer=rid.value, message=str(exc)
                    ),
                )
            else:
                unit = task.result()
                batches.append(unit.products)
                if unit.degraded:
                    outcome.degraded_retailers.add(rid)

        outcome.products = ProductDeduplicator.merge(
            batches, request.sort_order, self.max_combined_results
        )

        if len(outcome.failed_retailers) < len(targets):
            self.cache.set_search(key, outcome)

        logger.info(
            "Search '%s': %d products, %d/%d retailers failed",
            request.query,
            len(outcome.products),
            len(outcome.failed_retailers),
            len(targets),
        )
        return outcome

    # ── Public operations ────────────────────────────────

    @property
    def registered_retailers(self) -> list[RetailerId]:
        return list(self.adapters)

    async def search(self, request: SearchRequest) -> SearchOutcome:
        """Search every targeted retailer and merge the results.

        Identical concurrent searches share one fan-out.  Upstream
        failures are reported in the outcome; only programmer errors
        (unknown retailers) raise.
        """
        targets = self._targets(request)
        key = search_key(
            request.query,
            [adapter.retailer_id for adapter in targets],
            request.sort_order,
            request.max_results_per_retailer,
        )

        cached = self.cache.get_search(key)
        if cached is not None:
            logger.info("Cache hit for '%s'", request.normalized_query)
            return cached

        entry = self._inflight.get(key)
        if entry is not None and (
            entry.task.done() or entry.task.cancelling()
        ):
            entry = None
        if entry is None:
            task = asyncio.create_task(
                self._execute(request, targets, key),
                name=f"search:{key[0]}",
            )
            entry = _InFlight(task=task)
            self._inflight[key] = entry
            task.add_done_callback(
                lambda done, k=key: self._forget(k, done)
            )
        else:
            logger.debug("Joining in-flight search for '%s'", key[0])

        entry.waiters += 1
        try:
            return await asyncio.shield(entry.task)
        finally:
            entry.waiters -= 1
            if entry.waiters == 0 and not entry.task.done():
                entry.task.cancel()
                if self._inflight.get(key) is entry:
                    del self._inflight[key]

    def _forget(
        self, key: SearchKey, task: "asyncio.Task[SearchOutcome]"
    ) -> None:
        entry = self._inflight.get(key)
        if entry is not None and entry.task is task:
            del self._inflight[key]

    async def get_details(
        self,
        retailer: RetailerId,
        source_id: str,
        use_cache: bool = True,
    ) -> DetailOutcome:
        """Guarded single-product lookup, served from cache when fresh."""
        adapter = self._adapter(retailer)
        if use_cache:
            cached = self.cache.get_detail(retailer, source_id)
            if cached is not None:
                return DetailOutcome(
                    retailer=retailer,
                    source_id=source_id,
                    product=cached,
                    from_cache=True,
                )

        try:
            product = await self._guarded(
                adapter, lambda: adapter.get_details(source_id)
            )
        except RetailerError as exc:
            logger.warning(
                "Detail lookup %s:%s failed: %s",
                retailer.value,
                source_id,
                exc.describe(),
            )
            return DetailOutcome(
                retailer=retailer,
                source_id=source_id,
                error=exc.kind,
                message=exc.describe(),
            )

        self.cache.set_detail(product)
        return DetailOutcome(
            retailer=retailer, source_id=source_id, product=product
        )

    async def get_related(
        self, retailer: RetailerId, source_id: str
    ) -> SearchOutcome:
        """Products related to one item, through the guarded path."""
        adapter = self._adapter(retailer)
        outcome = SearchOutcome(query=f"related:{retailer.value}:{source_id}")
        try:
            products = await self._guarded(
                adapter, lambda: adapter.get_related(source_id)
            )
        except RetailerError as exc:
            self._record_failure(outcome, retailer, exc)
            return outcome

        outcome.products, _ = ProductDeduplicator.deduplicate(products)
        if adapter.mode is OperatingMode.DEGRADED:
            outcome.degraded_retailers.add(retailer)
        return outcome

    async def compare_prices(
        self, retailer: RetailerId, source_id: str
    ) -> list[ProductSummary]:
        """Find the same product at the other retailers, cheapest first.

        Matches are results whose names share at least
        ``COMPARISON_SIMILARITY`` of their words with the anchor's name.
        """
        anchor = await self.get_details(retailer, source_id)
        if anchor.product is None:
            return []
        others = frozenset(r for r in self.adapters if r is not retailer)
        if not others:
            return []

        outcome = await self.search(
            SearchRequest(
                query=anchor.product.name,
                retailers=others,
                max_results_per_retailer=Settings.DEFAULT_MAX_RESULTS,
                sort_order=SortOrder.PRICE_ASC,
            )
        )
        matches = [
            p
            for p in outcome.products
            if ProductDeduplicator.name_similarity(
                anchor.product.name, p.name
            )
            >= Settings.COMPARISON_SIMILARITY
        ]
        logger.info(
            "Price comparison for %s:%s found %d match(es)",
            retailer.value,
            source_id,
            len(matches),
        )
        return matches

    async def close(self) -> None:
        """Close every adapter's HTTP session."""
        await asyncio.gather(
            *(adapter.close() for adapter in self.adapters.values())
        )
