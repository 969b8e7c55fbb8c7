# src/storage/ttl_cache.py

"""In-memory TTL + LRU caches for search results and product details."""

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass, replace
from typing import Generic, TypeVar

from src.config.settings import Settings
from src.models.product import ProductDetail, RetailerId, SortOrder
from src.models.search import SearchOutcome, normalize_query

logger = logging.getLogger("aggregator.cache")

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """A cached value with its write time, lifetime and size."""

    value: V
    stored_at: float
    ttl: float
    weight: int = 1

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl


@dataclass
class CacheStats:
    """Counters reported by :meth:`TTLCache.stats`."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    entries: int = 0
    weight: int = 0


class TTLCache(Generic[K, V]):
    """Time-bounded, size-bounded key/value cache.

    Reads never return an expired entry, expired entries are dropped
    lazily on access (or in bulk via :meth:`purge_expired`), and once
    ``max_entries`` or ``max_weight`` is exceeded the least recently
    used entries are evicted.
    """

    def __init__(
        self,
        name: str,
        ttl: float,
        max_entries: int,
        max_weight: int | None = None,
        weigher: Callable[[V], int] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.ttl = ttl
        self.max_entries = max_entries
        self.max_weight = max_weight
        self._weigher = weigher
        self._clock = clock
        self._entries: OrderedDict[K, CacheEntry[V]] = OrderedDict()
        self._weight = 0
        self._lock = threading.Lock()
        self._stats = CacheStats()

    def get(self, key: K) -> V | None:
        """Return the live value for *key*, or ``None``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None
            if self._clock() >= entry.expires_at:
                self._drop(key)
                self._stats.expirations += 1
                self._stats.misses += 1
                logger.debug("[%s] Expired entry for %r", self.name, key)
                return None
            self._entries.move_to_end(key)
            self._stats.hits += 1
            return entry.value

    def set(self, key: K, value: V, ttl: float | None = None) -> None:
        """Store *value* under *key*, replacing any previous entry."""
        weight = self._weigher(value) if self._weigher else 1
        lifetime = self.ttl if ttl is None else ttl
        with self._lock:
            if key in self._entries:
                self._drop(key)
            self._entries[key] = CacheEntry(
                value=value,
                stored_at=self._clock(),
                ttl=lifetime,
                weight=weight,
            )
            self._weight += weight
            self._evict_overflow()

    def invalidate(self, key: K) -> bool:
        """Remove one entry.  Returns True if something was removed."""
        with self._lock:
            if key not in self._entries:
                return False
            self._drop(key)
            return True

    def clear(self) -> int:
        """Purge all entries.

        Returns the number of entries that were removed.
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._weight = 0
        logger.info("[%s] Cache purged (%d entries removed)", self.name, count)
        return count

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were dropped."""
        with self._lock:
            now = self._clock()
            expired = [
                key
                for key, entry in self._entries.items()
                if now >= entry.expires_at
            ]
            for key in expired:
                self._drop(key)
            self._stats.expirations += len(expired)
        if expired:
            logger.debug(
                "[%s] Evicted %d expired entries", self.name, len(expired)
            )
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
                expirations=self._stats.expirations,
                entries=len(self._entries),
                weight=self._weight,
            )

    def __len__(self) -> int:
        return len(self._entries)

    # ── Private helpers ──────────────────────────────────

    def _drop(self, key: K) -> None:
        entry = self._entries.pop(key)
        self._weight -= entry.weight

    def _evict_overflow(self) -> None:
        """Evict LRU entries until both bounds hold (caller holds lock)."""
        while self._entries and (
            len(self._entries) > self.max_entries
            or (
                self.max_weight is not None
                and self._weight > self.max_weight
                and len(self._entries) > 1
            )
        ):
            key, entry = self._entries.popitem(last=False)
            self._weight -= entry.weight
            self._stats.evictions += 1
            logger.debug("[%s] Evicted LRU entry %r", self.name, key)


SearchKey = tuple[str, tuple[str, ...], str, int]
DetailKey = tuple[str, str]


def search_key(
    query: str,
    retailers: list[RetailerId],
    sort_order: SortOrder,
    max_per_retailer: int,
) -> SearchKey:
    """Cache key for a merged search: same inputs, same results."""
    return (
        normalize_query(query),
        tuple(sorted(r.value for r in retailers)),
        sort_order.value,
        max_per_retailer,
    )


class CacheLayer:
    """The two caches the coordinator consults before any upstream call."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.searches: TTLCache[SearchKey, SearchOutcome] = TTLCache(
            name="search",
            ttl=Settings.SEARCH_CACHE_TTL,
            max_entries=Settings.SEARCH_CACHE_MAX_ENTRIES,
            max_weight=Settings.SEARCH_CACHE_MAX_PRODUCTS,
            weigher=lambda outcome: max(1, len(outcome.products)),
            clock=clock,
        )
        self.details: TTLCache[DetailKey, ProductDetail] = TTLCache(
            name="details",
            ttl=Settings.DETAIL_CACHE_TTL,
            max_entries=Settings.DETAIL_CACHE_MAX_ENTRIES,
            clock=clock,
        )

    def get_search(self, key: SearchKey) -> SearchOutcome | None:
        """Return a copy of the cached outcome flagged ``from_cache``."""
        cached = self.searches.get(key)
        if cached is None:
            return None
        return replace(
            cached,
            products=list(cached.products),
            failed_retailers=dict(cached.failed_retailers),
            error_messages=dict(cached.error_messages),
            degraded_retailers=set(cached.degraded_retailers),
            from_cache=True,
        )

    def set_search(self, key: SearchKey, outcome: SearchOutcome) -> None:
        self.searches.set(key, replace(outcome, products=list(outcome.products)))
        logger.info(
            "Cached %d results for '%s'", len(outcome.products), key[0]
        )

    def get_detail(
        self, retailer: RetailerId, source_id: str
    ) -> ProductDetail | None:
        return self.details.get((retailer.value, source_id))

    def set_detail(self, product: ProductDetail) -> None:
        self.details.set((product.retailer.value, product.source_id), product)

    def clear(self) -> int:
        """Purge both caches; returns the total entries removed."""
        return self.searches.clear() + self.details.clear()
