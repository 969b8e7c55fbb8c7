# src/filters/hybrid_resolver.py

"""Answer free-text queries for retailers whose keyword search is broken.

The query is mapped onto a curated list of known product ids, and
each id is looked up individually through the retailer's detail
endpoint.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from src.config.settings import Settings
from src.models.errors import RetailerError
from src.models.product import ProductDetail, ProductSummary
from src.models.search import normalize_query

if TYPE_CHECKING:
    from src.adapters.base_adapter import RetailerAdapter

logger = logging.getLogger("aggregator.hybrid")


class HybridResolver:
    """Map a query to candidate product ids and look them up."""

    def __init__(
        self,
        term_ids: dict[str, list[str]] | None = None,
        broad_terms: dict[str, list[str]] | None = None,
        default_ids: list[str] | None = None,
        max_lookups: int | None = None,
    ) -> None:
        self.term_ids = (
            term_ids if term_ids is not None else Settings.BESTBUY_TERM_SKUS
        )
        self.broad_terms = (
            broad_terms
            if broad_terms is not None
            else Settings.BESTBUY_BROAD_TERMS
        )
        self.default_ids = (
            default_ids
            if default_ids is not None
            else Settings.BESTBUY_DEFAULT_SKUS
        )
        self.max_lookups = (
            max_lookups
            if max_lookups is not None
            else Settings.HYBRID_MAX_LOOKUPS
        )

    def candidate_ids(self, query: str) -> list[str]:
        """Resolve *query* to an ordered, never-empty id list.

        1. Direct match: the first mapped term contained in the query
           (or containing it).
        2. Broad match: the union of ids for every mapped term under
           each broad keyword found in the query.
        3. Otherwise the configured default ids.
        """
        q = normalize_query(query)

        if q:
            for term, ids in self.term_ids.items():
                if term in q or q in term:
                    logger.debug("Direct match '%s' -> '%s'", q, term)
                    return list(ids)

        union: list[str] = []
        for keyword, terms in self.broad_terms.items():
            if keyword not in q:
                continue
            for term in terms:
                for item_id in self.term_ids.get(term, []):
                    if item_id not in union:
                        union.append(item_id)
        if union:
            logger.debug("Broad match '%s' -> %d ids", q, len(union))
            return union

        logger.debug("No mapping for '%s', using defaults", q)
        return list(self.default_ids)

    async def resolve(
        self,
        adapter: "RetailerAdapter",
        query: str,
        max_results: int,
    ) -> list[ProductSummary]:
        """Fetch details for the candidate ids concurrently.

        Individual failures are skipped.  If every lookup fails the
        last error is re-raised so the caller can record the failure.
        """
        limit = min(self.max_lookups, max_results)
        ids = self.candidate_ids(query)[:limit]
        results = await asyncio.gather(
            *(adapter.get_details(item_id) for item_id in ids),
            return_exceptions=True,
        )

        products: list[ProductSummary] = []
        last_error: RetailerError | None = None
        for item_id, result in zip(ids, results):
            if isinstance(result, ProductDetail):
                products.append(result.summary())
            elif isinstance(result, RetailerError):
                last_error = result
                logger.warning(
                    "[%s] Lookup for %s failed: %s",
                    adapter.retailer_id.value,
                    item_id,
                    result.describe(),
                )
            elif isinstance(result, BaseException):
                raise result

        if not products and last_error is not None:
            raise last_error
        logger.info(
            "[%s] Hybrid search for '%s' resolved %d/%d ids",
            adapter.retailer_id.value,
            query,
            len(products),
            len(ids),
        )
        return products
