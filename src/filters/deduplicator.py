# src/filters/deduplicator.py

"""Merging, deduplication and ordering of multi-retailer results."""

import logging
import re

from src.models.product import ProductSummary, SortOrder

logger = logging.getLogger("aggregator.filters")


class ProductDeduplicator:
    """Remove duplicate products and order the merged stream."""

    @staticmethod
    def _normalise_title(title: str) -> str:
        """Normalise a title to a comparable key.

        Lowercases, strips non-alphanumeric characters,
        and collapses whitespace.
        """
        lowered = title.lower()
        alpha_only = re.sub(r"[^a-z0-9\s]", "", lowered)
        return " ".join(alpha_only.split())

    @staticmethod
    def deduplicate(
        products: list[ProductSummary],
    ) -> tuple[list[ProductSummary], int]:
        """Drop repeated ``(source_id, retailer)`` pairs.

        The first occurrence wins and relative order is preserved.
        Returns the deduplicated list and the count of removed dupes.
        """
        seen: set[tuple[str, str]] = set()
        kept: list[ProductSummary] = []
        for product in products:
            key = (product.source_id, product.retailer.value)
            if key in seen:
                continue
            seen.add(key)
            kept.append(product)

        removed = len(products) - len(kept)
        if removed:
            logger.info(
                "Deduplication removed %d duplicate products",
                removed,
            )
        return kept, removed

    @staticmethod
    def sort_products(
        products: list[ProductSummary],
        order: SortOrder,
    ) -> list[ProductSummary]:
        """Stable sort; products without a price always go last."""
        if order is SortOrder.PRICE_ASC:
            return sorted(
                products,
                key=lambda p: (p.price is None, p.price or 0.0),
            )
        if order is SortOrder.PRICE_DESC:
            return sorted(
                products,
                key=lambda p: (p.price is None, -(p.price or 0.0)),
            )
        return list(products)

    @staticmethod
    def merge(
        batches: list[list[ProductSummary]],
        order: SortOrder,
        limit: int,
    ) -> list[ProductSummary]:
        """Concatenate per-retailer batches, dedup, sort and truncate."""
        combined = [p for batch in batches for p in batch]
        unique, _ = ProductDeduplicator.deduplicate(combined)
        ordered = ProductDeduplicator.sort_products(unique, order)
        return ordered[:limit]

    @staticmethod
    def name_similarity(a: str, b: str) -> float:
        """Jaccard similarity of the two names' word sets (0.0 to 1.0)."""
        words_a = set(ProductDeduplicator._normalise_title(a).split())
        words_b = set(ProductDeduplicator._normalise_title(b).split())
        if not words_a or not words_b:
            return 0.0
        return len(words_a & words_b) / len(words_a | words_b)
