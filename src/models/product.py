# src/models/product.py

"""Normalized product models shared by every retailer adapter."""

from dataclasses import dataclass, field
from enum import StrEnum


class RetailerId(StrEnum):
    """Stable identifiers for the registered retailer integrations."""

    GOOGLE_SHOPPING = "google_shopping"
    EBAY = "ebay"
    BESTBUY = "bestbuy"
    WALMART = "walmart"
    AMAZON = "amazon"

    @property
    def label(self) -> str:
        """Human-readable retailer name."""
        return _LABELS[self]


_LABELS: dict[RetailerId, str] = {
    RetailerId.GOOGLE_SHOPPING: "Google Shopping",
    RetailerId.EBAY: "eBay",
    RetailerId.BESTBUY: "Best Buy",
    RetailerId.WALMART: "Walmart",
    RetailerId.AMAZON: "Amazon",
}


class SortOrder(StrEnum):
    """Result ordering applied after merge and dedup."""

    RELEVANCE = "relevance"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"


@dataclass(eq=False)
class ProductSummary:
    """A single product listing as returned by any retailer.

    Identity is the ``(source_id, retailer)`` pair.  Names are not
    stable across retailers, so they never take part in equality.
    """

    source_id: str
    retailer: RetailerId
    name: str
    price: float | None = None
    currency: str = "USD"
    description: str | None = None
    original_price: float | None = None
    image_urls: list[str] = field(default_factory=lambda: list[str]())
    brand: str = ""
    category: str | None = None
    in_stock: bool = True
    rating: float | None = None
    review_count: int | None = None
    detail_url: str | None = None

    @property
    def key(self) -> tuple[str, RetailerId]:
        """Identity pair used for equality, hashing and dedup."""
        return (self.source_id, self.retailer)

    @property
    def discount_percentage(self) -> float | None:
        """Percent off ``original_price``, or ``None`` if not discounted."""
        if (
            self.price is None
            or not self.original_price
            or self.original_price <= self.price
        ):
            return None
        saved = self.original_price - self.price
        return round(saved / self.original_price * 100, 1)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProductSummary):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)


@dataclass(eq=False)
class ProductDetail(ProductSummary):
    """Full product record from a single-item lookup."""

    specifications: dict[str, str] = field(
        default_factory=lambda: dict[str, str]()
    )
    seller: str | None = None

    def summary(self) -> ProductSummary:
        """Project the detail down to a plain summary."""
        return ProductSummary(
            source_id=self.source_id,
            retailer=self.retailer,
            name=self.name,
            price=self.price,
            currency=self.currency,
            description=self.description,
            original_price=self.original_price,
            image_urls=list(self.image_urls),
            brand=self.brand,
            category=self.category,
            in_stock=self.in_stock,
            rating=self.rating,
            review_count=self.review_count,
            detail_url=self.detail_url,
        )
