# src/models/search.py

"""Request and outcome containers for coordinated searches."""

from dataclasses import dataclass, field

from src.models.errors import ErrorKind, InvalidSearchRequest
from src.models.product import (
    ProductDetail,
    ProductSummary,
    RetailerId,
    SortOrder,
)


@dataclass(frozen=True)
class SearchRequest:
    """An immutable search dispatched across retailers.

    An empty ``retailers`` set means every registered retailer.
    """

    query: str
    retailers: frozenset[RetailerId] = frozenset()
    max_results_per_retailer: int = 20
    sort_order: SortOrder = SortOrder.RELEVANCE

    def __post_init__(self) -> None:
        if not self.query or not self.query.strip():
            raise InvalidSearchRequest("query must not be empty")
        if self.max_results_per_retailer <= 0:
            raise InvalidSearchRequest(
                "max_results_per_retailer must be positive"
            )
        if not isinstance(self.retailers, frozenset):
            object.__setattr__(
                self, "retailers", frozenset(self.retailers)
            )

    @property
    def normalized_query(self) -> str:
        """Trimmed, lower-cased query text."""
        return normalize_query(self.query)


def normalize_query(query: str) -> str:
    """Normalise free text for cache keys and term matching."""
    return query.strip().lower()


@dataclass
class SearchOutcome:
    """Merged results of a search, encoding partial failure as data.

    Empty ``products`` with non-empty ``failed_retailers`` is a total
    failure; both non-empty is a partial success.  Neither is an
    exception.
    """

    query: str
    products: list[ProductSummary] = field(
        default_factory=lambda: list[ProductSummary]()
    )
    failed_retailers: dict[RetailerId, ErrorKind] = field(
        default_factory=lambda: dict[RetailerId, ErrorKind]()
    )
    error_messages: dict[RetailerId, str] = field(
        default_factory=lambda: dict[RetailerId, str]()
    )
    degraded_retailers: set[RetailerId] = field(
        default_factory=lambda: set[RetailerId]()
    )
    from_cache: bool = False

    @property
    def is_total_failure(self) -> bool:
        """No products and at least one failed retailer."""
        return not self.products and bool(self.failed_retailers)

    @property
    def is_partial_success(self) -> bool:
        """Some products, some failed retailers."""
        return bool(self.products) and bool(self.failed_retailers)


@dataclass
class DetailOutcome:
    """Result of a guarded single-product lookup."""

    retailer: RetailerId
    source_id: str
    product: ProductDetail | None = None
    error: ErrorKind | None = None
    message: str = ""
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        """True when a product was returned."""
        return self.product is not None
