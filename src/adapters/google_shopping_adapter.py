# src/adapters/google_shopping_adapter.py

"""Adapter for Google Shopping results via SerpAPI."""

from typing import Any

from src.adapters.base_adapter import RetailerAdapter
from src.models.errors import ErrorKind, RetailerError
from src.models.product import ProductDetail, ProductSummary, RetailerId


class GoogleShoppingAdapter(RetailerAdapter):
    """General shopping search across many merchants through SerpAPI.

    SerpAPI reports quota and key problems as HTTP 200 with an
    ``error`` field, so every body is checked before parsing.
    """

    retailer_id = RetailerId.GOOGLE_SHOPPING
    credential_setting = "SERPAPI_API_KEY"

    API_URL = "https://serpapi.com/search.json"
    RELATED_LIMIT = 10

    # ── Private helpers ──────────────────────────────────

    async def _call(self, params: dict[str, Any]) -> dict[str, Any]:
        data = await self._fetch_json(
            self.API_URL,
            params={**params, "api_key": self.api_key},
        )
        if not isinstance(data, dict):
            raise RetailerError(
                ErrorKind.DECODING_FAILED,
                retailer=self.retailer_id.value,
                message="expected a JSON object",
            )
        error = data.get("error")
        if error:
            raise self._error_from_body(str(error))
        return data

    def _error_from_body(self, message: str) -> RetailerError:
        lower = message.lower()
        if "api key" in lower or "unauthorized" in lower:
            kind = ErrorKind.AUTHENTICATION_FAILED
        elif "run out of searches" in lower or "limit" in lower:
            kind = ErrorKind.RATE_LIMIT_EXCEEDED
        elif "hasn't returned any results" in lower:
            kind = ErrorKind.NOT_FOUND
        else:
            kind = ErrorKind.CUSTOM
        return RetailerError(
            kind, retailer=self.retailer_id.value, message=message
        )

    def _parse_result(self, item: dict[str, Any]) -> ProductSummary | None:
        """Parse one ``shopping_results`` entry."""
        source_id = item.get("product_id") or item.get("position")
        title = item.get("title")
        if not source_id or not title:
            return None
        price = self.extract_price(
            item.get("extracted_price", item.get("price"))
        )
        original = self.extract_price(
            item.get("extracted_old_price", item.get("old_price"))
        )
        thumbnail = item.get("thumbnail")
        return ProductSummary(
            source_id=str(source_id),
            retailer=self.retailer_id,
            name=str(title),
            price=price,
            original_price=original,
            description=self.clean_text(item.get("snippet")),
            image_urls=[thumbnail] if thumbnail else [],
            brand=str(item.get("source", "") or ""),
            rating=self.extract_price(item.get("rating")),
            review_count=self.to_int(
                item.get("reviews", item.get("rating_count"))
            ),
            detail_url=item.get("product_link") or item.get("link"),
        )

    def _parse_product(
        self, source_id: str, data: dict[str, Any]
    ) -> ProductDetail:
        """Parse a ``google_product`` engine response."""
        product = data.get("product_results")
        if not isinstance(product, dict) or not product.get("title"):
            raise RetailerError(
                ErrorKind.NOT_FOUND,
                retailer=self.retailer_id.value,
                message=f"product {source_id} has no product_results",
            )
        sellers = (data.get("sellers_results") or {}).get(
            "online_sellers"
        ) or []
        first_seller: dict[str, Any] = sellers[0] if sellers else {}
        price = self.extract_price(
            first_seller.get("base_price")
            or first_seller.get("total_price")
            or (product.get("prices") or [None])[0]
        )
        media = product.get("media") or []
        images = [
            m["link"] for m in media if isinstance(m, dict) and m.get("link")
        ]
        specs_rows = (data.get("specs_results") or {}).items()
        specifications: dict[str, str] = {}
        for _section, rows in specs_rows:
            if isinstance(rows, dict):
                specifications.update(
                    {str(k): str(v) for k, v in rows.items()}
                )
        return ProductDetail(
            source_id=source_id,
            retailer=self.retailer_id,
            name=str(product["title"]),
            price=price,
            description=self.clean_text(product.get("description")),
            image_urls=images,
            brand=str(product.get("brand", "") or ""),
            rating=self.extract_price(product.get("rating")),
            review_count=self.to_int(product.get("reviews")),
            detail_url=first_seller.get("link"),
            seller=first_seller.get("name"),
            specifications=specifications,
        )

    # ── Upstream operations ──────────────────────────────

    async def _search(
        self, query: str, max_results: int
    ) -> list[ProductSummary]:
        data = await self._call(
            {
                "engine": "google_shopping",
                "q": query,
                "num": max_results,
                "gl": "us",
                "hl": "en",
            }
        )
        products: list[ProductSummary] = []
        for item in data.get("shopping_results") or []:
            parsed = self._parse_result(item)
            if parsed is not None:
                products.append(parsed)
        self.logger.info(
            "[google_shopping] %d results for '%s'", len(products), query
        )
        return products[:max_results]

    async def _get_details(self, source_id: str) -> ProductDetail:
        data = await self._call(
            {"engine": "google_product", "product_id": source_id, "gl": "us"}
        )
        return self._parse_product(source_id, data)

    async def _get_related(self, source_id: str) -> list[ProductSummary]:
        detail = await self._get_details(source_id)
        results = await self._search(detail.name, self.RELATED_LIMIT + 1)
        return [p for p in results if p.source_id != source_id][
            : self.RELATED_LIMIT
        ]
