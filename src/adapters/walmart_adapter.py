# src/adapters/walmart_adapter.py

"""Adapter for Walmart via the RapidAPI ``walmart-api4`` endpoint."""

from typing import Any

from src.adapters.base_adapter import RetailerAdapter
from src.models.errors import ErrorKind, RetailerError
from src.models.product import ProductDetail, ProductSummary, RetailerId


class WalmartAdapter(RetailerAdapter):
    """Walmart catalog search and product details."""

    retailer_id = RetailerId.WALMART
    credential_setting = "WALMART_RAPIDAPI_KEY"
    supports_demo_mode = True

    BASE_URL = "https://walmart-api4.p.rapidapi.com"
    HOST = "walmart-api4.p.rapidapi.com"
    PRODUCT_PAGE = "https://www.walmart.com/ip/{item_id}"
    RELATED_LIMIT = 10

    def _headers(self) -> dict[str, str]:
        return {"X-RapidAPI-Key": self.api_key, "X-RapidAPI-Host": self.HOST}

    @staticmethod
    def _in_stock(availability: Any) -> bool:
        if isinstance(availability, dict):
            return bool(availability.get("inStock", True))
        return True

    def _parse_product(self, raw: dict[str, Any]) -> ProductDetail:
        price = raw.get("price") or {}
        if not isinstance(price, dict):
            price = {"current": price}
        rating = raw.get("rating") or {}
        if not isinstance(rating, dict):
            rating = {"average": rating}
        images = [
            img["url"] if isinstance(img, dict) else str(img)
            for img in raw.get("images") or []
            if img
        ]
        item_id = str(raw.get("id") or raw.get("usItemId") or "")
        return ProductDetail(
            source_id=item_id,
            retailer=self.retailer_id,
            name=str(raw.get("title") or raw.get("name") or ""),
            price=self.extract_price(price.get("current")),
            original_price=self.extract_price(price.get("original")),
            currency=str(price.get("currency") or "USD"),
            description=self.clean_text(raw.get("description")),
            image_urls=images,
            brand=str(raw.get("brand", "") or ""),
            category=raw.get("category"),
            in_stock=self._in_stock(raw.get("availability")),
            rating=self.extract_price(rating.get("average")),
            review_count=self.to_int(rating.get("count")),
            detail_url=raw.get("url")
            or self.PRODUCT_PAGE.format(item_id=item_id),
            seller=raw.get("sellerName") or self.retailer_id.label,
            specifications={
                str(k): str(v)
                for k, v in (raw.get("specifications") or {}).items()
            },
        )

    async def _search(
        self, query: str, max_results: int
    ) -> list[ProductSummary]:
        data = await self._fetch_json(
            f"{self.BASE_URL}/search",
            headers=self._headers(),
            params={"q": query, "page": 1},
        )
        rows: list[Any] = []
        if isinstance(data, dict):
            rows = data.get("products") or data.get("items") or []
        elif isinstance(data, list):
            rows = data
        products = [
            self._parse_product(row).summary()
            for row in rows
            if isinstance(row, dict) and (row.get("id") or row.get("usItemId"))
        ]
        self.logger.info(
            "[walmart] %d results for '%s'", len(products), query
        )
        return products[:max_results]

    async def _get_details(self, source_id: str) -> ProductDetail:
        data = await self._fetch_json(
            f"{self.BASE_URL}/product-details",
            headers=self._headers(),
            params={"url": self.PRODUCT_PAGE.format(item_id=source_id)},
        )
        raw = data.get("product", data) if isinstance(data, dict) else None
        if not isinstance(raw, dict) or not (raw.get("title") or raw.get("name")):
            raise RetailerError(
                ErrorKind.NOT_FOUND,
                retailer=self.retailer_id.value,
                message=f"no product details for {source_id}",
            )
        raw.setdefault("id", source_id)
        return self._parse_product(raw)

    async def _get_related(self, source_id: str) -> list[ProductSummary]:
        anchor = await self._get_details(source_id)
        term = anchor.category or anchor.brand or anchor.name
        results = await self._search(term, self.RELATED_LIMIT + 1)
        return [p for p in results if p.source_id != source_id][
            : self.RELATED_LIMIT
        ]
