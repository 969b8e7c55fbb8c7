# src/adapters/ebay_adapter.py

"""Adapter for the eBay Browse API."""

from typing import Any
from urllib.parse import quote

from src.adapters.base_adapter import RetailerAdapter
from src.models.product import ProductDetail, ProductSummary, RetailerId


class EbayAdapter(RetailerAdapter):
    """Marketplace listings via the Browse API (OAuth bearer token)."""

    retailer_id = RetailerId.EBAY
    credential_setting = "EBAY_OAUTH_TOKEN"

    BASE_URL = "https://api.ebay.com/buy/browse/v1"
    MARKETPLACE_ID = "EBAY_US"
    RELATED_LIMIT = 10

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "X-EBAY-C-MARKETPLACE-ID": self.MARKETPLACE_ID,
        }

    def _images(self, item: dict[str, Any]) -> list[str]:
        urls: list[str] = []
        primary = (item.get("image") or {}).get("imageUrl")
        if primary:
            urls.append(primary)
        for extra in item.get("additionalImages") or []:
            url = extra.get("imageUrl") if isinstance(extra, dict) else None
            if url and url not in urls:
                urls.append(url)
        return urls

    @staticmethod
    def _in_stock(item: dict[str, Any]) -> bool:
        availabilities = item.get("estimatedAvailabilities") or []
        if not availabilities:
            return True
        status = availabilities[0].get("estimatedAvailabilityStatus")
        return status != "OUT_OF_STOCK"

    def _parse_summary(self, item: dict[str, Any]) -> ProductSummary | None:
        """Parse one ``itemSummaries`` entry."""
        item_id = item.get("itemId")
        title = item.get("title")
        if not item_id or not title:
            return None
        price = item.get("price") or {}
        original = (
            (item.get("marketingPrice") or {}).get("originalPrice") or {}
        )
        categories = item.get("categories") or []
        return ProductSummary(
            source_id=str(item_id),
            retailer=self.retailer_id,
            name=str(title),
            price=self.extract_price(price.get("value")),
            currency=str(price.get("currency") or "USD"),
            original_price=self.extract_price(original.get("value")),
            description=self.clean_text(item.get("shortDescription")),
            image_urls=self._images(item),
            category=(
                categories[0].get("categoryName") if categories else None
            ),
            detail_url=item.get("itemWebUrl"),
        )

    def _parse_item(self, item: dict[str, Any]) -> ProductDetail:
        """Parse a full ``item/{id}`` response."""
        price = item.get("price") or {}
        original = (
            (item.get("marketingPrice") or {}).get("originalPrice") or {}
        )
        aspects = {
            str(a["name"]): str(a.get("value", ""))
            for a in item.get("localizedAspects") or []
            if isinstance(a, dict) and a.get("name")
        }
        if item.get("condition"):
            aspects.setdefault("Condition", str(item["condition"]))
        rating = item.get("reviewRating") or {}
        path = str(item.get("categoryPath") or "")
        return ProductDetail(
            source_id=str(item.get("itemId", "")),
            retailer=self.retailer_id,
            name=str(item.get("title", "")),
            price=self.extract_price(price.get("value")),
            currency=str(price.get("currency") or "USD"),
            original_price=self.extract_price(original.get("value")),
            description=self.clean_text(
                item.get("shortDescription") or item.get("description")
            ),
            image_urls=self._images(item),
            brand=str(item.get("brand", "") or ""),
            category=path.split("|")[-1] if path else None,
            in_stock=self._in_stock(item),
            rating=self.extract_price(rating.get("averageRating")),
            review_count=self.to_int(rating.get("reviewCount")),
            detail_url=item.get("itemWebUrl"),
            seller=(item.get("seller") or {}).get("username"),
            specifications=aspects,
        )

    async def _summaries(self, params: dict[str, Any]) -> list[ProductSummary]:
        data = await self._fetch_json(
            f"{self.BASE_URL}/item_summary/search",
            headers=self._headers(),
            params=params,
        )
        products: list[ProductSummary] = []
        for item in (data or {}).get("itemSummaries") or []:
            parsed = self._parse_summary(item)
            if parsed is not None:
                products.append(parsed)
        return products

    async def _search(
        self, query: str, max_results: int
    ) -> list[ProductSummary]:
        products = await self._summaries(
            {"q": query, "limit": min(max_results, 200)}
        )
        self.logger.info("[ebay] %d results for '%s'", len(products), query)
        return products[:max_results]

    async def _get_details(self, source_id: str) -> ProductDetail:
        data = await self._fetch_json(
            f"{self.BASE_URL}/item/{quote(source_id, safe='|')}",
            headers=self._headers(),
        )
        return self._parse_item(data or {})

    async def _get_related(self, source_id: str) -> list[ProductSummary]:
        data = await self._fetch_json(
            f"{self.BASE_URL}/item/{quote(source_id, safe='|')}",
            headers=self._headers(),
        )
        category_id = (data or {}).get("categoryId")
        if not category_id:
            return []
        products = await self._summaries(
            {"category_ids": category_id, "limit": self.RELATED_LIMIT + 1}
        )
        return [p for p in products if p.source_id != source_id][
            : self.RELATED_LIMIT
        ]
