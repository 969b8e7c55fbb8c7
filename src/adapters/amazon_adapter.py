# src/adapters/amazon_adapter.py

"""Adapter for Amazon listings via the Axesso data service."""

from typing import Any

from src.adapters.base_adapter import RetailerAdapter
from src.models.errors import ErrorKind, RetailerError
from src.models.product import ProductDetail, ProductSummary, RetailerId


class AmazonAdapter(RetailerAdapter):
    """Amazon keyword search and ASIN lookups through Axesso."""

    retailer_id = RetailerId.AMAZON
    credential_setting = "AXESSO_API_KEY"

    BASE_URL = "https://api.axesso.de/amz"
    PRODUCT_PAGE = "https://www.amazon.com/dp/{asin}"
    DOMAIN_CODE = "com"
    RELATED_LIMIT = 10

    def _headers(self) -> dict[str, str]:
        return {"axesso-api-key": self.api_key}

    def _rating(self, value: Any) -> float | None:
        # e.g. "4.5 out of 5 stars"
        return self.extract_price(value)

    def _parse_found(self, raw: dict[str, Any]) -> ProductSummary | None:
        """Parse one ``foundProducts`` entry of a keyword search."""
        asin = raw.get("asin")
        title = raw.get("productTitle")
        if not asin or not title:
            return None
        price = self.extract_price(raw.get("price"))
        original = self.extract_price(raw.get("originalPrice"))
        image = raw.get("imageUrl")
        path = str(raw.get("categoryPath") or "")
        return ProductSummary(
            source_id=str(asin),
            retailer=self.retailer_id,
            name=str(title),
            price=price,
            original_price=original if original and original != price else None,
            currency=str(raw.get("currency") or "USD"),
            image_urls=[image] if image else [],
            brand=str(raw.get("manufacturer", "") or ""),
            category=path.split(">")[-1].strip() if path else None,
            in_stock=str(raw.get("availability") or "").lower()
            != "currently unavailable",
            rating=self._rating(raw.get("productRating")),
            review_count=self.to_int(raw.get("countReview")),
            detail_url=raw.get("productUrl")
            or self.PRODUCT_PAGE.format(asin=asin),
        )

    def _parse_lookup(self, raw: dict[str, Any]) -> ProductDetail:
        """Parse an ``amazon-lookup-product`` response."""
        asin = str(raw.get("asin", ""))
        price = self.extract_price(raw.get("price"))
        retail = self.extract_price(raw.get("retailPrice"))
        availability = raw.get("warehouseAvailability") or ""
        categories = raw.get("categoriesExtended") or raw.get("categories") or []
        last_category = categories[-1] if categories else None
        if isinstance(last_category, dict):
            last_category = last_category.get("name")
        details = raw.get("productDetails") or []
        return ProductDetail(
            source_id=asin,
            retailer=self.retailer_id,
            name=str(raw.get("productTitle", "")),
            price=price,
            original_price=retail if retail and retail != price else None,
            description=self.clean_text(raw.get("productDescription")),
            image_urls=[u for u in raw.get("imageUrlList") or [] if u],
            brand=str(raw.get("manufacturer", "") or ""),
            category=str(last_category) if last_category else None,
            in_stock="unavailable" not in str(availability).lower(),
            rating=self._rating(raw.get("productRating")),
            review_count=self.to_int(raw.get("countReview")),
            detail_url=self.PRODUCT_PAGE.format(asin=asin),
            seller=raw.get("soldBy"),
            specifications={
                str(d["name"]): str(d.get("value", ""))
                for d in details
                if isinstance(d, dict) and d.get("name")
            },
        )

    async def _search(
        self, query: str, max_results: int
    ) -> list[ProductSummary]:
        data = await self._fetch_json(
            f"{self.BASE_URL}/amazon-search-by-keyword-asin",
            headers=self._headers(),
            params={
                "keyword": query,
                "domainCode": self.DOMAIN_CODE,
                "page": 1,
                "sortBy": "relevanceblender",
            },
        )
        products: list[ProductSummary] = []
        for raw in (data or {}).get("foundProducts") or []:
            if isinstance(raw, dict):
                parsed = self._parse_found(raw)
                if parsed is not None:
                    products.append(parsed)
        self.logger.info(
            "[amazon] %d results for '%s'", len(products), query
        )
        return products[:max_results]

    async def _get_details(self, source_id: str) -> ProductDetail:
        data = await self._fetch_json(
            f"{self.BASE_URL}/amazon-lookup-product",
            headers=self._headers(),
            params={"url": self.PRODUCT_PAGE.format(asin=source_id)},
        )
        if not isinstance(data, dict) or not data.get("productTitle"):
            raise RetailerError(
                ErrorKind.NOT_FOUND,
                retailer=self.retailer_id.value,
                message=f"no product for ASIN {source_id}",
            )
        data.setdefault("asin", source_id)
        return self._parse_lookup(data)

    async def _get_related(self, source_id: str) -> list[ProductSummary]:
        anchor = await self._get_details(source_id)
        term = anchor.category or anchor.name
        results = await self._search(term, self.RELATED_LIMIT + 1)
        return [p for p in results if p.source_id != source_id][
            : self.RELATED_LIMIT
        ]
