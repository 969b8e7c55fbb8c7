# src/adapters/bestbuy_adapter.py

"""Adapter for Best Buy via the RapidAPI ``bestbuy-usa`` endpoint."""

import asyncio
from typing import Any

from src.adapters.base_adapter import RetailerAdapter
from src.filters.hybrid_resolver import HybridResolver
from src.models.errors import ErrorKind, RetailerError
from src.models.product import ProductDetail, ProductSummary, RetailerId


class BestBuyAdapter(RetailerAdapter):
    """Best Buy product lookups by SKU.

    The upstream keyword search is unreliable, so the coordinator
    routes free-text queries through the hybrid resolver and this
    adapter mostly serves ``/product/{sku}``.
    """

    retailer_id = RetailerId.BESTBUY
    credential_setting = "BESTBUY_RAPIDAPI_KEY"
    native_search_unreliable = True
    supports_demo_mode = True

    BASE_URL = "https://bestbuy-usa.p.rapidapi.com"
    HOST = "bestbuy-usa.p.rapidapi.com"
    RELATED_LIMIT = 5

    def _headers(self) -> dict[str, str]:
        return {"X-RapidAPI-Key": self.api_key, "X-RapidAPI-Host": self.HOST}

    @staticmethod
    def _unwrap(data: Any) -> dict[str, Any] | None:
        """Accept the direct, ``{product}`` and ``{success, data}`` shapes."""
        if not isinstance(data, dict):
            return None
        if "sku" in data:
            return data
        if isinstance(data.get("product"), dict):
            return data["product"]
        if data.get("success") and isinstance(data.get("data"), dict):
            return data["data"]
        return None

    def _parse_product(self, raw: dict[str, Any]) -> ProductDetail:
        regular = self.extract_price(
            raw.get("regularPrice", raw.get("price"))
        )
        sale = self.extract_price(raw.get("salePrice"))
        on_sale = bool(raw.get("onSale")) or (
            sale is not None and regular is not None and sale < regular
        )
        price = sale if on_sale and sale is not None else regular
        original = regular if on_sale and regular != price else None

        images = [
            url
            for url in (
                raw.get("largeImage"),
                raw.get("image"),
                raw.get("thumbnailImage"),
            )
            if url
        ]
        path = raw.get("categoryPath") or []
        if path and isinstance(path[-1], dict):
            category = path[-1].get("name")
        elif path:
            category = str(path[-1])
        else:
            category = raw.get("category")

        details = raw.get("details") or []
        specifications = {
            str(d["name"]): str(d.get("value", ""))
            for d in details
            if isinstance(d, dict) and d.get("name")
        }
        if raw.get("modelNumber"):
            specifications.setdefault("Model", str(raw["modelNumber"]))

        return ProductDetail(
            source_id=str(raw.get("sku", "")),
            retailer=self.retailer_id,
            name=str(raw.get("name", "")),
            price=price,
            original_price=original,
            description=self.clean_text(
                raw.get("longDescription")
                or raw.get("longDescriptionHTML")
                or raw.get("description")
                or raw.get("shortDescription")
            ),
            image_urls=images,
            brand=str(raw.get("manufacturer", "") or ""),
            category=category,
            in_stock=bool(
                raw.get("onlineAvailability", True)
                or raw.get("inStoreAvailability", False)
            ),
            rating=self.extract_price(raw.get("customerReviewAverage")),
            review_count=self.to_int(raw.get("customerReviewCount")),
            detail_url=raw.get("url"),
            seller=self.retailer_id.label,
            specifications=specifications,
        )

    async def _search(
        self, query: str, max_results: int
    ) -> list[ProductSummary]:
        data = await self._fetch_json(
            f"{self.BASE_URL}/products/search",
            headers=self._headers(),
            params={"query": query, "page": 1},
        )
        rows: list[Any] = []
        if isinstance(data, dict):
            rows = data.get("products") or data.get("data") or []
        elif isinstance(data, list):
            rows = data
        products = [
            self._parse_product(row).summary()
            for row in rows
            if isinstance(row, dict) and row.get("sku")
        ]
        return products[:max_results]

    async def _get_details(self, source_id: str) -> ProductDetail:
        data = await self._fetch_json(
            f"{self.BASE_URL}/product/{source_id}",
            headers=self._headers(),
        )
        raw = self._unwrap(data)
        if raw is None:
            raise RetailerError(
                ErrorKind.DECODING_FAILED,
                retailer=self.retailer_id.value,
                message=f"unrecognised response for SKU {source_id}",
            )
        return self._parse_product(raw)

    async def _get_related(self, source_id: str) -> list[ProductSummary]:
        anchor = await self._get_details(source_id)
        if not anchor.category:
            return []
        skus = [
            sku
            for sku in HybridResolver().candidate_ids(anchor.category)
            if sku != source_id
        ][: self.RELATED_LIMIT]
        results = await asyncio.gather(
            *(self._get_details(sku) for sku in skus),
            return_exceptions=True,
        )
        related: list[ProductSummary] = []
        for sku, result in zip(skus, results):
            if isinstance(result, ProductDetail):
                related.append(result.summary())
            elif isinstance(result, RetailerError):
                self.logger.warning(
                    "[bestbuy] Related lookup for SKU %s failed: %s",
                    sku,
                    result.describe(),
                )
            elif isinstance(result, BaseException):
                raise result
        return related
