# src/adapters/demo_catalog.py

"""Canned catalog served by adapters running in degraded (demo) mode."""

from typing import Any

from src.models.errors import ErrorKind, RetailerError
from src.models.product import ProductDetail, ProductSummary, RetailerId

_BBY_IMAGE = (
    "https://pisces.bbystatic.com/image2/BestBuy_US/images/products/"
    "{prefix}/{sku}_sd.jpg"
)

# Best Buy SKUs line up with the hybrid resolver's term table
_CATALOG: dict[RetailerId, list[dict[str, Any]]] = {
    RetailerId.BESTBUY: [
        {
            "source_id": "6501022",
            "name": "Beats Solo 4 Wireless On-Ear Headphones - Matte Black",
            "description": (
                "Personalized Spatial Audio, longer battery life, and "
                "enhanced comfort."
            ),
            "price": 199.99,
            "brand": "Beats",
            "category": "Audio",
            "rating": 4.5,
            "review_count": 892,
        },
        {
            "source_id": "6509928",
            "name": "Apple - iPhone 15 Pro 128GB - Natural Titanium",
            "description": (
                "Titanium with a brushed finish. USB-C. A17 Pro chip. "
                "48MP camera."
            ),
            "price": 999.99,
            "brand": "Apple",
            "category": "Cell Phones",
            "rating": 4.8,
            "review_count": 243,
        },
        {
            "source_id": "6538111",
            "name": "Sony - Alpha a7 IV Full-frame Mirrorless Camera",
            "description": (
                "33MP full-frame sensor, 4K 60p video, 5-axis in-body "
                "stabilization."
            ),
            "price": 2499.99,
            "brand": "Sony",
            "category": "Digital Cameras",
            "rating": 4.9,
            "review_count": 127,
        },
        {
            "source_id": "6522159",
            "name": 'Samsung - 65" Class S95C OLED 4K Smart TV',
            "description": "OLED panel with perfect blacks and vibrant colors.",
            "price": 2799.99,
            "original_price": 3299.99,
            "brand": "Samsung",
            "category": "TVs",
            "rating": 4.7,
            "review_count": 186,
        },
        {
            "source_id": "6517592",
            "name": 'MacBook Pro 14" with M3 Pro Chip - Silver',
            "description": "M3 Pro chip built with 3-nanometer technology.",
            "price": 1999.99,
            "brand": "Apple",
            "category": "Computers & Tablets",
            "rating": 4.9,
            "review_count": 215,
        },
        {
            "source_id": "6535147",
            "name": (
                "Bose QuietComfort Ultra Wireless Noise Cancelling "
                "Headphones"
            ),
            "description": "Immersive spatial audio and premium comfort.",
            "price": 379.99,
            "original_price": 429.99,
            "brand": "Bose",
            "category": "Audio",
            "rating": 4.6,
            "review_count": 143,
        },
        {
            "source_id": "6418599",
            "name": (
                "Apple - AirPods Pro (2nd generation) with MagSafe Case "
                "- White"
            ),
            "description": "Adaptive Transparency and Active Noise Cancellation.",
            "price": 249.99,
            "brand": "Apple",
            "category": "Audio",
            "rating": 4.7,
            "review_count": 1265,
        },
    ],
    RetailerId.WALMART: [
        {
            "source_id": "5068187588",
            "name": "Apple AirPods Pro (2nd Generation) with USB-C",
            "description": "Active Noise Cancellation and Adaptive Audio.",
            "price": 189.0,
            "original_price": 249.0,
            "brand": "Apple",
            "category": "Headphones",
            "rating": 4.7,
            "review_count": 31250,
        },
        {
            "source_id": "1736740710",
            "name": "onn. 50\" Class 4K UHD LED Roku Smart TV",
            "description": "4K UHD resolution with built-in Roku streaming.",
            "price": 198.0,
            "brand": "onn.",
            "category": "TVs",
            "rating": 4.3,
            "review_count": 8120,
        },
        {
            "source_id": "3929496016",
            "name": "Sony WH-CH720N Wireless Noise Canceling Headphones",
            "description": "Lightweight over-ear headphones, 35 hour battery.",
            "price": 98.0,
            "original_price": 149.99,
            "brand": "Sony",
            "category": "Headphones",
            "rating": 4.5,
            "review_count": 2143,
        },
        {
            "source_id": "6179876450",
            "name": "HP 15.6\" Laptop, Intel Core i5, 8GB RAM, 512GB SSD",
            "description": "Everyday laptop with a full HD display.",
            "price": 429.0,
            "brand": "HP",
            "category": "Laptops",
            "rating": 4.2,
            "review_count": 964,
        },
    ],
}

_URLS: dict[RetailerId, str] = {
    RetailerId.BESTBUY: "https://www.bestbuy.com/site/{sku}.p",
    RetailerId.WALMART: "https://www.walmart.com/ip/{sku}",
}


def _build(retailer: RetailerId, row: dict[str, Any]) -> ProductDetail:
    sku = row["source_id"]
    if retailer is RetailerId.BESTBUY:
        images = [_BBY_IMAGE.format(prefix=sku[:4], sku=sku)]
    else:
        images = []
    return ProductDetail(
        source_id=sku,
        retailer=retailer,
        name=row["name"],
        price=row["price"],
        description=row.get("description"),
        original_price=row.get("original_price"),
        image_urls=images,
        brand=row.get("brand", ""),
        category=row.get("category"),
        rating=row.get("rating"),
        review_count=row.get("review_count"),
        detail_url=_URLS[retailer].format(sku=sku),
        seller=retailer.label,
    )


def demo_products(retailer: RetailerId) -> list[ProductDetail]:
    """Every canned product for *retailer* (empty if it has none)."""
    return [_build(retailer, row) for row in _CATALOG.get(retailer, [])]


def demo_search(
    retailer: RetailerId, query: str, max_results: int
) -> list[ProductSummary]:
    """Case-insensitive substring match over name, description, brand
    and category.  An empty query returns the whole catalog."""
    needle = query.strip().lower()
    matches: list[ProductSummary] = []
    for product in demo_products(retailer):
        haystack = " ".join(
            [
                product.name,
                product.description or "",
                product.brand,
                product.category or "",
            ]
        ).lower()
        if not needle or needle in haystack:
            matches.append(product.summary())
    return matches[:max_results]


def demo_detail(retailer: RetailerId, source_id: str) -> ProductDetail:
    """Look up one canned product, raising NOT_FOUND if absent."""
    for product in demo_products(retailer):
        if product.source_id == source_id:
            return product
    raise RetailerError(
        ErrorKind.NOT_FOUND,
        retailer=retailer.value,
        message=f"no demo product {source_id}",
    )


def demo_related(
    retailer: RetailerId, source_id: str, max_results: int = 10
) -> list[ProductSummary]:
    """Other canned products sharing the item's category."""
    anchor = demo_detail(retailer, source_id)
    return [
        p.summary()
        for p in demo_products(retailer)
        if p.category == anchor.category and p.source_id != source_id
    ][:max_results]
