# src/config/settings.py

"""Central configuration for the retail search aggregator."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the retail search aggregator."""

    # --- Upstream requests ---
    REQUEST_TIMEOUT: int = 15           # Seconds before a request times out
    MAX_RETRIES: int = 3                # Attempts on transient failures
    RETRY_DELAY: float = 0.5            # Linear back-off step (secs)

    # --- Coordinator ---
    UNIT_TIMEOUT: float = 20.0          # Per-adapter call budget (secs)
    SEARCH_TIMEOUT: float = 30.0        # Whole fan-out budget (secs)
    DEFAULT_MAX_RESULTS: int = 20       # Per retailer
    MAX_COMBINED_RESULTS: int = 100     # After merge + dedup
    INSTANT_SEARCH_DEBOUNCE: float = 0.3
    COMPARISON_SIMILARITY: float = 0.8  # Jaccard floor for price compare

    # --- Caching ---
    SEARCH_CACHE_TTL: float = 300.0     # 5 minutes
    DETAIL_CACHE_TTL: float = 600.0     # 10 minutes
    SEARCH_CACHE_MAX_ENTRIES: int = 200
    DETAIL_CACHE_MAX_ENTRIES: int = 1000
    SEARCH_CACHE_MAX_PRODUCTS: int = 20_000  # Total products held

    # --- Rate limits: (label, limit, window seconds) ---
    DEFAULT_RATE_LIMITS: list[tuple[str, int, float]] = [
        ("second", 1, 1.0),
        ("minute", 10, 60.0),
        ("hour", 100, 3600.0),
    ]
    RATE_LIMITS: dict[str, list[tuple[str, int, float]]] = {
        "google_shopping": [
            ("second", 1, 1.0),
            ("minute", 10, 60.0),
            ("hour", 100, 3600.0),
            ("month", 5000, 30 * 86400.0),
        ],
        "ebay": [
            ("second", 3, 1.0),
            ("minute", 50, 60.0),
            ("hour", 800, 3600.0),
            ("day", 5000, 86400.0),
        ],
        "bestbuy": [
            ("second", 5, 1.0),
            ("minute", 100, 60.0),
            ("hour", 1000, 3600.0),
        ],
        "walmart": [
            ("second", 2, 1.0),
            ("minute", 25, 60.0),
            ("hour", 500, 3600.0),
        ],
        "amazon": [
            ("second", 1, 1.0),
            ("minute", 20, 60.0),
            ("day", 1000, 86400.0),
        ],
    }

    # --- Circuit breakers: threshold, cooldown secs, half-open trials ---
    DEFAULT_CIRCUIT_BREAKER: tuple[int, float, int] = (5, 30.0, 3)
    CIRCUIT_BREAKER_CONFIGS: dict[str, tuple[int, float, int]] = {
        "google_shopping": (3, 60.0, 1),
        "ebay": (4, 45.0, 2),
        "bestbuy": (5, 30.0, 3),
        "walmart": (3, 60.0, 2),
        "amazon": (3, 60.0, 1),
    }

    # --- Price tracking ---
    PRICE_CHECK_INTERVAL: float = 30 * 60.0  # 30 minutes
    DEFAULT_DROP_PERCENT: float = 5.0        # Used when an alert sets none

    # --- Hybrid search (Best Buy product search endpoint is broken) ---
    HYBRID_MAX_LOOKUPS: int = 5
    BESTBUY_TERM_SKUS: dict[str, list[str]] = {
        "headphones": ["6501022", "6418599", "6535147", "6464297"],
        "earbuds": ["6418599", "6464297", "6501023"],
        "iphone": ["6509928", "6509933", "6509920"],
        "phone": ["6509928", "6509933", "6584017"],
        "macbook": ["6517592", "6517590", "6517598"],
        "laptop": ["6517592", "6535537", "6546796"],
        "tv": ["6522159", "6535791", "6501468"],
        "camera": ["6538111", "6501456", "6492396"],
        "tablet": ["6522118", "6522120", "6539301"],
        "gaming": ["6544136", "6544140", "6508881"],
        "speaker": ["6535148", "6464295", "6501024"],
        "watch": ["6535792", "6535793", "6501025"],
    }
    # Broad keyword -> mapped terms whose SKUs get unioned
    BESTBUY_BROAD_TERMS: dict[str, list[str]] = {
        "audio": ["headphones", "speaker"],
        "sound": ["headphones", "speaker"],
        "music": ["headphones", "speaker"],
        "apple": ["iphone", "macbook", "watch"],
        "ios": ["iphone", "macbook", "watch"],
        "electronic": ["phone", "laptop", "tablet"],
        "tech": ["phone", "laptop", "tablet"],
        "gadget": ["phone", "laptop", "tablet"],
    }
    BESTBUY_DEFAULT_SKUS: list[str] = [
        "6501022", "6509928", "6517592", "6522159", "6535147",
    ]

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": "application/json",
        "Accept-Language": "en-US,en;q=0.9",
    }

    # --- Credentials (resolved once per adapter) ---
    SERPAPI_API_KEY: str = os.getenv("SERPAPI_API_KEY", "")
    EBAY_OAUTH_TOKEN: str = os.getenv("EBAY_OAUTH_TOKEN", "")
    BESTBUY_RAPIDAPI_KEY: str = os.getenv("BESTBUY_RAPIDAPI_KEY", "")
    WALMART_RAPIDAPI_KEY: str = os.getenv("WALMART_RAPIDAPI_KEY", "")
    AXESSO_API_KEY: str = os.getenv("AXESSO_API_KEY", "")

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DATA_DIR: Path = BASE_DIR / "data"
    LOGS_DIR: Path = BASE_DIR / "logs"

    # --- Retailers (registry, in fan-out merge order) ---
    AVAILABLE_RETAILERS: list[dict[str, str]] = [
        {
            "id": "google_shopping",
            "label": "Google Shopping",
            "adapter": "src.adapters.google_shopping_adapter.GoogleShoppingAdapter",
            "credential": "SERPAPI_API_KEY",
        },
        {
            "id": "ebay",
            "label": "eBay",
            "adapter": "src.adapters.ebay_adapter.EbayAdapter",
            "credential": "EBAY_OAUTH_TOKEN",
        },
        {
            "id": "bestbuy",
            "label": "Best Buy",
            "adapter": "src.adapters.bestbuy_adapter.BestBuyAdapter",
            "credential": "BESTBUY_RAPIDAPI_KEY",
        },
        {
            "id": "walmart",
            "label": "Walmart",
            "adapter": "src.adapters.walmart_adapter.WalmartAdapter",
            "credential": "WALMART_RAPIDAPI_KEY",
        },
        {
            "id": "amazon",
            "label": "Amazon",
            "adapter": "src.adapters.amazon_adapter.AmazonAdapter",
            "credential": "AXESSO_API_KEY",
        },
    ]
