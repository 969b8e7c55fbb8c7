# src/services/registry.py

"""Adapter loading and explicit wiring of the coordinator stack."""

import importlib
import logging
from collections.abc import Callable, Iterable
from typing import Any

from src.adapters.base_adapter import RetailerAdapter
from src.config.settings import Settings
from src.filters.hybrid_resolver import HybridResolver
from src.models.errors import UnknownRetailerError
from src.models.product import RetailerId
from src.services.circuit_breaker import CircuitBreaker
from src.services.rate_limiter import RateLimiter
from src.services.search_coordinator import SearchCoordinator
from src.storage.ttl_cache import CacheLayer

logger = logging.getLogger("aggregator.registry")


def _load_adapter_class(dotted_path: str) -> type[RetailerAdapter]:
    """Dynamically import an adapter class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[RetailerAdapter] = getattr(module, class_name)
    return cls


def resolve_retailers(
    retailer_csv: str | None,
) -> list[dict[str, str]]:
    """Map a comma-separated list of retailer ids to their config dicts.

    Returns every retailer when *retailer_csv* is ``None``.
    Raises :class:`UnknownRetailerError` on unknown ids.
    """
    available = {r["id"]: r for r in Settings.AVAILABLE_RETAILERS}
    if retailer_csv is None:
        return list(Settings.AVAILABLE_RETAILERS)

    requested = [r.strip() for r in retailer_csv.split(",") if r.strip()]
    unknown = [r for r in requested if r not in available]
    if unknown:
        raise UnknownRetailerError(
            f"unknown retailer(s): {', '.join(unknown)} "
            f"(available: {', '.join(sorted(available))})"
        )
    return [available[r] for r in requested]


def load_adapters(
    retailers: Iterable[dict[str, str]] | None = None,
) -> list[RetailerAdapter]:
    """Instantiate one adapter per configured retailer, in order."""
    configs = (
        list(retailers)
        if retailers is not None
        else Settings.AVAILABLE_RETAILERS
    )
    adapters: list[RetailerAdapter] = []
    for config in configs:
        cls = _load_adapter_class(config["adapter"])
        adapter = cls()
        if adapter.retailer_id is not RetailerId(config["id"]):
            raise UnknownRetailerError(
                f"{config['adapter']} does not implement '{config['id']}'"
            )
        adapters.append(adapter)
        logger.debug(
            "Registered %s (%s mode)", config["id"], adapter.mode.value
        )
    return adapters


def build_coordinator(
    adapters: Iterable[RetailerAdapter] | None = None,
    clock: Callable[[], float] | None = None,
    **overrides: Any,
) -> SearchCoordinator:
    """Wire limiter, breaker, caches and resolver into a coordinator."""
    clock_kwargs: dict[str, Any] = {"clock": clock} if clock else {}
    coordinator = SearchCoordinator(
        adapters=adapters if adapters is not None else load_adapters(),
        rate_limiter=RateLimiter(**clock_kwargs),
        circuit_breaker=CircuitBreaker(**clock_kwargs),
        cache=CacheLayer(**clock_kwargs),
        resolver=HybridResolver(),
        **overrides,
    )
    logger.info(
        "Coordinator ready with %d retailer(s): %s",
        len(coordinator.adapters),
        ", ".join(r.value for r in coordinator.registered_retailers),
    )
    return coordinator
