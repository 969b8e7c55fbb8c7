# src/cli/runner.py

"""Headless CLI commands, each reusing the async coordinator."""

import json
import logging
import sys
from typing import Any

from rich.console import Console
from rich.table import Table

from src.models.errors import InvalidSearchRequest
from src.models.product import ProductSummary, RetailerId, SortOrder
from src.models.search import SearchOutcome, SearchRequest
from src.services.health_checker import HealthChecker
from src.services.notifier import ConsoleNotificationSink
from src.services.price_tracker import PriceTracker
from src.services.registry import build_coordinator, load_adapters, resolve_retailers
from src.services.search_coordinator import SearchCoordinator
from src.storage.json_store import SearchHistory

logger = logging.getLogger("aggregator.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def parse_product_ref(ref: str) -> tuple[RetailerId, str]:
    """Split ``retailer:source_id`` into its parts.

    Raises :class:`InvalidSearchRequest` on a malformed reference.
    """
    retailer, sep, source_id = ref.partition(":")
    if not sep or not source_id.strip():
        raise InvalidSearchRequest(
            f"expected RETAILER:ID, got '{ref}'"
        )
    try:
        return RetailerId(retailer.strip()), source_id.strip()
    except ValueError as exc:
        valid = ", ".join(r.value for r in RetailerId)
        raise InvalidSearchRequest(
            f"unknown retailer '{retailer}' (available: {valid})"
        ) from exc


def _products_to_dicts(
    products: list[ProductSummary],
) -> list[dict[str, Any]]:
    """Serialise a product list to plain dicts for JSON output."""
    return [
        {
            "source_id": p.source_id,
            "retailer": p.retailer.value,
            "name": p.name,
            "price": p.price,
            "original_price": p.original_price,
            "currency": p.currency,
            "brand": p.brand,
            "in_stock": p.in_stock,
            "rating": p.rating,
            "review_count": p.review_count,
            "url": p.detail_url,
        }
        for p in products
    ]


def _print_table(products: list[ProductSummary], title: str) -> None:
    """Render a Rich table of products to stdout."""
    table = Table(
        title=title,
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Name", max_width=60)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Rating", justify="center")
    table.add_column("Retailer", style="magenta")
    table.add_column("ID", overflow="fold", style="dim")

    for idx, p in enumerate(products, 1):
        price_str = (
            f"{p.currency} {p.price:,.2f}"
            if p.price is not None
            else "N/A"
        )
        if p.discount_percentage:
            price_str += f"\n[dim]-{p.discount_percentage:.0f}%[/dim]"
        table.add_row(
            str(idx),
            p.name[:60],
            price_str,
            f"{p.rating:.1f}" if p.rating is not None else "-",
            p.retailer.label,
            p.source_id,
        )

    Console().print(table)


def _emit(
    products: list[ProductSummary], output_format: str, title: str
) -> None:
    if output_format == "table":
        _print_table(products, title)
    else:
        json.dump(
            _products_to_dicts(products),
            sys.stdout,
            ensure_ascii=False,
            indent=2,
        )
        sys.stdout.write("\n")


def _report_outcome(outcome: SearchOutcome) -> None:
    """Summarise failures and degraded retailers on stderr."""
    for rid, message in outcome.error_messages.items():
        _err.print(f"[red]{rid.label}: {message}[/red]")
    for rid in sorted(outcome.degraded_retailers, key=lambda r: r.value):
        _err.print(f"[yellow]{rid.label}: demo data (degraded)[/yellow]")
    origin = " [dim](cached)[/dim]" if outcome.from_cache else ""
    _err.print(f"[green]✓ {len(outcome.products)} products{origin}[/green]")


async def cli_search(
    query: str,
    retailer_csv: str | None,
    sort: str,
    limit: int,
    output_format: str,
) -> int:
    """Run a headless search and return an exit code (0=ok, 1=no results)."""
    configs = resolve_retailers(retailer_csv)
    request = SearchRequest(
        query=query,
        retailers=frozenset(RetailerId(c["id"]) for c in configs),
        max_results_per_retailer=limit,
        sort_order=SortOrder(sort),
    )
    coordinator = build_coordinator(load_adapters(configs))
    labels = ", ".join(c["label"] for c in configs)
    _err.print(
        f"[bold]Searching:[/bold] {query}  [dim]retailers={labels}[/dim]"
    )
    try:
        outcome = await coordinator.search(request)
    finally:
        await coordinator.close()

    SearchHistory().record(query)
    _report_outcome(outcome)
    if not outcome.products:
        _err.print("[yellow]No products found. Try again later.[/yellow]")
        return 1
    _emit(outcome.products, output_format, f"Results for '{query}'")
    return 0


async def run_details(ref: str, output_format: str) -> int:
    retailer, source_id = parse_product_ref(ref)
    coordinator = build_coordinator()
    try:
        outcome = await coordinator.get_details(retailer, source_id)
    finally:
        await coordinator.close()

    if outcome.product is None:
        _err.print(f"[red]{retailer.label}: {outcome.message}[/red]")
        return 1
    product = outcome.product
    if output_format == "table":
        _print_table([product.summary()], product.name[:60])
        if product.description:
            Console().print(product.description)
        for name, value in product.specifications.items():
            Console().print(f"[bold]{name}:[/bold] {value}")
    else:
        row = _products_to_dicts([product.summary()])[0]
        row.update(
            description=product.description,
            images=product.image_urls,
            seller=product.seller,
            specifications=product.specifications,
        )
        json.dump(row, sys.stdout, ensure_ascii=False, indent=2)
        sys.stdout.write("\n")
    return 0


async def run_related(ref: str, output_format: str) -> int:
    retailer, source_id = parse_product_ref(ref)
    coordinator = build_coordinator()
    try:
        outcome = await coordinator.get_related(retailer, source_id)
    finally:
        await coordinator.close()

    _report_outcome(outcome)
    if not outcome.products:
        return 1
    _emit(outcome.products, output_format, f"Related to {ref}")
    return 0


async def run_compare(ref: str, output_format: str) -> int:
    retailer, source_id = parse_product_ref(ref)
    coordinator = build_coordinator()
    try:
        matches = await coordinator.compare_prices(retailer, source_id)
    finally:
        await coordinator.close()

    if not matches:
        _err.print("[yellow]No matching products at other retailers.[/yellow]")
        return 1
    _emit(matches, output_format, f"Price comparison for {ref}")
    return 0


def _tracker(coordinator: SearchCoordinator) -> PriceTracker:
    return PriceTracker(coordinator, notifier=ConsoleNotificationSink(_err))


async def run_track(
    ref: str,
    threshold_price: float | None,
    threshold_percentage: float | None,
) -> int:
    retailer, source_id = parse_product_ref(ref)
    coordinator = build_coordinator()
    try:
        outcome = await coordinator.get_details(retailer, source_id)
    finally:
        await coordinator.close()

    if outcome.product is None:
        _err.print(f"[red]{retailer.label}: {outcome.message}[/red]")
        return 1
    alert = _tracker(coordinator).track(
        outcome.product,
        threshold_price=threshold_price,
        threshold_percentage=threshold_percentage,
    )
    _err.print(
        f"[green]✓ Tracking {alert.name} at "
        f"${alert.current_price:,.2f}[/green] [dim](id {alert.id})[/dim]"
    )
    return 0


async def run_check_prices() -> int:
    coordinator = build_coordinator()
    tracker = _tracker(coordinator)
    if not tracker.alerts:
        _err.print("[yellow]No tracked products.[/yellow]")
        await coordinator.close()
        return 0
    try:
        events = await tracker.check_all()
    finally:
        await coordinator.close()

    table = Table(
        title="Tracked Products",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Name", max_width=50)
    table.add_column("Retailer", style="magenta")
    table.add_column("Initial", justify="right")
    table.add_column("Current", justify="right", style="green")
    table.add_column("Checked", style="dim")
    for alert in tracker.alerts:
        table.add_row(
            alert.name[:50],
            alert.retailer.label,
            f"${alert.initial_price:,.2f}",
            f"${alert.current_price:,.2f}",
            alert.last_checked_at.strftime("%Y-%m-%d %H:%M"),
        )
    Console().print(table)
    _err.print(
        f"[dim]{len(events)} price change(s); total savings "
        f"${tracker.total_savings():,.2f}[/dim]"
    )
    return 0


def run_history() -> int:
    queries = SearchHistory().recent()
    if not queries:
        _err.print("[yellow]No recent searches.[/yellow]")
        return 0
    for idx, query in enumerate(queries, 1):
        Console().print(f"[dim]{idx:>2}.[/dim] {query}")
    return 0


def run_health_check() -> int:
    """Report each retailer's mode, breaker state and remaining quota."""
    _err.print("[bold]Checking retailer status...[/bold]")
    coordinator = build_coordinator()
    results = HealthChecker(coordinator).check_all()

    table = Table(
        title="Retailer Health Check",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Retailer", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Circuit", justify="center")
    table.add_column("Quota left", justify="right")
    table.add_column("Notes", style="dim")

    any_down = False
    for r in results:
        if r.status == "ok":
            status = "[green]✅ OK[/green]"
        elif r.status == "degraded":
            status = "[yellow]⚠️  DEGRADED[/yellow]"
        else:
            status = "[red]❌ DOWN[/red]"
            any_down = True
        quota = ", ".join(
            f"{label} {left}" for label, left in r.remaining_quota.items()
        )
        table.add_row(r.retailer_id, status, r.circuit, quota, r.message)

    Console().print(table)
    return 1 if any_down else 0
