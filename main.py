# main.py

"""Entry point for the retail search aggregator CLI."""

import argparse
import asyncio
import logging
import sys

from src.config.logging_config import setup_logging
from src.config.settings import Settings
from src.models.errors import InvalidSearchRequest, UnknownRetailerError
from src.models.product import SortOrder

logger = logging.getLogger("aggregator.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(r["id"] for r in Settings.AVAILABLE_RETAILERS)

    parser = argparse.ArgumentParser(
        prog="aggregator",
        description="Search and track products across multiple retailers.",
        epilog=f"Available retailers: {valid_ids}",
    )
    parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help="Search query.",
    )
    parser.add_argument(
        "-r",
        "--retailers",
        default=None,
        help="Comma-separated retailer IDs (default: all).",
    )
    parser.add_argument(
        "--sort",
        choices=[s.value for s in SortOrder],
        default=SortOrder.RELEVANCE.value,
        help="Result ordering (default: relevance).",
    )
    parser.add_argument(
        "-n",
        "--limit",
        type=int,
        default=Settings.DEFAULT_MAX_RESULTS,
        help="Max results per retailer (default: %(default)s).",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        "--details",
        metavar="RETAILER:ID",
        help="Show full details for one product.",
    )
    actions.add_argument(
        "--related",
        metavar="RETAILER:ID",
        help="List products related to one product.",
    )
    actions.add_argument(
        "--compare",
        metavar="RETAILER:ID",
        help="Find the same product at the other retailers.",
    )
    actions.add_argument(
        "--track",
        metavar="RETAILER:ID",
        help="Start tracking a product's price.",
    )
    actions.add_argument(
        "--check-prices",
        action="store_true",
        default=False,
        dest="check_prices",
        help="Re-check every tracked product once.",
    )
    actions.add_argument(
        "--health",
        action="store_true",
        default=False,
        help="Show retailer status without calling any API.",
    )
    actions.add_argument(
        "--history",
        action="store_true",
        default=False,
        help="List recent searches.",
    )

    parser.add_argument(
        "--below",
        type=float,
        default=None,
        dest="threshold_price",
        help="With --track: alert when the price falls to this or lower.",
    )
    parser.add_argument(
        "--drop",
        type=float,
        default=None,
        dest="threshold_percentage",
        help="With --track: alert on a drop of at least this percent.",
    )
    return parser


def _dispatch(args: argparse.Namespace) -> int:
    """Route parsed arguments to the matching CLI command."""
    from src.cli import runner

    if args.health:
        return runner.run_health_check()
    if args.history:
        return runner.run_history()
    if args.check_prices:
        return asyncio.run(runner.run_check_prices())
    if args.details:
        return asyncio.run(runner.run_details(args.details, args.output_format))
    if args.related:
        return asyncio.run(runner.run_related(args.related, args.output_format))
    if args.compare:
        return asyncio.run(runner.run_compare(args.compare, args.output_format))
    if args.track:
        return asyncio.run(
            runner.run_track(
                args.track, args.threshold_price, args.threshold_percentage
            )
        )
    return asyncio.run(
        runner.cli_search(
            query=args.query,
            retailer_csv=args.retailers,
            sort=args.sort,
            limit=args.limit,
            output_format=args.output_format,
        )
    )


def main() -> None:
    """Parse arguments, run one command and exit with its status."""
    log_file = setup_logging()
    logger.info("aggregator starting, log file: %s", log_file)

    parser = _build_parser()
    args = parser.parse_args()

    standalone = (
        args.details
        or args.related
        or args.compare
        or args.track
        or args.check_prices
        or args.health
        or args.history
    )
    if args.query is None and not standalone:
        parser.error("a search query or one of the action flags is required")

    try:
        exit_code = _dispatch(args)
    except (InvalidSearchRequest, UnknownRetailerError) as exc:
        logger.error("Invalid request: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        exit_code = 2
    except Exception:
        logger.critical("Fatal error during CLI run", exc_info=True)
        raise
    finally:
        logger.info("aggregator shutting down")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
