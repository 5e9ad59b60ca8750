"""Command-line entry point for a catalog ingestion run.

Usage:
    # Default source (everlane), up to 500 products
    shopfeed-ingest

    # Selected sources with a lower cap
    shopfeed-ingest --gymshark --allbirds --max=100

    # Every registered source, stop starting new work after 10 minutes
    shopfeed-ingest --all --timeout=600

    # Scrape without importing
    shopfeed-ingest --jcrew --dry-run
"""

import argparse
import asyncio
import sys
from typing import List, Optional, Sequence

import httpx
import structlog
from sqlalchemy.exc import SQLAlchemyError

from shopfeed.config import settings
from shopfeed.core.exceptions import BrowserUnavailableError, StoreUnavailableError
from shopfeed.core.logging import configure_logging
from shopfeed.db.session import async_session_factory, init_db
from shopfeed.scrapers.base import NormalizedProduct
from shopfeed.scrapers.factory import AdapterFactory
from shopfeed.scrapers.register_adapters import register_all_adapters
from shopfeed.scrapers.scraper_service import ScraperService
from shopfeed.scrapers.utils.browser_manager import BrowserManager, get_browser_manager
from shopfeed.services.import_service import ImportService
from shopfeed.services.product_service import ProductService

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_STORE_UNAVAILABLE = 1
EXIT_INIT_FAILED = 2


def build_parser(shop_slugs: Sequence[str]) -> argparse.ArgumentParser:
    """Build the argument parser with one ``--<slug>`` flag per source."""
    parser = argparse.ArgumentParser(
        prog="shopfeed-ingest",
        description="Scrape product catalogs and upsert them into the product store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
        allow_abbrev=False,
    )

    sources = parser.add_argument_group("sources")
    for slug in shop_slugs:
        sources.add_argument(
            f"--{slug}",
            action="append_const",
            const=slug,
            dest="sources",
            help=f"scrape {slug}",
        )
    sources.add_argument("--all", action="store_true", help="scrape every registered source")

    parser.add_argument(
        "--max",
        type=int,
        default=settings.DEFAULT_MAX_PRODUCTS,
        metavar="N",
        help=f"maximum products per source (default: {settings.DEFAULT_MAX_PRODUCTS})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="stop starting new batches and sources after this many seconds",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="scrape but do not write to the product store",
    )
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        help=f"log level (default: {settings.LOG_LEVEL})",
    )
    return parser


def parse_args(argv: Optional[Sequence[str]], factory: AdapterFactory) -> argparse.Namespace:
    """Parse CLI arguments, ignoring unknown flags.

    ``args.sources`` is resolved to the ordered, de-duplicated list of
    slugs to run: every registered source for ``--all``, the default
    source when no source flag is given.
    """
    registered = factory.get_registered_shops()
    args, unknown = build_parser(registered).parse_known_args(argv)

    if args.all:
        sources = list(registered)
    elif args.sources:
        sources = list(dict.fromkeys(args.sources))
    else:
        sources = [settings.DEFAULT_SOURCE]

    args.sources = sources
    args.unknown = unknown
    return args


async def _ensure_store_schema() -> None:
    try:
        await init_db()
    except (SQLAlchemyError, OSError) as e:
        raise StoreUnavailableError(str(e)) from e


async def _import(products: List[NormalizedProduct]) -> None:
    await _ensure_store_schema()
    importer = ImportService(ProductService(async_session_factory))
    summary = await importer.import_products(products)
    logger.info(
        "import_summary",
        inserted=summary.inserted,
        updated=summary.updated,
        errors=summary.errors,
    )


async def run(args: argparse.Namespace, factory: AdapterFactory) -> int:
    """Execute one ingestion run and return the process exit code."""
    logger.info("run_started", sources=args.sources, max_products=args.max, dry_run=args.dry_run)

    try:
        http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    except Exception as e:
        logger.error("http_client_init_failed", error=str(e))
        return EXIT_INIT_FAILED

    browser: Optional[BrowserManager] = None
    cancel_event = asyncio.Event()
    timer = None

    try:
        if any(factory.requires_browser(slug) for slug in args.sources):
            browser = get_browser_manager()
            try:
                await browser.start()
            except BrowserUnavailableError as e:
                logger.error("browser_init_failed", error=str(e))
                return EXIT_INIT_FAILED

        if args.timeout:
            timer = asyncio.get_running_loop().call_later(args.timeout, cancel_event.set)

        service = ScraperService(http_client, browser=browser, factory=factory)
        result = await service.run(args.sources, args.max, cancel_event=cancel_event)
        logger.info(
            "scrape_summary",
            per_source=result.summary(),
            total_products=len(result.products),
            unique_products=len({p.source_url for p in result.products}),
        )

        if args.dry_run:
            logger.info("dry_run_skip_import", products=len(result.products))
            return EXIT_OK

        try:
            await _import(result.products)
        except StoreUnavailableError as e:
            logger.error("store_unavailable", error=e.message)
            return EXIT_STORE_UNAVAILABLE

        return EXIT_OK
    finally:
        if timer is not None:
            timer.cancel()
        if browser is not None:
            await browser.stop()
        await http_client.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    """Console script entry point."""
    factory = register_all_adapters()
    args = parse_args(argv, factory)
    configure_logging(args.log_level)

    if args.unknown:
        logger.warning("unknown_arguments_ignored", arguments=args.unknown)

    try:
        return asyncio.run(run(args, factory))
    except KeyboardInterrupt:
        logger.warning("run_interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
