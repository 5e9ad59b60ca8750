"""Scraper orchestration service.

Runs the requested sources one after another and collects their products.
A failing source is recorded in its own ScraperResult and never stops the
run. Cross-source deduplication is left to the importer.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx
import structlog

from shopfeed.scrapers.base import NormalizedProduct, ScraperResult
from shopfeed.scrapers.factory import AdapterFactory, get_adapter_factory
from shopfeed.scrapers.utils.browser_manager import BrowserManager

logger = structlog.get_logger(__name__)


@dataclass
class ScrapeRunResult:
    """Aggregated output of one orchestrated run."""

    products: List[NormalizedProduct] = field(default_factory=list)
    per_source_results: Dict[str, ScraperResult] = field(default_factory=dict)

    def summary(self) -> Dict[str, int]:
        """Product count per source."""
        return {source: len(r.products) for source, r in self.per_source_results.items()}


class ScraperService:
    """Service for orchestrating source adapters.

    The HTTP client and browser manager are owned by the caller; this
    service only borrows them for the adapters it creates.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        browser: Optional[BrowserManager] = None,
        factory: Optional[AdapterFactory] = None,
    ):
        """Initialize scraper service.

        Args:
            http_client: Shared HTTP client for every adapter's fetcher
            browser: Shared browser manager for rendered sources
            factory: Adapter registry; the global one by default
        """
        self.http_client = http_client
        self.browser = browser
        self.adapter_factory = factory or get_adapter_factory()
        self.logger = logger.bind(service="scraper_service")

    async def run_source(
        self,
        shop_slug: str,
        max_products: int,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[ScraperResult]:
        """Run a single source adapter.

        Returns:
            The source's ScraperResult (with errors recorded rather than
            raised), or None if no adapter is registered under ``shop_slug``
        """
        adapter = self.adapter_factory.create_adapter(shop_slug, self.http_client, self.browser)
        if adapter is None:
            return None

        self.logger.info("running_adapter", shop_slug=shop_slug, max_products=max_products)
        try:
            return await adapter.scrape(max_products, cancel_event=cancel_event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(
                "adapter_run_failed",
                shop_slug=shop_slug,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return ScraperResult(source=shop_slug, errors=[str(e)])
        finally:
            await adapter.cleanup()

    async def run(
        self,
        sources: List[str],
        max_products_per_source: int,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ScrapeRunResult:
        """Run every requested source sequentially.

        Args:
            sources: Registry slugs, run in the given order
            max_products_per_source: Cap passed to each adapter
            cancel_event: Once set, no further source is started

        Returns:
            ScrapeRunResult with products concatenated in source order
        """
        run_result = ScrapeRunResult()

        for shop_slug in sources:
            if cancel_event is not None and cancel_event.is_set():
                self.logger.warning("run_cancelled", skipped_from=shop_slug)
                break

            result = await self.run_source(shop_slug, max_products_per_source, cancel_event)
            if result is None:
                continue

            run_result.per_source_results[shop_slug] = result
            run_result.products.extend(result.products)

            for error in result.errors:
                self.logger.warning("source_error", shop_slug=shop_slug, error=error)

        self.logger.info(
            "scrape_run_complete",
            summary=run_result.summary(),
            total_products=len(run_result.products),
        )
        return run_result
