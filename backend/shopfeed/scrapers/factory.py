"""Factory for creating and managing source adapter instances."""

from typing import Dict, List, Optional, Type

import httpx
import structlog

from shopfeed.scrapers.base import BaseAdapter
from shopfeed.scrapers.utils.browser_manager import BrowserManager
from shopfeed.scrapers.utils.fetcher import AdaptiveFetcher
from shopfeed.scrapers.utils.rate_limiter import RateLimitState


logger = structlog.get_logger(__name__)


class AdapterFactory:
    """Registry of adapter classes keyed by source slug.

    Provides dependency injection: every created adapter gets its own
    AdaptiveFetcher with a fresh RateLimitState, and browser adapters get
    the shared BrowserManager.
    """

    def __init__(self):
        self._adapter_registry: Dict[str, Type[BaseAdapter]] = {}

    def register_adapter(self, shop_slug: str, adapter_class: Type[BaseAdapter]) -> None:
        """Register an adapter class for a source.

        Args:
            shop_slug: Source slug (e.g., "everlane")
            adapter_class: Adapter class (must inherit from BaseAdapter)
        """
        if not issubclass(adapter_class, BaseAdapter):
            raise ValueError(f"Adapter class must inherit from BaseAdapter: {adapter_class}")

        self._adapter_registry[shop_slug] = adapter_class
        logger.debug("adapter_registered", shop_slug=shop_slug, adapter_type=adapter_class.adapter_type)

    def create_adapter(
        self,
        shop_slug: str,
        http_client: httpx.AsyncClient,
        browser: Optional[BrowserManager] = None,
    ) -> Optional[BaseAdapter]:
        """Create and configure an adapter instance.

        Args:
            shop_slug: Source slug
            http_client: Shared HTTP client for the run
            browser: Shared browser manager, injected into browser adapters

        Returns:
            Configured adapter instance, or None if not registered
        """
        adapter_class = self._adapter_registry.get(shop_slug)
        if not adapter_class:
            logger.warning("adapter_not_found", shop_slug=shop_slug)
            return None

        adapter = adapter_class()
        adapter.fetcher = AdaptiveFetcher(http_client, RateLimitState(), name=shop_slug)
        if adapter.requires_browser:
            adapter.browser = browser

        logger.debug("adapter_created", shop_slug=shop_slug, adapter_type=adapter.adapter_type)
        return adapter

    def get_registered_shops(self) -> List[str]:
        """Get registered source slugs in registration order."""
        return list(self._adapter_registry.keys())

    def has_adapter(self, shop_slug: str) -> bool:
        return shop_slug in self._adapter_registry

    def requires_browser(self, shop_slug: str) -> bool:
        """True if the registered adapter for ``shop_slug`` renders pages."""
        adapter_class = self._adapter_registry.get(shop_slug)
        return bool(adapter_class and adapter_class.requires_browser)


# Global factory instance
adapter_factory = AdapterFactory()


def get_adapter_factory() -> AdapterFactory:
    """Get the global adapter factory instance."""
    return adapter_factory
