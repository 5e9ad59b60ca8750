"""Register all source adapters with the factory.

Call register_all_adapters() once at startup, before the CLI resolves
source flags.
"""

from typing import Optional

import structlog

from shopfeed.scrapers.factory import AdapterFactory, get_adapter_factory
from shopfeed.scrapers.adapters import (
    # API adapters
    EverlaneAdapter,
    DepopAdapter,
    UniqloAdapter,
    SHOPIFY_ADAPTERS,
    # HTML adapters
    PoshmarkAdapter,
    TheRealRealAdapter,
    # Browser adapters
    JCrewAdapter,
    BrandSitesAdapter,
)

logger = structlog.get_logger(__name__)


def register_all_adapters(factory: Optional[AdapterFactory] = None) -> AdapterFactory:
    """Register all available adapters with the factory.

    Args:
        factory: Factory to populate; the global one by default

    Returns:
        The populated factory
    """
    factory = factory or get_adapter_factory()

    adapters = [
        ("everlane", EverlaneAdapter),
        ("jcrew", JCrewAdapter),
        ("brands", BrandSitesAdapter),
        # Resale marketplaces
        ("poshmark", PoshmarkAdapter),
        ("therealreal", TheRealRealAdapter),
        ("depop", DepopAdapter),
        ("uniqlo", UniqloAdapter),
    ]
    # One adapter per Shopify brand, keyed by the brand slug
    adapters.extend((cls.shop_slug, cls) for cls in SHOPIFY_ADAPTERS)

    for shop_slug, adapter_class in adapters:
        try:
            factory.register_adapter(shop_slug, adapter_class)
        except ValueError as e:
            logger.error("adapter_registration_failed", shop_slug=shop_slug, error=str(e))

    logger.debug(
        "all_adapters_registered",
        count=len(factory.get_registered_shops()),
        shops=factory.get_registered_shops(),
    )
    return factory
