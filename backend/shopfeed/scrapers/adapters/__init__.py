"""Source adapter implementations.

API and HTML adapters read through the injected AdaptiveFetcher; browser
adapters render pages through the shared BrowserManager.
"""

# API adapters
from .shopify import SHOPIFY_ADAPTERS, SHOPIFY_BRANDS, ShopifyStoreAdapter, build_shopify_adapter
from .everlane import EverlaneAdapter
from .depop import DepopAdapter
from .uniqlo import UniqloAdapter

# HTML adapters
from .poshmark import PoshmarkAdapter
from .therealreal import TheRealRealAdapter

# Browser adapters
from .jcrew import JCrewAdapter
from .brands import BrandSitesAdapter

__all__ = [
    # API adapters
    "ShopifyStoreAdapter",
    "SHOPIFY_ADAPTERS",
    "SHOPIFY_BRANDS",
    "build_shopify_adapter",
    "EverlaneAdapter",
    "DepopAdapter",
    "UniqloAdapter",
    # HTML adapters
    "PoshmarkAdapter",
    "TheRealRealAdapter",
    # Browser adapters
    "JCrewAdapter",
    "BrandSitesAdapter",
]
