"""TheRealReal adapter.

Category listings are server-rendered, so plain HTTP plus BeautifulSoup
is enough. Every item is authenticated consignment, stored as like_new.
"""

import math
from typing import List, Optional

from shopfeed.core.exceptions import FetchError, ScraperError
from shopfeed.scrapers.base import (
    BaseHTMLAdapter,
    CategoryPage,
    ItemHandle,
    NormalizedProduct,
    ProductCardPayload,
    RawPayload,
)
from shopfeed.scrapers.utils.cards import CardSelectors, normalize_card, parse_product_cards


TRR_CATEGORIES: List[CategoryPage] = [
    CategoryPage("/shop/women/handbags", "bags", "women"),
    CategoryPage("/shop/women/shoes", "shoes", "women"),
    CategoryPage("/shop/women/clothing/dresses", "dresses", "women"),
    CategoryPage("/shop/women/clothing/outerwear", "outerwear", "women"),
    CategoryPage("/shop/men/shoes", "shoes", "men"),
    CategoryPage("/shop/men/clothing", "clothing", "men"),
]

TRR_SELECTORS = CardSelectors(
    card="[data-testid='product-card'], .product-card, [class*='ProductCard']",
    name="[class*='product-name'], [class*='ProductName'], h3, h4",
    price="[class*='price'], [class*='Price']",
    brand="[class*='designer'], [class*='brand'], [class*='Designer']",
)


class TheRealRealAdapter(BaseHTMLAdapter):
    """TheRealReal consignment listings."""

    shop_slug = "therealreal"
    shop_name = "TheRealReal"
    base_url = "https://www.therealreal.com"

    async def discover(self, max_products: int) -> List[ItemHandle]:
        per_page = max(1, math.ceil(max_products / len(TRR_CATEGORIES)))
        handles: List[ItemHandle] = []
        failures = 0

        for page in TRR_CATEGORIES:
            if len(handles) >= max_products:
                break
            try:
                html = await self.fetcher.fetch_text(f"{self.base_url}{page.path}", params={"page": 1})
            except FetchError as e:
                failures += 1
                self.logger.warning("category_page_failed", path=page.path, error=str(e))
                continue

            cards = parse_product_cards(
                html,
                TRR_SELECTORS,
                self.base_url,
                brand="Designer",
                category=page.category,
                gender=page.gender,
                condition="like_new",
                limit=per_page,
            )
            self.logger.info("category_page_loaded", path=page.path, count=len(cards))
            handles.extend(ItemHandle(key=c.url, url=c.url, data=c) for c in cards)

        if failures == len(TRR_CATEGORIES):
            raise ScraperError(self.shop_slug, "no category page could be fetched")
        return handles

    async def fetch_detail(self, handle: ItemHandle) -> Optional[RawPayload]:
        return handle.data

    def normalize(self, payload: RawPayload) -> Optional[NormalizedProduct]:
        if not isinstance(payload, ProductCardPayload):
            raise TypeError(f"{type(self).__name__} cannot normalize {type(payload).__name__}")
        return normalize_card(payload, platform=self.shop_name)
