"""J.Crew adapter.

Category pages are client-rendered, so they are loaded in Playwright and
the product tiles parsed with BeautifulSoup.
"""

import math
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError

from shopfeed.core.exceptions import ScraperError
from shopfeed.scrapers.base import (
    BaseBrowserAdapter,
    CategoryPage,
    ItemHandle,
    NormalizedProduct,
    ProductCardPayload,
    RawPayload,
)
from shopfeed.scrapers.utils.cards import CardSelectors, normalize_card, parse_product_cards


JCREW_CATEGORIES: List[CategoryPage] = [
    CategoryPage("/c/womens_category/sweaters", "sweaters", "women"),
    CategoryPage("/c/womens_category/dresses", "dresses", "women"),
    CategoryPage("/c/womens_category/blazers", "outerwear", "women"),
    CategoryPage("/c/womens_category/pants", "pants", "women"),
    CategoryPage("/c/womens_category/tshirts_702", "tops", "women"),
    CategoryPage("/c/womens_category/jeans", "jeans", "women"),
    CategoryPage("/c/womens_category/skirts", "skirts", "women"),
    CategoryPage("/c/womens_category/shoes", "shoes", "women"),
    CategoryPage("/c/mens_category/sweaters", "sweaters", "men"),
    CategoryPage("/c/mens_category/shirts", "tops", "men"),
    CategoryPage("/c/mens_category/tshirts", "tops", "men"),
    CategoryPage("/c/mens_category/pants", "pants", "men"),
    CategoryPage("/c/mens_category/jeans", "jeans", "men"),
    CategoryPage("/c/mens_category/suits", "suits", "men"),
    CategoryPage("/c/mens_category/shoes", "shoes", "men"),
]

JCREW_SELECTORS = CardSelectors(
    card=".c-product-tile, .product-tile",
    name="[class*='name'], [class*='title'], h3, h4",
    price="[class*='price'], [class*='Price']",
    link="a[href*='/p/']",
)


class JCrewAdapter(BaseBrowserAdapter):
    """J.Crew rendered category pages."""

    shop_slug = "jcrew"
    shop_name = "J.Crew"
    base_url = "https://www.jcrew.com"
    wait_selector = ".c-product-tile, .product-tile"

    async def discover(self, max_products: int) -> List[ItemHandle]:
        per_page = max(1, math.ceil(max_products / len(JCREW_CATEGORIES)))
        handles: List[ItemHandle] = []
        failures = 0

        for page in JCREW_CATEGORIES:
            if len(handles) >= max_products:
                break
            try:
                html = await self._render(f"{self.base_url}{page.path}")
            except PlaywrightError as e:
                failures += 1
                self.logger.warning("category_render_failed", path=page.path, error=str(e))
                continue

            cards = parse_product_cards(
                html,
                JCREW_SELECTORS,
                self.base_url,
                brand=self.shop_name,
                category=page.category,
                gender=page.gender,
                limit=per_page,
            )
            self.logger.info("category_page_loaded", path=page.path, count=len(cards))
            handles.extend(ItemHandle(key=c.url, url=c.url, data=c) for c in cards)

        if failures == len(JCREW_CATEGORIES):
            raise ScraperError(self.shop_slug, "no category page could be rendered")
        return handles

    def normalize(self, payload: RawPayload) -> Optional[NormalizedProduct]:
        if not isinstance(payload, ProductCardPayload):
            raise TypeError(f"{type(self).__name__} cannot normalize {type(payload).__name__}")
        return normalize_card(payload, platform=self.shop_name)
