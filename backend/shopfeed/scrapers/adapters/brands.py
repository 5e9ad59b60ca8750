"""Multi-brand adapter for department-store style brand sites.

Each configured brand has its own category pages and card selectors.
Pages are rendered in Playwright and the per-brand share of
max_products is split evenly across brands.
"""

import math
from dataclasses import dataclass
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


@dataclass(frozen=True)
class BrandSite:
    name: str
    base_url: str
    categories: List[CategoryPage]
    selectors: CardSelectors


BRAND_SITES: List[BrandSite] = [
    BrandSite(
        name="GAP",
        base_url="https://www.gap.com",
        categories=[
            CategoryPage("/browse/category.do?cid=5736", "dresses", "women"),
            CategoryPage("/browse/category.do?cid=5739", "tops", "women"),
            CategoryPage("/browse/category.do?cid=6998", "jeans", "women"),
            CategoryPage("/browse/category.do?cid=65289", "tops", "men"),
            CategoryPage("/browse/category.do?cid=65290", "pants", "men"),
        ],
        selectors=CardSelectors(
            card=".product-card, [data-testid='product-card'], .cat-product-card",
            name=".product-card__name, [class*='product-name'], [class*='ProductName']",
            price=".product-card__price, [class*='product-price'], [class*='Price']",
        ),
    ),
    BrandSite(
        name="Banana Republic",
        base_url="https://bananarepublic.gap.com",
        categories=[
            CategoryPage("/browse/category.do?cid=69883", "dresses", "women"),
            CategoryPage("/browse/category.do?cid=35286", "pants", "women"),
            CategoryPage("/browse/category.do?cid=32643", "tops", "men"),
            CategoryPage("/browse/category.do?cid=32641", "suits", "men"),
        ],
        selectors=CardSelectors(
            card=".product-card, [data-testid='product-card']",
            name=".product-card__name, [class*='product-name']",
            price=".product-card__price, [class*='product-price']",
        ),
    ),
    BrandSite(
        name="Madewell",
        base_url="https://www.madewell.com",
        categories=[
            CategoryPage("/c/womens_category/jeans", "jeans", "women"),
            CategoryPage("/c/womens_category/dresses", "dresses", "women"),
            CategoryPage("/c/womens_category/sweaters", "sweaters", "women"),
            CategoryPage("/c/womens_category/tees_702", "tops", "women"),
        ],
        selectors=CardSelectors(
            card="[data-testid='product-card'], .product-tile, .c-product-tile",
            name=".product-tile__name, [class*='name']",
            price=".product-tile__price, [class*='price']",
        ),
    ),
    BrandSite(
        name="Anthropologie",
        base_url="https://www.anthropologie.com",
        categories=[
            CategoryPage("/shop/dresses", "dresses", "women"),
            CategoryPage("/shop/tops", "tops", "women"),
            CategoryPage("/shop/sweaters", "sweaters", "women"),
            CategoryPage("/shop/jackets-coats", "outerwear", "women"),
        ],
        selectors=CardSelectors(
            card=".c-pwa-tile, [class*='product-tile'], .o-pwa-product-tile",
            name=".c-pwa-tile__name, [class*='product-name']",
            price=".c-pwa-tile__price, [class*='price']",
        ),
    ),
    BrandSite(
        name="Reformation",
        base_url="https://www.thereformation.com",
        categories=[
            CategoryPage("/dresses", "dresses", "women"),
            CategoryPage("/tops", "tops", "women"),
            CategoryPage("/jeans", "jeans", "women"),
            CategoryPage("/sweaters", "sweaters", "women"),
        ],
        selectors=CardSelectors(
            card=".product-tile, [class*='product-card'], [class*='ProductCard']",
            name=".product-tile__name, [class*='product-name']",
            price=".product-tile__price, [class*='price']",
        ),
    ),
    BrandSite(
        name="Free People",
        base_url="https://www.freepeople.com",
        categories=[
            CategoryPage("/shop/dresses", "dresses", "women"),
            CategoryPage("/shop/tops", "tops", "women"),
            CategoryPage("/shop/sweaters", "sweaters", "women"),
            CategoryPage("/shop/jackets", "outerwear", "women"),
        ],
        selectors=CardSelectors(
            card=".c-pwa-tile, [class*='product-tile']",
            name=".c-pwa-tile__name, [class*='product-name']",
            price=".c-pwa-tile__price, [class*='price']",
        ),
    ),
]


class BrandSitesAdapter(BaseBrowserAdapter):
    """Rendered category pages across several brand sites."""

    shop_slug = "brands"
    shop_name = "Brand Sites"
    sites: List[BrandSite] = BRAND_SITES

    async def discover(self, max_products: int) -> List[ItemHandle]:
        per_brand = max(1, math.ceil(max_products / len(self.sites)))
        handles: List[ItemHandle] = []
        attempted = 0
        failures = 0

        for site in self.sites:
            brand_handles: List[ItemHandle] = []
            per_page = max(1, math.ceil(per_brand / len(site.categories)))

            for page in site.categories:
                if len(brand_handles) >= per_brand:
                    break
                attempted += 1
                try:
                    html = await self._render(f"{site.base_url}{page.path}", wait_selector=site.selectors.card)
                except PlaywrightError as e:
                    failures += 1
                    self.logger.warning("category_render_failed", brand=site.name, path=page.path, error=str(e))
                    continue

                cards = parse_product_cards(
                    html,
                    site.selectors,
                    site.base_url,
                    brand=site.name,
                    category=page.category,
                    gender=page.gender,
                    limit=per_page,
                )
                brand_handles.extend(ItemHandle(key=c.url, url=c.url, data=c) for c in cards)

            self.logger.info("brand_loaded", brand=site.name, count=len(brand_handles))
            handles.extend(brand_handles[:per_brand])

        if attempted and failures == attempted:
            raise ScraperError(self.shop_slug, "no brand page could be rendered")
        return handles

    def normalize(self, payload: RawPayload) -> Optional[NormalizedProduct]:
        if not isinstance(payload, ProductCardPayload):
            raise TypeError(f"{type(self).__name__} cannot normalize {type(payload).__name__}")
        # Each card is attributed to its own brand site
        return normalize_card(payload, platform=payload.brand or self.shop_name)
