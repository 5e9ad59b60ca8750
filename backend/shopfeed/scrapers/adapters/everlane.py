"""Everlane adapter.

Everlane is Shopify-backed but does not serve a usable /products.json,
so handles come from the sitemap with category collection pages as a
fallback. Each product is read from /products/{handle}.json and merged
with the variant availability embedded in the product page HTML.
"""

import asyncio
import json
import re
from typing import Dict, List, Optional

from shopfeed.core.exceptions import FetchError
from shopfeed.scrapers.adapters.shopify import ShopifyStoreAdapter
from shopfeed.scrapers.base import CategoryPage, ItemHandle, RawPayload, ShopifyProductPayload
from shopfeed.scrapers.utils.normalizer import CategoryClassifier
from shopfeed.scrapers.utils.sitemap import extract_locs, handles_from_category_html, handles_from_urls


EVERLANE_CATEGORIES: List[CategoryPage] = [
    CategoryPage("/collections/womens-sweaters", "sweaters", "women"),
    CategoryPage("/collections/womens-tees", "tops", "women"),
    CategoryPage("/collections/womens-shirts", "tops", "women"),
    CategoryPage("/collections/womens-dresses", "dresses", "women"),
    CategoryPage("/collections/womens-pants", "pants", "women"),
    CategoryPage("/collections/womens-jeans", "jeans", "women"),
    CategoryPage("/collections/womens-outerwear", "outerwear", "women"),
    CategoryPage("/collections/womens-shoes", "shoes", "women"),
    CategoryPage("/collections/womens-bags", "bags", "women"),
    CategoryPage("/collections/mens-sweaters", "sweaters", "men"),
    CategoryPage("/collections/mens-tees", "tops", "men"),
    CategoryPage("/collections/mens-shirts", "tops", "men"),
    CategoryPage("/collections/mens-pants", "pants", "men"),
    CategoryPage("/collections/mens-jeans", "jeans", "men"),
    CategoryPage("/collections/mens-outerwear", "outerwear", "men"),
    CategoryPage("/collections/mens-shoes", "shoes", "men"),
    CategoryPage("/collections/mens-bags", "bags", "men"),
]

_CURRENT_PRODUCT_RE = re.compile(
    r"window\.OnwardWalletsCurrentProduct\s*=\s*(\{.*?\});?\s*(?:window\.|</script>)",
    re.DOTALL,
)
_VARIANTS_ARRAY_RE = re.compile(r"\"variants\"\s*:\s*\[(.*?)\]\s*,\s*\"images\"", re.DOTALL)
_YGROUP_RE = re.compile(r"YGroup[_-]?(\d+)", re.IGNORECASE)


def parse_variant_availability(html: str) -> Optional[Dict[str, bool]]:
    """Variant id -> available, read from the product page's inline scripts.

    Returns:
        Mapping, or None when the page carries no variant data
    """
    variants = []
    match = _CURRENT_PRODUCT_RE.search(html)
    if match:
        try:
            variants = json.loads(match.group(1)).get("variants") or []
        except (ValueError, AttributeError):
            variants = []

    if not variants:
        match = _VARIANTS_ARRAY_RE.search(html)
        if match:
            try:
                variants = json.loads(f"[{match.group(1)}]")
            except ValueError:
                variants = []

    availability = {
        str(v["id"]): v.get("available", True) is not False
        for v in variants
        if isinstance(v, dict) and v.get("id") is not None
    }
    return availability or None


def parse_color_group_id(html: str) -> Optional[str]:
    """YGroup id linking color variants of the same style, if tagged."""
    match = _YGROUP_RE.search(html)
    return match.group(1) if match else None


class EverlaneAdapter(ShopifyStoreAdapter):
    """Everlane: sitemap and category discovery, JSON plus HTML detail merge."""

    shop_slug = "everlane"
    shop_name = "Everlane"
    base_url = "https://www.everlane.com"
    sitemap_url = "https://www.everlane.com/sitemap.xml"

    async def discover(self, max_products: int) -> List[ItemHandle]:
        limit = max_products * 2
        handles: List[ItemHandle] = []
        seen = set()

        for key in await self._sitemap_handles():
            if len(handles) >= limit:
                break
            if key in seen:
                continue
            seen.add(key)
            # Gender is left to normalization, which also sees tags
            handles.append(ItemHandle(key=key, url=self.product_url(key), category=CategoryClassifier.match(key)))

        if len(handles) < max_products:
            self.logger.info("category_fallback", sitemap_handles=len(handles))
            for page in EVERLANE_CATEGORIES:
                if len(handles) >= limit:
                    break
                try:
                    html = await self.fetcher.fetch_text(f"{self.base_url}{page.path}")
                except FetchError as e:
                    self.logger.warning("category_page_failed", path=page.path, error=str(e))
                    continue
                found = handles_from_category_html(html)
                self.logger.info("category_page_loaded", path=page.path, count=len(found))
                for key in found:
                    if len(handles) >= limit:
                        break
                    if key not in seen:
                        seen.add(key)
                        handles.append(
                            ItemHandle(key=key, url=self.product_url(key), category=page.category, gender=page.gender)
                        )

        return handles

    async def _sitemap_handles(self) -> List[str]:
        try:
            index_xml = await self.fetcher.fetch_text(self.sitemap_url)
        except FetchError as e:
            self.logger.warning("sitemap_failed", error=str(e))
            return []

        sitemap_urls = extract_locs(index_xml, contains="sitemap_products")
        self.logger.info("product_sitemaps_found", count=len(sitemap_urls))

        product_urls: List[str] = []
        for sitemap_url in sitemap_urls:
            try:
                xml = await self.fetcher.fetch_text(sitemap_url)
            except FetchError as e:
                self.logger.warning("product_sitemap_failed", url=sitemap_url, error=str(e))
                continue
            product_urls.extend(extract_locs(xml, contains="/products/"))

        return handles_from_urls(product_urls)

    async def fetch_detail(self, handle: ItemHandle) -> Optional[RawPayload]:
        json_result, html_result = await asyncio.gather(
            self.fetcher.fetch_json(f"{self.product_url(handle.key)}.json"),
            self.fetcher.fetch_text(self.product_url(handle.key), headers={"Accept": "text/html"}),
            return_exceptions=True,
        )

        if isinstance(json_result, BaseException):
            if isinstance(json_result, FetchError) and json_result.status_code == 404:
                return None
            raise json_result

        product = (json_result or {}).get("product")
        if not product:
            return None

        availability = None
        color_group_id = None
        if isinstance(html_result, BaseException):
            self.logger.debug("availability_unavailable", key=handle.key, error=str(html_result))
        else:
            availability = parse_variant_availability(html_result)
            color_group_id = parse_color_group_id(html_result)

        return ShopifyProductPayload(
            product=product,
            url=handle.url,
            availability=availability,
            color_group_id=color_group_id,
            category=handle.category,
            gender=handle.gender,
        )
