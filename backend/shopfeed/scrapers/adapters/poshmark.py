"""Poshmark adapter.

Search result pages embed their listing tiles in the Next.js data blob,
so one search request yields a page of full listing objects.
"""

import json
import math
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from shopfeed.core.exceptions import FetchError, ScraperError
from shopfeed.scrapers.base import (
    BaseHTMLAdapter,
    ItemHandle,
    ListingPayload,
    NormalizedProduct,
    RawPayload,
)
from shopfeed.scrapers.utils.normalizer import (
    CategoryClassifier,
    clean_description,
    infer_gender,
    map_condition,
    to_decimal,
)


SEARCH_TERMS = [
    "designer handbag",
    "leather boots",
    "vintage denim",
    "cashmere sweater",
    "silk dress",
]


def parse_next_data_listings(html: str) -> List[Dict[str, Any]]:
    """Listing objects from the page's __NEXT_DATA__ script."""
    soup = BeautifulSoup(html, "html.parser")
    script = soup.find("script", id="__NEXT_DATA__")
    if script is None or not script.string:
        return []
    try:
        data = json.loads(script.string)
    except ValueError:
        return []
    tiles = ((data.get("props") or {}).get("pageProps") or {}).get("tiles") or []
    return [t["data"] for t in tiles if isinstance(t, dict) and t.get("type") == "listing" and t.get("data")]


class PoshmarkAdapter(BaseHTMLAdapter):
    """Poshmark resale listings found through keyword searches."""

    shop_slug = "poshmark"
    shop_name = "Poshmark"
    base_url = "https://poshmark.com"
    search_terms: List[str] = SEARCH_TERMS

    async def discover(self, max_products: int) -> List[ItemHandle]:
        per_term = max(1, math.ceil(max_products / len(self.search_terms)))
        handles: List[ItemHandle] = []
        seen = set()
        failures = 0

        for term in self.search_terms:
            if len(handles) >= max_products:
                break
            try:
                html = await self.fetcher.fetch_text(
                    f"{self.base_url}/search",
                    params={"query": term, "type": "listings", "src": "dir"},
                )
            except FetchError as e:
                failures += 1
                self.logger.warning("search_failed", term=term, error=str(e))
                continue

            listings = parse_next_data_listings(html)[:per_term]
            self.logger.info("search_loaded", term=term, count=len(listings))
            for listing in listings:
                listing_id = str(listing.get("id") or "")
                if not listing_id or listing_id in seen:
                    continue
                seen.add(listing_id)
                url = f"{self.base_url}/listing/{listing_id}"
                handles.append(ItemHandle(key=listing_id, url=url, data=listing))

        if failures == len(self.search_terms):
            raise ScraperError(self.shop_slug, "every search request failed")
        return handles

    async def fetch_detail(self, handle: ItemHandle) -> Optional[RawPayload]:
        return ListingPayload(listing=handle.data, url=handle.url)

    def normalize(self, payload: RawPayload) -> Optional[NormalizedProduct]:
        if not isinstance(payload, ListingPayload):
            raise TypeError(f"{type(self).__name__} cannot normalize {type(payload).__name__}")

        listing = payload.listing
        name = (listing.get("title") or "").strip()
        price = to_decimal((listing.get("price_amount") or {}).get("val"))
        if not name or price is None or price <= 0:
            return None

        brand = (listing.get("brand") or {}).get("name") or "Unknown"
        image = (listing.get("cover_shot") or {}).get("url_small")

        return NormalizedProduct(
            name=name,
            description=clean_description(listing.get("description"), fallback=f"{name} from {brand}"),
            brand=brand,
            price=price,
            size=listing.get("size") or None,
            category=CategoryClassifier.match(listing.get("category") or "") or CategoryClassifier.classify(name),
            gender=infer_gender(text=listing.get("department") or ""),
            condition=map_condition(listing.get("condition")),
            source_url=payload.url,
            source_platform=self.shop_name,
            image_url=image,
            image_urls=[image] if image else None,
        )
