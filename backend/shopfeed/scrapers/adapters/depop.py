"""Depop adapter backed by the public web search API."""

import math
from typing import List, Optional

from shopfeed.core.exceptions import FetchError, ScraperError
from shopfeed.scrapers.base import (
    BaseAPIAdapter,
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


class DepopAdapter(BaseAPIAdapter):
    """Depop resale listings from keyword searches."""

    shop_slug = "depop"
    shop_name = "Depop"
    api_url = "https://webapi.depop.com/api/v2/search/products/"
    search_terms: List[str] = ["vintage", "designer", "streetwear", "y2k"]
    page_size = 24

    async def discover(self, max_products: int) -> List[ItemHandle]:
        per_term = max(1, math.ceil(max_products / len(self.search_terms)))
        handles: List[ItemHandle] = []
        seen = set()
        failures = 0

        for term in self.search_terms:
            if len(handles) >= max_products:
                break
            try:
                data = await self.fetcher.fetch_json(
                    self.api_url,
                    params={"what": term, "limit": min(self.page_size, per_term)},
                )
            except FetchError as e:
                failures += 1
                self.logger.warning("search_failed", term=term, error=str(e))
                continue

            items = (data or {}).get("products") or []
            for item in items[:per_term]:
                key = str(item.get("slug") or item.get("id") or "")
                if not key or key in seen:
                    continue
                seen.add(key)
                handles.append(ItemHandle(key=key, url=f"https://www.depop.com/products/{key}", data=item))

        if failures == len(self.search_terms):
            raise ScraperError(self.shop_slug, "every search request failed")
        return handles

    async def fetch_detail(self, handle: ItemHandle) -> Optional[RawPayload]:
        return ListingPayload(listing=handle.data, url=handle.url)

    def normalize(self, payload: RawPayload) -> Optional[NormalizedProduct]:
        if not isinstance(payload, ListingPayload):
            raise TypeError(f"{type(self).__name__} cannot normalize {type(payload).__name__}")

        item = payload.listing
        description = (item.get("description") or "").strip()
        name = description[:100].strip()
        price = to_decimal((item.get("price") or {}).get("amount"))
        if not name or price is None or price <= 0:
            return None

        brand = (item.get("brand") or {}).get("name") or "Unknown"
        category_names = " ".join(c.get("name", "") for c in item.get("categories") or [] if isinstance(c, dict))
        pictures = [p["url"] for p in item.get("pictures") or [] if isinstance(p, dict) and p.get("url")]

        return NormalizedProduct(
            name=name,
            description=clean_description(description, fallback=f"{name} from {brand}"),
            brand=brand,
            price=price,
            size=(item.get("size") or {}).get("name"),
            category=CategoryClassifier.classify(f"{category_names} {name}"),
            gender=infer_gender(text=category_names),
            condition=map_condition(item.get("condition")),
            source_url=payload.url,
            source_platform=self.shop_name,
            image_url=pictures[0] if pictures else None,
            image_urls=pictures or None,
        )
