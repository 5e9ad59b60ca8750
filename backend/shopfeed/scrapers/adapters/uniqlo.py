"""Uniqlo adapter backed by the commerce product API."""

from typing import List, Optional

from shopfeed.core.exceptions import FetchError, ScraperError
from shopfeed.scrapers.base import (
    BaseAPIAdapter,
    CategoryPage,
    ItemHandle,
    ListingPayload,
    NormalizedProduct,
    RawPayload,
    Variant,
)
from shopfeed.scrapers.utils.normalizer import CategoryClassifier, get_color_hex, to_decimal


UNIQLO_CATEGORIES: List[CategoryPage] = [
    CategoryPage("25733", "clothing", "men"),
    CategoryPage("25737", "clothing", "women"),
]


class UniqloAdapter(BaseAPIAdapter):
    """Uniqlo men's and women's catalog."""

    shop_slug = "uniqlo"
    shop_name = "Uniqlo"
    api_url = "https://www.uniqlo.com/api/commerce/v5/en/products"
    page_size = 100

    async def discover(self, max_products: int) -> List[ItemHandle]:
        handles: List[ItemHandle] = []
        failures = 0

        for page in UNIQLO_CATEGORIES:
            if len(handles) >= max_products:
                break
            try:
                data = await self.fetcher.fetch_json(
                    self.api_url,
                    params={"categoryId": page.path, "limit": self.page_size},
                )
            except FetchError as e:
                failures += 1
                self.logger.warning("category_failed", category_id=page.path, error=str(e))
                continue

            items = ((data or {}).get("result") or {}).get("items") or []
            self.logger.info("category_loaded", gender=page.gender, count=len(items))
            for item in items:
                product_id = item.get("productId")
                if product_id:
                    handles.append(
                        ItemHandle(
                            key=str(product_id),
                            url=f"https://www.uniqlo.com/us/en/products/{product_id}",
                            gender=page.gender,
                            data=item,
                        )
                    )

        if failures == len(UNIQLO_CATEGORIES):
            raise ScraperError(self.shop_slug, "no category could be fetched")
        return handles

    async def fetch_detail(self, handle: ItemHandle) -> Optional[RawPayload]:
        return ListingPayload(listing=handle.data, url=handle.url, gender=handle.gender)

    def normalize(self, payload: RawPayload) -> Optional[NormalizedProduct]:
        if not isinstance(payload, ListingPayload):
            raise TypeError(f"{type(self).__name__} cannot normalize {type(payload).__name__}")

        item = payload.listing
        name = (item.get("name") or "").strip()
        prices = item.get("prices") or {}
        base = to_decimal((prices.get("base") or {}).get("value"))
        promo = to_decimal((prices.get("promo") or {}).get("value"))

        price = promo if promo is not None and promo > 0 else base
        if not name or price is None or price <= 0:
            return None
        original_price = base if base is not None and base > price else None

        product_id = str(item.get("productId"))
        variants = [
            Variant(id=f"{product_id}-{i}", title=s.get("name") or "", available=s.get("available") is not False)
            for i, s in enumerate(item.get("sizes") or [])
        ]
        colors = item.get("colors") or []
        color_name = colors[0].get("name") if colors else None
        main_images = (item.get("images") or {}).get("main") or []
        image_urls = [img["image"] for img in main_images if isinstance(img, dict) and img.get("image")]

        return NormalizedProduct(
            name=name,
            description=f"{name} from {self.shop_name}",
            brand=self.shop_name,
            price=price,
            original_price=original_price,
            variants=variants or None,
            sizes=[v.title for v in variants if v.title] or None,
            color_name=color_name,
            color_hex=get_color_hex(color_name),
            category=CategoryClassifier.classify(f"{item.get('categoryName') or ''} {name}"),
            gender=payload.gender,
            condition="new",
            source_url=payload.url,
            source_platform=self.shop_name,
            image_url=image_urls[0] if image_urls else None,
            image_urls=image_urls or None,
        )
