"""Shopify storefront adapters.

Most DTC brands run on Shopify and expose /products.json, which returns
full product bodies (variants, options, images, tags) in pages of up to
250. Each brand in SHOPIFY_BRANDS is registered as its own source.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

from shopfeed.core.exceptions import FetchError
from shopfeed.scrapers.base import (
    BaseAPIAdapter,
    ItemHandle,
    NormalizedProduct,
    ProductOption,
    RawPayload,
    ShopifyProductPayload,
    Variant,
)
from shopfeed.scrapers.utils.normalizer import (
    CategoryClassifier,
    absolute_image_url,
    clean_description,
    extract_color_name,
    extract_material,
    extract_sizes,
    get_color_hex,
    infer_gender,
    parse_tags,
    resolve_prices,
    strip_color_suffix,
    to_decimal,
)


@dataclass(frozen=True)
class ShopifyBrand:
    slug: str
    name: str
    base_url: str
    gender: Optional[str] = None
    default_category: Optional[str] = None


SHOPIFY_BRANDS: List[ShopifyBrand] = [
    # Athletic and activewear
    ShopifyBrand("gymshark", "Gymshark", "https://www.gymshark.com", "unisex", "activewear"),
    ShopifyBrand("alo-yoga", "Alo Yoga", "https://www.aloyoga.com", "unisex", "activewear"),
    ShopifyBrand("outdoor-voices", "Outdoor Voices", "https://www.outdoorvoices.com", "unisex", "activewear"),
    # Footwear
    ShopifyBrand("allbirds", "Allbirds", "https://www.allbirds.com", "unisex", "shoes"),
    ShopifyBrand("rothys", "Rothy's", "https://www.rothys.com", "women", "shoes"),
    # Basics and underwear
    ShopifyBrand("bombas", "Bombas", "https://www.bombas.com", "unisex", "socks"),
    ShopifyBrand("meundies", "MeUndies", "https://www.meundies.com", "unisex", "underwear"),
    # Fashion and apparel
    ShopifyBrand("good-american", "Good American", "https://www.goodamerican.com", "women", "jeans"),
    ShopifyBrand("chubbies", "Chubbies", "https://www.chubbiesshorts.com", "men", "shorts"),
    # Accessories
    ShopifyBrand("clare-v", "Clare V.", "https://www.clarev.com", "women", "bags"),
    # Premium basics
    ShopifyBrand("quince", "Quince", "https://www.onquince.com", "unisex", "clothing"),
    ShopifyBrand("buck-mason", "Buck Mason", "https://www.buckmason.com", "men", "clothing"),
    ShopifyBrand("taylor-stitch", "Taylor Stitch", "https://www.taylorstitch.com", "men", "clothing"),
    ShopifyBrand("cuyana", "Cuyana", "https://www.cuyana.com", "women", "clothing"),
    ShopifyBrand("tentree", "Tentree", "https://www.tentree.com", "unisex", "clothing"),
    # Workwear
    ShopifyBrand("carhartt-wip", "Carhartt WIP", "https://us.carhartt-wip.com", "unisex", "clothing"),
]


class ShopifyStoreAdapter(BaseAPIAdapter):
    """Adapter for a single Shopify storefront.

    Discovery pages through /products.json; the listing already carries
    each product body, so fetch_detail only hits the network for handles
    discovered some other way.
    """

    base_url: str = ""
    page_size: int = 250
    max_pages: int = 20

    def product_url(self, handle: str) -> str:
        return f"{self.base_url}/products/{handle}"

    async def discover(self, max_products: int) -> List[ItemHandle]:
        handles: List[ItemHandle] = []
        page = 1

        while len(handles) < max_products and page <= self.max_pages:
            try:
                data = await self.fetcher.fetch_json(
                    f"{self.base_url}/products.json",
                    params={"limit": self.page_size, "page": page},
                )
            except FetchError as e:
                if page == 1:
                    raise
                self.logger.warning("listing_page_failed", page=page, error=str(e))
                break

            products = (data or {}).get("products") or []
            for product in products:
                handle = product.get("handle")
                if handle:
                    handles.append(ItemHandle(key=handle, url=self.product_url(handle), data=product))

            self.logger.info("listing_page_loaded", page=page, count=len(products), total=len(handles))
            if len(products) < self.page_size:
                break
            page += 1

        return handles[:max_products]

    async def fetch_detail(self, handle: ItemHandle) -> Optional[RawPayload]:
        if handle.data is not None:
            return ShopifyProductPayload(
                product=handle.data,
                url=handle.url,
                category=handle.category,
                gender=handle.gender,
            )

        try:
            data = await self.fetcher.fetch_json(f"{self.product_url(handle.key)}.json")
        except FetchError as e:
            if e.status_code == 404:
                return None
            raise
        product = (data or {}).get("product")
        if not product:
            return None
        return ShopifyProductPayload(
            product=product,
            url=handle.url,
            category=handle.category,
            gender=handle.gender,
        )

    def normalize(self, payload: RawPayload) -> Optional[NormalizedProduct]:
        if not isinstance(payload, ShopifyProductPayload):
            raise TypeError(f"{type(self).__name__} cannot normalize {type(payload).__name__}")
        return normalize_shopify_product(
            payload,
            brand=self.shop_name,
            default_category=self.default_category,
            default_gender=self.default_gender,
        )


def normalize_shopify_product(
    payload: ShopifyProductPayload,
    brand: str,
    default_category: Optional[str] = None,
    default_gender: Optional[str] = None,
) -> Optional[NormalizedProduct]:
    """Convert Shopify product JSON into a NormalizedProduct.

    Availability from ``payload.availability`` (keyed by variant id) wins
    over the JSON's own flag; variants missing from it count as available.

    Returns:
        NormalizedProduct, or None without a name or a positive price
    """
    product = payload.product
    title = (product.get("title") or "").strip()
    name = strip_color_suffix(title)
    raw_variants: List[Dict[str, Any]] = product.get("variants") or []
    price, original_price = resolve_prices(raw_variants)
    if not name or price is None:
        return None

    handle = product.get("handle") or ""
    product_type = product.get("product_type") or product.get("type") or ""
    tags = parse_tags(product.get("tags"))
    raw_options: List[Dict[str, Any]] = product.get("options") or []

    category = (
        payload.category
        or CategoryClassifier.match(product_type)
        or CategoryClassifier.classify(f"{handle} {name}", default_category)
    )
    gender = payload.gender or infer_gender(tags, f"{product_type} {handle}", default_gender)

    variants = []
    for v in raw_variants:
        variant_id = str(v.get("id", ""))
        if payload.availability is not None:
            available = payload.availability.get(variant_id, True)
        else:
            available = v.get("available", True) is not False
        variants.append(
            Variant(
                id=variant_id,
                title=v.get("title") or "",
                available=available,
                price=to_decimal(v.get("price")),
                option1=v.get("option1") or None,
                option2=v.get("option2") or None,
                option3=v.get("option3") or None,
            )
        )

    options = [
        ProductOption(name=o["name"], values=[str(x) for x in o.get("values") or []])
        for o in raw_options
        if o.get("name") and o.get("name") != "Title" and o.get("values")
    ]

    image_urls = [
        url for url in (absolute_image_url(img.get("src")) for img in product.get("images") or []) if url
    ]

    color_name = extract_color_name(title, raw_options)

    return NormalizedProduct(
        name=name,
        description=clean_description(
            product.get("body_html") or product.get("description"),
            fallback=f"{name} from {brand}",
        ),
        brand=brand,
        price=price,
        original_price=original_price,
        material=extract_material(tags),
        sizes=extract_sizes(raw_options, raw_variants),
        variants=variants or None,
        options=options or None,
        color_group_id=payload.color_group_id,
        color_name=color_name,
        color_hex=get_color_hex(color_name),
        category=category,
        gender=gender,
        condition="new",
        source_url=payload.url,
        source_platform=brand,
        image_url=image_urls[0] if image_urls else None,
        image_urls=image_urls or None,
    )


def build_shopify_adapter(brand: ShopifyBrand) -> Type[ShopifyStoreAdapter]:
    """Create a ShopifyStoreAdapter subclass bound to one brand."""
    class_name = "".join(part.capitalize() for part in brand.slug.split("-")) + "Adapter"
    return type(
        class_name,
        (ShopifyStoreAdapter,),
        {
            "shop_slug": brand.slug,
            "shop_name": brand.name,
            "base_url": brand.base_url,
            "default_category": brand.default_category,
            "default_gender": brand.gender,
            "__module__": __name__,
        },
    )


SHOPIFY_ADAPTERS: List[Type[ShopifyStoreAdapter]] = [build_shopify_adapter(b) for b in SHOPIFY_BRANDS]
