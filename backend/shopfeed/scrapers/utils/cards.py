"""Product card extraction for category listing pages."""

import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from shopfeed.scrapers.base import NormalizedProduct, ProductCardPayload
from shopfeed.scrapers.utils.normalizer import (
    CategoryClassifier,
    PriceNormalizer,
    absolute_image_url,
    extract_color_name,
    get_color_hex,
    infer_gender,
    normalize_url,
    strip_color_suffix,
)


@dataclass(frozen=True)
class CardSelectors:
    """CSS selectors locating the parts of a product card."""

    card: str
    name: str
    price: str
    link: str = "a"
    image: str = "img"
    brand: Optional[str] = None


# Merchandising badges, review counts and prices that leak into tile text
_BADGE_RE = re.compile(
    r"top rated|best seller|new arrival|only a few left|\d+\s+reviews?|\$\s?[\d,]+(?:\.\d+)?",
    re.IGNORECASE,
)


def clean_card_name(text: str) -> str:
    name = re.sub(r"\s+", " ", _BADGE_RE.sub(" ", text or "")).strip(" -|")
    if name:
        name = name[0].upper() + name[1:]
    return name


def _image_src(card, selector: str) -> Optional[str]:
    img = card.select_one(selector)
    if img is None:
        return None
    for attr in ("src", "data-src", "data-original"):
        src = img.get(attr)
        if src and not src.startswith("data:"):
            return absolute_image_url(src)
    return None


def parse_product_cards(
    html: str,
    selectors: CardSelectors,
    base_url: str,
    *,
    brand: Optional[str] = None,
    category: Optional[str] = None,
    gender: Optional[str] = None,
    condition: str = "new",
    limit: Optional[int] = None,
) -> List[ProductCardPayload]:
    """Extract product cards from a rendered or static category page.

    Cards without a product link or a name are skipped; URLs are made
    absolute and stripped of tracking parameters, and repeated URLs are
    dropped.
    """
    soup = BeautifulSoup(html, "html.parser")
    cards: List[ProductCardPayload] = []
    seen = set()

    for card in soup.select(selectors.card):
        link = None
        for a in card.select(selectors.link):
            href = a.get("href")
            if href and "#product-reviews" not in href:
                link = a
                break
        if link is None:
            continue

        url = normalize_url(urljoin(base_url, link["href"]))
        if url in seen:
            continue

        name_el = card.select_one(selectors.name)
        name = clean_card_name(name_el.get_text(" ", strip=True) if name_el else link.get_text(" ", strip=True))
        if not name:
            continue

        price_el = card.select_one(selectors.price)
        card_brand = brand
        if selectors.brand:
            brand_el = card.select_one(selectors.brand)
            if brand_el and brand_el.get_text(strip=True):
                card_brand = brand_el.get_text(" ", strip=True)

        image = _image_src(card, selectors.image)
        seen.add(url)
        cards.append(
            ProductCardPayload(
                name=name,
                price_text=price_el.get_text(" ", strip=True) if price_el else "",
                url=url,
                image_url=urljoin(base_url, image) if image else None,
                brand=card_brand,
                category=category,
                gender=gender,
                condition=condition,
            )
        )
        if limit and len(cards) >= limit:
            break

    return cards


def normalize_card(
    payload: ProductCardPayload,
    platform: str,
    default_category: Optional[str] = None,
    default_gender: Optional[str] = None,
) -> Optional[NormalizedProduct]:
    """Convert a product card into a NormalizedProduct.

    The lowest price in the card's price text is the price and the highest,
    when different, the original price.
    """
    price, original_price = PriceNormalizer.sale_and_original(payload.price_text)
    title = (payload.name or "").strip()
    name = strip_color_suffix(title)
    if not name or price is None:
        return None

    brand = payload.brand or platform
    category = CategoryClassifier.match(payload.category or "") or payload.category
    color_name = extract_color_name(title)

    return NormalizedProduct(
        name=name,
        description=f"{name} from {brand}",
        brand=brand,
        price=price,
        original_price=original_price,
        category=category or CategoryClassifier.classify(name, default_category),
        gender=payload.gender or infer_gender(text=name, default=default_gender),
        condition=payload.condition,
        color_name=color_name,
        color_hex=get_color_hex(color_name),
        source_url=payload.url,
        source_platform=platform,
        image_url=payload.image_url,
        image_urls=[payload.image_url] if payload.image_url else None,
    )
