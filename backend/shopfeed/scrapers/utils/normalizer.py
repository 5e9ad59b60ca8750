"""Normalization utilities: prices, categories, gender, colors and text.

Everything here is pure and deterministic so adapters can share it and
tests can call it without any network.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from bs4 import BeautifulSoup


DESCRIPTION_MAX_LENGTH = 500
DEFAULT_CATEGORY = "clothing"


# Ordered (category, keywords) rules. The first rule with any keyword
# present in the text as a whole word (plural allowed) wins.
CATEGORY_RULES: List[Tuple[str, List[str]]] = [
    ("jeans", ["jean", "denim"]),
    ("sweaters", ["sweater", "cardigan", "sweatshirt", "hoodie", "pullover", "fleece", "crewneck"]),
    ("dresses", ["dress", "jumpsuit", "romper"]),
    ("skirts", ["skirt"]),
    ("tops", ["t-shirt", "shirt", "blouse", "tank", "tee", "top", "polo", "henley", "bodysuit"]),
    ("shorts", ["short"]),
    ("pants", ["sweatpant", "trouser", "legging", "jogger", "chino", "pant", "slack"]),
    ("outerwear", ["outerwear", "topcoat", "overcoat", "jacket", "coat", "parka", "blazer", "vest", "anorak", "puffer", "shacket"]),
    ("shoes", ["sneaker", "loafer", "sandal", "runner", "shoe", "boot", "flat", "mule", "heel"]),
    ("bags", ["backpack", "handbag", "crossbody", "purse", "tote", "clutch", "bag"]),
    ("socks", ["sock"]),
    ("underwear", ["underwear", "boxer", "brief", "bralette", "thong"]),
    ("accessories", ["scarves", "scarf", "beanie", "belt", "glove", "wallet", "hat", "cap"]),
]

MEN_TAGS = {"men", "mens", "men's", "male"}
WOMEN_TAGS = {"women", "womens", "women's", "female"}

_WOMEN_RE = re.compile(r"\b(?:women|woman|womens|women's|female)\b")
_MEN_RE = re.compile(r"\b(?:men|man|mens|men's|male)\b")


COLOR_HEX_MAP: Dict[str, str] = {
    # Neutrals
    "black": "#000000",
    "white": "#ffffff",
    "grey": "#808080",
    "gray": "#808080",
    "charcoal": "#36454f",
    "graphite": "#4a4a4a",
    "slate": "#708090",
    "silver": "#c0c0c0",
    "ash": "#b2beb5",
    # Browns and tans
    "brown": "#8b4513",
    "tan": "#d2b48c",
    "camel": "#c19a6b",
    "khaki": "#c3b091",
    "taupe": "#483c32",
    "espresso": "#3c2415",
    "chocolate": "#7b3f00",
    "coffee": "#6f4e37",
    "walnut": "#5d432c",
    "chestnut": "#954535",
    "cognac": "#9a463d",
    "saddle": "#8b4513",
    # Creams and beiges
    "bone": "#e3dac9",
    "cream": "#fffdd0",
    "ivory": "#fffff0",
    "beige": "#f5f5dc",
    "oatmeal": "#d3c5a8",
    "sand": "#c2b280",
    "ecru": "#cdb891",
    "linen": "#faf0e6",
    "canvas": "#e5d3b3",
    # Blues
    "navy": "#1a237e",
    "blue": "#0066cc",
    "indigo": "#3f51b5",
    "denim": "#1560bd",
    "cobalt": "#0047ab",
    "royal": "#4169e1",
    "sky": "#87ceeb",
    "teal": "#008080",
    "cerulean": "#007ba7",
    "midnight": "#191970",
    "steel": "#4682b4",
    "ocean": "#006994",
    # Greens
    "green": "#228b22",
    "olive": "#808000",
    "sage": "#9dc183",
    "moss": "#8a9a5b",
    "forest": "#228b22",
    "hunter": "#355e3b",
    "emerald": "#50c878",
    "jade": "#00a86b",
    "mint": "#98ff98",
    "pine": "#01796f",
    "fern": "#4f7942",
    # Reds and pinks
    "red": "#cc0000",
    "burgundy": "#800020",
    "wine": "#722f37",
    "maroon": "#800000",
    "cherry": "#de3163",
    "crimson": "#dc143c",
    "rust": "#b7410e",
    "terracotta": "#e2725b",
    "coral": "#ff7f50",
    "salmon": "#fa8072",
    "pink": "#ffc0cb",
    "blush": "#de5d83",
    "rose": "#ff007f",
    "dusty": "#d4a5a5",
    "mauve": "#e0b0ff",
    "berry": "#8e4585",
    # Yellows and oranges
    "yellow": "#ffd700",
    "mustard": "#ffdb58",
    "gold": "#ffd700",
    "orange": "#ff8c00",
    "amber": "#ffbf00",
    "butterscotch": "#e09540",
    "honey": "#eb9605",
    "marigold": "#eaa221",
    # Purples
    "purple": "#800080",
    "plum": "#8e4585",
    "eggplant": "#614051",
    "lavender": "#e6e6fa",
    "lilac": "#c8a2c8",
    "violet": "#8f00ff",
    "grape": "#6f2da8",
}

# Longest first so "charcoal" wins over "coal"-like fragments and "grey"
_COLOR_KEYS_BY_LENGTH = sorted(COLOR_HEX_MAP, key=len, reverse=True)

_TITLE_COLOR_SUFFIX_RE = re.compile(r"\|\s*([^|]+)$")
_TITLE_COLOR_STRIP_RE = re.compile(r"\s*\|\s*[^|]+$")
_PRICE_RE = re.compile(r"\$\s*(\d[\d,]*(?:\.\d+)?)")
_PRICE_RANGE_RE = re.compile(r"\$\s*\d[\d,]*(?:\.\d+)?\s*(?:-|\u2013|to)\s*\$", re.IGNORECASE)

# "tee" must not match "steel", "top" must not match "topcoat"
_CATEGORY_PATTERNS = [
    (category, [re.compile(rf"\b{re.escape(kw)}(?:e?s)?\b") for kw in sorted(keywords, key=len, reverse=True)])
    for category, keywords in CATEGORY_RULES
]

TRACKING_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "ref",
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
}


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a JSON price value ("24.99", 24.99, 2499) to Decimal, or None."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def resolve_prices(variants: Iterable[Dict[str, Any]]) -> Tuple[Optional[Decimal], Optional[Decimal]]:
    """Reduce variant prices to a (price, original_price) pair.

    ``price`` is the lowest positive variant price. ``original_price`` is the
    highest compare-at price strictly above ``price``, or None when no
    variant is marked down.

    Args:
        variants: Variant dicts carrying ``price`` and ``compare_at_price``

    Returns:
        Tuple of (price, original_price); price is None when no variant
        has a usable price
    """
    prices: List[Decimal] = []
    compare_at: List[Decimal] = []
    for variant in variants:
        price = to_decimal(variant.get("price"))
        if price is not None and price > 0:
            prices.append(price)
        compare = to_decimal(variant.get("compare_at_price"))
        if compare is not None:
            compare_at.append(compare)

    if not prices:
        return None, None

    price = min(prices)
    marked_down = [c for c in compare_at if c > price]
    return price, (max(marked_down) if marked_down else None)


class PriceNormalizer:
    """Price parsing for text scraped from rendered pages."""

    @staticmethod
    def clean_price_string(raw: str) -> Optional[Decimal]:
        """Parse a price string and extract numeric value.

        Handles various formats:
        - "$12.99" -> 12.99
        - "$1,234.56" -> 1234.56
        - "Now $98.50" -> 98.50

        Args:
            raw: Raw price string

        Returns:
            Decimal price value, or None if parsing fails
        """
        if not raw:
            return None
        match = _PRICE_RE.search(raw)
        if not match:
            return None
        return to_decimal(match.group(1).replace(",", ""))

    @staticmethod
    def extract_prices(text: str) -> List[Decimal]:
        """All positive prices found in a text blob, in order of appearance."""
        if not text:
            return []
        found = []
        for match in _PRICE_RE.findall(text):
            value = to_decimal(match.replace(",", ""))
            if value is not None and value > 0:
                found.append(value)
        return found

    @classmethod
    def sale_and_original(cls, text: str) -> Tuple[Optional[Decimal], Optional[Decimal]]:
        """Split a card price blob like "$98.50 $128.00" into (price, original).

        Only dollar amounts count, so badges ("40% off") and counts
        ("4 colors") are ignored. A range ("$49.99 - $79.99") yields its low
        end with no original price.
        """
        prices = cls.extract_prices(text)
        if not prices:
            return None, None
        low, high = min(prices), max(prices)
        if _PRICE_RANGE_RE.search(text):
            return low, None
        return low, (high if high > low else None)


class CategoryClassifier:
    """Rule-based category inference from names, handles and product types."""

    @staticmethod
    def match(text: str) -> Optional[str]:
        """First matching rule for ``text``, or None when no keyword is present."""
        haystack = (text or "").lower()
        if not haystack:
            return None
        for category, patterns in _CATEGORY_PATTERNS:
            if any(pattern.search(haystack) for pattern in patterns):
                return category
        return None

    @classmethod
    def classify(cls, text: str, default: Optional[str] = None) -> str:
        """Classify a product into a category slug.

        Rules are tried in order and the first rule with a keyword present
        in ``text`` as a whole word wins, so "Steel Blue Chore Jacket" is
        outerwear rather than a tee.

        Args:
            text: Title, handle or product type, matched case-insensitively
            default: Adapter default used when no rule matches

        Returns:
            Category slug, falling back to ``default`` then "clothing"
        """
        return cls.match(text) or default or DEFAULT_CATEGORY


def infer_gender(
    tags: Sequence[str] = (),
    text: str = "",
    default: Optional[str] = None,
) -> str:
    """Infer men/women/unisex from tags, then from free text.

    Women markers are always checked before men markers because "women"
    contains "men".
    """
    lowered = {t.strip().lower() for t in tags if t}
    if lowered & WOMEN_TAGS:
        return "women"
    if lowered & MEN_TAGS:
        return "men"

    haystack = (text or "").lower().replace("-", " ").replace("_", " ")
    if _WOMEN_RE.search(haystack):
        return "women"
    if _MEN_RE.search(haystack):
        return "men"
    return default or "unisex"


def get_color_hex(color_name: Optional[str]) -> Optional[str]:
    """Map a color name to a hex code.

    Tries an exact match, then the longest known color word contained in
    the name, then the "heather" and "washed"/"faded" modifiers.
    """
    if not color_name:
        return None
    normalized = color_name.lower().strip()

    if normalized in COLOR_HEX_MAP:
        return COLOR_HEX_MAP[normalized]

    for key in _COLOR_KEYS_BY_LENGTH:
        if key in normalized:
            return COLOR_HEX_MAP[key]

    if "heather" in normalized:
        return COLOR_HEX_MAP["grey"]
    if "washed" in normalized or "faded" in normalized:
        for part in normalized.split():
            if part in COLOR_HEX_MAP:
                return COLOR_HEX_MAP[part]
    return None


def extract_color_name(title: str, options: Optional[Sequence[Dict[str, Any]]] = None) -> Optional[str]:
    """Color from a "Name | Color" title suffix, else the first Color option value."""
    match = _TITLE_COLOR_SUFFIX_RE.search(title or "")
    if match:
        return match.group(1).strip()
    for option in options or []:
        if str(option.get("name", "")).lower() in ("color", "colour"):
            values = option.get("values") or []
            if values:
                return str(values[0])
    return None


def strip_color_suffix(title: str) -> str:
    """Remove a trailing "| Color" from a product title."""
    return _TITLE_COLOR_STRIP_RE.sub("", title or "").strip()


def parse_tags(raw: Any) -> List[str]:
    """Tags arrive either as a list or as one comma-separated string."""
    if isinstance(raw, list):
        return [str(t).strip() for t in raw if str(t).strip()]
    if isinstance(raw, str):
        return [t.strip() for t in raw.split(",") if t.strip()]
    return []


def extract_material(tags: Sequence[str]) -> Optional[str]:
    """Material from the first "fabric: X" tag, title-cased per word ("Organic Cotton")."""
    for tag in tags:
        if tag.lower().startswith("fabric:"):
            material = tag.split(":", 1)[1].strip()
            if material:
                return " ".join(word[:1].upper() + word[1:] for word in material.split())
            return None
    return None


def extract_sizes(
    options: Optional[Sequence[Dict[str, Any]]],
    variants: Optional[Sequence[Dict[str, Any]]],
) -> Optional[List[str]]:
    """Flat size list from the Size option, or unique variant titles."""
    for option in options or []:
        if str(option.get("name", "")).lower() in ("size", "sizes") and option.get("values"):
            return [str(v) for v in option["values"]]

    sizes: List[str] = []
    for variant in variants or []:
        label = variant.get("title") or variant.get("option1")
        if label and label != "Default Title" and label not in sizes:
            sizes.append(str(label))
    return sizes or None


def clean_description(html: Optional[str], fallback: str) -> str:
    """Plain-text description: tags stripped, whitespace collapsed, truncated."""
    text = ""
    if html:
        text = BeautifulSoup(html, "html.parser").get_text(" ")
        text = re.sub(r"\s+", " ", text).strip()[:DESCRIPTION_MAX_LENGTH].strip()
    return text or fallback


def map_condition(raw: Optional[str]) -> str:
    """Map a marketplace condition label onto new/like_new/used."""
    lower = (raw or "").lower().replace("_", " ")
    if "not nwt" in lower:
        return "used"
    if "like new" in lower or "excellent" in lower or "pristine" in lower:
        return "like_new"
    if "nwt" in lower or "brand new" in lower or lower.strip() == "new" or "new with" in lower:
        return "new"
    return "used"


def absolute_image_url(src: Optional[str]) -> Optional[str]:
    """Protocol-relative image URLs ("//cdn...") become https."""
    if not src:
        return None
    if src.startswith("//"):
        return "https:" + src
    return src


def normalize_url(url: str) -> str:
    """Normalize a URL by removing tracking parameters and the fragment.

    Args:
        url: URL to normalize

    Returns:
        Normalized URL
    """
    if not url:
        return url

    parsed = urlparse(url)
    query_params = parse_qs(parsed.query)
    filtered_params = {k: v for k, v in query_params.items() if k not in TRACKING_PARAMS}
    new_query = urlencode(filtered_params, doseq=True)

    return urlunparse(
        (parsed.scheme, parsed.netloc, parsed.path, parsed.params, new_query, "")
    )
