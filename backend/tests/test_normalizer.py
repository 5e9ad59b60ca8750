"""Tests for the normalization helpers and the NormalizedProduct contract."""

from decimal import Decimal

import pytest

from shopfeed.scrapers.base import NormalizedProduct, ShopifyProductPayload
from shopfeed.scrapers.adapters.shopify import normalize_shopify_product
from shopfeed.scrapers.utils.normalizer import (
    CategoryClassifier,
    PriceNormalizer,
    clean_description,
    extract_color_name,
    extract_material,
    extract_sizes,
    get_color_hex,
    infer_gender,
    map_condition,
    normalize_url,
    parse_tags,
    resolve_prices,
    strip_color_suffix,
)


class TestPriceResolution:
    """Variant price reduction."""

    def test_lowest_price_and_highest_compare_at(self):
        price, original = resolve_prices([
            {"price": "24.99", "compare_at_price": "39.99"},
            {"price": "29.99", "compare_at_price": None},
        ])
        assert price == Decimal("24.99")
        assert original == Decimal("39.99")

    def test_compare_at_not_above_price_is_dropped(self):
        price, original = resolve_prices([{"price": "50.00", "compare_at_price": "50.00"}])
        assert price == Decimal("50.00")
        assert original is None

    def test_unparsable_prices_ignored(self):
        price, original = resolve_prices([
            {"price": "n/a"},
            {"price": "18.00", "compare_at_price": ""},
        ])
        assert price == Decimal("18.00")
        assert original is None

    def test_no_usable_price(self):
        assert resolve_prices([{"price": "0.00"}, {}]) == (None, None)

    @pytest.mark.parametrize("raw,expected", [
        ("$12.99", Decimal("12.99")),
        ("$1,234.56", Decimal("1234.56")),
        ("Now $98.50", Decimal("98.50")),
        ("", None),
        ("Sold out", None),
    ])
    def test_clean_price_string(self, raw, expected):
        assert PriceNormalizer.clean_price_string(raw) == expected

    def test_sale_and_original_from_card_text(self):
        assert PriceNormalizer.sale_and_original("$128.00 $98.50") == (Decimal("98.50"), Decimal("128.00"))
        assert PriceNormalizer.sale_and_original("$45") == (Decimal("45"), None)

    @pytest.mark.parametrize("text,expected", [
        ("$59.50 $98.00 40% off", (Decimal("59.50"), Decimal("98.00"))),
        ("4 colors $98.00", (Decimal("98.00"), None)),
        ("$49.99 - $79.99", (Decimal("49.99"), None)),
        ("$49.99 \u2013 $79.99", (Decimal("49.99"), None)),
        ("$20 to $35", (Decimal("20"), None)),
        ("Up to 60% off", (None, None)),
    ])
    def test_sale_and_original_ignores_badges_and_ranges(self, text, expected):
        assert PriceNormalizer.sale_and_original(text) == expected


class TestCategoryClassifier:

    @pytest.mark.parametrize("text,expected", [
        ("heather-grey-charcoal-hoodie", "sweaters"),
        ("The Organic Cotton Crew Sweatshirt", "sweaters"),
        ("The Way-High Jean", "jeans"),
        ("Short Sleeve Tee", "tops"),
        ("Linen Drawstring Short", "shorts"),
        ("The Day Heel", "shoes"),
        ("Wool Runner", "shoes"),
        ("Leather Tote", "bags"),
        ("Ankle Sock 4-Pack", "socks"),
        ("Steel Blue Chore Jacket", "outerwear"),
        ("Wool Topcoat", "outerwear"),
        ("Stopwatch Print Scarf", "accessories"),
        ("Relaxed Sweatpants", "pants"),
        ("Womens T-shirts", "tops"),
        ("Sweaters", "sweaters"),
    ])
    def test_classify(self, text, expected):
        assert CategoryClassifier.classify(text) == expected

    def test_fallbacks(self):
        assert CategoryClassifier.match("Gift Card") is None
        assert CategoryClassifier.classify("Gift Card", "activewear") == "activewear"
        assert CategoryClassifier.classify("Gift Card") == "clothing"

    def test_deterministic(self):
        results = {CategoryClassifier.classify("Denim Jacket") for _ in range(5)}
        assert results == {"jeans"}


class TestGender:

    def test_tags_win(self):
        assert infer_gender(["Womens", "sale"], "mens-tee") == "women"
        assert infer_gender(["men"], "") == "men"

    def test_text_is_word_bounded(self):
        assert infer_gender([], "the-womens-organic-tee") == "women"
        assert infer_gender([], "mens_oxford_shirt") == "men"
        # "women" must not be read as "men"
        assert infer_gender([], "womenswear") == "unisex"

    def test_default(self):
        assert infer_gender([], "organic tee", "men") == "men"
        assert infer_gender() == "unisex"


class TestColor:

    def test_hex_lookup(self):
        assert get_color_hex("Black") == "#000000"
        assert get_color_hex("heather-grey-charcoal-hoodie") == "#36454f"
        assert get_color_hex("Heather") == "#808080"
        assert get_color_hex("Not A Color") is None
        assert get_color_hex(None) is None

    def test_color_from_title_suffix(self):
        assert extract_color_name("The Cashmere Crew | Bone") == "Bone"
        assert strip_color_suffix("The Cashmere Crew | Bone") == "The Cashmere Crew"

    def test_color_from_options(self):
        options = [{"name": "Size", "values": ["S"]}, {"name": "Colour", "values": ["Navy", "Black"]}]
        assert extract_color_name("Crew Tee", options) == "Navy"
        assert extract_color_name("Crew Tee") is None


class TestTextHelpers:

    def test_parse_tags(self):
        assert parse_tags("a, b ,,c") == ["a", "b", "c"]
        assert parse_tags(["x", " "]) == ["x"]
        assert parse_tags(None) == []

    def test_material(self):
        assert extract_material(["sale", "fabric: organic cotton"]) == "Organic Cotton"
        assert extract_material(["sale"]) is None
        assert extract_material(["fabric: recycled nylon/spandex"]) == "Recycled Nylon/spandex"
        assert extract_material(["FABRIC: wool"]) == "Wool"

    def test_sizes(self):
        assert extract_sizes([{"name": "Size", "values": ["S", "M"]}], None) == ["S", "M"]
        variants = [{"title": "Default Title"}, {"title": "8"}, {"title": "9"}, {"title": "8"}]
        assert extract_sizes([], variants) == ["8", "9"]
        assert extract_sizes(None, None) is None

    def test_clean_description(self):
        html = "<p>Soft   <b>organic</b>\ncotton.</p>"
        assert clean_description(html, "fallback") == "Soft organic cotton."
        assert clean_description("", "fallback") == "fallback"
        assert len(clean_description("x" * 900, "fallback")) == 500

    @pytest.mark.parametrize("raw,expected", [
        ("NWT", "new"),
        ("new_with_tags", "new"),
        ("Like New", "like_new"),
        ("excellent", "like_new"),
        ("Not NWT", "used"),
        ("good", "used"),
        (None, "used"),
    ])
    def test_map_condition(self, raw, expected):
        assert map_condition(raw) == expected

    def test_normalize_url_strips_tracking(self):
        url = "https://shop.example.com/p/1?utm_source=x&color=red#reviews"
        assert normalize_url(url) == "https://shop.example.com/p/1?color=red"


class TestNormalizedProduct:
    """Validation of the normalized record."""

    def _make(self, **overrides):
        fields = dict(
            name="Organic Cotton Tee",
            description="",
            brand="Everlane",
            price=Decimal("30"),
            category="tops",
            source_url="https://www.everlane.com/products/tee",
            source_platform="Everlane",
        )
        fields.update(overrides)
        return NormalizedProduct(**fields)

    def test_valid(self):
        product = self._make(original_price=Decimal("40"), gender="women")
        data = product.to_dict()
        assert data["price"] == "30"
        assert data["originalPrice"] == "40"
        assert data["sourceUrl"] == "https://www.everlane.com/products/tee"
        assert "material" not in data

    @pytest.mark.parametrize("overrides", [
        {"name": ""},
        {"price": Decimal("0")},
        {"price": Decimal("-5")},
        {"original_price": Decimal("30")},
        {"gender": "kids"},
        {"condition": "refurbished"},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            self._make(**overrides)


class TestShopifyNormalization:
    """Shopify product JSON to NormalizedProduct."""

    def _payload(self, **product_overrides):
        product = {
            "id": 1,
            "title": "The Cotton Hoodie | Heather Grey",
            "handle": "heather-grey-charcoal-hoodie",
            "body_html": "<p>Brushed fleece.</p>",
            "product_type": "",
            "tags": "womens, fabric: organic cotton",
            "options": [
                {"name": "Size", "values": ["S", "M"]},
            ],
            "variants": [
                {"id": 11, "title": "S", "option1": "S", "price": "24.99", "compare_at_price": "39.99", "available": True},
                {"id": 12, "title": "M", "option1": "M", "price": "29.99", "compare_at_price": None, "available": False},
            ],
            "images": [{"src": "//cdn.example.com/hoodie.jpg"}],
        }
        product.update(product_overrides)
        return ShopifyProductPayload(product=product, url="https://shop.example.com/products/heather-grey-charcoal-hoodie")

    def test_full_product(self):
        product = normalize_shopify_product(self._payload(), brand="Example")

        assert product.name == "The Cotton Hoodie"
        assert product.price == Decimal("24.99")
        assert product.original_price == Decimal("39.99")
        assert product.category == "sweaters"
        assert product.gender == "women"
        assert product.material == "Organic Cotton"
        assert product.color_name == "Heather Grey"
        assert product.color_hex == "#808080"
        assert product.sizes == ["S", "M"]
        assert [v.available for v in product.variants] == [True, False]
        assert product.image_url == "https://cdn.example.com/hoodie.jpg"
        assert product.description == "Brushed fleece."

    def test_rejects_missing_name_or_price(self):
        assert normalize_shopify_product(self._payload(title=""), brand="Example") is None
        assert normalize_shopify_product(self._payload(variants=[{"id": 1, "price": "0"}]), brand="Example") is None

    def test_defaults_apply(self):
        product = normalize_shopify_product(
            self._payload(title="Gift Card", handle="gift-card", tags=[]),
            brand="Example",
            default_category="activewear",
            default_gender="men",
        )
        assert product.category == "activewear"
        assert product.gender == "men"
