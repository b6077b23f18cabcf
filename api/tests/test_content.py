"""Tests for catalog content generation.

Covers:
- Grade pricing with half-up rounding and retail compare-at
- Retail tiers for storage, memory, chip and display
- Title length cap and handle shape
- Dominant grade selection (first seen wins ties)
- SEO copy, HTML body, tags and collections
"""

import re
from decimal import Decimal

import pytest

from refurb_hub.domain import (
    KEYBOARD_ENGLISH, KEYBOARD_FRENCH, ProductSpec, StockItem, VariantBucket,
)
from refurb_hub.services import content

HANDLE_RE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")


@pytest.fixture
def mbp14() -> ProductSpec:
    return ProductSpec(
        product_type="MacBook Pro", display_size='14"', processor="M2",
        storage="512GB", memory="16GB", year="2022", category="Laptops", device_family="Mac",
    )


def bucket(grade: str, qty: int, color: str = "Space Gray", keyboard: str = KEYBOARD_ENGLISH) -> VariantBucket:
    b = VariantBucket(color=color, condition=grade, keyboard_layout=keyboard)
    for i in range(qty):
        b.add(StockItem(stock_id=f"{color}-{grade}-{keyboard}-{i}"))
    return b


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


class TestPricing:
    def test_retail_price(self, mbp14):
        assert content.retail_price(mbp14) == 3599

    @pytest.mark.parametrize("grade,expected", [("A", 2519), ("B", 2447), ("C", 2375), ("D", 2195)])
    def test_variant_price_per_grade(self, mbp14, grade, expected):
        assert content.variant_price(mbp14, grade) == expected

    def test_compare_at_is_retail_for_every_grade(self, mbp14):
        for grade in "ABCD":
            assert content.compare_at_price(mbp14, grade) == content.retail_price(mbp14)
            assert content.variant_price(mbp14, grade) < content.compare_at_price(mbp14, grade)

    def test_rounding_is_half_up(self):
        assert content.round_half_up(Decimal("2.5")) == 3
        assert content.round_half_up(Decimal("3.5")) == 4
        assert content.round_half_up(Decimal("1119.49")) == 1119

    def test_terabyte_storage_hits_storage_tiers(self):
        one_tb = ProductSpec(product_type="MacBook Air", display_size='13"', processor="M2", storage="1TB", memory="8GB")
        two_tb = one_tb.model_copy(update={"storage": "2TB"})
        assert content.retail_price(one_tb) == 1599 + 500
        assert content.retail_price(two_tb) == 1599 + 1000

    def test_chip_and_display_tiers(self):
        spec = ProductSpec(product_type="MacBook Pro", display_size='16"', processor="M3 Max", storage="1TB", memory="36GB")
        assert content.retail_price(spec) == 2799 + 500 + 800 + 1000 + 300
        studio = ProductSpec(product_type="Mac Studio", processor="M2 Ultra")
        assert content.retail_price(studio) == 2799 + 1500

    def test_unknown_type_uses_default(self):
        assert content.retail_price(ProductSpec(product_type="Vision Pro")) == content.DEFAULT_PRICE

    def test_discount_percent(self):
        assert [content.discount_percent(g) for g in "ABCD"] == [30, 32, 34, 39]

    def test_base_price_maps_iphone_models(self):
        spec = ProductSpec(product_type="iPhone 13", storage="128GB")
        assert content.base_price(spec) == content.BASE_PRICES["iPhone"]


# ---------------------------------------------------------------------------
# Title / handle / SKU
# ---------------------------------------------------------------------------


class TestTitleAndHandle:
    def test_title(self, mbp14):
        assert content.generate_title(mbp14) == 'Refurbished MacBook Pro 14" M2 2022 512GB 16GB'

    def test_long_title_is_truncated(self):
        spec = ProductSpec(
            product_type="MacBook Pro", display_size='16"',
            processor="M3 Max 16-core CPU 40-core GPU Neural Engine",
            storage="8TB", memory="128GB", year="2023",
        )
        title = content.generate_title(spec)
        assert len(title) == content.TITLE_MAX
        assert title.endswith("...")

    def test_handle(self):
        spec = ProductSpec(
            product_type="MacBook Pro", display_size='14"', processor="M2 Pro",
            storage="512GB", memory="16GB", year="2023",
        )
        assert content.generate_handle(spec) == "refurbished-macbook-pro-14-m2-pro-2023-512gb-16gb"

    @pytest.mark.parametrize("spec", [
        ProductSpec(product_type="iPad Pro", display_size='12.9"', processor="Apple M2 chip", storage="256GB"),
        ProductSpec(product_type="MacBook  Air", processor="M2 (8-core) / GPU -- 10 core", memory="8GB"),
        ProductSpec(product_type="Apple Accessory", year="2022"),
        ProductSpec(product_type="x" * 300, processor="Intel Core i7"),
        ProductSpec(product_type="---", processor="***"),
    ])
    def test_handle_shape(self, spec):
        handle = content.generate_handle(spec)
        assert len(handle) <= content.HANDLE_MAX
        assert HANDLE_RE.match(handle), handle

    def test_variant_sku(self):
        spec = ProductSpec(product_type="MacBook Pro", display_size='14"', processor="M2 Pro", storage="512GB")
        assert content.variant_sku(spec, "Space Gray", "A", KEYBOARD_FRENCH) == "MACB-14-M2P-512-SP-A-FR"

    def test_collection_handle(self):
        assert content.collection_handle("M2 Chip Devices") == "m2-chip-devices"


# ---------------------------------------------------------------------------
# Grade aggregation / copy
# ---------------------------------------------------------------------------


class TestDominantGrade:
    def test_largest_quantity_wins(self):
        assert content.dominant_grade([bucket("A", 1), bucket("B", 2)]) == "B"

    def test_quantities_are_summed_per_grade(self):
        buckets = [bucket("B", 2), bucket("A", 1, color="Silver"), bucket("A", 2)]
        assert content.dominant_grade(buckets) == "A"

    def test_tie_goes_to_first_seen(self):
        assert content.dominant_grade([bucket("B", 2), bucket("A", 2)]) == "B"
        assert content.dominant_grade([bucket("A", 2), bucket("B", 2)]) == "A"

    def test_no_variants_defaults_to_a(self):
        assert content.dominant_grade(None) == "A"


class TestCopy:
    def test_seo_description_uses_dominant_grade_discount(self, mbp14):
        text = content.seo_description(mbp14, [bucket("B", 3), bucket("A", 1)])
        assert "Save 32%" in text
        assert len(text) <= content.SEO_DESCRIPTION_MAX

    def test_product_description_lists_every_grade_price(self, mbp14):
        html = content.product_description(content.DescriptionInput.from_spec(mbp14, [bucket("A", 1)]))
        for grade in "ABCD":
            price = content.variant_price(mbp14, grade)
            assert f"${price:,}" in html
            assert f"({content.discount_percent(grade)}%)" in html
        assert "$3,599" in html
        assert "<th>Processor</th><td>M2</td>" in html

    def test_product_description_is_deterministic(self, mbp14):
        inp = content.DescriptionInput.from_spec(mbp14, [bucket("A", 1)])
        assert content.product_description(inp) == content.product_description(inp)

    def test_keyboard_info(self):
        both = [bucket("A", 1), bucket("A", 1, keyboard=KEYBOARD_FRENCH)]
        assert content.keyboard_info(both) == "Available in English and French Canadian keyboards"
        assert content.keyboard_info([bucket("A", 1)]) == "English keyboard"


class TestTagsAndCollections:
    def test_tags(self):
        spec = ProductSpec(
            product_type="MacBook Pro", display_size='14"', processor="M2 Pro",
            storage="512GB", memory="16GB", year="2023", category="Laptops", device_family="Mac",
        )
        tags = content.tags(spec, [bucket("A", 1), bucket("B", 1, keyboard=KEYBOARD_FRENCH)])
        for expected in ("refurbished", "macbook-pro", "m2-pro", "m2-chip", "pro-chip",
                         "apple-silicon", "512gb", "16gb-ram", "14", "2023",
                         "english-keyboard", "french-canadian", "fr-ca", "laptops", "standard-screen"):
            assert expected in tags
        assert len(tags) == len(set(tags))

    def test_collections_for_apple_silicon(self):
        spec = ProductSpec(product_type="MacBook Air", display_size='13"', processor="M2",
                           year="2022", category="Laptops", device_family="Mac")
        assert content.collections(spec) == [
            "MacBook Air", "Laptops", "Mac", "M2 Chip Devices", "2022 Models",
            "Standard Screen", "Certified Refurbished", "Apple",
        ]

    def test_collections_for_intel(self):
        spec = ProductSpec(product_type="MacBook Pro", display_size='16"', processor="Intel Core i9",
                           category="Laptops", device_family="Mac")
        names = content.collections(spec)
        assert "Intel Mac" in names
        assert "Large Screen" in names
        assert len(names) == len(set(names))

    @pytest.mark.parametrize("size,expected", [('11"', "Compact"), ('13"', "Standard Screen"),
                                               ('15"', "Large Screen"), ("", "")])
    def test_size_bucket(self, size, expected):
        assert content.size_bucket(size) == expected
