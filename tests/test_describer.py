import random

import pytest

from mockpix.config import DescriptionOptions
from mockpix.describer import (
    LOCALE_PHRASES,
    DescriptionGenerator,
    composition_hint,
    infer_data_type,
    truncate_prompt,
)
from mockpix.extractor import extract_image_urls


def describe(data, **options):
    occurrences = extract_image_urls(data).occurrences
    options.setdefault("locale", None)
    generator = DescriptionGenerator(DescriptionOptions(**options), rng=random.Random(0))
    return generator.describe_all(occurrences)


def test_plain_field_without_context():
    desc = describe({"img": "https://picsum.photos/800/600"})["img"]

    assert desc.category == "generic"
    assert desc.confidence == pytest.approx(0.8)
    assert desc.prompt == "professional image, professional photography"
    assert desc.enhanced_prompt == (
        "professional image, professional photography, "
        "professional lighting, high quality, clean background"
    )


def test_longest_field_keyword_wins():
    desc = describe({"product_image": "https://picsum.photos/800/600"})["product_image"]
    assert desc.category == "product"
    assert "professional product photography" in desc.prompt


def test_context_fields_feed_prompt_and_confidence():
    data = {"items": [{"name": "Scarpa Rossa", "brand": "Nencini", "image": "https://picsum.photos/800/600"}]}
    desc = describe(data)["items[0].image"]

    assert desc.prompt.startswith("scarpa rossa nencini, ")
    assert desc.base_context == "scarpa rossa nencini"
    assert 0.0 <= desc.confidence <= 1.0


def test_commercial_context_maps_to_product():
    data = {"items": [{"name": "Scarpa", "price": 49.9, "image": "https://picsum.photos/800/600"}]}
    desc = describe(data)["items[0].image"]
    assert desc.category == "product"
    assert desc.data_type == "product"


def test_composition_hints():
    descs = describe({
        "square_img": "https://picsum.photos/400/400",
        "wide_img": "https://picsum.photos/1200/300",
        "tall_img": "https://picsum.photos/300/600",
    })
    assert "square composition, centered" in descs["square_img"].prompt
    assert "wide banner format" in descs["wide_img"].prompt
    assert "portrait orientation" in descs["tall_img"].prompt
    assert composition_hint(800, 600) == ""


def test_style_suffix():
    desc = describe({"img": "https://picsum.photos/800/600"}, style="realistic")["img"]
    assert desc.enhanced_prompt.endswith("photorealistic, natural lighting, detailed")
    assert desc.style == "realistic"


def test_locale_phrase_for_matching_category():
    desc = describe(
        {"food_image": "https://picsum.photos/800/600"},
        locale="italian",
        max_prompt_length=500,
    )["food_image"]

    assert desc.category == "food"
    assert any(phrase in desc.enhanced_prompt for phrase in LOCALE_PHRASES["italian"]["food"])


def test_no_locale_phrase_without_keywords():
    desc = describe({"img": "https://picsum.photos/800/600"}, locale="italian")["img"]
    assert "Italian" not in desc.enhanced_prompt


def test_prompt_length_cap():
    data = {"items": [{"name": "a very long product name " * 10, "image": "https://picsum.photos/800/600"}]}
    desc = describe(data, max_prompt_length=60)["items[0].image"]
    assert len(desc.enhanced_prompt) <= 60
    assert desc.enhanced_prompt.endswith("...")


def test_shared_context_across_group():
    data = {
        "items": [
            {"name": "Scarpa", "category": "shoes", "image": "https://picsum.photos/800/600"},
            {"name": "Stivale", "category": "shoes", "image": "https://picsum.photos/800/600?random=2"},
        ]
    }
    descs = describe(data)
    assert descs["items[0].image"].base_context == "shoes"
    assert descs["items[1].image"].base_context == "shoes"
    assert descs["items[0].image"].prompt.startswith("shoes, ")


def test_describe_all_keeps_input_order():
    data = {
        "items": [
            {"category": "a", "image": "https://picsum.photos/100/100"},
            {"category": "b", "image": "https://picsum.photos/200/200"},
            {"category": "a", "image": "https://picsum.photos/100/100"},
        ]
    }
    assert list(describe(data)) == ["items[0].image", "items[1].image", "items[2].image"]


def test_truncate_prompt():
    assert truncate_prompt("short", 10) == "short"
    assert truncate_prompt("abcdefghij", 8) == "abcde..."


def test_infer_data_type():
    assert infer_data_type({"name": "x", "price": 1}) == "product"
    assert infer_data_type({"author": "x"}) == "content"
    assert infer_data_type({"address": "x"}) == "place"
    assert infer_data_type({"email": "x"}) == "person"
    assert infer_data_type({}) == "generic"
    assert infer_data_type(None) == "unknown"
