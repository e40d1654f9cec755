import asyncio

import pytest

from mockpix.config import ReplacementOptions
from mockpix.models import ImageResult
from mockpix.replacer import (
    UrlReplacer,
    create_url_mappings,
    find_variant_mapping,
    replacement_stats,
    rollback,
    set_value_at_path,
)

NEW = "https://bucket.test/generated-images/2024-05-17/abcd1234.png"


def replace(data, url_mappings, cdn_mappings=None, **options):
    replacer = UrlReplacer(ReplacementOptions(log_replacements=False, **options))
    return asyncio.run(replacer.replace(data, url_mappings, cdn_mappings))


def test_direct_replacement_leaves_input_untouched():
    data = {"items": [{"image": "https://picsum.photos/800/600", "name": "x"}]}
    result = replace(data, {"https://picsum.photos/800/600": NEW})

    assert result.success
    assert result.replaced_count == 1
    assert result.failed_count == 0
    assert result.modified_data["items"][0]["image"] == NEW
    assert data["items"][0]["image"] == "https://picsum.photos/800/600"
    mapping = result.mappings[0]
    assert mapping.replacement_type == "direct"
    assert mapping.path == "items[0].image"
    assert mapping.field_name == "image"
    assert mapping.item_index == 0


def test_direct_match_ignores_query_string():
    result = replace(
        {"img": "https://picsum.photos/800/600"},
        {"https://picsum.photos/800/600?random=7": NEW},
    )
    assert result.modified_data["img"] == NEW
    assert result.mappings[0].replacement_type == "direct"


def test_variant_by_seed():
    result = replace(
        {"img": "https://picsum.photos/seed/milano/400/300"},
        {
            "https://picsum.photos/400/300": "https://bucket.test/by-size.png",
            "https://picsum.photos/seed/milano/800/600": NEW,
        },
    )
    assert result.modified_data["img"] == NEW
    assert result.mappings[0].replacement_type == "variant"


def test_variant_by_dimensions():
    result = replace(
        {"img": "https://picsum.photos/400/300?random=9x"},
        {"https://picsum.photos/seed/other/400/300": NEW},
    )
    assert result.modified_data["img"] == NEW
    assert result.mappings[0].replacement_type == "variant"


def test_fallback_keeps_original_url():
    result = replace({"img": "https://picsum.photos/123/45"}, {"https://picsum.photos/800/600": NEW})

    assert result.success
    assert result.replaced_count == 1
    assert result.modified_data["img"] == "https://picsum.photos/123/45"
    assert result.mappings[0].replacement_type == "fallback"


def test_preserve_original_counts_failure():
    result = replace(
        {"img": "https://picsum.photos/123/45"},
        {},
        preserve_original_on_failure=True,
    )
    assert not result.success
    assert result.failed_count == 1
    assert result.replaced_count == 0
    assert result.modified_data["img"] == "https://picsum.photos/123/45"
    assert "https://picsum.photos/123/45" in result.errors[0]


def test_prefers_cdn_url():
    original = "https://picsum.photos/800/600"
    cdn = "https://cdn.test/x.png"
    result = replace({"img": original}, {original: NEW}, {original: cdn})
    assert result.modified_data["img"] == cdn
    assert result.mappings[0].cdn_url == cdn

    result = replace({"img": original}, {original: NEW}, {original: cdn}, prefer_cdn_urls=False)
    assert result.modified_data["img"] == NEW


def test_in_place_without_backup():
    data = {"img": "https://picsum.photos/800/600"}
    result = replace(data, {"https://picsum.photos/800/600": NEW}, backup_original=False)
    assert result.modified_data is data
    assert data["img"] == NEW


def test_non_placeholder_strings_are_not_counted():
    data = {"a": "https://example.com/800/600", "b": "https://picsum.photos/v2/list", "c": 3}
    result = replace(data, {})
    assert result.replaced_count == 0
    assert result.failed_count == 0
    assert result.modified_data == data


def test_validation_errors_are_not_fatal(tmp_path):
    missing = (tmp_path / "missing.png").resolve().as_uri()
    present_file = tmp_path / "present.png"
    present_file.write_bytes(b"png")
    present = present_file.resolve().as_uri()

    result = replace(
        {"a": "https://picsum.photos/800/600", "b": "https://picsum.photos/300/300"},
        {"https://picsum.photos/800/600": missing, "https://picsum.photos/300/300": present},
        validate_urls=True,
    )

    assert result.success
    assert result.replaced_count == 2
    assert len(result.errors) == 1
    assert "missing.png" in result.errors[0]


def test_create_url_mappings():
    results = [
        ImageResult("https://picsum.photos/1/1", "a", True, new_url="u1", cdn_url="c1"),
        ImageResult("https://picsum.photos/2/2", "b", True, new_url="u2"),
        ImageResult("https://picsum.photos/3/3", "c", False, error="boom"),
    ]
    urls, cdns, failed = create_url_mappings(results)
    assert urls == {"https://picsum.photos/1/1": "u1", "https://picsum.photos/2/2": "u2"}
    assert cdns == {"https://picsum.photos/1/1": "c1"}
    assert failed == ["https://picsum.photos/3/3"]


def test_find_variant_mapping_without_match():
    assert find_variant_mapping("https://picsum.photos/10/10", {"https://picsum.photos/20/20": "x"}) is None


def test_rollback_restores_original_urls():
    data = {"items": [{"image": "https://picsum.photos/800/600"}, {"image": "https://picsum.photos/800/600"}]}
    result = replace(data, {"https://picsum.photos/800/600": NEW})
    assert result.modified_data["items"][1]["image"] == NEW

    restored = rollback(result)
    assert restored == data


def test_cycle_is_not_followed():
    data = {"img": "https://picsum.photos/800/600", "child": {}}
    data["child"]["parent"] = data
    result = replace(data, {"https://picsum.photos/800/600": NEW})

    assert result.success
    assert result.replaced_count == 1
    assert result.modified_data["img"] == NEW
    assert result.modified_data["child"]["parent"] is result.modified_data


def test_rollback_with_keys_that_look_like_paths():
    data = {"a.b": "https://picsum.photos/800/600", "a": {"b": "https://picsum.photos/800/600"}}
    result = replace(data, {"https://picsum.photos/800/600": NEW})

    assert sorted(m.path for m in result.mappings) == ['["a.b"]', "a.b"]
    assert result.modified_data == {"a.b": NEW, "a": {"b": NEW}}
    assert rollback(result) == data


def test_set_value_at_path():
    data = {"items": [{"a": {"b": 1}}]}
    set_value_at_path(data, "items[0].a.b", 2)
    assert data["items"][0]["a"]["b"] == 2

    root = [{"img": "x"}]
    set_value_at_path(root, "[0].img", "y")
    assert root[0]["img"] == "y"

    quoted = {"k": {"a.b": [0, {"x\"y": 1}]}}
    set_value_at_path(quoted, 'k["a.b"][1]["x\\"y"]', 2)
    assert quoted["k"]["a.b"][1]["x\"y"] == 2

    with pytest.raises(ValueError):
        set_value_at_path(data, "", 1)


def test_replacement_stats():
    result = replace(
        {"a": "https://picsum.photos/800/600", "b": "https://picsum.photos/1/2"},
        {"https://picsum.photos/800/600": NEW},
    )
    stats = replacement_stats(result)
    assert stats["success_rate"] == 100.0
    assert stats["type_distribution"] == {"direct": 1, "fallback": 1}
