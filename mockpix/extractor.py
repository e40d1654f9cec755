"""
extractor.py — Find placeholder image URLs in an arbitrary JSON value.

Usage:
    from mockpix.extractor import extract_image_urls
    result = extract_image_urls(data)
    result.total_found, result.unique_urls, result.duplicate_groups

Traversal is depth-first. Object keys extend the path with ".key", array
indices with "[i]". Keys that would make the path ambiguous (empty, or
containing '.', '[', ']' or '"') are written as ["key"] in JSON string
syntax, so every occurrence has a distinct path. Strings that look like
placeholders but carry no parseable dimensions are skipped. No network
access happens here.
"""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from typing import Any, Dict, List, Optional, Set

from .models import ExtractionResult, ImageOccurrence
from .urls import is_placeholder_url, normalize_url, parse_dimensions, parse_seed

logger = logging.getLogger(__name__)


# ── Path helpers ──────────────────────────────────────────────────────────────

_PLAIN_KEY = re.compile(r'[^.\[\]"]+')


def join_key(path: str, key: str) -> str:
    """Append an object key; keys with '.', '[', ']' or '"' become ["quoted"]."""
    if not _PLAIN_KEY.fullmatch(key):
        return f"{path}[{json.dumps(key, ensure_ascii=False)}]"
    return f"{path}.{key}" if path else key


def join_index(path: str, index: int) -> str:
    return f"{path}[{index}]" if path else f"[{index}]"


# ── Public API ────────────────────────────────────────────────────────────────

def extract_image_urls(data: Any) -> ExtractionResult:
    """Collect every placeholder occurrence in ``data`` plus duplicate groups."""
    occurrences: List[ImageOccurrence] = []
    _traverse(data, "", occurrences, 0, set())

    duplicate_groups: Dict[str, List[ImageOccurrence]] = {}
    for occ in occurrences:
        duplicate_groups.setdefault(normalize_url(occ.url), []).append(occ)

    logger.debug(
        "Extracted %d placeholder URLs (%d unique)",
        len(occurrences), len(duplicate_groups),
    )
    return ExtractionResult(
        occurrences=occurrences,
        total_found=len(occurrences),
        unique_urls=len(duplicate_groups),
        duplicate_groups=duplicate_groups,
    )


def _traverse(
    node: Any,
    path: str,
    results: List[ImageOccurrence],
    item_index: int,
    visiting: Set[int],
) -> None:
    if not isinstance(node, (dict, list)):
        return

    # Guard against cyclic containers built in Python (parsed JSON is a tree)
    node_id = id(node)
    if node_id in visiting:
        logger.warning("Cycle detected at %s, skipping", path or "<root>")
        return
    visiting.add(node_id)

    try:
        if isinstance(node, list):
            for index, item in enumerate(node):
                _traverse(item, join_index(path, index), results, index, visiting)
            return

        for key, value in node.items():
            key = str(key)
            child_path = join_key(path, key)
            if isinstance(value, str):
                if is_placeholder_url(value):
                    occ = _parse_occurrence(value, child_path, key, node, item_index)
                    if occ is not None:
                        results.append(occ)
            elif isinstance(value, (dict, list)):
                _traverse(value, child_path, results, item_index, visiting)
    finally:
        visiting.discard(node_id)


def _parse_occurrence(
    url: str,
    path: str,
    field_name: str,
    context: Dict[str, Any],
    item_index: int,
) -> Optional[ImageOccurrence]:
    dimensions = parse_dimensions(url)
    if dimensions is None:
        logger.debug("Skipping %s: no usable dimensions in %s", path, url)
        return None
    return ImageOccurrence(
        url=url,
        path=path,
        field_name=field_name,
        context=dict(context),
        dimensions=dimensions,
        seed=parse_seed(url),
        item_index=item_index,
    )


# ── Grouping / statistics ─────────────────────────────────────────────────────

def group_by_dimensions(occurrences: List[ImageOccurrence]) -> Dict[str, List[ImageOccurrence]]:
    groups: Dict[str, List[ImageOccurrence]] = {}
    for occ in occurrences:
        groups.setdefault(occ.dimensions.key, []).append(occ)
    return groups


def filter_by_field_type(occurrences: List[ImageOccurrence]) -> Dict[str, List[ImageOccurrence]]:
    """Bucket occurrences into thumbnails, banners, squares, portraits, landscapes, generic."""
    buckets: Dict[str, List[ImageOccurrence]] = {
        "thumbnails": [], "banners": [], "squares": [],
        "portraits": [], "landscapes": [], "generic": [],
    }
    for occ in occurrences:
        name = occ.field_name.lower()
        ratio = occ.dimensions.aspect_ratio
        if "thumb" in name:
            buckets["thumbnails"].append(occ)
        elif "banner" in name or "header" in name:
            buckets["banners"].append(occ)
        elif ratio == 1:
            buckets["squares"].append(occ)
        elif ratio < 1:
            buckets["portraits"].append(occ)
        elif ratio > 2:
            buckets["banners"].append(occ)
        elif ratio > 1:
            buckets["landscapes"].append(occ)
        else:
            buckets["generic"].append(occ)
    return buckets


def field_type(field_name: str) -> str:
    name = field_name.lower()
    if "thumb" in name:
        return "thumbnail"
    if "banner" in name or "header" in name:
        return "banner"
    if "avatar" in name or "profile" in name:
        return "avatar"
    if "logo" in name:
        return "logo"
    if "background" in name or "bg" in name:
        return "background"
    if "gallery" in name or "photo" in name:
        return "gallery"
    return "generic"


def extraction_stats(result: ExtractionResult) -> dict:
    """Summary line and distributions for logging / the CLI."""
    dimension_distribution = Counter(o.dimensions.key for o in result.occurrences)
    field_type_distribution = Counter(field_type(o.field_name) for o in result.occurrences)
    duplicate_count = sum(
        len(group) - 1 for group in result.duplicate_groups.values() if len(group) > 1
    )
    summary = (
        f"Found {result.total_found} placeholder images, "
        f"{result.unique_urls} unique, {duplicate_count} duplicates"
    )
    return {
        "summary": summary,
        "dimension_distribution": dict(dimension_distribution),
        "field_type_distribution": dict(field_type_distribution),
        "duplicate_count": duplicate_count,
    }
