"""
replacer.py — Rewrite placeholder URLs in a JSON document.

Resolution order for every placeholder string (same traversal as the
extractor, so counts line up):
  1. direct   — exact or normalized original URL in the mapping table
  2. variant  — a mapped URL with the same seed, else the same dimensions
  3. fallback — keep the original URL (counted as handled), unless
                preserve_original_on_failure is set, in which case the
                occurrence counts as failed and an error is recorded

Usage:
    url_mappings, cdn_mappings, failed = create_url_mappings(image_results)
    result = await UrlReplacer(options).replace(data, url_mappings, cdn_mappings)
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import re
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse
from urllib.request import url2pathname

import requests

from .config import ReplacementOptions
from .extractor import join_index, join_key
from .models import ImageResult, ReplacementResult, UrlMapping
from .urls import is_placeholder_url, normalize_url, parse_dimensions, parse_seed

logger = logging.getLogger(__name__)


def create_url_mappings(
    results: Sequence[ImageResult],
) -> Tuple[Dict[str, str], Dict[str, str], List[str]]:
    """Split generation results into url/cdn lookup tables and failed originals."""
    url_mappings: Dict[str, str] = {}
    cdn_mappings: Dict[str, str] = {}
    failed: List[str] = []
    for r in results:
        if r.success and r.new_url:
            url_mappings[r.original_url] = r.new_url
            if r.cdn_url:
                cdn_mappings[r.original_url] = r.cdn_url
        else:
            failed.append(r.original_url)
    return url_mappings, cdn_mappings, failed


class UrlReplacer:
    def __init__(self, options: Optional[ReplacementOptions] = None) -> None:
        self.options = options or ReplacementOptions()

    async def replace(
        self,
        data: Any,
        url_mappings: Dict[str, str],
        cdn_mappings: Optional[Dict[str, str]] = None,
    ) -> ReplacementResult:
        opts = self.options
        cdn_mappings = cdn_mappings or {}
        target = copy.deepcopy(data) if opts.backup_original else data
        result = ReplacementResult(modified_data=target)

        normalized = {normalize_url(k): k for k in url_mappings}

        try:
            self._walk(target, "", 0, url_mappings, normalized, cdn_mappings, result)

            if opts.validate_urls and result.mappings:
                await self.validate(result)

            result.success = result.failed_count == 0 or result.replaced_count > 0
            if opts.log_replacements:
                log_replacement_results(result)
        except Exception as exc:
            logger.exception("URL replacement failed")
            result.errors.append(f"Replacement failed: {exc}")
            result.success = False

        return result

    # ── traversal ─────────────────────────────────────────────────────────

    def _walk(self, node, path, item_index, url_mappings, normalized, cdn_mappings, result,
              visiting=None) -> None:
        if not isinstance(node, (dict, list)):
            return
        if visiting is None:
            visiting = set()
        node_id = id(node)
        if node_id in visiting:
            logger.warning("Cycle detected at %s, skipping", path or "<root>")
            return
        visiting.add(node_id)

        try:
            if isinstance(node, list):
                for index, item in enumerate(node):
                    self._walk(item, join_index(path, index), index,
                               url_mappings, normalized, cdn_mappings, result, visiting)
                return

            for key in list(node.keys()):
                value = node[key]
                child_path = join_key(path, str(key))
                if isinstance(value, str):
                    if is_placeholder_url(value) and parse_dimensions(value) is not None:
                        self._replace_one(node, key, value, child_path, item_index,
                                          url_mappings, normalized, cdn_mappings, result)
                elif isinstance(value, (dict, list)):
                    self._walk(value, child_path, item_index,
                               url_mappings, normalized, cdn_mappings, result, visiting)
        finally:
            visiting.discard(node_id)

    def _replace_one(self, node, key, original_url, path, item_index,
                     url_mappings, normalized, cdn_mappings, result) -> None:
        matched_key, replacement_type = self._resolve(original_url, url_mappings, normalized)

        if matched_key is None:
            if self.options.preserve_original_on_failure:
                result.failed_count += 1
                result.errors.append(f"No replacement found for URL: {original_url} at {path}")
                return
            new_url, cdn_url, replacement_type = original_url, None, "fallback"
        else:
            new_url = url_mappings[matched_key]
            cdn_url = cdn_mappings.get(matched_key)

        final_url = cdn_url if (self.options.prefer_cdn_urls and cdn_url) else new_url
        node[key] = final_url
        result.mappings.append(UrlMapping(
            original_url=original_url,
            new_url=final_url,
            cdn_url=cdn_url,
            path=path,
            field_name=str(key),
            item_index=item_index,
            replacement_type=replacement_type,
        ))
        result.replaced_count += 1

    @staticmethod
    def _resolve(url: str, url_mappings: Dict[str, str], normalized: Dict[str, str]):
        if url in url_mappings:
            return url, "direct"
        key = normalized.get(normalize_url(url))
        if key is not None:
            return key, "direct"
        key = find_variant_mapping(url, url_mappings)
        if key is not None:
            return key, "variant"
        return None, None

    # ── validation ────────────────────────────────────────────────────────

    async def validate(self, result: ReplacementResult) -> None:
        """Existence check per replaced URL; failures become errors, never exceptions."""
        loop = asyncio.get_running_loop()
        checks = [
            loop.run_in_executor(None, check_url, m.new_url, self.options.validation_timeout)
            for m in result.mappings
        ]
        outcomes = await asyncio.gather(*checks, return_exceptions=True)
        for mapping, outcome in zip(result.mappings, outcomes):
            if isinstance(outcome, BaseException):
                result.errors.append(f"URL validation error for {mapping.new_url}: {outcome}")
            elif outcome:
                result.errors.append(f"URL validation failed for {mapping.new_url}: {outcome}")


def find_variant_mapping(url: str, url_mappings: Dict[str, str]) -> Optional[str]:
    """Key of a mapping with the same seed, else with the same dimensions."""
    seed = parse_seed(url)
    dims = parse_dimensions(url)
    if seed:
        for mapped in url_mappings:
            if parse_seed(mapped) == seed:
                return mapped
    if dims is not None:
        for mapped in url_mappings:
            if parse_dimensions(mapped) == dims:
                return mapped
    return None


def check_url(url: str, timeout: float = 5.0) -> Optional[str]:
    """Return None if ``url`` exists, else a short reason."""
    parsed = urlparse(url)
    if parsed.scheme == "file":
        return None if Path(url2pathname(parsed.path)).exists() else "file not found"
    if parsed.scheme not in ("http", "https"):
        return f"unsupported scheme {parsed.scheme!r}"
    response = requests.head(url, timeout=timeout, allow_redirects=True)
    if not response.ok:
        return str(response.status_code)
    return None


# ── Reporting ─────────────────────────────────────────────────────────────────

def log_replacement_results(result: ReplacementResult) -> None:
    logger.info("Replaced %d URLs, %d failed", result.replaced_count, result.failed_count)
    for error in result.errors[:5]:
        logger.warning("  %s", error)
    if len(result.errors) > 5:
        logger.warning("  ... and %d more errors", len(result.errors) - 5)
    for kind, count in Counter(m.replacement_type for m in result.mappings).items():
        logger.info("  %s: %d", kind, count)


def replacement_stats(result: ReplacementResult) -> dict:
    handled = result.replaced_count + result.failed_count
    success_rate = result.replaced_count / handled * 100 if handled else 100.0
    avg_len = (
        sum(len(m.new_url) for m in result.mappings) / len(result.mappings)
        if result.mappings else 0
    )
    return {
        "summary": f"Replaced {result.replaced_count}/{handled} URLs ({round(success_rate)}% success)",
        "success_rate": success_rate,
        "type_distribution": dict(Counter(m.replacement_type for m in result.mappings)),
        "avg_url_length": round(avg_len),
    }


# ── Rollback ──────────────────────────────────────────────────────────────────

_PATH_TOKEN = re.compile(r'\[("(?:[^"\\]|\\.)*")\]|\[(\d+)\]|([^.\[\]]+)')


def _path_parts(path: str) -> List[Any]:
    parts: List[Any] = []
    for quoted, index, plain in _PATH_TOKEN.findall(path):
        if quoted:
            parts.append(json.loads(quoted))
        elif index:
            parts.append(int(index))
        else:
            parts.append(plain)
    return parts


def set_value_at_path(data: Any, path: str, value: Any) -> None:
    """Assign ``value`` at a locator like ``items[3].thumbnail``."""
    parts = _path_parts(path)
    if not parts:
        raise ValueError(f"Empty path: {path!r}")
    current = data
    for part in parts[:-1]:
        current = current[part]
    current[parts[-1]] = value


def rollback(result: ReplacementResult) -> Any:
    """Restore every replaced URL in ``result.modified_data``."""
    if result.modified_data is None:
        raise ValueError("No modified data available for rollback")
    for mapping in result.mappings:
        set_value_at_path(result.modified_data, mapping.path, mapping.original_url)
    return result.modified_data
