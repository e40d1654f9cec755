"""
urls.py — Placeholder image URL grammar (picsum.photos).

Recognised shapes:
  https://picsum.photos/800/600            → 800×600
  https://picsum.photos/400                → 400×400 (square)
  https://picsum.photos/seed/milano/800/600 → 800×600, seed "milano"
  https://picsum.photos/seed/milano/400    → 400×400, seed "milano"
  https://picsum.photos/id/237/800/600     → 800×600
  https://picsum.photos/v2/list            → recognised, but no dimensions

Both the extractor and the replacer go through these helpers so the two
traversals agree on what counts as a placeholder.
"""

from __future__ import annotations

import re
from typing import Optional

from .models import Dimensions

PLACEHOLDER_HOST = "picsum.photos"

_PLACEHOLDER_RE = re.compile(r"^https?://(?:www\.)?picsum\.photos(?:/|$)", re.IGNORECASE)

# Path segments after the host, query string excluded
_PATH_RE = re.compile(r"^https?://(?:www\.)?picsum\.photos/([^?#]*)", re.IGNORECASE)

_SEED_RE = re.compile(r"picsum\.photos/seed/([^/?#]+)", re.IGNORECASE)


def is_placeholder_url(value: object) -> bool:
    """True if ``value`` is a string pointing at the placeholder host."""
    return isinstance(value, str) and bool(_PLACEHOLDER_RE.match(value.strip()))


def _path_segments(url: str) -> list:
    match = _PATH_RE.match(url.strip())
    if not match:
        return []
    return [s for s in match.group(1).split("/") if s]


def parse_dimensions(url: str) -> Optional[Dimensions]:
    """
    Extract width/height from a placeholder URL.

    Returns None when the URL has no dimension token or a token is not a
    positive integer. Callers skip such values instead of failing.
    """
    segments = _path_segments(url)
    if not segments:
        return None

    # Drop prefix segments that are not dimensions
    if segments[0].lower() == "seed" or segments[0].lower() == "id":
        segments = segments[2:]
    elif segments[0].lower() == "v2":
        return None

    # Trailing modifiers like ".jpg" extensions belong to the last token
    if segments:
        segments[-1] = re.sub(r"\.(jpg|jpeg|webp|png)$", "", segments[-1], flags=re.IGNORECASE)

    if len(segments) >= 2:
        w_tok, h_tok = segments[0], segments[1]
    elif len(segments) == 1:
        w_tok = h_tok = segments[0]
    else:
        return None

    if not (w_tok.isdigit() and h_tok.isdigit()):
        return None
    width, height = int(w_tok), int(h_tok)
    if width <= 0 or height <= 0:
        return None
    return Dimensions(width=width, height=height)


def parse_seed(url: str) -> Optional[str]:
    match = _SEED_RE.search(url)
    return match.group(1) if match else None


def normalize_url(url: str) -> str:
    """Strip query/fragment and trailing slash, lower-case the rest."""
    base = re.sub(r"[?#].*$", "", url.strip())
    return base.rstrip("/").lower()
