"""
describer.py — Build image generation prompts from the data around each URL.

For every ImageOccurrence:
  1. Score the field name against KEYWORD_PHRASES (category + confidence)
  2. Scan descriptive sibling fields (name, title, brand, ...) for context text
  3. Assemble: [context text, ] category phrase [, composition hint]
  4. Enhance: style suffix, locale phrase, length cap

Usage:
    generator = DescriptionGenerator(DescriptionOptions(style="realistic"))
    descriptions = generator.describe_all(extraction.occurrences)
    descriptions["items[0].image"].enhanced_prompt
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import DescriptionOptions
from .models import Description, ImageOccurrence

# ── Tables ────────────────────────────────────────────────────────────────────

# Field keyword → canonical phrase. Declaration order breaks ties between
# equally long keyword matches.
KEYWORD_PHRASES: Dict[str, str] = {
    # E-commerce
    "product":     "professional product photography",
    "item":        "clean product shot",
    "article":     "item showcase",
    "goods":       "commercial product",
    # People
    "avatar":      "professional headshot portrait",
    "profile":     "portrait photography",
    "user":        "person portrait",
    "author":      "professional author photo",
    "customer":    "friendly customer portrait",
    # Branding
    "logo":        "modern logo design",
    "brand":       "brand identity",
    "company":     "corporate branding",
    # Content
    "banner":      "professional banner design",
    "header":      "website header image",
    "background":  "clean background texture",
    "hero":        "hero section image",
    "thumbnail":   "preview image",
    "cover":       "cover image design",
    "featured":    "featured content image",
    # Location
    "location":    "beautiful location photography",
    "place":       "scenic place photograph",
    "destination": "travel destination",
    "venue":       "venue photography",
    "shop":        "retail store interior",
    "restaurant":  "restaurant ambiance",
    "hotel":       "luxury hotel interior",
    # Verticals
    "food":        "appetizing food photography",
    "dish":        "gourmet dish presentation",
    "recipe":      "food styling photography",
    "menu":        "restaurant menu photography",
    "fashion":     "fashion photography",
    "clothing":    "clothing product shot",
    "accessory":   "fashion accessory",
    "tech":        "modern technology product",
    "gadget":      "tech gadget photography",
    "sport":       "sports equipment",
    "fitness":     "fitness and wellness",
    "beauty":      "beauty product photography",
    "home":        "home interior design",
    "garden":      "garden and landscape",
    "car":         "automotive photography",
    "book":        "book cover design",
    "art":         "artistic photography",
    "music":       "music related imagery",
}

GENERIC_PHRASE = "professional photography"

DESCRIPTIVE_FIELDS = [
    "name", "title", "description", "caption", "alt",
    "product", "brand", "category", "type", "style",
    "location", "city", "address", "venue", "place",
]
COMMERCIAL_FIELDS = ("price", "cost", "amount")
CREATIVE_FIELDS = ("author", "creator", "artist")

# Context keyword → category, checked in order when the field name has no match
CONTEXT_CATEGORY_RULES = [
    (("food", "dish"),          "food"),
    (("fashion", "clothing"),   "fashion"),
    (("location", "place"),     "location"),
    (("commercial",),           "product"),
    (("creative",),             "art"),
]

STYLE_SUFFIXES: Dict[str, str] = {
    "professional": "professional lighting, high quality, clean background",
    "artistic":     "artistic composition, creative lighting, aesthetic",
    "realistic":    "photorealistic, natural lighting, detailed",
    "casual":       "casual style, natural look, everyday setting",
}

# Locale → {keyword category: phrases}. "_generic" is used when nothing matches.
LOCALE_PHRASES: Dict[str, Dict[str, List[str]]] = {
    "italian": {
        "_generic": [
            "in Italian style",
            "with Italian elegance",
            "Italian design aesthetic",
            "Mediterranean style",
            "classic Italian",
        ],
        "food": [
            "authentic Italian cuisine",
            "traditional Italian dish",
            "Italian culinary tradition",
            "regional Italian specialty",
        ],
        "fashion": [
            "Italian fashion style",
            "Milano fashion design",
            "Italian elegance",
            "made in Italy style",
        ],
        "location": [
            "Italian landscape",
            "Italian architecture",
            "Italian piazza",
            "Mediterranean setting",
        ],
    },
}

STOPWORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "il", "la", "le", "lo", "gli", "un", "una", "e", "o", "ma", "su", "per", "di", "con", "da",
}

# Fields whose unanimous value across a context group becomes shared context
SHARED_CONTEXT_FIELDS = ["category", "brand", "type", "location"]


@dataclass
class _ContextAnalysis:
    description: str
    confidence: float
    keywords: List[str] = field(default_factory=list)
    data_type: str = "generic"


# ── Helpers ───────────────────────────────────────────────────────────────────

def extract_keywords(text: str, limit: int = 5) -> List[str]:
    words = [w for w in re.split(r"[\s,.\-]+", text) if len(w) > 2 and w.lower() not in STOPWORDS]
    return words[:limit]


def match_field_keywords(field_name: str) -> List[str]:
    name = field_name.lower()
    return [key for key in KEYWORD_PHRASES if key in name]


def composition_hint(width: int, height: int) -> str:
    if width == height:
        return "square composition, centered"
    if width > height * 2:
        return "wide banner format, horizontal composition"
    if height > width:
        return "vertical composition, portrait orientation"
    return ""


def truncate_prompt(text: str, max_length: int) -> str:
    """Cap ``text`` at ``max_length`` characters, ending in '...' when cut."""
    if max_length <= 0 or len(text) <= max_length:
        return text
    if max_length <= 3:
        return text[:max_length]
    return text[: max_length - 3].rstrip() + "..."


def infer_data_type(context: Optional[Dict[str, Any]]) -> str:
    if not isinstance(context, dict):
        return "unknown"
    if "price" in context and "name" in context:
        return "product"
    if "author" in context or "creator" in context:
        return "content"
    if "address" in context or "location" in context:
        return "place"
    if "email" in context or "phone" in context:
        return "person"
    return "generic"


def generic_description(field_name: str) -> str:
    name = field_name.lower()
    if "thumb" in name:
        return "thumbnail image"
    if "banner" in name:
        return "banner image"
    if "avatar" in name:
        return "profile picture"
    if "logo" in name:
        return "logo design"
    if "background" in name:
        return "background image"
    return "professional image"


def _clean_context(text: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"[^\w\s]", " ", text)).strip()


def context_key(occurrence: ImageOccurrence) -> str:
    """Grouping key: category + type + brand of the enclosing object, plus exact size."""
    ctx = occurrence.context or {}
    parts = [str(ctx[k]) for k in ("category", "type", "brand") if ctx.get(k)]
    parts.append(occurrence.dimensions.key)
    return "_".join(parts)


def shared_context(occurrences: List[ImageOccurrence]) -> Optional[str]:
    """Values every member agrees on for SHARED_CONTEXT_FIELDS, space-joined."""
    if len(occurrences) < 2:
        return None
    shared: List[str] = []
    for name in SHARED_CONTEXT_FIELDS:
        values = [
            occ.context.get(name) for occ in occurrences
            if isinstance(occ.context.get(name), str) and occ.context.get(name)
        ]
        if len(values) == len(occurrences) and len(set(values)) == 1:
            shared.append(values[0])
    return " ".join(shared) if shared else None


# ── Generator ─────────────────────────────────────────────────────────────────

class DescriptionGenerator:
    """Derives a Description for each occurrence. Pure apart from the locale pick."""

    def __init__(
        self,
        options: Optional[DescriptionOptions] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.options = options or DescriptionOptions()
        self.rng = rng or random.Random()

    def describe(
        self,
        occurrence: ImageOccurrence,
        shared: Optional[str] = None,
    ) -> Description:
        analysis = self._analyze_context(occurrence)
        category = self._determine_category(occurrence, analysis)

        seed_text = analysis.description
        base_context = analysis.description
        if shared:
            seed_text = shared.lower()
            base_context = shared

        base_prompt = self._base_prompt(occurrence, seed_text, analysis.confidence, category)
        enhanced = self._enhance(base_prompt, analysis.keywords, category)

        return Description(
            prompt=base_prompt,
            enhanced_prompt=enhanced,
            category=category,
            confidence=analysis.confidence,
            base_context=base_context,
            style=self.options.style,
            keywords=analysis.keywords,
            data_type=analysis.data_type,
        )

    def describe_all(self, occurrences: List[ImageOccurrence]) -> Dict[str, Description]:
        """Describe every occurrence, keyed by path, sharing context within groups."""
        groups: Dict[str, List[ImageOccurrence]] = {}
        for occ in occurrences:
            groups.setdefault(context_key(occ), []).append(occ)

        descriptions: Dict[str, Description] = {}
        for members in groups.values():
            shared = shared_context(members)
            for occ in members:
                descriptions[occ.path] = self.describe(occ, shared=shared)

        # Preserve input order for callers that iterate the mapping
        return {occ.path: descriptions[occ.path] for occ in occurrences}

    # ── analysis ──────────────────────────────────────────────────────────

    def _analyze_context(self, occurrence: ImageOccurrence) -> _ContextAnalysis:
        keywords: List[str] = []
        confidence = 0.5
        description = ""

        field_keywords, field_conf = self._analyze_field_name(occurrence.field_name)
        keywords.extend(field_keywords)
        confidence += field_conf

        context = occurrence.context
        if isinstance(context, dict):
            ctx_desc, ctx_keywords, ctx_conf = self._analyze_context_data(context)
            description = ctx_desc
            keywords.extend(ctx_keywords)
            confidence += ctx_conf

        confidence = max(0.0, min(confidence, 1.0))
        return _ContextAnalysis(
            description=description or generic_description(occurrence.field_name),
            confidence=confidence,
            keywords=list(dict.fromkeys(keywords)),
            data_type=infer_data_type(context),
        )

    @staticmethod
    def _analyze_field_name(field_name: str):
        name = field_name.lower()
        keywords = match_field_keywords(field_name)
        confidence = 0.1 + 0.2 * len(keywords)

        if "thumb" in name:
            keywords += ["thumbnail", "small"]
            confidence += 0.3
        if "_1x1" in name or "square" in name:
            keywords += ["square", "centered"]
            confidence += 0.2
        if "banner" in name or "header" in name:
            keywords += ["banner", "wide", "header"]
            confidence += 0.3
        return keywords, confidence

    @staticmethod
    def _analyze_context_data(context: Dict[str, Any]):
        keywords: List[str] = []
        parts: List[str] = []
        confidence = 0.2

        for name in DESCRIPTIVE_FIELDS:
            value = context.get(name)
            if isinstance(value, str) and value:
                value = value.lower()
                parts.append(value)
                keywords.extend(extract_keywords(value))
                confidence += 0.1

        if any(context.get(f) for f in COMMERCIAL_FIELDS):
            keywords += ["commercial", "product"]
            confidence += 0.1
        if any(context.get(f) for f in CREATIVE_FIELDS):
            keywords += ["creative", "professional"]
            confidence += 0.1

        return " ".join(parts).strip(), list(dict.fromkeys(keywords)), min(confidence, 0.5)

    @staticmethod
    def _determine_category(occurrence: ImageOccurrence, analysis: _ContextAnalysis) -> str:
        matches = match_field_keywords(occurrence.field_name)
        if matches:
            # max() keeps the first of equally long keys → declaration order
            return max(matches, key=len)

        for triggers, category in CONTEXT_CATEGORY_RULES:
            if any(t in analysis.keywords for t in triggers):
                return category
        return "generic"

    # ── prompt assembly ───────────────────────────────────────────────────

    @staticmethod
    def _base_prompt(
        occurrence: ImageOccurrence,
        context_text: str,
        confidence: float,
        category: str,
    ) -> str:
        phrase = KEYWORD_PHRASES.get(category, GENERIC_PHRASE)
        prompt = phrase

        if context_text and confidence > 0.3:
            clean = _clean_context(context_text)
            if clean:
                prompt = f"{clean}, {phrase}"

        hint = composition_hint(occurrence.dimensions.width, occurrence.dimensions.height)
        if hint:
            prompt += f", {hint}"
        return prompt

    def _enhance(self, base_prompt: str, keywords: List[str], category: str) -> str:
        enhanced = base_prompt

        suffix = STYLE_SUFFIXES.get(self.options.style)
        if suffix:
            enhanced += f", {suffix}"

        if self.options.locale and keywords:
            phrase = self._locale_phrase(keywords, category)
            if phrase:
                enhanced += f", {phrase}"

        return truncate_prompt(enhanced, self.options.max_prompt_length)

    def _locale_phrase(self, keywords: List[str], category: str) -> Optional[str]:
        table = LOCALE_PHRASES.get((self.options.locale or "").lower())
        if not table:
            return None
        candidates: List[str] = []
        for key, phrases in table.items():
            if key == "_generic":
                continue
            if key == category or key in keywords:
                candidates.extend(phrases)
        if candidates:
            return self.rng.choice(candidates)
        return table["_generic"][0]
