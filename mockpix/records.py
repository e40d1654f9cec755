"""
records.py — Mock record generation with Gemini.

Provides:
  analyze_json_structure(data) → List[ArrayPattern]
    - every non-empty array reachable through objects, with its first item
      as the sample
  MockRecordGenerator.generate(request) → MockGenerationResult
    - picks the target array (explicit path or the largest one)
    - sizes batches from the sample's complexity
    - asks the text model for N items like the sample, with picsum image
      URLs, and writes the growing JSON array to the output file after
      every batch

The generated file is the usual input for the post-processing pipeline
(orchestrator.py), which swaps the picsum URLs for generated images.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional

from google import genai
from google.genai import types

from .config import PipelineConfig
from .errors import ConfigError, MockGenerationError

logger = logging.getLogger(__name__)

ROOT_PATH = "root"
MAX_DEPTH = 10


# ── Structure analysis ────────────────────────────────────────────────────────

@dataclass
class ArrayPattern:
    array_path: str
    item_count: int
    sample_item: Any


def analyze_json_structure(data: Any, path: str = "") -> List[ArrayPattern]:
    patterns: List[ArrayPattern] = []
    if isinstance(data, list) and data:
        patterns.append(ArrayPattern(path or ROOT_PATH, len(data), data[0]))
    if isinstance(data, dict):
        for key, value in data.items():
            patterns.extend(analyze_json_structure(value, f"{path}.{key}" if path else str(key)))
    return patterns


def find_largest_array(patterns: List[ArrayPattern]) -> Optional[ArrayPattern]:
    """First pattern with the highest item count."""
    largest: Optional[ArrayPattern] = None
    for pattern in patterns:
        if largest is None or pattern.item_count > largest.item_count:
            largest = pattern
    return largest


def extract_array_at_path(data: Any, path: str) -> Optional[list]:
    if path == ROOT_PATH:
        return data if isinstance(data, list) else None
    current = data
    for key in path.split("."):
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return None
    return current if isinstance(current, list) else None


# ── Batch sizing ──────────────────────────────────────────────────────────────

def count_fields(obj: Any, depth: int = 0) -> int:
    if depth > MAX_DEPTH:
        return 0
    if isinstance(obj, dict):
        items = list(obj.values())
    elif isinstance(obj, list):
        items = obj
    else:
        return 0
    count = 0
    for value in items:
        count += 1
        if isinstance(value, (dict, list)):
            count += count_fields(value, depth + 1)
    return count


def nested_complexity(obj: Any, depth: int = 0) -> int:
    if depth > MAX_DEPTH or not isinstance(obj, dict):
        return 0
    complexity = 0
    for value in obj.values():
        if isinstance(value, list):
            complexity += 2
            if value and isinstance(value[0], (dict, list)):
                complexity += 1
        elif isinstance(value, dict):
            complexity += 1 + nested_complexity(value, depth + 1)
    return complexity


def optimal_batch_size(sample_item: Any) -> int:
    """Items per request: 10 for flat samples down to 1 for very large ones."""
    size = len(json.dumps(sample_item, ensure_ascii=False))
    fields = count_fields(sample_item)

    score = 0
    if size > 5000:
        score += 4
    elif size > 2000:
        score += 3
    elif size > 1000:
        score += 2
    elif size > 500:
        score += 1

    if fields > 50:
        score += 3
    elif fields > 30:
        score += 2
    elif fields > 15:
        score += 1

    score += min(nested_complexity(sample_item), 4)

    if score >= 8:
        return 1
    if score >= 6:
        return 2
    if score >= 4:
        return 3
    if score >= 2:
        return 5
    return 10


# ── Prompt ────────────────────────────────────────────────────────────────────

MOCK_PROMPT_TEMPLATE = """\
Generate {count} realistic mock data items based on this example structure:

{sample}

Requirements:
- Keep the same structure and data types
- Generate realistic values that match the context (names, prices, dates, etc.)
- Ensure all required fields are present
- Use Italian locale for names, addresses, and text when appropriate
- For prices, use realistic values with proper formatting
- For IDs, use unique sequential numbers starting from a random high number

IMAGE URL RULES:
- For image URLs, ALWAYS use https://picsum.photos/ with appropriate dimensions
- Keep the dimensions of existing image URLs, rewritten as picsum URLs
- For null image fields, pick dimensions from the field name:
  * ending with "_1x1" or containing "square": 400x400
  * ending with "_4x3": 800x600
  * ending with "_16x9": 800x450
  * containing "thumb": 200x200
  * containing "banner" or "header": 1200x300
  * any other image field: 800x600
- Use a seed derived from the item name, description or ID so images stay
  consistent but varied: https://picsum.photos/seed/<seed>/800/600
  (for "Nencini Sport Milano", a seed like "milano" or the store ID)
"""

PREFERENCES_TEMPLATE = """
CUSTOM PREFERENCES:
{preferences}
Follow these preferences while keeping the required structure and data types.
"""


def build_mock_prompt(sample_item: Any, count: int = 1, preferences: Optional[str] = None) -> str:
    prompt = MOCK_PROMPT_TEMPLATE.format(
        count=count,
        sample=json.dumps(sample_item, indent=2, ensure_ascii=False),
    )
    if preferences:
        prompt += PREFERENCES_TEMPLATE.format(preferences=preferences)
    plural = "s" if count > 1 else ""
    prompt += (
        "\n- Return only the JSON array without any markdown formatting or explanations\n\n"
        f"Generate exactly {count} item{plural}."
    )
    return prompt


_FENCE_RE = re.compile(r"```(?:json)?")


def parse_generated_items(text: str) -> list:
    """Parse model output into a list of items; a single object becomes [obj]."""
    clean = _FENCE_RE.sub("", text or "").strip()
    try:
        parsed = json.loads(clean)
    except json.JSONDecodeError as exc:
        logger.debug("Unparseable model output: %s", text)
        raise MockGenerationError(f"Failed to parse generated JSON: {exc}") from exc
    return parsed if isinstance(parsed, list) else [parsed]


# ── Generator ─────────────────────────────────────────────────────────────────

@dataclass
class MockGenerationRequest:
    input_file: Path
    output_file: Path
    count: int
    array_path: Optional[str] = None
    preferences: Optional[str] = None


@dataclass
class MockGenerationResult:
    success: bool
    generated_count: int
    output_file: Path
    error: Optional[str] = None


class MockRecordGenerator:
    """Generates records like a sample array item with the configured text model."""

    def __init__(
        self,
        config: PipelineConfig,
        client: Optional[Any] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if client is None:
            if not config.gemini_api_key:
                raise ConfigError("GEMINI_API_KEY is required for mock record generation")
            client = genai.Client(api_key=config.gemini_api_key)
        self.client = client
        self.model = config.text_model
        self._sleep = sleep

    def generate(self, request: MockGenerationRequest) -> MockGenerationResult:
        output_file = Path(request.output_file)
        try:
            output_file.parent.mkdir(parents=True, exist_ok=True)
            output_file.write_text("[]", encoding="utf-8")

            data = json.loads(Path(request.input_file).read_text(encoding="utf-8"))
            patterns = analyze_json_structure(data)
            if not patterns:
                return MockGenerationResult(False, 0, output_file, "No arrays found in input file")

            if request.array_path:
                array = extract_array_at_path(data, request.array_path)
                if not array:
                    return MockGenerationResult(
                        False, 0, output_file, f"No array found at path: {request.array_path}",
                    )
                target = ArrayPattern(request.array_path, len(array), array[0])
            else:
                target = find_largest_array(patterns)

            batch_size = optimal_batch_size(target.sample_item)
            total_batches = -(-request.count // batch_size)
            logger.info(
                "Generating %d items from '%s' in %d batches of up to %d",
                request.count, target.array_path, total_batches, batch_size,
            )

            items: list = []
            for batch in range(total_batches):
                current = min(batch_size, request.count - len(items))
                if current <= 0:
                    break
                new_items = self.generate_batch(target.sample_item, current, request.preferences)
                items.extend(new_items)
                output_file.write_text(
                    json.dumps(items, indent=2, ensure_ascii=False), encoding="utf-8",
                )
                logger.info("Batch %d/%d: %d items", batch + 1, total_batches, len(new_items))
                self._sleep(max(0.5, current * 0.2))

            return MockGenerationResult(True, len(items), output_file)

        except Exception as exc:
            logger.error("Mock generation failed: %s", exc)
            return MockGenerationResult(False, 0, output_file, str(exc))

    def generate_batch(self, sample_item: Any, count: int, preferences: Optional[str] = None) -> list:
        prompt = build_mock_prompt(sample_item, count, preferences)
        response = self.client.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
            ),
        )
        return parse_generated_items(response.text or "")
