"""
analyzer.py — Decide which images need a fresh generation and which can reuse one.

Pipeline:
  1. Group occurrences by similarity (greedy, single pass, input order)
  2. Per group, pick the master occurrence (highest confidence, then area)
  3. Classify every other member relative to the master:
       reuse  — identical dimensions                       (cost 0.1)
       resize — same aspect ratio, width ratio in [0.5, 2] (cost 0.2)
       crop   — fits inside master, keeps ≥ 60% of area    (cost 0.3)
       generate — none of the above, split into its own group  (cost 1.0)
  4. Aggregate counts and estimated savings vs. one generation per image

Greedy grouping is order-dependent on purpose: once an occurrence is claimed
it never moves to a better group found later. grouping="connected" switches
to union-find over the whole similarity graph (order-independent, and it can
produce different groups).
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence

from .models import (
    PROCESSING_COSTS,
    CropRegion,
    Description,
    Dimensions,
    ImageOccurrence,
    OptimizationResult,
    ProcessingGroup,
    ProcessingPlan,
)
from .urls import normalize_url

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.8
MIN_RESIZE_RATIO = 0.5
MAX_RESIZE_RATIO = 2.0
ASPECT_RATIO_TOLERANCE = 0.1
CROP_EFFICIENCY_THRESHOLD = 0.6

CONTEXT_KEY_FIELDS = ["category", "type", "brand", "location", "name"]


# ── Similarity ────────────────────────────────────────────────────────────────

def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j - 1], current[j - 1], previous[j]) + 1)
        previous = current
    return previous[-1]


def string_similarity(a: str, b: str) -> float:
    """(len(longer) - edit distance) / len(longer); 1.0 for two empty strings."""
    longer = a if len(a) >= len(b) else b
    if not longer:
        return 1.0
    return (len(longer) - levenshtein_distance(a, b)) / len(longer)


def description_similarity(a: Description, b: Description) -> float:
    """0.4 category + 0.4 prompt word Jaccard + 0.2 style."""
    category = 0.4 if a.category == b.category else 0.0

    words_a = set(a.prompt.lower().split())
    words_b = set(b.prompt.lower().split())
    union = words_a | words_b
    jaccard = len(words_a & words_b) / len(union) if union else 0.0

    style = 0.2 if a.style == b.style else 0.0
    return category + jaccard * 0.4 + style


def context_similarity(a: ImageOccurrence, b: ImageOccurrence) -> float:
    """Average match over the key fields both contexts populate; 0 if none."""
    ctx_a, ctx_b = a.context, b.context
    if not ctx_a or not ctx_b:
        return 0.0

    total = 0.0
    comparisons = 0
    for name in CONTEXT_KEY_FIELDS:
        va, vb = ctx_a.get(name), ctx_b.get(name)
        if not va or not vb:
            continue
        comparisons += 1
        if va == vb:
            total += 1.0
        elif isinstance(va, str) and isinstance(vb, str):
            total += string_similarity(va, vb)
    return total / comparisons if comparisons else 0.0


def is_similar(
    a: ImageOccurrence,
    b: ImageOccurrence,
    desc_a: Description,
    desc_b: Description,
    threshold: float = SIMILARITY_THRESHOLD,
) -> bool:
    # The same placeholder URL always denotes the same picture
    if normalize_url(a.url) == normalize_url(b.url):
        return True
    return (
        description_similarity(desc_a, desc_b) >= threshold
        or context_similarity(a, b) >= threshold
    )


# ── Grouping ──────────────────────────────────────────────────────────────────

def group_by_similarity(
    occurrences: Sequence[ImageOccurrence],
    descriptions: Dict[str, Description],
) -> List[List[ImageOccurrence]]:
    """Greedy single pass: each unclaimed occurrence seeds a group."""
    groups: List[List[ImageOccurrence]] = []
    claimed = set()

    for seed in occurrences:
        if seed.path in claimed:
            continue
        group = [seed]
        claimed.add(seed.path)
        groups.append(group)

        seed_desc = descriptions.get(seed.path)
        if seed_desc is None:
            continue

        for other in occurrences:
            if other.path in claimed:
                continue
            other_desc = descriptions.get(other.path)
            if other_desc is None:
                continue
            if is_similar(seed, other, seed_desc, other_desc):
                group.append(other)
                claimed.add(other.path)

    return groups


def group_connected(
    occurrences: Sequence[ImageOccurrence],
    descriptions: Dict[str, Description],
) -> List[List[ImageOccurrence]]:
    """Union-find over all pairwise similarities; groups follow first-member order."""
    parent = list(range(len(occurrences)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i, a in enumerate(occurrences):
        desc_a = descriptions.get(a.path)
        if desc_a is None:
            continue
        for j in range(i + 1, len(occurrences)):
            b = occurrences[j]
            desc_b = descriptions.get(b.path)
            if desc_b is None:
                continue
            if is_similar(a, b, desc_a, desc_b):
                ra, rb = find(i), find(j)
                if ra != rb:
                    parent[max(ra, rb)] = min(ra, rb)

    by_root: Dict[int, List[ImageOccurrence]] = {}
    for i, occ in enumerate(occurrences):
        by_root.setdefault(find(i), []).append(occ)
    return list(by_root.values())


# ── Per-group planning ────────────────────────────────────────────────────────

def _master_score(occ: ImageOccurrence, desc: Optional[Description]) -> float:
    confidence = desc.confidence if desc else 0.0
    return confidence * 100 + occ.dimensions.area / 10000


def select_master(
    occurrences: Sequence[ImageOccurrence],
    descriptions: Dict[str, Description],
) -> ImageOccurrence:
    """Highest score wins; the first of equal scores is kept."""
    best = occurrences[0]
    best_score = _master_score(best, descriptions.get(best.path))
    for occ in occurrences[1:]:
        score = _master_score(occ, descriptions.get(occ.path))
        if score > best_score:
            best, best_score = occ, score
    return best


def calculate_priority(occ: ImageOccurrence, desc: Description) -> int:
    priority = desc.confidence * 10
    name = occ.field_name.lower()
    if "banner" in name or "hero" in name:
        priority += 5
    elif "thumb" in name:
        priority -= 2
    priority += math.log10(occ.dimensions.area / 10000)
    # Half-up rounding, then clamp to 1..10
    return max(1, min(10, math.floor(priority + 0.5)))


def can_crop_efficiently(source: Dimensions, target: Dimensions) -> bool:
    return (
        target.width <= source.width
        and target.height <= source.height
        and target.area / source.area >= CROP_EFFICIENCY_THRESHOLD
    )


def optimal_crop(source: Dimensions, target: Dimensions) -> CropRegion:
    """Centered rectangle of the target size inside the source."""
    return CropRegion(
        x=max(0, (source.width - target.width) // 2),
        y=max(0, (source.height - target.height) // 2),
        width=target.width,
        height=target.height,
    )


def master_plan(occ: ImageOccurrence, desc: Description) -> ProcessingPlan:
    return ProcessingPlan(
        image_id=occ.path,
        processing_type="generate",
        target_dimensions=occ.dimensions,
        description=desc,
        priority=calculate_priority(occ, desc),
        estimated_cost=PROCESSING_COSTS["generate"],
        original_url=occ.url,
    )


def variant_plan(
    target: ImageOccurrence,
    master: ImageOccurrence,
    desc: Description,
) -> ProcessingPlan:
    master_dims = master.dimensions
    target_dims = target.dimensions
    width_ratio = target_dims.width / master_dims.width
    # Absolute difference of the two width/height ratios
    aspect_match = abs(target_dims.aspect_ratio - master_dims.aspect_ratio) < ASPECT_RATIO_TOLERANCE

    crop_region = None
    if target_dims == master_dims:
        processing_type = "reuse"
    elif aspect_match and MIN_RESIZE_RATIO <= width_ratio <= MAX_RESIZE_RATIO:
        processing_type = "resize"
    elif can_crop_efficiently(master_dims, target_dims):
        processing_type = "crop"
        crop_region = optimal_crop(master_dims, target_dims)
    else:
        processing_type = "generate"

    return ProcessingPlan(
        image_id=target.path,
        processing_type=processing_type,
        source_image_id=master.path if processing_type != "generate" else None,
        target_dimensions=target_dims,
        crop_region=crop_region,
        description=desc,
        priority=calculate_priority(target, desc),
        estimated_cost=PROCESSING_COSTS[processing_type],
        original_url=target.url,
    )


def _single_group(occ: ImageOccurrence, desc: Description) -> ProcessingGroup:
    plan = master_plan(occ, desc)
    return ProcessingGroup(
        master_image_id=occ.path,
        description=desc,
        target_dimensions=occ.dimensions,
        variants=[plan],
        total_cost=plan.estimated_cost,
    )


def optimize_group(
    occurrences: Sequence[ImageOccurrence],
    descriptions: Dict[str, Description],
) -> List[ProcessingGroup]:
    """
    Plan one similarity cluster.

    Members that cannot be derived from the master (processing type
    "generate") are split into their own single-member groups, so every
    group has exactly one generate plan and the driver generates them
    independently.
    """
    master = select_master(occurrences, descriptions)
    master_desc = descriptions[master.path]

    variants = [master_plan(master, master_desc)]
    independent: List[ProcessingGroup] = []
    for occ in occurrences:
        if occ.path == master.path:
            continue
        plan = variant_plan(occ, master, descriptions[occ.path])
        if plan.processing_type == "generate":
            independent.append(_single_group(occ, descriptions[occ.path]))
        else:
            variants.append(plan)

    group = ProcessingGroup(
        master_image_id=master.path,
        description=master_desc,
        target_dimensions=master.dimensions,
        variants=variants,
        total_cost=sum(v.estimated_cost for v in variants),
    )
    return [group] + independent


# ── Public API ────────────────────────────────────────────────────────────────

def summarize(groups: List[ProcessingGroup]) -> OptimizationResult:
    counts = {"generate": 0, "resize": 0, "crop": 0, "reuse": 0}
    total = 0
    optimized_cost = 0.0
    for group in groups:
        total += len(group.variants)
        optimized_cost += group.total_cost
        for plan in group.variants:
            counts[plan.processing_type] += 1

    savings = 0.0
    if total:
        savings = (total - optimized_cost) / total * 100
        savings = max(0.0, min(100.0, savings))

    return OptimizationResult(
        groups=groups,
        total_images=total,
        generated_images=counts["generate"],
        resized_images=counts["resize"],
        cropped_images=counts["crop"],
        reused_images=counts["reuse"],
        estimated_savings=savings,
    )


def create_processing_plan(
    occurrences: Sequence[ImageOccurrence],
    descriptions: Dict[str, Description],
    grouping: str = "greedy",
) -> OptimizationResult:
    """Group, choose masters, classify variants, and total up the savings."""
    if grouping == "greedy":
        clusters = group_by_similarity(occurrences, descriptions)
    elif grouping == "connected":
        clusters = group_connected(occurrences, descriptions)
    else:
        raise ValueError(f"Unknown grouping strategy: {grouping!r}")

    groups: List[ProcessingGroup] = []
    for cluster in clusters:
        groups.extend(optimize_group(cluster, descriptions))
    result = summarize(groups)
    logger.debug(
        "Planned %d groups for %d images (%.1f%% savings)",
        len(groups), result.total_images, result.estimated_savings,
    )
    return result


def basic_plan(
    occurrences: Sequence[ImageOccurrence],
    descriptions: Dict[str, Description],
) -> OptimizationResult:
    """One generation per occurrence, used when optimization is disabled."""
    return summarize([_single_group(occ, descriptions[occ.path]) for occ in occurrences])


def sort_groups_by_priority(groups: List[ProcessingGroup]) -> List[ProcessingGroup]:
    """Descending average variant priority; stable for equal averages."""
    return sorted(groups, key=lambda g: g.average_priority, reverse=True)


def filter_plans_by_type(groups: List[ProcessingGroup], processing_type: str) -> List[ProcessingPlan]:
    return [p for g in groups for p in g.variants if p.processing_type == processing_type]


def optimization_stats(result: OptimizationResult) -> dict:
    derived = result.resized_images + result.cropped_images + result.reused_images
    efficiency = round(derived / result.total_images * 100) if result.total_images else 0
    summary = (
        f"Optimization: {round(result.estimated_savings)}% savings, "
        f"{result.generated_images}/{result.total_images} generations needed"
    )
    return {
        "summary": summary,
        "breakdown": {
            "total": result.total_images,
            "generate": result.generated_images,
            "resize": result.resized_images,
            "crop": result.cropped_images,
            "reuse": result.reused_images,
        },
        "efficiency_score": efficiency,
    }
