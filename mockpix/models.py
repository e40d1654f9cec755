"""
Pipeline data model — plain dataclasses passed between the five stages.

  ImageOccurrence   — one placeholder URL at one JSON location (extractor)
  Description       — prompt + category for one occurrence (describer)
  ProcessingPlan    — one unit of work for one occurrence (analyzer)
  ProcessingGroup   — occurrences sharing one generated master image
  ImageResult       — outcome of generation/upload for one occurrence
  UrlMapping        — one resolved original → replacement substitution

Keep these free of IO. The persisted report shape lives in report.py.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

ProcessingType = Literal["generate", "resize", "crop", "reuse"]
ReplacementType = Literal["direct", "variant", "fallback"]

# Relative cost units per processing type
PROCESSING_COSTS: Dict[str, float] = {
    "generate": 1.0,
    "crop":     0.3,
    "resize":   0.2,
    "reuse":    0.1,
}


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    @property
    def key(self) -> str:
        return f"{self.width}x{self.height}"

    def to_dict(self) -> Dict[str, int]:
        return {"width": self.width, "height": self.height}


# ── Stage 1: extraction ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class ImageOccurrence:
    """
    One placeholder URL found at one location in the document.

    ``context`` is a shallow snapshot of the enclosing JSON object, taken at
    extraction time. Stages read it and never write to it.
    """
    url: str
    path: str                       # e.g. "items[3].thumbnail"
    field_name: str                 # last path segment
    context: Dict[str, Any]
    dimensions: Dimensions
    seed: Optional[str] = None
    item_index: int = 0             # index within nearest enclosing array

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "path": self.path,
            "fieldName": self.field_name,
            "dimensions": self.dimensions.to_dict(),
            "seed": self.seed,
            "itemIndex": self.item_index,
        }


@dataclass
class ExtractionResult:
    occurrences: List[ImageOccurrence] = field(default_factory=list)
    total_found: int = 0
    unique_urls: int = 0
    duplicate_groups: Dict[str, List[ImageOccurrence]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "occurrences": [o.to_dict() for o in self.occurrences],
            "totalFound": self.total_found,
            "uniqueUrls": self.unique_urls,
            "duplicateGroups": {
                k: [o.path for o in v] for k, v in self.duplicate_groups.items()
            },
        }


# ── Stage 2: descriptions ─────────────────────────────────────────────────────

@dataclass
class Description:
    prompt: str                     # base text
    enhanced_prompt: str            # styled/localised text sent to the provider
    category: str
    confidence: float               # 0..1
    base_context: str
    style: str = "professional"
    keywords: List[str] = field(default_factory=list)
    data_type: str = "generic"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt": self.prompt,
            "enhancedPrompt": self.enhanced_prompt,
            "category": self.category,
            "confidence": round(self.confidence, 4),
            "baseContext": self.base_context,
            "style": self.style,
            "dataType": self.data_type,
        }


# ── Stage 3: processing plan ──────────────────────────────────────────────────

@dataclass(frozen=True)
class CropRegion:
    x: int
    y: int
    width: int
    height: int

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass
class ProcessingPlan:
    image_id: str                   # occurrence path
    processing_type: ProcessingType
    target_dimensions: Dimensions
    description: Description
    priority: int
    estimated_cost: float
    source_image_id: Optional[str] = None     # master path, iff type != generate
    crop_region: Optional[CropRegion] = None  # iff type == crop
    original_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "imageId": self.image_id,
            "processingType": self.processing_type,
            "targetDimensions": self.target_dimensions.to_dict(),
            "priority": self.priority,
            "estimatedCost": self.estimated_cost,
            "originalUrl": self.original_url,
            "description": self.description.to_dict(),
        }
        if self.source_image_id is not None:
            data["sourceImageId"] = self.source_image_id
        if self.crop_region is not None:
            data["cropRegion"] = self.crop_region.to_dict()
        return data


@dataclass
class ProcessingGroup:
    master_image_id: str
    description: Description
    target_dimensions: Dimensions
    variants: List[ProcessingPlan] = field(default_factory=list)
    total_cost: float = 0.0

    @property
    def master_plan(self) -> ProcessingPlan:
        for plan in self.variants:
            if plan.image_id == self.master_image_id:
                return plan
        raise LookupError(f"No master plan in group {self.master_image_id}")

    @property
    def average_priority(self) -> float:
        if not self.variants:
            return 0.0
        return sum(v.priority for v in self.variants) / len(self.variants)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "masterImageId": self.master_image_id,
            "targetDimensions": self.target_dimensions.to_dict(),
            "totalCost": round(self.total_cost, 4),
            "variants": [v.to_dict() for v in self.variants],
        }


@dataclass
class OptimizationResult:
    groups: List[ProcessingGroup] = field(default_factory=list)
    total_images: int = 0
    generated_images: int = 0
    resized_images: int = 0
    cropped_images: int = 0
    reused_images: int = 0
    estimated_savings: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "groups": [g.to_dict() for g in self.groups],
            "totalImages": self.total_images,
            "generatedImages": self.generated_images,
            "resizedImages": self.resized_images,
            "croppedImages": self.cropped_images,
            "reusedImages": self.reused_images,
            "estimatedSavings": round(self.estimated_savings, 2),
        }


# ── Stage 4: generation ───────────────────────────────────────────────────────

@dataclass
class ImageResult:
    original_url: str
    path: str
    success: bool
    new_url: str = ""
    cdn_url: Optional[str] = None
    storage_key: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalUrl": self.original_url,
            "path": self.path,
            "success": self.success,
            "newUrl": self.new_url,
            "cdnUrl": self.cdn_url,
            "storageKey": self.storage_key,
            "error": self.error,
        }


# ── Stage 5: replacement ──────────────────────────────────────────────────────

@dataclass
class UrlMapping:
    original_url: str
    new_url: str
    path: str
    field_name: str
    replacement_type: ReplacementType
    cdn_url: Optional[str] = None
    item_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalUrl": self.original_url,
            "newUrl": self.new_url,
            "cdnUrl": self.cdn_url,
            "path": self.path,
            "fieldName": self.field_name,
            "itemIndex": self.item_index,
            "replacementType": self.replacement_type,
        }


@dataclass
class ReplacementResult:
    success: bool = False
    replaced_count: int = 0
    failed_count: int = 0
    mappings: List[UrlMapping] = field(default_factory=list)
    modified_data: Any = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "replacedCount": self.replaced_count,
            "failedCount": self.failed_count,
            "mappings": [m.to_dict() for m in self.mappings],
            "errors": list(self.errors),
        }


# ── Orchestrator ──────────────────────────────────────────────────────────────

@dataclass
class PhaseStats:
    phase: str
    started_at: float = field(default_factory=time.monotonic)
    ended_at: Optional[float] = None
    items_processed: int = 0
    errors: int = 0

    @property
    def duration_ms(self) -> int:
        if self.ended_at is None:
            return 0
        return int((self.ended_at - self.started_at) * 1000)

    def finish(self, items_processed: int, errors: int) -> None:
        self.ended_at = time.monotonic()
        self.items_processed = items_processed
        self.errors = errors


@dataclass
class PostProcessingResult:
    success: bool = False
    original_image_count: int = 0
    processed_image_count: int = 0
    generated_image_count: int = 0
    optimization_savings: float = 0.0
    processing_time_ms: int = 0
    extraction: ExtractionResult = field(default_factory=ExtractionResult)
    optimization: OptimizationResult = field(default_factory=OptimizationResult)
    replacement: ReplacementResult = field(default_factory=ReplacementResult)
    processed_data: Any = None
    image_results: List[ImageResult] = field(default_factory=list)
    phases: List[PhaseStats] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
