"""
report.py — Persisted shape of a post-processing run.

PostProcessingReport mirrors what callers consume:

  { success, originalImageCount, processedImageCount, generatedImageCount,
    optimizationSavings, processingTimeMs, extraction, optimization,
    replacement, processedData, errors, warnings }

Built from a PostProcessingResult with ``build_report`` and written with
``model_dump_json`` (camelCase keys via aliases).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field

from .models import PostProcessingResult


class PhaseReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phase: str
    duration_ms: int = Field(alias="durationMs")
    items_processed: int = Field(alias="itemsProcessed")
    errors: int


class PostProcessingReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    original_image_count: int = Field(alias="originalImageCount")
    processed_image_count: int = Field(alias="processedImageCount")
    generated_image_count: int = Field(alias="generatedImageCount")
    optimization_savings: float = Field(alias="optimizationSavings")
    processing_time_ms: int = Field(alias="processingTimeMs")
    extraction: Dict[str, Any]
    optimization: Dict[str, Any]
    replacement: Dict[str, Any]
    processed_data: Any = Field(alias="processedData")
    phases: List[PhaseReport] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def build_report(result: PostProcessingResult) -> PostProcessingReport:
    return PostProcessingReport(
        success=result.success,
        original_image_count=result.original_image_count,
        processed_image_count=result.processed_image_count,
        generated_image_count=result.generated_image_count,
        optimization_savings=round(result.optimization_savings, 2),
        processing_time_ms=result.processing_time_ms,
        extraction=result.extraction.to_dict(),
        optimization=result.optimization.to_dict(),
        replacement=result.replacement.to_dict(),
        processed_data=result.processed_data,
        phases=[
            PhaseReport(
                phase=p.phase,
                duration_ms=p.duration_ms,
                items_processed=p.items_processed,
                errors=p.errors,
            )
            for p in result.phases
        ],
        errors=list(result.errors),
        warnings=list(result.warnings),
    )


def save_report(result: PostProcessingResult, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(build_report(result).model_dump_json(indent=2, by_alias=True), encoding="utf-8")
    return path
