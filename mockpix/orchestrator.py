"""
orchestrator.py — Runs the five post-processing stages in order.

  1. extract    — placeholder URLs in the document
  2. describe   — prompt + category per occurrence
  3. optimize   — similarity groups, masters, reuse/resize/crop plans
  4. generate   — one image per group, batched, uploaded to storage
  5. replace    — rewrite the document with the new URLs

Usage:
    config = load_config()
    orchestrator = PostProcessingOrchestrator(config)
    result = asyncio.run(orchestrator.process_data(data))
    result.processed_data, result.errors, result.warnings

Per-group and per-URL failures end up as structured data (warnings, failed
counts). Anything that escapes a stage aborts the run: success=False and
the input comes back unchanged as processed_data.
"""

from __future__ import annotations

import json
import logging
import time
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional

from .analyzer import basic_plan, create_processing_plan, optimization_stats
from .config import PipelineConfig
from .describer import DescriptionGenerator
from .extractor import extract_image_urls, extraction_stats
from .generation import GenerationDriver
from .models import (
    Description,
    ExtractionResult,
    ImageResult,
    OptimizationResult,
    PhaseStats,
    PostProcessingResult,
    ReplacementResult,
)
from .providers import GeminiImageProvider, ImageProvider, PlaceholderImageProvider
from .replacer import UrlReplacer, create_url_mappings, replacement_stats
from .report import save_report
from .storage import ImageStorage, LocalStorage

logger = logging.getLogger(__name__)


def build_provider(config: PipelineConfig) -> ImageProvider:
    if config.gemini_api_key:
        return GeminiImageProvider(config.gemini_api_key, model=config.generation.image_model)
    logger.warning("GEMINI_API_KEY not set — using local placeholder images")
    return PlaceholderImageProvider()


def build_storage(config: PipelineConfig) -> ImageStorage:
    settings = config.storage
    if not config.upload_to_cloud:
        return LocalStorage(settings.root_dir)
    return LocalStorage(settings.root_dir, settings.public_base_url, settings.cdn_base_url)


class PostProcessingOrchestrator:
    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        provider: Optional[ImageProvider] = None,
        storage: Optional[ImageStorage] = None,
        describer: Optional[DescriptionGenerator] = None,
        grouping: str = "greedy",
    ) -> None:
        self.config = config or PipelineConfig()
        self.provider = provider or build_provider(self.config)
        self.storage = storage or build_storage(self.config)
        self.describer = describer or DescriptionGenerator(self.config.description)
        self.driver = GenerationDriver(self.provider, self.storage, self.config.generation)
        self.replacer = UrlReplacer(self.config.replacement)
        self.grouping = grouping
        self.stats: List[PhaseStats] = []

    # ── Public API ────────────────────────────────────────────────────────

    async def process_data(self, data: Any) -> PostProcessingResult:
        started = time.monotonic()
        self.stats = []
        result = PostProcessingResult(processed_data=data)
        result.replacement.modified_data = data

        try:
            if not self.config.enable_image_replacement:
                self._log("Image replacement disabled, skipping post-processing")
                result.success = True
                return result

            self._log("Starting post-processing pipeline")

            result.extraction = self._extract(data)
            result.original_image_count = result.extraction.total_found
            if result.extraction.total_found == 0:
                self._log("No placeholder images found, nothing to do")
                result.success = True
                return result

            descriptions = self._describe(result.extraction)
            result.optimization = self._optimize(result.extraction, descriptions)
            result.image_results = await self._generate(result.optimization)
            result.replacement = await self._replace(data, result.image_results)

            result.processed_image_count = result.replacement.replaced_count
            result.generated_image_count = len({
                r.storage_key for r in result.image_results if r.success and r.storage_key
            })
            result.optimization_savings = result.optimization.estimated_savings
            result.processed_data = result.replacement.modified_data
            result.warnings.extend(_generation_warnings(result.image_results))
            result.warnings.extend(result.replacement.errors)
            if not result.replacement.success:
                result.errors.append(_replacement_failure(result.replacement))
            result.success = result.replacement.success and not result.errors

            self._log("Post-processing completed")

        except Exception as exc:
            logger.exception("Post-processing failed")
            result.errors.append(f"Post-processing failed: {exc}")
            result.success = False
            result.processed_data = data
        finally:
            result.processing_time_ms = int((time.monotonic() - started) * 1000)
            result.phases = list(self.stats)
            self._log_final_stats(result)

        return result

    async def process_file(
        self,
        input_path: Path,
        output_path: Optional[Path] = None,
        report_path: Optional[Path] = None,
    ) -> PostProcessingResult:
        """Read JSON, process it, write the processed document (and report)."""
        input_path = Path(input_path)
        try:
            raw = input_path.read_text(encoding="utf-8")
        except OSError as exc:
            return PostProcessingResult(success=False, errors=[f"Cannot read {input_path}: {exc}"])
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            return PostProcessingResult(
                success=False,
                processed_data=raw,
                errors=[f"Cannot parse {input_path}: {exc}"],
            )

        result = await self.process_data(data)

        if output_path is not None and result.success:
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(
                json.dumps(result.processed_data, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        if report_path is not None:
            save_report(result, report_path)
        return result

    # ── Stages ────────────────────────────────────────────────────────────

    def _extract(self, data: Any) -> ExtractionResult:
        with self._phase("Image URL Extraction") as phase:
            extraction = extract_image_urls(data)
            self._log(extraction_stats(extraction)["summary"])
            phase.finish(extraction.total_found, 0)
        self._save_intermediate("01_extraction", extraction.to_dict())
        return extraction

    def _describe(self, extraction: ExtractionResult) -> Dict[str, Description]:
        with self._phase("Description Generation") as phase:
            descriptions = self.describer.describe_all(extraction.occurrences)
            categories = Counter(d.category for d in descriptions.values())
            self._log(f"Generated {len(descriptions)} descriptions ({dict(categories)})")
            phase.finish(len(descriptions), 0)
        self._save_intermediate(
            "02_descriptions", {path: d.to_dict() for path, d in descriptions.items()}
        )
        return descriptions

    def _optimize(
        self,
        extraction: ExtractionResult,
        descriptions: Dict[str, Description],
    ) -> OptimizationResult:
        with self._phase("Processing Optimization") as phase:
            if self.config.enable_optimization:
                optimization = create_processing_plan(
                    extraction.occurrences, descriptions, grouping=self.grouping,
                )
            else:
                self._log("Optimization disabled, one generation per image")
                optimization = basic_plan(extraction.occurrences, descriptions)
            stats = optimization_stats(optimization)
            self._log(f"{stats['summary']} (efficiency {stats['efficiency_score']}%)")
            phase.finish(optimization.total_images, 0)
        self._save_intermediate("03_optimization", optimization.to_dict())
        return optimization

    async def _generate(self, optimization: OptimizationResult) -> List[ImageResult]:
        with self._phase("Image Generation") as phase:
            results = await self.driver.run(optimization)
            ok = sum(1 for r in results if r.success)
            phase.finish(ok, len(results) - ok)
        self._save_intermediate("04_generation", [r.to_dict() for r in results])
        return results

    async def _replace(self, data: Any, image_results: List[ImageResult]) -> ReplacementResult:
        with self._phase("URL Replacement") as phase:
            url_mappings, cdn_mappings, _ = create_url_mappings(image_results)
            replacement = await self.replacer.replace(data, url_mappings, cdn_mappings)
            self._log(replacement_stats(replacement)["summary"])
            phase.finish(replacement.replaced_count, replacement.failed_count)
        self._save_intermediate("05_replacement", replacement.to_dict())
        return replacement

    # ── Bookkeeping ───────────────────────────────────────────────────────

    def _phase(self, name: str) -> "_PhaseContext":
        stats = PhaseStats(phase=name)
        self.stats.append(stats)
        return _PhaseContext(stats)

    def _save_intermediate(self, name: str, payload: Any) -> None:
        if not self.config.save_intermediate_results:
            return
        out_dir = Path(self.config.intermediate_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / f"{name}.json").write_text(
            json.dumps(payload, indent=2, ensure_ascii=False, default=str), encoding="utf-8",
        )

    def _log(self, message: str) -> None:
        if self.config.verbose:
            logger.info(message)
        else:
            logger.debug(message)

    def _log_final_stats(self, result: PostProcessingResult) -> None:
        self._log(
            f"images: {result.original_image_count} found, "
            f"{result.processed_image_count} processed, "
            f"{result.generated_image_count} generated; "
            f"savings {result.optimization_savings:.1f}%; "
            f"{result.processing_time_ms / 1000:.1f}s"
        )
        if result.errors:
            self._log(f"errors: {len(result.errors)}")
        if result.warnings:
            self._log(f"warnings: {len(result.warnings)}")


class _PhaseContext:
    """Closes a PhaseStats as failed if the stage raises."""

    def __init__(self, stats: PhaseStats) -> None:
        self.stats = stats

    def __enter__(self) -> PhaseStats:
        return self.stats

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.stats.finish(0, 1)
        elif self.stats.ended_at is None:
            self.stats.finish(self.stats.items_processed, self.stats.errors)
        return False


def _replacement_failure(replacement: ReplacementResult) -> str:
    message = (
        f"URL replacement failed: {replacement.replaced_count} replaced, "
        f"{replacement.failed_count} failed"
    )
    if replacement.errors:
        message += f" ({replacement.errors[0]})"
    return message


def _generation_warnings(results: List[ImageResult]) -> List[str]:
    return [
        f"Image generation failed for {r.path}: {r.error}"
        for r in results if not r.success
    ]
