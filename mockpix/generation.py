"""
generation.py — Execute an OptimizationResult against the image provider.

  - Groups run in descending average-priority order
  - Batches of ``max_concurrent_generations`` groups run concurrently;
    batches run one after another with ``batch_delay`` seconds between them
  - One generation per group (the master plan); every other variant aliases
    the master's URL. Crop/resize data stays on the plan for a future
    transform step.
  - A failing or timed-out group yields a failed ImageResult per variant
    and never stops the other groups
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Awaitable, List, Optional, Sequence

from .analyzer import sort_groups_by_priority
from .config import GenerationSettings
from .errors import GenerationTimeoutError, ModelWarmingUpError
from .models import ImageResult, OptimizationResult, ProcessingGroup, ProcessingPlan
from .providers import ImageProvider
from .storage import ImageStorage, UploadResult, make_storage_key

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def make_batches(items: Sequence, batch_size: int) -> List[list]:
    size = max(1, batch_size)
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def failed_results(group: ProcessingGroup, error: str) -> List[ImageResult]:
    return [
        ImageResult(original_url=plan.original_url, path=plan.image_id, success=False, error=error)
        for plan in group.variants
    ]


class GenerationDriver:
    """Runs groups through provider + storage with bounded concurrency."""

    def __init__(
        self,
        provider: ImageProvider,
        storage: ImageStorage,
        settings: Optional[GenerationSettings] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.storage = storage
        self.settings = settings or GenerationSettings()
        self._sleep = sleep

    async def run(self, optimization: OptimizationResult) -> List[ImageResult]:
        groups = sort_groups_by_priority(optimization.groups)
        batches = make_batches(groups, self.settings.max_concurrent_generations)
        results: List[ImageResult] = []

        for index, batch in enumerate(batches, start=1):
            logger.info("Processing batch %d/%d (%d groups)", index, len(batches), len(batch))
            outcomes = await asyncio.gather(
                *(self._run_group(group) for group in batch),
                return_exceptions=True,
            )
            for group, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    message = str(outcome) or type(outcome).__name__
                    logger.warning("Group %s failed: %s", group.master_image_id, message)
                    results.extend(failed_results(group, message))
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    results.extend(outcome)

            if index < len(batches) and self.settings.batch_delay > 0:
                await self._sleep(self.settings.batch_delay)

        succeeded = sum(1 for r in results if r.success)
        logger.info("Generated %d/%d images successfully", succeeded, len(results))
        return results

    async def _run_group(self, group: ProcessingGroup) -> List[ImageResult]:
        timeout = self.settings.generation_timeout
        if not timeout:
            return await self.process_group(group)
        try:
            return await asyncio.wait_for(self.process_group(group), timeout)
        except asyncio.TimeoutError:
            raise GenerationTimeoutError(
                f"Group {group.master_image_id} timed out after {timeout:g}s"
            ) from None

    async def process_group(self, group: ProcessingGroup) -> List[ImageResult]:
        """Generate + upload the master, then alias every variant to it."""
        master = group.master_plan
        upload = await self.generate_master(master)

        return [
            ImageResult(
                original_url=plan.original_url,
                path=plan.image_id,
                success=True,
                new_url=upload.url,
                cdn_url=upload.cdn_url,
                storage_key=upload.key,
            )
            for plan in group.variants
        ]

    async def generate_master(self, plan: ProcessingPlan) -> UploadResult:
        dims = plan.target_dimensions
        attempts = self.settings.warmup_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                data = await self.provider.generate(
                    plan.description.enhanced_prompt, dims.width, dims.height,
                )
                break
            except ModelWarmingUpError:
                if attempt >= attempts:
                    raise
                logger.info(
                    "Model warming up for %s, retry %d/%d in %.0fs",
                    plan.image_id, attempt, attempts - 1, self.settings.warmup_retry_delay,
                )
                await self._sleep(self.settings.warmup_retry_delay)

        key = make_storage_key(plan.image_id, self.settings.content_type)
        return await self.storage.upload(data, key, self.settings.content_type)
