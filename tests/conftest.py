from __future__ import annotations

import asyncio
from typing import Callable, List, Tuple

import pytest

from mockpix.analyzer import create_processing_plan
from mockpix.config import DescriptionOptions, GenerationSettings, PipelineConfig
from mockpix.describer import DescriptionGenerator
from mockpix.errors import ProviderError, StorageError
from mockpix.extractor import extract_image_urls
from mockpix.storage import UploadResult


class FakeProvider:
    """Returns fixed bytes; fails for any (width, height) listed in ``fail_sizes``."""

    def __init__(self, fail_sizes=(), delay: float = 0.0) -> None:
        self.fail_sizes = set(fail_sizes)
        self.delay = delay
        self.calls: List[Tuple[str, int, int]] = []

    async def generate(self, prompt: str, width: int, height: int) -> bytes:
        self.calls.append((prompt, width, height))
        if self.delay:
            await asyncio.sleep(self.delay)
        if (width, height) in self.fail_sizes:
            raise ProviderError(f"boom {width}x{height}")
        return b"\x89PNG fake image"


class MemoryStorage:
    def __init__(self, cdn: bool = False, fail: bool = False) -> None:
        self.cdn = cdn
        self.fail = fail
        self.objects = {}

    async def upload(self, data: bytes, key: str, content_type: str) -> UploadResult:
        if self.fail:
            raise StorageError("bucket unavailable")
        self.objects[key] = data
        return UploadResult(
            url=f"https://bucket.test/{key}",
            key=key,
            cdn_url=f"https://cdn.test/{key}" if self.cdn else None,
        )


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def fast_settings() -> GenerationSettings:
    return GenerationSettings(batch_delay=0, generation_timeout=None)


@pytest.fixture
def config(tmp_path) -> PipelineConfig:
    cfg = PipelineConfig(
        verbose=False,
        intermediate_dir=tmp_path / "intermediate",
        description=DescriptionOptions(locale=None),
    )
    cfg.generation.batch_delay = 0
    cfg.generation.generation_timeout = None
    cfg.storage.root_dir = tmp_path / "images"
    return cfg


@pytest.fixture
def describer() -> DescriptionGenerator:
    return DescriptionGenerator(DescriptionOptions(locale=None))


@pytest.fixture
def plan_for(describer) -> Callable:
    def _plan(data, grouping: str = "greedy"):
        extraction = extract_image_urls(data)
        descriptions = describer.describe_all(extraction.occurrences)
        return extraction, descriptions, create_processing_plan(
            extraction.occurrences, descriptions, grouping=grouping,
        )
    return _plan


@pytest.fixture
def store_catalog() -> dict:
    return {
        "stores": [
            {
                "id": 1,
                "name": "Nencini Sport Milano",
                "category": "sport",
                "image": "https://picsum.photos/seed/milano/800/600",
                "thumb": "https://picsum.photos/200/200",
            },
            {
                "id": 2,
                "name": "Trattoria Roma",
                "category": "food",
                "price": 25,
                "image": "https://picsum.photos/800/600",
                "banner": "https://picsum.photos/1200/300",
            },
            {
                "id": 3,
                "name": "Atelier Firenze",
                "category": "fashion",
                "avatar": "https://picsum.photos/400",
            },
        ],
        "meta": {"title": "Negozi", "cover": None},
    }
