"""
providers.py — Image generation collaborators.

  GeminiImageProvider       — Imagen via google-genai (needs GEMINI_API_KEY)
  PlaceholderImageProvider  — solid-colour PNG rendered locally with Pillow,
                              for offline runs and dry runs

Both satisfy ImageProvider: ``await provider.generate(prompt, width, height)``
returns raw image bytes or raises ProviderError.
"""

from __future__ import annotations

import asyncio
import hashlib
import io
import logging
from typing import Optional, Protocol

from google import genai
from google.genai import types
from PIL import Image, ImageDraw, ImageFont

from .errors import ModelWarmingUpError, ProviderError

logger = logging.getLogger(__name__)

# Aspect ratios Imagen accepts, as width / height
SUPPORTED_ASPECT_RATIOS = {
    "1:1": 1.0,
    "3:4": 3 / 4,
    "4:3": 4 / 3,
    "9:16": 9 / 16,
    "16:9": 16 / 9,
}

_WARMUP_MARKERS = ("loading", "warming up", "currently unavailable", "503", "unavailable")


class ImageProvider(Protocol):
    async def generate(self, prompt: str, width: int, height: int) -> bytes:
        ...


def closest_aspect_ratio(width: int, height: int) -> str:
    ratio = width / height
    return min(SUPPORTED_ASPECT_RATIOS, key=lambda k: abs(SUPPORTED_ASPECT_RATIOS[k] - ratio))


class GeminiImageProvider:
    """Imagen text-to-image. The sync SDK call runs in the default executor."""

    def __init__(
        self,
        api_key: str,
        model: str = "imagen-3.0-generate-002",
        client: Optional[genai.Client] = None,
    ) -> None:
        if not api_key and client is None:
            raise ProviderError("GEMINI_API_KEY not set")
        self.model = model
        self.client = client or genai.Client(api_key=api_key)

    async def generate(self, prompt: str, width: int, height: int) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._generate_sync, prompt, width, height)

    def _generate_sync(self, prompt: str, width: int, height: int) -> bytes:
        aspect_ratio = closest_aspect_ratio(width, height)
        try:
            response = self.client.models.generate_images(
                model=self.model,
                prompt=prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=1,
                    aspect_ratio=aspect_ratio,
                ),
            )
        except Exception as exc:
            message = str(exc)
            if any(marker in message.lower() for marker in _WARMUP_MARKERS):
                raise ModelWarmingUpError(f"{self.model} is warming up: {message}") from exc
            raise ProviderError(f"{self.model} generation failed: {message}") from exc

        if not response.generated_images:
            raise ProviderError(f"{self.model} returned no image for prompt {prompt[:60]!r}")
        image = response.generated_images[0].image
        if image is None or not image.image_bytes:
            raise ProviderError(f"{self.model} returned an empty image")

        logger.debug("Generated %dx%d (%s) for %r", width, height, aspect_ratio, prompt[:60])
        return image.image_bytes


class PlaceholderImageProvider:
    """Renders a flat PNG whose colour is derived from the prompt."""

    def __init__(self, label: bool = True) -> None:
        self.label = label

    async def generate(self, prompt: str, width: int, height: int) -> bytes:
        return render_placeholder(prompt, width, height, self.label)


def render_placeholder(prompt: str, width: int, height: int, label: bool = True) -> bytes:
    digest = hashlib.sha256(prompt.encode("utf-8")).hexdigest()
    color = f"#{digest[:6]}"

    img = Image.new("RGB", (width, height), color)
    if label:
        draw = ImageDraw.Draw(img)
        font = ImageFont.load_default()
        text = f"{width}x{height}"
        bbox = draw.textbbox((0, 0), text, font=font)
        tw, th = bbox[2] - bbox[0], bbox[3] - bbox[1]
        draw.text(((width - tw) // 2, (height - th) // 2), text, fill="#ffffff", font=font)

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
