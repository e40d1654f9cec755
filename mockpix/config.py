"""
config.py — Explicit pipeline configuration.

One PipelineConfig is built at the entry point (load_config) and handed to
the orchestrator, which passes the relevant section to each stage. Stages
never read the environment themselves.

Environment variables (all optional, .env supported via python-dotenv):
  GEMINI_API_KEY               — image + text generation
  MOCKPIX_IMAGE_MODEL          — default imagen-3.0-generate-002
  MOCKPIX_TEXT_MODEL           — default gemini-2.5-flash
  MOCKPIX_ENABLE_IMAGES        — 1/0, default 1
  MOCKPIX_MAX_CONCURRENT       — groups per batch, default 3
  MOCKPIX_BATCH_DELAY          — seconds between batches, default 1.0
  MOCKPIX_GENERATION_TIMEOUT   — seconds per group, default 120
  MOCKPIX_STORAGE_DIR          — default outputs/images
  MOCKPIX_PUBLIC_BASE_URL      — public URL prefix for uploaded keys
  MOCKPIX_CDN_BASE_URL         — CDN URL prefix for uploaded keys
  MOCKPIX_STYLE                — professional | artistic | realistic | casual
  MOCKPIX_LOCALE               — italian | english (english = no locale phrase)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigError

STYLES = ("professional", "artistic", "realistic", "casual")


@dataclass
class DescriptionOptions:
    style: str = "professional"
    locale: Optional[str] = "italian"
    max_prompt_length: int = 200


@dataclass
class ReplacementOptions:
    prefer_cdn_urls: bool = True
    preserve_original_on_failure: bool = False
    validate_urls: bool = False
    backup_original: bool = True
    log_replacements: bool = True
    validation_timeout: float = 5.0


@dataclass
class GenerationSettings:
    max_concurrent_generations: int = 3
    batch_delay: float = 1.0
    generation_timeout: Optional[float] = 120.0
    warmup_retries: int = 0
    warmup_retry_delay: float = 10.0
    image_model: str = "imagen-3.0-generate-002"
    content_type: str = "image/png"


@dataclass
class StorageSettings:
    root_dir: Path = Path("outputs/images")
    public_base_url: Optional[str] = None
    cdn_base_url: Optional[str] = None


@dataclass
class PipelineConfig:
    gemini_api_key: Optional[str] = None
    text_model: str = "gemini-2.5-flash"
    enable_image_replacement: bool = True
    enable_optimization: bool = True
    upload_to_cloud: bool = True
    verbose: bool = True
    save_intermediate_results: bool = False
    intermediate_dir: Path = Path("outputs/intermediate")
    description: DescriptionOptions = field(default_factory=DescriptionOptions)
    replacement: ReplacementOptions = field(default_factory=ReplacementOptions)
    generation: GenerationSettings = field(default_factory=GenerationSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)


# ── Env parsing ───────────────────────────────────────────────────────────────

def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _env_int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{name} must be >= 0, got {value}")
    return value


def load_config(env: Optional[Mapping[str, str]] = None) -> PipelineConfig:
    """Build a PipelineConfig from ``env`` (default: os.environ)."""
    env = os.environ if env is None else env

    style = (env.get("MOCKPIX_STYLE") or "professional").strip().lower()
    if style not in STYLES:
        raise ConfigError(f"MOCKPIX_STYLE must be one of {', '.join(STYLES)}, got {style!r}")

    locale = (env.get("MOCKPIX_LOCALE") or "italian").strip().lower()

    timeout = _env_float(env, "MOCKPIX_GENERATION_TIMEOUT", 120.0)

    return PipelineConfig(
        gemini_api_key=env.get("GEMINI_API_KEY") or None,
        text_model=env.get("MOCKPIX_TEXT_MODEL") or "gemini-2.5-flash",
        enable_image_replacement=_env_bool(env, "MOCKPIX_ENABLE_IMAGES", True),
        description=DescriptionOptions(
            style=style,
            locale=None if locale in ("", "english", "none") else locale,
        ),
        generation=GenerationSettings(
            max_concurrent_generations=_env_int(env, "MOCKPIX_MAX_CONCURRENT", 3, minimum=1),
            batch_delay=_env_float(env, "MOCKPIX_BATCH_DELAY", 1.0),
            generation_timeout=timeout or None,
            image_model=env.get("MOCKPIX_IMAGE_MODEL") or "imagen-3.0-generate-002",
        ),
        storage=StorageSettings(
            root_dir=Path(env.get("MOCKPIX_STORAGE_DIR") or "outputs/images"),
            public_base_url=env.get("MOCKPIX_PUBLIC_BASE_URL") or None,
            cdn_base_url=env.get("MOCKPIX_CDN_BASE_URL") or None,
        ),
    )
