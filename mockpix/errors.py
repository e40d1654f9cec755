"""
errors.py — Exception hierarchy shared by the pipeline stages.

Per-unit failures (one URL, one group) are converted into structured result
data by the stage that owns them. Only the errors below escape a stage.
"""

from __future__ import annotations


class MockpixError(Exception):
    """Base class for every error raised by mockpix."""


class ConfigError(MockpixError):
    """Invalid or missing configuration value."""


class ProviderError(MockpixError):
    """The image generation provider failed or returned no image."""


class ModelWarmingUpError(ProviderError):
    """The provider is loading the model. Retryable."""


class GenerationTimeoutError(ProviderError):
    """A group did not finish within the configured generation timeout."""


class StorageError(MockpixError):
    """Upload to object storage failed."""


class MockGenerationError(MockpixError):
    """The language model returned output that could not be used as records."""
