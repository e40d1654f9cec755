"""mockpix — mock JSON records with AI-generated images in place of picsum placeholders."""

from .config import PipelineConfig, load_config
from .orchestrator import PostProcessingOrchestrator

__version__ = "0.1.0"

__all__ = ["PipelineConfig", "PostProcessingOrchestrator", "load_config"]
