"""Kilnworks - AI generation and management of ceramic sculpture images."""

__version__ = "0.1.0"

from kilnworks.core.config import KilnworksConfig, config
from kilnworks.core.errors import KilnworksError
from kilnworks.core.pipeline import ImagePipeline
from kilnworks.core.state import ImageState

__all__ = [
    "ImagePipeline",
    "ImageState",
    "KilnworksConfig",
    "KilnworksError",
    "config",
]
