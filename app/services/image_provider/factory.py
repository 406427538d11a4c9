"""Image generator factory: Gemini when a key is configured, placeholder otherwise."""
from __future__ import annotations

import logging
from typing import Optional

from app.config import get_settings

from .base import ImageGenerator
from .genai_provider import GenAIImageGenerator
from .placeholder_provider import PlaceholderImageGenerator

logger = logging.getLogger("ai-service")

_PROVIDER: Optional[ImageGenerator] = None


def get_image_generator() -> ImageGenerator:
    """Return the cached image generator instance."""

    global _PROVIDER
    if _PROVIDER is None:
        settings = get_settings()
        if settings.generation.placeholder_images or not settings.genai.is_configured:
            logger.warning("[image_provider] using placeholder images (no Gemini key or forced)")
            _PROVIDER = PlaceholderImageGenerator()
        else:
            _PROVIDER = GenAIImageGenerator(settings.genai)
    return _PROVIDER


def reset_image_generator() -> None:
    global _PROVIDER
    _PROVIDER = None
