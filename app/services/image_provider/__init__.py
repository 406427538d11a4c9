from .base import GeneratedImage, ImageGenerationError, ImageGenerator
from .factory import get_image_generator, reset_image_generator
from .genai_provider import GenAIImageGenerator
from .placeholder_provider import PlaceholderImageGenerator

__all__ = [
    "GenAIImageGenerator",
    "GeneratedImage",
    "ImageGenerationError",
    "ImageGenerator",
    "PlaceholderImageGenerator",
    "get_image_generator",
    "reset_image_generator",
]
