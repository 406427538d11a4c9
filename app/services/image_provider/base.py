from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

ASPECT_RATIOS = ("9:16", "1:1", "4:5", "16:9")


class ImageGenerationError(RuntimeError):
    """The provider answered but produced no usable image."""


@dataclass(frozen=True)
class GeneratedImage:
    mime_type: str = "image/png"
    image_bytes: Optional[bytes] = None
    text_fallback: Optional[str] = None

    @property
    def has_image(self) -> bool:
        return bool(self.image_bytes)

    @property
    def extension(self) -> str:
        subtype = self.mime_type.split("/", 1)[-1].lower()
        return "jpg" if subtype == "jpeg" else subtype or "png"


class ImageGenerator(Protocol):
    async def generate(
        self,
        prompt: str,
        *,
        aspect_ratio: str = "1:1",
        reference_urls: Sequence[str] = (),
    ) -> GeneratedImage:
        ...
