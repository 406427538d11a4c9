"""Offline image generator used when no Gemini key is configured."""
from __future__ import annotations

import io
import textwrap
from typing import Sequence

from PIL import Image, ImageDraw, ImageFont

from .base import GeneratedImage

# Long edge of the placeholder, the short edge follows the aspect ratio.
_LONG_EDGE = 1024


def _size_for(aspect_ratio: str) -> tuple[int, int]:
    try:
        w_ratio, h_ratio = (int(x) for x in aspect_ratio.split(":"))
    except ValueError:
        return _LONG_EDGE, _LONG_EDGE
    if w_ratio >= h_ratio:
        return _LONG_EDGE, max(1, round(_LONG_EDGE * h_ratio / w_ratio))
    return max(1, round(_LONG_EDGE * w_ratio / h_ratio)), _LONG_EDGE


class PlaceholderImageGenerator:
    """Render the head of the prompt onto a flat JPEG so flows stay testable."""

    def __init__(self, background: str = "#f2f2f2", foreground: str = "#333") -> None:
        self.background = background
        self.foreground = foreground

    async def generate(
        self,
        prompt: str,
        *,
        aspect_ratio: str = "1:1",
        reference_urls: Sequence[str] = (),
    ) -> GeneratedImage:
        width, height = _size_for(aspect_ratio)
        img = Image.new("RGB", (width, height), self.background)
        draw = ImageDraw.Draw(img)
        msg = "[PLACEHOLDER]\n" + "\n".join(textwrap.wrap(prompt[:400], width=48))
        try:
            font = ImageFont.truetype("arial.ttf", 20)
        except OSError:
            font = ImageFont.load_default()
        tw, th = draw.multiline_textbbox((0, 0), msg, font=font, align="center")[2:]
        draw.multiline_text(
            ((width - tw) / 2, (height - th) / 2),
            msg,
            fill=self.foreground,
            font=font,
            align="center",
        )

        bio = io.BytesIO()
        img.save(bio, "JPEG", quality=92)
        return GeneratedImage(mime_type="image/jpeg", image_bytes=bio.getvalue())
