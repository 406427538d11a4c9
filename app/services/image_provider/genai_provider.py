from __future__ import annotations

import logging
import time
import uuid
from typing import Optional, Sequence

from google import genai
from google.genai import types

from app.config import GenAIConfig, get_settings
from app.services.genai_client import get_genai_client, load_image_parts

from .base import ASPECT_RATIOS, GeneratedImage, ImageGenerationError

logger = logging.getLogger("ai-service")


class GenAIImageGenerator:
    """google-genai SDK based Gemini image generator."""

    def __init__(self, config: Optional[GenAIConfig] = None, client: Optional[genai.Client] = None) -> None:
        self.config = config or get_settings().genai
        self._client = client
        self.model = self.config.image_model

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = get_genai_client()
        return self._client

    async def generate(
        self,
        prompt: str,
        *,
        aspect_ratio: str = "1:1",
        reference_urls: Sequence[str] = (),
    ) -> GeneratedImage:
        if aspect_ratio not in ASPECT_RATIOS:
            raise ValueError(f"Unsupported aspect ratio: {aspect_ratio}")

        trace_id = uuid.uuid4().hex[:8]
        contents: list[types.Part | str] = [prompt]
        contents.extend(await load_image_parts(reference_urls, timeout=self.config.timeout_seconds))

        logger.info(
            "[genai.image>%s] model=%s ar=%s refs=%d prompt_chars=%d",
            trace_id,
            self.model,
            aspect_ratio,
            len(contents) - 1,
            len(prompt),
        )
        start = time.time()
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=types.GenerateContentConfig(
                response_modalities=["IMAGE", "TEXT"],
                image_config=types.ImageConfig(aspect_ratio=aspect_ratio),
            ),
        )

        result = self._extract(response)
        logger.info(
            "[genai.image.done>%s] bytes=%d time=%.0fms",
            trace_id,
            len(result.image_bytes or b""),
            (time.time() - start) * 1000,
        )
        if not result.has_image:
            raise ImageGenerationError(
                f"Gemini returned no image data: {(result.text_fallback or 'empty response')[:200]}"
            )
        return result

    @staticmethod
    def _extract(response: types.GenerateContentResponse) -> GeneratedImage:
        texts: list[str] = []
        for candidate in response.candidates or []:
            content = candidate.content
            for part in (content.parts if content else None) or []:
                inline_data = part.inline_data
                if inline_data is not None and inline_data.data:
                    return GeneratedImage(
                        mime_type=inline_data.mime_type or "image/png",
                        image_bytes=bytes(inline_data.data),
                    )
                if part.text:
                    texts.append(part.text)
        return GeneratedImage(text_fallback="\n".join(texts) or None)
