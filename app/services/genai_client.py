"""google-genai backed text completion with optional image inputs."""
from __future__ import annotations

import logging
import mimetypes
import time
import uuid
from functools import lru_cache
from typing import Protocol, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from app.config import GenAIConfig, get_settings

logger = logging.getLogger("ai-service")

_IMAGE_MIME_FALLBACK = "image/jpeg"


class TextCompletionError(RuntimeError):
    """The text model failed or returned nothing usable."""


# Failures of the model call itself: empty reply, API error status, transport.
UPSTREAM_ERRORS = (TextCompletionError, genai_errors.APIError, httpx.HTTPError)


class TextCompletion(Protocol):
    async def complete(self, prompt: str, *, image_urls: Sequence[str] = ()) -> str:
        ...


@lru_cache(maxsize=1)
def get_genai_client() -> genai.Client:
    """Return the cached google-genai client built from settings."""

    config = get_settings().genai
    if not config.is_configured:
        raise RuntimeError("GOOGLE_API_KEY (or GEMINI_API_KEY) is not configured")
    return genai.Client(api_key=config.api_key)


async def load_image_parts(urls: Sequence[str], *, timeout: float = 30.0) -> list[types.Part]:
    """Download reference images and wrap them as inline parts.

    Unreachable URLs are skipped with a warning; a missing reference should
    weaken the result, not abort the request.
    """

    parts: list[types.Part] = []
    if not urls:
        return parts

    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        for url in urls:
            try:
                response = await client.get(url)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("[genai.refs] skipped %s: %s", url, exc)
                continue
            content_type = (response.headers.get("content-type") or "").split(";")[0].strip()
            if not content_type.startswith("image/"):
                content_type = mimetypes.guess_type(url)[0] or _IMAGE_MIME_FALLBACK
            parts.append(types.Part.from_bytes(data=response.content, mime_type=content_type))
    return parts


class GenAITextCompletion:
    """Gemini text completion used for ad copy and product analysis."""

    def __init__(self, config: GenAIConfig | None = None, client: genai.Client | None = None) -> None:
        self.config = config or get_settings().genai
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = get_genai_client()
        return self._client

    async def complete(self, prompt: str, *, image_urls: Sequence[str] = ()) -> str:
        trace_id = uuid.uuid4().hex[:8]
        contents: list[types.Part | str] = [prompt]
        contents.extend(await load_image_parts(image_urls, timeout=self.config.timeout_seconds))

        logger.info(
            "[genai.text>%s] model=%s prompt_chars=%d images=%d",
            trace_id,
            self.config.text_model,
            len(prompt),
            len(contents) - 1,
        )
        start = time.time()
        response = await self.client.aio.models.generate_content(
            model=self.config.text_model,
            contents=contents,
        )
        text = response.text or ""
        logger.info(
            "[genai.text.done>%s] chars=%d time=%.0fms",
            trace_id,
            len(text),
            (time.time() - start) * 1000,
        )
        if not text.strip():
            raise TextCompletionError("Gemini returned an empty text response")
        return text


__all__ = [
    "GenAITextCompletion",
    "TextCompletion",
    "TextCompletionError",
    "UPSTREAM_ERRORS",
    "get_genai_client",
    "load_image_parts",
]
