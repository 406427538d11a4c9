from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List
from urllib.parse import urlparse


def _as_bool(value: str | None, default: bool) -> bool:
    """Interpret common truthy / falsy strings while providing a default."""

    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, default: int, *, minimum: int = 0) -> int:
    try:
        return max(int(value), minimum) if value is not None else default
    except (TypeError, ValueError):
        return default


def _as_float(value: str | None, default: float) -> float:
    try:
        return max(float(value), 0.0) if value is not None else default
    except (TypeError, ValueError):
        return default


def _parse_allowed_origins(raw: str | None) -> List[str]:
    """Normalise comma-separated origins into values accepted by CORSMiddleware."""

    if not raw:
        return ["*"]

    cleaned: List[str] = []
    for origin in raw.split(","):
        value = origin.strip()
        if not value:
            continue
        if value == "*":
            return ["*"]

        parsed = urlparse(value)
        if parsed.scheme and parsed.netloc:
            normalised = f"{parsed.scheme}://{parsed.netloc}"
        else:
            normalised = value

        if normalised not in cleaned:
            cleaned.append(normalised)

    return cleaned or ["*"]


@dataclass
class GenAIConfig:
    api_key: str | None = None
    text_model: str = "gemini-2.0-flash"
    image_model: str = "gemini-2.5-flash-image"
    timeout_seconds: float = 60.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "GenAIConfig":
        api_key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        return cls(
            api_key=api_key or None,
            text_model=os.getenv("GENAI_TEXT_MODEL") or cls.text_model,
            image_model=os.getenv("GENAI_IMAGE_MODEL") or cls.image_model,
            timeout_seconds=_as_float(os.getenv("GENAI_TIMEOUT_SECONDS"), cls.timeout_seconds),
        )


@dataclass
class StorageConfig:
    endpoint: str | None
    access_key: str | None
    secret_key: str | None
    region: str
    bucket: str | None
    public_base: str | None

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint and self.access_key and self.secret_key and self.bucket)


@dataclass
class GenerationConfig:
    early_return_seconds: float = 5.0
    max_variations: int = 4
    output_folder: str = "generations"
    placeholder_images: bool = False


@dataclass
class Settings:
    environment: str
    allowed_origins: List[str]
    max_body_bytes: int
    max_inline_base64_bytes: int
    genai: GenAIConfig
    storage: StorageConfig
    generation: GenerationConfig


@lru_cache()
def get_settings() -> Settings:
    def _get(name: str, default: str | None = None) -> str | None:
        v = os.getenv(name)
        return v if v is not None else default

    def _first(*names: str) -> str | None:
        for name in names:
            value = (os.getenv(name) or "").strip()
            if value:
                return value
        return None

    environment = _get("ENVIRONMENT", "development") or "development"
    allowed_origins = _parse_allowed_origins(_get("ALLOWED_ORIGINS", "*"))

    storage = StorageConfig(
        endpoint=_first("R2_ENDPOINT", "S3_ENDPOINT"),
        access_key=_first("R2_ACCESS_KEY_ID", "S3_ACCESS_KEY"),
        secret_key=_first("R2_SECRET_ACCESS_KEY", "S3_SECRET_KEY"),
        region=_first("R2_REGION", "S3_REGION") or "auto",
        bucket=_first("R2_BUCKET", "S3_BUCKET"),
        public_base=_first("R2_PUBLIC_BASE", "S3_PUBLIC_BASE"),
    )

    generation = GenerationConfig(
        early_return_seconds=_as_float(_get("GENERATION_EARLY_RETURN_SECONDS"), 5.0),
        max_variations=_as_int(_get("GENERATION_MAX_VARIATIONS"), 4, minimum=1),
        output_folder=(_get("GENERATION_OUTPUT_FOLDER", "generations") or "generations").strip("/ ")
        or "generations",
        placeholder_images=_as_bool(_get("GENERATION_PLACEHOLDER_IMAGES"), False),
    )

    return Settings(
        environment=environment,
        allowed_origins=allowed_origins,
        max_body_bytes=_as_int(_get("MAX_BODY_BYTES"), 2_097_152),
        max_inline_base64_bytes=_as_int(_get("MAX_INLINE_BASE64_BYTES"), 131_072),
        genai=GenAIConfig.from_env(),
        storage=storage,
        generation=generation,
    )
