from __future__ import annotations

import datetime as _dt
import enum
import uuid
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator


class _CompatModel(BaseModel):
    """Base model that ignores unknown fields."""

    model_config = ConfigDict(extra="ignore")


def _utcnow() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


# ---------------------------------------------------------------------------
# Analysis validation
# ---------------------------------------------------------------------------

Confidence = Literal["auto_fixed", "needs_review", "critical"]


class ValidationFlag(_CompatModel):
    """One finding produced by a validator rule."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    field: str = Field(..., description="Dotted path of the inspected field.")
    issue: str = Field(..., description="Human readable description of the problem.")
    original: str = Field("", description="Value found before any correction.")
    corrected: Optional[str] = Field(None, description="Replacement value, when auto-fixed.")
    confidence: Confidence


class ValidatedResult(_CompatModel):
    """Corrected analysis document plus the ordered flags raised on it."""

    data: dict[str, Any] = Field(default_factory=dict)
    flags: list[ValidationFlag] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def was_modified(self) -> bool:
        return any(flag.corrected is not None for flag in self.flags)

    @property
    def has_critical(self) -> bool:
        return any(flag.confidence == "critical" for flag in self.flags)


# ---------------------------------------------------------------------------
# Brand playbook
# ---------------------------------------------------------------------------


class ProductIdentity(_CompatModel):
    product_name: str = ""
    product_type: str = "Product"
    visual_description: str = ""
    key_features: list[str] = Field(default_factory=list)
    colors: dict[str, str] = Field(default_factory=dict)
    negative_traits: list[str] = Field(default_factory=list)

    @property
    def is_populated(self) -> bool:
        return bool(self.product_name.strip())


class TargetAudience(_CompatModel):
    gender: str = "Any"
    age_range: str = "25-45"
    body_type: str = "Healthy, natural-looking"
    clothing_style: str = "Appropriate for the brand context"
    personas: list[str] = Field(default_factory=list)

    @field_validator("gender", "age_range", "body_type", "clothing_style", mode="before")
    @classmethod
    def _blank_to_default(cls, value: Any, info: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return cls.model_fields[info.field_name].default
        return value


class Compliance(_CompatModel):
    region: str = "Global"
    rules: list[str] = Field(default_factory=list)


class BrandColors(_CompatModel):
    primary: str = "#000000"
    secondary: str = "#666666"
    background: str = "#FFFFFF"
    accent: Optional[str] = None


class PlaybookContext(_CompatModel):
    """Brand-level constraints handed to the copy and image prompts."""

    brand_name: str = ""
    product_identity: Optional[ProductIdentity] = None
    target_audience: Optional[TargetAudience] = None
    compliance: Compliance = Field(default_factory=Compliance)
    brand_colors: BrandColors = Field(default_factory=BrandColors)
    tone_of_voice: str = ""
    usps: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalise_legacy(cls, value: Any) -> Any:
        if not isinstance(value, dict) or "brand_colors" in value:
            return value
        data = dict(value)
        legacy_colors = data.pop("colors", None)
        if isinstance(legacy_colors, dict):
            data["brand_colors"] = {
                k: v for k, v in legacy_colors.items() if k in {"primary", "secondary", "accent"} and v
            }
        tone = data.get("tone_of_voice")
        if isinstance(tone, dict):
            data["tone_of_voice"] = tone.get("style") or ""
        offers = data.pop("usp_offers", None)
        if isinstance(offers, dict) and "usps" not in data:
            data["usps"] = list(offers.get("key_benefits") or [])
        return data

    @classmethod
    def from_raw(cls, raw: Any) -> "PlaybookContext | None":
        if raw is None:
            return None
        if isinstance(raw, cls):
            return raw
        return cls.model_validate(raw)

    @property
    def product_name(self) -> str:
        if self.product_identity and self.product_identity.product_name:
            return self.product_identity.product_name
        return "the product"


# ---------------------------------------------------------------------------
# Static reference data
# ---------------------------------------------------------------------------


class MarketingAngle(_CompatModel):
    id: str
    label: str
    description: str


class UsableArea(_CompatModel):
    x: int
    y: int
    width: int
    height: int


class SafeZone(_CompatModel):
    danger_top: int
    danger_bottom: int
    danger_sides: int
    usable_area: UsableArea


class AdFormat(_CompatModel):
    id: str
    label: str
    ratio: Literal["9:16", "1:1", "4:5", "16:9"]
    width: int
    height: int
    safe_zone: SafeZone

    @property
    def dimensions(self) -> str:
        return f"{self.width}x{self.height}"


# ---------------------------------------------------------------------------
# Brand / concept context supplied by persistence
# ---------------------------------------------------------------------------


class BrandContext(_CompatModel):
    id: str
    user_id: str
    name: str
    playbook: Optional[PlaybookContext] = None


class ConceptContext(_CompatModel):
    id: str
    user_id: str
    name: Optional[str] = None
    analysis: dict[str, Any] = Field(default_factory=dict)
    original_image_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class GenerationStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.COMPLETED, GenerationStatus.FAILED)


class AdCopy(_CompatModel):
    headline: str
    subheadline: str
    cta: str
    image_prompt: str
    bullet_points: list[str] = Field(default_factory=list)


class ResultImage(_CompatModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    url: str
    key: Optional[str] = Field(None, description="Blob store reference of the stored bytes.")
    format: str = Field(..., description="Aspect ratio the image was rendered at.")
    angle: Optional[str] = None
    variation_index: int = Field(..., ge=1)
    generated_at: _dt.datetime = Field(default_factory=_utcnow)


class GenerationRecord(_CompatModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    brand_id: str
    concept_id: str
    marketing_angle_id: str
    format_id: str
    variations_count: int = Field(1, ge=1)
    status: GenerationStatus = GenerationStatus.PENDING
    progress: int = Field(0, ge=0, le=100)
    generated_copy: Optional[AdCopy] = None
    result_images: list[ResultImage] = Field(default_factory=list)
    failure_reason: Optional[str] = None
    created_at: _dt.datetime = Field(default_factory=_utcnow)
    completed_at: Optional[_dt.datetime] = None
    version: int = 0


class GenerateAdRequest(_CompatModel):
    brand_id: str = Field(..., min_length=1)
    concept_id: str = Field(..., min_length=1)
    marketing_angle_id: str = Field(..., min_length=1)
    format_id: str = Field(..., min_length=1)
    variations_count: int = Field(1, ge=1)


class GenerationResult(_CompatModel):
    generation: GenerationRecord
    ad_copy: Optional[AdCopy] = None


class BrandCreateRequest(_CompatModel):
    name: str = Field(..., min_length=1)
    playbook: Optional[PlaybookContext] = None


class ConceptCreateRequest(_CompatModel):
    name: Optional[str] = None
    analysis: dict[str, Any] = Field(default_factory=dict)
    original_image_url: Optional[str] = None


class AnalysisValidateRequest(_CompatModel):
    document: dict[str, Any] = Field(default_factory=dict)


class AnalysisExtractRequest(_CompatModel):
    image_urls: list[str] = Field(..., min_length=1, description="Publicly reachable product photo URLs.")
    product_name: Optional[str] = None


__all__ = [
    "AdCopy",
    "AdFormat",
    "AnalysisExtractRequest",
    "AnalysisValidateRequest",
    "BrandColors",
    "BrandContext",
    "BrandCreateRequest",
    "Compliance",
    "ConceptContext",
    "ConceptCreateRequest",
    "Confidence",
    "GenerateAdRequest",
    "GenerationRecord",
    "GenerationResult",
    "GenerationStatus",
    "MarketingAngle",
    "PlaybookContext",
    "ProductIdentity",
    "ResultImage",
    "SafeZone",
    "TargetAudience",
    "UsableArea",
    "ValidatedResult",
    "ValidationFlag",
]
