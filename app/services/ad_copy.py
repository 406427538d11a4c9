"""Ad copy prompt construction and strict parsing of the model's JSON reply."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping

from pydantic import ValidationError

from app.schemas import AdCopy, AdFormat, MarketingAngle, PlaybookContext

logger = logging.getLogger("ai-service")

REQUIRED_COPY_FIELDS = ("headline", "subheadline", "cta", "image_prompt")

_FENCE_RX = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_NEGATIVE_RULE_RX = re.compile(r"^(no |never |must not |do not |avoid |forbidden|prohibit)", re.IGNORECASE)
_TEXT_ZONES = {"headline", "body", "cta_button", "logo"}

COPY_SYSTEM_PROMPT = """You are a world-class ad copywriter and creative director.
Write ad copy AND an ultra-detailed image generation prompt (image_prompt) for a finished advertisement.

RULES:
1. Describe the product using the EXACT name and physical traits given below. Never substitute a generic product.
2. The headline is punchy (max 8 words); the subheadline is benefit-driven (max 20 words).
3. The CTA is action-oriented (2-5 words).
4. The image_prompt (300-500 words) covers: ad format, product description, placement, scene, lighting,
   model direction if any, exact text to render with font/size/color/position, design elements, and an avoid list.
5. Return ONLY valid JSON. No markdown, no explanation."""


class AdCopyParseError(ValueError):
    """Raised when the copy model reply cannot be turned into ``AdCopy``."""


def _strip_fence(text: str) -> str:
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_RX.sub("", cleaned).strip()
    return cleaned


def _first_balanced_object(text: str) -> str | None:
    """Return the first ``{...}`` span with balanced braces, ignoring braces in strings."""

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse a JSON object out of a model reply.

    Accepts a bare object, an object wrapped in a fenced code block, or an
    object surrounded by prose (first balanced object wins).
    """

    cleaned = _strip_fence(text)
    try:
        parsed = json.loads(cleaned)
    except (TypeError, ValueError):
        candidate = _first_balanced_object(cleaned)
        if candidate is None:
            raise AdCopyParseError(f"No JSON object found in model reply: {cleaned[:200]!r}") from None
        try:
            parsed = json.loads(candidate)
        except ValueError as exc:
            raise AdCopyParseError(f"Malformed JSON object in model reply: {exc}") from exc

    if not isinstance(parsed, dict):
        raise AdCopyParseError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def parse_ad_copy(text: str) -> AdCopy:
    parsed = extract_json_object(text)

    missing = [
        name
        for name in REQUIRED_COPY_FIELDS
        if parsed.get(name) is None or not str(parsed.get(name)).strip()
    ]
    if missing:
        raise AdCopyParseError(f"Missing required copy fields: {', '.join(missing)}")

    bullets = parsed.get("bullet_points")
    try:
        return AdCopy(
            headline=str(parsed["headline"]).strip(),
            subheadline=str(parsed["subheadline"]).strip(),
            cta=str(parsed["cta"]).strip(),
            image_prompt=str(parsed["image_prompt"]).strip(),
            bullet_points=[str(item) for item in bullets] if isinstance(bullets, list) else [],
        )
    except ValidationError as exc:  # pragma: no cover - fields are coerced to str above
        raise AdCopyParseError(str(exc)) from exc


def _compliance_section(playbook: PlaybookContext) -> str:
    rules = [rule.strip() for rule in playbook.compliance.rules if rule and rule.strip()]
    if not rules:
        return ""
    must_not = [rule for rule in rules if _NEGATIVE_RULE_RX.match(rule)]
    must = [rule for rule in rules if not _NEGATIVE_RULE_RX.match(rule)]

    lines = [
        "=== PRIORITY 1 — COMPLIANCE (overrides every other section) ===",
        f"Region: {playbook.compliance.region}",
    ]
    if must:
        lines.append("MUST SHOW:")
        lines.extend(f"  - {rule}" for rule in must)
    if must_not:
        lines.append("MUST NOT:")
        lines.extend(f"  - {rule}" for rule in must_not)
    return "\n".join(lines)


def _layout_section(concept_analysis: Mapping[str, Any]) -> str:
    layout = concept_analysis.get("layout") if isinstance(concept_analysis, Mapping) else None
    layout = layout if isinstance(layout, Mapping) else {}
    style = concept_analysis.get("visual_style") if isinstance(concept_analysis, Mapping) else None
    style = style if isinstance(style, Mapping) else {}

    zones = [zone for zone in layout.get("zones") or [] if isinstance(zone, Mapping)]
    lines = [
        "=== PRIORITY 4 — LAYOUT PATTERN (from the inspiration ad) ===",
        f"- Layout Type: {layout.get('type') or 'N/A'}",
        f"- Visual Mood: {style.get('mood') or 'N/A'}",
    ]
    text_zones = [zone for zone in zones if zone.get("content_type") in _TEXT_ZONES]
    for zone in text_zones:
        lines.append(
            f"- {str(zone.get('content_type')).upper()} zone (y: {zone.get('y_start', '?')}px–"
            f"{zone.get('y_end', '?')}px): keep the background behind this text clean and high-contrast"
        )
    if zones:
        lines.append("- Zones:")
        lines.append(json.dumps(zones, indent=2, ensure_ascii=False))
    return "\n".join(lines)


def build_copy_prompt(
    brand_name: str,
    playbook: PlaybookContext,
    concept_analysis: Mapping[str, Any],
    angle: MarketingAngle,
    ad_format: AdFormat,
) -> str:
    """Build the text-completion prompt that asks for ad copy as JSON."""

    product = playbook.product_identity
    colors = playbook.brand_colors
    zone = ad_format.safe_zone

    identity_lines = [
        "=== PRIORITY 2 — BRAND IDENTITY ===",
        f"- Tone of voice: {playbook.tone_of_voice or 'Professional'}",
        f"- Primary Color: {colors.primary}",
        f"- Secondary Color: {colors.secondary}",
        f"- Accent Color: {colors.accent or 'N/A'}",
    ]
    if playbook.usps:
        identity_lines.append(f"- Key Benefits: {', '.join(playbook.usps)}")
    if product is not None:
        product_colors = ", ".join(f"{k}: {v}" for k, v in product.colors.items()) or "use brand colors"
        identity_lines.extend(
            [
                "PRODUCT FIDELITY (use exact details, do NOT hallucinate):",
                f"- Product: {product.product_name} ({product.product_type})",
                f"- Key Features: {', '.join(product.key_features) or 'N/A'}",
                f"- Visual Description: {product.visual_description or 'N/A'}",
                f"- Product Colors: {product_colors}",
            ]
        )
    if playbook.target_audience is not None:
        audience = playbook.target_audience
        identity_lines.extend(
            [
                f"- Target Gender: {audience.gender}",
                f"- Target Age: {audience.age_range}",
                f"- Personas: {', '.join(audience.personas) or 'N/A'}",
            ]
        )

    sections = [
        COPY_SYSTEM_PROMPT,
        f'You are writing for the brand "{brand_name}".',
        _compliance_section(playbook),
        "\n".join(identity_lines),
        "\n".join(
            [
                "=== PRIORITY 3 — MARKETING ANGLE ===",
                f"- Strategy: {angle.label}",
                f"- Apply this narrative approach: {angle.description}",
            ]
        ),
        _layout_section(concept_analysis or {}),
        "\n".join(
            [
                "=== AD FORMAT ===",
                f"- Format: {ad_format.label} ({ad_format.ratio}, {ad_format.dimensions})",
                f"- Keep all text and key content out of the top {zone.danger_top}px and bottom "
                f"{zone.danger_bottom}px, with {zone.danger_sides}px side margins",
            ]
        ),
        "\n".join(
            [
                "=== YOUR TASK ===",
                f'Generate ad copy for "{playbook.product_name}" using the "{angle.label}" marketing angle.',
                "Return ONLY this JSON object:",
                json.dumps(
                    {
                        "headline": "A short, punchy headline (max 8 words)",
                        "subheadline": "A benefit-driven supporting statement (max 20 words)",
                        "cta": "An action-oriented CTA (2-5 words)",
                        "bullet_points": ["Benefit 1", "Benefit 2", "Benefit 3"],
                        "image_prompt": "A 300-500 word prompt describing the complete ad image",
                    },
                    indent=2,
                ),
            ]
        ),
    ]
    prompt = "\n\n".join(section for section in sections if section)
    logger.debug("[ad_copy.prompt] brand=%s angle=%s chars=%d", brand_name, angle.id, len(prompt))
    return prompt


__all__ = [
    "AdCopyParseError",
    "COPY_SYSTEM_PROMPT",
    "REQUIRED_COPY_FIELDS",
    "build_copy_prompt",
    "extract_json_object",
    "parse_ad_copy",
]
