"""Rule-based corrections for vision-model product analysis documents.

The analysis JSON returned by the model is frequently self-contradictory
(a hem that is both zipped and cuffed, corduroy that is described as a fine
stretch knit, ...). ``validate_product_analysis`` runs a fixed, ordered list
of rules over a deep copy of the document. Each rule either rewrites a field
it can confidently repair or records a flag for a human to look at.

Rules are plain functions ``rule(data, flags) -> None`` so they can be tested
one by one. Order matters: ``reclassify_category`` reads the hem field after
``resolve_ankle_termination`` has normalised it, so it must stay last.
"""
from __future__ import annotations

import copy
import json
import logging
import re
from typing import Any, Callable, Mapping, Sequence

from app.schemas import Confidence, ValidatedResult, ValidationFlag

logger = logging.getLogger("ai-service")

Rule = Callable[[dict[str, Any], list[ValidationFlag]], None]

PANTS_TERMS = ("pant", "jogger", "track", "trouser", "pajama", "pyjama")
SLEEPWEAR_TERMS = ("pajama", "pyjama", "sleepwear")
ZIPPER_TERMS = ("zipper", "zip")
CUFF_TERMS = ("cuff", "elastic")
HEM_CUFF_TERMS = CUFF_TERMS + ("ribbed",)
FINE_KNIT_TERMS = ("fine", "stretch", "jersey", "knit", "lightweight", "soft")
THICK_RIDGE_TERMS = ("cord", "wale", "wide rib", "thick")
BACK_POCKET_TERMS = ("back", "welt", "rear")
PATCH_REQUIRED_FIELDS = ("patch_color", "patch_detail", "placement", "size", "technique")
PLACEHOLDER_VALUES = {"", "n/a"}

ZIPPER_HEM = "Straight hem with side ankle zipper"
ATHLETIC_PANTS = "Track Pants"
KNIT_PANTS = "Joggers"

_HEX_MARKED = re.compile(r"^#[0-9A-Fa-f]{6}$")
_HEX_BARE = re.compile(r"^[0-9A-Fa-f]{6}$")
_WEARER_MARKER = re.compile(r"wearer['’]?s", re.IGNORECASE)
_BARE_SIDE = re.compile(r"\b(left|right)\s+(hip|side|pocket|area)\b", re.IGNORECASE)
_CORDUROY = re.compile(r"(fine-?)?corduroy", re.IGNORECASE)


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any] | None:
    value = data.get(name)
    return value if isinstance(value, dict) else None


def _text(data: Mapping[str, Any], section: str, field: str) -> str:
    """Return the string at ``section.field`` or an empty string."""

    block = _section(data, section)
    if block is None:
        return ""
    value = block.get(field)
    return value if isinstance(value, str) else ""


def _mentions(text: str, terms: Sequence[str]) -> bool:
    return any(term in text for term in terms)


def _flag(
    flags: list[ValidationFlag],
    field: str,
    issue: str,
    original: str,
    confidence: Confidence,
    corrected: str | None = None,
) -> None:
    flags.append(
        ValidationFlag(
            field=field,
            issue=issue,
            original=original,
            corrected=corrected,
            confidence=confidence,
        )
    )


def _is_pants(data: Mapping[str, Any]) -> bool:
    return _mentions(_text(data, "general_info", "category").lower(), PANTS_TERMS)


def disambiguate_fabric(data: dict[str, Any], flags: list[ValidationFlag]) -> None:
    original = _text(data, "visual_specs", "fabric_texture")
    texture = original.lower()
    if "corduroy" not in texture:
        return

    # "corduroy" itself contains "cord"; only count confirming terms around it.
    surrounding = texture.replace("corduroy", " ")
    if not _mentions(surrounding, FINE_KNIT_TERMS) or _mentions(surrounding, THICK_RIDGE_TERMS):
        return

    corrected = _CORDUROY.sub(
        lambda m: "fine-ribbed jersey" if m.group(1) else "ribbed jersey", original
    )
    data["visual_specs"]["fabric_texture"] = corrected
    _flag(
        flags,
        "visual_specs.fabric_texture",
        "Corduroy rewritten as ribbed jersey: fine/stretch knit descriptors without wale evidence",
        original,
        "auto_fixed",
        corrected,
    )


def resolve_ankle_termination(data: dict[str, Any], flags: list[ValidationFlag]) -> None:
    if not _is_pants(data):
        return

    original = _text(data, "garment_details", "bottom_termination")
    hem = original.lower()
    if not (_mentions(hem, ZIPPER_TERMS) and _mentions(hem, HEM_CUFF_TERMS)):
        return

    data["garment_details"]["bottom_termination"] = ZIPPER_HEM
    _flag(
        flags,
        "garment_details.bottom_termination",
        "Impossible hem: zipper and cuff cannot coexist, kept the zipper",
        original,
        "auto_fixed",
        ZIPPER_HEM,
    )


def qualify_orientation(data: dict[str, Any], flags: list[ValidationFlag]) -> None:
    original = _text(data, "design_back", "placement")
    if not original or _WEARER_MARKER.search(original):
        return
    if not _BARE_SIDE.search(original):
        return

    corrected = _BARE_SIDE.sub(
        lambda m: f"wearer's {m.group(1).upper()} {m.group(2)}", original
    )
    data["design_back"]["placement"] = corrected
    _flag(
        flags,
        "design_back.placement",
        "Added wearer-relative qualifier to left/right placement",
        original,
        "auto_fixed",
        corrected,
    )


def check_back_pocket(data: dict[str, Any], flags: list[ValidationFlag]) -> None:
    if not _is_pants(data):
        return

    pockets = _text(data, "garment_details", "pockets")
    if _mentions(pockets.lower(), BACK_POCKET_TERMS):
        return

    _flag(
        flags,
        "garment_details.pockets",
        "No back pocket mentioned; most pants carry a back welt pocket, check the photos",
        pockets,
        "needs_review",
    )


def repair_hex_color(data: dict[str, Any], flags: list[ValidationFlag]) -> None:
    value = _text(data, "visual_specs", "hex_code")
    if not value or _HEX_MARKED.match(value):
        return

    if _HEX_BARE.match(value):
        corrected = f"#{value}"
        data["visual_specs"]["hex_code"] = corrected
        _flag(flags, "visual_specs.hex_code", "Added missing '#' prefix", value, "auto_fixed", corrected)
        return

    _flag(flags, "visual_specs.hex_code", "Invalid hex color format", value, "needs_review")


def require_patch_fields(data: dict[str, Any], flags: list[ValidationFlag]) -> None:
    design_back = _section(data, "design_back")
    if design_back is None:
        return
    has_patch = design_back.get("has_patch")
    if not (has_patch is True or (isinstance(has_patch, str) and has_patch.strip().lower() == "true")):
        return

    missing = []
    for name in PATCH_REQUIRED_FIELDS:
        value = design_back.get(name)
        if not isinstance(value, str) or value.strip().lower() in PLACEHOLDER_VALUES:
            missing.append(name)

    if missing:
        _flag(
            flags,
            "design_back",
            f"has_patch is true but these fields are missing: {', '.join(missing)}",
            json.dumps(missing),
            "critical",
        )


def reclassify_category(data: dict[str, Any], flags: list[ValidationFlag]) -> None:
    """Align the category with the hem construction.

    Must run after ``resolve_ankle_termination``: it reads the already
    normalised hem text.
    """

    original = _text(data, "general_info", "category")
    category = original.lower()
    if not category:
        return

    hem = _text(data, "garment_details", "bottom_termination").lower()
    has_zipper = _mentions(hem, ZIPPER_TERMS)
    has_cuff = _mentions(hem, CUFF_TERMS)

    if _mentions(category, SLEEPWEAR_TERMS) and has_zipper:
        corrected, issue = ATHLETIC_PANTS, "Sleepwear with ankle zipper reclassified as track pants"
    elif "jogger" in category and has_zipper and not has_cuff:
        corrected, issue = ATHLETIC_PANTS, "Joggers with ankle zipper and no cuff reclassified as track pants"
    elif "track" in category and has_cuff and not has_zipper:
        corrected, issue = KNIT_PANTS, "Track pants with elastic cuff and no zipper reclassified as joggers"
    else:
        return

    data["general_info"]["category"] = corrected
    _flag(flags, "general_info.category", issue, original, "auto_fixed", corrected)


RULES: tuple[Rule, ...] = (
    disambiguate_fabric,
    resolve_ankle_termination,
    qualify_orientation,
    check_back_pocket,
    repair_hex_color,
    require_patch_fields,
    reclassify_category,
)


class ProductAnalysisValidator:
    """Apply ``rules`` in order to a deep copy of an analysis document."""

    def __init__(self, rules: Sequence[Rule] = RULES) -> None:
        self.rules = tuple(rules)

    def validate(self, document: Mapping[str, Any] | None) -> ValidatedResult:
        data: dict[str, Any] = copy.deepcopy(dict(document or {}))
        flags: list[ValidationFlag] = []

        for rule in self.rules:
            rule(data, flags)

        if flags:
            logger.warning("[analysis.validate] %d issue(s) found", len(flags))
            for flag in flags:
                logger.warning("[analysis.validate]   %s (%s): %s", flag.field, flag.confidence, flag.issue)

        return ValidatedResult(data=data, flags=flags)


def validate_product_analysis(document: Mapping[str, Any] | None) -> ValidatedResult:
    return ProductAnalysisValidator().validate(document)


__all__ = [
    "RULES",
    "ProductAnalysisValidator",
    "check_back_pocket",
    "disambiguate_fabric",
    "qualify_orientation",
    "reclassify_category",
    "repair_hex_color",
    "require_patch_fields",
    "resolve_ankle_termination",
    "validate_product_analysis",
]
