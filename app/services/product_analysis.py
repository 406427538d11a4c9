"""Structured product extraction from photos, followed by rule validation."""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from app.schemas import ValidatedResult
from app.services.ad_copy import AdCopyParseError, extract_json_object
from app.services.analysis_validator import ProductAnalysisValidator
from app.services.genai_client import TextCompletion

logger = logging.getLogger("ai-service")

PRODUCT_ANALYSIS_PROMPT = """You are an expert fashion product analyst. Produce a precise technical specification
of the garment shown in the attached images.

ORIENTATION: always describe left/right from the WEARER'S perspective (imagine wearing the garment).
On a back-view photo, something on the right of the screen sits on the wearer's LEFT.

FABRIC: wide countable ridges (2-5mm) are CORDUROY; fine stretchy lines under 1mm are RIBBED JERSEY.

ANKLE / HEM (pants): a metal pull or slit at the outer ankle is a SIDE ANKLE ZIPPER; gathered or ribbed
bands are CUFFS. A zipper and an elastic cuff never coexist; report one or the other.

ZERO GUESS: if a detail is not clearly visible set has_logo / has_patch to false or use "N/A".
Never write "appears to be", "likely", "probably" or "seems".

Return ONLY a JSON object with these sections:
{
  "general_info": {"product_name": "", "category": "", "fit_type": "", "gender_target": ""},
  "visual_specs": {"color_name": "", "hex_code": "#XXXXXX", "fabric_texture": ""},
  "design_front": {"has_logo": false, "logo_text": "", "logo_type": "", "placement": "", "size": "", "description": ""},
  "design_back": {"has_logo": false, "has_patch": false, "technique": "", "patch_color": "", "patch_detail": "",
                  "placement": "", "size": "", "description": ""},
  "garment_details": {"pockets": "", "sleeves_or_legs": "", "bottom_termination": "", "closure_details": "",
                      "hardware_finish": ""}
}"""


class AnalysisParseError(ValueError):
    """The vision model reply held no usable analysis object."""


class ProductAnalysisService:
    def __init__(
        self,
        text_completion: TextCompletion,
        validator: Optional[ProductAnalysisValidator] = None,
    ) -> None:
        self.text_completion = text_completion
        self.validator = validator or ProductAnalysisValidator()

    def build_prompt(self, product_name: Optional[str] = None) -> str:
        if product_name:
            return f'{PRODUCT_ANALYSIS_PROMPT}\n\nThe seller calls this product "{product_name}".'
        return PRODUCT_ANALYSIS_PROMPT

    async def analyze(self, image_urls: Sequence[str], product_name: Optional[str] = None) -> ValidatedResult:
        if not image_urls:
            raise ValueError("at least one product image URL is required")

        logger.info("[analysis.extract] images=%d product=%s", len(image_urls), product_name or "-")
        raw = await self.text_completion.complete(self.build_prompt(product_name), image_urls=image_urls)
        try:
            document = extract_json_object(raw)
        except AdCopyParseError as exc:
            raise AnalysisParseError(f"Product analysis reply is not a JSON object: {exc}") from exc

        result = self.validator.validate(document)
        logger.info(
            "[analysis.extract] flags=%d modified=%s critical=%s",
            len(result.flags),
            result.was_modified,
            result.has_critical,
        )
        return result


__all__ = ["AnalysisParseError", "PRODUCT_ANALYSIS_PROMPT", "ProductAnalysisService"]
