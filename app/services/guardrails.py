"""Guarded image-prompt compiler.

The copywriter model writes a free-form ``image_prompt``; before it is spent
on a render it is wrapped in five locks built from the brand playbook:

1. product identity lock
2. persona lock
3. readability lock
4. scene directive for the selected marketing angle
5. negative content directive

followed by the creative direction and a closing precedence instruction.
Each layer is a standalone function so it can be tested on its own.
"""
from __future__ import annotations

import logging

from app.schemas import PlaybookContext, ProductIdentity, TargetAudience

logger = logging.getLogger("ai-service")

ANATOMY_CLAUSE = (
    "- Anatomy: ALL body proportions must be anatomically correct. Correct number of fingers "
    "(5 per hand), correct limb proportions, natural joint angles\n"
    "- NO extra limbs, NO distorted faces, NO unnatural body bending"
)

READABILITY_LOCK = """[READABILITY LOCK — TEXT OVERLAY ZONES]
Any area where headline, subheadline or CTA text will sit MUST stay clean:
- Minimum 4.5:1 contrast between text and the background behind it
- Keep low-detail, uncluttered clear space behind every text overlay zone
- If the background is busy, add a soft gradient, solid card or semi-transparent panel behind the text
- Leave generous padding around text (at least 8% of frame width)"""

NEGATIVE_BOILERPLATE = """[NEGATIVE PROMPT — MUST AVOID]
DO NOT generate any of the following:
- Extra fingers, extra limbs, distorted hands, mutated body parts
- Misspelled text, garbled characters, illegible or warped letters, random symbols embedded in the image
- Watermarks, stock photo overlays or grid overlays
- Blurry, low-resolution, or pixelated output
- Overly saturated or neon colors that clash with the brand palette
- Multiple copies of the same product in one frame
- Unrealistic body proportions or uncanny valley faces
- Any product that does NOT match the exact product described in the Product Lock"""

CREATIVE_HEADER = "[CREATIVE DIRECTION — subordinate to the locks above]"

CLOSING_INSTRUCTION = (
    "FINAL INSTRUCTION: Generate a single, high-quality advertisement image. "
    "The PRODUCT, PERSONA, READABILITY and NEGATIVE locks above OVERRIDE the creative direction "
    "whenever they conflict. The product MUST match the Product Lock exactly."
)

SCENE_TEMPLATES: dict[str, str] = {
    "problem_solution": (
        "Split the frame into tension and relief: one side shows the everyday frustration in muted, "
        "desaturated tones, the other shows {product} resolving it in bright, clean light. "
        "{product} is the hero of the resolved side, accented with the brand color {primary}."
    ),
    "before_after": (
        "Side-by-side BEFORE / AFTER composition with identical framing on both halves. "
        "The AFTER half features {product} and is visibly brighter and more polished. "
        "Use {primary} for the divider and the AFTER label."
    ),
    "social_proof": (
        "{product} centred on a clean surface, surrounded by floating review cards with star ratings "
        "and short quotes. Cards use white backgrounds with {primary} accents."
    ),
    "feature_highlight": (
        "Macro close-up of {product} with one standout feature in razor-sharp focus and a shallow "
        "depth of field. A thin {primary} callout line points to the highlighted feature."
    ),
    "lifestyle": (
        "Aspirational real-world setting with natural light where {product} is used or worn naturally. "
        "Wardrobe and props echo the brand color {primary}."
    ),
    "luxury": (
        "Dark, elegant studio set with soft rim lighting and rich textures. {product} sits on a "
        "pedestal as a premium object, with subtle {primary} reflections."
    ),
    "minimalist": (
        "Large negative space on a seamless background, {product} placed on the lower third. "
        "A single {primary} accent shape, nothing else in frame."
    ),
    "us_vs_them": (
        "Two-column comparison: a generic, unbranded alternative on the left in flat grey, "
        "{product} on the right in full color framed by {primary}. No competitor logos."
    ),
    "fomo": (
        "High-energy composition with {product} front and centre, a bold {primary} badge area "
        "reserved for a limited-time offer, diagonal motion lines suggesting urgency."
    ),
    "storytelling": (
        "Cinematic, single-moment scene that implies a story: a person mid-journey with {product} "
        "as the turning point, warm film-like grading with {primary} highlights."
    ),
}


def _bullets(items: list[str]) -> str:
    return "\n".join(f"- {item}" for item in items if item)


def build_product_lock(product: ProductIdentity | None) -> str:
    if product is None or not product.is_populated:
        return (
            "[PRODUCT LOCK — DO NOT MODIFY]\n"
            "Show the product exactly as provided in the reference material. Do NOT invent features."
        )

    lines = [
        "[PRODUCT LOCK — DO NOT MODIFY]",
        f"The product is: {product.product_name} ({product.product_type}).",
    ]
    if product.visual_description:
        lines.append(product.visual_description)

    features = _bullets(product.key_features)
    lines.append("")
    lines.append("Physical traits that MUST appear exactly:")
    lines.append(features or "(see visual description above)")

    colors = "\n".join(f"- {part}: {hex_code}" for part, hex_code in product.colors.items())
    lines.append("")
    lines.append("Product colors:")
    lines.append(colors or "(use brand colors)")

    negatives = _bullets(product.negative_traits)
    if negatives:
        lines.append("")
        lines.append("MUST NOT include:")
        lines.append(negatives)

    lines.append("If the product is shown, it MUST match the above description exactly. Do NOT invent features.")
    return "\n".join(lines)


def build_persona_lock(audience: TargetAudience | None) -> str:
    header = "[PERSONA LOCK — HUMAN MODEL RULES]\nIf a human model appears in the image:"
    if audience is None:
        return f"{header}\n- Expression: Natural, confident\n{ANATOMY_CLAUSE}"

    return (
        f"{header}\n"
        f"- Gender: {audience.gender}\n"
        f"- Age appearance: {audience.age_range} years old\n"
        f"- Body type: {audience.body_type}\n"
        f"- Clothing: {audience.clothing_style}\n"
        "- Expression: Confident, calm, focused — NOT overly posed or unnatural\n"
        f"{ANATOMY_CLAUSE}"
    )


def build_scene_directive(
    angle_id: str,
    angle_label: str,
    angle_description: str,
    playbook: PlaybookContext,
) -> str:
    product_name = playbook.product_name
    primary = playbook.brand_colors.primary
    header = f"[SCENE DIRECTIVE — {(angle_id or 'custom').upper()}]"

    template = SCENE_TEMPLATES.get(angle_id)
    if template is not None:
        return f"{header}\n{template.format(product=product_name, primary=primary)}"

    label = angle_label or angle_id or "Custom angle"
    description = f" — {angle_description}" if angle_description else ""
    return (
        f"{header}\n"
        f'Angle: "{label}"{description}\n'
        f"Show {product_name} prominently. Use brand colors (primary: {primary}). "
        "Professional commercial photography."
    )


def build_negative_prompt(playbook: PlaybookContext) -> str:
    sections = [NEGATIVE_BOILERPLATE]

    traits = playbook.product_identity.negative_traits if playbook.product_identity else []
    trait_lines = _bullets(traits)
    if trait_lines:
        sections.append(f"PRODUCT-SPECIFIC AVOID:\n{trait_lines}")

    rule_lines = _bullets(playbook.compliance.rules)
    if rule_lines:
        sections.append(f"COMPLIANCE RESTRICTIONS:\n{rule_lines}")

    return "\n\n".join(sections)


def compile_guarded_prompt(
    creative_text: str,
    angle_id: str,
    angle_label: str,
    angle_description: str,
    playbook: PlaybookContext,
) -> str:
    layers = [
        build_product_lock(playbook.product_identity),
        build_persona_lock(playbook.target_audience),
        READABILITY_LOCK,
        build_scene_directive(angle_id, angle_label, angle_description, playbook),
        build_negative_prompt(playbook),
        f"{CREATIVE_HEADER}\n{(creative_text or '').strip()}",
        CLOSING_INSTRUCTION,
    ]
    prompt = "\n\n".join(layers)
    logger.info("[guardrails.compile] angle=%s chars=%d", angle_id, len(prompt))
    return prompt


__all__ = [
    "CLOSING_INSTRUCTION",
    "CREATIVE_HEADER",
    "NEGATIVE_BOILERPLATE",
    "READABILITY_LOCK",
    "SCENE_TEMPLATES",
    "build_negative_prompt",
    "build_persona_lock",
    "build_product_lock",
    "build_scene_directive",
    "compile_guarded_prompt",
]
