"""Static marketing-angle and ad-format reference data."""

from __future__ import annotations

from app.schemas import AdFormat, MarketingAngle

MARKETING_ANGLES: tuple[MarketingAngle, ...] = tuple(
    MarketingAngle(id=angle_id, label=label, description=description)
    for angle_id, label, description in (
        (
            "problem_solution",
            "Problem / Solution",
            "Present a common pain point and position the product as the ideal solution.",
        ),
        (
            "before_after",
            "Before & After",
            "Show a dramatic transformation from the problem state to the desired outcome.",
        ),
        (
            "social_proof",
            "Social Proof / Reviews",
            "Leverage customer testimonials, ratings, or user counts to build trust.",
        ),
        (
            "fomo",
            "Urgency / FOMO",
            "Create fear of missing out with limited-time offers or scarcity cues.",
        ),
        (
            "feature_highlight",
            "Feature Highlight",
            "Spotlight a specific product feature that sets it apart from alternatives.",
        ),
        (
            "cost_savings",
            "Cost Savings",
            "Emphasize monetary savings, ROI, or value-for-money compared to competitors.",
        ),
        (
            "us_vs_them",
            "Us vs. Competitors",
            "Directly compare your product against competitors to highlight advantages.",
        ),
        (
            "storytelling",
            "Storytelling",
            "Use a narrative arc to emotionally connect the audience with the brand.",
        ),
        (
            "minimalist",
            "Minimalist",
            "Use clean design with minimal text to let the product speak for itself.",
        ),
        (
            "luxury",
            "Luxury",
            "Convey premium quality through elegant visuals and aspirational messaging.",
        ),
        (
            "urgent",
            "Urgent",
            "Drive immediate action with countdown timers, flash sales, or deadline messaging.",
        ),
        (
            "educational",
            "Educational",
            "Teach the audience something valuable while naturally introducing the product.",
        ),
        (
            "how_to",
            "How To",
            "Walk the viewer through a step-by-step process that features the product.",
        ),
        (
            "myth_buster",
            "Myth Buster",
            "Debunk a common misconception to position the product as the truth.",
        ),
        (
            "benefit_stacking",
            "Benefit Stacking",
            "List multiple benefits in rapid succession to overwhelm with value.",
        ),
        (
            "curiosity_gap",
            "Curiosity Gap",
            "Tease an intriguing fact or result to compel the viewer to learn more.",
        ),
        (
            "expert_endorsement",
            "Expert Endorsement",
            "Feature industry experts or authority figures vouching for the product.",
        ),
        (
            "user_generated",
            "User Generated",
            "Showcase real content created by actual customers for authentic appeal.",
        ),
        (
            "lifestyle",
            "Lifestyle",
            "Associate the product with a desirable lifestyle or aspirational identity.",
        ),
        (
            "contrast",
            "Contrast",
            "Juxtapose two opposing scenarios to make the product benefit stand out.",
        ),
        (
            "question",
            "Question",
            "Open with a provocative question that hooks the viewer into engaging.",
        ),
        (
            "guarantee",
            "Guarantee",
            "Reduce purchase risk by highlighting money-back or satisfaction guarantees.",
        ),
    )
)

# Safe zones: danger_top is hidden by status bar / username, danger_bottom by
# CTA overlays and captions.
AD_FORMATS: tuple[AdFormat, ...] = (
    AdFormat.model_validate(
        {
            "id": "story",
            "label": "Instagram Story",
            "ratio": "9:16",
            "width": 1080,
            "height": 1920,
            "safe_zone": {
                "danger_top": 250,
                "danger_bottom": 340,
                "danger_sides": 60,
                "usable_area": {"x": 60, "y": 250, "width": 960, "height": 1330},
            },
        }
    ),
    AdFormat.model_validate(
        {
            "id": "square",
            "label": "Instagram Post",
            "ratio": "1:1",
            "width": 1080,
            "height": 1080,
            "safe_zone": {
                "danger_top": 80,
                "danger_bottom": 120,
                "danger_sides": 60,
                "usable_area": {"x": 60, "y": 80, "width": 960, "height": 880},
            },
        }
    ),
    AdFormat.model_validate(
        {
            "id": "portrait",
            "label": "Portrait",
            "ratio": "4:5",
            "width": 1080,
            "height": 1350,
            "safe_zone": {
                "danger_top": 80,
                "danger_bottom": 150,
                "danger_sides": 60,
                "usable_area": {"x": 60, "y": 80, "width": 960, "height": 1120},
            },
        }
    ),
    AdFormat.model_validate(
        {
            "id": "landscape",
            "label": "Landscape",
            "ratio": "16:9",
            "width": 1920,
            "height": 1080,
            "safe_zone": {
                "danger_top": 60,
                "danger_bottom": 100,
                "danger_sides": 80,
                "usable_area": {"x": 80, "y": 60, "width": 1760, "height": 920},
            },
        }
    ),
)

_ANGLES_BY_ID = {angle.id: angle for angle in MARKETING_ANGLES}
_FORMATS_BY_ID = {fmt.id: fmt for fmt in AD_FORMATS}


def get_angle(angle_id: str) -> MarketingAngle | None:
    return _ANGLES_BY_ID.get(angle_id)


def get_format(format_id: str) -> AdFormat | None:
    return _FORMATS_BY_ID.get(format_id)


__all__ = ["AD_FORMATS", "MARKETING_ANGLES", "get_angle", "get_format"]
