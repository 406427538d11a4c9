import json

import pytest

from app.catalog import get_angle, get_format
from app.schemas import PlaybookContext
from app.services.ad_copy import AdCopyParseError, build_copy_prompt, extract_json_object, parse_ad_copy

COPY = {
    "headline": "Run Lighter Every Mile",
    "subheadline": "The Aero Runner cushions every stride without the weight.",
    "cta": "Shop Now",
    "image_prompt": "Square ad, black running shoe on a track at dawn.",
}


def test_parse_plain_json() -> None:
    copy = parse_ad_copy(json.dumps(COPY))

    assert copy.headline == COPY["headline"]
    assert copy.image_prompt == COPY["image_prompt"]
    assert copy.bullet_points == []


def test_parse_fenced_json() -> None:
    text = "```json\n" + json.dumps({**COPY, "bullet_points": ["Light", "Fast"]}) + "\n```"
    copy = parse_ad_copy(text)

    assert copy.cta == "Shop Now"
    assert copy.bullet_points == ["Light", "Fast"]


def test_parse_bare_fence() -> None:
    assert parse_ad_copy("```\n" + json.dumps(COPY) + "\n```").headline == COPY["headline"]


def test_parse_object_inside_prose() -> None:
    text = "Sure! Here is your ad copy:\n" + json.dumps(COPY) + "\nLet me know if you need changes {ok}."
    assert parse_ad_copy(text).subheadline == COPY["subheadline"]


def test_braces_inside_strings_do_not_confuse_extraction() -> None:
    payload = {**COPY, "image_prompt": "Render the text {SALE} in the corner }"}
    parsed = extract_json_object("prefix " + json.dumps(payload) + " suffix")
    assert parsed["image_prompt"] == "Render the text {SALE} in the corner }"


def test_not_json_raises() -> None:
    with pytest.raises(AdCopyParseError):
        parse_ad_copy("not json at all")


def test_json_array_raises() -> None:
    with pytest.raises(AdCopyParseError):
        extract_json_object("[1, 2, 3]")


@pytest.mark.parametrize("missing", ["headline", "subheadline", "cta", "image_prompt"])
def test_missing_field_raises(missing: str) -> None:
    payload = {k: v for k, v in COPY.items() if k != missing}
    with pytest.raises(AdCopyParseError) as excinfo:
        parse_ad_copy(json.dumps(payload))
    assert missing in str(excinfo.value)


def test_blank_field_raises() -> None:
    with pytest.raises(AdCopyParseError):
        parse_ad_copy(json.dumps({**COPY, "cta": "   "}))


def test_copy_prompt_contains_brand_context() -> None:
    playbook = PlaybookContext.from_raw(
        {
            "product_identity": {"product_name": "Aero Runner", "key_features": ["Knit upper"]},
            "brand_colors": {"primary": "#1A1A1A"},
            "compliance": {
                "region": "EU",
                "rules": ["Show the CE mark", "No medical claims", "Avoid before/after body shots"],
            },
        }
    )
    concept = {
        "layout": {"type": "split", "zones": [{"content_type": "headline", "y_start": 0, "y_end": 200}]},
        "visual_style": {"mood": "energetic"},
    }

    prompt = build_copy_prompt("Aero", playbook, concept, get_angle("problem_solution"), get_format("square"))

    assert 'brand "Aero"' in prompt
    assert "Aero Runner" in prompt
    assert "#1A1A1A" in prompt
    assert "Problem / Solution" in prompt
    assert "1:1" in prompt
    must_show = prompt.index("MUST SHOW:")
    must_not = prompt.index("MUST NOT:")
    assert prompt.index("Show the CE mark") > must_show
    assert prompt.index("No medical claims") > must_not
    assert prompt.index("Avoid before/after body shots") > must_not
    assert "HEADLINE zone" in prompt
