import pytest
from pydantic import ValidationError

from app.catalog import AD_FORMATS, MARKETING_ANGLES, get_angle, get_format
from app.schemas import (
    GenerateAdRequest,
    GenerationRecord,
    GenerationStatus,
    PlaybookContext,
    ResultImage,
    TargetAudience,
    ValidatedResult,
    ValidationFlag,
)


def test_playbook_defaults_are_filled() -> None:
    playbook = PlaybookContext.model_validate({"product_identity": {"product_name": "Aero Runner"}})

    assert playbook.brand_colors.primary == "#000000"
    assert playbook.compliance.region == "Global"
    assert playbook.compliance.rules == []
    assert playbook.target_audience is None
    assert playbook.product_identity.product_type == "Product"
    assert playbook.product_name == "Aero Runner"


def test_playbook_without_product_uses_generic_name() -> None:
    assert PlaybookContext().product_name == "the product"
    assert PlaybookContext.from_raw(None) is None


def test_target_audience_blank_values_use_defaults() -> None:
    audience = TargetAudience.model_validate({"gender": "", "age_range": None, "personas": ["Runner"]})

    assert audience.gender == "Any"
    assert audience.age_range == "25-45"
    assert audience.personas == ["Runner"]


def test_validation_flag_is_frozen() -> None:
    flag = ValidationFlag(field="a", issue="b", confidence="needs_review")

    with pytest.raises(ValidationError):
        flag.issue = "changed"


def test_validation_flag_rejects_unknown_confidence() -> None:
    with pytest.raises(ValidationError):
        ValidationFlag(field="a", issue="b", confidence="maybe")


def test_validated_result_serialises_was_modified() -> None:
    result = ValidatedResult(
        data={},
        flags=[ValidationFlag(field="x", issue="y", original="1", corrected="#1", confidence="auto_fixed")],
    )
    assert result.model_dump()["was_modified"] is True
    assert ValidatedResult().was_modified is False


def test_generation_record_defaults() -> None:
    record = GenerationRecord(
        user_id="u", brand_id="b", concept_id="c", marketing_angle_id="fomo", format_id="story"
    )

    assert record.status == GenerationStatus.PENDING
    assert record.progress == 0
    assert record.result_images == []
    assert record.version == 0
    assert GenerationStatus.COMPLETED.is_terminal and not GenerationStatus.PROCESSING.is_terminal


def test_result_image_requires_positive_variation() -> None:
    with pytest.raises(ValidationError):
        ResultImage(url="https://x", format="1:1", variation_index=0)


def test_generate_request_defaults_to_one_variation() -> None:
    request = GenerateAdRequest(brand_id="b", concept_id="c", marketing_angle_id="fomo", format_id="story")
    assert request.variations_count == 1


def test_catalog_lookup() -> None:
    assert len(MARKETING_ANGLES) >= 20
    assert len({angle.id for angle in MARKETING_ANGLES}) == len(MARKETING_ANGLES)
    assert [fmt.ratio for fmt in AD_FORMATS] == ["9:16", "1:1", "4:5", "16:9"]
    assert get_format("square").dimensions == "1080x1080"
    assert get_angle("problem_solution").label == "Problem / Solution"
    assert get_angle("banner") is None
    assert get_format("banner") is None
