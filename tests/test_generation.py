import asyncio

import pytest

from app.schemas import BrandContext, ConceptContext, GenerateAdRequest, GenerationStatus
from app.services.generation import (
    VARIATION_DIRECTIONS,
    AccessDeniedError,
    GenerationOrchestrator,
    InvalidInputError,
    NotFoundError,
    PlaybookRequiredError,
    RecordBusyError,
    RenderFailedError,
    UnknownAngleError,
    UnknownFormatError,
)
from app.services.guardrails import NEGATIVE_BOILERPLATE
from conftest import AD_COPY, USER_ID, FakeBlobStore, FakeImageGenerator, FakeTextCompletion, aero_playbook


def _request(**overrides) -> GenerateAdRequest:
    data = {
        "brand_id": "brand-1",
        "concept_id": "concept-1",
        "marketing_angle_id": "problem_solution",
        "format_id": "square",
    }
    data.update(overrides)
    return GenerateAdRequest(**data)


@pytest.mark.asyncio
async def test_generate_completes_with_one_image(orchestrator, repository, image_generator, blob_store):
    result = await orchestrator.generate(USER_ID, _request())

    record = result.generation
    assert record.status == GenerationStatus.COMPLETED
    assert record.progress == 100
    assert record.completed_at is not None
    assert record.generated_copy.model_dump(exclude={"bullet_points"}) == AD_COPY
    assert result.ad_copy == record.generated_copy
    assert len(record.result_images) == 1

    image = record.result_images[0]
    assert image.format == "1:1"
    assert image.variation_index == 1
    assert image.url.startswith("https://cdn.example.com/generations/")

    call = image_generator.calls[0]
    assert call["aspect_ratio"] == "1:1"
    assert call["reference_urls"] == ("https://cdn.example.com/concept.png",)
    assert "Aero Runner" in call["prompt"]
    assert NEGATIVE_BOILERPLATE in call["prompt"]
    assert AD_COPY["image_prompt"] in call["prompt"]
    assert blob_store.stored == [("generations", "image/png", len(b"\x89PNG-fake"))]
    assert await repository.get(record.id) == record


@pytest.mark.asyncio
@pytest.mark.parametrize("generator", [FakeImageGenerator(fail=True), FakeImageGenerator(empty=True)])
async def test_image_failure_still_completes(repository, text_completion, generator):
    orchestrator = GenerationOrchestrator(repository, text_completion, generator, FakeBlobStore())

    result = await orchestrator.generate(USER_ID, _request())

    assert result.generation.status == GenerationStatus.COMPLETED
    assert result.generation.progress == 100
    assert result.generation.result_images == []
    assert result.generation.generated_copy is not None


@pytest.mark.asyncio
async def test_unparseable_copy_fails_run(repository, image_generator, blob_store):
    orchestrator = GenerationOrchestrator(
        repository, FakeTextCompletion(reply="not json at all"), image_generator, blob_store
    )

    result = await orchestrator.generate(USER_ID, _request())

    record = result.generation
    assert record.status == GenerationStatus.FAILED
    assert record.failure_reason
    assert record.result_images == []
    assert record.progress < 100
    assert result.ad_copy is None
    assert image_generator.calls == []
    assert (await repository.get(record.id)).status == GenerationStatus.FAILED


@pytest.mark.asyncio
async def test_text_transport_error_fails_run(repository, image_generator, blob_store):
    orchestrator = GenerationOrchestrator(
        repository, FakeTextCompletion(error=ConnectionError("quota exceeded")), image_generator, blob_store
    )

    result = await orchestrator.generate(USER_ID, _request())

    assert result.generation.status == GenerationStatus.FAILED
    assert "quota exceeded" in result.generation.failure_reason


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("overrides", "error"),
    [
        ({"format_id": "banner"}, UnknownFormatError),
        ({"marketing_angle_id": "nope"}, UnknownAngleError),
        ({"brand_id": "missing"}, NotFoundError),
        ({"concept_id": "missing"}, NotFoundError),
        ({"variations_count": 5}, InvalidInputError),
    ],
)
async def test_input_errors_create_no_record(orchestrator, repository, overrides, error):
    with pytest.raises(error):
        await orchestrator.generate(USER_ID, _request(**overrides))

    assert repository.records == {}
    assert await orchestrator.find_all(USER_ID) == []


@pytest.mark.asyncio
async def test_foreign_brand_is_denied(orchestrator, repository):
    repository.brands["brand-2"] = BrandContext(id="brand-2", user_id="someone-else", name="Other", playbook=aero_playbook())

    with pytest.raises(AccessDeniedError):
        await orchestrator.generate(USER_ID, _request(brand_id="brand-2"))
    assert repository.records == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("playbook", [None, aero_playbook(product_identity=None), aero_playbook(product_identity={})])
async def test_playbook_without_product_is_rejected(orchestrator, repository, playbook):
    repository.brands["brand-1"] = BrandContext(id="brand-1", user_id=USER_ID, name="Aero", playbook=playbook)

    with pytest.raises(PlaybookRequiredError):
        await orchestrator.generate(USER_ID, _request())
    assert repository.records == {}


@pytest.mark.asyncio
async def test_progress_is_monotonic(orchestrator, repository):
    await orchestrator.generate(USER_ID, _request(variations_count=3))

    log = repository.progress_log
    assert log[0] == 10
    assert log == sorted(log)
    assert 30 in log and 50 in log and 80 in log
    assert log[-1] == 100


@pytest.mark.asyncio
async def test_variations_use_distinct_directions(orchestrator, image_generator):
    result = await orchestrator.generate(USER_ID, _request(variations_count=3))

    assert [img.variation_index for img in result.generation.result_images] == [1, 2, 3]
    prompts = [call["prompt"] for call in image_generator.calls]
    assert len(set(prompts)) == 3
    assert prompts[1].endswith(VARIATION_DIRECTIONS[1])


@pytest.mark.asyncio
async def test_early_return_hands_back_processing_record(repository, image_generator, blob_store):
    text = FakeTextCompletion(delay=0.2)
    orchestrator = GenerationOrchestrator(repository, text, image_generator, blob_store)

    early = await orchestrator.generate_with_early_return(USER_ID, _request(), timeout=0.01)

    assert early.generation.status == GenerationStatus.PROCESSING
    assert early.ad_copy is None
    latest = await repository.find_latest_processing(USER_ID)
    assert latest is not None and latest.id == early.generation.id

    final = await orchestrator.wait(early.generation.id, timeout=5)
    assert final.generation.status == GenerationStatus.COMPLETED
    assert final.ad_copy is not None
    assert await repository.find_latest_processing(USER_ID) is None


@pytest.mark.asyncio
async def test_early_return_waits_for_fast_runs(orchestrator):
    result = await orchestrator.generate_with_early_return(USER_ID, _request(), timeout=5)

    assert result.generation.status == GenerationStatus.COMPLETED
    assert result.ad_copy is not None


@pytest.mark.asyncio
async def test_wait_on_finished_run_reads_record(orchestrator):
    record = await orchestrator.start(USER_ID, _request())
    await asyncio.sleep(0.05)
    await orchestrator.wait(record.id, timeout=5)

    again = await orchestrator.wait(record.id, timeout=0)
    assert again.generation.status == GenerationStatus.COMPLETED
    assert again.ad_copy is not None


def _fail_save_once(repository, monkeypatch, when):
    original = repository.save
    armed = [True]

    async def save(record):
        if armed[0] and when(record):
            armed[0] = False
            raise ConnectionError("db write timed out")
        return await original(record)

    monkeypatch.setattr(repository, "save", save)


@pytest.mark.asyncio
async def test_failed_completion_write_marks_run_failed(orchestrator, repository, monkeypatch):
    _fail_save_once(repository, monkeypatch, lambda record: record.status == GenerationStatus.COMPLETED)

    record = await orchestrator.start(USER_ID, _request())
    result = await orchestrator.wait(record.id, timeout=5)

    assert result.generation.status == GenerationStatus.FAILED
    assert "db write timed out" in result.generation.failure_reason
    assert result.ad_copy is None
    stored = await repository.get(record.id)
    assert stored.status == GenerationStatus.FAILED
    assert stored.progress == 80
    assert await repository.find_latest_processing(USER_ID) is None


@pytest.mark.asyncio
async def test_failed_progress_write_marks_run_failed(orchestrator, repository, monkeypatch):
    _fail_save_once(repository, monkeypatch, lambda record: record.progress == 30)

    result = await orchestrator.generate(USER_ID, _request())

    stored = await repository.get(result.generation.id)
    assert stored.status == GenerationStatus.FAILED
    assert stored.progress == 10
    assert stored.failure_reason == result.generation.failure_reason


@pytest.mark.asyncio
async def test_render_appends_image(orchestrator, image_generator):
    done = await orchestrator.generate(USER_ID, _request())

    updated = await orchestrator.render(done.generation.id, USER_ID)

    assert updated.status == GenerationStatus.COMPLETED
    assert [img.variation_index for img in updated.result_images] == [1, 2]
    assert updated.result_images[0] == done.generation.result_images[0]
    assert updated.version > done.generation.version
    assert AD_COPY["image_prompt"] in image_generator.calls[-1]["prompt"]


@pytest.mark.asyncio
async def test_render_failure_leaves_record_untouched(repository, text_completion, blob_store):
    generator = FakeImageGenerator()
    orchestrator = GenerationOrchestrator(repository, text_completion, generator, blob_store)
    done = await orchestrator.generate(USER_ID, _request())

    generator.fail = True
    with pytest.raises(RenderFailedError):
        await orchestrator.render(done.generation.id, USER_ID)

    assert await repository.get(done.generation.id) == done.generation


@pytest.mark.asyncio
async def test_regenerate_replaces_variation(orchestrator, image_generator):
    done = await orchestrator.generate(USER_ID, _request(variations_count=2))
    old = {img.variation_index: img for img in done.generation.result_images}

    updated = await orchestrator.regenerate_variation(done.generation.id, 2, USER_ID)

    assert [img.variation_index for img in updated.result_images] == [1, 2]
    assert updated.result_images[0] == old[1]
    assert updated.result_images[1].id != old[2].id
    assert "fresh take on variation 2" in image_generator.calls[-1]["prompt"]


@pytest.mark.asyncio
async def test_concurrent_renders_are_serialised(orchestrator):
    done = await orchestrator.generate(USER_ID, _request())

    await asyncio.gather(
        orchestrator.render(done.generation.id, USER_ID),
        orchestrator.render(done.generation.id, USER_ID),
    )

    record = await orchestrator.find_one(done.generation.id, USER_ID)
    assert [img.variation_index for img in record.result_images] == [1, 2, 3]


@pytest.mark.asyncio
async def test_render_locks_are_dropped_after_use(orchestrator):
    done = await orchestrator.generate(USER_ID, _request())

    await asyncio.gather(
        orchestrator.render(done.generation.id, USER_ID),
        orchestrator.regenerate_variation(done.generation.id, 1, USER_ID),
    )

    assert len(orchestrator._locks) == 0


@pytest.mark.asyncio
async def test_render_on_processing_record_is_busy(repository, image_generator, blob_store):
    orchestrator = GenerationOrchestrator(repository, FakeTextCompletion(delay=0.2), image_generator, blob_store)
    record = await orchestrator.start(USER_ID, _request())

    with pytest.raises(RecordBusyError):
        await orchestrator.render(record.id, USER_ID)

    await orchestrator.wait(record.id, timeout=5)


@pytest.mark.asyncio
async def test_render_on_failed_record_is_rejected(repository, image_generator, blob_store):
    orchestrator = GenerationOrchestrator(repository, FakeTextCompletion(reply="nope"), image_generator, blob_store)
    failed = await orchestrator.generate(USER_ID, _request())

    with pytest.raises(InvalidInputError):
        await orchestrator.regenerate_variation(failed.generation.id, 1, USER_ID)


@pytest.mark.asyncio
async def test_lookups_check_ownership(orchestrator, repository):
    done = await orchestrator.generate(USER_ID, _request())
    repository.concepts["concept-2"] = ConceptContext(id="concept-2", user_id=USER_ID)

    assert (await orchestrator.find_one(done.generation.id, USER_ID)).id == done.generation.id
    with pytest.raises(AccessDeniedError):
        await orchestrator.find_one(done.generation.id, "intruder")
    with pytest.raises(NotFoundError):
        await orchestrator.find_one("missing", USER_ID)

    await orchestrator.generate(USER_ID, _request(concept_id="concept-2"))
    records = await orchestrator.find_all(USER_ID)
    assert len(records) == 2
    assert await orchestrator.find_all("intruder") == []
