"""Ad generation pipeline: copy, guarded image prompt, image variations.

``GenerationOrchestrator`` owns one ``GenerationRecord`` per run and drives it
through ``PROCESSING`` to ``COMPLETED`` or ``FAILED``:

1. resolve angle and format ids against the catalog
2. fetch brand and concept, checking ownership
3. require a playbook with a named product
4. create the record (PROCESSING, progress 10)
5. ask the text model for ad copy as JSON (progress 30 before the call)
6. compile the guarded image prompt (progress 50)
7. render and store each image variation (progress up to 80)
8. mark COMPLETED (progress 100)
9. re-fetch and return the record with the parsed copy

Steps 1-3 raise ``InvalidInputError`` before anything is written. A copy
failure in step 5 is terminal and leaves the record FAILED. Image and storage
failures in step 7 are logged and skipped; the run still completes. Any other
failure once the record exists (a repository write, say) also ends in FAILED.
"""
from __future__ import annotations

import asyncio
import datetime as _dt
import logging
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Optional

from app import catalog
from app.schemas import (
    AdFormat,
    BrandContext,
    ConceptContext,
    GenerateAdRequest,
    GenerationRecord,
    GenerationResult,
    GenerationStatus,
    MarketingAngle,
    PlaybookContext,
    ResultImage,
)
from app.services.ad_copy import build_copy_prompt, parse_ad_copy
from app.services.genai_client import TextCompletion
from app.services.guardrails import compile_guarded_prompt
from app.services.image_provider import ImageGenerationError, ImageGenerator
from app.services.repository import GenerationRepository
from app.services.storage_bridge import BlobStore

logger = logging.getLogger("ai-service")

INITIAL_PROGRESS = 10
COPY_PROGRESS = 30
PROMPT_PROGRESS = 50
IMAGES_PROGRESS = 80

# Appended to the guarded prompt per variation; the first variation is the bare prompt.
VARIATION_DIRECTIONS = (
    "",
    "\n[VARIATION DIRECTION: Use a slightly different composition angle and camera perspective. "
    "Shift key elements position by 10-15%.]",
    "\n[VARIATION DIRECTION: Adjust the color temperature slightly warmer. "
    "Use a different arrangement of supporting design elements.]",
    "\n[VARIATION DIRECTION: Try an alternative text layout. Shift the visual weight slightly. "
    "Minor lighting variation.]",
    "\n[VARIATION DIRECTION: Different crop and framing. "
    "Alternative background treatment while maintaining the same mood.]",
)

REGENERATION_DIRECTION = (
    "\n[REGENERATION: This is a fresh take on variation {index}. Create a distinctly different "
    "composition while maintaining the same ad concept, product, and copy.]"
)


class GenerationError(Exception):
    status_code = 500


class InvalidInputError(GenerationError):
    """Rejected before any record is created or changed."""

    status_code = 400


class UnknownAngleError(InvalidInputError):
    def __init__(self, angle_id: str) -> None:
        super().__init__(f"Invalid marketing angle ID: {angle_id}")
        self.angle_id = angle_id


class UnknownFormatError(InvalidInputError):
    def __init__(self, format_id: str) -> None:
        super().__init__(f"Invalid ad format ID: {format_id}")
        self.format_id = format_id


class PlaybookRequiredError(InvalidInputError):
    pass


class NotFoundError(InvalidInputError):
    status_code = 404


class AccessDeniedError(InvalidInputError):
    status_code = 403


class RecordBusyError(GenerationError):
    """The record is still being produced by its pipeline."""

    status_code = 409


class RenderFailedError(GenerationError):
    status_code = 502


@dataclass(frozen=True)
class PreparedRun:
    """Everything steps 4-9 need, resolved and checked by ``prepare``."""

    user_id: str
    brand: BrandContext
    concept: ConceptContext
    angle: MarketingAngle
    ad_format: AdFormat
    playbook: PlaybookContext
    variations_count: int = 1

    @property
    def reference_urls(self) -> tuple[str, ...]:
        url = self.concept.original_image_url
        return (url,) if url else ()


def _utcnow() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


class GenerationOrchestrator:
    def __init__(
        self,
        repository: GenerationRepository,
        text_completion: TextCompletion,
        image_generator: ImageGenerator,
        blob_store: BlobStore,
        *,
        clock: Optional[Callable[[], _dt.datetime]] = None,
        output_folder: str = "generations",
        max_variations: int = 4,
        early_return_seconds: float = 5.0,
    ) -> None:
        self.repository = repository
        self.text_completion = text_completion
        self.image_generator = image_generator
        self.blob_store = blob_store
        self.clock = clock or _utcnow
        self.output_folder = output_folder
        self.max_variations = max(1, max_variations)
        self.early_return_seconds = early_return_seconds
        self._tasks: dict[str, asyncio.Task[GenerationResult]] = {}
        # entries vanish once no render holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    # ------------------------------------------------------------------
    # Steps 1-3
    # ------------------------------------------------------------------
    async def prepare(self, user_id: str, request: GenerateAdRequest) -> PreparedRun:
        if not 1 <= request.variations_count <= self.max_variations:
            raise InvalidInputError(f"variations_count must be between 1 and {self.max_variations}")
        return await self._resolve(
            user_id,
            brand_id=request.brand_id,
            concept_id=request.concept_id,
            angle_id=request.marketing_angle_id,
            format_id=request.format_id,
            variations_count=request.variations_count,
        )

    async def _resolve(
        self,
        user_id: str,
        *,
        brand_id: str,
        concept_id: str,
        angle_id: str,
        format_id: str,
        variations_count: int = 1,
    ) -> PreparedRun:
        angle = catalog.get_angle(angle_id)
        if angle is None:
            raise UnknownAngleError(angle_id)
        ad_format = catalog.get_format(format_id)
        if ad_format is None:
            raise UnknownFormatError(format_id)
        logger.info("[generation.step1] angle=%s format=%s (%s)", angle.id, ad_format.id, ad_format.ratio)

        brand = await self.repository.get_brand(brand_id)
        if brand is None:
            raise NotFoundError("Ad Brand not found")
        if brand.user_id != user_id:
            raise AccessDeniedError("You do not have access to this brand")
        concept = await self.repository.get_concept(concept_id)
        if concept is None:
            raise NotFoundError("Ad Concept not found")
        if concept.user_id != user_id:
            raise AccessDeniedError("You do not have access to this concept")
        logger.info("[generation.step2] brand=%s concept=%s", brand.id, concept.id)

        playbook = brand.playbook
        if playbook is None or playbook.product_identity is None or not playbook.product_identity.is_populated:
            raise PlaybookRequiredError("Brand must have a brand playbook with a product identity before generating ads")
        if not playbook.brand_name:
            playbook = playbook.model_copy(update={"brand_name": brand.name})
        logger.info(
            "[generation.step3] product=%s audience=%s compliance_rules=%d",
            playbook.product_name,
            "set" if playbook.target_audience else "generic",
            len(playbook.compliance.rules),
        )

        return PreparedRun(
            user_id=user_id,
            brand=brand,
            concept=concept,
            angle=angle,
            ad_format=ad_format,
            playbook=playbook,
            variations_count=variations_count,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    async def generate(self, user_id: str, request: GenerateAdRequest) -> GenerationResult:
        """Run the whole pipeline and return the terminal record."""

        run = await self.prepare(user_id, request)
        record = await self._create_record(run)
        return await self._run_pipeline(run, record)

    async def start(self, user_id: str, request: GenerateAdRequest) -> GenerationRecord:
        """Create the record and run the pipeline in a background task."""

        run = await self.prepare(user_id, request)
        record = await self._create_record(run)
        task = asyncio.create_task(self._run_pipeline(run, record), name=f"generation-{record.id}")
        self._tasks[record.id] = task
        task.add_done_callback(lambda t, gid=record.id: self._forget_task(gid, t))
        return record

    async def wait(self, generation_id: str, timeout: Optional[float] = None) -> GenerationResult:
        """Wait up to ``timeout`` seconds for a started run.

        The background task is never cancelled; on timeout the current
        (still PROCESSING) record is returned.
        """

        task = self._tasks.get(generation_id)
        if task is not None:
            try:
                return await asyncio.wait_for(asyncio.shield(task), timeout)
            except asyncio.TimeoutError:
                logger.info("[generation.wait] %s still running after %.1fs", generation_id, timeout or 0)

        record = await self.repository.get(generation_id)
        if record is None:
            raise NotFoundError("Ad Generation not found")
        copy = record.generated_copy if record.status == GenerationStatus.COMPLETED else None
        return GenerationResult(generation=record, ad_copy=copy)

    async def generate_with_early_return(
        self,
        user_id: str,
        request: GenerateAdRequest,
        timeout: Optional[float] = None,
    ) -> GenerationResult:
        record = await self.start(user_id, request)
        return await self.wait(record.id, self.early_return_seconds if timeout is None else timeout)

    def _forget_task(self, generation_id: str, task: asyncio.Task[GenerationResult]) -> None:
        self._tasks.pop(generation_id, None)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "[generation.task] %s crashed: %s",
                generation_id,
                task.exception(),
                exc_info=task.exception(),
            )

    # ------------------------------------------------------------------
    # Steps 4-9
    # ------------------------------------------------------------------
    async def _create_record(self, run: PreparedRun) -> GenerationRecord:
        record = GenerationRecord(
            user_id=run.user_id,
            brand_id=run.brand.id,
            concept_id=run.concept.id,
            marketing_angle_id=run.angle.id,
            format_id=run.ad_format.id,
            variations_count=run.variations_count,
            status=GenerationStatus.PROCESSING,
            progress=INITIAL_PROGRESS,
            created_at=self.clock(),
        )
        record = await self.repository.create(record)
        logger.info("[generation.step4] record=%s created", record.id)
        return record

    async def _run_pipeline(self, run: PreparedRun, record: GenerationRecord) -> GenerationResult:
        try:
            return await self._execute(run, record)
        except Exception as exc:
            logger.exception("[generation.pipeline] record=%s aborted", record.id)
            try:
                latest = await self.repository.get(record.id) or record
            except Exception:
                logger.exception("[generation.pipeline] record=%s re-read failed", record.id)
                latest = record
            return await self._fail(latest, f"Generation failed: {exc}")

    async def _fail(self, record: GenerationRecord, reason: str) -> GenerationResult:
        """Mark ``record`` FAILED; if that write fails too, return the FAILED copy unsaved."""

        try:
            failed = await self._update(record, status=GenerationStatus.FAILED, failure_reason=reason)
        except Exception:
            logger.exception("[generation.pipeline] record=%s could not be marked FAILED", record.id)
            failed = record.model_copy(update={"status": GenerationStatus.FAILED, "failure_reason": reason})
        return GenerationResult(generation=failed)

    async def _execute(self, run: PreparedRun, record: GenerationRecord) -> GenerationResult:
        record = await self._update(record, progress=COPY_PROGRESS)
        try:
            prompt = build_copy_prompt(
                run.playbook.brand_name or run.brand.name,
                run.playbook,
                run.concept.analysis,
                run.angle,
                run.ad_format,
            )
            logger.info("[generation.step5] record=%s requesting copy (%d chars)", record.id, len(prompt))
            raw = await self.text_completion.complete(prompt)
            ad_copy = parse_ad_copy(raw)
        except Exception as exc:
            logger.exception("[generation.step5] record=%s copy failed", record.id)
            return await self._fail(record, f"AI failed to generate ad copy: {exc}")
        logger.info("[generation.step5] record=%s headline=%r", record.id, ad_copy.headline)

        guarded = compile_guarded_prompt(
            ad_copy.image_prompt,
            run.angle.id,
            run.angle.label,
            run.angle.description,
            run.playbook,
        )
        record = await self._update(record, progress=PROMPT_PROGRESS)
        logger.info("[generation.step6] record=%s guarded prompt %d chars", record.id, len(guarded))

        images: list[ResultImage] = []
        total = run.variations_count
        for offset in range(total):
            index = offset + 1
            direction = VARIATION_DIRECTIONS[offset % len(VARIATION_DIRECTIONS)]
            try:
                image = await self._render_one(run, guarded + direction, index)
            except Exception:
                logger.exception("[generation.step7] record=%s variation %d/%d failed", record.id, index, total)
                continue
            images.append(image)
            progress = PROMPT_PROGRESS + round(index * (IMAGES_PROGRESS - PROMPT_PROGRESS) / total)
            record = await self._update(record, progress=progress, result_images=list(images))
            logger.info("[generation.step7] record=%s variation %d/%d stored at %s", record.id, index, total, image.url)

        record = await self._update(
            record,
            status=GenerationStatus.COMPLETED,
            progress=100,
            generated_copy=ad_copy,
            result_images=images,
            completed_at=self.clock(),
        )
        logger.info("[generation.step8] record=%s completed with %d/%d images", record.id, len(images), total)

        try:
            final = await self.repository.get(record.id) or record
        except Exception:
            logger.exception("[generation.step9] record=%s re-read failed, returning saved copy", record.id)
            final = record
        return GenerationResult(generation=final, ad_copy=ad_copy)

    async def _render_one(self, run: PreparedRun, prompt: str, variation_index: int) -> ResultImage:
        generated = await self.image_generator.generate(
            prompt,
            aspect_ratio=run.ad_format.ratio,
            reference_urls=run.reference_urls,
        )
        if not generated.image_bytes:
            raise ImageGenerationError(generated.text_fallback or "image model returned no image data")
        blob = await self.blob_store.store(generated.image_bytes, self.output_folder, generated.mime_type)
        return ResultImage(
            url=blob.url,
            key=blob.key,
            format=run.ad_format.ratio,
            angle=run.angle.id,
            variation_index=variation_index,
            generated_at=self.clock(),
        )

    async def _update(self, record: GenerationRecord, **changes: Any) -> GenerationRecord:
        """Persist ``changes``; progress never goes backwards and every write bumps ``version``."""

        if "progress" in changes:
            changes["progress"] = max(record.progress, int(changes["progress"]))
        changes["version"] = record.version + 1
        return await self.repository.save(record.model_copy(update=changes))

    # ------------------------------------------------------------------
    # Re-render on an existing record
    # ------------------------------------------------------------------
    def _lock_for(self, generation_id: str) -> asyncio.Lock:
        lock = self._locks.get(generation_id)
        if lock is None:
            lock = self._locks[generation_id] = asyncio.Lock()
        return lock

    async def _renderable(self, generation_id: str, user_id: str) -> tuple[GenerationRecord, PreparedRun, str]:
        record = await self.find_one(generation_id, user_id)
        if record.status in (GenerationStatus.PENDING, GenerationStatus.PROCESSING):
            raise RecordBusyError(f"Generation {generation_id} is still {record.status.value}")
        if record.status != GenerationStatus.COMPLETED or record.generated_copy is None:
            raise InvalidInputError("Generation must have ad copy before rendering. Run generate first.")

        run = await self._resolve(
            user_id,
            brand_id=record.brand_id,
            concept_id=record.concept_id,
            angle_id=record.marketing_angle_id,
            format_id=record.format_id,
        )
        guarded = compile_guarded_prompt(
            record.generated_copy.image_prompt,
            run.angle.id,
            run.angle.label,
            run.angle.description,
            run.playbook,
        )
        return record, run, guarded

    async def render(self, generation_id: str, user_id: str) -> GenerationRecord:
        """Render one more image from the stored copy and append it."""

        async with self._lock_for(generation_id):
            record, run, guarded = await self._renderable(generation_id, user_id)
            index = max((image.variation_index for image in record.result_images), default=0) + 1
            try:
                image = await self._render_one(run, guarded, index)
            except Exception as exc:
                logger.exception("[generation.render] record=%s failed", generation_id)
                raise RenderFailedError("AI failed to render the ad image") from exc
            logger.info("[generation.render] record=%s appended variation %d", generation_id, index)
            return await self._update(record, result_images=[*record.result_images, image])

    async def regenerate_variation(self, generation_id: str, variation_index: int, user_id: str) -> GenerationRecord:
        """Replace the image at ``variation_index`` with a fresh render (append if absent)."""

        if variation_index < 1:
            raise InvalidInputError("variation_index must be >= 1")

        async with self._lock_for(generation_id):
            record, run, guarded = await self._renderable(generation_id, user_id)
            prompt = guarded + REGENERATION_DIRECTION.format(index=variation_index)
            try:
                image = await self._render_one(run, prompt, variation_index)
            except Exception as exc:
                logger.exception("[generation.regenerate] record=%s variation %d failed", generation_id, variation_index)
                raise RenderFailedError("AI failed to regenerate the variation") from exc

            images = [img for img in record.result_images if img.variation_index != variation_index]
            images.append(image)
            images.sort(key=lambda img: img.variation_index)
            logger.info("[generation.regenerate] record=%s variation %d replaced", generation_id, variation_index)
            return await self._update(record, result_images=images)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    async def find_one(self, generation_id: str, user_id: str) -> GenerationRecord:
        record = await self.repository.get(generation_id)
        if record is None:
            raise NotFoundError("Ad Generation not found")
        if record.user_id != user_id:
            raise AccessDeniedError("You do not have access to this generation")
        return record

    async def find_all(self, user_id: str) -> list[GenerationRecord]:
        return await self.repository.list_for_user(user_id)


__all__ = [
    "AccessDeniedError",
    "GenerationError",
    "GenerationOrchestrator",
    "InvalidInputError",
    "NotFoundError",
    "PlaybookRequiredError",
    "PreparedRun",
    "RecordBusyError",
    "RenderFailedError",
    "UnknownAngleError",
    "UnknownFormatError",
    "VARIATION_DIRECTIONS",
]
