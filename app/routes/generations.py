from __future__ import annotations

import logging
import uuid
from typing import NoReturn

from fastapi import APIRouter, Depends, Header, HTTPException

from app.dependencies import get_orchestrator, get_repository
from app.schemas import (
    BrandContext,
    BrandCreateRequest,
    ConceptContext,
    ConceptCreateRequest,
    GenerateAdRequest,
    GenerationRecord,
    GenerationResult,
    GenerationStatus,
)
from app.services.generation import GenerationError, GenerationOrchestrator
from app.services.repository import GenerationRepository

logger = logging.getLogger("ai-service")

router = APIRouter(prefix="/api", tags=["generations"])


def current_user(x_user_id: str = Header(..., alias="X-User-ID", min_length=1)) -> str:
    return x_user_id


def raise_http(exc: GenerationError) -> NoReturn:
    raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


@router.post("/brands", response_model=BrandContext, status_code=201)
async def create_brand(
    req: BrandCreateRequest,
    user_id: str = Depends(current_user),
    repository: GenerationRepository = Depends(get_repository),
) -> BrandContext:
    brand = BrandContext(id=str(uuid.uuid4()), user_id=user_id, name=req.name, playbook=req.playbook)
    return await repository.save_brand(brand)


@router.post("/concepts", response_model=ConceptContext, status_code=201)
async def create_concept(
    req: ConceptCreateRequest,
    user_id: str = Depends(current_user),
    repository: GenerationRepository = Depends(get_repository),
) -> ConceptContext:
    concept = ConceptContext(id=str(uuid.uuid4()), user_id=user_id, **req.model_dump())
    return await repository.save_concept(concept)


@router.post("/generations", response_model=GenerationResult)
async def create_generation(
    req: GenerateAdRequest,
    user_id: str = Depends(current_user),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerationResult:
    try:
        result = await orchestrator.generate_with_early_return(user_id, req)
    except GenerationError as exc:
        raise_http(exc)

    record = result.generation
    if record.status == GenerationStatus.FAILED:
        logger.warning("[api.generations] %s failed: %s", record.id, record.failure_reason)
        raise HTTPException(
            status_code=502,
            detail={"generation_id": record.id, "reason": record.failure_reason},
        )
    return result


@router.get("/generations", response_model=list[GenerationRecord])
async def list_generations(
    user_id: str = Depends(current_user),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> list[GenerationRecord]:
    return await orchestrator.find_all(user_id)


@router.get("/generations/{generation_id}", response_model=GenerationRecord)
async def get_generation(
    generation_id: str,
    user_id: str = Depends(current_user),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerationRecord:
    try:
        return await orchestrator.find_one(generation_id, user_id)
    except GenerationError as exc:
        raise_http(exc)


@router.post("/generations/{generation_id}/render", response_model=GenerationRecord)
async def render_generation(
    generation_id: str,
    user_id: str = Depends(current_user),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerationRecord:
    try:
        return await orchestrator.render(generation_id, user_id)
    except GenerationError as exc:
        raise_http(exc)


@router.post("/generations/{generation_id}/variations/{variation_index}", response_model=GenerationRecord)
async def regenerate_variation(
    generation_id: str,
    variation_index: int,
    user_id: str = Depends(current_user),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerationRecord:
    try:
        return await orchestrator.regenerate_variation(generation_id, variation_index, user_id)
    except GenerationError as exc:
        raise_http(exc)
