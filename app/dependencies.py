"""Process-wide service singletons injected into the routers."""
from __future__ import annotations

import logging
from functools import lru_cache

from app.config import get_settings
from app.services.genai_client import GenAITextCompletion, TextCompletion
from app.services.generation import GenerationOrchestrator
from app.services.image_provider import get_image_generator
from app.services.product_analysis import ProductAnalysisService
from app.services.repository import GenerationRepository, InMemoryRepository
from app.services.storage_bridge import R2BlobStore

logger = logging.getLogger("ai-service")


@lru_cache(maxsize=1)
def get_repository() -> GenerationRepository:
    return InMemoryRepository()


@lru_cache(maxsize=1)
def get_text_completion() -> TextCompletion:
    return GenAITextCompletion(get_settings().genai)


@lru_cache(maxsize=1)
def get_orchestrator() -> GenerationOrchestrator:
    settings = get_settings()
    orchestrator = GenerationOrchestrator(
        get_repository(),
        get_text_completion(),
        get_image_generator(),
        R2BlobStore(),
        output_folder=settings.generation.output_folder,
        max_variations=settings.generation.max_variations,
        early_return_seconds=settings.generation.early_return_seconds,
    )
    logger.info(
        "GenerationOrchestrator ready text_model=%s image=%s folder=%s",
        settings.genai.text_model,
        type(orchestrator.image_generator).__name__,
        orchestrator.output_folder,
    )
    return orchestrator


@lru_cache(maxsize=1)
def get_analysis_service() -> ProductAnalysisService:
    return ProductAnalysisService(get_text_completion())
