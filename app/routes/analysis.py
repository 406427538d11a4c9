from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from app import catalog
from app.dependencies import get_analysis_service
from app.schemas import (
    AdFormat,
    AnalysisExtractRequest,
    AnalysisValidateRequest,
    MarketingAngle,
    ValidatedResult,
)
from app.services.analysis_validator import validate_product_analysis
from app.services.genai_client import UPSTREAM_ERRORS
from app.services.product_analysis import AnalysisParseError, ProductAnalysisService

logger = logging.getLogger("ai-service")

router = APIRouter(prefix="/api", tags=["analysis"])


@router.post("/analysis/validate", response_model=ValidatedResult)
def validate_analysis(req: AnalysisValidateRequest) -> ValidatedResult:
    return validate_product_analysis(req.document)


@router.post("/analysis/extract", response_model=ValidatedResult)
async def extract_analysis(
    req: AnalysisExtractRequest,
    service: ProductAnalysisService = Depends(get_analysis_service),
) -> ValidatedResult:
    try:
        return await service.analyze(req.image_urls, req.product_name)
    except AnalysisParseError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except UPSTREAM_ERRORS as exc:
        logger.exception("[analysis.extract] text model call failed")
        raise HTTPException(status_code=502, detail=f"AI analysis failed: {exc}") from exc


@router.get("/catalog/angles", response_model=list[MarketingAngle])
def list_angles() -> list[MarketingAngle]:
    return list(catalog.MARKETING_ANGLES)


@router.get("/catalog/formats", response_model=list[AdFormat])
def list_formats() -> list[AdFormat]:
    return list(catalog.AD_FORMATS)
