from __future__ import annotations

import logging
import os
from typing import Any

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.middlewares.body_guard import BodyGuardMiddleware
from app.routes import analysis, generations

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("uvicorn").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.error").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.access").setLevel(LOG_LEVEL)
logging.getLogger("ai-service").setLevel(LOG_LEVEL)

logger = logging.getLogger("ai-service")

settings = get_settings()
app = FastAPI(title="Ad Studio Generation API", version="1.0.0")


@app.get("/", include_in_schema=False)
def root() -> dict[str, Any]:
    return {"service": "ai-service", "ok": True}


@app.head("/", include_in_schema=False)
def root_head() -> Response:
    return Response(status_code=200)


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "ok": True,
        "environment": settings.environment,
        "genai_configured": settings.genai.is_configured,
        "storage_configured": settings.storage.is_configured,
    }


app.add_middleware(
    BodyGuardMiddleware,
    max_body_bytes=settings.max_body_bytes,
    max_inline_base64_bytes=settings.max_inline_base64_bytes,
)

allow_all = "*" in settings.allowed_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=not allow_all,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)

app.include_router(generations.router)
app.include_router(analysis.router)

logger.info(
    "Service ready env=%s origins=%s genai=%s storage=%s",
    settings.environment,
    settings.allowed_origins,
    settings.genai.is_configured,
    settings.storage.is_configured,
)
