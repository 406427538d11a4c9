"""Reject API requests with oversized bodies or inline base64 images.

Images reach the service as URLs (concept reference images, product photos);
a data URL or a long base64 run in a JSON body is always a client mistake.
"""
from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Any, Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger("ai-service")

DATA_URL_RE = re.compile(r"data:image/(?:png|jpe?g|webp|gif);base64,[A-Za-z0-9+/=\s]{256,}", re.I)
LONG_BASE64_CHUNK_RE = re.compile(r"[A-Za-z0-9+/]{8000,}={0,2}")


class BodyGuardMiddleware(BaseHTTPMiddleware):
    WATCH_PATH_PREFIXES = ("/api/",)

    def __init__(
        self,
        app,
        *,
        max_body_bytes: int = 2_097_152,
        max_inline_base64_bytes: int = 131_072,
        **_: Any,
    ) -> None:  # type: ignore[override]
        # 0 disables a limit
        self.max_body_bytes = max_body_bytes if max_body_bytes > 0 else None
        self.max_inline_base64_bytes = max_inline_base64_bytes if max_inline_base64_bytes > 0 else None
        super().__init__(app)

    def _too_large(self, content_length: int | None, body_len: int) -> bool:
        if self.max_body_bytes is None:
            return False
        if content_length and content_length > self.max_body_bytes:
            return True
        return body_len > self.max_body_bytes

    def _contains_base64_image(self, body: bytes) -> bool:
        text = body.decode(errors="ignore")
        if DATA_URL_RE.search(text):
            return True
        limit = self.max_inline_base64_bytes
        if limit is not None and len(body) <= limit:
            return False
        return bool(LONG_BASE64_CHUNK_RE.search(text))

    def _blocked(self, rid: str, path: str, reason: str) -> JSONResponse:
        logger.warning("[guard] rid=%s path=%s blocked reason=%s", rid, path, reason)
        return JSONResponse(
            status_code=413 if reason.startswith("oversize") else 422,
            content={
                "ok": False,
                "error": "REQUEST_BODY_BLOCKED",
                "reason": reason,
                "hint": "Upload images to storage first and send their URLs.",
            },
        )

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.method not in {"POST", "PUT", "PATCH"}:
            return await call_next(request)
        path = request.url.path
        if not path.startswith(self.WATCH_PATH_PREFIXES):
            return await call_next(request)

        rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        start = time.time()

        content_length_header = request.headers.get("content-length")
        try:
            content_length = int(content_length_header) if content_length_header else None
        except ValueError:
            content_length = None

        # declared length is checked before the body is buffered
        if self._too_large(content_length, 0):
            return self._blocked(rid, path, f"oversize:{content_length}")

        body = await request.body()
        if self._too_large(None, len(body)):
            return self._blocked(rid, path, f"oversize:{len(body)}")
        if self._contains_base64_image(body):
            return self._blocked(rid, path, "base64")

        async def receive() -> dict[str, Any]:
            return {"type": "http.request", "body": body, "more_body": False}

        response = await call_next(Request(request.scope, receive))
        logger.debug(
            "[guard] rid=%s path=%s status=%s dur_ms=%d",
            rid,
            path,
            response.status_code,
            int((time.time() - start) * 1000),
        )
        return response


__all__ = ["BodyGuardMiddleware"]
