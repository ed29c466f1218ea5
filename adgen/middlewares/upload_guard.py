from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Any, Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger("adgen.guard")

# Multipart framing around a single file upload.
MULTIPART_OVERHEAD_BYTES = 64 * 1024

DATA_URL_RE = re.compile(r"data:image/(?:png|jpe?g|webp|gif);base64,[A-Za-z0-9+/=\s]{256,}", re.I)
LONG_BASE64_CHUNK_RE = re.compile(r"[A-Za-z0-9+/]{8000,}={0,2}")


class UploadGuardMiddleware(BaseHTTPMiddleware):
    """Reject oversized request bodies and inline base64 images in JSON bodies.

    Images must arrive as multipart uploads on the file endpoints; JSON
    endpoints only ever carry configuration.
    """

    WATCH_PATH_PREFIXES = ("/api/",)

    def __init__(
        self,
        app,
        *,
        max_upload_bytes: int | None = None,
        disallow_base64: bool = True,
        **_: Any,
    ) -> None:  # type: ignore[override]
        self.max_body_bytes = (
            max_upload_bytes + MULTIPART_OVERHEAD_BYTES if max_upload_bytes else None
        )
        self.disallow_base64 = disallow_base64
        super().__init__(app)

    def _too_large(self, size: int | None) -> bool:
        if self.max_body_bytes is None or size is None:
            return False
        return size > self.max_body_bytes

    @staticmethod
    def _contains_base64(body: bytes) -> bool:
        text = body.decode(errors="ignore")
        return bool(DATA_URL_RE.search(text) or LONG_BASE64_CHUNK_RE.search(text))

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.method not in {"POST", "PUT", "PATCH"}:
            return await call_next(request)

        path = request.url.path
        if not any(path.startswith(prefix) for prefix in self.WATCH_PATH_PREFIXES):
            return await call_next(request)

        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        start = time.time()

        content_length_header = request.headers.get("content-length")
        try:
            content_length = int(content_length_header) if content_length_header else None
        except (TypeError, ValueError):
            content_length = None

        reason = None
        if self._too_large(content_length):
            reason = f"oversize:{content_length}"
        elif "application/json" in request.headers.get("content-type", ""):
            body = await request.body()
            if self._too_large(len(body)):
                reason = f"oversize:{len(body)}"
            elif self.disallow_base64 and self._contains_base64(body):
                reason = "base64"

        if reason:
            logger.info(
                "[guard] rid=%s path=%s method=%s cl=%s reason=%s",
                rid,
                path,
                request.method,
                content_length_header,
                reason,
            )
            status_code = 413 if reason.startswith("oversize") else 422
            return JSONResponse(
                status_code=status_code,
                content={
                    "ok": False,
                    "error": "REQUEST_BODY_BLOCKED",
                    "reason": reason,
                    "hint": "Upload images as multipart files on /api/sessions/{id}/files/{slot}.",
                },
            )

        response = await call_next(request)
        logger.debug(
            "[guard] rid=%s done status=%s dur_ms=%s",
            rid,
            response.status_code,
            int((time.time() - start) * 1000),
        )
        return response


__all__ = ["UploadGuardMiddleware"]
