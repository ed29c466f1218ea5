from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from adgen.config import Settings, get_settings
from adgen.constants import (
    ELEMENT_OPTIONS,
    LAYOUT_OPTIONS,
    MAX_COLORS,
    MAX_IMAGES,
    MIN_IMAGES,
    PRESET_COLORS,
)
from adgen.middlewares.upload_guard import UploadGuardMiddleware
from adgen.routes.sessions import router as sessions_router
from adgen.schemas import ColorOption, OptionsResponse
from adgen.services.backend import GenerationBackend
from adgen.services.genai_client import GenAIClient
from adgen.services.session import SessionStore

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("uvicorn").setLevel(settings.log_level)
logging.getLogger("uvicorn.error").setLevel(settings.log_level)
logging.getLogger("uvicorn.access").setLevel(settings.log_level)
logging.getLogger("adgen").setLevel(settings.log_level)

log = logging.getLogger("adgen")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    app.state.sessions.close()


def create_app(
    app_settings: Settings | None = None,
    backend: GenerationBackend | None = None,
) -> FastAPI:
    cfg = app_settings or settings
    app = FastAPI(
        title="E-Commerce Ad Generator API",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = cfg
    app.state.sessions = SessionStore(
        max_sessions=cfg.sessions.max_sessions,
        idle_ttl_seconds=cfg.sessions.idle_ttl_seconds,
    )
    app.state.backend = backend or GenAIClient(cfg.genai)
    if not cfg.genai.is_configured and backend is None:
        log.warning("GENAI_API_KEY is not set; remote generation calls will fail")

    app.add_middleware(
        UploadGuardMiddleware,
        max_upload_bytes=cfg.upload.max_bytes,
        disallow_base64=cfg.upload.disallow_base64,
    )

    allow_all = "*" in cfg.allowed_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.allowed_origins,
        allow_credentials=not allow_all,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        max_age=86400,
    )

    @app.get("/", include_in_schema=False)
    def root() -> dict[str, Any]:
        return {"service": "adgen", "ok": True}

    @app.head("/", include_in_schema=False)
    def root_head() -> Response:
        return Response(status_code=200)

    @app.get("/health")
    def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/api/options", response_model=OptionsResponse)
    def options() -> OptionsResponse:
        return OptionsResponse(
            layouts=list(LAYOUT_OPTIONS),
            elements=list(ELEMENT_OPTIONS),
            colors=[ColorOption(**item) for item in PRESET_COLORS],
            max_colors=MAX_COLORS,
            min_images=MIN_IMAGES,
            max_images=MAX_IMAGES,
        )

    app.include_router(sessions_router)
    log.info(
        "adgen ready",
        extra={
            "environment": cfg.environment,
            "max_concurrency": cfg.generation.max_concurrency,
            "image_model": cfg.genai.image_model,
        },
    )
    return app


app = create_app()

__all__ = ["app", "create_app"]
