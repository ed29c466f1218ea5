from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Set

from fastapi import APIRouter, File, HTTPException, Request, Response, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from adgen.constants import FILE_SLOTS, PRESET_COLOR_NAMES
from adgen.errors import (
    AdGenError,
    InvalidUploadError,
    PreconditionError,
    RemoteCallError,
    SessionBusyError,
    SessionNotFoundError,
)
from adgen.models import UploadedFile
from adgen.schemas import (
    AdConfig,
    AdConfigUpdate,
    ProgressEvent,
    SessionSnapshot,
    TaglineResponse,
)
from adgen.services.session import AdSession, SessionStore

logger = logging.getLogger("adgen")

router = APIRouter(prefix="/api/sessions", tags=["sessions"])

# Strong references so in-flight generation tasks are not garbage collected.
_background_tasks: Set[asyncio.Task] = set()


def _http_error(exc: AdGenError) -> HTTPException:
    if isinstance(exc, PreconditionError):
        return HTTPException(
            status_code=400,
            detail={"error": "precondition_failed", "message": str(exc)},
        )
    if isinstance(exc, SessionBusyError):
        return HTTPException(status_code=409, detail={"error": "session_busy", "message": str(exc)})
    if isinstance(exc, SessionNotFoundError):
        return HTTPException(status_code=404, detail={"error": "session_not_found", "message": str(exc)})
    if isinstance(exc, InvalidUploadError):
        return HTTPException(status_code=422, detail={"error": "invalid_upload", "message": str(exc)})
    if isinstance(exc, RemoteCallError):
        return HTTPException(status_code=502, detail={"error": "remote_call_failed", "message": str(exc)})
    return HTTPException(status_code=500, detail={"error": "internal_error", "message": str(exc)})


def _store(request: Request) -> SessionStore:
    return request.app.state.sessions


def _session(request: Request, session_id: str) -> AdSession:
    try:
        return _store(request).get(session_id)
    except SessionNotFoundError as exc:
        raise _http_error(exc) from exc


def _check_slot(slot: str) -> str:
    if slot not in FILE_SLOTS:
        raise HTTPException(
            status_code=404,
            detail={"error": "unknown_slot", "message": f"unknown file slot: {slot}"},
        )
    return slot


def _snapshot(request: Request, session: AdSession) -> SessionSnapshot:
    def preview_url(slot: str) -> str:
        return str(
            request.url_for("get_preview", session_id=session.session_id, slot=slot)
        )

    return session.snapshot(preview_url)


@router.post("", response_model=SessionSnapshot)
def create_session(request: Request) -> SessionSnapshot:
    session = _store(request).create()
    return _snapshot(request, session)


@router.get("/{session_id}", response_model=SessionSnapshot)
def get_session(request: Request, session_id: str) -> SessionSnapshot:
    return _snapshot(request, _session(request, session_id))


@router.delete("/{session_id}", status_code=204)
def delete_session(request: Request, session_id: str) -> Response:
    try:
        _store(request).discard(session_id)
    except SessionNotFoundError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@router.put("/{session_id}/files/{slot}", response_model=SessionSnapshot)
async def upload_file(
    request: Request,
    session_id: str,
    slot: str,
    file: UploadFile = File(...),
) -> SessionSnapshot:
    session = _session(request, session_id)
    _check_slot(slot)
    upload_cfg = request.app.state.settings.upload

    content_type = (file.content_type or "").lower()
    if upload_cfg.allowed_mime and content_type not in upload_cfg.allowed_mime:
        raise HTTPException(
            status_code=415,
            detail={
                "error": "unsupported_media_type",
                "message": f"content_type not allowed: {content_type}",
            },
        )
    data = await file.read()
    if upload_cfg.max_bytes and len(data) > upload_cfg.max_bytes:
        raise HTTPException(
            status_code=413,
            detail={"error": "file_too_large", "message": "file exceeds permitted size"},
        )
    if not data:
        raise HTTPException(
            status_code=422,
            detail={"error": "invalid_upload", "message": "file is empty"},
        )

    try:
        session.set_file(
            slot,
            UploadedFile(data=data, content_type=content_type, filename=file.filename),
        )
    except AdGenError as exc:
        raise _http_error(exc) from exc
    return _snapshot(request, session)


@router.delete("/{session_id}/files/{slot}", response_model=SessionSnapshot)
def clear_file(request: Request, session_id: str, slot: str) -> SessionSnapshot:
    session = _session(request, session_id)
    _check_slot(slot)
    try:
        session.clear_file(slot)
    except AdGenError as exc:
        raise _http_error(exc) from exc
    return _snapshot(request, session)


@router.get("/{session_id}/previews/{slot}", name="get_preview")
def get_preview(request: Request, session_id: str, slot: str) -> Response:
    session = _session(request, session_id)
    _check_slot(slot)
    token = session.preview_token(slot)
    data = session.previews.get(token) if token else None
    if data is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "preview_not_found", "message": f"no preview for slot: {slot}"},
        )
    return Response(content=data, media_type="image/png")


@router.patch("/{session_id}/config", response_model=AdConfig)
def patch_config(request: Request, session_id: str, update: AdConfigUpdate) -> AdConfig:
    session = _session(request, session_id)
    try:
        return session.update_config(update)
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        raise HTTPException(
            status_code=422,
            detail={
                "error": "invalid_config",
                "message": "configuration failed validation",
                "errors": errors,
            },
        ) from exc
    except AdGenError as exc:
        raise _http_error(exc) from exc


@router.post("/{session_id}/colors/{name}/toggle", response_model=AdConfig)
def toggle_color(request: Request, session_id: str, name: str) -> AdConfig:
    session = _session(request, session_id)
    if name not in PRESET_COLOR_NAMES:
        raise HTTPException(
            status_code=422,
            detail={"error": "unknown_color", "message": f"unknown color: {name}"},
        )
    try:
        session.toggle_color(name)
    except AdGenError as exc:
        raise _http_error(exc) from exc
    return session.config


@router.post("/{session_id}/taglines", response_model=TaglineResponse)
async def request_taglines(request: Request, session_id: str) -> TaglineResponse:
    session = _session(request, session_id)
    try:
        taglines = await session.request_tagline_suggestions(request.app.state.backend)
    except AdGenError as exc:
        raise _http_error(exc) from exc
    return TaglineResponse(taglines=taglines, ai_tagline=session.config.ai_tagline)


@router.post("/{session_id}/generate")
async def generate(request: Request, session_id: str) -> StreamingResponse:
    """Start a generation run and stream its progress as NDJSON events."""

    session = _session(request, session_id)
    events: asyncio.Queue = asyncio.Queue()
    # Claim the loading gate before responding so a concurrent request gets 409.
    try:
        session.begin_generation(events.put_nowait)
    except AdGenError as exc:
        raise _http_error(exc) from exc

    backend = request.app.state.backend
    max_concurrency = request.app.state.settings.generation.max_concurrency

    async def _run() -> None:
        try:
            images = await session.run_generation(
                backend,
                max_concurrency=max_concurrency,
                on_event=events.put_nowait,
            )
            run = session.current_run
            events.put_nowait(
                ProgressEvent(
                    type="complete",
                    completed=run.completed if run else 0,
                    total=run.total if run else 0,
                    images=images,
                )
            )
        except AdGenError as exc:
            events.put_nowait(ProgressEvent(type="error", message=str(exc)))
        except Exception:
            logger.exception("generation failed", extra={"session": session_id})
            events.put_nowait(
                ProgressEvent(
                    type="error",
                    message="An unknown error occurred during generation.",
                )
            )
        finally:
            events.put_nowait(None)

    task = asyncio.create_task(_run())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    async def _stream() -> AsyncIterator[str]:
        while True:
            event = await events.get()
            if event is None:
                break
            yield event.model_dump_json() + "\n"

    return StreamingResponse(_stream(), media_type="application/x-ndjson")


__all__ = ["router"]
