from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Mapping, Optional

from adgen.constants import FILE_SLOTS
from adgen.errors import (
    PreconditionError,
    SessionBusyError,
    SessionNotFoundError,
)
from adgen.models import UploadedFile
from adgen.schemas import (
    AdConfig,
    AdConfigUpdate,
    GeneratedImage,
    ProgressEvent,
    SessionSnapshot,
    UploadInfo,
)
from adgen.services.backend import GenerationBackend
from adgen.services.orchestrator import (
    DEFAULT_MAX_CONCURRENCY,
    GenerationRun,
    ProgressUpdate,
)
from adgen.services.previews import PreviewRegistry
from adgen.services.prompts import assemble_prompts

logger = logging.getLogger(__name__)

MISSING_IMAGES_MESSAGE = "Please upload both a model and a product image."
MISSING_COLORS_MESSAGE = "Please select at least one color variation."
MISSING_PRODUCT_MESSAGE = "Please upload a product image first."

EventCallback = Callable[[ProgressEvent], None]


class AdSession:
    """Mutable state behind one ad-configuration form.

    Only one generation run or tagline fetch may be in flight at a time;
    ``is_loading`` is the gate.  Uploaded files and configuration may only be
    changed while idle.
    """

    def __init__(self, session_id: str, previews: PreviewRegistry) -> None:
        self.session_id = session_id
        self.previews = previews
        self.config = AdConfig()
        self.tagline_suggestions: List[str] = []
        self.images: List[GeneratedImage] = []
        self.is_loading = False
        self.progress = ""
        self.progress_fraction = ""
        self.error: Optional[str] = None
        self.current_run: Optional[GenerationRun] = None
        self.closed = False
        self._files: Dict[str, Optional[UploadedFile]] = {slot: None for slot in FILE_SLOTS}
        self._preview_tokens: Dict[str, Optional[str]] = {slot: None for slot in FILE_SLOTS}
        self._pending: Optional[tuple] = None

    # ---- uploads ----
    @property
    def model_image(self) -> Optional[UploadedFile]:
        return self._files["model"]

    @property
    def product_image(self) -> Optional[UploadedFile]:
        return self._files["product"]

    @property
    def logo_image(self) -> Optional[UploadedFile]:
        return self._files["logo"]

    def file(self, slot: str) -> Optional[UploadedFile]:
        return self._files[_check_slot(slot)]

    def preview_token(self, slot: str) -> Optional[str]:
        return self._preview_tokens[_check_slot(slot)]

    def set_file(self, slot: str, upload: Optional[UploadedFile]) -> None:
        """Assign or clear an upload slot, swapping its preview resource."""

        _check_slot(slot)
        self._ensure_idle()
        # Acquire first so an undecodable upload leaves the slot untouched.
        token = self.previews.acquire(upload) if upload is not None else None
        previous = self._preview_tokens[slot]
        self._files[slot] = upload
        self._preview_tokens[slot] = token
        if previous is not None:
            self.previews.release(previous)
        logger.info(
            "[session.file] session=%s slot=%s bytes=%s",
            self.session_id,
            slot,
            upload.size if upload is not None else 0,
        )

    def clear_file(self, slot: str) -> None:
        self.set_file(slot, None)

    # ---- configuration ----
    def update_config(self, update: AdConfigUpdate | Mapping[str, Any]) -> AdConfig:
        self._ensure_idle()
        if isinstance(update, AdConfigUpdate):
            changes = update.model_dump(exclude_none=True)
        else:
            changes = {key: value for key, value in update.items() if value is not None}
        merged = {**self.config.model_dump(), **changes}
        self.config = AdConfig.model_validate(merged)
        return self.config

    def toggle_color(self, name: str) -> List[str]:
        """Add *name* to the color selection, or remove it if already selected."""

        self._ensure_idle()
        colors = list(self.config.colors)
        if name in colors:
            colors.remove(name)
        else:
            colors.append(name)
        self.config = AdConfig.model_validate({**self.config.model_dump(), "colors": colors})
        return list(self.config.colors)

    # ---- remote flows ----
    def validate_submission(self) -> tuple[UploadedFile, UploadedFile]:
        """Raise unless a generation could start now; returns (model, product)."""

        self._ensure_idle()
        model, product = self.model_image, self.product_image
        if model is None or product is None:
            self._reject(MISSING_IMAGES_MESSAGE)
        if not self.config.colors:
            self._reject(MISSING_COLORS_MESSAGE)
        return model, product

    async def request_tagline_suggestions(self, backend: GenerationBackend) -> List[str]:
        self._ensure_idle()
        product = self.product_image
        if product is None:
            self._reject(MISSING_PRODUCT_MESSAGE)

        self.error = None
        self.is_loading = True
        self.progress = "Generating tagline suggestions..."
        try:
            description = await backend.describe_image(product, "product")
            taglines = list(await backend.suggest_taglines(description))
        except Exception as exc:
            self.error = str(exc) or "Failed to generate taglines."
            logger.warning("[session.taglines] session=%s failed: %s", self.session_id, exc)
            raise
        finally:
            self.is_loading = False
            self.progress = ""

        self.tagline_suggestions = taglines
        if taglines:
            self.config = self.config.model_copy(update={"ai_tagline": taglines[0]})
        return list(taglines)

    def begin_generation(self, on_event: Optional[EventCallback] = None) -> None:
        """Check preconditions and claim the loading gate for a new batch.

        Runs synchronously so the caller holds the gate before any remote work
        is scheduled; :meth:`run_generation` finishes the submission.
        """

        model, product = self.validate_submission()
        self._pending = (model, product, self.logo_image, self.config.model_copy(deep=True))
        self.error = None
        self.images = []
        self.current_run = None
        self.is_loading = True
        self._set_progress("Analyzing images...", on_event)

    async def run_generation(
        self,
        backend: GenerationBackend,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        on_event: Optional[EventCallback] = None,
    ) -> List[GeneratedImage]:
        """Analyse, synthesise prompts and run the batch claimed by begin_generation.

        Errors from the analysis and prompt phases abort the submission;
        per-image failures only leave gaps in the gallery.
        """

        if self._pending is None:
            raise RuntimeError("begin_generation() must be called first")
        model, product, logo, config = self._pending
        self._pending = None
        try:
            model_description, product_description = await asyncio.gather(
                backend.describe_image(model, "model"),
                backend.describe_image(product, "product"),
            )

            self._set_progress("Generating creative prompts...", on_event)
            prompts = await assemble_prompts(
                backend, model_description, product_description, config
            )

            run = GenerationRun.create(
                prompts,
                model_image=model,
                product_image=product,
                logo_image=logo,
                max_concurrency=max_concurrency,
            )
            self.current_run = run
            self.apply_progress(run, run.snapshot(), on_event)
            return await run.execute(
                backend,
                lambda update: self.apply_progress(run, update, on_event),
            )
        except Exception as exc:
            self.error = str(exc) or "An unknown error occurred during generation."
            logger.warning(
                "[session.generate] session=%s aborted: %s", self.session_id, self.error
            )
            raise
        finally:
            self.is_loading = False
            self.progress = ""
            self.progress_fraction = ""

    async def submit_generation(
        self,
        backend: GenerationBackend,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        on_event: Optional[EventCallback] = None,
    ) -> List[GeneratedImage]:
        """Run one full submission; preconditions fail before any remote call."""

        self.begin_generation(on_event)
        return await self.run_generation(
            backend, max_concurrency=max_concurrency, on_event=on_event
        )

    def apply_progress(
        self,
        run: GenerationRun,
        update: ProgressUpdate,
        on_event: Optional[EventCallback] = None,
    ) -> bool:
        """Publish *update* into the session if *run* is still the live run."""

        if run is not self.current_run or self.closed:
            logger.debug(
                "[session.stale] session=%s run=%s dropped", self.session_id, run.run_id
            )
            return False
        self.images = list(update.images)
        self.progress = update.message
        self.progress_fraction = update.fraction
        if on_event is not None:
            on_event(
                ProgressEvent(
                    type="progress",
                    progress=update.message,
                    completed=update.completed,
                    total=update.total,
                    images=self.images,
                )
            )
        return True

    # ---- lifecycle ----
    def close(self) -> None:
        """Release every preview resource held by this session."""

        if self.closed:
            return
        self.closed = True
        self.current_run = None
        for slot, token in self._preview_tokens.items():
            if token is not None:
                self.previews.release(token)
                self._preview_tokens[slot] = None

    def snapshot(self, preview_url: Optional[Callable[[str], str]] = None) -> SessionSnapshot:
        files: Dict[str, Optional[UploadInfo]] = {}
        for slot, upload in self._files.items():
            if upload is None:
                files[slot] = None
                continue
            files[slot] = UploadInfo(
                filename=upload.filename,
                content_type=upload.content_type,
                size=upload.size,
                preview_url=preview_url(slot) if preview_url else None,
            )
        return SessionSnapshot(
            session_id=self.session_id,
            config=self.config,
            tagline_suggestions=list(self.tagline_suggestions),
            images=list(self.images),
            is_loading=self.is_loading,
            progress=self.progress,
            progress_fraction=self.progress_fraction,
            error=self.error,
            files=files,
        )

    # ---- helpers ----
    def _ensure_idle(self) -> None:
        if self.is_loading:
            raise SessionBusyError("A generation request is already in progress.")

    def _reject(self, message: str) -> None:
        self.error = message
        raise PreconditionError(message)

    def _set_progress(self, message: str, on_event: Optional[EventCallback]) -> None:
        self.progress = message
        self.progress_fraction = ""
        if on_event is not None:
            on_event(ProgressEvent(type="progress", progress=message))


def _check_slot(slot: str) -> str:
    if slot not in FILE_SLOTS:
        raise KeyError(f"unknown file slot: {slot!r}")
    return slot


class SessionStore:
    """In-memory registry of live sessions; nothing outlives the process.

    The store is bounded.  ``create`` first discards idle sessions unused for
    longer than ``idle_ttl_seconds`` and then, at ``max_sessions``, the least
    recently used idle session.  Sessions that are loading are never evicted.
    """

    def __init__(
        self,
        previews: PreviewRegistry | None = None,
        *,
        max_sessions: int = 200,
        idle_ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.previews = previews or PreviewRegistry()
        self.max_sessions = max(int(max_sessions), 1)
        self.idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock
        self._sessions: "OrderedDict[str, AdSession]" = OrderedDict()
        self._last_used: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create(self) -> AdSession:
        self._evict()
        session = AdSession(uuid.uuid4().hex, self.previews)
        self._sessions[session.session_id] = session
        self._last_used[session.session_id] = self._clock()
        logger.info("[session.create] session=%s live=%s", session.session_id, len(self))
        return session

    def get(self, session_id: str) -> AdSession:
        try:
            session = self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None
        self._sessions.move_to_end(session_id)
        self._last_used[session_id] = self._clock()
        return session

    def discard(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        self._last_used.pop(session_id, None)
        session.close()
        logger.info("[session.discard] session=%s", session_id)

    def close(self) -> None:
        for session_id in list(self._sessions):
            self.discard(session_id)

    def _evict(self) -> None:
        if self.idle_ttl_seconds > 0:
            cutoff = self._clock() - self.idle_ttl_seconds
            for session_id, session in list(self._sessions.items()):
                if not session.is_loading and self._last_used[session_id] < cutoff:
                    logger.info("[session.evict] session=%s reason=idle", session_id)
                    self.discard(session_id)

        while len(self._sessions) >= self.max_sessions:
            # Iteration order is least recently used first.
            victim = next(
                (sid for sid, session in self._sessions.items() if not session.is_loading),
                None,
            )
            if victim is None:
                logger.warning(
                    "[session.evict] every session is busy live=%s max=%s",
                    len(self),
                    self.max_sessions,
                )
                return
            logger.info("[session.evict] session=%s reason=capacity", victim)
            self.discard(victim)


__all__ = [
    "AdSession",
    "MISSING_COLORS_MESSAGE",
    "MISSING_IMAGES_MESSAGE",
    "MISSING_PRODUCT_MESSAGE",
    "SessionStore",
]
