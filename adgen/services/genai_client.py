"""google-genai backed implementation of the four remote generation calls."""
from __future__ import annotations

import base64
import json
import logging
from typing import Any, Optional

from google import genai
from google.genai import types

from adgen.config import GenAIConfig
from adgen.constants import CANVAS_CONSTRAINT
from adgen.errors import RemoteCallError
from adgen.models import UploadedFile
from adgen.schemas import AdConfig
from adgen.services.backend import SubjectKind
from adgen.services.prompts import (
    SYSTEM_INSTRUCTION,
    TAGLINE_INSTRUCTION,
    build_prompt_request,
    describe_instruction,
)

log = logging.getLogger("adgen.genai")

_IMAGE_DATA_URI_PREFIX = "data:image/png;base64,"


def _string_list_schema(key: str) -> types.Schema:
    return types.Schema(
        type=types.Type.OBJECT,
        properties={
            key: types.Schema(
                type=types.Type.ARRAY,
                items=types.Schema(type=types.Type.STRING),
            )
        },
    )


def _parse_string_list(text: str | None, key: str) -> list[str]:
    """Pull ``{key: [str, ...]}`` out of a JSON reply; anything malformed yields []."""

    if not text:
        return []
    try:
        payload = json.loads(text)
    except (TypeError, ValueError):
        log.warning("[genai.json] non-JSON structured reply key=%s len=%s", key, len(text))
        return []
    if not isinstance(payload, dict):
        return []
    items = payload.get(key)
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, str)]


def _image_part(image: UploadedFile) -> types.Part:
    return types.Part.from_bytes(data=bytes(image.data), mime_type=image.content_type)


def _extract_image_data(response: Any) -> bytes | None:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    for part in getattr(content, "parts", None) or []:
        inline_data = getattr(part, "inline_data", None)
        data = getattr(inline_data, "data", None) if inline_data else None
        if not data:
            continue
        if isinstance(data, str):
            # Some transports hand back the base64 text instead of raw bytes.
            return base64.b64decode(data)
        return bytes(data)
    return None


class GenAIClient:
    """Stateless wrapper around ``genai.Client``; every call is a single request."""

    def __init__(self, config: GenAIConfig, client: Any | None = None) -> None:
        self.config = config
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self.config.api_key:
                raise RemoteCallError("GENAI_API_KEY is not configured")
            self._client = genai.Client(api_key=self.config.api_key)
        return self._client

    async def _generate(self, *, model: str, contents: Any, config: Any = None) -> Any:
        try:
            return await self.client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=config,
            )
        except RemoteCallError:
            raise
        except Exception as exc:
            raise RemoteCallError(f"{model} request failed: {exc}") from exc

    async def describe_image(self, image: UploadedFile, subject_kind: SubjectKind) -> str:
        instruction = describe_instruction(subject_kind)
        log.info(
            "[genai.describe] kind=%s model=%s bytes=%s",
            subject_kind,
            self.config.analysis_model,
            image.size,
        )
        response = await self._generate(
            model=self.config.analysis_model,
            contents=[_image_part(image), types.Part.from_text(text=instruction)],
        )
        text = (getattr(response, "text", None) or "").strip()
        if not text:
            raise RemoteCallError(f"empty {subject_kind} description")
        return text

    async def suggest_taglines(self, product_description: str) -> list[str]:
        response = await self._generate(
            model=self.config.analysis_model,
            contents=TAGLINE_INSTRUCTION.format(description=product_description),
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=_string_list_schema("taglines"),
            ),
        )
        taglines = _parse_string_list(getattr(response, "text", None), "taglines")
        log.info("[genai.taglines] count=%s", len(taglines))
        return taglines

    async def synthesize_prompts(
        self,
        model_description: str,
        product_description: str,
        config: AdConfig,
    ) -> list[str]:
        request = build_prompt_request(model_description, product_description, config)
        response = await self._generate(
            model=self.config.prompt_model,
            contents=request,
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_INSTRUCTION,
                response_mime_type="application/json",
                response_schema=_string_list_schema("prompts"),
            ),
        )
        prompts = _parse_string_list(getattr(response, "text", None), "prompts")
        log.info("[genai.prompts] model=%s count=%s", self.config.prompt_model, len(prompts))
        return prompts

    async def synthesize_image(
        self,
        model_image: UploadedFile,
        product_image: UploadedFile,
        prompt: str,
        logo_image: Optional[UploadedFile] = None,
    ) -> str:
        parts = [
            _image_part(model_image),
            _image_part(product_image),
            types.Part.from_text(text=prompt),
        ]
        if logo_image is not None:
            parts.append(_image_part(logo_image))
        parts.append(types.Part.from_text(text=CANVAS_CONSTRAINT))

        response = await self._generate(
            model=self.config.image_model,
            contents=parts,
            config=types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"]),
        )
        data = _extract_image_data(response)
        if not data:
            raise RemoteCallError("no image data")
        return _IMAGE_DATA_URI_PREFIX + base64.b64encode(data).decode("ascii")


__all__ = ["GenAIClient"]
