from __future__ import annotations

import logging
import secrets
from io import BytesIO
from typing import Dict

from PIL import Image, ImageOps, UnidentifiedImageError

from adgen.errors import InvalidUploadError, PreviewReleaseError
from adgen.models import UploadedFile

logger = logging.getLogger(__name__)

PREVIEW_MAX_SIDE = 256


def render_thumbnail(upload: UploadedFile, max_side: int = PREVIEW_MAX_SIDE) -> bytes:
    """Decode *upload* and return a PNG thumbnail no larger than ``max_side``."""

    try:
        with Image.open(BytesIO(upload.data)) as image:
            image = ImageOps.exif_transpose(image)
            image.thumbnail((max_side, max_side))
            if image.mode not in {"RGB", "RGBA"}:
                image = image.convert("RGBA")
            buffer = BytesIO()
            image.save(buffer, format="PNG")
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidUploadError(
            f"could not decode {upload.filename or 'upload'} as an image"
        ) from exc
    return buffer.getvalue()


class PreviewRegistry:
    """Holds transient preview thumbnails keyed by opaque tokens.

    A token is created by :meth:`acquire` and must be given back to
    :meth:`release` exactly once.
    """

    def __init__(self, max_side: int = PREVIEW_MAX_SIDE) -> None:
        self.max_side = max_side
        self._previews: Dict[str, bytes] = {}

    def __len__(self) -> int:
        return len(self._previews)

    def __contains__(self, token: object) -> bool:
        return token in self._previews

    def acquire(self, upload: UploadedFile) -> str:
        thumbnail = render_thumbnail(upload, self.max_side)
        token = secrets.token_urlsafe(12)
        self._previews[token] = thumbnail
        logger.debug("[preview.acquire] token=%s bytes=%s", token, len(thumbnail))
        return token

    def get(self, token: str) -> bytes | None:
        return self._previews.get(token)

    def release(self, token: str) -> None:
        try:
            del self._previews[token]
        except KeyError:
            raise PreviewReleaseError(f"preview {token!r} is not held") from None
        logger.debug("[preview.release] token=%s", token)


__all__ = ["PREVIEW_MAX_SIDE", "PreviewRegistry", "render_thumbnail"]
