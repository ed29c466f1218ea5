"""Immutable handle for an image uploaded into a session."""

from __future__ import annotations

import base64
from dataclasses import dataclass


@dataclass(frozen=True)
class UploadedFile:
    """Binary image content plus its MIME type; replaced, never mutated."""

    data: bytes
    content_type: str
    filename: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.data, (bytes, bytearray)):
            raise TypeError("upload payload must be bytes")
        if not self.content_type:
            raise ValueError("upload content_type is required")

    @property
    def size(self) -> int:
        return len(self.data)

    def as_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")
