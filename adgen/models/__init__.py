"""In-process models shared by the session and generation services."""

from .uploads import UploadedFile  # noqa: F401

__all__ = ["UploadedFile"]
