"""Exception types shared by the ad generation services."""
from __future__ import annotations


class AdGenError(Exception):
    """Base class for errors raised by the ad generation service."""


class PreconditionError(AdGenError):
    """A submission is missing required inputs; raised before any remote call."""


class SessionBusyError(AdGenError):
    """A generation run or tagline fetch is already in flight for the session."""


class SessionNotFoundError(AdGenError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"session not found: {session_id}")
        self.session_id = session_id


class RemoteCallError(AdGenError):
    """Transport or service failure from the remote generation backend."""


class InvalidUploadError(AdGenError):
    """Uploaded bytes could not be decoded as an image."""


class PreviewReleaseError(AdGenError):
    """A preview token was released more than once or never acquired."""


__all__ = [
    "AdGenError",
    "InvalidUploadError",
    "PreconditionError",
    "PreviewReleaseError",
    "RemoteCallError",
    "SessionBusyError",
    "SessionNotFoundError",
]
