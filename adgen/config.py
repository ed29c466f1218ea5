from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Set
from urllib.parse import urlparse


def _as_bool(value: str | None, default: bool) -> bool:
    """Interpret common truthy / falsy strings while providing a default."""

    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, default: int, *, minimum: int = 0) -> int:
    """Parse an integer env value, falling back on blanks and garbage."""

    if value is None or not str(value).strip():
        return default
    try:
        return max(int(value), minimum)
    except (TypeError, ValueError):
        return default


def _as_list(csv: str | None, fallback: List[str]) -> List[str]:
    """Split a CSV string to list with trimming and fallback."""
    if not csv:
        return fallback
    items = [x.strip() for x in csv.split(",") if x.strip()]
    return items or fallback


def _parse_allowed_origins(raw: str | None) -> List[str]:
    """Normalise comma-separated origins into values accepted by CORSMiddleware."""

    if not raw:
        return ["*"]

    cleaned: List[str] = []
    for origin in raw.split(","):
        value = origin.strip()
        if not value:
            continue
        if value == "*":
            return ["*"]

        parsed = urlparse(value)
        if parsed.scheme and parsed.netloc:
            normalised = f"{parsed.scheme}://{parsed.netloc}"
        else:
            normalised = value.rstrip("/")

        if normalised not in cleaned:
            cleaned.append(normalised)

    return cleaned or ["*"]


@dataclass
class GenAIConfig:
    api_key: str | None = None
    analysis_model: str = "gemini-2.5-pro"
    prompt_model: str = "gemini-2.5-flash"
    image_model: str = "gemini-2.5-flash-image-preview"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "GenAIConfig":
        api_key = os.getenv("GENAI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        return cls(
            api_key=api_key,
            analysis_model=os.getenv("GENAI_ANALYSIS_MODEL") or cls.analysis_model,
            prompt_model=os.getenv("GENAI_PROMPT_MODEL") or cls.prompt_model,
            image_model=os.getenv("GENAI_IMAGE_MODEL") or cls.image_model,
        )


@dataclass
class GenerationConfig:
    # Upper bound on in-flight image synthesis calls within one run.
    max_concurrency: int = 3

    @classmethod
    def from_env(cls) -> "GenerationConfig":
        return cls(
            max_concurrency=_as_int(
                os.getenv("GENERATION_MAX_CONCURRENCY"), 3, minimum=1
            )
        )


@dataclass
class SessionConfig:
    # Live sessions kept in memory; the least recently used idle one is evicted first.
    max_sessions: int = 200
    # Idle sessions older than this are discarded; 0 disables expiry.
    idle_ttl_seconds: int = 3600

    @classmethod
    def from_env(cls) -> "SessionConfig":
        return cls(
            max_sessions=_as_int(os.getenv("SESSION_MAX_COUNT"), 200, minimum=1),
            idle_ttl_seconds=_as_int(os.getenv("SESSION_IDLE_TTL_SECONDS"), 3600),
        )


@dataclass
class UploadConfig:
    max_bytes: int = 20_000_000
    allowed_mime: Set[str] = field(
        default_factory=lambda: {"image/png", "image/jpeg", "image/webp"}
    )
    disallow_base64: bool = True

    @classmethod
    def from_env(cls) -> "UploadConfig":
        allowed = _as_list(
            os.getenv("UPLOAD_ALLOWED_MIME"),
            ["image/png", "image/jpeg", "image/webp"],
        )
        return cls(
            max_bytes=_as_int(os.getenv("UPLOAD_MAX_BYTES"), 20_000_000),
            allowed_mime=set(allowed),
            disallow_base64=_as_bool(os.getenv("DISALLOW_BASE64_IN_JSON"), True),
        )


@dataclass
class Settings:
    environment: str
    allowed_origins: List[str]
    log_level: str
    genai: GenAIConfig
    generation: GenerationConfig
    upload: UploadConfig
    sessions: SessionConfig = field(default_factory=SessionConfig)


@lru_cache()
def get_settings() -> Settings:
    return Settings(
        environment=os.getenv("ENVIRONMENT", "development"),
        allowed_origins=_parse_allowed_origins(os.getenv("ALLOWED_ORIGINS", "*")),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        genai=GenAIConfig.from_env(),
        generation=GenerationConfig.from_env(),
        upload=UploadConfig.from_env(),
        sessions=SessionConfig.from_env(),
    )
