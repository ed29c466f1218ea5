from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from adgen.constants import (
    DEFAULT_IMAGES,
    ELEMENT_OPTIONS,
    LAYOUT_OPTIONS,
    MAX_COLORS,
    MAX_IMAGES,
    MIN_IMAGES,
)


class _CompatModel(BaseModel):
    """Base model that ignores unknown fields."""

    model_config = ConfigDict(extra="ignore")


DATA_URL_RX = re.compile(r"^data:image/[^;]+;base64,", re.IGNORECASE)


class TaglineMode(str, Enum):
    AI = "ai"
    USER = "user"


def _dedupe(values: list[str]) -> list[str]:
    seen: list[str] = []
    for raw in values:
        text = str(raw).strip()
        if text and text not in seen:
            seen.append(text)
    return seen


class AdConfig(_CompatModel):
    """User-editable ad parameters for one session."""

    brand_name: str = Field("", description="Optional brand name shown on the ads")
    tagline_mode: TaglineMode = Field(TaglineMode.AI, description="Tagline source")
    user_tagline: str = Field("", description="Tagline typed by the user")
    ai_tagline: str = Field("", description="Tagline picked from AI suggestions")
    colors: list[str] = Field(
        default_factory=list,
        description=f"Ordered color names for product swatches, at most {MAX_COLORS}",
    )
    layouts: list[str] = Field(
        default_factory=lambda: [LAYOUT_OPTIONS[0]],
        description="Requested layouts/views",
    )
    additional_elements: list[str] = Field(
        default_factory=list, description="Extra graphic elements to include"
    )
    number_of_images: int = Field(
        DEFAULT_IMAGES, ge=MIN_IMAGES, le=MAX_IMAGES, description="Ads to generate"
    )

    @field_validator("brand_name", "user_tagline", "ai_tagline", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("colors", mode="after")
    @classmethod
    def _cap_colors(cls, value: list[str]) -> list[str]:
        return _dedupe(value)[:MAX_COLORS]

    @field_validator("layouts", mode="after")
    @classmethod
    def _check_layouts(cls, value: list[str]) -> list[str]:
        layouts = _dedupe(value)
        if not layouts:
            raise ValueError("at least one layout is required")
        unknown = [item for item in layouts if item not in LAYOUT_OPTIONS]
        if unknown:
            raise ValueError(f"unknown layout(s): {', '.join(unknown)}")
        return layouts

    @field_validator("additional_elements", mode="after")
    @classmethod
    def _check_elements(cls, value: list[str]) -> list[str]:
        elements = _dedupe(value)
        unknown = [item for item in elements if item not in ELEMENT_OPTIONS]
        if unknown:
            raise ValueError(f"unknown element(s): {', '.join(unknown)}")
        return elements


class AdConfigUpdate(_CompatModel):
    """Partial update applied on top of the session's current AdConfig."""

    brand_name: Optional[str] = None
    tagline_mode: Optional[TaglineMode] = None
    user_tagline: Optional[str] = None
    ai_tagline: Optional[str] = None
    colors: Optional[list[str]] = None
    layouts: Optional[list[str]] = None
    additional_elements: Optional[list[str]] = None
    number_of_images: Optional[int] = None

    @field_validator("brand_name", "user_tagline", "ai_tagline", mode="before")
    @classmethod
    def _reject_inline_data(cls, value: Any) -> Any:
        if isinstance(value, str) and DATA_URL_RX.match(value.strip()):
            raise ValueError("base64 data-url is not allowed in text fields")
        return value


class GeneratedImage(_CompatModel):
    """One finished ad image; ``src`` is a self-contained PNG data URI."""

    id: str
    src: str
    prompt: str
    refinement_text: str = ""


class UploadInfo(_CompatModel):
    filename: str | None = None
    content_type: str
    size: int = Field(..., ge=0)
    preview_url: str | None = None


class SessionSnapshot(_CompatModel):
    session_id: str
    config: AdConfig
    tagline_suggestions: list[str] = Field(default_factory=list)
    images: list[GeneratedImage] = Field(default_factory=list)
    is_loading: bool = False
    progress: str = ""
    progress_fraction: str = ""
    error: str | None = None
    files: dict[str, UploadInfo | None] = Field(default_factory=dict)


class ProgressEvent(_CompatModel):
    """One line of the NDJSON stream returned by the generate endpoint."""

    type: Literal["progress", "complete", "error"]
    progress: str = ""
    completed: int = 0
    total: int = 0
    images: list[GeneratedImage] = Field(default_factory=list)
    message: str | None = None


class TaglineResponse(_CompatModel):
    taglines: list[str] = Field(default_factory=list)
    ai_tagline: str = ""


class ColorOption(_CompatModel):
    name: str
    hex: str


class OptionsResponse(_CompatModel):
    layouts: list[str]
    elements: list[str]
    colors: list[ColorOption]
    max_colors: int
    min_images: int
    max_images: int


__all__ = [
    "AdConfig",
    "AdConfigUpdate",
    "ColorOption",
    "DATA_URL_RX",
    "GeneratedImage",
    "OptionsResponse",
    "ProgressEvent",
    "SessionSnapshot",
    "TaglineMode",
    "TaglineResponse",
    "UploadInfo",
]
