from __future__ import annotations

from typing import Literal, Optional, Protocol

from adgen.models import UploadedFile
from adgen.schemas import AdConfig

SubjectKind = Literal["model", "product"]


class GenerationBackend(Protocol):
    """Four independent request/response operations; none retries internally."""

    async def describe_image(self, image: UploadedFile, subject_kind: SubjectKind) -> str:
        ...

    async def suggest_taglines(self, product_description: str) -> list[str]:
        ...

    async def synthesize_prompts(
        self,
        model_description: str,
        product_description: str,
        config: AdConfig,
    ) -> list[str]:
        ...

    async def synthesize_image(
        self,
        model_image: UploadedFile,
        product_image: UploadedFile,
        prompt: str,
        logo_image: Optional[UploadedFile] = None,
    ) -> str:
        ...
