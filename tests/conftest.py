from __future__ import annotations

import asyncio
import base64
from io import BytesIO
from typing import Callable, Dict, Iterable, List, Optional

import pytest
from PIL import Image

from adgen.errors import RemoteCallError
from adgen.models import UploadedFile


def make_png(color: tuple[int, int, int] = (255, 0, 0), size: tuple[int, int] = (64, 80)) -> bytes:
    image = Image.new("RGB", size, color)
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def make_upload(color: tuple[int, int, int] = (255, 0, 0), name: str = "photo.png") -> UploadedFile:
    return UploadedFile(data=make_png(color), content_type="image/png", filename=name)


def prompt_index(prompt: str) -> int:
    return int(prompt.rsplit(" ", 1)[-1])


class FakeBackend:
    """In-memory stand-in for the remote generation client.

    Prompts are named ``"prompt <index>"`` so image calls can be mapped back
    to their slot.
    """

    def __init__(
        self,
        *,
        prompt_count: int = 8,
        prompts: Optional[List[str]] = None,
        fail_indices: Iterable[int] = (),
        delays: Optional[Dict[int, float]] = None,
        taglines: Optional[List[str]] = None,
        describe_error: Optional[Exception] = None,
        prompts_error: Optional[Exception] = None,
        gate: Optional[Callable[[], "asyncio.Event"]] = None,
    ) -> None:
        self.prompts = prompts if prompts is not None else [f"prompt {i}" for i in range(prompt_count)]
        self.fail_indices = set(fail_indices)
        self.delays = delays or {}
        self.taglines = taglines if taglines is not None else ["Bold.", "Wear the calm"]
        self.describe_error = describe_error
        self.prompts_error = prompts_error
        self.gate = gate
        self.describe_calls: List[str] = []
        self.tagline_calls: List[str] = []
        self.prompt_calls: List[tuple] = []
        self.image_calls: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def total_calls(self) -> int:
        return (
            len(self.describe_calls)
            + len(self.tagline_calls)
            + len(self.prompt_calls)
            + len(self.image_calls)
        )

    async def describe_image(self, image, subject_kind):
        self.describe_calls.append(subject_kind)
        await asyncio.sleep(0)
        if self.describe_error is not None:
            raise self.describe_error
        return f"{subject_kind} description"

    async def suggest_taglines(self, product_description):
        self.tagline_calls.append(product_description)
        await asyncio.sleep(0)
        return list(self.taglines)

    async def synthesize_prompts(self, model_description, product_description, config):
        self.prompt_calls.append((model_description, product_description, config))
        await asyncio.sleep(0)
        if self.prompts_error is not None:
            raise self.prompts_error
        return list(self.prompts)

    async def synthesize_image(self, model_image, product_image, prompt, logo_image=None):
        self.image_calls.append((prompt, logo_image))
        index = prompt_index(prompt)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate().wait()
            await asyncio.sleep(self.delays.get(index, 0.001))
            if index in self.fail_indices:
                raise RemoteCallError("no image data")
            payload = base64.b64encode(prompt.encode()).decode()
            return f"data:image/png;base64,{payload}"
        finally:
            self.in_flight -= 1


@pytest.fixture()
def model_upload() -> UploadedFile:
    return make_upload((10, 20, 30), "model.png")


@pytest.fixture()
def product_upload() -> UploadedFile:
    return make_upload((200, 200, 200), "product.png")


@pytest.fixture()
def png_bytes() -> Callable[..., bytes]:
    return make_png


@pytest.fixture()
def backend_factory() -> Callable[..., FakeBackend]:
    return FakeBackend
