import asyncio
import base64
import json
from types import SimpleNamespace

import pytest

from adgen.config import GenAIConfig
from adgen.constants import CANVAS_CONSTRAINT
from adgen.errors import RemoteCallError
from adgen.models import UploadedFile
from adgen.schemas import AdConfig
from adgen.services.genai_client import GenAIClient


class _FakeModels:
    def __init__(self, response=None, error=None) -> None:
        self.response = response
        self.error = error
        self.calls = []

    async def generate_content(self, *, model, contents, config=None):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return self.response


def _client(response=None, error=None):
    models = _FakeModels(response=response, error=error)
    fake = SimpleNamespace(aio=SimpleNamespace(models=models))
    config = GenAIConfig(api_key="test-key")
    return GenAIClient(config, client=fake), models


def _image_response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


def _upload(name: str) -> UploadedFile:
    return UploadedFile(data=name.encode(), content_type="image/png", filename=name)


def test_describe_image_sends_image_then_instruction() -> None:
    client, models = _client(SimpleNamespace(text="  slim cotton tee  "))

    text = asyncio.run(client.describe_image(_upload("product"), "product"))

    assert text == "slim cotton tee"
    call = models.calls[0]
    assert call["model"] == GenAIConfig.analysis_model
    image_part, instruction_part = call["contents"]
    assert image_part.inline_data.data == b"product"
    assert image_part.inline_data.mime_type == "image/png"
    assert "fabric texture" in instruction_part.text


def test_describe_image_rejects_empty_reply() -> None:
    client, _ = _client(SimpleNamespace(text=""))
    with pytest.raises(RemoteCallError):
        asyncio.run(client.describe_image(_upload("model"), "model"))


def test_transport_errors_are_wrapped() -> None:
    client, _ = _client(error=ConnectionError("reset by peer"))

    with pytest.raises(RemoteCallError, match="reset by peer"):
        asyncio.run(client.describe_image(_upload("model"), "model"))


def test_missing_api_key_fails_on_first_call() -> None:
    client = GenAIClient(GenAIConfig(api_key=None))

    with pytest.raises(RemoteCallError, match="GENAI_API_KEY"):
        asyncio.run(client.suggest_taglines("tee"))


def test_suggest_taglines_parses_structured_reply() -> None:
    reply = json.dumps({"taglines": ["Bold.", 7, "Wear the calm"]})
    client, models = _client(SimpleNamespace(text=reply))

    taglines = asyncio.run(client.suggest_taglines("linen shirt"))

    assert taglines == ["Bold.", "Wear the calm"]
    call = models.calls[0]
    assert "linen shirt" in call["contents"]
    assert call["config"].response_mime_type == "application/json"


@pytest.mark.parametrize("text", [None, "", "not json", "[1, 2]", '{"taglines": "Bold."}'])
def test_suggest_taglines_tolerates_malformed_reply(text) -> None:
    client, _ = _client(SimpleNamespace(text=text))
    assert asyncio.run(client.suggest_taglines("tee")) == []


def test_synthesize_prompts_uses_system_instruction() -> None:
    prompts = [f"prompt {i}" for i in range(8)]
    client, models = _client(SimpleNamespace(text=json.dumps({"prompts": prompts})))
    config = AdConfig(brand_name="Aurora", colors=["Black"])

    result = asyncio.run(client.synthesize_prompts("model desc", "product desc", config))

    assert result == prompts
    call = models.calls[0]
    assert call["model"] == GenAIConfig.prompt_model
    assert "Brand Name: Aurora" in call["contents"]
    assert "generate 8 detailed prompts" in str(call["config"].system_instruction)


def test_synthesize_image_returns_png_data_uri() -> None:
    payload = b"\x89PNG fake bytes"
    response = _image_response(
        SimpleNamespace(inline_data=None, text="here you go"),
        SimpleNamespace(inline_data=SimpleNamespace(data=payload)),
    )
    client, models = _client(response)
    logo = _upload("logo")

    src = asyncio.run(
        client.synthesize_image(_upload("model"), _upload("product"), "ad prompt", logo)
    )

    assert src == "data:image/png;base64," + base64.b64encode(payload).decode()
    parts = models.calls[0]["contents"]
    assert parts[0].inline_data.data == b"model"
    assert parts[1].inline_data.data == b"product"
    assert parts[2].text == "ad prompt"
    assert parts[3].inline_data.data == b"logo"
    assert parts[4].text == CANVAS_CONSTRAINT
    assert models.calls[0]["config"].response_modalities == ["IMAGE", "TEXT"]


def test_synthesize_image_decodes_base64_text_payload() -> None:
    encoded = base64.b64encode(b"pixels").decode()
    response = _image_response(SimpleNamespace(inline_data=SimpleNamespace(data=encoded)))
    client, models = _client(response)

    src = asyncio.run(client.synthesize_image(_upload("model"), _upload("product"), "p"))

    assert src.endswith(encoded)
    assert len(models.calls[0]["contents"]) == 4


def test_synthesize_image_without_image_part_fails() -> None:
    response = _image_response(SimpleNamespace(inline_data=None, text="I cannot do that"))
    client, _ = _client(response)

    with pytest.raises(RemoteCallError, match="no image data"):
        asyncio.run(client.synthesize_image(_upload("model"), _upload("product"), "p"))


def test_synthesize_image_without_candidates_fails() -> None:
    client, _ = _client(SimpleNamespace(candidates=[]))

    with pytest.raises(RemoteCallError, match="no image data"):
        asyncio.run(client.synthesize_image(_upload("model"), _upload("product"), "p"))
