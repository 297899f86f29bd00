"""
Tests for the Gemini provider with an injected fake genai client.
"""

from types import SimpleNamespace

import pytest

from conftest import make_resilience
from mathgrader.ai.gemini_provider import GeminiProvider
from mathgrader.core.models import ImageInput


class FakeModels:
    def __init__(self, text="", usage=None, error=None):
        self.text = text
        self.usage = usage
        self.error = error
        self.calls = []

    async def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text, usage_metadata=self.usage)


def make_provider(models, api_key="g-test"):
    client = SimpleNamespace(aio=SimpleNamespace(models=models))
    return GeminiProvider(api_key=api_key, model="gemini-2.5-flash", resilience=make_resilience(), client=client)


@pytest.mark.asyncio
async def test_text_call():
    models = FakeModels(
        text='{"match": true}',
        usage=SimpleNamespace(prompt_token_count=80, candidates_token_count=20),
    )
    provider = make_provider(models)

    response = await provider.analyze(None, "Verify 3/4 + 1/2 = 5/4", "Be careful.")

    assert response.success
    assert response.content == '{"match": true}'
    assert response.provider == "gemini"
    assert response.tokens_used.total == 100

    call = models.calls[0]
    assert call["model"] == "gemini-2.5-flash"
    assert call["contents"] == ["Verify 3/4 + 1/2 = 5/4"]
    assert call["config"].system_instruction == "Be careful."


@pytest.mark.asyncio
async def test_image_is_sent_as_bytes(image):
    models = FakeModels(text="graded")
    provider = make_provider(models)

    response = await provider.analyze(image, "Grade this")

    assert response.success
    assert response.tokens_used is None
    prompt, part = models.calls[0]["contents"]
    assert prompt == "Grade this"
    assert part.inline_data.data == b"hello"
    assert part.inline_data.mime_type == "image/png"


def test_data_url_prefix_is_stripped():
    provider = make_provider(FakeModels())
    part = provider._prepare_image(ImageInput(data="data:image/jpeg;base64,aGVsbG8=", mime_type="image/jpeg"))
    assert part.inline_data.data == b"hello"


@pytest.mark.asyncio
async def test_sdk_error_becomes_failed_response():
    provider = make_provider(FakeModels(error=ValueError("safety block")))

    response = await provider.analyze(None, "hi")

    assert not response.success
    assert "safety block" in response.error
    assert provider.get_token_usage().total == 0


@pytest.mark.asyncio
async def test_missing_key():
    models = FakeModels(text="never")
    provider = make_provider(models, api_key="")

    response = await provider.analyze(None, "hi")

    assert response.error == "gemini API key not configured"
    assert models.calls == []
