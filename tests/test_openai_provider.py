"""
Tests for the OpenAI-compatible provider with an injected fake client.
"""

from types import SimpleNamespace

import pytest

from conftest import make_resilience
from mathgrader.ai.base_provider import APIErrorContext, _sanitize_for_logging
from mathgrader.ai.openai_provider import OpenAIProvider
from mathgrader.core.exceptions import (
    APIRateLimitError,
    APIResponseError,
    APITimeoutError,
    MissingAPIKeyError,
    ProviderError,
)
from mathgrader.core.models import TokenUsage


class FakeCompletions:
    def __init__(self, content="", usage=None, error=None):
        self.content = content
        self.usage = usage
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=self.usage)


class RateLimitError(Exception):
    status_code = 429


class BadRequestError(Exception):
    status_code = 400


def make_provider(completions, api_key="sk-test", name="openai"):
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIProvider(
        api_key=api_key,
        model="gpt-4o",
        name=name,
        resilience=make_resilience(),
        client=client,
    )


@pytest.mark.asyncio
async def test_text_call_builds_messages_and_reports_usage():
    completions = FakeCompletions(
        content='{"ok": true}',
        usage=SimpleNamespace(prompt_tokens=120, completion_tokens=30),
    )
    provider = make_provider(completions)

    response = await provider.analyze(None, "Verify 3 + 5 = 8", "You are careful.")

    assert response.success
    assert response.content == '{"ok": true}'
    assert response.provider == "openai"
    assert response.tokens_used.total == 150

    call = completions.calls[0]
    assert call["model"] == "gpt-4o"
    assert call["messages"] == [
        {"role": "system", "content": "You are careful."},
        {"role": "user", "content": "Verify 3 + 5 = 8"},
    ]


@pytest.mark.asyncio
async def test_vision_call_attaches_image(image):
    completions = FakeCompletions(content="graded")
    provider = make_provider(completions)

    response = await provider.analyze(image, "Grade this", None)

    assert response.success
    assert response.tokens_used is None
    messages = completions.calls[0]["messages"]
    assert len(messages) == 1
    text_part, image_part = messages[0]["content"]
    assert text_part == {"type": "text", "text": "Grade this"}
    assert image_part["image_url"]["url"] == "data:image/png;base64,aGVsbG8="


@pytest.mark.asyncio
async def test_rate_limit_is_reported_as_retryable_text():
    provider = make_provider(FakeCompletions(error=RateLimitError("slow down")))

    response = await provider.analyze(None, "hi")

    assert not response.success
    assert "Rate limit (429)" in response.error
    assert provider.call_history[-1].success is False


@pytest.mark.asyncio
async def test_missing_key_short_circuits():
    completions = FakeCompletions(content="never")
    provider = make_provider(completions, api_key="")

    response = await provider.analyze(None, "hi")

    assert not response.success
    assert response.error == "openai API key not configured"
    assert completions.calls == []


def test_token_usage_accumulates():
    provider = make_provider(FakeCompletions())
    provider._log_call(success=True, duration_ms=10, usage=TokenUsage(input=10, output=5))
    provider._log_call(success=True, duration_ms=10, usage=TokenUsage(input=20, output=7))
    usage = provider.get_token_usage()
    assert (usage.input, usage.output, usage.total) == (30, 12, 42)


# ==================== ERROR TRANSLATION ====================

@pytest.mark.parametrize("raised, expected", [
    (TimeoutError("slow"), APITimeoutError),
    (RateLimitError("quota"), APIRateLimitError),
    (BadRequestError("bad"), APIResponseError),
    (RuntimeError("weird"), ProviderError),
])
def test_api_error_context_translates(raised, expected):
    with pytest.raises(expected):
        with APIErrorContext("text call", "groq"):
            raise raised


def test_api_error_context_keeps_status_code():
    with pytest.raises(APIResponseError) as excinfo:
        with APIErrorContext("text call", "groq"):
            raise BadRequestError("bad")
    assert excinfo.value.status_code == 400


def test_secrets_are_masked():
    text = "failed with key sk-abcdefghijklmnopqrstuvwxyz and appid=SECRET123"
    masked = _sanitize_for_logging(text)
    assert "abcdefghijklmnop" not in masked
    assert "SECRET123" not in masked
    assert "sk-[REDACTED]" in masked


def test_client_requires_key():
    provider = OpenAIProvider(api_key="", name="groq", resilience=make_resilience())
    with pytest.raises(MissingAPIKeyError, match="groq API key not configured"):
        provider.client
