"""
Tests for multi-provider fallback.
"""

import pytest

from conftest import StubChatProvider
from mathgrader.ai.provider_manager import NO_PROVIDERS_ERROR, ProviderManager, is_retryable_provider_error
from mathgrader.core.exceptions import APIRateLimitError, APITimeoutError


def make_manager(*providers, **kwargs):
    kwargs.setdefault("retry_delay", 0)
    kwargs.setdefault("max_retries", 3)
    return ProviderManager(list(providers), **kwargs)


@pytest.mark.asyncio
async def test_first_provider_answers():
    first = StubChatProvider("openai", ["graded"])
    second = StubChatProvider("gemini", [])
    manager = make_manager(first, second)

    response = await manager.analyze_text("prompt")

    assert response.success
    assert response.content == "graded"
    assert response.provider == "openai"
    assert response.providers_attempted == 1
    assert second.call_count == 0


@pytest.mark.asyncio
async def test_non_retryable_error_moves_to_next_provider():
    first = StubChatProvider("openai", [ValueError("invalid model")])
    second = StubChatProvider("gemini", ["graded"])
    manager = make_manager(first, second)

    response = await manager.analyze_text("prompt")

    assert response.success
    assert response.provider == "gemini"
    assert response.providers_attempted == 2
    assert first.call_count == 1


@pytest.mark.asyncio
async def test_transient_errors_retry_in_place():
    first = StubChatProvider("openai", [APITimeoutError("Request timeout"), APIRateLimitError("Rate limit (429)"), "graded"])
    second = StubChatProvider("gemini", [])
    manager = make_manager(first, second)

    response = await manager.analyze_text("prompt")

    assert response.success
    assert response.provider == "openai"
    assert first.call_count == 3
    assert second.call_count == 0


@pytest.mark.asyncio
async def test_all_providers_fail():
    first = StubChatProvider("openai", [APITimeoutError("Request timeout")] * 3)
    second = StubChatProvider("gemini", [ValueError("quota exceeded")])
    manager = make_manager(first, second)

    response = await manager.analyze_text("prompt")

    assert not response.success
    assert response.error.startswith("All providers failed. Last error: ")
    assert "quota exceeded" in response.error
    assert response.providers_attempted == 2
    assert first.call_count == 3


@pytest.mark.asyncio
async def test_no_providers_available():
    manager = make_manager(StubChatProvider("openai", available=False))

    response = await manager.analyze_text("prompt")

    assert not response.success
    assert response.error == NO_PROVIDERS_ERROR
    assert manager.get_primary_provider() is None


@pytest.mark.asyncio
async def test_preferred_provider_goes_first():
    first = StubChatProvider("openai", [])
    second = StubChatProvider("groq", ["from groq"])
    manager = make_manager(first, second)

    response = await manager.analyze_text("prompt", preferred_provider="GROQ")

    assert response.provider == "groq"
    assert first.call_count == 0


@pytest.mark.asyncio
async def test_chat_function_binds_preference():
    first = StubChatProvider("openai", [])
    second = StubChatProvider("gemini", ["checked"])
    manager = make_manager(first, second)

    chat = manager.chat_function("gemini")
    response = await chat("verify", "system")

    assert response.provider == "gemini"
    assert second.prompts == [("verify", "system")]


@pytest.mark.asyncio
async def test_single_provider_call_has_no_fallback():
    first = StubChatProvider("openai", [ValueError("bad request")])
    second = StubChatProvider("gemini", ["unused"])
    manager = make_manager(first, second)

    response = await manager.analyze_image_with_provider("openai", None, "prompt")
    assert not response.success
    assert response.provider == "openai"
    assert second.call_count == 0

    missing = await manager.analyze_image_with_provider("mistral", None, "prompt")
    assert missing.error == "Provider mistral not available"


def test_fallback_order_filters_unknown_and_duplicates():
    manager = make_manager(
        StubChatProvider("openai"),
        StubChatProvider("gemini"),
        fallback_order=["gemini", "mistral", "gemini", "openai"],
    )
    assert manager.fallback_order == ["gemini", "openai"]
    assert manager.get_primary_provider() == "gemini"


@pytest.mark.asyncio
async def test_health_check_all():
    manager = make_manager(StubChatProvider("openai"), StubChatProvider("gemini", available=False))
    assert await manager.health_check_all() == {"openai": True, "gemini": False}
    assert manager.get_available_providers() == ["openai"]


@pytest.mark.parametrize("error, expected", [
    ("Request timeout during openai text call", True),
    ("Rate limit (429) during groq", True),
    ("HTTP 503 during gemini vision call", True),
    ("Connection error during openai", True),
    ("HTTP 401 during openai text call: Invalid API key", False),
    ("API error during openai text call: invalid model", False),
    (None, False),
])
def test_retryable_provider_errors(error, expected):
    assert is_retryable_provider_error(error) is expected
