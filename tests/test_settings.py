"""
Tests for settings, the provider registry and the provider factory.
"""

import pytest
from pydantic import ValidationError

from mathgrader.ai.gemini_provider import GeminiProvider
from mathgrader.ai.openai_provider import OpenAIProvider
from mathgrader.ai.provider_factory import (
    create_chat_provider,
    create_chat_providers,
    create_ocr_provider,
    create_symbolic_solver,
    get_available_providers,
)
from mathgrader.ai.provider_manager import ProviderManager
from mathgrader.config.providers import default_model_for, get_provider_config
from mathgrader.config.settings import Settings


def make_settings(**kwargs):
    return Settings(_env_file=None, **kwargs)


def test_defaults_disable_everything_without_credentials():
    settings = make_settings()
    assert settings.fallback_providers == ["openai", "gemini", "groq"]
    assert not settings.mathpix_configured
    assert not settings.wolfram_configured
    assert get_available_providers(settings) == []


def test_fallback_order_parsing():
    settings = make_settings(fallback_order=" Groq, mistral,openai,groq ")
    assert settings.fallback_providers == ["groq", "openai"]

    assert make_settings(fallback_order="mistral").fallback_providers == ["openai", "gemini", "groq"]


def test_primary_provider_moves_to_front():
    settings = make_settings(primary_provider="Gemini")
    assert settings.primary_provider == "gemini"
    assert settings.fallback_providers == ["gemini", "openai", "groq"]
    assert make_settings(primary_provider="  ").primary_provider is None


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        make_settings(primary_provider="claude")
    with pytest.raises(ValidationError):
        make_settings(log_level="loud")
    assert make_settings(log_level="debug").log_level == "DEBUG"


def test_environment_prefix(monkeypatch):
    monkeypatch.setenv("MATHGRADER_WOLFRAM_APP_ID", "W-123")
    monkeypatch.setenv("MATHGRADER_USE_OCR", "false")
    settings = make_settings()
    assert settings.wolfram_configured
    assert settings.use_ocr is False


def test_provider_config_from_registry():
    settings = make_settings(groq_api_key="gsk-test", groq_model="llama-custom")

    config = get_provider_config("GROQ", settings)
    assert config.configured
    assert config.base_url == "https://api.groq.com/openai/v1"
    assert config.model == "llama-custom"

    assert get_provider_config("openai", settings).model == "gpt-4o"
    assert default_model_for("gemini") == "gemini-2.5-flash"
    assert default_model_for("mistral") is None

    with pytest.raises(ValueError, match="Unknown provider"):
        get_provider_config("mistral", settings)


def test_factory_builds_provider_types():
    settings = make_settings(openai_api_key="sk-test", gemini_api_key="g-test")

    openai_provider = create_chat_provider("openai", settings)
    gemini_provider = create_chat_provider("gemini", settings)
    groq_provider = create_chat_provider("groq", settings, model="llama-x")

    assert isinstance(openai_provider, OpenAIProvider)
    assert isinstance(gemini_provider, GeminiProvider)
    assert isinstance(groq_provider, OpenAIProvider)
    assert groq_provider.name == "groq"
    assert groq_provider.model == "llama-x"
    assert not groq_provider.is_available()
    assert get_available_providers(settings) == ["openai", "gemini"]


def test_manager_from_settings_uses_fallback_order():
    settings = make_settings(openai_api_key="sk-test", groq_api_key="gsk-test", primary_provider="groq")

    assert list(create_chat_providers(settings)) == ["groq", "openai", "gemini"]

    manager = ProviderManager.from_settings(settings)
    assert manager.get_available_providers() == ["groq", "openai"]
    assert manager.get_primary_provider() == "groq"


def test_ocr_and_solver_from_settings():
    settings = make_settings(mathpix_app_id="id", mathpix_app_key="key", wolfram_app_id="W")
    assert create_ocr_provider(settings).is_enabled()
    assert create_symbolic_solver(settings).is_enabled()
    assert not create_ocr_provider(make_settings(mathpix_app_id="id")).is_enabled()
