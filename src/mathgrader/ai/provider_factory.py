"""
Factory for creating provider instances.

Uses registry-based configuration (config.providers) so adding an
OpenAI-compatible vendor is a registry entry, not a new class.
"""

from typing import Dict, List, Optional

from mathgrader.ai.base_provider import ChatProvider
from mathgrader.ai.gemini_provider import GeminiProvider
from mathgrader.ai.mathpix_provider import MathpixProvider
from mathgrader.ai.openai_provider import OpenAIProvider
from mathgrader.ai.wolfram_provider import WolframProvider
from mathgrader.config.providers import PROVIDER_REGISTRY, get_provider_config
from mathgrader.config.settings import Settings, get_settings
from mathgrader.utils.resilience import Resilience


def create_chat_provider(
    provider_type: str,
    settings: Optional[Settings] = None,
    resilience: Optional[Resilience] = None,
    model: Optional[str] = None,
) -> ChatProvider:
    """
    Create a chat provider instance.

    Providers without credentials are still created; they report
    is_available() == False and are skipped by the provider manager.

    Args:
        provider_type: Provider name ("openai", "gemini", "groq")
        settings: Settings (default: get_settings())
        resilience: Shared resilience facade
        model: Override model name

    Returns:
        Provider instance
    """
    settings = settings or get_settings()
    config = get_provider_config(provider_type, settings)

    if model:
        config.model = model

    # Gemini uses native client
    if config.native:
        return GeminiProvider(
            api_key=config.api_key,
            model=config.model,
            timeout=settings.chat_timeout,
            resilience=resilience,
        )

    # All other providers use OpenAI-compatible API
    return OpenAIProvider(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        name=config.name,
        extra_headers=config.extra_headers,
        timeout=settings.chat_timeout,
        resilience=resilience,
    )


def create_chat_providers(
    settings: Optional[Settings] = None,
    resilience: Optional[Resilience] = None,
) -> Dict[str, ChatProvider]:
    """Create every provider in the configured fallback order."""
    settings = settings or get_settings()
    return {
        name: create_chat_provider(name, settings, resilience)
        for name in settings.fallback_providers
    }


def create_ocr_provider(
    settings: Optional[Settings] = None,
    resilience: Optional[Resilience] = None,
) -> MathpixProvider:
    settings = settings or get_settings()
    return MathpixProvider(
        app_id=settings.mathpix_app_id,
        app_key=settings.mathpix_app_key,
        timeout=settings.mathpix_timeout,
        resilience=resilience,
    )


def create_symbolic_solver(
    settings: Optional[Settings] = None,
    resilience: Optional[Resilience] = None,
) -> WolframProvider:
    settings = settings or get_settings()
    return WolframProvider(
        app_id=settings.wolfram_app_id,
        timeout=settings.wolfram_timeout,
        resilience=resilience,
    )


def get_available_providers(settings: Optional[Settings] = None) -> List[str]:
    """Get chat providers with configured API keys, in registry order."""
    settings = settings or get_settings()
    return [
        name for name in PROVIDER_REGISTRY
        if get_provider_config(name, settings).configured
    ]
