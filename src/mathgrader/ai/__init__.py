"""
External provider implementations for the math grading pipeline.

Supports:
- Chat completion: OpenAI, Groq (OpenAI-compatible), Google Gemini
- OCR: Mathpix
- Symbolic solving: Wolfram Alpha
- Chain-of-thought verification on top of any chat provider

Usage:
    from mathgrader.ai.provider_manager import ProviderManager

    manager = ProviderManager.from_settings()
    response = await manager.analyze_image(image, prompt, system_prompt)
"""

# Lazy imports keep SDK imports out of the pure grading path
__all__ = [
    "OpenAIProvider",
    "GeminiProvider",
    "MathpixProvider",
    "WolframProvider",
    "ChainOfThoughtVerifier",
    "ProviderManager",
    "create_chat_provider",
    "get_available_providers",
]


def OpenAIProvider(*args, **kwargs):
    """Create an OpenAI-compatible provider instance (lazy import)."""
    from .openai_provider import OpenAIProvider as _OpenAIProvider
    return _OpenAIProvider(*args, **kwargs)


def GeminiProvider(*args, **kwargs):
    """Create a Gemini provider instance (lazy import)."""
    from .gemini_provider import GeminiProvider as _GeminiProvider
    return _GeminiProvider(*args, **kwargs)


def MathpixProvider(*args, **kwargs):
    """Create a Mathpix OCR provider (lazy import)."""
    from .mathpix_provider import MathpixProvider as _MathpixProvider
    return _MathpixProvider(*args, **kwargs)


def WolframProvider(*args, **kwargs):
    """Create a Wolfram Alpha solver (lazy import)."""
    from .wolfram_provider import WolframProvider as _WolframProvider
    return _WolframProvider(*args, **kwargs)


def ChainOfThoughtVerifier(*args, **kwargs):
    """Create a chain-of-thought verifier (lazy import)."""
    from .cot_verifier import ChainOfThoughtVerifier as _ChainOfThoughtVerifier
    return _ChainOfThoughtVerifier(*args, **kwargs)


def ProviderManager(*args, **kwargs):
    """Create a provider manager (lazy import)."""
    from .provider_manager import ProviderManager as _ProviderManager
    return _ProviderManager(*args, **kwargs)


def create_chat_provider(*args, **kwargs):
    """Create a chat provider from settings (lazy import)."""
    from .provider_factory import create_chat_provider as _create_chat_provider
    return _create_chat_provider(*args, **kwargs)


def get_available_providers(*args, **kwargs):
    """Get chat providers with configured API keys (lazy import)."""
    from .provider_factory import get_available_providers as _get_available_providers
    return _get_available_providers(*args, **kwargs)
