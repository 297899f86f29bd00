"""
Chat provider registry and configuration.

All provider-specific settings in one place.
No hardcoded values in provider classes.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Any

from mathgrader.config.constants import (
    GEMINI_DEFAULT_MODEL,
    GROQ_BASE_URL,
    GROQ_DEFAULT_MODEL,
    OPENAI_DEFAULT_MODEL,
)


@dataclass
class ProviderConfig:
    """Configuration for a single chat-completion provider."""
    name: str
    api_key: str = ""
    base_url: Optional[str] = None
    model: Optional[str] = None
    native: bool = False
    extra_headers: Dict[str, str] = field(default_factory=dict)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


# Provider metadata - defines how to create each provider
PROVIDER_REGISTRY: Dict[str, Dict[str, Any]] = {
    "openai": {
        "api_key_attr": "openai_api_key",
        "model_attr": "openai_model",
        "default_model": OPENAI_DEFAULT_MODEL,
        "base_url": None,  # Default OpenAI API
    },
    "gemini": {
        "api_key_attr": "gemini_api_key",
        "model_attr": "gemini_model",
        "default_model": GEMINI_DEFAULT_MODEL,
        "native": True,  # Uses google-genai, not OpenAI-compatible
    },
    "groq": {
        "api_key_attr": "groq_api_key",
        "model_attr": "groq_model",
        "default_model": GROQ_DEFAULT_MODEL,
        "base_url": GROQ_BASE_URL,
    },
}


def get_provider_config(provider_name: str, settings) -> ProviderConfig:
    """
    Build ProviderConfig from settings for a given provider.

    Args:
        provider_name: Name of provider ("openai", "gemini", "groq")
        settings: Settings instance

    Returns:
        ProviderConfig with all settings populated
    """
    name = provider_name.lower()
    registry = PROVIDER_REGISTRY.get(name)
    if not registry:
        raise ValueError(f"Unknown provider: {provider_name}. Available: {list(PROVIDER_REGISTRY.keys())}")

    return ProviderConfig(
        name=name,
        api_key=getattr(settings, registry["api_key_attr"], "") or "",
        base_url=registry.get("base_url"),
        model=getattr(settings, registry["model_attr"], None) or registry["default_model"],
        native=registry.get("native", False),
        extra_headers=registry.get("extra_headers", {}),
    )


def default_model_for(provider_name: str) -> Optional[str]:
    """Default model name reported for a provider."""
    registry = PROVIDER_REGISTRY.get((provider_name or "").lower())
    return registry["default_model"] if registry else None
