"""
Multi-vendor fallback for chat-completion calls.

Tries providers in the configured fallback order. Each provider is
retried in place on transient errors before the manager moves on to
the next one.
"""

import asyncio
import time
from typing import Dict, Iterable, List, Optional, Union

from mathgrader.ai.base_provider import ChatProvider
from mathgrader.ai.cot_verifier import ChatFunction
from mathgrader.ai.provider_factory import create_chat_providers
from mathgrader.config.constants import MAX_RETRIES, RETRY_DELAY_SECONDS
from mathgrader.config.logging_config import get_logger
from mathgrader.config.settings import Settings, get_settings
from mathgrader.core.models import ImageInput, ProviderResponse
from mathgrader.utils.resilience import Resilience

logger = get_logger(__name__)

RETRYABLE_PATTERNS = (
    "timeout",
    "rate limit",
    "429",
    "502",
    "503",
    "504",
    "network",
    "connection",
)

NO_PROVIDERS_ERROR = "No providers available"


def is_retryable_provider_error(error: Optional[str]) -> bool:
    """True if a provider error message looks transient."""
    if not error:
        return False
    lowered = error.lower()
    return any(pattern in lowered for pattern in RETRYABLE_PATTERNS)


class ProviderManager:
    """
    Chat-completion calls with provider fallback.

    Usage:
        manager = ProviderManager.from_settings()
        response = await manager.analyze_image(image, prompt, system_prompt)
    """

    def __init__(
        self,
        providers: Union[Dict[str, ChatProvider], Iterable[ChatProvider]],
        fallback_order: Optional[List[str]] = None,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ):
        """
        Args:
            providers: Providers keyed by name (or an iterable, keyed by provider.name)
            fallback_order: Provider names in the order to try (default: insertion order)
            max_retries: Attempts per provider on retryable errors
            retry_delay: Base delay; attempt n waits retry_delay * n
        """
        if isinstance(providers, dict):
            self._providers: Dict[str, ChatProvider] = dict(providers)
        else:
            self._providers = {p.name: p for p in providers}

        order = fallback_order or list(self._providers)
        self.fallback_order = [name for name in dict.fromkeys(order) if name in self._providers]
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        resilience: Optional[Resilience] = None,
    ) -> "ProviderManager":
        settings = settings or get_settings()
        return cls(
            create_chat_providers(settings, resilience),
            fallback_order=settings.fallback_providers,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_base_delay,
        )

    # ==================== LOOKUP ====================

    def get_provider(self, name: str) -> Optional[ChatProvider]:
        return self._providers.get((name or "").lower())

    def is_provider_available(self, name: str) -> bool:
        provider = self.get_provider(name)
        return provider is not None and provider.is_enabled()

    def get_available_providers(self) -> List[str]:
        """Enabled providers in fallback order."""
        return [name for name in self.fallback_order if self.is_provider_available(name)]

    def get_primary_provider(self) -> Optional[str]:
        """First enabled provider in fallback order."""
        available = self.get_available_providers()
        return available[0] if available else None

    def _call_order(self, preferred_provider: Optional[str]) -> List[str]:
        order = list(self.fallback_order)
        preferred = (preferred_provider or "").lower()
        if preferred in self._providers:
            order = [preferred] + [name for name in order if name != preferred]
        return order

    # ==================== CALLS ====================

    async def _call_with_retries(
        self,
        provider: ChatProvider,
        image: Optional[ImageInput],
        prompt: str,
        system_prompt: Optional[str],
    ) -> ProviderResponse:
        response = ProviderResponse(success=False, error="not attempted")
        for attempt in range(1, self.max_retries + 1):
            response = await provider.analyze(image, prompt, system_prompt)
            if response.success:
                return response

            if attempt < self.max_retries and is_retryable_provider_error(response.error):
                delay = self.retry_delay * attempt
                logger.warning(
                    f"{provider.name} attempt {attempt}/{self.max_retries} failed "
                    f"({response.error}); retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                continue
            break
        return response

    async def analyze_image(
        self,
        image: Optional[ImageInput],
        prompt: str,
        system_prompt: Optional[str] = None,
        preferred_provider: Optional[str] = None,
    ) -> ProviderResponse:
        """
        Run a prompt against the first provider that succeeds.

        Args:
            image: Image to analyze (None for text-only calls)
            prompt: User prompt
            system_prompt: Optional system prompt
            preferred_provider: Provider to try first for this call

        Returns:
            ProviderResponse; latency covers the whole attempt sequence
        """
        start_time = time.perf_counter()

        def elapsed() -> float:
            return (time.perf_counter() - start_time) * 1000

        candidates = [name for name in self._call_order(preferred_provider) if self.is_provider_available(name)]
        if not candidates:
            logger.error(NO_PROVIDERS_ERROR)
            return ProviderResponse(success=False, error=NO_PROVIDERS_ERROR, latency_ms=elapsed())

        last_error: Optional[str] = None
        for attempted, name in enumerate(candidates, start=1):
            response = await self._call_with_retries(self._providers[name], image, prompt, system_prompt)
            if response.success:
                if attempted > 1:
                    logger.info(f"Fell back to {name} after {attempted - 1} failed provider(s)")
                return response.model_copy(update={
                    "provider": name,
                    "latency_ms": elapsed(),
                    "providers_attempted": attempted,
                })

            last_error = response.error
            logger.warning(f"Provider {name} failed: {last_error}")

        return ProviderResponse(
            success=False,
            error=f"All providers failed. Last error: {last_error}",
            latency_ms=elapsed(),
            providers_attempted=len(candidates),
        )

    async def analyze_text(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        preferred_provider: Optional[str] = None,
    ) -> ProviderResponse:
        """Text-only call with the same fallback rules."""
        return await self.analyze_image(None, prompt, system_prompt, preferred_provider)

    async def analyze_image_with_provider(
        self,
        name: str,
        image: Optional[ImageInput],
        prompt: str,
        system_prompt: Optional[str] = None,
    ) -> ProviderResponse:
        """Call one specific provider without fallback."""
        if not self.is_provider_available(name):
            return ProviderResponse(success=False, error=f"Provider {name} not available")

        start_time = time.perf_counter()
        response = await self._call_with_retries(self._providers[name.lower()], image, prompt, system_prompt)
        return response.model_copy(update={
            "provider": name.lower(),
            "latency_ms": (time.perf_counter() - start_time) * 1000,
            "providers_attempted": 1,
        })

    def chat_function(self, preferred_provider: Optional[str] = None) -> ChatFunction:
        """Bind analyze_text to a preferred provider, for the chain-of-thought verifier."""
        async def chat(prompt: str, system_prompt: Optional[str] = None) -> ProviderResponse:
            return await self.analyze_text(prompt, system_prompt, preferred_provider)
        return chat

    async def health_check_all(self) -> Dict[str, bool]:
        """Health of every registered provider, keyed by name."""
        results = await asyncio.gather(*(self._providers[name].health_check() for name in self.fallback_order))
        return dict(zip(self.fallback_order, results))
