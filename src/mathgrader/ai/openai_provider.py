"""
OpenAI-compatible chat provider.

Works with any OpenAI-compatible API (OpenAI, Groq, ...). Groq is the
same client pointed at its base_url.
"""

from typing import Any, Dict, List, Optional, Tuple

import httpx
import openai
from openai import AsyncOpenAI
from tenacity import (
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mathgrader.ai.base_provider import ChatProvider
from mathgrader.config.constants import (
    API_CONNECT_TIMEOUT,
    API_READ_TIMEOUT,
    MAX_TOKENS,
    OPENAI_DEFAULT_MODEL,
    TEMPERATURE,
)
from mathgrader.config.logging_config import get_logger
from mathgrader.core.exceptions import MissingAPIKeyError
from mathgrader.core.models import ImageInput, TokenUsage
from mathgrader.utils.resilience import Resilience

logger = get_logger(__name__)

# Transient transport failures are retried by the SDK layer; timeouts are
# left to the resilience facade.
_sdk_retry = retry(
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    retry=retry_if_exception_type(openai.APIConnectionError)
    & retry_if_not_exception_type(openai.APITimeoutError),
    reraise=True,
)


class OpenAIProvider(ChatProvider):
    """
    Provider for OpenAI-compatible APIs.

    Configuration is handled by the factory using the config.providers
    registry. A pre-built client may be injected (tests do this).
    """

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        name: str = "openai",
        extra_headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        resilience: Optional[Resilience] = None,
        client: Optional[Any] = None,
        enabled: bool = True,
    ):
        super().__init__(resilience=resilience, timeout=timeout, enabled=enabled)
        self.api_key = api_key
        self.model = model or OPENAI_DEFAULT_MODEL
        self.base_url = base_url
        self.extra_headers = extra_headers or {}
        self._name = name
        self._client = client

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self) -> AsyncOpenAI:
        """Create the async OpenAI client."""
        if not self.api_key:
            raise MissingAPIKeyError(f"{self.name} API key not configured")

        timeout = httpx.Timeout(
            connect=API_CONNECT_TIMEOUT,
            read=API_READ_TIMEOUT,
            write=API_CONNECT_TIMEOUT,
            pool=API_CONNECT_TIMEOUT
        )

        client_kwargs: Dict[str, Any] = {
            "api_key": self.api_key,
            "timeout": timeout,
            "max_retries": 0,
        }

        if self.base_url:
            client_kwargs["base_url"] = self.base_url

        if self.extra_headers:
            client_kwargs["default_headers"] = self.extra_headers

        return AsyncOpenAI(**client_kwargs)

    # ==================== MESSAGES ====================

    def _build_messages(
        self,
        image: Optional[ImageInput],
        prompt: str,
        system_prompt: Optional[str],
    ) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        if image is None:
            messages.append({"role": "user", "content": prompt})
        else:
            messages.append({
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image.as_data_url(), "detail": "high"}},
                ],
            })
        return messages

    # ==================== API CALLS ====================

    @_sdk_retry
    async def _complete(
        self,
        image: Optional[ImageInput],
        prompt: str,
        system_prompt: Optional[str],
    ) -> Tuple[str, Optional[TokenUsage]]:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=self._build_messages(image, prompt, system_prompt),
            max_tokens=MAX_TOKENS,
            temperature=TEMPERATURE,
        )

        content = response.choices[0].message.content or ""

        usage = None
        if getattr(response, "usage", None):
            prompt_tokens = response.usage.prompt_tokens or 0
            completion_tokens = response.usage.completion_tokens or 0
            usage = TokenUsage(
                input=prompt_tokens,
                output=completion_tokens,
                total=prompt_tokens + completion_tokens,
            )

        logger.debug(f"{self.name}/{self.model} returned {len(content)} chars")
        return content, usage
