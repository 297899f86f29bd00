"""
Google Gemini API provider for vision and text interactions.

Uses the google-genai async client (client.aio).
"""

import base64
from typing import Any, List, Optional, Tuple

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from mathgrader.ai.base_provider import ChatProvider
from mathgrader.config.constants import GEMINI_DEFAULT_MODEL, MAX_TOKENS, TEMPERATURE
from mathgrader.config.logging_config import get_logger
from mathgrader.core.exceptions import MissingAPIKeyError
from mathgrader.core.models import ImageInput, TokenUsage
from mathgrader.utils.resilience import Resilience

logger = get_logger(__name__)


# Server-side errors (5xx) are retried once by the SDK layer
RETRYABLE_EXCEPTIONS = (
    genai_errors.ServerError,
    ConnectionError,
)


class GeminiProvider(ChatProvider):
    """
    Provider for Google Gemini API interactions.

    Implements the ChatProvider contract on top of google-genai.
    """

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        resilience: Optional[Resilience] = None,
        client: Optional[Any] = None,
        enabled: bool = True,
    ):
        """
        Initialize Gemini provider.

        Args:
            api_key: Google API key
            model: Model for vision and text (default: gemini-2.5-flash)
            timeout: Per-call timeout in seconds
            resilience: Shared resilience facade
            client: Pre-built genai.Client (tests inject a stub)
            enabled: Start enabled
        """
        super().__init__(resilience=resilience, timeout=timeout, enabled=enabled)
        self.api_key = api_key
        self.model = model or GEMINI_DEFAULT_MODEL
        self._client = client

    @property
    def name(self) -> str:
        return "gemini"

    def is_available(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise MissingAPIKeyError("gemini API key not configured")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def _prepare_image(self, image: ImageInput) -> genai_types.Part:
        """Wrap the image handle in a Part without inspecting its pixels."""
        if image.type == "url":
            return genai_types.Part.from_uri(file_uri=image.data, mime_type=image.mime_type)
        payload = "".join(image.data.split())
        if payload.startswith("data:"):
            payload = payload.split(",", 1)[-1]
        return genai_types.Part.from_bytes(
            data=base64.b64decode(payload),
            mime_type=image.mime_type,
        )

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        reraise=True,
    )
    async def _complete(
        self,
        image: Optional[ImageInput],
        prompt: str,
        system_prompt: Optional[str],
    ) -> Tuple[str, Optional[TokenUsage]]:
        contents: List[Any] = [prompt]
        if image is not None:
            contents.append(self._prepare_image(image))

        config = genai_types.GenerateContentConfig(
            system_instruction=system_prompt or None,
            temperature=TEMPERATURE,
            max_output_tokens=MAX_TOKENS,
        )

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=config,
        )

        result = response.text or ""

        # Extract token usage
        usage = None
        metadata = getattr(response, "usage_metadata", None)
        if metadata:
            prompt_tokens = getattr(metadata, "prompt_token_count", None) or 0
            completion_tokens = getattr(metadata, "candidates_token_count", None) or 0
            usage = TokenUsage(
                input=prompt_tokens,
                output=completion_tokens,
                total=prompt_tokens + completion_tokens,
            )

        logger.debug(f"gemini/{self.model} returned {len(result)} chars")
        return result, usage
