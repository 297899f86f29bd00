"""
Base classes for external providers.

Three capabilities are modelled as abstract base classes:
- ChatProvider: "analyze an image (or text) with a prompt"
- OcrProvider: extract math text from an image
- SymbolicSolver: evaluate an expression

Each provider reports is_available() (credentials present, no network)
and is_enabled() (available and not switched off). Public coroutines
return result models; exceptions raised by SDKs are translated by
APIErrorContext and converted to error results at the boundary.
"""

import asyncio
import re
import time
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from mathgrader.config.logging_config import get_logger
from mathgrader.core.exceptions import (
    APIConnectionError,
    APIRateLimitError,
    APIResponseError,
    APITimeoutError,
    MathGraderError,
    ParsingError,
    ProviderError,
)
from mathgrader.core.models import (
    ImageInput,
    OcrResult,
    ProviderCall,
    ProviderResponse,
    SolveResult,
    TokenUsage,
)
from mathgrader.utils.resilience import Resilience
from mathgrader.utils.retry import NO_RETRY_CONFIG

logger = get_logger(__name__)


_SECRET_PATTERNS = [
    (re.compile(r'sk-[a-zA-Z0-9_-]{20,}'), 'sk-[REDACTED]'),
    (re.compile(r'AIza[a-zA-Z0-9_-]{35}'), 'AIza[REDACTED]'),
    (re.compile(r'(Bearer\s+)[a-zA-Z0-9._-]{20,}'), r'\1[REDACTED]'),
    (re.compile(r'((?:api[_-]?key|app[_-]?key|appid|app_id)\s*[=:]\s*["\']?)[^\s&"\']+', re.IGNORECASE), r'\1[REDACTED]'),
]


def _sanitize_for_logging(text: Optional[str]) -> Optional[str]:
    """
    Mask credentials in text before it is logged or stored.

    Covers OpenAI/Groq and Google keys, bearer tokens, and key-like
    query parameters (Wolfram puts its appid in the URL).
    """
    if not text:
        return text
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _status_code(exc: BaseException) -> Optional[int]:
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


class APIErrorContext:
    """
    Context manager for consistent API error handling.

    Translates SDK and transport exceptions into the project's exception
    taxonomy. Messages keep the words the provider manager looks for
    when deciding whether to retry (timeout, rate limit, connection,
    status code).

    Usage:
        with APIErrorContext("vision call", "openai"):
            response = await client.chat.completions.create(...)
    """

    def __init__(self, operation: str, provider_name: str = "unknown"):
        self.operation = operation
        self.provider_name = provider_name

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            return False

        # Already translated, or cancellation
        if isinstance(exc_val, MathGraderError) or not isinstance(exc_val, Exception):
            return False

        exc_name = exc_type.__name__
        detail = _sanitize_for_logging(str(exc_val)) or exc_name
        where = f"{self.provider_name} {self.operation}"
        logger.debug(f"{where} raised {exc_name}: {detail}")

        if isinstance(exc_val, (asyncio.TimeoutError, TimeoutError)) or 'Timeout' in exc_name:
            raise APITimeoutError(f"Request timeout during {where}") from exc_val

        if any(name in exc_name for name in ('Connection', 'Connect', 'Network')):
            raise APIConnectionError(f"Connection error during {where}: {detail}") from exc_val

        status = _status_code(exc_val)

        if status == 429 or 'RateLimit' in exc_name:
            raise APIRateLimitError(f"Rate limit (429) during {where}: {detail}") from exc_val

        if status is not None:
            raise APIResponseError(
                f"HTTP {status} during {where}: {detail}", status_code=status
            ) from exc_val

        if any(name in exc_name for name in ('JSON', 'Parse', 'Decode')):
            raise ParsingError(f"Failed to parse response during {where}: {detail}") from exc_val

        raise ProviderError(f"API error during {where}: {detail}") from exc_val


class _ProviderBase(ABC):
    """Availability and enablement shared by all capabilities."""

    def __init__(self, resilience: Optional[Resilience] = None, enabled: bool = True):
        self.resilience = resilience or Resilience()
        self._enabled = enabled

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name; also the resilience resource key."""

    @abstractmethod
    def is_available(self) -> bool:
        """Credentials are present. Never touches the network."""

    def is_enabled(self) -> bool:
        return self._enabled and self.is_available()

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    async def health_check(self) -> bool:
        """Availability check. Does not spend a billed request."""
        return self.is_enabled()


class ChatProvider(_ProviderBase):
    """
    Chat-completion provider with vision support.

    Subclasses implement _complete(); analyze() wraps it with the
    resilience facade (circuit breaker, rate limiter, timeout), error
    translation, and call accounting.
    """

    model: Optional[str] = None

    def __init__(
        self,
        resilience: Optional[Resilience] = None,
        timeout: Optional[float] = None,
        enabled: bool = True,
    ):
        super().__init__(resilience=resilience, enabled=enabled)
        self.timeout = timeout
        self.call_history: List[ProviderCall] = []

    @abstractmethod
    async def _complete(
        self,
        image: Optional[ImageInput],
        prompt: str,
        system_prompt: Optional[str],
    ) -> Tuple[str, Optional[TokenUsage]]:
        """Perform one SDK call and return (content, token usage)."""

    async def analyze(
        self,
        image: Optional[ImageInput],
        prompt: str,
        system_prompt: Optional[str] = None,
    ) -> ProviderResponse:
        """
        Send a prompt (with an optional image) to the model.

        Returns:
            ProviderResponse; failures are reported with success=False
        """
        start_time = time.perf_counter()

        if not self.is_available():
            return ProviderResponse(
                success=False,
                error=f"{self.name} API key not configured",
                provider=self.name,
            )

        async def call() -> Tuple[str, Optional[TokenUsage]]:
            with APIErrorContext("vision call" if image else "text call", self.name):
                return await self._complete(image, prompt, system_prompt)

        try:
            content, usage = await self.resilience.call(
                self.name, call, timeout=self.timeout, retry=NO_RETRY_CONFIG
            )
        except MathGraderError as e:
            latency = (time.perf_counter() - start_time) * 1000
            error = _sanitize_for_logging(str(e))
            self._log_call(success=False, duration_ms=latency, error=error)
            logger.warning(f"{self.name} call failed: {error}")
            return ProviderResponse(success=False, error=error, latency_ms=latency, provider=self.name)

        latency = (time.perf_counter() - start_time) * 1000
        self._log_call(success=True, duration_ms=latency, usage=usage)
        return ProviderResponse(
            success=True,
            content=content,
            latency_ms=latency,
            provider=self.name,
            tokens_used=usage,
        )

    # ==================== TOKEN TRACKING ====================

    def _log_call(
        self,
        success: bool,
        duration_ms: float,
        usage: Optional[TokenUsage] = None,
        error: Optional[str] = None,
    ) -> None:
        """Record a call in the audit trail."""
        self.call_history.append(ProviderCall(
            provider=self.name,
            model=self.model,
            success=success,
            duration_ms=duration_ms,
            prompt_tokens=usage.input if usage else None,
            completion_tokens=usage.output if usage else None,
            error=error,
        ))

    def get_token_usage(self) -> TokenUsage:
        """Get total token usage from all calls."""
        prompt_tokens = sum(c.prompt_tokens or 0 for c in self.call_history)
        completion_tokens = sum(c.completion_tokens or 0 for c in self.call_history)
        return TokenUsage(
            input=prompt_tokens,
            output=completion_tokens,
            total=prompt_tokens + completion_tokens,
        )


class OcrProvider(_ProviderBase):
    """Extracts LaTeX and plain text from an image."""

    @abstractmethod
    async def extract_math(self, image: ImageInput) -> OcrResult:
        """Never raises; failures are reported in the result."""


class SymbolicSolver(_ProviderBase):
    """Evaluates a math expression with a computation backend."""

    @abstractmethod
    async def solve(self, expression: str) -> SolveResult:
        """Never raises; failures are reported in the result."""

    async def solve_batch(self, expressions: List[str]) -> List[SolveResult]:
        """Solve expressions one at a time, in order, continuing past failures."""
        results = []
        for expression in expressions:
            results.append(await self.solve(expression))
        return results
