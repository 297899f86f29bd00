"""
Retry utilities for external provider calls.

Exponential backoff with jitter. Errors that signal a permanent
rejection (unauthorized, forbidden, not found, invalid/bad request)
are never retried.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from mathgrader.config.constants import JITTER_FRACTION
from mathgrader.config.logging_config import get_logger
from mathgrader.core.exceptions import ConfigurationError, InputRejectedError

T = TypeVar('T')

logger = get_logger(__name__)

NON_RETRYABLE_MARKERS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "not found",
    "invalid",
    "bad request",
    "not configured",
    "could not interpret",
)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: Sequence[type[Exception]] = (Exception,)

    @classmethod
    def from_settings(cls, settings) -> "RetryConfig":
        return cls(
            max_attempts=max(1, settings.max_retries),
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )


def calculate_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float,
    jitter: bool
) -> float:
    """
    Calculate delay for retry attempt with exponential backoff.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential calculation
        jitter: Whether to add random jitter

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (exponential_base ** attempt), max_delay)

    if jitter:
        # Uniform jitter between 0% and 25% of the computed delay
        delay *= 1 + random.random() * JITTER_FRACTION

    return delay


def is_retryable_error(error: BaseException | str | None) -> bool:
    """
    Whether an error may succeed on a later attempt.

    Status-like errors expose status_code; 400/401/403/404 are permanent.
    Otherwise the message is scanned for permanent-rejection markers.
    """
    if error is None:
        return False

    if isinstance(error, (InputRejectedError, ConfigurationError)):
        return False

    status = getattr(error, "status_code", None)
    if status in (400, 401, 403, 404):
        return False

    message = str(error).lower()
    return not any(marker in message for marker in NON_RETRYABLE_MARKERS)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    name: str = "",
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> T:
    """
    Await func() until it succeeds or attempts run out.

    Args:
        func: Zero-argument coroutine factory, called once per attempt
        config: Retry configuration (default RetryConfig())
        name: Label for log lines
        on_retry: Optional callback (attempt, exception, delay)

    Returns:
        The first successful result

    Raises:
        The last exception when attempts are exhausted or the error is
        not retryable
    """
    config = config or RetryConfig()
    attempts = max(1, config.max_attempts)
    last_exception: Optional[Exception] = None

    for attempt in range(attempts):
        try:
            return await func()
        except tuple(config.retryable_exceptions) as e:
            last_exception = e
            if attempt >= attempts - 1 or not is_retryable_error(e):
                break

            delay = calculate_delay(
                attempt, config.base_delay, config.max_delay,
                config.exponential_base, config.jitter
            )
            if on_retry:
                on_retry(attempt + 1, e, delay)
            else:
                logger.warning(
                    f"Retry {attempt + 1}/{attempts} for {name or 'call'} "
                    f"after {e.__class__.__name__}: {e}. Waiting {delay:.2f}s"
                )
            await asyncio.sleep(delay)

    raise last_exception


# Common retry configurations
API_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    base_delay=1.0,
    max_delay=30.0,
)

NO_RETRY_CONFIG = RetryConfig(max_attempts=1)
