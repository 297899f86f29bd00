"""
Utility functions for the math grading pipeline.
"""

from mathgrader.utils.json_extractor import (
    extract_json_from_response,
)
from mathgrader.utils.rate_limiter import (
    CircuitBreaker,
    CircuitState,
    RateLimiter,
)
from mathgrader.utils.resilience import (
    RequestBatcher,
    Resilience,
    TTLCache,
    with_timeout,
)
from mathgrader.utils.retry import (
    API_RETRY_CONFIG,
    NO_RETRY_CONFIG,
    RetryConfig,
    calculate_delay,
    is_retryable_error,
    retry_async,
)

__all__ = [
    'extract_json_from_response',
    'CircuitBreaker',
    'CircuitState',
    'RateLimiter',
    'RequestBatcher',
    'Resilience',
    'TTLCache',
    'with_timeout',
    'API_RETRY_CONFIG',
    'NO_RETRY_CONFIG',
    'RetryConfig',
    'calculate_delay',
    'is_retryable_error',
    'retry_async',
]
