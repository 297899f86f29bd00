"""
Custom exception hierarchy for the math grading pipeline.

Exceptions are raised inside provider adapters and the resilience layer,
then converted into result values at every public entry point.
"""


class MathGraderError(Exception):
    """
    Base exception for all math grading errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(self, message: str, details: dict | None = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# ==================== Configuration Errors ====================

class ConfigurationError(MathGraderError):
    """
    Error in system configuration.

    Raised when required configuration is missing or invalid.
    """
    pass


class MissingAPIKeyError(ConfigurationError):
    """Raised when a provider is used without its credentials."""
    pass


# ==================== Provider Errors ====================

class ProviderError(MathGraderError):
    """
    Base error for external provider issues.

    Covers chat-completion, OCR, and symbolic solver backends.
    """
    pass


class APIConnectionError(ProviderError):
    """Raised when connection to a provider fails."""
    pass


class APITimeoutError(ProviderError):
    """Raised when a provider call exceeds its time budget."""
    pass


class APIRateLimitError(ProviderError):
    """Raised when a provider rate limit is exceeded."""
    pass


class APIResponseError(ProviderError):
    """Raised when a provider returns an unexpected or error response."""

    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.status_code = status_code


class InputRejectedError(ProviderError):
    """Raised when a backend understood the request but could not process its content."""
    pass


class ParsingError(ProviderError):
    """Raised when parsing a provider response fails."""
    pass


class CircuitOpenError(ProviderError):
    """Raised when the circuit breaker for a resource is open."""
    pass


# ==================== Queue Errors ====================

class QueueError(MathGraderError):
    """Raised when the processing queue rejects an operation."""
    pass
