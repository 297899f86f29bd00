"""
Rate limiting and circuit breaker utilities for provider calls.

Token-bucket rate limiting prevents quota exhaustion; the circuit
breaker fails fast while a backend is known to be down.

Both guard their state with a threading.Lock so a single instance can
be shared by the event loop and worker threads alike. No lock is held
across an await.
"""

import asyncio
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from mathgrader.config.logging_config import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"      # Failing, reject all calls


@dataclass
class RateLimiter:
    """
    Token bucket rate limiter.

    The bucket holds up to burst_size tokens and refills at
    requests_per_second. acquire() waits until a token is available.
    """
    requests_per_second: float = 10.0
    burst_size: int = 20
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    _tokens: float = field(default=0.0, repr=False)
    _last_update: float = field(default=0.0, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        self._tokens = float(self.burst_size)
        self._last_update = self.clock()

    def _refill(self) -> None:
        now = self.clock()
        elapsed = max(0.0, now - self._last_update)
        self._last_update = now
        self._tokens = min(self.burst_size, self._tokens + elapsed * self.requests_per_second)

    def try_acquire(self, tokens: int = 1) -> bool:
        """Take tokens if available right now."""
        with self._lock:
            self._refill()
            if self._tokens >= tokens:
                self._tokens -= tokens
                return True
            return False

    def _reserve(self, tokens: int) -> float:
        """Take tokens, possibly going into debt; return how long to wait."""
        with self._lock:
            self._refill()
            self._tokens -= tokens
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.requests_per_second

    async def acquire(self, tokens: int = 1) -> None:
        """
        Acquire tokens, waiting if necessary.

        Args:
            tokens: Number of tokens to acquire (default: 1)
        """
        wait_time = self._reserve(tokens)
        if wait_time > 0:
            await asyncio.sleep(wait_time)

    @property
    def available_tokens(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens


@dataclass
class CircuitBreaker:
    """
    Circuit breaker for one named resource.

    - CLOSED: requests pass through; consecutive failures are counted
    - OPEN: requests are rejected until reset_timeout has elapsed since
      the last failure, then the breaker closes with a cleared count

    A success in CLOSED state clears the failure count.
    """
    name: str = "default"
    failure_threshold: int = 5
    reset_timeout: float = 30.0  # seconds
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    _state: CircuitState = field(default=CircuitState.CLOSED, repr=False)
    _failure_count: int = field(default=0, repr=False)
    _last_failure_time: float = field(default=0.0, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _maybe_reset(self) -> None:
        if (
            self._state == CircuitState.OPEN
            and self.clock() - self._last_failure_time >= self.reset_timeout
        ):
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            logger.info(f"Circuit breaker '{self.name}' reset to CLOSED")

    @property
    def state(self) -> CircuitState:
        """Current circuit state (applies the cooldown reset)."""
        with self._lock:
            self._maybe_reset()
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def can_execute(self) -> bool:
        """
        Check if a request can be executed.

        Returns:
            True if request should proceed, False if circuit is open
        """
        with self._lock:
            self._maybe_reset()
            return self._state == CircuitState.CLOSED

    def record_success(self) -> None:
        """Record a successful request."""
        with self._lock:
            self._failure_count = 0

    def record_failure(self) -> None:
        """Record a failed request; trips the breaker at the threshold."""
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self.clock()

            if self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(
                    f"Circuit breaker '{self.name}' tripped to OPEN after "
                    f"{self._failure_count} failures"
                )

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
