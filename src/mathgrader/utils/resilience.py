"""
Resilience facade for external calls.

One Resilience instance is built per process (or per test) and injected
into every provider. It owns the per-name circuit breakers, token
buckets, and the TTL cache, so there is no module-level mutable state.

Composition for Resilience.call(name, func):
    cache lookup -> circuit check -> retry(rate limit -> timeout(func))
    -> record success/failure -> cache store
"""

import asyncio
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, List, Optional, Tuple, TypeVar

from mathgrader.config.constants import (
    BATCH_DELAY_SECONDS,
    BATCH_MAX_SIZE,
    CACHE_TTL_SECONDS,
    CIRCUIT_FAILURE_THRESHOLD,
    CIRCUIT_RESET_TIMEOUT,
    DEFAULT_RATE_LIMIT,
    RATE_LIMITS,
)
from mathgrader.config.logging_config import get_logger
from mathgrader.core.exceptions import APITimeoutError, CircuitOpenError
from mathgrader.utils.rate_limiter import CircuitBreaker, RateLimiter
from mathgrader.utils.retry import API_RETRY_CONFIG, RetryConfig, retry_async

T = TypeVar('T')
K = TypeVar('K')
R = TypeVar('R')

logger = get_logger(__name__)

_MISSING = object()


# ==================== TIMEOUT ====================

async def with_timeout(awaitable: Awaitable[T], timeout: Optional[float], name: str = "operation") -> T:
    """
    Await with a bounded wait.

    Expiry raises APITimeoutError; the wrapper never retries.
    """
    if timeout is None or timeout <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise APITimeoutError(f"{name} request timeout after {timeout:.1f}s") from e


# ==================== CACHE ====================

@dataclass
class TTLCache:
    """In-memory cache whose entries expire ttl seconds after being set."""
    ttl: float = CACHE_TTL_SECONDS
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    _entries: Dict[Hashable, Tuple[float, Any]] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if self.clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._entries[key] = (self.clock() + (self.ttl if ttl is None else ttl), value)

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    async def get_or_set(self, key: Hashable, factory: Callable[[], Awaitable[T]], ttl: Optional[float] = None) -> T:
        """Return the cached value or compute, store, and return it."""
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached
        value = await factory()
        self.set(key, value, ttl)
        return value

    def __len__(self) -> int:
        with self._lock:
            now = self.clock()
            return sum(1 for expires_at, _ in self._entries.values() if expires_at > now)


# ==================== BATCHER ====================

class RequestBatcher(Generic[K, R]):
    """
    Collect individual submissions into batched calls.

    A batch is flushed when it reaches max_batch_size or when delay
    seconds have passed since its first item. process_batch must return
    one result per item, in order. A failure of the batch call is
    delivered to every submitter of that batch.
    """

    def __init__(
        self,
        process_batch: Callable[[List[K]], Awaitable[List[R]]],
        max_batch_size: int = BATCH_MAX_SIZE,
        delay: float = BATCH_DELAY_SECONDS,
    ):
        self.process_batch = process_batch
        self.max_batch_size = max(1, max_batch_size)
        self.delay = delay
        self._pending: List[Tuple[K, asyncio.Future]] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set = set()

    async def submit(self, item: K) -> R:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending.append((item, future))

        if len(self._pending) >= self.max_batch_size:
            self._schedule_flush(loop)
        elif self._timer is None:
            self._timer = loop.call_later(self.delay, self._schedule_flush, loop)

        return await future

    def _schedule_flush(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        batch, self._pending = self._pending, []
        if batch:
            task = loop.create_task(self._run(batch))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, batch: List[Tuple[K, asyncio.Future]]) -> None:
        items = [item for item, _ in batch]
        try:
            results = await self.process_batch(items)
            if len(results) != len(items):
                raise ValueError(f"Batch returned {len(results)} results for {len(items)} items")
        except Exception as e:
            logger.warning(f"Batch of {len(items)} failed: {e}")
            for _, future in batch:
                if not future.done():
                    future.set_exception(e)
            return

        for (_, future), result in zip(batch, results):
            if not future.done():
                future.set_result(result)

    async def flush(self) -> None:
        """Flush pending items now and wait for their batch."""
        loop = asyncio.get_running_loop()
        self._schedule_flush(loop)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._pending)


# ==================== FACADE ====================

class Resilience:
    """
    Shared resilience context for all external calls.

    Circuit breakers and rate limiters are created on first use per
    resource name. Each map is guarded by its own lock.
    """

    def __init__(
        self,
        retry_config: Optional[RetryConfig] = None,
        failure_threshold: int = CIRCUIT_FAILURE_THRESHOLD,
        reset_timeout: float = CIRCUIT_RESET_TIMEOUT,
        cache_ttl: float = CACHE_TTL_SECONDS,
        default_timeout: Optional[float] = 30.0,
        rate_limits: Optional[Dict[str, Tuple[float, int]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.retry_config = retry_config or API_RETRY_CONFIG
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.default_timeout = default_timeout
        self.rate_limits = dict(RATE_LIMITS if rate_limits is None else rate_limits)
        self.clock = clock
        self.cache = TTLCache(ttl=cache_ttl, clock=clock)

        self._circuits: Dict[str, CircuitBreaker] = {}
        self._circuits_lock = threading.Lock()
        self._limiters: Dict[str, RateLimiter] = {}
        self._limiters_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "Resilience":
        return cls(
            retry_config=RetryConfig.from_settings(settings),
            failure_threshold=settings.circuit_failure_threshold,
            reset_timeout=settings.circuit_reset_timeout,
            cache_ttl=settings.cache_ttl_seconds,
        )

    def circuit(self, name: str) -> CircuitBreaker:
        with self._circuits_lock:
            breaker = self._circuits.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name=name,
                    failure_threshold=self.failure_threshold,
                    reset_timeout=self.reset_timeout,
                    clock=self.clock,
                )
                self._circuits[name] = breaker
            return breaker

    def rate_limiter(self, name: str) -> RateLimiter:
        with self._limiters_lock:
            limiter = self._limiters.get(name)
            if limiter is None:
                rps, burst = self.rate_limits.get(name, DEFAULT_RATE_LIMIT)
                limiter = RateLimiter(requests_per_second=rps, burst_size=burst, clock=self.clock)
                self._limiters[name] = limiter
            return limiter

    def circuit_states(self) -> Dict[str, str]:
        with self._circuits_lock:
            breakers = list(self._circuits.items())
        return {name: breaker.state.value for name, breaker in breakers}

    async def call(
        self,
        name: str,
        func: Callable[[], Awaitable[T]],
        *,
        timeout: Optional[float] = _MISSING,  # type: ignore[assignment]
        retry: Optional[RetryConfig] = None,
        cache_key: Optional[Hashable] = None,
        rate_limit: bool = True,
    ) -> T:
        """
        Run func() under the named resource's protections.

        Args:
            name: Resource name (circuit breaker and rate limiter key)
            func: Zero-argument coroutine factory, called once per attempt
            timeout: Per-attempt timeout (default_timeout when omitted, None disables)
            retry: Retry configuration (facade default when omitted)
            cache_key: Cache successful results under (name, cache_key)
            rate_limit: Take a token from the resource's bucket per attempt

        Raises:
            CircuitOpenError: the breaker is open
            The underlying error once retries are exhausted
        """
        full_key = (name, cache_key) if cache_key is not None else None
        if full_key is not None:
            cached = self.cache.get(full_key, _MISSING)
            if cached is not _MISSING:
                logger.debug(f"Cache hit for {name}")
                return cached

        breaker = self.circuit(name)
        if not breaker.can_execute():
            raise CircuitOpenError(f"Circuit breaker is open for {name}", {"resource": name})

        attempt_timeout = self.default_timeout if timeout is _MISSING else timeout

        async def attempt() -> T:
            if rate_limit:
                await self.rate_limiter(name).acquire()
            return await with_timeout(func(), attempt_timeout, name)

        try:
            result = await retry_async(attempt, retry or self.retry_config, name=name)
        except Exception:
            breaker.record_failure()
            raise

        breaker.record_success()
        if full_key is not None:
            self.cache.set(full_key, result)
        return result

    def batcher(
        self,
        process_batch: Callable[[List[K]], Awaitable[List[R]]],
        max_batch_size: int = BATCH_MAX_SIZE,
        delay: float = BATCH_DELAY_SECONDS,
    ) -> RequestBatcher[K, R]:
        return RequestBatcher(process_batch, max_batch_size=max_batch_size, delay=delay)

    def reset(self) -> None:
        """Drop all breaker, limiter, and cache state."""
        with self._circuits_lock:
            self._circuits.clear()
        with self._limiters_lock:
            self._limiters.clear()
        self.cache.clear()
