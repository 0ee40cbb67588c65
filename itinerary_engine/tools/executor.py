"""Async routing call executor with timeouts, retries, circuit breaker, and caching.

Every call to the routing provider goes through ``RouteCallExecutor``:
- Hard timeout per attempt
- Bounded retries with jitter
- Per-provider circuit breaker so an outage degrades to estimates quickly
- TTL cache keyed by the request
- Cancellation support via ``CancelToken``
- Metrics and structured logging hooks
"""

import asyncio
import hashlib
import json
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from itinerary_engine.models.routing import RoutingRequest, RoutingResponse


# Exception types
class RoutingProviderError(Exception):
    """Routing provider returned a non-success or malformed response."""

    pass


class RoutingTimeoutError(Exception):
    """Routing call exceeded timeout."""

    pass


class RoutingCircuitOpenError(Exception):
    """Circuit breaker is open for the routing provider."""

    pass


class RoutingExecutionError(Exception):
    """Routing call failed after all attempts."""

    pass


class PlanningCancelledError(Exception):
    """The planning run owning this call was cancelled."""

    pass


class RoutingProvider(Protocol):
    """Routing collaborator: computes a route between two coordinates."""

    async def route(self, request: RoutingRequest) -> RoutingResponse:
        ...


@dataclass(frozen=True)
class RouteCallContext:
    """Context for a routing call, for logs and metrics."""

    run_id: int | None
    provider: str
    mode: str


@dataclass
class CancelToken:
    """Abort signal shared by every step of one planning run."""

    cancelled: bool = False
    reason: str | None = None

    def cancel(self, reason: str = "run cancelled") -> None:
        self.cancelled = True
        self.reason = reason

    def throw_if_cancelled(self) -> None:
        """Raise PlanningCancelledError if cancelled."""
        if self.cancelled:
            raise PlanningCancelledError(self.reason or "run cancelled")


@dataclass
class RouteCallConfig:
    """Configuration for routing calls."""

    timeout_ms: int
    retry_count: int = 0
    retry_jitter_min_ms: int = 200
    retry_jitter_max_ms: int = 500
    breaker_failure_threshold: int = 5
    breaker_window_seconds: int = 60
    breaker_half_open_seconds: int = 30
    cache_ttl_seconds: int = 0


class BreakerState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Per-provider circuit breaker.

    Tracks failures within a time window and opens after threshold.
    """

    name: str
    failure_threshold: int
    window_seconds: int
    half_open_seconds: int
    state: BreakerState = BreakerState.CLOSED
    failure_times: list[datetime] = field(default_factory=list)
    opened_at: datetime | None = None

    def record_success(self) -> None:
        if self.state == BreakerState.HALF_OPEN:
            self.state = BreakerState.CLOSED
            self.failure_times.clear()
            self.opened_at = None

    def record_failure(self, now: datetime) -> None:
        cutoff = now - timedelta(seconds=self.window_seconds)
        self.failure_times = [t for t in self.failure_times if t > cutoff]
        self.failure_times.append(now)

        # A failed trial call while half-open re-opens immediately
        if self.state == BreakerState.HALF_OPEN or len(self.failure_times) >= self.failure_threshold:
            self.state = BreakerState.OPEN
            self.opened_at = now

    def check_and_update_state(self, now: datetime) -> BreakerState:
        if self.state == BreakerState.OPEN:
            if self.opened_at and (now - self.opened_at).total_seconds() >= self.half_open_seconds:
                self.state = BreakerState.HALF_OPEN
        return self.state

    def is_open(self, now: datetime) -> bool:
        return self.check_and_update_state(now) == BreakerState.OPEN


@dataclass
class CacheEntry:
    """Cached route with metadata."""

    value: RoutingResponse
    cached_at: datetime
    ttl_seconds: int

    def is_fresh(self, now: datetime) -> bool:
        return (now - self.cached_at).total_seconds() < self.ttl_seconds


class RouteCache:
    """In-memory cache for routing responses."""

    def __init__(self) -> None:
        self._cache: dict[str, CacheEntry] = {}

    def make_key(self, request: RoutingRequest) -> str:
        """Generate deterministic cache key from the request."""
        data = request.model_dump(mode="json")
        sorted_json = json.dumps(data, sort_keys=True)
        return hashlib.sha256(sorted_json.encode()).hexdigest()

    def get(self, key: str, now: datetime) -> RoutingResponse | None:
        entry = self._cache.get(key)
        if entry and entry.is_fresh(now):
            return entry.value
        elif entry:
            del self._cache[key]
        return None

    def set(self, key: str, value: RoutingResponse, ttl_seconds: int, now: datetime) -> None:
        """Store a response, dropping entries that have already expired."""
        expired = [k for k, entry in self._cache.items() if not entry.is_fresh(now)]
        for k in expired:
            del self._cache[k]
        self._cache[key] = CacheEntry(value=value, cached_at=now, ttl_seconds=ttl_seconds)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


class RoutingMetrics:
    """Interface for routing call metrics (no-op default)."""

    def record_latency(self, mode: str, outcome: str, latency_ms: float) -> None:
        pass

    def inc_error(self, mode: str, reason: str) -> None:
        pass

    def inc_cache_hit(self, mode: str) -> None:
        pass


class RoutingLogger:
    """Interface for structured routing logs (no-op default)."""

    def log_attempt(
        self,
        ctx: RouteCallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        pass


class RouteCallExecutor:
    """Calls the routing provider with the full error handling pipeline."""

    def __init__(
        self,
        provider: RoutingProvider,
        config: RouteCallConfig,
        *,
        provider_name: str = "routing",
        metrics: RoutingMetrics | None = None,
        logger: RoutingLogger | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        cache: RouteCache | None = None,
        breaker: CircuitBreaker | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._provider = provider
        self._config = config
        self._provider_name = provider_name
        self._metrics = metrics or RoutingMetrics()
        self._logger = logger or RoutingLogger()
        self._sleep = sleep_fn or asyncio.sleep
        self._cache = cache if cache is not None else RouteCache()
        self._breaker = breaker or CircuitBreaker(
            name=provider_name,
            failure_threshold=config.breaker_failure_threshold,
            window_seconds=config.breaker_window_seconds,
            half_open_seconds=config.breaker_half_open_seconds,
        )
        self._now = now_fn or datetime.now

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def aclose(self) -> None:
        """Close the provider if it holds resources."""
        close = getattr(self._provider, "aclose", None)
        if close is not None:
            await close()

    async def call(
        self,
        request: RoutingRequest,
        cancel_token: CancelToken | None = None,
        *,
        run_id: int | None = None,
    ) -> RoutingResponse:
        """Request a route.

        Raises:
            PlanningCancelledError: The owning run was cancelled
            RoutingCircuitOpenError: Circuit breaker is open
            RoutingTimeoutError: Every attempt timed out
            RoutingExecutionError: Every attempt failed
        """
        ctx = RouteCallContext(run_id=run_id, provider=self._provider_name, mode=request.mode.value)
        cancel_token = cancel_token or CancelToken()
        start_time = time.monotonic()

        cancel_token.throw_if_cancelled()

        # Cached routes bypass the breaker: a known route stays usable during an outage.
        now = self._now()
        ttl = self._config.cache_ttl_seconds
        cache_key = self._cache.make_key(request) if ttl > 0 else ""
        if ttl > 0:
            cached = self._cache.get(cache_key, now)
            if cached is not None:
                elapsed_ms = (time.monotonic() - start_time) * 1000
                self._metrics.record_latency(ctx.mode, "cache_hit", elapsed_ms)
                self._metrics.inc_cache_hit(ctx.mode)
                self._logger.log_attempt(ctx, 0, "cache_hit", elapsed_ms)
                return cached

        if self._breaker.is_open(now):
            elapsed_ms = (time.monotonic() - start_time) * 1000
            self._metrics.record_latency(ctx.mode, "breaker_open", elapsed_ms)
            self._metrics.inc_error(ctx.mode, "breaker_open")
            self._logger.log_attempt(ctx, 0, "breaker_open", elapsed_ms, error_reason="breaker_open")
            raise RoutingCircuitOpenError(f"Circuit breaker open for {self._provider_name}")

        last_error: Exception | None = None
        for attempt in range(self._config.retry_count + 1):
            cancel_token.throw_if_cancelled()
            attempt_start = time.monotonic()

            try:
                timeout_sec = self._config.timeout_ms / 1000
                result = await asyncio.wait_for(self._provider.route(request), timeout=timeout_sec)

                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                self._breaker.record_success()
                self._metrics.record_latency(ctx.mode, "success", elapsed_ms)
                self._logger.log_attempt(ctx, attempt + 1, "success", elapsed_ms)

                if ttl > 0:
                    self._cache.set(cache_key, result, ttl, now)
                return result

            except TimeoutError as e:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                last_error = e
                self._metrics.inc_error(ctx.mode, "timeout")
                self._logger.log_attempt(ctx, attempt + 1, "timeout", elapsed_ms, error_reason="timeout")
                self._breaker.record_failure(self._now())

            except Exception as e:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                last_error = e
                self._metrics.inc_error(ctx.mode, "execution_error")
                self._logger.log_attempt(
                    ctx, attempt + 1, "error", elapsed_ms, error_reason=type(e).__name__
                )
                self._breaker.record_failure(self._now())

            if attempt < self._config.retry_count:
                cancel_token.throw_if_cancelled()
                jitter_ms = random.uniform(
                    self._config.retry_jitter_min_ms, self._config.retry_jitter_max_ms
                )
                await self._sleep(jitter_ms / 1000)

        if isinstance(last_error, TimeoutError):
            raise RoutingTimeoutError(f"Routing {ctx.mode} timed out after all retries")
        raise RoutingExecutionError(f"Routing {ctx.mode} failed after all retries") from last_error
