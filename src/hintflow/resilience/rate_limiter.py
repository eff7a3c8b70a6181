"""
Health-adaptive rate limiter.

Admits or denies calls per dependency using a fixed one-minute window and
a one-second burst window. Limits are recomputed on every check from the
dependency's base configuration and its current health, so a degraded
dependency is throttled harder only for as long as it stays degraded.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, TypeVar

from hintflow.errors import RateLimitExceeded
from hintflow.telemetry.events import EventKind
from hintflow.types.service import ServiceId

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from hintflow.telemetry.health import TelemetryRegistry

T = TypeVar("T")

WINDOW_SECONDS = 60.0
BURST_WINDOW_SECONDS = 1.0

# Health-driven scaling
UNHEALTHY_SCALE = 0.5
HIGH_LATENCY_SCALE = 0.8
HIGH_LATENCY_THRESHOLD_MS = 2000.0


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limits for one dependency.

    Attributes:
        max_requests_per_minute: Calls admitted per one-minute window
        burst_limit: Calls admitted per one-second burst window
        cooldown_period_ms: Throttle duration after the minute budget is hit
            (half of it after the burst budget is hit)
    """

    max_requests_per_minute: int
    burst_limit: int
    cooldown_period_ms: int

    def __post_init__(self) -> None:
        if self.max_requests_per_minute < 1:
            raise ValueError("max_requests_per_minute must be at least 1")
        if self.burst_limit < 1:
            raise ValueError("burst_limit must be at least 1")
        if self.cooldown_period_ms < 0:
            raise ValueError("cooldown_period_ms must not be negative")

    def scaled(self, factor: float, cooldown_factor: float = 1.0) -> RateLimitConfig:
        """Scale the budgets (floored, never below 1) and the cooldown."""
        return RateLimitConfig(
            max_requests_per_minute=max(1, math.floor(self.max_requests_per_minute * factor)),
            burst_limit=max(1, math.floor(self.burst_limit * factor)),
            cooldown_period_ms=int(self.cooldown_period_ms * cooldown_factor),
        )

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary."""
        return {
            "max_requests_per_minute": self.max_requests_per_minute,
            "burst_limit": self.burst_limit,
            "cooldown_period_ms": self.cooldown_period_ms,
        }


DEFAULT_LIMITS: dict[ServiceId, RateLimitConfig] = {
    ServiceId.COMPLETION: RateLimitConfig(
        max_requests_per_minute=60, burst_limit=10, cooldown_period_ms=60_000
    ),
    ServiceId.VECTOR_SEARCH: RateLimitConfig(
        max_requests_per_minute=100, burst_limit=20, cooldown_period_ms=30_000
    ),
    ServiceId.DOCUMENTATION: RateLimitConfig(
        max_requests_per_minute=120, burst_limit=30, cooldown_period_ms=15_000
    ),
}


@dataclass
class RateLimitState:
    """Mutable admission state for one dependency (times in seconds)."""

    window_requests: int = 0
    window_started_at: float = 0.0
    burst_count: int = 0
    burst_window_started_at: float = 0.0
    throttled: bool = False
    cooldown_until: float = 0.0

    @classmethod
    def fresh(cls, now: float) -> RateLimitState:
        """Create a state whose windows start now."""
        return cls(window_started_at=now, burst_window_started_at=now)


@dataclass
class RateLimitInfo:
    """Read-only snapshot of a dependency's rate-limit state.

    Attributes:
        service: Dependency
        current_requests: Calls admitted in the current minute window
        max_requests: Effective per-minute budget
        burst_count: Calls admitted in the current burst window
        burst_limit: Effective burst budget
        throttled: Whether calls are currently denied
        cooldown_remaining_ms: Time until the throttle lifts
        reset_in_ms: Time until the minute window resets
        effective: Effective limits at snapshot time
    """

    service: ServiceId
    current_requests: int
    max_requests: int
    burst_count: int
    burst_limit: int
    throttled: bool
    cooldown_remaining_ms: float
    reset_in_ms: float
    effective: RateLimitConfig = field(repr=False)

    @property
    def utilization(self) -> float:
        """Share of the minute budget used (0.0 to 1.0)."""
        if self.max_requests == 0:
            return 0.0
        return min(1.0, self.current_requests / self.max_requests)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "service": self.service.value,
            "current_requests": self.current_requests,
            "max_requests": self.max_requests,
            "burst_count": self.burst_count,
            "burst_limit": self.burst_limit,
            "throttled": self.throttled,
            "cooldown_remaining_ms": self.cooldown_remaining_ms,
            "reset_in_ms": self.reset_in_ms,
            "utilization": self.utilization,
            "effective": self.effective.to_dict(),
        }


class AdaptiveRateLimiter:
    """Per-dependency rate limiter tuned by dependency health.

    Example:
        >>> limiter = AdaptiveRateLimiter(telemetry)
        >>> if limiter.check_rate_limit(ServiceId.COMPLETION):
        ...     await call_completion()
        >>> # or
        >>> await limiter.with_rate_limit(ServiceId.COMPLETION, call_completion)
    """

    def __init__(
        self,
        telemetry: TelemetryRegistry,
        limits: dict[ServiceId, RateLimitConfig] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            telemetry: Registry consulted for health and used for events
            limits: Base limits overriding DEFAULT_LIMITS per dependency
            clock: Time source in seconds
        """
        self._telemetry = telemetry
        self._clock = clock
        self._base: dict[ServiceId, RateLimitConfig] = {**DEFAULT_LIMITS, **(limits or {})}
        now = clock()
        self._state: dict[ServiceId, RateLimitState] = {}
        self._effective: dict[ServiceId, RateLimitConfig] = {}
        self._locks: dict[ServiceId, threading.Lock] = {}
        for service in telemetry.services:
            if service not in self._base:
                raise ValueError(f"No rate limit configured for {service.value}")
            self._state[service] = RateLimitState.fresh(now)
            self._effective[service] = self._base[service]
            self._locks[service] = threading.Lock()

    def base_config(self, service: ServiceId) -> RateLimitConfig:
        """Get the configured base limits for a dependency."""
        return self._base[service]

    def configure(self, service: ServiceId, config: RateLimitConfig) -> None:
        """Replace the base limits for a dependency."""
        with self._locks[service]:
            self._base[service] = config
            self._effective[service] = config

    def effective_config(self, service: ServiceId) -> RateLimitConfig:
        """Derive the effective limits from base limits and current health.

        - Unhealthy: budgets halved, cooldown doubled.
        - Healthy with average latency above 2000 ms: budgets scaled by 0.8.
        - Otherwise: base limits unchanged.
        """
        base = self._base[service]
        health = self._telemetry.get_service_health(service)
        if not health.healthy:
            return base.scaled(UNHEALTHY_SCALE, cooldown_factor=2.0)
        if health.metrics.average_latency_ms > HIGH_LATENCY_THRESHOLD_MS:
            return base.scaled(HIGH_LATENCY_SCALE)
        return base

    def _reset_counters(self, service: ServiceId, state: RateLimitState, now: float) -> None:
        # A finished cooldown opens fresh windows regardless of their age
        if state.throttled and now >= state.cooldown_until:
            state.window_started_at = now - WINDOW_SECONDS
            state.burst_window_started_at = now - BURST_WINDOW_SECONDS

        if now - state.window_started_at >= WINDOW_SECONDS:
            state.window_requests = 0
            state.window_started_at = now

        if now - state.burst_window_started_at >= BURST_WINDOW_SECONDS:
            state.burst_count = 0
            state.burst_window_started_at = now

        if state.throttled and now >= state.cooldown_until:
            state.throttled = False
            self._telemetry.log_event(
                EventKind.INFO, service, "Rate limit cooldown period ended"
            )

    def _adjust_limits(self, service: ServiceId) -> RateLimitConfig:
        effective = self.effective_config(service)
        previous = self._effective[service]
        if effective != previous:
            self._effective[service] = effective
            if effective == self._base[service]:
                self._telemetry.log_event(
                    EventKind.INFO,
                    service,
                    "Rate limits restored",
                    {"limits": effective.to_dict()},
                )
            else:
                self._telemetry.log_event(
                    EventKind.WARNING,
                    service,
                    "Rate limits reduced due to service health",
                    {"limits": effective.to_dict()},
                )
        return effective

    def check_rate_limit(self, service: ServiceId) -> bool:
        """Decide whether one call to a dependency may proceed.

        Admission consumes one unit of both the minute and the burst budget.
        Exceeding either budget throttles the dependency for the (effective)
        cooldown period, or half of it for a burst.

        Returns:
            True if the call is admitted
        """
        with self._locks[service]:
            state = self._state[service]
            now = self._clock()

            self._reset_counters(service, state, now)
            limits = self._adjust_limits(service)

            if state.throttled:
                return False

            if state.window_requests >= limits.max_requests_per_minute:
                state.throttled = True
                state.cooldown_until = now + limits.cooldown_period_ms / 1000
                self._telemetry.log_event(
                    EventKind.WARNING,
                    service,
                    "Rate limit exceeded (per minute)",
                    {
                        "requests": state.window_requests,
                        "limit": limits.max_requests_per_minute,
                    },
                )
                return False

            if state.burst_count >= limits.burst_limit:
                state.throttled = True
                state.cooldown_until = now + limits.cooldown_period_ms / 2000
                self._telemetry.log_event(
                    EventKind.WARNING,
                    service,
                    "Burst limit exceeded",
                    {"burst_count": state.burst_count, "limit": limits.burst_limit},
                )
                return False

            state.window_requests += 1
            state.burst_count += 1
            return True

    async def with_rate_limit(
        self,
        service: ServiceId,
        operation: Callable[[], Awaitable[T]],
        fallback: Callable[[], Awaitable[T]] | None = None,
    ) -> T:
        """Run an operation if admitted, otherwise the fallback.

        Args:
            service: Dependency the operation calls
            operation: Async operation factory
            fallback: Optional async fallback used on denial

        Returns:
            Result of the operation or the fallback

        Raises:
            RateLimitExceeded: If denied and no fallback is given
        """
        if not self.check_rate_limit(service):
            if fallback is not None:
                self._telemetry.log_event(
                    EventKind.INFO, service, "Using fallback due to rate limiting"
                )
                return await fallback()
            info = self.get_rate_limit_info(service)
            raise RateLimitExceeded(service, retry_after_ms=info.cooldown_remaining_ms)

        return await operation()

    def get_rate_limit_info(self, service: ServiceId) -> RateLimitInfo:
        """Snapshot the current rate-limit state without modifying it."""
        effective = self.effective_config(service)
        with self._locks[service]:
            state = replace(self._state[service])
        now = self._clock()

        throttled = state.throttled and now < state.cooldown_until
        cooldown_over = state.throttled and not throttled
        window_elapsed = now - state.window_started_at
        window_expired = cooldown_over or window_elapsed >= WINDOW_SECONDS
        burst_expired = (
            cooldown_over or now - state.burst_window_started_at >= BURST_WINDOW_SECONDS
        )

        return RateLimitInfo(
            service=service,
            current_requests=0 if window_expired else state.window_requests,
            max_requests=effective.max_requests_per_minute,
            burst_count=0 if burst_expired else state.burst_count,
            burst_limit=effective.burst_limit,
            throttled=throttled,
            cooldown_remaining_ms=(
                max(0.0, (state.cooldown_until - now) * 1000) if throttled else 0.0
            ),
            reset_in_ms=(
                WINDOW_SECONDS * 1000
                if window_expired
                else (WINDOW_SECONDS - window_elapsed) * 1000
            ),
            effective=effective,
        )

    def clear_state(self, service: ServiceId | None = None) -> None:
        """Reset counters and throttle state.

        Args:
            service: Dependency to reset (all if None)
        """
        services = [service] if service is not None else list(self._state)
        now = self._clock()
        for svc in services:
            with self._locks[svc]:
                self._state[svc] = RateLimitState.fresh(now)
                self._effective[svc] = self._base[svc]
