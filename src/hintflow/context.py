"""
Orchestration context.

Owns one telemetry registry, rate limiter, lifecycle manager, and result
cache, wired together and started or stopped as a unit. Several contexts
can coexist in one process without sharing state.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from hintflow.cache.store import ResultCache
from hintflow.config import HintFlowSettings
from hintflow.lifecycle import LifecycleManager, ServiceStatus
from hintflow.resilience.fallback import FallbackChain
from hintflow.resilience.rate_limiter import AdaptiveRateLimiter, RateLimitInfo
from hintflow.telemetry.health import ServiceHealth, TelemetryRegistry
from hintflow.telemetry.logger import get_logger
from hintflow.types.service import ServiceId

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from hintflow.collaborators.base import AnnotationSource, InitCollaborator
    from hintflow.types.annotation import Annotation

logger = get_logger("hintflow.context")


@dataclass
class ServiceReport:
    """Combined status of one dependency."""

    health: ServiceHealth
    rate_limit: RateLimitInfo
    lifecycle: ServiceStatus | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "health": self.health.to_dict(),
            "rate_limit": self.rate_limit.to_dict(),
            "lifecycle": self.lifecycle.to_dict() if self.lifecycle else None,
        }


@dataclass
class StatusReport:
    """Point-in-time status of every dependency, for status displays.

    Attributes:
        initialized: Whether every registered dependency is ready
        services: Per-dependency report
        timestamp: Clock time of the report (seconds)
    """

    initialized: bool
    services: dict[ServiceId, ServiceReport] = field(default_factory=dict)
    timestamp: float = 0.0

    @property
    def healthy(self) -> bool:
        """Whether every dependency is currently healthy."""
        return all(r.health.healthy for r in self.services.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "initialized": self.initialized,
            "healthy": self.healthy,
            "timestamp": self.timestamp,
            "services": {s.value: r.to_dict() for s, r in self.services.items()},
        }


class OrchestrationContext:
    """Explicitly owned bundle of the resilience components.

    Example:
        >>> async with OrchestrationContext(settings) as ctx:
        ...     ctx.register_dependency(ServiceId.COMPLETION, probe)
        ...     await ctx.initialize()
        ...     chain = ctx.fallback_chain(primary=source, static=PatternHeuristic())
        ...     result = await chain.execute(request)
    """

    def __init__(
        self,
        settings: HintFlowSettings | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the context.

        Args:
            settings: Settings for every component (defaults if None)
            clock: Time source in seconds shared by all components
            sleep: Awaitable used for recovery backoff delays
        """
        self._settings = settings or HintFlowSettings()
        self._clock = clock
        self.telemetry = TelemetryRegistry(clock=clock)
        self.rate_limiter = AdaptiveRateLimiter(
            self.telemetry, limits=self._settings.rate_limit_configs(), clock=clock
        )
        self.lifecycle = LifecycleManager(
            self.telemetry, self._settings.lifecycle_config(), sleep=sleep
        )
        self.cache: ResultCache[list[Annotation]] = ResultCache(
            self._settings.cache_config(), clock=clock
        )

    @property
    def settings(self) -> HintFlowSettings:
        """Settings the context was built from."""
        return self._settings

    def register_dependency(self, service: ServiceId, init: InitCollaborator) -> None:
        """Register a dependency's init collaborator with the lifecycle manager."""
        self.lifecycle.register(service, init)

    async def initialize(self) -> None:
        """Initialize all dependencies and start background sweeps.

        Raises:
            InitializationError: If a dependency fails to initialize
        """
        await self.lifecycle.initialize()
        self.cache.start_sweeper()

    async def shutdown(self) -> None:
        """Stop background sweeps and reset all component state.

        Idempotent.
        """
        await self.cache.stop_sweeper()
        await self.lifecycle.shutdown()
        self.cache.clear()
        self.rate_limiter.clear_state()
        self.telemetry.clear_metrics()
        logger.debug("Orchestration context shut down")

    async def __aenter__(self) -> OrchestrationContext:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    def fallback_chain(
        self,
        *,
        primary: AnnotationSource | None = None,
        secondary: AnnotationSource | None = None,
        static: AnnotationSource | None = None,
        primary_service: ServiceId = ServiceId.COMPLETION,
        secondary_service: ServiceId = ServiceId.VECTOR_SEARCH,
        timeout_ms: int | None = None,
    ) -> FallbackChain:
        """Build a fallback chain wired to this context's components."""
        return FallbackChain.build(
            self.telemetry,
            self.rate_limiter,
            self.lifecycle,
            primary=primary,
            secondary=secondary,
            static=static,
            primary_service=primary_service,
            secondary_service=secondary_service,
            timeout_ms=timeout_ms,
        )

    def status_report(self) -> StatusReport:
        """Snapshot health, rate limits, and lifecycle state.

        Read-only; safe to poll.
        """
        lifecycle = self.lifecycle.snapshot()
        return StatusReport(
            initialized=self.lifecycle.is_initialized(),
            services={
                service: ServiceReport(
                    health=self.telemetry.get_service_health(service),
                    rate_limit=self.rate_limiter.get_rate_limit_info(service),
                    lifecycle=lifecycle.get(service),
                )
                for service in self.telemetry.services
            },
            timestamp=self._clock(),
        )
