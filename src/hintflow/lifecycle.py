"""
Dependency lifecycle management.

Initializes dependencies in registration order, watches their health with
a periodic background sweep, and attempts bounded recovery with
exponential backoff when a dependency turns unhealthy.

State machine per dependency::

    NOT_READY -> INITIALIZING -> READY
    READY -> DEGRADED -> RECOVERING -> READY | DEGRADED | EXHAUSTED

EXHAUSTED is terminal until the next ``initialize()``.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from hintflow.errors import InitializationError, RecoveryExhausted
from hintflow.resilience.backoff import BackoffConfig, calculate_delay
from hintflow.telemetry.events import EventKind
from hintflow.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from hintflow.collaborators.base import InitCollaborator
    from hintflow.telemetry.health import TelemetryRegistry
    from hintflow.types.service import ServiceId

logger = get_logger("hintflow.lifecycle")


class ServiceState(str, Enum):
    """Lifecycle state of a dependency."""

    NOT_READY = "not_ready"
    INITIALIZING = "initializing"
    READY = "ready"
    DEGRADED = "degraded"
    RECOVERING = "recovering"
    EXHAUSTED = "exhausted"


@dataclass
class LifecycleConfig:
    """Lifecycle configuration.

    Attributes:
        max_retries: Recovery attempts per dependency before it is exhausted
        retry_delay_ms: Backoff base delay after a failed recovery attempt
        health_check_interval_ms: Period of the background health sweep
    """

    max_retries: int = 3
    retry_delay_ms: int = 5000
    health_check_interval_ms: int = 30_000

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.retry_delay_ms < 0:
            raise ValueError("retry_delay_ms must not be negative")
        if self.health_check_interval_ms <= 0:
            raise ValueError("health_check_interval_ms must be positive")

    def backoff(self) -> BackoffConfig:
        """Backoff policy for failed recovery attempts."""
        return BackoffConfig(base_delay_ms=self.retry_delay_ms)


@dataclass
class ServiceStatus:
    """Lifecycle snapshot for one dependency."""

    service: ServiceId
    state: ServiceState
    ready: bool
    retry_count: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "service": self.service.value,
            "state": self.state.value,
            "ready": self.ready,
            "retry_count": self.retry_count,
        }


class LifecycleManager:
    """Initializes, monitors, and recovers dependencies.

    Each dependency keeps its own recovery counter, so one flapping
    dependency never consumes another's recovery budget.

    Example:
        >>> manager = LifecycleManager(telemetry)
        >>> manager.register(ServiceId.COMPLETION, probe)
        >>> await manager.initialize()
        >>> manager.is_initialized()
        True
        >>> await manager.shutdown()
    """

    def __init__(
        self,
        telemetry: TelemetryRegistry,
        config: LifecycleConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the manager.

        Args:
            telemetry: Registry used for health queries and events
            config: Lifecycle configuration
            sleep: Awaitable used for recovery backoff delays
        """
        self._telemetry = telemetry
        self._config = config or LifecycleConfig()
        self._sleep = sleep
        self._inits: dict[ServiceId, InitCollaborator] = {}
        self._ready: dict[ServiceId, bool] = {}
        self._states: dict[ServiceId, ServiceState] = {}
        self._retries: dict[ServiceId, int] = {}
        self._sweep_task: asyncio.Task[None] | None = None
        self._started = False

    @property
    def config(self) -> LifecycleConfig:
        """Lifecycle configuration."""
        return self._config

    @property
    def services(self) -> list[ServiceId]:
        """Registered dependencies in initialization order."""
        return list(self._inits)

    @property
    def sweep_running(self) -> bool:
        """Whether the background health sweep is active."""
        return self._sweep_task is not None and not self._sweep_task.done()

    def register(self, service: ServiceId, init: InitCollaborator) -> None:
        """Register a dependency and its init collaborator.

        Args:
            service: Dependency (must be tracked by the telemetry registry)
            init: Idempotent async initializer

        Raises:
            ValueError: If the dependency is unknown to telemetry
        """
        if service not in self._telemetry.services:
            raise ValueError(f"Service not tracked by telemetry: {service.value}")
        self._inits[service] = init
        self._ready.setdefault(service, False)
        self._states.setdefault(service, ServiceState.NOT_READY)
        self._retries.setdefault(service, 0)

    def _require(self, service: ServiceId) -> InitCollaborator:
        try:
            return self._inits[service]
        except KeyError:
            raise KeyError(f"Service not registered: {service.value}") from None

    @staticmethod
    def _checked(
        service: ServiceId, init: InitCollaborator
    ) -> Callable[[], Awaitable[Any]]:
        async def call() -> Any:
            result = await init()
            if result is False:
                raise InitializationError(
                    f"{service.value} reported initialization failure", service=service
                )
            return result

        return call

    async def initialize(self) -> None:
        """Initialize every registered dependency in order.

        An init collaborator fails by raising or by returning ``False``.
        The first failure aborts the sequence: dependencies initialized
        before it stay ready, the failing one is marked not ready, and an
        ``InitializationError`` chaining the original failure is raised.
        On success the background health sweep is started.

        Calling this again re-initializes everything and clears recovery
        counters and exhausted states.

        Raises:
            InitializationError: If a dependency fails to initialize
        """
        await self._stop_sweep()
        self._started = True
        for service in self._inits:
            self._ready[service] = False
            self._states[service] = ServiceState.NOT_READY
            self._retries[service] = 0

        for service, init in self._inits.items():
            self._states[service] = ServiceState.INITIALIZING
            try:
                await self._telemetry.with_telemetry(service, self._checked(service, init))
            except Exception as e:
                self._ready[service] = False
                self._states[service] = ServiceState.NOT_READY
                self._telemetry.log_event(
                    EventKind.ERROR,
                    service,
                    "Service initialization failed",
                    {"error_type": type(e).__name__},
                )
                raise InitializationError(
                    f"Failed to initialize {service.value}: {e}",
                    service=service,
                    cause=e,
                ) from e

            self._ready[service] = True
            self._states[service] = ServiceState.READY
            self._telemetry.log_event(EventKind.INFO, service, "Service initialized")

        self._sweep_task = asyncio.get_running_loop().create_task(self._health_loop())
        logger.info(
            "Services initialized",
            services=[s.value for s in self._inits],
            health_check_interval_ms=self._config.health_check_interval_ms,
        )

    def is_initialized(self) -> bool:
        """True iff at least one dependency is registered and all are ready."""
        return bool(self._ready) and all(self._ready.values())

    def is_available(self, service: ServiceId) -> bool:
        """Whether calls to a dependency should be attempted.

        A dependency is available once initialized, unless it is exhausted.
        Unregistered dependencies are always available.
        """
        if service not in self._inits:
            return True
        return self._ready[service] and self._states[service] != ServiceState.EXHAUSTED

    def state_of(self, service: ServiceId) -> ServiceState:
        """Current lifecycle state of a dependency."""
        self._require(service)
        return self._states[service]

    def retry_count(self, service: ServiceId) -> int:
        """Consecutive failed recovery attempts for a dependency."""
        self._require(service)
        return self._retries[service]

    def snapshot(self) -> dict[ServiceId, ServiceStatus]:
        """Lifecycle snapshot of every registered dependency."""
        return {
            service: ServiceStatus(
                service=service,
                state=self._states[service],
                ready=self._ready[service],
                retry_count=self._retries[service],
            )
            for service in self._inits
        }

    async def check_services_health(self) -> dict[ServiceId, bool]:
        """Run one health sweep.

        Every registered dependency that reports unhealthy gets one recovery
        attempt. Dependencies that were never initialized are skipped.

        Returns:
            Health verdict per dependency
        """
        verdicts: dict[ServiceId, bool] = {}
        for service in self._inits:
            if self._states[service] in (ServiceState.NOT_READY, ServiceState.INITIALIZING):
                continue

            healthy = self._telemetry.is_service_healthy(service)
            verdicts[service] = healthy
            if healthy:
                if self._states[service] == ServiceState.DEGRADED:
                    self._states[service] = ServiceState.READY
                    self._retries[service] = 0
                continue

            if self._states[service] == ServiceState.READY:
                self._states[service] = ServiceState.DEGRADED
                self._telemetry.log_event(EventKind.WARNING, service, "Service unhealthy")
            await self.attempt_service_recovery(service)

        return verdicts

    async def attempt_service_recovery(self, service: ServiceId) -> bool:
        """Make one bounded recovery attempt for a dependency.

        Re-invokes the dependency's init collaborator. On failure, waits
        ``retry_delay_ms * 2 ** (attempt - 1)`` before returning; it never
        loops internally. Once ``max_retries`` attempts have failed the
        dependency is exhausted and further calls do nothing.

        Returns:
            True if the dependency recovered
        """
        init = self._require(service)
        max_retries = self._config.max_retries

        if self._retries[service] >= max_retries:
            self._mark_exhausted(service)
            return False

        self._retries[service] += 1
        attempt = self._retries[service]
        self._states[service] = ServiceState.RECOVERING
        self._telemetry.log_event(
            EventKind.INFO,
            service,
            f"Attempting service recovery (attempt {attempt}/{max_retries})",
        )

        try:
            await self._telemetry.with_telemetry(service, self._checked(service, init))
        except Exception as e:
            self._telemetry.log_event(
                EventKind.ERROR,
                service,
                "Service recovery failed",
                {"attempt": attempt, "error_type": type(e).__name__},
            )
            self._states[service] = ServiceState.DEGRADED
            await self._sleep(calculate_delay(attempt, self._config.backoff()))
            if attempt >= max_retries:
                self._mark_exhausted(service)
            return False

        self._retries[service] = 0
        self._ready[service] = True
        self._states[service] = ServiceState.READY
        self._telemetry.log_event(EventKind.INFO, service, "Service recovered")
        return True

    def _mark_exhausted(self, service: ServiceId) -> None:
        if self._states[service] == ServiceState.EXHAUSTED:
            return
        self._states[service] = ServiceState.EXHAUSTED
        error = RecoveryExhausted(service, attempts=self._retries[service])
        self._telemetry.log_event(
            EventKind.ERROR,
            service,
            "Max retry attempts reached",
            {"attempts": error.attempts, "error": str(error)},
        )

    async def _health_loop(self) -> None:
        interval = self._config.health_check_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            try:
                await self.check_services_health()
            except Exception as e:
                logger.warning("Health sweep failed", error=str(e))

    async def _stop_sweep(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def shutdown(self) -> None:
        """Stop the health sweep and reset all readiness and recovery state.

        Calling this when already shut down does nothing.
        """
        if not self._started:
            return
        self._started = False

        await self._stop_sweep()
        for service in self._inits:
            self._ready[service] = False
            self._states[service] = ServiceState.NOT_READY
            self._retries[service] = 0
        logger.info("Services shut down")
