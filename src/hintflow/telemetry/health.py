"""
Per-dependency call metrics and health.

Records the outcome of every dependency call, keeps a bounded buffer of
telemetry events, and derives a health verdict on demand from the
recorded metrics.
"""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, TypeVar

from hintflow.telemetry.events import EventBuffer, EventKind, TelemetryEvent
from hintflow.telemetry.logger import HintFlowLogger, get_logger
from hintflow.types.service import ServiceId

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

T = TypeVar("T")

# Health thresholds
HEALTH_WINDOW_SECONDS = 5 * 60.0
UNHEALTHY_FAILURE_RATE = 0.5
MAX_HEALTHY_LATENCY_MS = 5000.0
RECENT_EVENTS_LIMIT = 10


@dataclass
class ServiceMetrics:
    """Call metrics for one dependency.

    Attributes:
        total_calls: Number of recorded calls
        successful_calls: Number of successful calls
        failed_calls: Number of failed calls
        average_latency_ms: Mean duration of all recorded calls
        last_successful_at: Time of the most recent success (seconds)
        last_error: Most recent failure
    """

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    average_latency_ms: float = 0.0
    last_successful_at: float | None = None
    last_error: BaseException | None = None

    @property
    def failure_rate(self) -> float:
        """Failed calls over total calls (0.0 when nothing was recorded)."""
        return self.failed_calls / max(self.total_calls, 1)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_calls": self.total_calls,
            "successful_calls": self.successful_calls,
            "failed_calls": self.failed_calls,
            "average_latency_ms": self.average_latency_ms,
            "failure_rate": self.failure_rate,
            "last_successful_at": self.last_successful_at,
            "last_error": str(self.last_error) if self.last_error else None,
        }


@dataclass
class ServiceHealth:
    """Health snapshot for one dependency.

    Attributes:
        service: Dependency
        healthy: Health verdict at snapshot time
        metrics: Copy of the dependency's metrics
        recent_events: Up to 10 newest events for the dependency
    """

    service: ServiceId
    healthy: bool
    metrics: ServiceMetrics
    recent_events: list[TelemetryEvent] = field(default_factory=list)

    @property
    def recent_errors(self) -> list[TelemetryEvent]:
        """Error events among the recent events."""
        return [e for e in self.recent_events if e.kind == EventKind.ERROR]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "service": self.service.value,
            "healthy": self.healthy,
            "metrics": self.metrics.to_dict(),
            "recent_events": [e.to_dict() for e in self.recent_events],
        }


class TelemetryRegistry:
    """Tracks dependency health from observed call outcomes.

    Example:
        >>> telemetry = TelemetryRegistry()
        >>> result = await telemetry.with_telemetry(
        ...     ServiceId.COMPLETION, lambda: client.complete(prompt)
        ... )
        >>> telemetry.get_service_health(ServiceId.COMPLETION).healthy
        True
    """

    def __init__(
        self,
        services: Iterable[ServiceId] = ServiceId,
        event_capacity: int = 1000,
        clock: Callable[[], float] = time.time,
        logger: HintFlowLogger | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            services: Dependencies to track
            event_capacity: Ring buffer capacity for telemetry events
            clock: Wall-clock source in seconds
            logger: Logger that mirrors telemetry events
        """
        self._clock = clock
        self._logger = logger or get_logger("hintflow.telemetry")
        self._events = EventBuffer(event_capacity)
        self._metrics: dict[ServiceId, ServiceMetrics] = {}
        self._locks: dict[ServiceId, threading.Lock] = {}
        for service in services:
            self._metrics[service] = ServiceMetrics()
            self._locks[service] = threading.Lock()

    @property
    def services(self) -> list[ServiceId]:
        """Tracked dependencies."""
        return list(self._metrics)

    @property
    def events(self) -> EventBuffer:
        """The telemetry event buffer."""
        return self._events

    def now(self) -> float:
        """Current time according to the registry clock."""
        return self._clock()

    def _require(self, service: ServiceId) -> ServiceMetrics:
        try:
            return self._metrics[service]
        except KeyError:
            raise KeyError(f"Service not tracked: {service}") from None

    def log_event(
        self,
        kind: EventKind,
        service: ServiceId,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> TelemetryEvent:
        """Append an event to the buffer and mirror it to the logger.

        Args:
            kind: Event severity
            service: Dependency the event concerns
            message: Description
            metadata: Additional fields

        Returns:
            The recorded event
        """
        event = TelemetryEvent.create(
            timestamp=self._clock(),
            kind=EventKind(kind),
            service=service,
            message=message,
            metadata=metadata,
        )
        self._events.append(event)

        # Metadata keys may shadow logger parameters (msg, level, exc_info)
        fields: dict[str, Any] = {"service": service.value}
        if metadata:
            fields["metadata"] = dict(metadata)
        if event.kind == EventKind.ERROR:
            self._logger.error(message, **fields)
        elif event.kind == EventKind.WARNING:
            self._logger.warning(message, **fields)
        else:
            self._logger.info(message, **fields)

        return event

    def record_service_call(
        self,
        service: ServiceId,
        start_time: float,
        success: bool,
        error: BaseException | None = None,
    ) -> None:
        """Record the outcome of one dependency call.

        Args:
            service: Dependency that was called
            start_time: Clock time when the call started (seconds)
            success: Whether the call succeeded
            error: Failure, when the call failed
        """
        metrics = self._require(service)
        with self._locks[service]:
            now = self._clock()
            duration_ms = max(0.0, (now - start_time) * 1000)

            metrics.total_calls += 1
            if success:
                metrics.successful_calls += 1
                metrics.last_successful_at = now
            else:
                metrics.failed_calls += 1
                metrics.last_error = error

            n = metrics.total_calls
            metrics.average_latency_ms = (
                metrics.average_latency_ms * (n - 1) + duration_ms
            ) / n

    def is_service_healthy(self, service: ServiceId) -> bool:
        """Derive the health verdict for a dependency.

        A dependency is healthy when all of these hold:
        1. It never succeeded and was never called, or its last success is
           within the 5-minute health window.
        2. Its failure rate is below 0.5.
        3. Its average latency is below 5000 ms.
        """
        metrics = self._require(service)
        with self._locks[service]:
            return self._healthy(metrics)

    def _healthy(self, metrics: ServiceMetrics) -> bool:
        if metrics.last_successful_at is None:
            recent_success = metrics.total_calls == 0
        else:
            recent_success = (
                self._clock() - metrics.last_successful_at < HEALTH_WINDOW_SECONDS
            )
        return (
            recent_success
            and metrics.failure_rate < UNHEALTHY_FAILURE_RATE
            and metrics.average_latency_ms < MAX_HEALTHY_LATENCY_MS
        )

    def get_metrics(self, service: ServiceId) -> ServiceMetrics:
        """Get a copy of a dependency's metrics."""
        metrics = self._require(service)
        with self._locks[service]:
            return replace(metrics)

    def get_service_health(self, service: ServiceId) -> ServiceHealth:
        """Get a health snapshot for a dependency.

        Read-only; safe to poll from status displays.
        """
        metrics = self._require(service)
        with self._locks[service]:
            healthy = self._healthy(metrics)
            snapshot = replace(metrics)
        return ServiceHealth(
            service=service,
            healthy=healthy,
            metrics=snapshot,
            recent_events=self._events.recent(RECENT_EVENTS_LIMIT, service=service),
        )

    def get_all_health(self) -> dict[ServiceId, ServiceHealth]:
        """Get health snapshots for every tracked dependency."""
        return {service: self.get_service_health(service) for service in self._metrics}

    def get_recent_errors(self, limit: int = RECENT_EVENTS_LIMIT) -> list[TelemetryEvent]:
        """Get the newest error events across all dependencies."""
        return self._events.recent(limit, kind=EventKind.ERROR)

    def clear_metrics(self) -> None:
        """Reset all metrics and drop all events."""
        for service in self._metrics:
            with self._locks[service]:
                self._metrics[service] = ServiceMetrics()
        self._events.clear()

    async def with_telemetry(
        self,
        service: ServiceId,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """Run an operation and record its outcome.

        The outcome is recorded whether the operation succeeds or fails. On
        failure an error event is logged and the original exception is
        re-raised unchanged.

        Args:
            service: Dependency the operation calls
            operation: Async operation factory

        Returns:
            The operation's result
        """
        start = self._clock()
        try:
            result = await operation()
        except asyncio.CancelledError as e:
            self.record_service_call(service, start, False, e)
            self.log_event(
                EventKind.ERROR,
                service,
                "Call cancelled",
                {"error_type": type(e).__name__},
            )
            raise
        except Exception as e:
            self.record_service_call(service, start, False, e)
            self.log_event(
                EventKind.ERROR,
                service,
                str(e) or type(e).__name__,
                {"error_type": type(e).__name__},
            )
            raise
        self.record_service_call(service, start, True)
        return result
