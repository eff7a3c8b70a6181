"""
Telemetry events and the bounded event buffer.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from hintflow.types.service import ServiceId


class EventKind(str, Enum):
    """Telemetry event severity."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class TelemetryEvent:
    """Immutable record of something that happened to a dependency.

    Attributes:
        timestamp: Wall-clock time in seconds
        kind: Event severity
        service: Dependency the event concerns
        message: Human-readable description
        metadata: Additional structured fields (read-only)
    """

    timestamp: float
    kind: EventKind
    service: ServiceId
    message: str
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def create(
        cls,
        timestamp: float,
        kind: EventKind,
        service: ServiceId,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> TelemetryEvent:
        """Create an event, freezing a copy of the metadata."""
        return cls(
            timestamp=timestamp,
            kind=kind,
            service=service,
            message=message,
            metadata=MappingProxyType(dict(metadata or {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "timestamp": self.timestamp,
            "kind": self.kind.value,
            "service": self.service.value,
            "message": self.message,
            "metadata": dict(self.metadata),
        }


class EventBuffer:
    """Ring buffer of telemetry events.

    Holds at most ``capacity`` events; the oldest event is dropped when a new
    one arrives on a full buffer. Iteration yields newest events first.
    """

    def __init__(self, capacity: int = 1000) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._events: deque[TelemetryEvent] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        """Maximum number of retained events."""
        return self._events.maxlen or 0

    def append(self, event: TelemetryEvent) -> None:
        """Add an event, dropping the oldest one if full."""
        with self._lock:
            self._events.append(event)

    def recent(
        self,
        limit: int | None = None,
        *,
        service: ServiceId | None = None,
        kind: EventKind | None = None,
    ) -> list[TelemetryEvent]:
        """Get the newest events, optionally filtered.

        Args:
            limit: Maximum number of events to return (all if None)
            service: Only events for this service
            kind: Only events of this kind

        Returns:
            Events, newest first
        """
        with self._lock:
            snapshot = list(self._events)

        result: list[TelemetryEvent] = []
        for event in reversed(snapshot):
            if service is not None and event.service != service:
                continue
            if kind is not None and event.kind != kind:
                continue
            result.append(event)
            if limit is not None and len(result) >= limit:
                break
        return result

    def clear(self) -> None:
        """Drop every event."""
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[TelemetryEvent]:
        return iter(self.recent())
