"""
Telemetry module for hintflow.

Provides structured logging, telemetry events, and per-dependency
health tracking.
"""

from hintflow.telemetry.events import EventBuffer, EventKind, TelemetryEvent
from hintflow.telemetry.health import (
    HEALTH_WINDOW_SECONDS,
    MAX_HEALTHY_LATENCY_MS,
    UNHEALTHY_FAILURE_RATE,
    ServiceHealth,
    ServiceMetrics,
    TelemetryRegistry,
)
from hintflow.telemetry.logger import (
    HintFlowLogger,
    LogContext,
    LogLevel,
    SensitiveDataMasker,
    clear_log_context,
    get_log_context,
    get_logger,
    set_log_context,
)

__all__ = [
    "EventBuffer",
    "EventKind",
    "HEALTH_WINDOW_SECONDS",
    "HintFlowLogger",
    "LogContext",
    "LogLevel",
    "MAX_HEALTHY_LATENCY_MS",
    "SensitiveDataMasker",
    "ServiceHealth",
    "ServiceMetrics",
    "TelemetryEvent",
    "TelemetryRegistry",
    "UNHEALTHY_FAILURE_RATE",
    "clear_log_context",
    "get_log_context",
    "get_logger",
    "set_log_context",
]
