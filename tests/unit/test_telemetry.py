"""Tests for telemetry module."""

import asyncio
import io
import json
import logging

import pytest

from hintflow.telemetry import (
    EventBuffer,
    EventKind,
    HintFlowLogger,
    LogContext,
    SensitiveDataMasker,
    TelemetryEvent,
    TelemetryRegistry,
    clear_log_context,
    get_log_context,
    set_log_context,
)
from hintflow.telemetry.logger import JsonFormatter, TextFormatter
from hintflow.types import ServiceId

SVC = ServiceId.COMPLETION


def _record(telemetry, clock, success: bool, duration_ms: float = 0.0) -> None:
    start = clock() - duration_ms / 1000
    error = None if success else RuntimeError("boom")
    telemetry.record_service_call(SVC, start, success, error)


class TestServiceMetrics:
    """Tests for call recording."""

    def test_fresh_service_has_zero_metrics(self, telemetry) -> None:
        """Test that an untouched service reports empty metrics."""
        metrics = telemetry.get_metrics(SVC)
        assert metrics.total_calls == 0
        assert metrics.successful_calls == 0
        assert metrics.failed_calls == 0
        assert metrics.average_latency_ms == 0.0
        assert metrics.failure_rate == 0.0

    def test_average_latency_is_arithmetic_mean(self, telemetry, clock) -> None:
        """Test incremental mean over many samples."""
        durations = [120.0, 80.0, 455.5, 10.0, 1999.0, 0.0, 63.25]
        for d in durations:
            _record(telemetry, clock, True, d)

        metrics = telemetry.get_metrics(SVC)
        assert metrics.total_calls == len(durations)
        assert metrics.average_latency_ms == pytest.approx(sum(durations) / len(durations))

    def test_counts_successes_and_failures(self, telemetry, clock) -> None:
        """Test success and failure counters."""
        _record(telemetry, clock, True)
        _record(telemetry, clock, False)
        _record(telemetry, clock, False)

        metrics = telemetry.get_metrics(SVC)
        assert (metrics.total_calls, metrics.successful_calls, metrics.failed_calls) == (3, 1, 2)
        assert isinstance(metrics.last_error, RuntimeError)
        assert metrics.last_successful_at == clock()

    def test_get_metrics_returns_copy(self, telemetry, clock) -> None:
        """Test that returned metrics do not alias internal state."""
        metrics = telemetry.get_metrics(SVC)
        metrics.total_calls = 99
        assert telemetry.get_metrics(SVC).total_calls == 0

    def test_services_tracked_independently(self, telemetry, clock) -> None:
        """Test that recording one service leaves others untouched."""
        _record(telemetry, clock, False)
        assert telemetry.get_metrics(ServiceId.VECTOR_SEARCH).total_calls == 0
        assert telemetry.is_service_healthy(ServiceId.VECTOR_SEARCH)

    def test_untracked_service_raises(self, clock) -> None:
        """Test that an untracked service is rejected."""
        registry = TelemetryRegistry(services=[ServiceId.COMPLETION], clock=clock)
        with pytest.raises(KeyError):
            registry.get_metrics(ServiceId.DOCUMENTATION)


class TestHealth:
    """Tests for the health verdict."""

    def test_zero_calls_is_healthy(self, telemetry) -> None:
        """Test that a service with no calls is healthy."""
        assert telemetry.get_service_health(SVC).healthy is True

    def test_health_progression(self, telemetry, clock) -> None:
        """Test failure-rate threshold across a sequence of outcomes."""
        _record(telemetry, clock, False)
        health = telemetry.get_service_health(SVC)
        assert health.metrics.total_calls == 1
        assert health.metrics.failed_calls == 1
        assert health.healthy is False

        _record(telemetry, clock, True)
        health = telemetry.get_service_health(SVC)
        assert (health.metrics.total_calls, health.metrics.successful_calls) == (2, 1)
        assert health.metrics.failure_rate == 0.5
        assert health.healthy is False

        _record(telemetry, clock, True)
        health = telemetry.get_service_health(SVC)
        assert (health.metrics.total_calls, health.metrics.successful_calls) == (3, 2)
        assert health.healthy is True

    def test_failure_rate_unhealthy_regardless_of_latency(self, telemetry, clock) -> None:
        """Test that a high failure rate is unhealthy even with fast calls."""
        _record(telemetry, clock, True, 1.0)
        _record(telemetry, clock, False, 1.0)
        assert telemetry.is_service_healthy(SVC) is False

    def test_only_failures_is_unhealthy(self, telemetry, clock) -> None:
        """Test that calls without any success are unhealthy."""
        _record(telemetry, clock, False)
        assert telemetry.is_service_healthy(SVC) is False

    def test_stale_success_is_unhealthy(self, telemetry, clock) -> None:
        """Test the 5-minute recency window."""
        _record(telemetry, clock, True)
        clock.advance(299)
        assert telemetry.is_service_healthy(SVC) is True
        clock.advance(1)
        assert telemetry.is_service_healthy(SVC) is False

    def test_high_latency_is_unhealthy(self, telemetry, clock) -> None:
        """Test the 5000 ms average latency threshold."""
        _record(telemetry, clock, True, 4999.0)
        assert telemetry.is_service_healthy(SVC) is True
        _record(telemetry, clock, True, 5100.0)
        assert telemetry.is_service_healthy(SVC) is False

    def test_recent_events_capped_at_ten(self, telemetry) -> None:
        """Test that a health snapshot carries at most 10 events."""
        for i in range(15):
            telemetry.log_event(EventKind.INFO, SVC, f"event {i}")
        health = telemetry.get_service_health(SVC)
        assert len(health.recent_events) == 10
        assert health.recent_events[0].message == "event 14"

    def test_health_query_is_read_only(self, telemetry, clock) -> None:
        """Test that polling health changes nothing."""
        _record(telemetry, clock, True, 10.0)
        before = telemetry.get_metrics(SVC)
        for _ in range(5):
            telemetry.get_service_health(SVC)
        assert telemetry.get_metrics(SVC) == before

    def test_health_to_dict(self, telemetry, clock) -> None:
        """Test health serialization."""
        _record(telemetry, clock, False)
        data = telemetry.get_service_health(SVC).to_dict()
        assert data["service"] == "completion"
        assert data["healthy"] is False
        assert data["metrics"]["failed_calls"] == 1
        assert data["metrics"]["last_error"] == "boom"

    def test_get_all_health(self, telemetry) -> None:
        """Test health snapshot for every service."""
        assert set(telemetry.get_all_health()) == set(ServiceId)


class TestWithTelemetry:
    """Tests for the telemetry wrapper."""

    @pytest.mark.asyncio
    async def test_success_recorded(self, telemetry, clock) -> None:
        """Test that a successful call is recorded with its latency."""

        async def op():
            clock.advance(0.25)
            return "ok"

        assert await telemetry.with_telemetry(SVC, op) == "ok"
        metrics = telemetry.get_metrics(SVC)
        assert metrics.successful_calls == 1
        assert metrics.average_latency_ms == pytest.approx(250.0)

    @pytest.mark.asyncio
    async def test_failure_recorded_and_reraised(self, telemetry) -> None:
        """Test that the original exception propagates unchanged."""
        error = ValueError("bad input")

        async def op():
            raise error

        with pytest.raises(ValueError) as exc_info:
            await telemetry.with_telemetry(SVC, op)

        assert exc_info.value is error
        assert telemetry.get_metrics(SVC).failed_calls == 1
        errors = telemetry.get_recent_errors()
        assert len(errors) == 1
        assert errors[0].message == "bad input"
        assert errors[0].metadata["error_type"] == "ValueError"

    @pytest.mark.asyncio
    async def test_cancelled_call_recorded_as_failure(self, telemetry) -> None:
        """Test that cancellation is recorded and propagated."""
        started = asyncio.Event()

        async def op():
            started.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(telemetry.with_telemetry(SVC, op))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert telemetry.get_metrics(SVC).failed_calls == 1
        event = telemetry.get_recent_errors(1)[0]
        assert event.message == "Call cancelled"
        assert event.metadata["error_type"] == "CancelledError"

class TestEvents:
    """Tests for events and the ring buffer."""

    def test_buffer_drops_oldest(self, clock) -> None:
        """Test ring-buffer capacity."""
        buffer = EventBuffer(capacity=3)
        for i in range(5):
            buffer.append(TelemetryEvent.create(clock(), EventKind.INFO, SVC, f"e{i}"))
        assert len(buffer) == 3
        assert [e.message for e in buffer] == ["e4", "e3", "e2"]

    def test_registry_buffer_capacity(self, clock) -> None:
        """Test that the registry keeps at most 1000 events by default."""
        registry = TelemetryRegistry(clock=clock)
        for i in range(1005):
            registry.log_event(EventKind.INFO, SVC, f"e{i}")
        assert len(registry.events) == 1000
        assert registry.events.recent(1)[0].message == "e1004"

    def test_recent_filters(self, telemetry) -> None:
        """Test filtering by service and kind."""
        telemetry.log_event(EventKind.ERROR, SVC, "a")
        telemetry.log_event(EventKind.INFO, SVC, "b")
        telemetry.log_event(EventKind.ERROR, ServiceId.DOCUMENTATION, "c")

        assert [e.message for e in telemetry.get_recent_errors()] == ["c", "a"]
        assert [e.message for e in telemetry.events.recent(service=SVC)] == ["b", "a"]

    def test_metadata_with_logger_parameter_names(self, telemetry) -> None:
        """Test that metadata named like logger parameters is logged safely."""
        metadata = {"msg": "x", "level": "high", "exc_info": True}
        for kind in EventKind:
            event = telemetry.log_event(kind, SVC, "collides", metadata)
            assert dict(event.metadata) == metadata
        assert len(telemetry.events) == len(EventKind)

    def test_event_metadata_is_frozen(self, clock) -> None:
        """Test that event metadata is a read-only copy."""
        metadata = {"attempt": 1}
        event = TelemetryEvent.create(clock(), EventKind.INFO, SVC, "x", metadata)
        metadata["attempt"] = 2
        assert event.metadata["attempt"] == 1
        with pytest.raises(TypeError):
            event.metadata["attempt"] = 3  # type: ignore[index]

    def test_event_to_dict(self, clock) -> None:
        """Test event serialization."""
        event = TelemetryEvent.create(clock(), EventKind.WARNING, SVC, "slow", {"ms": 10})
        assert event.to_dict() == {
            "timestamp": clock(),
            "kind": "warning",
            "service": "completion",
            "message": "slow",
            "metadata": {"ms": 10},
        }

    def test_clear_metrics(self, telemetry, clock) -> None:
        """Test resetting metrics and events."""
        _record(telemetry, clock, False)
        telemetry.log_event(EventKind.ERROR, SVC, "x")
        telemetry.clear_metrics()
        assert telemetry.get_metrics(SVC).total_calls == 0
        assert len(telemetry.events) == 0


class TestLogger:
    """Tests for structured logging."""

    def _make_record(self, msg: str, **fields) -> logging.LogRecord:
        record = logging.LogRecord("hintflow.test", logging.INFO, __file__, 1, msg, None, None)
        if fields:
            record.extra_fields = fields
        return record

    def test_masker_masks_bearer_token(self) -> None:
        """Test masking of bearer tokens."""
        masker = SensitiveDataMasker()
        assert "abc123" not in masker.mask("Authorization: Bearer abc123")

    def test_masker_masks_sensitive_keys(self) -> None:
        """Test masking of sensitive dictionary keys."""
        masker = SensitiveDataMasker()
        masked = masker.mask_dict({"api_key": "secret", "nested": {"token": "t"}, "n": 1})
        assert masked["api_key"] == "***REDACTED***"
        assert masked["nested"]["token"] == "***REDACTED***"
        assert masked["n"] == 1

    def test_json_formatter(self) -> None:
        """Test JSON output with keyword fields."""
        formatter = JsonFormatter(include_timestamp=False)
        data = json.loads(formatter.format(self._make_record("hello", service="completion")))
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["service"] == "completion"

    def test_text_formatter_appends_fields(self) -> None:
        """Test text output with keyword fields."""
        formatter = TextFormatter(include_context=False)
        line = formatter.format(self._make_record("hello", attempt=2))
        assert "hello" in line
        assert line.endswith("attempt=2")

    def test_log_context(self) -> None:
        """Test request-scoped log context."""
        set_log_context(LogContext(request_id="req-1", service="completion"))
        try:
            assert get_log_context().to_dict()["request_id"] == "req-1"
            formatter = JsonFormatter(include_timestamp=False)
            data = json.loads(formatter.format(self._make_record("x")))
            assert data["context"]["request_id"] == "req-1"
        finally:
            clear_log_context()
        assert get_log_context().request_id is None

    def test_configure_text_stream(self) -> None:
        """Test configuring output format and stream."""
        stream = io.StringIO()
        HintFlowLogger.configure(level="debug", format="text", stream=stream)
        try:
            HintFlowLogger.get_logger("hintflow.test.configure").info("configured", n=1)
            assert "configured" in stream.getvalue()
            assert "n=1" in stream.getvalue()
        finally:
            HintFlowLogger.configure(level="INFO", format="json")

    def test_events_mirrored_to_logger(self, clock) -> None:
        """Test that telemetry events are written to the logger."""
        stream = io.StringIO()
        HintFlowLogger.configure(level="INFO", format="json", stream=stream)
        try:
            registry = TelemetryRegistry(
                clock=clock, logger=HintFlowLogger.get_logger("hintflow.test.mirror")
            )
            registry.log_event(EventKind.WARNING, SVC, "degraded", {"factor": 0.5})
            data = json.loads(stream.getvalue().strip().splitlines()[-1])
            assert data["level"] == "WARNING"
            assert data["service"] == "completion"
            assert data["metadata"] == {"factor": 0.5}
        finally:
            HintFlowLogger.configure(level="INFO", format="json")
