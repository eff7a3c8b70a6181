"""Root pytest fixtures for hintflow tests."""

from __future__ import annotations

import pytest

from hintflow.resilience.rate_limiter import AdaptiveRateLimiter
from hintflow.telemetry.health import TelemetryRegistry


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Sleep replacement that records requested delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock shared by the components under test."""
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    """A sleep that records delays without waiting."""
    return RecordingSleep()


@pytest.fixture
def telemetry(clock: FakeClock) -> TelemetryRegistry:
    """Telemetry registry on the fake clock."""
    return TelemetryRegistry(clock=clock)


@pytest.fixture
def limiter(telemetry: TelemetryRegistry, clock: FakeClock) -> AdaptiveRateLimiter:
    """Rate limiter on the fake clock with default limits."""
    return AdaptiveRateLimiter(telemetry, clock=clock)
