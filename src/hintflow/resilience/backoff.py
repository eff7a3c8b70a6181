"""
Exponential backoff for dependency recovery.

The n-th consecutive failed recovery attempt waits
``base_delay_ms * exponential_base ** (n - 1)`` before the next sweep may
try again, optionally capped and jittered.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum


class JitterStrategy(str, Enum):
    """Jitter strategy for backoff delays."""

    NONE = "none"
    FULL = "full"
    EQUAL = "equal"


@dataclass
class BackoffConfig:
    """Configuration for recovery backoff.

    Attributes:
        base_delay_ms: Delay after the first failed attempt in milliseconds
        exponential_base: Growth factor per further failed attempt
        max_delay_ms: Upper bound on a single delay (None = unbounded)
        jitter: Jitter strategy (none, full, equal)
    """

    base_delay_ms: int = 5000
    exponential_base: float = 2.0
    max_delay_ms: int | None = None
    jitter: JitterStrategy = JitterStrategy.NONE

    def __post_init__(self) -> None:
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must not be negative")
        if self.exponential_base < 1:
            raise ValueError("exponential_base must be at least 1")

    @classmethod
    def no_delay(cls) -> BackoffConfig:
        """Create a config that never waits."""
        return cls(base_delay_ms=0)


def calculate_delay(attempt: int, config: BackoffConfig | None = None) -> float:
    """Calculate the backoff delay after a failed attempt.

    Args:
        attempt: 1-based number of the attempt that just failed
        config: Backoff configuration

    Returns:
        Delay in seconds
    """
    config = config or BackoffConfig()
    if attempt < 1:
        return 0.0

    delay_ms = config.base_delay_ms * (config.exponential_base ** (attempt - 1))

    if config.max_delay_ms is not None:
        delay_ms = min(delay_ms, config.max_delay_ms)

    if config.jitter == JitterStrategy.FULL:
        delay_ms = random.uniform(0, delay_ms)
    elif config.jitter == JitterStrategy.EQUAL:
        delay_ms = delay_ms / 2 + random.uniform(0, delay_ms / 2)

    return delay_ms / 1000.0
