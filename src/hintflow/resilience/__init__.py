"""
Resilience layer - Adaptive rate limiting, recovery backoff, and tiered fallback.

This module provides:
- AdaptiveRateLimiter: Minute and burst windows tuned by dependency health
- BackoffConfig / calculate_delay: Exponential backoff for recovery attempts
- FallbackChain: Ranked primary / secondary / static tiers
"""

from hintflow.resilience.backoff import BackoffConfig, JitterStrategy, calculate_delay
from hintflow.resilience.fallback import FallbackChain, FallbackResult, Tier, TierKind
from hintflow.resilience.rate_limiter import (
    DEFAULT_LIMITS,
    AdaptiveRateLimiter,
    RateLimitConfig,
    RateLimitInfo,
    RateLimitState,
)

__all__ = [
    # Rate limiting
    "AdaptiveRateLimiter",
    "DEFAULT_LIMITS",
    "RateLimitConfig",
    "RateLimitInfo",
    "RateLimitState",
    # Backoff
    "BackoffConfig",
    "JitterStrategy",
    "calculate_delay",
    # Fallback
    "FallbackChain",
    "FallbackResult",
    "Tier",
    "TierKind",
]
