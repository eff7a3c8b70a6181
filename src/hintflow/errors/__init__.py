"""
Error hierarchy for hintflow.
"""

from hintflow.errors.base import (
    ConfigurationError,
    DependencyCallError,
    ErrorContext,
    FallbackExhaustedError,
    HintFlowError,
    InitializationError,
    RateLimitExceeded,
    RecoveryExhausted,
)

__all__ = [
    "ConfigurationError",
    "DependencyCallError",
    "ErrorContext",
    "FallbackExhaustedError",
    "HintFlowError",
    "InitializationError",
    "RateLimitExceeded",
    "RecoveryExhausted",
]
