"""hintflow: resilience and orchestration for annotation services.

Wraps calls to external dependencies with health telemetry, adaptive rate
limiting, bounded recovery, result caching, and a tiered fallback chain.
"""
from __future__ import annotations

from hintflow.cache import CacheConfig, CacheKeyGenerator, ResultCache
from hintflow.collaborators import HttpAnnotationSource, HttpReadinessProbe
from hintflow.config import HintFlowSettings, load_settings
from hintflow.context import OrchestrationContext, StatusReport
from hintflow.errors import (
    ConfigurationError,
    DependencyCallError,
    FallbackExhaustedError,
    HintFlowError,
    InitializationError,
    RateLimitExceeded,
    RecoveryExhausted,
)
from hintflow.heuristics import PatternHeuristic
from hintflow.hints import HintService
from hintflow.lifecycle import LifecycleConfig, LifecycleManager, ServiceState
from hintflow.resilience import (
    AdaptiveRateLimiter,
    FallbackChain,
    FallbackResult,
    RateLimitConfig,
    TierKind,
)
from hintflow.telemetry import TelemetryRegistry, get_logger
from hintflow.types import Annotation, AnnotationRequest, ServiceId, SkillLevel, Span

__version__ = "0.1.0"

__all__ = [
    # Context
    "OrchestrationContext",
    "StatusReport",
    # Components
    "AdaptiveRateLimiter",
    "FallbackChain",
    "FallbackResult",
    "LifecycleManager",
    "ResultCache",
    "TelemetryRegistry",
    # Configuration
    "CacheConfig",
    "HintFlowSettings",
    "LifecycleConfig",
    "RateLimitConfig",
    "load_settings",
    # Sources
    "HintService",
    "HttpAnnotationSource",
    "HttpReadinessProbe",
    "PatternHeuristic",
    # Types
    "Annotation",
    "AnnotationRequest",
    "CacheKeyGenerator",
    "ServiceId",
    "ServiceState",
    "SkillLevel",
    "Span",
    "TierKind",
    # Errors
    "ConfigurationError",
    "DependencyCallError",
    "FallbackExhaustedError",
    "HintFlowError",
    "InitializationError",
    "RateLimitExceeded",
    "RecoveryExhausted",
    # Logging
    "get_logger",
    "__version__",
]
