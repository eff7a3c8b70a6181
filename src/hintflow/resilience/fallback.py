"""
Tiered fallback chain for annotation requests.

Tiers are a fixed, ranked set: a primary dependency, an optional secondary
dependency, and a dependency-free static heuristic. Any tier failure,
rate-limit denial included, advances to the next tier; an error reaches
the caller only when every tier has failed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from hintflow.errors import FallbackExhaustedError, RateLimitExceeded
from hintflow.telemetry.events import EventKind
from hintflow.telemetry.logger import (
    LogContext,
    get_log_context,
    get_logger,
    set_log_context,
)
from hintflow.types.annotation import Annotation
from hintflow.types.service import ServiceId

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from hintflow.collaborators.base import AnnotationSource
    from hintflow.lifecycle import LifecycleManager
    from hintflow.resilience.rate_limiter import AdaptiveRateLimiter
    from hintflow.telemetry.health import TelemetryRegistry
    from hintflow.types.annotation import AnnotationRequest

logger = get_logger("hintflow.fallback")


class TierKind(str, Enum):
    """Fallback tier, in rank order."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    STATIC = "static"

    @property
    def rank(self) -> int:
        """Position in the chain (0 is tried first)."""
        return list(TierKind).index(self)


@dataclass(frozen=True)
class Tier:
    """One ranked strategy in a fallback chain.

    Attributes:
        kind: Tier rank
        source: Annotation source invoked for this tier
        service: Dependency behind the source (None for the static tier)
        timeout_ms: Optional deadline for the source call
    """

    kind: TierKind
    source: AnnotationSource
    service: ServiceId | None = None
    timeout_ms: int | None = None

    def __post_init__(self) -> None:
        if self.kind == TierKind.STATIC and self.service is not None:
            raise ValueError("The static tier must not depend on a service")
        if self.kind != TierKind.STATIC and self.service is None:
            raise ValueError(f"The {self.kind.value} tier requires a service")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")

    @property
    def name(self) -> str:
        """Tier name used in results and errors."""
        return self.kind.value


@dataclass
class FallbackResult:
    """Result of a fallback chain execution.

    Attributes:
        annotations: Annotations produced by the winning tier
        tier_used: Tier that produced them
        tiers_tried: Tier names attempted, in order
        errors: Mapping of tier names to the errors they raised
    """

    annotations: list[Annotation]
    tier_used: TierKind
    tiers_tried: list[str] = field(default_factory=list)
    errors: dict[str, Exception] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        """Whether a lower tier than the primary served the request."""
        return self.tier_used != TierKind.PRIMARY


class FallbackChain:
    """Runs an annotation request through ranked tiers until one succeeds.

    Dependency tiers are wrapped in rate limiting and telemetry. A tier
    whose dependency the lifecycle manager reports as unavailable is
    skipped.

    Example:
        >>> chain = FallbackChain.build(
        ...     telemetry, limiter, lifecycle,
        ...     primary=completion_source,
        ...     secondary=similarity_source,
        ...     static=PatternHeuristic(),
        ... )
        >>> result = await chain.execute(AnnotationRequest(code=source))
        >>> result.tier_used
        <TierKind.PRIMARY: 'primary'>
    """

    def __init__(
        self,
        telemetry: TelemetryRegistry,
        rate_limiter: AdaptiveRateLimiter,
        lifecycle: LifecycleManager | None = None,
        tiers: Iterable[Tier] = (),
    ) -> None:
        """Initialize the chain.

        Args:
            telemetry: Registry wrapping dependency calls
            rate_limiter: Limiter gating dependency calls
            lifecycle: Optional manager consulted for availability
            tiers: Tiers, at most one per kind

        Raises:
            ValueError: If two tiers share a kind
        """
        self._telemetry = telemetry
        self._rate_limiter = rate_limiter
        self._lifecycle = lifecycle
        self._tiers = sorted(tiers, key=lambda t: t.kind.rank)

        kinds = [t.kind for t in self._tiers]
        if len(kinds) != len(set(kinds)):
            raise ValueError("Each tier kind may appear at most once")

    @classmethod
    def build(
        cls,
        telemetry: TelemetryRegistry,
        rate_limiter: AdaptiveRateLimiter,
        lifecycle: LifecycleManager | None = None,
        *,
        primary: AnnotationSource | None = None,
        secondary: AnnotationSource | None = None,
        static: AnnotationSource | None = None,
        primary_service: ServiceId = ServiceId.COMPLETION,
        secondary_service: ServiceId = ServiceId.VECTOR_SEARCH,
        timeout_ms: int | None = None,
    ) -> FallbackChain:
        """Create a chain from up to three sources.

        Args:
            telemetry: Registry wrapping dependency calls
            rate_limiter: Limiter gating dependency calls
            lifecycle: Optional manager consulted for availability
            primary: Source for the primary tier
            secondary: Source for the secondary tier
            static: Dependency-free source for the last tier
            primary_service: Dependency behind the primary source
            secondary_service: Dependency behind the secondary source
            timeout_ms: Optional deadline applied to dependency tiers

        Returns:
            FallbackChain instance
        """
        tiers: list[Tier] = []
        if primary is not None:
            tiers.append(Tier(TierKind.PRIMARY, primary, primary_service, timeout_ms))
        if secondary is not None:
            tiers.append(Tier(TierKind.SECONDARY, secondary, secondary_service, timeout_ms))
        if static is not None:
            tiers.append(Tier(TierKind.STATIC, static))
        return cls(telemetry, rate_limiter, lifecycle, tiers)

    @property
    def tiers(self) -> list[Tier]:
        """Tiers in rank order."""
        return list(self._tiers)

    async def execute(self, request: AnnotationRequest) -> FallbackResult:
        """Produce annotations for a request.

        While a tier runs, the log context names that tier and its
        dependency; the caller's context is restored afterwards.

        Args:
            request: Annotation request handed to each tier

        Returns:
            FallbackResult from the first tier that succeeds

        Raises:
            FallbackExhaustedError: If every tier failed or was skipped
        """
        errors: dict[str, Exception] = {}
        tiers_tried: list[str] = []
        outer = get_log_context()

        try:
            for tier in self._tiers:
                set_log_context(self._tier_context(outer, tier))
                if not self._is_available(tier):
                    self._log(tier, EventKind.WARNING, "Skipping tier for unavailable service")
                    continue

                tiers_tried.append(tier.name)
                try:
                    raw = await self._run(tier, request)
                    annotations = self._normalize(raw, tier)
                except RateLimitExceeded as e:
                    errors[tier.name] = e
                    self._log(tier, EventKind.INFO, "Tier rate limited, advancing to next tier")
                except Exception as e:
                    errors[tier.name] = e
                    self._log(
                        tier,
                        EventKind.WARNING,
                        "Tier failed, advancing to next tier",
                        {"error_type": type(e).__name__},
                    )
                else:
                    if tier.kind != TierKind.PRIMARY:
                        logger.info(
                            "Request served by fallback tier",
                            tier=tier.name,
                            tiers_tried=tiers_tried,
                        )
                    return FallbackResult(
                        annotations=annotations,
                        tier_used=tier.kind,
                        tiers_tried=tiers_tried,
                        errors=errors,
                    )
        finally:
            set_log_context(outer)

        logger.error("All fallback tiers failed", tiers_tried=tiers_tried)
        raise FallbackExhaustedError(
            "All fallback tiers failed" if self._tiers else "No fallback tiers configured",
            errors=errors,
            tiers_tried=tiers_tried,
        )

    @staticmethod
    def _tier_context(outer: LogContext, tier: Tier) -> LogContext:
        return LogContext(
            request_id=outer.request_id,
            service=tier.service.value if tier.service is not None else None,
            tier=tier.name,
            extra=outer.extra,
        )

    def _is_available(self, tier: Tier) -> bool:
        if tier.service is None or self._lifecycle is None:
            return True
        return self._lifecycle.is_available(tier.service)

    async def _run(self, tier: Tier, request: AnnotationRequest) -> Sequence[Any]:
        async def call() -> Sequence[Any]:
            if tier.timeout_ms is None:
                return await tier.source(request)
            return await asyncio.wait_for(tier.source(request), tier.timeout_ms / 1000)

        service = tier.service
        if service is None:
            return await call()

        return await self._rate_limiter.with_rate_limit(
            service, lambda: self._telemetry.with_telemetry(service, call)
        )

    @staticmethod
    def _normalize(raw: Sequence[Any], tier: Tier) -> list[Annotation]:
        annotations = []
        for item in raw:
            annotation = item if isinstance(item, Annotation) else Annotation.model_validate(item)
            annotations.append(annotation.model_copy(update={"tier": tier.name}))
        return annotations

    def _log(
        self,
        tier: Tier,
        kind: EventKind,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        fields = {"tier": tier.name, **(metadata or {})}
        if tier.service is not None:
            self._telemetry.log_event(kind, tier.service, message, fields)
        elif kind == EventKind.INFO:
            logger.info(message, **fields)
        else:
            logger.warning(message, **fields)
