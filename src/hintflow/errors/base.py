"""
Base error classes for hintflow.

Provides a layered error hierarchy:
- HintFlowError: Base class for all library errors
- InitializationError: A dependency failed to initialize or recover
- DependencyCallError: A call to an external collaborator failed
- FallbackExhaustedError: Every tier of a fallback chain failed
- RateLimitExceeded: Admission denied by the rate limiter ("try later")
- RecoveryExhausted: Bounded recovery attempts are used up
- ConfigurationError: Invalid configuration
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hintflow.types.service import ServiceId


@dataclass
class ErrorContext:
    """Structured error context for diagnostics."""

    service: str | None = None
    """Dependency the error relates to (e.g., 'completion')"""

    details: dict[str, Any] = field(default_factory=dict)
    """Additional details about the error"""

    source: str | None = None
    """Error source (e.g., 'lifecycle', 'rate_limit', 'fallback')"""

    hint: str | None = None
    """Actionable hint for resolving the error"""

    def __str__(self) -> str:
        parts = []
        if self.source:
            parts.append(f"[{self.source}]")
        if self.service:
            parts.append(f"service={self.service}")
        if self.hint:
            parts.append(f"(hint: {self.hint})")
        return " ".join(parts)


def _service_name(service: ServiceId | str | None) -> str | None:
    if service is None:
        return None
    return getattr(service, "value", service)


class HintFlowError(Exception):
    """Base class for all hintflow errors.

    Attributes:
        message: Human-readable error message
        context: Structured error context
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
    ) -> None:
        self.message = message
        self.context = context or ErrorContext()
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the full error message."""
        ctx_str = str(self.context)
        if ctx_str:
            return f"{self.message} {ctx_str}"
        return self.message

    def with_hint(self, hint: str) -> HintFlowError:
        """Add a hint to this error."""
        self.context.hint = hint
        return self


class InitializationError(HintFlowError):
    """A dependency failed to initialize.

    Raised by the lifecycle manager when an init collaborator fails, either
    during startup or during a recovery attempt. The collaborator's own
    exception is chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        *,
        service: ServiceId | str | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = ErrorContext(source="lifecycle", service=_service_name(service))
        super().__init__(message, ctx)
        self.service = service
        self.__cause__ = cause


class DependencyCallError(HintFlowError):
    """A call to an external collaborator failed.

    Attributes:
        service: Dependency that failed
        status_code: HTTP status code, when the collaborator speaks HTTP
    """

    def __init__(
        self,
        message: str,
        *,
        service: ServiceId | str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="dependency")
        ctx.service = ctx.service or _service_name(service)
        if status_code is not None:
            ctx.details["status_code"] = status_code
        super().__init__(message, ctx)
        self.service = service
        self.status_code = status_code
        self.__cause__ = cause


class FallbackExhaustedError(DependencyCallError):
    """Every tier of a fallback chain failed.

    Attributes:
        errors: Mapping of tier name to the error it raised
        tiers_tried: Tier names in the order they were attempted
    """

    def __init__(
        self,
        message: str,
        *,
        errors: dict[str, Exception] | None = None,
        tiers_tried: list[str] | None = None,
    ) -> None:
        self.errors = dict(errors or {})
        self.tiers_tried = list(tiers_tried or [])
        ctx = ErrorContext(source="fallback")
        ctx.details["tiers_tried"] = self.tiers_tried
        last_error = next(reversed(self.errors.values()), None)
        super().__init__(message, context=ctx, cause=last_error)


class RateLimitExceeded(HintFlowError):
    """Admission was denied by the rate limiter.

    This is an expected, recoverable outcome. Callers branch on it to decide
    "try later" rather than "dependency broken".

    Attributes:
        service: Throttled dependency
        retry_after_ms: Time until the cooldown ends, in milliseconds
    """

    def __init__(
        self,
        service: ServiceId | str,
        *,
        retry_after_ms: float | None = None,
    ) -> None:
        name = _service_name(service)
        ctx = ErrorContext(source="rate_limit", service=name)
        if retry_after_ms is not None:
            ctx.details["retry_after_ms"] = retry_after_ms
        super().__init__(f"Rate limit exceeded for {name}", ctx)
        self.service = service
        self.retry_after_ms = retry_after_ms


class RecoveryExhausted(HintFlowError):
    """Bounded recovery attempts for a dependency are used up.

    The dependency stays unrecovered until an explicit re-initialize.
    """

    def __init__(self, service: ServiceId | str, *, attempts: int) -> None:
        name = _service_name(service)
        ctx = ErrorContext(source="lifecycle", service=name)
        ctx.details["attempts"] = attempts
        super().__init__(
            f"Recovery exhausted for {name} after {attempts} attempts", ctx
        )
        self.service = service
        self.attempts = attempts


class ConfigurationError(HintFlowError):
    """Invalid configuration input."""

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = ErrorContext(source="config")
        if path:
            ctx.details["path"] = path
        super().__init__(message, ctx)
        self.path = path
        self.__cause__ = cause
