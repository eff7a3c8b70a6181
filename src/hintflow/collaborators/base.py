"""
Collaborator interfaces consumed by the lifecycle manager and fallback tiers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from hintflow.types.annotation import Annotation, AnnotationRequest


@runtime_checkable
class InitCollaborator(Protocol):
    """Brings one dependency to a usable state.

    Must be idempotent: the lifecycle manager calls it again on every
    recovery attempt. Failure is signalled by raising or by returning
    ``False``; any other return value counts as success.
    """

    async def __call__(self) -> Any: ...


@runtime_checkable
class AnnotationSource(Protocol):
    """Produces annotations for a request.

    Sources may return ready ``Annotation`` objects or plain mappings of the
    form ``{"span": {"start", "end", "line"}, "payload": {...}}``.
    """

    async def __call__(
        self, request: AnnotationRequest
    ) -> Sequence[Annotation | dict[str, Any]]: ...
