"""
Cached, fallback-aware hint analysis.

Callers ask for hints and get annotations back, never knowing which tier
produced them. Results are cached per (language, skill level, source).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hintflow.cache.key import CacheKeyGenerator
from hintflow.errors import InitializationError
from hintflow.telemetry.logger import get_logger
from hintflow.types.annotation import AnnotationRequest, SkillLevel

if TYPE_CHECKING:
    from hintflow.context import OrchestrationContext
    from hintflow.resilience.fallback import FallbackChain
    from hintflow.types.annotation import Annotation

logger = get_logger("hintflow.hints")


class HintService:
    """Produces editor hints for source code.

    Example:
        >>> service = HintService(ctx, ctx.fallback_chain(primary=source, static=heuristic))
        >>> hints = await service.analyze("def f(x):\\n    return x", language="python")
    """

    def __init__(
        self,
        context: OrchestrationContext,
        chain: FallbackChain,
        key_generator: CacheKeyGenerator | None = None,
    ) -> None:
        """Initialize the hint service.

        Args:
            context: Context providing the lifecycle manager and cache
            chain: Fallback chain that produces annotations
            key_generator: Cache key generator
        """
        self._context = context
        self._chain = chain
        self._keys = key_generator or CacheKeyGenerator()

    @staticmethod
    def _request(
        code: str, language: str, skill_level: SkillLevel | str
    ) -> AnnotationRequest:
        return AnnotationRequest(
            code=code, language=language, skill_level=SkillLevel(skill_level)
        )

    async def analyze(
        self,
        code: str,
        language: str = "javascript",
        skill_level: SkillLevel | str = SkillLevel.INTERMEDIATE,
    ) -> list[Annotation]:
        """Annotate source code.

        Args:
            code: Source code
            language: Source language
            skill_level: Reader skill level

        Returns:
            Annotations, each tagged with the tier that produced it

        Raises:
            InitializationError: If the context's dependencies are not ready
            FallbackExhaustedError: If every tier failed
        """
        if not self._context.lifecycle.is_initialized():
            raise InitializationError("Services not initialized")

        request = self._request(code, language, skill_level)
        key = self._keys.generate(request).key

        cached = self._context.cache.get(key)
        if cached is not None:
            logger.debug("Hint cache hit", entry=key)
            return list(cached)

        result = await self._chain.execute(request)
        self._context.cache.set(key, result.annotations)
        return list(result.annotations)

    def invalidate(
        self,
        code: str,
        language: str = "javascript",
        skill_level: SkillLevel | str = SkillLevel.INTERMEDIATE,
    ) -> bool:
        """Drop the cached hints for a source.

        Returns:
            True if cached hints were removed
        """
        request = self._request(code, language, skill_level)
        return self._context.cache.invalidate(self._keys.generate(request).key)
