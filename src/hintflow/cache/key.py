"""
Cache key generation utilities.

Provides deterministic cache keys for annotation requests.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from hintflow.types.annotation import AnnotationRequest


@dataclass(frozen=True)
class CacheKey:
    """A cache key with the request facets it was built from.

    Attributes:
        key: The cache key string
        language: Source language
        skill_level: Reader skill level
        code_hash: SHA-256 hex digest of the source
    """

    key: str
    language: str = ""
    skill_level: str = ""
    code_hash: str = ""

    def __str__(self) -> str:
        return self.key

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CacheKey):
            return self.key == other.key
        if isinstance(other, str):
            return self.key == other
        return False

    def __hash__(self) -> int:
        return hash(self.key)


class CacheKeyGenerator:
    """Generates deterministic cache keys for annotation requests.

    Example:
        >>> generator = CacheKeyGenerator()
        >>> key = generator.generate(AnnotationRequest(code="x = 1", language="python"))
        >>> print(key.key)  # "hints:python:intermediate:5a3e..."
    """

    def __init__(self, prefix: str = "hints", hash_length: int = 16) -> None:
        """Initialize key generator.

        Args:
            prefix: Key prefix
            hash_length: Number of digest characters kept in the key
        """
        self._prefix = prefix
        self._hash_length = hash_length

    def generate(self, request: AnnotationRequest) -> CacheKey:
        """Generate a cache key for a request."""
        code_hash = hashlib.sha256(request.code.encode("utf-8")).hexdigest()
        language = request.language.lower()
        skill = request.skill_level.value
        key = ":".join(
            [self._prefix, language, skill, code_hash[: self._hash_length]]
        )
        return CacheKey(
            key=key,
            language=language,
            skill_level=skill,
            code_hash=code_hash,
        )
