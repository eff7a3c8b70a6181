"""
Logical dependency identifiers.

Every outbound call mediated by hintflow is tagged with one of these.
"""

from __future__ import annotations

from enum import Enum


class ServiceId(str, Enum):
    """External dependencies orchestrated by hintflow."""

    COMPLETION = "completion"
    VECTOR_SEARCH = "vector_search"
    DOCUMENTATION = "documentation"

    @classmethod
    def parse(cls, value: str | ServiceId) -> ServiceId:
        """Parse a service identifier, accepting enum members or their values.

        Args:
            value: Enum member or string value (case-insensitive)

        Returns:
            ServiceId member

        Raises:
            ValueError: If the value names no known service
        """
        if isinstance(value, ServiceId):
            return value
        normalized = value.strip().lower().replace("-", "_")
        try:
            return cls(normalized)
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Unknown service '{value}' (expected one of: {valid})"
            ) from None
