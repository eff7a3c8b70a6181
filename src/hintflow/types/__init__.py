"""
Core types shared across hintflow.
"""

from hintflow.types.annotation import (
    Annotation,
    AnnotationRequest,
    SkillLevel,
    Span,
)
from hintflow.types.service import ServiceId

__all__ = [
    "Annotation",
    "AnnotationRequest",
    "ServiceId",
    "SkillLevel",
    "Span",
]
