"""
Collaborators consumed by the lifecycle manager and fallback tiers.
"""

from hintflow.collaborators.base import AnnotationSource, InitCollaborator
from hintflow.collaborators.http import (
    HttpAnnotationSource,
    HttpCollaborator,
    HttpReadinessProbe,
)

__all__ = [
    "AnnotationSource",
    "HttpAnnotationSource",
    "HttpCollaborator",
    "HttpReadinessProbe",
    "InitCollaborator",
]
