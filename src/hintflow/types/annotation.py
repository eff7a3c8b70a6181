"""
Common output contract for every fallback tier.

Each tier, whatever dependency backs it, yields an ordered list of
annotations: a source span plus an explanatory payload.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SkillLevel(str, Enum):
    """Reader skill level used to tune how many hints are produced."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Span(BaseModel):
    """Location of an annotation within the analysed source.

    ``start`` and ``end`` are column offsets within ``line`` (1-based).
    """

    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=0, description="Start column (inclusive)")
    end: int = Field(ge=0, description="End column (exclusive)")
    line: int = Field(ge=1, description="1-based line number")

    @model_validator(mode="after")
    def _check_order(self) -> Span:
        if self.end < self.start:
            raise ValueError(f"span end ({self.end}) precedes start ({self.start})")
        return self


class Annotation(BaseModel):
    """A single annotation produced by a tier."""

    model_config = ConfigDict(populate_by_name=True)

    span: Span
    payload: dict[str, Any] = Field(default_factory=dict)
    tier: str | None = Field(
        default=None, description="Fallback tier that produced this annotation"
    )

    @classmethod
    def hint(
        cls,
        *,
        line: int,
        start: int,
        end: int,
        title: str,
        docs: str,
        logic: str | None = None,
        example: str | None = None,
        doc_link: str | None = None,
    ) -> Annotation:
        """Create an editor-hint annotation.

        Optional fields are left out of the payload when not given.
        """
        payload: dict[str, Any] = {"title": title, "docs": docs}
        if logic is not None:
            payload["logic"] = logic
        if example is not None:
            payload["example"] = example
        if doc_link is not None:
            payload["doc_link"] = doc_link
        return cls(span=Span(start=start, end=end, line=line), payload=payload)

    @property
    def title(self) -> str | None:
        """Hint title, if the payload carries one."""
        value = self.payload.get("title")
        return str(value) if value is not None else None


class AnnotationRequest(BaseModel):
    """Input handed to every tier of a fallback chain."""

    model_config = ConfigDict(frozen=True)

    code: str
    language: str = "javascript"
    skill_level: SkillLevel = SkillLevel.INTERMEDIATE

    @property
    def lines(self) -> list[str]:
        """Source split into lines."""
        return self.code.split("\n")
