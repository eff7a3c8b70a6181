"""
Pattern-table heuristic used as the static fallback tier.

Scans each source line against a per-language table of regular
expressions and emits one hint annotation per match. Needs no external
dependency and is fully deterministic, so it cannot fail for reasons
outside the process.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from hintflow.types.annotation import Annotation, AnnotationRequest, SkillLevel

DEFAULT_LANGUAGE = "javascript"


@dataclass(frozen=True)
class PatternRule:
    """A pattern and the hint emitted for each of its matches."""

    pattern: re.Pattern[str]
    title: str
    docs: str
    logic: str | None = None
    example: str | None = None
    basic: bool = False
    """Basic rules are not shown to advanced readers."""

    def apply(self, line: str, line_number: int) -> list[Annotation]:
        """Emit one annotation per match on a line."""
        return [
            Annotation.hint(
                line=line_number,
                start=match.start(),
                end=match.end(),
                title=self.title,
                docs=self.docs,
                logic=self.logic,
                example=self.example,
            )
            for match in self.pattern.finditer(line)
        ]


PATTERNS: dict[str, tuple[PatternRule, ...]] = {
    "javascript": (
        PatternRule(
            pattern=re.compile(r"\b(function|const|let|var|class|interface|type)\s+([a-zA-Z0-9_]+)"),
            title="Declaration",
            docs="Declarations create new named entities like functions, variables, classes, or types.",
            logic=(
                "Use descriptive names that reflect the purpose. Consider scope and "
                "mutability when choosing between const/let/var."
            ),
            example=(
                "function calculateTotal(items) {\n"
                "  return items.reduce((sum, item) => sum + item.price, 0);\n"
                "}"
            ),
            basic=True,
        ),
        PatternRule(
            pattern=re.compile(r"(try|catch|finally|throw)\s*{"),
            title="Error Handling",
            docs="Error handling prevents application crashes and provides graceful failure recovery.",
            logic=(
                "Use try/catch to handle potential errors. Consider what errors might "
                "occur and how to handle them appropriately."
            ),
            example=(
                "try {\n"
                "  await processData(input);\n"
                "} catch (error) {\n"
                "  logger.error(error);\n"
                '  throw new CustomError("Data processing failed");\n'
                "}"
            ),
        ),
        PatternRule(
            pattern=re.compile(r"\b(if|else|switch|for|while|do)\b"),
            title="Control Flow",
            docs="Control flow determines the order in which code executes based on conditions or iterations.",
            logic=(
                "Choose the appropriate control structure. Consider edge cases and "
                "ensure all paths are handled."
            ),
            example=(
                "if (user.isAdmin) {\n"
                "  showAdminPanel();\n"
                "} else {\n"
                "  showUserDashboard();\n"
                "}"
            ),
        ),
    ),
    "typescript": (
        PatternRule(
            pattern=re.compile(r"<([^>]+)>|\b(type|interface)\s+([a-zA-Z0-9_]+)"),
            title="Type System",
            docs="TypeScript's type system helps catch errors early and improves code maintainability.",
            logic=(
                "Define clear interfaces and types. Use generics when functionality "
                "can work with multiple types."
            ),
            example=(
                "interface User<T> {\n"
                "  id: number;\n"
                "  data: T;\n"
                "}"
            ),
        ),
    ),
    "python": (
        PatternRule(
            pattern=re.compile(r"\bdef\s+([a-zA-Z0-9_]+)\s*\([^)]*\)\s*(?:->|:)"),
            title="Function Definition",
            docs=(
                "Functions encapsulate reusable code blocks. Python supports type "
                "hints for better code clarity."
            ),
            logic="Consider input validation, return types, and function purity.",
            example=(
                "def calculate_average(numbers: list[float]) -> float:\n"
                "    return sum(numbers) / len(numbers)"
            ),
        ),
    ),
}


class PatternHeuristic:
    """Static annotation source backed by ``PATTERNS``.

    Unknown languages use the javascript table.

    Example:
        >>> heuristic = PatternHeuristic()
        >>> annotations = await heuristic(AnnotationRequest(code="if (x) {}"))
        >>> annotations[0].title
        'Control Flow'
    """

    def __init__(self, patterns: dict[str, tuple[PatternRule, ...]] | None = None) -> None:
        self._patterns = patterns if patterns is not None else PATTERNS

    @property
    def languages(self) -> list[str]:
        """Languages with a dedicated table."""
        return list(self._patterns)

    def rules_for(self, language: str, skill_level: SkillLevel) -> tuple[PatternRule, ...]:
        """Rules applied for a language and reader skill level."""
        rules = self._patterns.get(language.lower()) or self._patterns.get(DEFAULT_LANGUAGE, ())
        if skill_level == SkillLevel.ADVANCED:
            rules = tuple(r for r in rules if not r.basic)
        return rules

    def analyze(self, request: AnnotationRequest) -> list[Annotation]:
        """Annotate a request synchronously.

        Annotations are ordered by line, then by rule order, then by
        position within the line.
        """
        rules = self.rules_for(request.language, request.skill_level)
        annotations: list[Annotation] = []
        for index, line in enumerate(request.lines, start=1):
            for rule in rules:
                annotations.extend(rule.apply(line, index))
        return annotations

    async def __call__(self, request: AnnotationRequest) -> list[Annotation]:
        return self.analyze(request)
