from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


class ErrorType(str, Enum):
    SPELLING = "spelling"
    GRAMMAR = "grammar"
    PUNCTUATION = "punctuation"
    CAPITALIZATION = "capitalization"
    STYLE = "style"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


ALL_CATEGORIES: frozenset[ErrorType] = frozenset(ErrorType)


@dataclass(frozen=True)
class Sentence:
    """A sentence unit; `offset` is the index of `text[0]` in the document."""

    text: str
    offset: int

    @property
    def end(self) -> int:
        return self.offset + len(self.text)


@dataclass(frozen=True)
class Correction:
    """A suggested fix anchored in the text it was computed against.

    Rule-engine corrections and diff-extractor errors share this shape. The
    position is sentence-local or document-absolute depending on who produced
    it; `shifted()` is the only way positions move between the two.
    """

    type: ErrorType
    position: int
    length: int
    original: str
    suggestion: str
    message: str
    severity: Optional[Severity] = None
    # Name of the rule that produced a rule-engine correction.
    rule: str | None = None

    @property
    def end(self) -> int:
        return self.position + self.length

    @property
    def is_insertion(self) -> bool:
        return self.length == 0

    def shifted(self, delta: int) -> Correction:
        return replace(self, position=self.position + delta)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": self.type.value,
            "position": self.position,
            "length": self.length,
            "original": self.original,
            "suggestion": self.suggestion,
            "message": self.message,
        }
        if self.severity is not None:
            out["severity"] = self.severity.value
        if self.rule is not None:
            out["rule"] = self.rule
        return out


@dataclass
class CheckResult:
    """Per-sentence unit assembled by the orchestrator."""

    original: str
    corrected: str
    errors: list[Correction]
    offset: int
    language: str | None = None
    corrector: str | None = None
    # Recoverable failure reason when the sentence could not be corrected.
    failure: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "original": self.original,
            "corrected": self.corrected,
            "offset": self.offset,
            "language": self.language,
            "corrector": self.corrector,
            "failure": self.failure,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class CheckReport:
    results: list[CheckResult] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def errors(self) -> list[Correction]:
        return [e for r in self.results for e in r.errors]

    def error_counts(self) -> dict[str, int]:
        counts = Counter(e.type.value for e in self.errors)
        return {t.value: counts.get(t.value, 0) for t in ErrorType}
