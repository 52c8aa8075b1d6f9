"""
Shared data models for the proofreading pipeline.

This module contains the core data structures used across all components:
- Severity / Category / Source: closed enums for issue classification
- TextRange: a half-open [start, end) span of string indices
- Suggestion: one proposed replacement for an issue
- Issue: one concrete detected problem anchored to a text range

Issues are immutable; anything that "moves" an issue builds a new one with
`Issue.evolve(...)`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple


class Severity(Enum):
    """Severity levels for issues."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class Category(Enum):
    """Categories for issues."""
    STYLE = "style"
    GRAMMAR = "grammar"
    HONORIFIC = "honorific"
    CONSISTENCY = "consistency"
    RISK = "risk"


class Source(Enum):
    """Where an issue came from."""
    RULE = "rule"
    LLM = "llm"


SEVERITY_VALUES = tuple(s.value for s in Severity)
CATEGORY_VALUES = tuple(c.value for c in Category)


@dataclass(frozen=True)
class TextRange:
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start

    def is_valid_for(self, text: str) -> bool:
        return 0 <= self.start < self.end <= len(text)

    def overlaps(self, other: "TextRange") -> bool:
        return self.start < other.end and other.start < self.end

    def shifted(self, delta: int) -> "TextRange":
        return TextRange(self.start + delta, self.end + delta)

    def to_dict(self) -> Dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class Suggestion:
    text: str
    rationale: Optional[str] = None
    confidence: Optional[float] = None
    is_preferred: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "rationale": self.rationale,
            "confidence": self.confidence,
            "isPreferred": self.is_preferred,
        }


@dataclass(frozen=True)
class Issue:
    """
    Represents a single issue found in the analyzed text.

    Attributes:
        id: Unique identifier within one analysis
        source: RULE or LLM
        severity: INFO, WARN or ERROR
        category: Which category of rule detected this
        message: Human-readable explanation of the issue
        range: Span of the issue in the analyzed text
        suggestions: Proposed replacements, best first
        metadata: Read-only mapping; always carries `original_text`, `auto_fix`
            and `confidence`
    """
    id: str
    source: Source
    severity: Severity
    category: Category
    message: str
    range: TextRange
    suggestions: Tuple[Suggestion, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "suggestions", tuple(self.suggestions))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def original_text(self) -> str:
        return self.metadata.get("original_text", "")

    @property
    def auto_fix(self) -> bool:
        return bool(self.metadata.get("auto_fix", False))

    @property
    def confidence(self) -> Optional[float]:
        return self.metadata.get("confidence")

    @property
    def rule_id(self) -> Optional[str]:
        return self.metadata.get("rule_id")

    def evolve(self, **changes: Any) -> "Issue":
        """Return a copy with `changes` applied; `metadata` updates are merged."""
        meta_update = changes.pop("metadata", None)
        if meta_update is not None:
            merged = dict(self.metadata)
            merged.update(meta_update)
            changes["metadata"] = merged
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the Issue to a dictionary with enum values serialized."""
        return {
            "id": self.id,
            "source": self.source.value,
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "range": self.range.to_dict(),
            "suggestions": [s.to_dict() for s in self.suggestions],
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Issue":
        rng = data.get("range") or {}
        return cls(
            id=str(data["id"]),
            source=Source(data.get("source", "rule")),
            severity=Severity(data.get("severity", "info")),
            category=Category(data.get("category", "style")),
            message=str(data.get("message", "")),
            range=TextRange(int(rng.get("start", 0)), int(rng.get("end", 0))),
            suggestions=[
                Suggestion(
                    text=s.get("text", ""),
                    rationale=s.get("rationale"),
                    confidence=s.get("confidence"),
                    is_preferred=bool(s.get("isPreferred", s.get("is_preferred", False))),
                )
                for s in data.get("suggestions") or []
            ],
            metadata=data.get("metadata") or {},
        )


IssueSet = List[Issue]


def sort_issues(issues: Iterable[Issue]) -> List[Issue]:
    """Ascending by range.start; ties broken by rule id (then issue id) for determinism."""
    return sorted(issues, key=lambda i: (i.range.start, i.rule_id or "", i.id))


def find_issue(issues: Sequence[Issue], issue_id: str) -> Optional[Issue]:
    for issue in issues:
        if issue.id == issue_id:
            return issue
    return None


def issue_stats(issues: Iterable[Issue]) -> Dict[str, Any]:
    stats: Dict[str, Any] = {"total": 0, "by_source": {}, "by_severity": {}, "by_category": {}}
    for issue in issues:
        stats["total"] += 1
        for key, value in (("by_source", issue.source.value),
                           ("by_severity", issue.severity.value),
                           ("by_category", issue.category.value)):
            stats[key][value] = stats[key].get(value, 0) + 1
    return stats


def filter_issues(issues: Iterable[Issue],
                  source: Optional[Iterable[str]] = None,
                  severity: Optional[Iterable[str]] = None,
                  category: Optional[Iterable[str]] = None) -> List[Issue]:
    sources = set(source) if source else None
    severities = set(severity) if severity else None
    categories = set(category) if category else None
    out: List[Issue] = []
    for issue in issues:
        if sources is not None and issue.source.value not in sources:
            continue
        if severities is not None and issue.severity.value not in severities:
            continue
        if categories is not None and issue.category.value not in categories:
            continue
        out.append(issue)
    return out

