"""
Rule engine: runs compiled rules over a text and returns position-sorted issues.

Budgets:
- max_issues: hard cap, matching stops as soon as it is reached
- timeout_ms: wall-clock budget checked before each rule; a running rule is never
  interrupted, but no new rule starts once the budget is spent
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional, Pattern, Sequence, Tuple

from ..config.settings import settings
from ..errors import ErrorCode
from ..rules.compiler import LiteralPattern, RegexPattern, Rule
from .models import CATEGORY_VALUES, SEVERITY_VALUES, Issue, Source, Suggestion, TextRange, sort_issues

logger = logging.getLogger(__name__)

AUTO_FIX_RATIONALE = "自動修正を適用します"
_BACKREF = re.compile(r"\$(\d+)")


@dataclass(frozen=True)
class AnalysisConfig:
    max_issues: Optional[int] = 100
    timeout_ms: Optional[int] = 5000
    enabled_categories: FrozenSet[str] = frozenset(CATEGORY_VALUES)
    enabled_severities: FrozenSet[str] = frozenset(SEVERITY_VALUES)
    exclude_rule_ids: FrozenSet[str] = frozenset()

    @classmethod
    def from_settings(cls, **overrides: Any) -> "AnalysisConfig":
        values: Dict[str, Any] = {
            "max_issues": settings.analysis_max_issues,
            "timeout_ms": settings.analysis_timeout_ms,
        }
        values.update(overrides)
        for key in ("enabled_categories", "enabled_severities", "exclude_rule_ids"):
            if key in values and values[key] is not None:
                values[key] = frozenset(values[key])
        return cls(**values)


@dataclass
class RuleEngineResult:
    issues: List[Issue]
    matched_rule_ids: List[str]
    elapsed_ms: float
    text_length: int
    timed_out: bool = False
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "matchedRuleIds": list(self.matched_rule_ids),
            "elapsedMs": self.elapsed_ms,
            "textLength": self.text_length,
            "timedOut": self.timed_out,
            "errors": list(self.errors),
        }


def find_literal_matches(text: str, needle: str) -> Iterator[Tuple[int, int]]:
    """Non-overlapping occurrences, each search resuming at the previous match end."""
    if not needle:
        return
    pos = text.find(needle)
    while pos != -1:
        end = pos + len(needle)
        yield pos, end
        pos = text.find(needle, end)


def find_regex_matches(text: str, compiled: Pattern[str]) -> Iterator["re.Match[str]"]:
    """Global-flag semantics: resume at match end, one past it for zero-width matches."""
    pos = 0
    length = len(text)
    while pos <= length:
        m = compiled.search(text, pos)
        if m is None:
            return
        yield m
        pos = m.end() if m.end() > m.start() else m.end() + 1


def expand_replacement(template: str, groups: Sequence[Optional[str]]) -> str:
    """Substitute $1, $2, ... with captured groups (index 0 is the whole match)."""
    def _sub(m: "re.Match[str]") -> str:
        n = int(m.group(1))
        if 0 <= n < len(groups):
            return groups[n] or ""
        return ""
    return _BACKREF.sub(_sub, template)


class RuleEngine:
    def __init__(self, rules: Optional[Iterable[Rule]] = None,
                 config: Optional[AnalysisConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self._rules: Dict[str, Rule] = {}
        self.config = config or AnalysisConfig.from_settings()
        self._clock = clock
        if rules:
            self.add_rules(rules)

    # Rule registry
    def add_rule(self, rule: Rule) -> None:
        """Register `rule`, replacing any rule with the same id; a disabled rule only unregisters it."""
        if not rule.enabled:
            self._rules.pop(rule.id, None)
            return
        self._rules[rule.id] = rule

    def add_rules(self, rules: Iterable[Rule]) -> None:
        for rule in rules:
            self.add_rule(rule)

    def remove_rule(self, rule_id: str) -> None:
        self._rules.pop(rule_id, None)

    def clear_rules(self) -> None:
        self._rules.clear()

    @property
    def rule_count(self) -> int:
        return len(self._rules)

    @property
    def rules(self) -> List[Rule]:
        return list(self._rules.values())

    def rules_by_category(self, category: str) -> List[Rule]:
        return [r for r in self._rules.values() if r.category.value == category]

    def rules_by_severity(self, severity: str) -> List[Rule]:
        return [r for r in self._rules.values() if r.severity.value == severity]

    # Analysis
    def _is_selected(self, rule: Rule, config: AnalysisConfig) -> bool:
        if rule.id in config.exclude_rule_ids:
            return False
        if config.enabled_categories is not None and rule.category.value not in config.enabled_categories:
            return False
        if config.enabled_severities is not None and rule.severity.value not in config.enabled_severities:
            return False
        return True

    def analyze(self, text: str, config: Optional[AnalysisConfig] = None) -> RuleEngineResult:
        cfg = config or self.config
        started = self._clock()
        issues: List[Issue] = []
        matched: List[str] = []
        errors: List[Dict[str, str]] = []
        timed_out = False
        cap = cfg.max_issues if cfg.max_issues and cfg.max_issues > 0 else None

        rules = list(self._rules.values())
        for idx, rule in enumerate(rules):
            if cfg.timeout_ms is not None and (self._clock() - started) * 1000 > cfg.timeout_ms:
                logger.warning("%s: rule engine budget of %d ms spent; %d rule(s) not run",
                               ErrorCode.TIMEOUT_EXCEEDED.value, cfg.timeout_ms, len(rules) - idx)
                timed_out = True
                break
            if not self._is_selected(rule, cfg):
                continue

            remaining = cap - len(issues) if cap is not None else None
            try:
                rule_issues = self._execute_rule(rule, text, remaining)
            except Exception as e:
                logger.exception("Rule %s failed: %s", rule.id, e)
                errors.append({"ruleId": rule.id, "error": str(e)})
                continue

            if rule_issues:
                issues.extend(rule_issues)
                matched.append(rule.id)
            if cap is not None and len(issues) >= cap:
                logger.debug("max_issues=%d reached after rule %s", cap, rule.id)
                break

        elapsed_ms = (self._clock() - started) * 1000
        result = RuleEngineResult(
            issues=sort_issues(issues),
            matched_rule_ids=matched,
            elapsed_ms=round(elapsed_ms, 3),
            text_length=len(text),
            timed_out=timed_out,
            errors=errors,
        )
        logger.info("Rule analysis: %d issue(s) from %d rule(s) over %d chars in %.1f ms",
                    len(result.issues), len(matched), len(text), elapsed_ms)
        return result

    def _execute_rule(self, rule: Rule, text: str, limit: Optional[int]) -> List[Issue]:
        out: List[Issue] = []
        pattern = rule.pattern
        if isinstance(pattern, LiteralPattern):
            for start, end in find_literal_matches(text, pattern.text):
                out.append(self._make_issue(rule, text, start, end, (text[start:end],)))
                if limit is not None and len(out) >= limit:
                    break
        elif isinstance(pattern, RegexPattern):
            for m in find_regex_matches(text, pattern.compiled):
                if m.end() <= m.start():
                    continue
                groups = (m.group(0),) + m.groups()
                out.append(self._make_issue(rule, text, m.start(), m.end(), groups))
                if limit is not None and len(out) >= limit:
                    break
        else:
            raise TypeError(f"Unsupported pattern type: {type(pattern).__name__}")
        return out

    @staticmethod
    def _make_issue(rule: Rule, text: str, start: int, end: int,
                    groups: Sequence[Optional[str]]) -> Issue:
        suggestions: List[Suggestion] = []
        if rule.auto_fix and rule.replacement:
            replacement = expand_replacement(rule.replacement, groups) if rule.is_regex else rule.replacement
            suggestions.append(Suggestion(
                text=replacement,
                rationale=AUTO_FIX_RATIONALE,
                confidence=1.0,
                is_preferred=True,
            ))
        return Issue(
            id=f"{rule.id}_{start}_{end}",
            source=Source.RULE,
            severity=rule.severity,
            category=rule.category,
            message=rule.message,
            range=TextRange(start, end),
            suggestions=suggestions,
            metadata={
                "original_text": text[start:end],
                "auto_fix": bool(rule.auto_fix and rule.replacement),
                "confidence": 1.0,
                "rule_id": rule.id,
            },
        )
