"""
Offset-safe fix application.

Text and issues are never mutated in place: every operation returns the new
text together with a new issue list.

Single apply (`apply_suggestion`):
  - LLM-sourced issues are preview-only (NOT_APPLICABLE)
  - the issue's stored original_text must still match its range; otherwise the
    first occurrence of original_text is tried once (re-anchoring) before the
    call fails with STALE_RANGE
  - the applied issue stays in the list, now covering the inserted text, with
    its other suggestions kept

Bulk apply (`apply_all_auto_fixes`) only touches issues passing
`is_safe_auto_fix`, right to left, each re-validated strictly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..analyzers.models import Category, Issue, Severity, Source, TextRange, find_issue
from ..errors import ErrorCode

logger = logging.getLogger(__name__)

SAFE_CATEGORIES = frozenset({Category.CONSISTENCY, Category.STYLE})
MIN_AUTO_FIX_CONFIDENCE = 0.8
MAX_LENGTH_CHANGE_RATIO = 0.5


@dataclass
class ApplyResult:
    success: bool
    text: str
    issues: List[Issue]
    applied_text: Optional[str] = None
    original_text: Optional[str] = None
    error: Optional[ErrorCode] = None
    message: Optional[str] = None
    reanchored: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "appliedText": self.applied_text,
            "originalText": self.original_text,
            "error": self.error.value if self.error else None,
            "message": self.message,
            "reanchored": self.reanchored,
        }


@dataclass
class AutoFixSummary:
    applied_count: int = 0
    failed_count: int = 0
    applied_fixes: List[Dict[str, Any]] = field(default_factory=list)
    failed_fixes: List[Dict[str, Any]] = field(default_factory=list)
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "appliedCount": self.applied_count,
            "failedCount": self.failed_count,
            "appliedFixes": list(self.applied_fixes),
            "failedFixes": list(self.failed_fixes),
            "message": self.message,
        }


@dataclass
class AutoFixOutcome:
    text: str
    issues: List[Issue]
    summary: AutoFixSummary


def splice(text: str, start: int, end: int, replacement: str) -> str:
    return text[:start] + replacement + text[end:]


def shift_issues(issues: Sequence[Issue], start: int, end: int, delta: int,
                 skip_id: Optional[str] = None) -> List[Issue]:
    """
    Move issues lying entirely right of [start, end) by `delta`.

    Issues left of the edit are untouched; overlapping ones are kept as they are
    and will fail their stale check if applied later.
    """
    if delta == 0:
        return list(issues)
    out: List[Issue] = []
    for issue in issues:
        if issue.id != skip_id and issue.range.start >= end:
            issue = issue.evolve(range=issue.range.shifted(delta))
        out.append(issue)
    return out


def _locate(text: str, issue: Issue, allow_reanchor: bool) -> Tuple[Optional[TextRange], Optional[ErrorCode], bool]:
    """Return (range to replace, error, re-anchored?)."""
    rng = issue.range
    expected = issue.original_text
    if rng.is_valid_for(text) and text[rng.start:rng.end] == expected:
        return rng, None, False
    if allow_reanchor and expected:
        pos = text.find(expected)
        if pos != -1:
            return TextRange(pos, pos + len(expected)), None, True
    if not rng.is_valid_for(text):
        return None, ErrorCode.INVALID_RANGE, False
    return None, ErrorCode.STALE_RANGE, False


def apply_suggestion(text: str, issues: Sequence[Issue], issue_id: str,
                     suggestion_index: int = 0) -> ApplyResult:
    issue = find_issue(issues, issue_id)
    if issue is None:
        return ApplyResult(False, text, list(issues), error=ErrorCode.NOT_APPLICABLE,
                           message=f"指摘が見つかりません: {issue_id}")
    if issue.source is Source.LLM:
        return ApplyResult(False, text, list(issues), error=ErrorCode.NOT_APPLICABLE,
                           message="LLMによる指摘はプレビュー専用のため直接適用できません")
    if not 0 <= suggestion_index < len(issue.suggestions):
        return ApplyResult(False, text, list(issues), error=ErrorCode.NOT_APPLICABLE,
                           message=f"修正候補が存在しません: index={suggestion_index}")

    rng, error, reanchored = _locate(text, issue, allow_reanchor=True)
    if rng is None:
        logger.info("%s: issue %s not applied", error.value, issue_id)
        return ApplyResult(False, text, list(issues), error=error, original_text=issue.original_text,
                           message="対象の文字列が変更されているため適用できません"
                           if error is ErrorCode.STALE_RANGE else "範囲が不正です")

    suggestion = issue.suggestions[suggestion_index]
    original = text[rng.start:rng.end]
    new_text = splice(text, rng.start, rng.end, suggestion.text)
    delta = len(suggestion.text) - (rng.end - rng.start)

    remaining = shift_issues(issues, rng.start, rng.end, delta, skip_id=issue.id)
    new_issues: List[Issue] = []
    for other in remaining:
        if other.id != issue.id:
            new_issues.append(other)
        elif suggestion.text:
            new_issues.append(issue.evolve(
                range=TextRange(rng.start, rng.start + len(suggestion.text)),
                metadata={"original_text": suggestion.text, "auto_fix": False, "applied": True},
            ))
        # An empty replacement leaves no span to cover; the issue is dropped.

    if reanchored:
        logger.debug("Issue %s re-anchored to [%d, %d)", issue_id, rng.start, rng.end)
    return ApplyResult(True, new_text, new_issues, applied_text=suggestion.text,
                       original_text=original, reanchored=reanchored)


def auto_fix_rejections(issue: Issue) -> List[str]:
    """Names of the safety predicates `issue` fails (empty means safe)."""
    reasons: List[str] = []
    if not issue.auto_fix:
        reasons.append("auto_fix")
    if not issue.suggestions:
        reasons.append("suggestions")
    if issue.source is not Source.RULE:
        reasons.append("source")
    if issue.severity is Severity.ERROR:
        reasons.append("severity")
    if issue.category not in SAFE_CATEGORIES:
        reasons.append("category")
    if issue.suggestions:
        top = issue.suggestions[0]
        confidence = top.confidence if top.confidence is not None else issue.confidence
        if confidence is not None and confidence < MIN_AUTO_FIX_CONFIDENCE:
            reasons.append("confidence")
        original = issue.original_text
        if not original or abs(len(original) - len(top.text)) / len(original) > MAX_LENGTH_CHANGE_RATIO:
            reasons.append("length_ratio")
    return reasons


def is_safe_auto_fix(issue: Issue) -> bool:
    return not auto_fix_rejections(issue)


def apply_all_auto_fixes(text: str, issues: Sequence[Issue]) -> AutoFixOutcome:
    """Apply every safe auto-fix right to left; one failure never aborts the batch."""
    summary = AutoFixSummary()
    eligible = sorted((i for i in issues if is_safe_auto_fix(i)),
                      key=lambda i: (i.range.start, i.range.end), reverse=True)
    if not eligible:
        summary.message = "適用可能な自動修正はありません"
        return AutoFixOutcome(text, list(issues), summary)

    current_text = text
    current_issues = list(issues)
    for issue in eligible:
        live = find_issue(current_issues, issue.id)
        rng, error, _ = _locate(current_text, live or issue, allow_reanchor=False)
        if rng is None:
            summary.failed_count += 1
            summary.failed_fixes.append({"issueId": issue.id, "ruleId": issue.rule_id, "error": error.value})
            continue

        replacement = issue.suggestions[0].text
        current_text = splice(current_text, rng.start, rng.end, replacement)
        delta = len(replacement) - (rng.end - rng.start)
        current_issues = [i for i in shift_issues(current_issues, rng.start, rng.end, delta, skip_id=issue.id)
                          if i.id != issue.id]
        summary.applied_count += 1
        summary.applied_fixes.append({
            "issueId": issue.id,
            "ruleId": issue.rule_id,
            "range": rng.to_dict(),
            "original": issue.original_text,
            "replacement": replacement,
        })

    summary.message = f"{summary.applied_count}件の自動修正を適用しました"
    if summary.failed_count:
        summary.message += f"（{summary.failed_count}件は適用できませんでした）"
    logger.info("Auto-fix: applied=%d failed=%d", summary.applied_count, summary.failed_count)
    return AutoFixOutcome(current_text, current_issues, summary)
