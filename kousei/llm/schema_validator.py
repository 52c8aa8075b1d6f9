"""
Schema validation for raw LLM output.

The payload is untrusted: it is decoded field by field into `LLMIssuePayload`
records. Invalid issues and suggestions are dropped individually; only a
structurally broken payload (not an object, no `issues` list, or nothing left
after validation) is reported as unusable, in which case `safe_fallback()`
supplies a single informational issue.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..analyzers.models import CATEGORY_VALUES, SEVERITY_VALUES, Category, Issue, Severity, Source, Suggestion, TextRange
from ..config.settings import settings
from ..errors import ErrorCode

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "LLMからの応答を処理できませんでした。ルールベースの結果をご確認ください。"
DEFAULT_RATIONALE = "LLMによる提案"
DEFAULT_CONFIDENCE = 0.5

_HTML_SPECIAL = re.compile(r"[<>\"'&]")
_CONTROL = re.compile(r"[\x00-\x1F\x7F]")
_ANCHOR_CONTROL = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")


def sanitize_string(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return _CONTROL.sub("", _HTML_SPECIAL.sub("", value)).strip()


def sanitize_anchor(value: Any, limit: int) -> str:
    """Anchor strings are matched, never rendered: only control characters are removed."""
    if not isinstance(value, str):
        return ""
    return _ANCHOR_CONTROL.sub("", value)[:limit]


def clamp_confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class SchemaLimits:
    max_issues: int = 30
    max_suggestions_per_issue: int = 3
    max_text_length: int = 1000
    max_suggestion_length: int = 200

    @classmethod
    def from_settings(cls) -> "SchemaLimits":
        return cls(
            max_issues=settings.schema_max_issues,
            max_suggestions_per_issue=settings.schema_max_suggestions,
            max_text_length=settings.schema_max_text_length,
            max_suggestion_length=settings.schema_max_suggestion_length,
        )


@dataclass(frozen=True)
class LLMIssuePayload:
    """One validated issue as reported by the LLM (anchor not yet resolved)."""
    id: str
    severity: Severity
    category: Category
    message: str
    quote: str = ""
    before: str = ""
    after: str = ""
    nth: int = 1
    range: Optional[Tuple[int, int]] = None
    suggestions: Tuple[Suggestion, ...] = ()
    confidence: float = DEFAULT_CONFIDENCE

    def anchor_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"quote": self.quote, "before": self.before, "after": self.after, "nth": self.nth}
        if self.range is not None:
            out["range"] = {"start": self.range[0], "end": self.range[1]}
        return out


@dataclass
class ValidationResult:
    issues: List[LLMIssuePayload] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    is_usable: bool = True


class SchemaValidator:
    def __init__(self, limits: Optional[SchemaLimits] = None):
        self.limits = limits or SchemaLimits.from_settings()

    def validate(self, payload: Any) -> ValidationResult:
        result = ValidationResult()

        if not isinstance(payload, Mapping):
            result.errors.append("レスポンスがオブジェクトではありません")
            result.is_usable = False
            return self._log(result)

        raw_issues = payload.get("issues")
        if not isinstance(raw_issues, list):
            result.errors.append("issues配列が存在しません")
            result.is_usable = False
            return self._log(result)

        if len(raw_issues) > self.limits.max_issues:
            result.warnings.append(
                f"issues配列が長すぎます（最大{self.limits.max_issues}個）。超過分は破棄しました。"
            )
            raw_issues = raw_issues[:self.limits.max_issues]

        for idx, raw in enumerate(raw_issues):
            issue, errors, warnings = self._validate_issue(raw, idx)
            result.warnings.extend(f"Issue {idx}: {w}" for w in warnings)
            if issue is None:
                result.errors.extend(f"Issue {idx}: {e}" for e in errors)
            else:
                result.issues.append(issue)

        if raw_issues and not result.issues:
            result.is_usable = False
        return self._log(result)

    def _log(self, result: ValidationResult) -> ValidationResult:
        if result.errors:
            logger.warning("%s: %d error(s), %d issue(s) kept, usable=%s",
                           ErrorCode.SCHEMA_VALIDATION_FAILURE.value, len(result.errors),
                           len(result.issues), result.is_usable)
        return result

    def _validate_issue(self, raw: Any, index: int) -> Tuple[Optional[LLMIssuePayload], List[str], List[str]]:
        errors: List[str] = []
        warnings: List[str] = []
        if not isinstance(raw, Mapping):
            return None, ["issueはオブジェクトである必要があります"], warnings

        message = raw.get("message")
        if not isinstance(message, str) or not message.strip():
            errors.append("messageが必須です")
        elif len(message) > self.limits.max_text_length:
            errors.append(f"messageが長すぎます（最大{self.limits.max_text_length}文字）")

        severity = raw.get("severity", "info")
        if severity not in SEVERITY_VALUES:
            errors.append(f"無効な重要度: {sanitize_string(str(severity))}")
        category = raw.get("category", "style")
        if category not in CATEGORY_VALUES:
            errors.append(f"無効なカテゴリ: {sanitize_string(str(category))}")

        quote = raw.get("quote")
        if quote is not None and not isinstance(quote, str):
            errors.append("quoteは文字列である必要があります")
        elif isinstance(quote, str) and len(quote) > self.limits.max_text_length:
            errors.append(f"quoteが長すぎます（最大{self.limits.max_text_length}文字）")

        rng, range_error = self._validate_range(raw.get("range"))
        if range_error:
            # A broken numeric range only costs the lowest-trust fallback.
            warnings.append(range_error)
        if not quote and rng is None:
            errors.append("quoteまたはrangeが必須です")

        nth = raw.get("nth", 1)
        if isinstance(nth, bool) or not isinstance(nth, int) or nth < 1:
            warnings.append("nthは1以上の整数である必要があります。1として扱います。")
            nth = 1

        if errors:
            return None, errors, warnings

        suggestions = self._validate_suggestions(raw.get("suggestions"), warnings)
        raw_id = sanitize_string(raw.get("id"))
        issue = LLMIssuePayload(
            id=raw_id or f"issue_{index}",
            severity=Severity(severity),
            category=Category(category),
            message=sanitize_string(message),
            quote=sanitize_anchor(quote, self.limits.max_text_length),
            before=sanitize_anchor(raw.get("before"), self.limits.max_text_length),
            after=sanitize_anchor(raw.get("after"), self.limits.max_text_length),
            nth=nth,
            range=rng,
            suggestions=tuple(suggestions),
            confidence=clamp_confidence(
                raw.get("confidence"),
                suggestions[0].confidence if suggestions and suggestions[0].confidence is not None else DEFAULT_CONFIDENCE,
            ),
        )
        return issue, errors, warnings

    @staticmethod
    def _validate_range(raw: Any) -> Tuple[Optional[Tuple[int, int]], Optional[str]]:
        if raw is None:
            return None, None
        if not isinstance(raw, Mapping):
            return None, "rangeはオブジェクトである必要があります"
        start, end = raw.get("start"), raw.get("end")
        if any(isinstance(v, bool) or not isinstance(v, int) for v in (start, end)):
            return None, "rangeのstartとendは数値である必要があります"
        if start < 0 or end < 0:
            return None, "rangeのstartとendは0以上である必要があります"
        if start >= end:
            return None, "rangeのstartはendより小さくする必要があります"
        return (start, end), None

    def _validate_suggestions(self, raw: Any, warnings: List[str]) -> List[Suggestion]:
        if raw is None:
            return []
        if not isinstance(raw, list):
            warnings.append("suggestionsは配列である必要があります")
            return []
        limit = self.limits.max_suggestions_per_issue
        if len(raw) > limit:
            warnings.append(f"提案が多すぎます（最大{limit}個）。最初の{limit}個のみ使用します。")
            raw = raw[:limit]

        out: List[Suggestion] = []
        for idx, item in enumerate(raw):
            if isinstance(item, str):
                item = {"text": item}
            if not isinstance(item, Mapping):
                warnings.append(f"Suggestion {idx}: 形式が不正です (スキップしました)")
                continue
            text = item.get("text")
            if not isinstance(text, str) or not text:
                warnings.append(f"Suggestion {idx}: textが必須です (スキップしました)")
                continue
            if len(text) > self.limits.max_suggestion_length:
                warnings.append(
                    f"Suggestion {idx}: textが長すぎます（最大{self.limits.max_suggestion_length}文字） (スキップしました)"
                )
                continue
            cleaned = sanitize_string(text)
            if not cleaned:
                warnings.append(f"Suggestion {idx}: サニタイズ後のtextが空です (スキップしました)")
                continue
            out.append(Suggestion(
                text=cleaned,
                rationale=sanitize_string(item.get("rationale")) or DEFAULT_RATIONALE,
                confidence=clamp_confidence(item.get("confidence")),
                is_preferred=bool(item.get("isPreferred", False)),
            ))
        if raw and not out:
            warnings.append("すべての提案が無効でした。Issue自体は保持されます。")
        return out


def safe_fallback(text: str = "", reason: Optional[str] = None) -> Issue:
    """The single informational issue returned when an LLM response is unusable."""
    end = 1 if text else 0
    return Issue(
        id="llm_fallback",
        source=Source.LLM,
        severity=Severity.INFO,
        category=Category.STYLE,
        message=FALLBACK_MESSAGE,
        range=TextRange(0, end),
        suggestions=(),
        metadata={
            "original_text": text[:end],
            "auto_fix": False,
            "confidence": 0.0,
            "fallback": True,
            "reason": reason or ErrorCode.SCHEMA_VALIDATION_FAILURE.value,
        },
    )
