"""
Rule model and compiler.

Declarative rule definitions (as read from YAML rule files) are validated and
turned into executable `Rule` objects. The pattern of a rule is a tagged union:

- LiteralPattern: plain substring search
- RegexPattern:   compiled regular expression

A pattern written as `/body/flags` is always a regex. Any other pattern string
is a literal unless it contains regex metacharacters.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Pattern, Tuple, Union

from ..analyzers.models import CATEGORY_VALUES, SEVERITY_VALUES, Category, Severity
from ..errors import ErrorCode

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("id", "severity", "category", "pattern", "message")
REGEX_METACHARS = frozenset(".^$*+?{}[]\\|()")

# JS-style flag letters accepted in `/body/flags`; g, u and y have no Python equivalent
# (matching is always global and unicode-aware here) and are ignored.
_FLAG_MAP = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "g": 0, "u": 0, "y": 0}
_JS_NAMED_GROUP = re.compile(r"\(\?<(?![=!])")


@dataclass(frozen=True)
class LiteralPattern:
    text: str


@dataclass(frozen=True)
class RegexPattern:
    source: str
    compiled: Pattern[str]


RulePattern = Union[LiteralPattern, RegexPattern]


@dataclass(frozen=True)
class Rule:
    id: str
    severity: Severity
    category: Category
    pattern: RulePattern
    message: str
    auto_fix: bool = False
    replacement: Optional[str] = None
    enabled: bool = True
    examples: Tuple[Mapping[str, Any], ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)

    @property
    def is_regex(self) -> bool:
        return isinstance(self.pattern, RegexPattern)

    def to_dict(self) -> Dict[str, Any]:
        pattern = self.pattern.source if isinstance(self.pattern, RegexPattern) else self.pattern.text
        return {
            "id": self.id,
            "severity": self.severity.value,
            "category": self.category.value,
            "pattern": pattern,
            "patternType": "regex" if self.is_regex else "literal",
            "message": self.message,
            "autoFix": self.auto_fix,
            "replacement": self.replacement,
            "enabled": self.enabled,
        }


@dataclass
class CompileResult:
    rule: Optional[Rule] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    code: Optional[ErrorCode] = None

    @property
    def success(self) -> bool:
        return self.rule is not None and not self.errors


def _get(definition: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in definition:
            return definition[key]
    return default


def validate_definition(definition: Any) -> Tuple[List[str], List[str]]:
    """Return (errors, warnings) for one raw rule definition."""
    errors: List[str] = []
    warnings: List[str] = []

    if not isinstance(definition, Mapping):
        return ["ルールはオブジェクトである必要があります"], warnings

    missing = [f for f in REQUIRED_FIELDS if not definition.get(f)]
    if missing:
        return [f"必須フィールドが不足しています: {', '.join(missing)}"], warnings

    if definition["severity"] not in SEVERITY_VALUES:
        errors.append(f"severityは以下のいずれかである必要があります: {', '.join(SEVERITY_VALUES)}")
    if definition["category"] not in CATEGORY_VALUES:
        errors.append(f"categoryは以下のいずれかである必要があります: {', '.join(CATEGORY_VALUES)}")
    if not isinstance(definition["pattern"], str) or not definition["pattern"].strip():
        errors.append("patternは空でない文字列である必要があります")
    if not isinstance(definition["message"], str) or not definition["message"].strip():
        errors.append("messageは空でない文字列である必要があります")

    auto_fix = _get(definition, "autoFix", "auto_fix", default=False)
    if auto_fix is True and not definition.get("replacement"):
        errors.append(f"autoFixがtrueの場合、replacementを必須にしてください (ルールID: {definition['id']})")

    examples = definition.get("examples")
    if examples:
        if not isinstance(examples, list):
            warnings.append("examplesは配列形式である必要があります")
        else:
            for idx, example in enumerate(examples):
                if isinstance(example, Mapping) and (not example.get("before") or not example.get("after")):
                    warnings.append(f"examples[{idx}]にbeforeまたはafterが不足しています")

    return errors, warnings


def looks_like_regex(pattern: str) -> bool:
    return any(ch in REGEX_METACHARS for ch in pattern)


def compile_pattern(raw: str) -> RulePattern:
    """
    Compile one pattern string.

    Raises:
        ValueError: on unknown flags or an invalid regular expression
    """
    if raw.startswith("/") and len(raw) > 1:
        last_slash = raw.rfind("/")
        if last_slash > 0:
            body, flag_letters = raw[1:last_slash], raw[last_slash + 1:]
        else:
            body, flag_letters = raw[1:], ""
        unknown = [f for f in flag_letters if f not in _FLAG_MAP]
        if unknown:
            raise ValueError(
                f"無効な正規表現フラグです。使用可能なフラグ: g, i, m, s, u, y (指定されたフラグ: {flag_letters})"
            )
        flags = 0
        for letter in flag_letters:
            flags |= _FLAG_MAP[letter]
        return _compile_regex(body, flags)

    if looks_like_regex(raw):
        return _compile_regex(raw, 0)
    return LiteralPattern(raw)


def _compile_regex(body: str, flags: int) -> RegexPattern:
    source = _JS_NAMED_GROUP.sub("(?P<", body)
    try:
        return RegexPattern(source=source, compiled=re.compile(source, flags))
    except re.error as e:
        raise ValueError(f"正規表現パターンのコンパイルに失敗しました: {e}") from e


def compile_rule(definition: Any) -> CompileResult:
    """Validate and compile one rule definition. Never raises."""
    errors, warnings = validate_definition(definition)
    if errors:
        return CompileResult(errors=errors, warnings=warnings, code=ErrorCode.RULE_COMPILE_ERROR)

    try:
        pattern = compile_pattern(definition["pattern"])
    except ValueError as e:
        return CompileResult(errors=[str(e)], warnings=warnings, code=ErrorCode.RULE_COMPILE_ERROR)

    examples = definition.get("examples")
    rule = Rule(
        id=str(definition["id"]),
        severity=Severity(definition["severity"]),
        category=Category(definition["category"]),
        pattern=pattern,
        message=definition["message"],
        auto_fix=bool(_get(definition, "autoFix", "auto_fix", default=False)),
        replacement=definition.get("replacement"),
        enabled=bool(definition.get("enabled", True)),
        examples=tuple(examples) if isinstance(examples, list) else (),
        metadata=definition.get("metadata") or {},
    )
    return CompileResult(rule=rule, warnings=warnings)


def compile_rules(definitions: Iterable[Any]) -> Tuple[List[Rule], List[str], List[str]]:
    """
    Compile a list of definitions; failures are reported per rule and skipped.

    Returns:
        (rules, errors, warnings) where messages are prefixed with the 1-based rule index
    """
    rules: List[Rule] = []
    errors: List[str] = []
    warnings: List[str] = []
    for idx, definition in enumerate(definitions, 1):
        result = compile_rule(definition)
        label = definition.get("id") if isinstance(definition, Mapping) and definition.get("id") else idx
        errors.extend(f"ルール {label}: {e}" for e in result.errors)
        warnings.extend(f"ルール {label}: {w}" for w in result.warnings)
        if result.success:
            rules.append(result.rule)
        else:
            logger.warning("%s: rule %s skipped (%d error(s))", ErrorCode.RULE_COMPILE_ERROR.value, label, len(result.errors))
    return rules, errors, warnings


def merge_rule_sources(*sources: Iterable[Rule]) -> List[Rule]:
    """Merge rule lists by id; later sources override earlier ones (last writer wins)."""
    merged: Dict[str, Rule] = {}
    for source in sources:
        for rule in source:
            merged[rule.id] = rule
    return list(merged.values())
