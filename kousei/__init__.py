"""
kousei: Japanese proofreading core.

Rule-based analysis, security guards for LLM-bound text, LLM output
reconciliation and offset-safe fix application with undo/redo.

Quick use:
    >>> import kousei
    >>> issues = kousei.analyze("食べれる")
    >>> new_text, summary = kousei.apply_fixes("コンピュータ", issues)
"""
from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple

from .analyzers.models import (
    Category,
    Issue,
    IssueSet,
    Severity,
    Source,
    Suggestion,
    TextRange,
)
from .analyzers.rule_engine import AnalysisConfig, RuleEngine, RuleEngineResult
from .errors import (
    ErrorCode,
    KouseiError,
    LLMConfigError,
    LLMRequestError,
    RuleFileError,
    SecretDetectedError,
)
from .fixes.applier import AutoFixSummary, apply_all_auto_fixes
from .rules.compiler import Rule
from .rules.presets import PresetLoader
from .session import ProofreadingSession

__version__ = "0.1.0"


def analyze(text: str, config: Optional[AnalysisConfig] = None,
            rules: Optional[Iterable[Rule]] = None, preset: Optional[str] = None) -> IssueSet:
    """
    Rule-based analysis of `text`.

    Uses `rules` when given, otherwise the bundled preset (`preset` or the
    configured RULES_PRESET).
    """
    if rules is None:
        from .config.settings import settings
        rules = PresetLoader().load_preset(preset or settings.rules_preset)
    return RuleEngine(rules).analyze(text, config).issues


def apply_fixes(text: str, issues: Sequence[Issue]) -> Tuple[str, AutoFixSummary]:
    """Apply every safe auto-fix in `issues`; returns (new text, summary)."""
    outcome = apply_all_auto_fixes(text, issues)
    return outcome.text, outcome.summary


__all__ = [
    "__version__",
    "analyze",
    "apply_fixes",
    "AnalysisConfig",
    "AutoFixSummary",
    "Category",
    "ErrorCode",
    "Issue",
    "IssueSet",
    "KouseiError",
    "LLMConfigError",
    "LLMRequestError",
    "ProofreadingSession",
    "Rule",
    "RuleEngine",
    "RuleEngineResult",
    "RuleFileError",
    "SecretDetectedError",
    "Severity",
    "Source",
    "Suggestion",
    "TextRange",
]
