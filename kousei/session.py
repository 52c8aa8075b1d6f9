"""
ProofreadingSession: one document being proofread.

Holds the current text, the merged rule + LLM issue list and the undo/redo
history, and routes every mutation through the pure functions of
`kousei.fixes`. Text changes push a history entry; analysis results and
dismissals only amend the current entry, so undo followed by redo always
returns to the visible state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .analyzers.models import Issue, Source, TextRange, filter_issues, find_issue, issue_stats, sort_issues
from .analyzers.rule_engine import AnalysisConfig, RuleEngineResult
from .config.settings import settings
from .errors import ErrorCode, LLMConfigError, LLMRequestError
from .fixes.applier import ApplyResult, AutoFixSummary, apply_all_auto_fixes, apply_suggestion
from .fixes.history import History, HistoryAction
from .llm.analyzer import LLMAnalysisResult, LLMAnalyzer, Passage
from .llm.schema_validator import safe_fallback
from .rules.manager import RuleManager

logger = logging.getLogger(__name__)


class ProofreadingSession:
    def __init__(self, text: str = "", *,
                 rule_manager: Optional[RuleManager] = None,
                 llm_analyzer: Optional[LLMAnalyzer] = None,
                 history: Optional[History] = None,
                 preset: Optional[str] = None):
        if rule_manager is None:
            rule_manager = RuleManager()
            rule_manager.load_preset(preset or settings.rules_preset)
        self.rule_manager = rule_manager
        self.llm_analyzer = llm_analyzer
        self.history = history if history is not None else History()
        self._text = text
        self._issues: List[Issue] = []
        self.history.push(text, (), HistoryAction.INITIAL, "initial")

    @property
    def text(self) -> str:
        return self._text

    @property
    def issues(self) -> List[Issue]:
        return list(self._issues)

    # ---- mutations ----------------------------------------------------------

    def set_text(self, text: str, description: str = "edit") -> None:
        """Manual edit. Existing issues are kept; stale ones fail their check on apply."""
        if text == self._text:
            return
        self._text = text
        self.history.push(self._text, self._issues, HistoryAction.EDIT, description)

    def add_issues(self, issues: Iterable[Issue]) -> None:
        """Merge issues into the list (same id replaces), re-sorted by start offset."""
        merged = {i.id: i for i in self._issues}
        for issue in issues:
            merged[issue.id] = issue
        self._set_issues(merged.values())

    def dismiss_issue(self, issue_id: str) -> bool:
        if find_issue(self._issues, issue_id) is None:
            return False
        self._set_issues(i for i in self._issues if i.id != issue_id)
        return True

    def clear(self) -> None:
        self._text = ""
        self._issues = []
        self.history.push("", (), HistoryAction.CLEAR, "clear")

    def _set_issues(self, issues: Iterable[Issue]) -> None:
        self._issues = sort_issues(issues)
        self.history.amend(self._issues)

    def _replace_source(self, source: Source, issues: Sequence[Issue]) -> None:
        kept = [i for i in self._issues if i.source is not source]
        self._set_issues(kept + list(issues))

    # ---- analysis -----------------------------------------------------------

    def analyze_with_rules(self, text: Optional[str] = None,
                           config: Optional[AnalysisConfig] = None) -> RuleEngineResult:
        """Run the active rule set; rule issues replace the previous rule issues."""
        if text is not None:
            self.set_text(text)
        result = self.rule_manager.analyze(self._text, config)
        self._replace_source(Source.RULE, result.issues)
        return result

    async def analyze_with_llm(self, passages: Optional[Sequence[Passage]] = None,
                               style: str = "business") -> LLMAnalysisResult:
        """
        Ask the LLM for suggestions; LLM issues replace the previous LLM issues.

        Request failures and timeouts degrade to the single fallback issue.

        Raises:
            LLMConfigError: LLM_ENABLED is off, no analyzer is configured, or the
                endpoint is not configured
            SecretDetectedError: the text contains a secret (nothing is sent)
        """
        if not settings.llm_enabled:
            raise LLMConfigError("LLM analysis is disabled (LLM_ENABLED=false)")
        if self.llm_analyzer is None:
            raise LLMConfigError("LLM analyzer is not configured")
        snapshot = self._text
        if passages is None:
            passages = [Passage(snapshot, TextRange(0, len(snapshot)))]

        try:
            result = await self.llm_analyzer.analyze(passages, style)
        except (LLMRequestError, asyncio.TimeoutError) as e:
            reason = e.code.value if isinstance(e, LLMRequestError) else ErrorCode.TIMEOUT_EXCEEDED.value
            logger.warning("LLM analysis failed (%s); returning fallback issue", reason)
            result = LLMAnalysisResult(issues=[safe_fallback(snapshot, reason=reason)],
                                       fallback=True, errors=[str(e) or type(e).__name__])

        if self._text != snapshot:
            logger.warning("Text changed during LLM analysis; discarding %d issue(s)", len(result.issues))
            return result
        self._replace_source(Source.LLM, result.issues)
        return result

    # ---- fixes --------------------------------------------------------------

    def apply_suggestion(self, issue_id: str, suggestion_index: int = 0) -> ApplyResult:
        result = apply_suggestion(self._text, self._issues, issue_id, suggestion_index)
        if result.success:
            self._text = result.text
            self._issues = sort_issues(result.issues)
            self.history.push(self._text, self._issues, HistoryAction.APPLY_SUGGESTION,
                              f"{result.original_text} → {result.applied_text}")
        return result

    def apply_all_auto_fixes(self) -> AutoFixSummary:
        outcome = apply_all_auto_fixes(self._text, self._issues)
        if outcome.summary.applied_count:
            self._text = outcome.text
            self._issues = sort_issues(outcome.issues)
            self.history.push(self._text, self._issues, HistoryAction.APPLY_ALL, outcome.summary.message)
        return outcome.summary

    def undo(self) -> bool:
        entry = self.history.undo()
        if entry is None:
            return False
        self._text, self._issues = entry.text, list(entry.issues)
        return True

    def redo(self) -> bool:
        entry = self.history.redo()
        if entry is None:
            return False
        self._text, self._issues = entry.text, list(entry.issues)
        return True

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    # ---- queries ------------------------------------------------------------

    def issue_stats(self) -> Dict[str, Any]:
        return issue_stats(self._issues)

    def filter_issues(self, source: Optional[Iterable[str]] = None,
                      severity: Optional[Iterable[str]] = None,
                      category: Optional[Iterable[str]] = None) -> List[Issue]:
        return filter_issues(self._issues, source=source, severity=severity, category=category)
