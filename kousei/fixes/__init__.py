"""Fix application and undo/redo history."""

from .applier import (
    ApplyResult,
    AutoFixOutcome,
    AutoFixSummary,
    apply_all_auto_fixes,
    apply_suggestion,
    auto_fix_rejections,
    is_safe_auto_fix,
    shift_issues,
)
from .history import History, HistoryAction, HistoryEntry

__all__ = [
    "ApplyResult",
    "AutoFixOutcome",
    "AutoFixSummary",
    "apply_all_auto_fixes",
    "apply_suggestion",
    "auto_fix_rejections",
    "is_safe_auto_fix",
    "shift_issues",
    "History",
    "HistoryAction",
    "HistoryEntry",
]
