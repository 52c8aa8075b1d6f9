"""
Issue models shared by the rule engine, the LLM pipeline and the fix applier.

The engine itself lives in `kousei.analyzers.rule_engine`; it depends on
`kousei.rules` and is not re-exported here.
"""
from .models import (
    Severity,
    Category,
    Source,
    TextRange,
    Suggestion,
    Issue,
    IssueSet,
    sort_issues,
    find_issue,
    issue_stats,
    filter_issues,
)

__all__ = [
    "Severity",
    "Category",
    "Source",
    "TextRange",
    "Suggestion",
    "Issue",
    "IssueSet",
    "sort_issues",
    "find_issue",
    "issue_stats",
    "filter_issues",
]
