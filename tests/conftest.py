"""
Shared fixtures: rule/issue factories and a scripted fake LLM call.

No test talks to a network; the LLM is always the injected FakeLLM.
"""

import pytest

from kousei.analyzers.models import Category, Issue, Severity, Source, Suggestion, TextRange
from kousei.rules.compiler import compile_rule
from kousei.rules.presets import PresetLoader


class FakeLLM:
    """Async `(messages) -> str` callable replaying scripted responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def __call__(self, messages):
        self.calls.append(messages)
        if not self.responses:
            raise AssertionError("FakeLLM called more often than scripted")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return await response(messages)
        return response


@pytest.fixture
def fake_llm():
    return FakeLLM


@pytest.fixture(scope="session")
def preset_loader():
    return PresetLoader()


@pytest.fixture
def make_rule():
    def _make(**overrides):
        definition = {
            "id": "test-rule",
            "severity": "info",
            "category": "style",
            "pattern": "テスト",
            "message": "テスト用ルール",
        }
        definition.update(overrides)
        result = compile_rule(definition)
        assert result.success, result.errors
        return result.rule
    return _make


@pytest.fixture
def make_issue():
    def _make(text, start, end, replacement=None, *, issue_id=None, source=Source.RULE,
              severity=Severity.INFO, category=Category.CONSISTENCY, auto_fix=True,
              suggestion_confidence=1.0, issue_confidence=1.0, extra_suggestions=()):
        suggestions = []
        if replacement is not None:
            suggestions.append(Suggestion(replacement, "自動修正を適用します", suggestion_confidence, True))
        suggestions.extend(Suggestion(s) for s in extra_suggestions)
        return Issue(
            id=issue_id or f"issue_{start}_{end}",
            source=source,
            severity=severity,
            category=category,
            message="テスト",
            range=TextRange(start, end),
            suggestions=suggestions,
            metadata={
                "original_text": text[start:end],
                "auto_fix": auto_fix,
                "confidence": issue_confidence,
                "rule_id": "test-rule",
            },
        )
    return _make
