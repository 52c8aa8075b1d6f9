"""
Tests that every public module imports cleanly on its own.

Each import runs in a fresh interpreter so that no module is already
initialized by an earlier test.
"""

import subprocess
import sys

import pytest

MODULES = [
    "kousei",
    "kousei.analyzers",
    "kousei.analyzers.rule_engine",
    "kousei.rules",
    "kousei.rules.compiler",
    "kousei.rules.manager",
    "kousei.llm.reconciler",
    "kousei.session",
    "kousei.cli",
]


class TestImports:
    @pytest.mark.parametrize("module", MODULES)
    def test_module_imports_in_fresh_interpreter(self, module):
        proc = subprocess.run([sys.executable, "-c", f"import {module}"],
                              capture_output=True, text=True)
        assert proc.returncode == 0, proc.stderr

    def test_public_names_resolve(self):
        import kousei
        from kousei.rules.manager import RuleManager

        assert kousei.ProofreadingSession is not None
        assert RuleManager().engine.rule_count == 0
