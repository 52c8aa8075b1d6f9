"""
Tests for the command line (cli.py) and the package-level helpers.
"""

import json
import logging

import pytest

import kousei
from kousei.cli import format_issue, line_col, main

RULES_YAML = """
meta:
  id: custom
  version: "1.0.0"
  locale: ja-JP
  author: tester
  createdAt: "2025-01-01"
rules:
  - id: desu-masu
    severity: info
    category: style
    pattern: である
    message: です・ます調に統一してください
    autoFix: true
    replacement: です
"""


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    pkg_logger = logging.getLogger("kousei")
    for handler in list(pkg_logger.handlers):
        pkg_logger.removeHandler(handler)
    pkg_logger.setLevel(logging.NOTSET)


@pytest.fixture
def write(tmp_path):
    def _write(name, content):
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path
    return _write


class TestHelpers:
    def test_line_col(self):
        text = "一行目\n二行目の文"
        assert line_col(text, 0) == (1, 1)
        assert line_col(text, 4) == (2, 1)
        assert line_col(text, 7) == (2, 4)

    def test_format_issue(self):
        text = "あ\n食べれる"
        (issue,) = kousei.analyze(text, preset="light")
        assert format_issue(text, issue) == (
            "2:1\twarn\tgrammar\tら抜き言葉の可能性があります\t「食べれる」→「食べられる」")


class TestLint:
    def test_reports_issues(self, write, capsys):
        path = write("draft.txt", "食べれる。")
        assert main(["lint", str(path), "--preset", "light"]) == 1
        out = capsys.readouterr().out
        assert out.startswith(f"{path}:1:1\twarn\tgrammar\t")

    def test_clean_file(self, write, capsys):
        path = write("clean.txt", "問題のない文です。")
        assert main(["lint", str(path)]) == 0
        assert capsys.readouterr().out == ""

    def test_json_output(self, write, capsys):
        path = write("draft.txt", "食べれる。")
        assert main(["lint", str(path), "--preset", "light", "--json"]) == 1
        data = json.loads(capsys.readouterr().out)
        assert [d["id"] for d in data] == ["ra-nuki_0_4"]
        assert data[0]["suggestions"][0]["text"] == "食べられる"

    def test_custom_rules(self, write, capsys):
        rules = write("rules.yaml", RULES_YAML)
        path = write("draft.txt", "これはペンである。")
        assert main(["lint", str(path), "--rules", str(rules)]) == 1
        assert "です・ます調" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, capsys):
        assert main(["lint", str(tmp_path / "nope.txt")]) == 2
        assert "Cannot read" in capsys.readouterr().err

    def test_unreadable_rules(self, write, capsys):
        rules = write("rules.yaml", "meta: [unclosed")
        path = write("draft.txt", "本文")
        assert main(["lint", str(path), "--rules", str(rules)]) == 2

    def test_unknown_preset_is_rejected(self, write):
        path = write("draft.txt", "本文")
        with pytest.raises(SystemExit):
            main(["lint", str(path), "--preset", "extreme"])


class TestFix:
    def test_writes_output_file(self, write, tmp_path, capsys):
        path = write("draft.txt", "コンピュータとサーバ。。")
        out_path = tmp_path / "fixed.txt"
        assert main(["fix", str(path), "--output", str(out_path)]) == 0
        assert out_path.read_text(encoding="utf-8") == "コンピューターとサーバー。"
        assert path.read_text(encoding="utf-8") == "コンピュータとサーバ。。"
        assert "3件の自動修正を適用しました" in capsys.readouterr().err

    def test_prints_to_stdout(self, write, capsys):
        path = write("draft.txt", "すいません、、")
        assert main(["fix", str(path), "--preset", "light"]) == 0
        assert capsys.readouterr().out == "すみません、"

    def test_nothing_to_fix(self, write, capsys):
        path = write("draft.txt", "食べれる。")
        assert main(["fix", str(path), "--preset", "light"]) == 0
        captured = capsys.readouterr()
        assert captured.out == "食べれる。"
        assert "適用可能な自動修正はありません" in captured.err


class TestPackageApi:
    def test_analyze_defaults_to_configured_preset(self):
        issues = kousei.analyze("コンピュータ")
        assert [i.rule_id for i in issues] == ["computer-notation"]

    def test_analyze_with_explicit_rules(self, make_rule):
        issues = kousei.analyze("テストのテスト", rules=[make_rule()])
        assert [(i.range.start, i.range.end) for i in issues] == [(0, 3), (4, 7)]

    def test_analyze_with_config(self):
        config = kousei.AnalysisConfig(max_issues=1)
        assert len(kousei.analyze("。。と。。", config=config, preset="light")) == 1

    def test_version(self):
        assert kousei.__version__ == "0.1.0"
