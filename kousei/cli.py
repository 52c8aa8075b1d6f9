"""
Command line for rule-based proofreading.

    python -m kousei.cli lint draft.txt --preset strict
    python -m kousei.cli lint draft.txt --json
    python -m kousei.cli fix draft.txt --output fixed.txt

Exit codes: 0 = clean / done, 1 = issues found, 2 = input or rule error.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .analyzers.models import Issue
from .config.settings import settings
from .errors import RuleFileError
from .rules.presets import PRESET_NAMES
from .rules.manager import RuleManager
from .session import ProofreadingSession
from .utils.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def line_col(text: str, offset: int) -> Tuple[int, int]:
    """1-based (line, column) of a string offset."""
    line = text.count("\n", 0, offset) + 1
    col = offset - (text.rfind("\n", 0, offset) + 1) + 1
    return line, col


def format_issue(text: str, issue: Issue) -> str:
    line, col = line_col(text, issue.range.start)
    out = f"{line}:{col}\t{issue.severity.value}\t{issue.category.value}\t{issue.message}"
    if issue.suggestions:
        out += f"\t「{issue.original_text}」→「{issue.suggestions[0].text}」"
    return out


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="kousei",
        description="Japanese proofreading with rule presets.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("--verbose", action="store_true", help="DEBUG logs")
    sub = p.add_subparsers(dest="command", required=True)

    def common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("file", type=Path, help="UTF-8 text file to check.")
        sp.add_argument("--preset", choices=PRESET_NAMES, default=settings.rules_preset,
                        help="Bundled rule preset.")
        sp.add_argument("--rules", type=Path, default=None,
                        help="Custom YAML rule file used instead of the preset.")

    lint = sub.add_parser("lint", help="Report issues.")
    common(lint)
    lint.add_argument("--json", action="store_true", help="Print issues as JSON.")

    fix = sub.add_parser("fix", help="Apply all safe automatic fixes.")
    common(fix)
    fix.add_argument("--output", type=Path, default=None,
                     help="Write the fixed text here instead of stdout.")
    return p.parse_args(argv)


def build_manager(preset: str, rules: Optional[Path]) -> RuleManager:
    manager = RuleManager()
    if rules is None:
        manager.load_preset(preset)
        return manager
    report = manager.load_rule_file(rules)
    if not report.loaded_files:
        raise RuleFileError(f"ルールファイルを読み込めません: {rules}", report.errors)
    for err in report.errors:
        sys.stderr.write(f"warning: {err}\n")
    return manager


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        text = args.file.read_text(encoding="utf-8")
        manager = build_manager(args.preset, args.rules)
    except (OSError, UnicodeDecodeError) as e:
        sys.stderr.write(f"Cannot read {args.file}: {e}\n")
        return 2
    except RuleFileError as e:
        sys.stderr.write(f"{e}\n")
        for err in e.errors:
            sys.stderr.write(f"  - {err}\n")
        return 2

    session = ProofreadingSession(text, rule_manager=manager)
    result = session.analyze_with_rules()
    if result.timed_out:
        sys.stderr.write("warning: analysis timed out; results are partial\n")

    if args.command == "lint":
        issues: List[Issue] = session.issues
        if args.json:
            print(json.dumps([i.to_dict() for i in issues], ensure_ascii=False, indent=2))
        else:
            for issue in issues:
                print(f"{args.file}:{format_issue(text, issue)}")
            print(f"\n{len(issues)} issue(s)", file=sys.stderr)
        return 1 if issues else 0

    summary = session.apply_all_auto_fixes()
    if args.output is not None:
        args.output.write_text(session.text, encoding="utf-8")
    else:
        sys.stdout.write(session.text)
    sys.stderr.write(f"{summary.message}\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
