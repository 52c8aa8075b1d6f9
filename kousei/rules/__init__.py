"""
Rule definitions: compiler, YAML rule files and presets.

RuleManager lives in `kousei.rules.manager`; it drives the rule engine and is
not re-exported here.
"""
from .compiler import (
    LiteralPattern,
    RegexPattern,
    Rule,
    CompileResult,
    compile_pattern,
    compile_rule,
    compile_rules,
    merge_rule_sources,
)

from .loader import (
    RuleFile,
    RuleFileMeta,
    parse_rule_file,
    load_rule_file,
)

from .presets import PresetLoader, PRESET_NAMES

__all__ = [
    # Compiler
    "LiteralPattern",
    "RegexPattern",
    "Rule",
    "CompileResult",
    "compile_pattern",
    "compile_rule",
    "compile_rules",
    "merge_rule_sources",
    # Files
    "RuleFile",
    "RuleFileMeta",
    "parse_rule_file",
    "load_rule_file",
    # Presets
    "PresetLoader",
    "PRESET_NAMES",
]
