"""
RuleManager: loads YAML rule files into named rule sets and feeds the active
set to a RuleEngine.
"""

from __future__ import annotations

import dataclasses
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from ..analyzers.rule_engine import AnalysisConfig, RuleEngine, RuleEngineResult
from ..errors import RuleFileError
from .compiler import Rule
from .loader import iter_rule_files, load_rule_file
from .presets import PresetLoader

logger = logging.getLogger(__name__)


@dataclass
class LoadReport:
    success: bool
    loaded_files: int = 0
    loaded_rules: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "loadedFiles": self.loaded_files,
            "loadedRules": self.loaded_rules,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


class RuleManager:
    def __init__(self, engine: Optional[RuleEngine] = None,
                 preset_loader: Optional[PresetLoader] = None):
        self.engine = engine or RuleEngine()
        self.preset_loader = preset_loader or PresetLoader()
        self._rule_sets: Dict[str, List[Rule]] = {}
        self.current_rule_set_id: Optional[str] = None
        # ids of the rule sets whose rules are registered with the engine
        self._engine_sets: Set[str] = set()

    def load_rule_file(self, path: Union[str, Path], rule_set_id: Optional[str] = None) -> LoadReport:
        """
        Load one rule file and register its rules with the engine.

        Rules that fail to compile are dropped and reported; the remaining rules of
        the file are still registered.
        """
        try:
            rule_file = load_rule_file(path)
        except RuleFileError as e:
            logger.warning("Rule file %s rejected: %s", path, e)
            return LoadReport(success=False, loaded_files=0, errors=[str(e)])

        set_id = rule_set_id or rule_file.id
        self._rule_sets[set_id] = list(rule_file.rules)
        self.engine.add_rules(rule_file.rules)
        self._engine_sets.add(set_id)
        logger.info("Loaded rule set %r from %s: %d rule(s)", set_id, path, len(rule_file.rules))
        return LoadReport(
            success=not rule_file.errors,
            loaded_files=1,
            loaded_rules=len(rule_file.rules),
            errors=list(rule_file.errors),
            warnings=list(rule_file.warnings),
        )

    def load_rule_directory(self, directory: Union[str, Path]) -> LoadReport:
        try:
            files = iter_rule_files(directory)
        except RuleFileError as e:
            return LoadReport(success=False, errors=[str(e)])

        report = LoadReport(success=True)
        for path in files:
            file_report = self.load_rule_file(path)
            report.loaded_files += 1
            report.loaded_rules += file_report.loaded_rules
            report.errors.extend(f"{path.name}: {e}" for e in file_report.errors)
            report.warnings.extend(f"{path.name}: {w}" for w in file_report.warnings)
        report.success = not report.errors
        return report

    def load_preset(self, name: str, activate: bool = True) -> int:
        """Register a bundled preset (includes resolved) as rule set `name`."""
        rules = self.preset_loader.load_preset(name)
        self._rule_sets[name] = rules
        if activate:
            self.switch_rule_set(name)
        return len(rules)

    def switch_rule_set(self, rule_set_id: str) -> bool:
        rules = self._rule_sets.get(rule_set_id)
        if rules is None:
            self.current_rule_set_id = None
            return False
        self.engine.clear_rules()
        self.engine.add_rules(rules)
        self.current_rule_set_id = rule_set_id
        self._engine_sets = {rule_set_id}
        logger.debug("Active rule set: %s (%d rules)", rule_set_id, self.engine.rule_count)
        return True

    def enable_rule(self, rule_id: str, enabled: bool) -> bool:
        """
        Toggle a rule in every set that contains it; returns False if no set does.

        The engine only changes for sets whose rules it currently runs.
        """
        updated = False
        for set_id, rules in self._rule_sets.items():
            for idx, rule in enumerate(rules):
                if rule.id != rule_id:
                    continue
                toggled = dataclasses.replace(rule, enabled=enabled)
                rules[idx] = toggled
                if set_id in self._engine_sets:
                    self.engine.add_rule(toggled)
                updated = True
        return updated

    def available_rule_sets(self) -> List[str]:
        return list(self._rule_sets)

    def rule_set(self, rule_set_id: str) -> List[Rule]:
        return list(self._rule_sets.get(rule_set_id, []))

    @property
    def active_rules(self) -> List[Rule]:
        return self.engine.rules

    def stats(self) -> Dict[str, Any]:
        all_rules = [r for rules in self._rule_sets.values() for r in rules]
        return {
            "totalRuleSets": len(self._rule_sets),
            "totalRules": len(all_rules),
            "rulesByCategory": dict(Counter(r.category.value for r in all_rules)),
            "rulesBySeverity": dict(Counter(r.severity.value for r in all_rules)),
        }

    def analyze(self, text: str, config: Optional[AnalysisConfig] = None) -> RuleEngineResult:
        return self.engine.analyze(text, config)
