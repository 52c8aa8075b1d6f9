"""
Tiered rule presets (light ⊂ standard ⊂ strict).

Each preset file only lists the rules it adds or overrides; `meta.includesPresets`
names the presets it builds on. Resolution merges the included presets first and
the preset's own rules last, so later definitions win by rule id.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from ..config.settings import settings
from ..errors import RuleFileError
from .compiler import Rule, merge_rule_sources
from .loader import RuleFile, load_rule_file

logger = logging.getLogger(__name__)

PRESET_NAMES = ("light", "standard", "strict")
PRESET_META_FIELDS = ("id", "version", "locale", "createdAt", "author")


class PresetLoader:
    def __init__(self, presets_dir: Optional[Union[str, Path]] = None):
        self.presets_dir = Path(presets_dir or settings.rules_dir)
        self._cache: Dict[str, RuleFile] = {}

    def preset_path(self, name: str) -> Path:
        return self.presets_dir / f"{name}-preset.yaml"

    def load_preset_file(self, name: str) -> RuleFile:
        """Load one preset file as-is (no includes resolved); cached."""
        if name in self._cache:
            return self._cache[name]
        rule_file = load_rule_file(self.preset_path(name), required_meta=PRESET_META_FIELDS)
        for err in rule_file.errors:
            logger.warning("Preset %s: %s", name, err)
        self._cache[name] = rule_file
        logger.info("Loaded preset %r (%d rules)", name, len(rule_file.rules))
        return rule_file

    def load_preset(self, name: str) -> List[Rule]:
        """Rules of `name` with its included presets merged in (last writer wins)."""
        return self._resolve(name, stack=())

    def _resolve(self, name: str, stack: tuple) -> List[Rule]:
        if name in stack:
            raise RuleFileError(f"プリセットの循環参照です: {' -> '.join(stack + (name,))}")
        rule_file = self.load_preset_file(name)
        includes = rule_file.meta.extra.get("includesPresets") or []
        sources = [self._resolve(inc, stack + (name,)) for inc in includes]
        sources.append(rule_file.rules)
        return merge_rule_sources(*sources)

    def load_presets(self, names: Iterable[str]) -> List[Rule]:
        """Merge several presets in order; later presets override earlier ones."""
        return merge_rule_sources(*(self.load_preset(n) for n in names))

    def clear_cache(self) -> None:
        self._cache.clear()
