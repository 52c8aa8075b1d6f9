"""
YAML rule files.

A rule file has two sections:

    meta:
      id: japanese-standard
      version: "1.0.0"
      locale: ja-JP
      author: someone
      createdAt: "2025-01-15"
    rules:
      - id: ...

Structural problems (unreadable file, missing meta/rules, missing meta fields)
raise RuleFileError. Problems inside individual rules only drop those rules.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml

from ..errors import RuleFileError
from .compiler import Rule, compile_rules

logger = logging.getLogger(__name__)

RULE_FILE_META_FIELDS = ("id", "version", "locale", "createdAt", "author")
RULE_FILE_SUFFIXES = (".yaml", ".yml")


@dataclass
class RuleFileMeta:
    id: str
    version: str
    locale: str
    author: str
    created_at: str
    updated_at: str
    description: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, meta: Dict[str, Any]) -> "RuleFileMeta":
        known = {"id", "version", "locale", "author", "createdAt", "updatedAt", "description"}
        return cls(
            id=str(meta["id"]),
            version=str(meta["version"]),
            locale=str(meta["locale"]),
            author=str(meta["author"]),
            created_at=str(meta["createdAt"]),
            updated_at=str(meta.get("updatedAt") or meta["createdAt"]),
            description=meta.get("description"),
            extra={k: v for k, v in meta.items() if k not in known},
        )


@dataclass
class RuleFile:
    meta: RuleFileMeta
    rules: List[Rule]
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    path: Optional[Path] = None

    @property
    def id(self) -> str:
        return self.meta.id


def parse_rule_file(content: str, *,
                    required_meta: Sequence[str] = RULE_FILE_META_FIELDS,
                    path: Optional[Path] = None) -> RuleFile:
    """Parse and compile YAML rule file content."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise RuleFileError(f"YAML解析エラー: {e}") from e

    if not isinstance(data, dict) or "meta" not in data or not isinstance(data.get("rules"), list):
        raise RuleFileError("YAMLファイルの構造が正しくありません。metaとrulesフィールドが必要です。")

    meta = data["meta"]
    if not isinstance(meta, dict):
        raise RuleFileError("metaセクションがありません")

    missing = [f for f in required_meta if not meta.get(f)]
    if missing:
        raise RuleFileError(f"metaセクションに必須フィールドが不足しています: {', '.join(missing)}")

    rules, errors, warnings = compile_rules(data["rules"])
    rule_file = RuleFile(
        meta=RuleFileMeta.from_dict(meta),
        rules=rules,
        errors=errors,
        warnings=warnings,
        path=path,
    )
    logger.debug("Parsed rule file %s: %d rule(s), %d error(s), %d warning(s)",
                 rule_file.id, len(rules), len(errors), len(warnings))
    return rule_file


def load_rule_file(path: Union[str, Path], **kwargs: Any) -> RuleFile:
    p = Path(path)
    if not p.is_file():
        raise RuleFileError(f"ルールファイルが見つかりません: {p}")
    try:
        content = p.read_text(encoding="utf-8")
    except OSError as e:
        raise RuleFileError(f"ルールファイルにアクセスできません: {p} ({e})") from e
    return parse_rule_file(content, path=p, **kwargs)


def iter_rule_files(directory: Union[str, Path]) -> List[Path]:
    d = Path(directory)
    if not d.is_dir():
        raise RuleFileError(f"ディレクトリが見つかりません: {d}")
    return sorted(p for p in d.iterdir() if p.suffix in RULE_FILE_SUFFIXES and p.is_file())
