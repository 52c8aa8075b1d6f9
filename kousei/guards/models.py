"""Match records produced by the guards."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from ..analyzers.models import TextRange


@dataclass(frozen=True)
class SecretMatch:
    type: str
    value: str
    masked_value: str
    range: TextRange

    def to_dict(self, include_value: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type, "maskedValue": self.masked_value, "range": self.range.to_dict()}
        if include_value:
            out["value"] = self.value
        return out


@dataclass(frozen=True)
class PIIMatch:
    type: str
    value: str
    masked_value: str
    range: TextRange

    def to_dict(self, include_value: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type, "maskedValue": self.masked_value, "range": self.range.to_dict()}
        if include_value:
            out["value"] = self.value
        return out


@dataclass(frozen=True)
class MaskedText:
    original_text: str
    masked_text: str
    matches: List[PIIMatch]

    @property
    def has_pii(self) -> bool:
        return bool(self.matches)
