"""
PII masker.

Finds personal information with independent patterns, keeps the earliest
starting match (pattern order breaks ties) and drops anything overlapping an
accepted span, then replaces the accepted spans back to front.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Pattern, Sequence, Tuple

from ..analyzers.models import TextRange
from .models import MaskedText, PIIMatch

logger = logging.getLogger(__name__)

_HONORIFICS = "さん|様|くん|ちゃん|先生|部長|課長|主任|殿"

# Order matters: on equal start the earlier entry wins.
PII_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("email", re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")),
    ("name", re.compile(
        rf"[一-龯]{{1,4}}(?:{_HONORIFICS})|(?<![A-Za-z])[A-Z][a-z]+ [A-Z][a-z]+(?![A-Za-z])"
    )),
    ("phone", re.compile(
        r"(?<![0-9])(?:\+81[-\s]?[0-9]{1,4}[-\s]?[0-9]{1,4}[-\s]?[0-9]{4}|0[0-9]{1,4}-[0-9]{1,4}-[0-9]{4}|0[0-9]{9,10})(?![0-9])"
    )),
    ("address", re.compile(
        r"〒\s?[0-9]{3}-?[0-9]{4}"
        r"|(?:東京都|北海道|京都府|大阪府|[一-龯]{2,3}県)[一-龯ぁ-んァ-ヶ0-9０-９ー\-－]{1,30}"
    )),
    ("credit_card", re.compile(r"(?<![0-9])[0-9]{4}[-\s]?[0-9]{4}[-\s]?[0-9]{4}[-\s]?[0-9]{4}(?![0-9])")),
    ("ssn", re.compile(r"(?<![0-9])[0-9]{3}-[0-9]{2}-[0-9]{4}(?![0-9])")),
    ("my_number", re.compile(r"(?<![0-9])[0-9]{4}[-\s][0-9]{4}[-\s][0-9]{4}(?![0-9])")),
    ("passport", re.compile(r"(?<![A-Za-z0-9])[A-Z]{2}[0-9]{7}(?![A-Za-z0-9])")),
    ("driver_license", re.compile(r"(?<![0-9])[0-9]{12}(?![0-9])")),
    ("id", re.compile(
        r"(?<![A-Za-z0-9])(?=[A-Za-z0-9]*[0-9])(?=[A-Za-z0-9]*[A-Za-z])[A-Za-z0-9]{8,}(?![A-Za-z0-9])"
    )),
)

PII_MASKS: Dict[str, str] = {
    "name": "[氏名]",
    "email": "[メールアドレス]",
    "phone": "[電話番号]",
    "address": "[住所]",
    "id": "[ID]",
    "credit_card": "[クレジットカード番号]",
    "ssn": "[社会保険番号]",
    "my_number": "[個人番号]",
}
DEFAULT_MASK = "[個人情報]"


def mask_for(pii_type: str) -> str:
    return PII_MASKS.get(pii_type, DEFAULT_MASK)


def resolve_overlaps(candidates: Sequence[Tuple[int, PIIMatch]]) -> List[PIIMatch]:
    """
    Keep the earliest-starting candidate, first-found on ties, and drop any
    candidate overlapping one already accepted.

    Args:
        candidates: (pattern order, match) pairs
    """
    ordered = sorted(candidates, key=lambda c: (c[1].range.start, c[0]))
    accepted: List[PIIMatch] = []
    for _, match in ordered:
        if any(match.range.overlaps(a.range) for a in accepted):
            continue
        accepted.append(match)
    return accepted


class PIIMasker:
    def __init__(self, patterns: Sequence[Tuple[str, Pattern[str]]] = PII_PATTERNS):
        self.patterns = tuple(patterns)

    def find(self, text: str) -> List[PIIMatch]:
        candidates: List[Tuple[int, PIIMatch]] = []
        for order, (pii_type, pattern) in enumerate(self.patterns):
            for m in pattern.finditer(text):
                if m.end() <= m.start():
                    continue
                candidates.append((order, PIIMatch(
                    type=pii_type,
                    value=m.group(0),
                    masked_value=mask_for(pii_type),
                    range=TextRange(m.start(), m.end()),
                )))
        return resolve_overlaps(candidates)

    def mask(self, text: str) -> MaskedText:
        matches = self.find(text)
        masked = text
        for match in reversed(matches):
            masked = masked[:match.range.start] + match.masked_value + masked[match.range.end:]
        if matches:
            logger.debug("PII masked: %s", ", ".join(sorted({m.type for m in matches})))
        return MaskedText(original_text=text, masked_text=masked, matches=matches)

    def has_pii(self, text: str) -> bool:
        return any(p.search(text) for _, p in self.patterns)

    def mask_for_logging(self, text: str) -> str:
        return self.mask(text).masked_text
