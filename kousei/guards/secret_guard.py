"""
Secret rejector.

Text that may be sent to the LLM is checked against credential signatures,
a Luhn-validated card-number scan and a context-based driver-licence scan.
Any hit is fail-closed: `ensure_no_secrets` raises SecretDetectedError and the
caller must not send the text, masked or otherwise.

Patterns are ASCII-anchored (re.ASCII) so that digits glued to Japanese text,
e.g. "番号123-45-6789", still hit the word boundaries.
"""

from __future__ import annotations

import logging
import re
from typing import List, Pattern, Sequence, Tuple

from ..analyzers.models import TextRange
from ..errors import ErrorCode, SecretDetectedError
from .models import SecretMatch

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

SECRET_DEFINITIONS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("OpenAI API Key", re.compile(r"sk-(?:proj-|svcacct-|None-)?[^\s'\"]{16,}", re.ASCII)),
    ("Google API Key", re.compile(r"AIza[0-9A-Za-z\-_]{35}", re.ASCII)),
    ("AWS Access Key", re.compile(r"AKIA[0-9A-Z]{16}", re.ASCII)),
    ("Private Key", re.compile(r"-----BEGIN (?:RSA |EC |OPENSSH |DSA )?PRIVATE KEY-----", re.ASCII)),
    ("GitHub PAT", re.compile(r"ghp_[A-Za-z0-9]{36}", re.ASCII)),
    ("GitHub Fine-grained PAT", re.compile(r"github_pat_[A-Za-z0-9_]{22}_[A-Za-z0-9_]{59}", re.ASCII)),
    ("Slack Token", re.compile(r"xox[abprs]-[A-Za-z0-9-]{10,}", re.ASCII)),
    ("JWT", re.compile(r"eyJ[A-Za-z0-9_-]{8,}\.eyJ[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}", re.ASCII)),
    ("SSN", re.compile(r"\b[0-9]{3}-[0-9]{2}-[0-9]{4}\b", re.ASCII)),
    ("Passport", re.compile(r"\b[A-Z]{2}[0-9]{7}\b", re.ASCII)),
)

CREDIT_CARD_LABEL = "Credit Card"
DRIVER_LICENSE_LABEL = "Driver License"

# 13-19 digits, optionally grouped by single spaces or hyphens
_CARD_CANDIDATE = re.compile(r"(?<![0-9])[0-9](?:[ -]?[0-9]){12,18}(?![0-9])", re.ASCII)
_LICENSE_KEYWORD = re.compile(r"運転免許証|免許証|免許番号|運転免許|driver\s*licen[cs]e", re.IGNORECASE)
_TWELVE_DIGITS = re.compile(r"(?<![0-9])[0-9]{12}(?![0-9])")
LICENSE_CONTEXT_CHARS = 50


def luhn_valid(number: str) -> bool:
    digits = [int(ch) for ch in number if ch.isdigit()]
    if not 13 <= len(digits) <= 19:
        return False
    total = 0
    for idx, digit in enumerate(reversed(digits)):
        if idx % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


class SecretGuard:
    def __init__(self, definitions: Sequence[Tuple[str, Pattern[str]]] = SECRET_DEFINITIONS,
                 context_chars: int = LICENSE_CONTEXT_CHARS):
        self.definitions = tuple(definitions)
        self.context_chars = context_chars

    def scan(self, text: str) -> List[SecretMatch]:
        """All secret-like spans, in detection order (signatures, cards, licences)."""
        matches: List[SecretMatch] = []
        for label, pattern in self.definitions:
            for m in pattern.finditer(text):
                matches.append(SecretMatch(label, m.group(0), REDACTED, TextRange(m.start(), m.end())))
        matches.extend(self._scan_cards(text))
        matches.extend(self._scan_driver_licenses(text))
        return matches

    def _scan_cards(self, text: str) -> List[SecretMatch]:
        out = []
        for m in _CARD_CANDIDATE.finditer(text):
            if luhn_valid(m.group(0)):
                out.append(SecretMatch(CREDIT_CARD_LABEL, m.group(0), REDACTED, TextRange(m.start(), m.end())))
        return out

    def _scan_driver_licenses(self, text: str) -> List[SecretMatch]:
        out: List[SecretMatch] = []
        seen = set()
        for kw in _LICENSE_KEYWORD.finditer(text):
            lo = max(0, kw.start() - self.context_chars)
            hi = min(len(text), kw.end() + self.context_chars)
            for m in _TWELVE_DIGITS.finditer(text, lo, hi):
                if m.start() in seen:
                    continue
                seen.add(m.start())
                out.append(SecretMatch(DRIVER_LICENSE_LABEL, m.group(0), REDACTED, TextRange(m.start(), m.end())))
        return out

    def contains_secret(self, text: str) -> bool:
        if any(p.search(text) for _, p in self.definitions):
            return True
        return bool(self._scan_cards(text) or self._scan_driver_licenses(text))

    def detect_secret_types(self, text: str) -> List[str]:
        """Distinct labels of the secrets found, in detection order."""
        labels: List[str] = []
        for match in self.scan(text):
            if match.type not in labels:
                labels.append(match.type)
        return labels

    def ensure_no_secrets(self, text: str) -> None:
        """
        Raises:
            SecretDetectedError: if any secret is found (labels only, never values)
        """
        types = self.detect_secret_types(text)
        if types:
            logger.warning("%s: outbound text rejected (%s)", ErrorCode.SECRET_DETECTED.value, ", ".join(types))
            raise SecretDetectedError(types)
