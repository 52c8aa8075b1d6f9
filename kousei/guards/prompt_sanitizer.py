"""
Prompt-injection sanitizer.

User snippets are reduced to an allow-listed character set after known
instruction-override phrases (English and Japanese) are replaced with
[FILTERED]. The result is wrapped in explicit system/user delimiters.

Threats are reported by label; detection is non-fatal and the sanitized text is
still sent.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Sequence, Tuple

from ..config.settings import settings
from ..errors import ErrorCode

logger = logging.getLogger(__name__)

SYSTEM_PREFIX = "SYSTEM_PROMPT_START"
SYSTEM_SUFFIX = "SYSTEM_PROMPT_END"
USER_PREFIX = "USER_CONTENT_START"
USER_SUFFIX = "USER_CONTENT_END"
FILTERED = "[FILTERED]"

# Phrase parts are joined with a sentence-bounded gap instead of `.*` so a
# match never swallows the rest of the document.
_GAP = r"[^\n。！？.!?]{0,40}?"


def _p(*parts: str) -> Pattern[str]:
    return re.compile(_GAP.join(parts), re.IGNORECASE)


DANGEROUS_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    # English
    ("instruction_override", _p(r"(?:ignore|forget|disregard|override)", r"(?:previous|prior|above|system|instructions?|prompt)")),
    ("role_play", re.compile(r"(?:you are now|act as|pretend to be|roleplay as)", re.IGNORECASE)),
    ("new_instruction", re.compile(r"(?:new task|new instructions?|override instructions?)", re.IGNORECASE)),
    ("prompt_termination", _p(r"(?:end|stop|finish)", r"(?:prompt|instructions?)")),
    ("prompt_termination", re.compile(r"```(?:end|stop|finish)```", re.IGNORECASE)),
    ("output_format", _p(r"(?:output|respond|answer)", r"(?:in|as|with)", r"(?:json|xml|yaml|markdown)")),
    ("safety_bypass", _p(r"(?:ignore|bypass|circumvent)", r"(?:safety|filters?|restrictions?)")),
    ("role_play", _p(r"(?:pretend|simulate|imagine)", r"(?:you are|this is)")),
    ("disobey", _p(r"(?:do not|don't|never)", r"(?:follow|obey|listen to)")),
    # Japanese
    ("instruction_override", _p(r"(?:前|上記|これまで|システム)の?", r"(?:指示|命令|プロンプト)", r"(?:無視|忘れ|上書き)")),
    ("instruction_override", _p(r"(?:無視|忘れて|上書き)", r"(?:前|システム|指示|プロンプト)")),
    ("role_play", re.compile(r"(?:あなたは今から|ふりをして|ロールプレイ|として振る舞)")),
    ("new_instruction", _p(r"(?:新しい|新たな)", r"(?:タスク|指示|命令)")),
    ("prompt_termination", _p(r"(?:プロンプト|指示)", r"(?:終了|停止|無効)")),
    ("output_format", _p(r"(?:JSON|XML|YAML|Markdown)", r"(?:形式で|で出力|で返答)")),
    ("output_format", _p(r"(?:出力|応答|回答)", r"(?:形式)", r"(?:変更)")),
    ("safety_bypass", _p(r"(?:安全|フィルター|制限|ルール|規則)", r"(?:無視|回避|迂回|破)")),
    ("safety_bypass", _p(r"(?:無視|回避|迂回)", r"(?:安全|フィルター|制限)")),
    ("instruction_override", _p(r"(?:システム|指示|命令)", r"(?:変更|上書き)")),
)

# Hiragana, katakana (incl. ー・), iteration marks, CJK ideographs, ASCII
# alphanumerics and common punctuation.
ALLOWED_CHARS = re.compile(
    r"[ぁ-ゖァ-ヺー・々〆〇一-龯a-zA-Z0-9\s。、！？「」『』（）［］｛｝【】：；〜"
    r"\"'‘’“”,.?!\-_=+*&%$#@~`|\\/<>:;()\[\]{}]"
)
_WHITESPACE = re.compile(r"\s+")


@dataclass
class SanitizedPrompt:
    original_text: str
    sanitized_text: str
    system_prefix: str
    user_content: str
    threats: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    truncated: bool = False

    @property
    def prompt(self) -> str:
        return f"{self.system_prefix}\n\n{self.user_content}"


class PromptSanitizer:
    def __init__(self, max_length: Optional[int] = None,
                 patterns: Sequence[Tuple[str, Pattern[str]]] = DANGEROUS_PATTERNS):
        self.max_length = max_length if max_length is not None else settings.prompt_max_length
        self.patterns = tuple(patterns)

    def detect_threats(self, text: str) -> List[str]:
        labels: List[str] = []
        for label, pattern in self.patterns:
            if pattern.search(text) and label not in labels:
                labels.append(label)
        return labels

    def is_safe(self, text: str) -> bool:
        return not self.detect_threats(text)

    def filter_threats(self, text: str) -> str:
        for _, pattern in self.patterns:
            text = pattern.sub(FILTERED, text)
        return text

    def sanitize_text(self, text: str) -> Tuple[str, bool]:
        """Return (sanitized text, truncated?)."""
        cleaned = self.filter_threats(text)
        cleaned = "".join(ALLOWED_CHARS.findall(cleaned))
        cleaned = _WHITESPACE.sub(" ", cleaned).strip()
        if len(cleaned) > self.max_length:
            return cleaned[:self.max_length] + "...", True
        return cleaned, False

    def sanitize(self, text: str, system_instructions: str) -> SanitizedPrompt:
        threats = self.detect_threats(text)
        warnings: List[str] = []
        if threats:
            warnings.append(f"プロンプトインジェクションの可能性を検出: {', '.join(threats)}")
            logger.warning("%s: %s", ErrorCode.PROMPT_THREAT_DETECTED.value, ", ".join(threats))

        sanitized, truncated = self.sanitize_text(text)
        if truncated:
            warnings.append(f"入力が{self.max_length}文字を超えたため切り詰めました")

        return SanitizedPrompt(
            original_text=text,
            sanitized_text=sanitized,
            system_prefix=f"{SYSTEM_PREFIX}\n{system_instructions}\n{SYSTEM_SUFFIX}",
            user_content=f"{USER_PREFIX}\n{sanitized}\n{USER_SUFFIX}",
            threats=threats,
            warnings=warnings,
            truncated=truncated,
        )

    @staticmethod
    def wrap(text: str, system_instructions: str) -> SanitizedPrompt:
        """Delimit without filtering (sanitizer disabled)."""
        return SanitizedPrompt(
            original_text=text,
            sanitized_text=text,
            system_prefix=f"{SYSTEM_PREFIX}\n{system_instructions}\n{SYSTEM_SUFFIX}",
            user_content=f"{USER_PREFIX}\n{text}\n{USER_SUFFIX}",
        )

    def mask_for_logging(self, text: str) -> str:
        return self.filter_threats(text)
