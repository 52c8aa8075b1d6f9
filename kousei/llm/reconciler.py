"""
Anchor reconciliation for LLM-reported issues.

The LLM is asked for `{quote, before, after, nth}` instead of numeric offsets.
Both the original text and the anchor strings are normalized (CRLF/CR -> LF,
NFKC); an index map built over grapheme clusters translates positions in the
normalized text back to offsets in the original.

Resolution order:
  1. before + quote + after, nth occurrence
  2. quote alone, nth occurrence
  3. the LLM's numeric range (lowest trust)
  4. [0, 1), flagged low-confidence

Every result is clamped to the original text and has end > start (unless the
text is empty).
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

STRATEGY_CONTEXT = "context"
STRATEGY_QUOTE = "quote"
STRATEGY_RAW_RANGE = "raw_range"
STRATEGY_DEFAULT = "default"

MAX_CONTEXT_CHARS = 40

_ZWJ = "\u200d"
_HALFWIDTH_SOUND_MARKS = ("\uff9e", "\uff9f")


def _is_regional_indicator(ch: str) -> bool:
    return 0x1F1E6 <= ord(ch) <= 0x1F1FF


def _is_extender(ch: str) -> bool:
    """Characters that attach to the preceding cluster."""
    if ch in _HALFWIDTH_SOUND_MARKS:
        return True
    if 0x1F3FB <= ord(ch) <= 0x1F3FF:  # emoji skin-tone modifiers
        return True
    if unicodedata.combining(ch):
        return True
    return unicodedata.category(ch) in ("Mn", "Mc", "Me")


def iter_clusters(text: str, grapheme_aware: bool = True) -> Iterator[Tuple[int, int]]:
    """
    Yield (start, end) spans of user-perceived characters.

    CRLF is always a single cluster. With grapheme_aware=False every other code
    point is its own cluster.
    """
    i = 0
    n = len(text)
    while i < n:
        start = i
        if text[i] == "\r" and i + 1 < n and text[i + 1] == "\n":
            yield start, i + 2
            i += 2
            continue
        i += 1
        if not grapheme_aware:
            yield start, i
            continue
        if _is_regional_indicator(text[start]) and i < n and _is_regional_indicator(text[i]):
            i += 1
        while i < n:
            ch = text[i]
            if _is_extender(ch):
                i += 1
            elif ch == _ZWJ:
                i += 1
                if i < n:
                    i += 1
            else:
                break
        yield start, i


def normalize_fragment(text: str) -> str:
    return unicodedata.normalize("NFKC", text.replace("\r\n", "\n").replace("\r", "\n"))


@dataclass
class IndexMap:
    """
    Normalized text plus, for each normalized position, the original start and
    end offsets of the cluster it came from. Both maps carry a sentinel entry
    at len(normalized) pointing at len(original).
    """
    original: str
    normalized: str
    start_map: List[int] = field(default_factory=list)
    end_map: List[int] = field(default_factory=list)

    def to_original(self, start: int, end: int) -> Tuple[int, int]:
        """Translate a normalized half-open span into original offsets."""
        n = len(self.normalized)
        start = min(max(start, 0), n)
        end = min(max(end, start), n)
        if end == start:
            pos = self.start_map[start]
            return pos, pos
        return self.start_map[start], self.end_map[end - 1]


def normalize_with_index_map(text: str, grapheme_aware: bool = True) -> IndexMap:
    parts: List[str] = []
    start_map: List[int] = []
    end_map: List[int] = []
    for c_start, c_end in iter_clusters(text, grapheme_aware):
        piece = normalize_fragment(text[c_start:c_end])
        parts.append(piece)
        start_map.extend([c_start] * len(piece))
        end_map.extend([c_end] * len(piece))
    start_map.append(len(text))
    end_map.append(len(text))
    return IndexMap(original=text, normalized="".join(parts), start_map=start_map, end_map=end_map)


@dataclass(frozen=True)
class AnchorSpec:
    quote: str = ""
    before: str = ""
    after: str = ""
    nth: int = 1
    range: Optional[Tuple[int, int]] = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "AnchorSpec":
        raw_range = data.get("range")
        rng = None
        if isinstance(raw_range, Mapping):
            start, end = raw_range.get("start"), raw_range.get("end")
            if isinstance(start, int) and isinstance(end, int) and not isinstance(start, bool):
                rng = (start, end)
        nth = data.get("nth")
        return cls(
            quote=str(data.get("quote") or ""),
            before=str(data.get("before") or ""),
            after=str(data.get("after") or ""),
            nth=nth if isinstance(nth, int) and not isinstance(nth, bool) and nth >= 1 else 1,
            range=rng,
        )


@dataclass(frozen=True)
class ResolvedRange:
    start: int
    end: int
    strategy: str
    low_confidence: bool = False


def _nth_match(pattern: "re.Pattern[str]", haystack: str, nth: int) -> Optional["re.Match[str]"]:
    """nth (1-based) occurrence, counting overlapping occurrences."""
    pos = 0
    count = 0
    while pos <= len(haystack):
        m = pattern.search(haystack, pos)
        if m is None:
            return None
        count += 1
        if count == nth:
            return m
        pos = m.start() + 1
    return None


def clamp_range(start: int, end: int, length: int) -> Tuple[int, int]:
    """Clamp into [0, length] with end > start whenever length > 0."""
    if length <= 0:
        return 0, 0
    start = min(max(start, 0), length - 1)
    end = min(max(end, start + 1), length)
    return start, end


def resolve_anchor(text: str, anchor: AnchorSpec, index_map: Optional[IndexMap] = None) -> ResolvedRange:
    imap = index_map if index_map is not None and index_map.original == text else normalize_with_index_map(text)
    quote = normalize_fragment(anchor.quote)
    before = normalize_fragment(anchor.before)
    after = normalize_fragment(anchor.after)
    nth = max(1, anchor.nth)

    if quote:
        if before or after:
            pattern = re.compile(f"{re.escape(before)}({re.escape(quote)}){re.escape(after)}")
            m = _nth_match(pattern, imap.normalized, nth)
            if m is not None:
                start, end = clamp_range(*imap.to_original(m.start(1), m.end(1)), len(text))
                return ResolvedRange(start, end, STRATEGY_CONTEXT)

        m = _nth_match(re.compile(re.escape(quote)), imap.normalized, nth)
        if m is not None:
            start, end = clamp_range(*imap.to_original(m.start(), m.end()), len(text))
            return ResolvedRange(start, end, STRATEGY_QUOTE)

    if anchor.range is not None:
        start, end = clamp_range(anchor.range[0], anchor.range[1], len(text))
        logger.debug("Anchor unresolved; using LLM numeric range [%d, %d)", start, end)
        return ResolvedRange(start, end, STRATEGY_RAW_RANGE, low_confidence=True)

    start, end = clamp_range(0, 1, len(text))
    logger.debug("Anchor unresolved and no numeric range; defaulting to [%d, %d)", start, end)
    return ResolvedRange(start, end, STRATEGY_DEFAULT, low_confidence=True)


def _context_bounds(text: str, start: int, end: int, context_chars: int) -> Tuple[int, int]:
    """
    Context window around [start, end), widened so that neither edge splits a
    cluster; a lone sound mark or combining character normalizes differently
    from the cluster it belongs to.
    """
    lo = max(0, start - context_chars)
    hi = min(len(text), end + context_chars)
    ctx_start, ctx_end = lo, hi
    for c_start, c_end in iter_clusters(text):
        if lo < start and c_start < lo < c_end:
            ctx_start = c_start
        if hi > end and c_start < hi < c_end:
            ctx_end = c_end
        if c_start >= hi:
            break
    return ctx_start, ctx_end


def extract_anchor(text: str, start: int, end: int, context_chars: int = MAX_CONTEXT_CHARS) -> AnchorSpec:
    """
    Build the anchor that identifies text[start:end]: the quote, up to
    `context_chars` of context on each side and the occurrence index of the
    before+quote+after pattern that `resolve_anchor` will search for.
    """
    quote = text[start:end]
    ctx_start, ctx_end = _context_bounds(text, start, end, context_chars)
    before = text[ctx_start:start]
    after = text[end:ctx_end]
    if not quote:
        return AnchorSpec(quote=quote, before=before, after=after)

    imap = normalize_with_index_map(text)
    pattern = re.compile(
        f"{re.escape(normalize_fragment(before))}({re.escape(normalize_fragment(quote))})"
        f"{re.escape(normalize_fragment(after))}"
    )
    nth = 0
    pos = 0
    while pos <= len(imap.normalized):
        m = pattern.search(imap.normalized, pos)
        if m is None:
            break
        nth += 1
        if imap.to_original(m.start(1), m.end(1))[0] >= start:
            return AnchorSpec(quote=quote, before=before, after=after, nth=nth)
        pos = m.start() + 1
    return AnchorSpec(quote=quote, before=before, after=after, nth=max(nth, 1))
