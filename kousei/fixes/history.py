"""
Bounded undo/redo history of (text, issues) snapshots.

Every committed text mutation pushes a new entry. Pushing after an undo drops
the redo tail; when the capacity is exceeded the oldest entry is evicted.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from ..analyzers.models import Issue
from ..config.settings import settings

logger = logging.getLogger(__name__)


class HistoryAction(Enum):
    INITIAL = "initial"
    EDIT = "edit"
    APPLY_SUGGESTION = "apply_suggestion"
    APPLY_ALL = "apply_all"
    CLEAR = "clear"


@dataclass(frozen=True)
class HistoryEntry:
    text: str
    issues: Tuple[Issue, ...]
    timestamp: float
    action: HistoryAction
    description: str = ""


class History:
    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries if max_entries is not None else settings.history_max_entries
        if self.max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._entries: List[HistoryEntry] = []
        self._cursor = -1

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    @property
    def current(self) -> Optional[HistoryEntry]:
        return self._entries[self._cursor] if self._cursor >= 0 else None

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return 0 <= self._cursor < len(self._entries) - 1

    def push(self, text: str, issues: Sequence[Issue], action: HistoryAction = HistoryAction.EDIT,
             description: str = "") -> HistoryEntry:
        entry = HistoryEntry(text, tuple(issues), time.time(), action, description)
        del self._entries[self._cursor + 1:]
        self._entries.append(entry)
        if len(self._entries) > self.max_entries:
            evicted = len(self._entries) - self.max_entries
            del self._entries[:evicted]
            logger.debug("History full; evicted %d oldest entr%s", evicted, "y" if evicted == 1 else "ies")
        self._cursor = len(self._entries) - 1
        return entry

    def amend(self, issues: Sequence[Issue]) -> Optional[HistoryEntry]:
        """Replace the issues of the current entry (the text is unchanged)."""
        if self._cursor < 0:
            return None
        entry = replace(self._entries[self._cursor], issues=tuple(issues))
        self._entries[self._cursor] = entry
        return entry

    def undo(self) -> Optional[HistoryEntry]:
        if not self.can_undo:
            return None
        self._cursor -= 1
        return self._entries[self._cursor]

    def redo(self) -> Optional[HistoryEntry]:
        if not self.can_redo:
            return None
        self._cursor += 1
        return self._entries[self._cursor]

    def clear(self) -> None:
        self._entries.clear()
        self._cursor = -1
