"""
history.py - Back-navigation stack

Holds (step, SessionData) pairs for prior states only; the current step is
never on the stack. One go_back pops exactly one entry.
"""

from __future__ import annotations

from typing import FrozenSet, Iterable, List, Optional, Tuple

from .models import HistoryEntry


class NavigationHistory:
    """Stack of prior states with a set of steps that refuse back navigation."""

    def __init__(self, non_reversible: Iterable[str] = ()):
        self._entries: List[HistoryEntry] = []
        self._non_reversible: FrozenSet[str] = frozenset(non_reversible)

    def push(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)

    def pop(self) -> Optional[HistoryEntry]:
        if not self._entries:
            return None
        return self._entries.pop()

    def peek(self) -> Optional[HistoryEntry]:
        return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        self._entries.clear()

    def can_go_back(self, current_step: str) -> bool:
        """True iff there is a prior state and ``current_step`` is reversible."""
        return bool(self._entries) and current_step not in self._non_reversible

    @property
    def entries(self) -> Tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    @property
    def steps(self) -> List[str]:
        return [entry.step for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)
