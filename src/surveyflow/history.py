"""
Undo/redo history for flow graph edits.

A fixed-capacity ring buffer of graph snapshots. Pushing after an undo drops
the redo tail; pushing into a full buffer overwrites the oldest entry.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from surveyflow.graph import FlowGraph


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryEntry:
    """
    One snapshot.

    Properties:
        graph: Deep copy of the graph after the action
        action: Short description shown in the editor ("connect", "layout", ...)
        timestamp: Seconds since the epoch
    """

    graph: FlowGraph
    action: str
    timestamp: float


class FlowHistory:
    """
    Bounded undo/redo stack.

    ``_slots`` is the ring; ``_start`` is the slot of the oldest entry,
    ``_size`` the number of live entries and ``_cursor`` the offset (from
    ``_start``) of the current entry, or -1 when empty.
    """

    def __init__(self, capacity: int = 50):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._slots: List[Optional[HistoryEntry]] = [None] * capacity
        self._start = 0
        self._size = 0
        self._cursor = -1

    def _slot(self, offset: int) -> int:
        return (self._start + offset) % self.capacity

    def push(self, graph: FlowGraph, action: str = "") -> HistoryEntry:
        entry = HistoryEntry(copy.deepcopy(graph), action, time.time())
        # Drop the redo tail
        self._size = self._cursor + 1
        if self._size == self.capacity:
            self._slots[self._start] = None
            self._start = self._slot(1)
            self._size -= 1
            logger.debug("History full, dropped oldest entry")
        self._slots[self._slot(self._size)] = entry
        self._size += 1
        self._cursor = self._size - 1
        return entry

    @property
    def current(self) -> Optional[HistoryEntry]:
        if self._cursor < 0:
            return None
        return self._slots[self._slot(self._cursor)]

    def can_undo(self) -> bool:
        return self._cursor > 0

    def can_redo(self) -> bool:
        return 0 <= self._cursor < self._size - 1

    def undo(self) -> Optional[FlowGraph]:
        """Step back one entry and return a copy of its graph, or None at the oldest entry."""
        if not self.can_undo():
            return None
        self._cursor -= 1
        return copy.deepcopy(self.current.graph)

    def redo(self) -> Optional[FlowGraph]:
        if not self.can_redo():
            return None
        self._cursor += 1
        return copy.deepcopy(self.current.graph)

    def clear(self) -> None:
        self._slots = [None] * self.capacity
        self._start = 0
        self._size = 0
        self._cursor = -1

    def entries(self) -> List[HistoryEntry]:
        """Live entries, oldest first."""
        return [self._slots[self._slot(i)] for i in range(self._size)]

    def __len__(self) -> int:
        return self._size


__all__ = ["HistoryEntry", "FlowHistory"]
