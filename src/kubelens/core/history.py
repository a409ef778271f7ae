#!/usr/bin/env python3
"""
KUBELENS HISTORY - Undo Stack
-----------------------------
Bounded LIFO of HistorySnapshots. A snapshot is pushed right before any
fix is applied; popping restores the previous state. Loading a new
manifest wipes the stack.

Author: KubeLens Team
Date: 2026-01-16
"""

import logging
from typing import List, Optional

from kubelens.core.models import HistorySnapshot

logger = logging.getLogger("kubelens.history")


class HistoryManager:
    """
    Usage:
        history = HistoryManager()
        history.push(HistorySnapshot(doc, text, findings))
        # ... apply fix ...
        previous = history.pop()
    """

    def __init__(self, limit: int = 50):
        if limit < 1:
            raise ValueError("History limit must be at least 1")
        self.limit = limit
        self._stack: List[HistorySnapshot] = []

    def push(self, snapshot: HistorySnapshot) -> None:
        self._stack.append(snapshot)
        if len(self._stack) > self.limit:
            # Oldest entry falls off the bottom
            self._stack.pop(0)
            logger.debug(f"History limit {self.limit} reached; dropped oldest snapshot")

    def pop(self) -> Optional[HistorySnapshot]:
        """Most recent snapshot, or None when there is nothing to undo."""
        if not self._stack:
            return None
        return self._stack.pop()

    def clear(self) -> None:
        self._stack.clear()

    @property
    def can_undo(self) -> bool:
        return bool(self._stack)

    def __len__(self) -> int:
        return len(self._stack)
