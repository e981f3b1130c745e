"""
History Manager - Bounded linear undo/redo over full graph snapshots.

Each snapshot is an independent deep copy of the store's nodes, connections
and id allocator. The manager only keeps the list and the pointer; applying a
snapshot to a store is the caller's job (see Snapshot.apply).

Retention:
- record() discards the redo branch, appends, and drops the oldest entry once
  the list exceeds capacity (default 50)
- undo()/redo()/jump_to() move the pointer and return the snapshot to restore,
  or None when there is nothing to do
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from ..graph.store import GraphStore
from ..graph.types import Connection, Node

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 50


# =============================================================================
# Snapshot
# =============================================================================


@dataclass(frozen=True)
class Snapshot:
    """Full graph state at one point in history."""

    nodes: List[Node]
    connections: List[Connection]
    next_id: int
    timestamp: datetime
    label: str

    @classmethod
    def capture(cls, store: GraphStore, label: str) -> "Snapshot":
        nodes, connections, next_id = store.snapshot()
        return cls(
            nodes=nodes,
            connections=connections,
            next_id=next_id,
            timestamp=datetime.now(timezone.utc),
            label=label,
        )

    def apply(self, store: GraphStore) -> None:
        """Replace the store's state with a copy of this snapshot."""
        store.restore(self.nodes, self.connections, self.next_id)


# =============================================================================
# HistoryManager
# =============================================================================


class HistoryManager:
    """Pointer-indexed snapshot list.

    Example:
        >>> store = GraphStore()
        >>> history = HistoryManager()
        >>> _ = history.record(store, "Initial")
        >>> _ = store.create_node("ACTION")
        >>> _ = history.record(store, "Create node")
        >>> history.undo().apply(store)
        >>> len(store)
        0
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._entries: List[Snapshot] = []
        self._index = -1

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def index(self) -> int:
        """Pointer into entries; -1 when nothing has been recorded."""
        return self._index

    @property
    def entries(self) -> List[Snapshot]:
        return list(self._entries)

    @property
    def current(self) -> Optional[Snapshot]:
        if self._index < 0:
            return None
        return self._entries[self._index]

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return 0 <= self._index < len(self._entries) - 1

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, store: GraphStore, label: str) -> Snapshot:
        """Capture the store's current state as the newest entry."""
        if self._index < len(self._entries) - 1:
            dropped = len(self._entries) - 1 - self._index
            del self._entries[self._index + 1:]
            logger.debug(f"Discarded {dropped} redo entries")

        snapshot = Snapshot.capture(store, label)
        self._entries.append(snapshot)

        if len(self._entries) > self._capacity:
            self._entries.pop(0)
        self._index = len(self._entries) - 1

        logger.debug(f"Recorded '{label}' at history index {self._index}")
        return snapshot

    def undo(self) -> Optional[Snapshot]:
        if not self.can_undo:
            return None
        self._index -= 1
        return self._entries[self._index]

    def redo(self) -> Optional[Snapshot]:
        if not self.can_redo:
            return None
        self._index += 1
        return self._entries[self._index]

    def jump_to(self, index: int) -> Optional[Snapshot]:
        """Move the pointer to any entry.

        Raises:
            IndexError: If index is outside the recorded entries.
        """
        if index < 0 or index >= len(self._entries):
            raise IndexError(f"No history entry at index {index}")
        self._index = index
        return self._entries[index]

    def reset(self) -> None:
        """Forget every entry."""
        self._entries = []
        self._index = -1


__all__ = ["Snapshot", "HistoryManager", "DEFAULT_CAPACITY"]
