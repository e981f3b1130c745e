"""
Undo/redo history.

Components:
- HistoryManager / Snapshot: Bounded snapshot list with a pointer
- SnapshotDebouncer: Coalesces attribute edits into one snapshot
"""

from .manager import DEFAULT_CAPACITY, HistoryManager, Snapshot
from .debounce import SnapshotDebouncer

__all__ = ["HistoryManager", "Snapshot", "SnapshotDebouncer", "DEFAULT_CAPACITY"]
