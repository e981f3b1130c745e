"""
Persistence.

Components:
- documents: Pydantic models for the JSON document, parse/dump helpers
- slots: Named-slot stores (in-memory and SQLite)
"""

from .documents import (
    ConnectionModel,
    NodeModel,
    PersistedDocument,
    dump_document,
    load_document,
    parse_document,
)
from .slots import MemorySlotStore, SlotInfo, SlotStore, SqliteSlotStore, validate_slot_name

__all__ = [
    "ConnectionModel",
    "NodeModel",
    "PersistedDocument",
    "dump_document",
    "load_document",
    "parse_document",
    "MemorySlotStore",
    "SlotInfo",
    "SlotStore",
    "SqliteSlotStore",
    "validate_slot_name",
]
