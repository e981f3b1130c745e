"""Named document slots (the editor's file list).

Each slot holds one persisted document under a user-chosen name. The store
also remembers which slot was used last so a new session can reopen it.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .documents import PersistedDocument, parse_document

logger = logging.getLogger(__name__)

INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*]')
LAST_USED_KEY = "last_used_slot"

DDL_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS slots (
        name TEXT PRIMARY KEY,
        payload TEXT NOT NULL,
        last_modified TEXT NOT NULL,
        node_count INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_slots_last_modified ON slots(last_modified DESC)",
    """
    CREATE TABLE IF NOT EXISTS meta (
        key TEXT PRIMARY KEY,
        value TEXT
    )
    """,
)


def validate_slot_name(name: str) -> str:
    """Return the trimmed name.

    Raises:
        ValueError: If the name is empty or contains <>:"/\\|?*
    """
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError("Slot name must not be empty")
    if INVALID_NAME_CHARS.search(cleaned):
        raise ValueError(f"Slot name '{cleaned}' contains one of <>:\"/\\|?*")
    return cleaned


@dataclass
class SlotInfo:
    """Listing entry for one slot."""

    name: str
    last_modified: Optional[datetime]
    node_count: int


# =============================================================================
# SlotStore
# =============================================================================


class SlotStore(ABC):
    """Key-value store of persisted documents."""

    @abstractmethod
    def list_slots(self) -> List[SlotInfo]:
        """Slots, most recently modified first."""

    @abstractmethod
    def load(self, name: str) -> Optional[PersistedDocument]:
        """Return the slot's document or None if the slot does not exist."""

    @abstractmethod
    def save(self, name: str, document: PersistedDocument) -> None:
        """Create or overwrite a slot."""

    @abstractmethod
    def delete(self, name: str) -> bool:
        """Remove a slot; False if it did not exist."""

    @abstractmethod
    def get_last_used(self) -> Optional[str]:
        ...

    @abstractmethod
    def set_last_used(self, name: Optional[str]) -> None:
        ...

    def exists(self, name: str) -> bool:
        return any(info.name == name for info in self.list_slots())

    def rename(self, old: str, new: str) -> None:
        """Move a slot's document to a new name.

        Raises:
            KeyError: If old does not exist.
            ValueError: If new is invalid or already taken.
        """
        new = validate_slot_name(new)
        document = self.load(old)
        if document is None:
            raise KeyError(f"Slot '{old}' does not exist")
        if new != old and self.exists(new):
            raise ValueError(f"Slot '{new}' already exists")
        was_last_used = self.get_last_used() == old
        self.save(new, document)
        if new != old:
            self.delete(old)
        if was_last_used:
            self.set_last_used(new)


class MemorySlotStore(SlotStore):
    """In-process slot store; documents are kept as JSON text."""

    def __init__(self) -> None:
        self._slots: Dict[str, Tuple[str, Optional[datetime], int]] = {}
        self._last_used: Optional[str] = None

    def list_slots(self) -> List[SlotInfo]:
        infos = [
            SlotInfo(name=name, last_modified=modified, node_count=count)
            for name, (_, modified, count) in self._slots.items()
        ]
        infos.sort(key=_recency, reverse=True)
        return infos

    def load(self, name: str) -> Optional[PersistedDocument]:
        entry = self._slots.get(name)
        if entry is None:
            return None
        return parse_document(entry[0])

    def save(self, name: str, document: PersistedDocument) -> None:
        name = validate_slot_name(name)
        self._slots[name] = (document.to_json(indent=None), document.last_modified, len(document.nodes))

    def delete(self, name: str) -> bool:
        if name == self._last_used:
            self._last_used = None
        return self._slots.pop(name, None) is not None

    def get_last_used(self) -> Optional[str]:
        return self._last_used

    def set_last_used(self, name: Optional[str]) -> None:
        self._last_used = name


class SqliteSlotStore(SlotStore):
    """Slots persisted in a SQLite file."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._initialized = False

    def _ensure_directory(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        """Return a sqlite3 connection, creating the schema on first use."""
        self._ensure_directory()
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        if not self._initialized:
            with conn:
                for statement in DDL_STATEMENTS:
                    conn.execute(statement)
            self._initialized = True
        return conn

    def list_slots(self) -> List[SlotInfo]:
        conn = self.connect()
        try:
            rows = conn.execute(
                "SELECT name, last_modified, node_count FROM slots ORDER BY last_modified DESC, name"
            ).fetchall()
        finally:
            conn.close()
        return [
            SlotInfo(
                name=row["name"],
                last_modified=_parse_timestamp(row["last_modified"]),
                node_count=row["node_count"],
            )
            for row in rows
        ]

    def exists(self, name: str) -> bool:
        conn = self.connect()
        try:
            row = conn.execute("SELECT 1 FROM slots WHERE name = ?", (name,)).fetchone()
        finally:
            conn.close()
        return row is not None

    def load(self, name: str) -> Optional[PersistedDocument]:
        conn = self.connect()
        try:
            row = conn.execute("SELECT payload FROM slots WHERE name = ?", (name,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return parse_document(row["payload"])

    def save(self, name: str, document: PersistedDocument) -> None:
        name = validate_slot_name(name)
        modified = document.last_modified or datetime.now(timezone.utc)
        conn = self.connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO slots (name, payload, last_modified, node_count)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(name) DO UPDATE SET
                        payload = excluded.payload,
                        last_modified = excluded.last_modified,
                        node_count = excluded.node_count
                    """,
                    (name, document.to_json(indent=None), modified.isoformat(), len(document.nodes)),
                )
        finally:
            conn.close()
        logger.debug(f"Saved slot '{name}' ({len(document.nodes)} nodes)")

    def delete(self, name: str) -> bool:
        conn = self.connect()
        try:
            with conn:
                cursor = conn.execute("DELETE FROM slots WHERE name = ?", (name,))
                conn.execute(
                    "DELETE FROM meta WHERE key = ? AND value = ?", (LAST_USED_KEY, name)
                )
        finally:
            conn.close()
        return cursor.rowcount > 0

    def get_last_used(self) -> Optional[str]:
        conn = self.connect()
        try:
            row = conn.execute("SELECT value FROM meta WHERE key = ?", (LAST_USED_KEY,)).fetchone()
        finally:
            conn.close()
        return row["value"] if row else None

    def set_last_used(self, name: Optional[str]) -> None:
        conn = self.connect()
        try:
            with conn:
                if name is None:
                    conn.execute("DELETE FROM meta WHERE key = ?", (LAST_USED_KEY,))
                else:
                    conn.execute(
                        "INSERT INTO meta (key, value) VALUES (?, ?) "
                        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                        (LAST_USED_KEY, name),
                    )
        finally:
            conn.close()


def _recency(info: SlotInfo) -> float:
    return info.last_modified.timestamp() if info.last_modified else 0.0


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


__all__ = [
    "SlotStore",
    "MemorySlotStore",
    "SqliteSlotStore",
    "SlotInfo",
    "validate_slot_name",
]
