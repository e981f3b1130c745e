"""
EditorSession - One open behavior-tree document.

The session owns everything a document needs: the GraphStore, its undo
history, the latest validation report, and the slot the document is saved
to. There is no process-wide editor state; collaborators hold a reference to
the session they work on.

Every mutation goes through a wrapper that:
1. commits any pending (debounced) attribute-edit snapshot
2. applies the store call
3. re-validates and writes the document to its slot
4. records a labelled history snapshot

Attribute edits (edit_node, edit_param, edit_field) run steps 2-3 immediately
but only schedule the snapshot, so a burst of keystrokes becomes one undo step.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .config import EditorSettings, get_settings
from .errors import ExportFailure, ImportFailure, Result
from .graph.store import GraphStore
from .graph.types import BlackboardField, Connection, DecoratorKind, Node, NodeKind, Param
from .history.debounce import SnapshotDebouncer
from .history.manager import HistoryManager, Snapshot
from .lua.compiler import TreeCompiler
from .persistence.documents import dump_document, load_document, parse_document
from .persistence.slots import SlotStore, validate_slot_name
from .validation.engine import GraphValidator, ValidationReport

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class EditorSession:
    """Store, history, validation and persistence for one document.

    Example:
        >>> session = EditorSession(settings=EditorSettings(function_prefix="ai"))
        >>> root = session.create_node(NodeKind.SEQUENCE, name="Root")
        >>> attack = session.create_node(NodeKind.ACTION, name="Attack")
        >>> session.connect(root.id, attack.id).is_ok
        True
        >>> session.undo()
        True
        >>> session.store.connections
        []
    """

    def __init__(
        self,
        settings: Optional[EditorSettings] = None,
        slots: Optional[SlotStore] = None,
        slot_name: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create a session, reopening a slot when one is given.

        Args:
            settings: Editor settings; defaults to get_settings().
            slots: Slot store documents are saved to. Without one the session
                is memory-only.
            slot_name: Slot to open (created if missing). Defaults to the
                store's last used slot.
            clock: Time source for edit debouncing.
        """
        self.settings = settings or get_settings()
        self.store = GraphStore()
        self.history = HistoryManager(capacity=self.settings.history_capacity)
        self.debouncer = SnapshotDebouncer(self.settings.history_debounce_seconds, clock)
        self.validator = GraphValidator()
        self.slots = slots
        self.slot_name: Optional[str] = None
        self.created_at = _now()
        self.last_modified = self.created_at
        self._clipboard: Optional[Node] = None

        if slots is not None and slot_name is None:
            slot_name = slots.get_last_used()

        if slots is not None and slot_name:
            if slots.exists(slot_name):
                self._load_slot(slot_name)
            else:
                self.slot_name = validate_slot_name(slot_name)
                slots.set_last_used(self.slot_name)
                self._persist()

        self.report: ValidationReport = self.validator.validate(self.store)
        self.history.record(self.store, "Initial")

    # =========================================================================
    # Change pipeline
    # =========================================================================

    def _after_change(self) -> None:
        self.report = self.validator.validate(self.store)
        self.last_modified = _now()
        self._persist()

    def _commit(self, label: str) -> None:
        self._after_change()
        self.history.record(self.store, label)

    def _flush_pending(self) -> None:
        label = self.debouncer.flush()
        if label is not None:
            self.history.record(self.store, label)

    def poll(self) -> bool:
        """Record the pending edit snapshot if its quiet period has passed.

        Returns:
            True if a snapshot was recorded.
        """
        label = self.debouncer.poll()
        if label is None:
            return False
        self.history.record(self.store, label)
        return True

    def _persist(self) -> None:
        if self.slots is None or self.slot_name is None:
            return
        document = dump_document(self.store, self.created_at, self.last_modified)
        self.slots.save(self.slot_name, document)

    # =========================================================================
    # Structural mutations
    # =========================================================================

    def create_node(
        self,
        kind: NodeKind | str,
        x: float = 0.0,
        y: float = 0.0,
        name: Optional[str] = None,
    ) -> Node:
        self._flush_pending()
        node = self.store.create_node(kind, x, y, name)
        self._commit("Create node")
        return node

    def delete_node(self, node_id: int) -> Node:
        self._flush_pending()
        node = self.store.delete_node(node_id)
        self._commit("Delete node")
        return node

    def connect(
        self,
        from_id: int,
        to_id: int,
        from_point: str = "right",
        to_point: str = "left",
    ) -> Result[Connection]:
        """Connect two nodes; a rejection changes nothing and records nothing."""
        self._flush_pending()
        result = self.store.connect(from_id, to_id, from_point, to_point)
        if result.is_ok:
            self._commit("Connect")
        return result

    def disconnect(self, node_id: int) -> int:
        self._flush_pending()
        removed = self.store.disconnect(node_id)
        if removed:
            self._commit("Disconnect")
        return removed

    def reorder_children(self, parent_id: int, from_order: int, to_order: int) -> Result[None]:
        self._flush_pending()
        result = self.store.reorder_children(parent_id, from_order, to_order)
        if result.is_ok:
            self._commit("Reorder children")
        return result

    def set_decorator_type(self, node_id: int, kind: DecoratorKind | str) -> Node:
        self._flush_pending()
        node = self.store.set_decorator_type(node_id, kind)
        self._commit("Change decorator type")
        return node

    def move_node(self, node_id: int, x: float, y: float) -> Node:
        self._flush_pending()
        node = self.store.move_node(node_id, x, y)
        self._commit("Move node")
        return node

    def move_with_descendants(self, node_id: int, dx: float, dy: float) -> List[Node]:
        self._flush_pending()
        moved = self.store.move_with_descendants(node_id, dx, dy)
        self._commit("Move subtree")
        return moved

    def add_param(self, node_id: int, name: str = "", value: str = "") -> Param:
        self._flush_pending()
        param = self.store.add_param(node_id, name, value)
        self._commit("Add param")
        return param

    def remove_param(self, node_id: int, index: int) -> Param:
        self._flush_pending()
        param = self.store.remove_param(node_id, index)
        self._commit("Remove param")
        return param

    def add_field(self, node_id: int, key: str = "", value: str = "", comment: str = "") -> BlackboardField:
        self._flush_pending()
        entry = self.store.add_field(node_id, key, value, comment)
        self._commit("Add blackboard field")
        return entry

    def remove_field(self, node_id: int, index: int) -> BlackboardField:
        self._flush_pending()
        entry = self.store.remove_field(node_id, index)
        self._commit("Remove blackboard field")
        return entry

    def copy_node(self, node_id: int) -> Node:
        """Put a clone of the node on the session clipboard."""
        self._clipboard = self.store.copy_node(node_id)
        return self._clipboard

    def paste_node(self) -> Optional[Node]:
        """Paste the clipboard node; None if nothing was copied."""
        if self._clipboard is None:
            return None
        self._flush_pending()
        node = self.store.paste_node(self._clipboard)
        self._commit("Paste node")
        return node

    def clear(self) -> None:
        self._flush_pending()
        self.store.clear()
        self._commit("Clear")

    # =========================================================================
    # Attribute edits (debounced history)
    # =========================================================================

    def edit_node(self, node_id: int, **attrs: str) -> Node:
        self.poll()
        node = self.store.update_node(node_id, **attrs)
        self._after_change()
        self.debouncer.schedule("Edit node")
        return node

    def edit_param(
        self,
        node_id: int,
        index: int,
        name: Optional[str] = None,
        value: Optional[str] = None,
    ) -> Param:
        self.poll()
        param = self.store.update_param(node_id, index, name=name, value=value)
        self._after_change()
        self.debouncer.schedule("Edit param")
        return param

    def edit_field(
        self,
        node_id: int,
        index: int,
        key: Optional[str] = None,
        value: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> BlackboardField:
        self.poll()
        entry = self.store.update_field(node_id, index, key=key, value=value, comment=comment)
        self._after_change()
        self.debouncer.schedule("Edit blackboard field")
        return entry

    # =========================================================================
    # History
    # =========================================================================

    def _restore(self, snapshot: Optional[Snapshot]) -> bool:
        if snapshot is None:
            return False
        snapshot.apply(self.store)
        self._after_change()
        logger.debug(f"Restored '{snapshot.label}' (history index {self.history.index})")
        return True

    def undo(self) -> bool:
        """Step back one snapshot; False when already at the oldest."""
        self._flush_pending()
        return self._restore(self.history.undo())

    def redo(self) -> bool:
        """Step forward one snapshot; False when already at the newest."""
        self._flush_pending()
        return self._restore(self.history.redo())

    def jump_to(self, index: int) -> bool:
        """Restore any history entry.

        Indices refer to history.entries after pending edits are committed.
        """
        self._flush_pending()
        return self._restore(self.history.jump_to(index))

    # =========================================================================
    # Export / import
    # =========================================================================

    def export_lua(self) -> str:
        """Generated Lua for the current graph.

        Raises:
            ExportFailure: If the graph has no usable root.
        """
        compiler = TreeCompiler(
            self.store,
            function_prefix=self.settings.function_prefix,
            indent=self.settings.indent,
        )
        try:
            return compiler.compile().render()
        except ExportFailure as e:
            logger.warning(f"Lua export failed: {e}")
            raise

    def export_json(self) -> str:
        return dump_document(self.store, self.created_at, self.last_modified).to_json()

    def import_json(self, text: str | bytes) -> None:
        """Replace the whole document.

        History is reset to a single "Import" entry.

        Raises:
            ImportFailure: If the document is invalid. The session is untouched.
        """
        try:
            document = parse_document(text)
        except ImportFailure as e:
            logger.warning(f"Import rejected: {e}")
            raise

        self.debouncer.cancel()
        load_document(self.store, document)
        self.created_at = document.created_at or _now()
        self._after_change()
        self.history.reset()
        self.history.record(self.store, "Import")
        logger.info(f"Imported document with {len(self.store)} nodes")

    # =========================================================================
    # Slots
    # =========================================================================

    def _require_slots(self) -> SlotStore:
        if self.slots is None:
            raise RuntimeError("Session has no slot store")
        return self.slots

    def _load_slot(self, name: str) -> None:
        slots = self._require_slots()
        document = slots.load(name)
        if document is None:
            raise KeyError(f"Slot '{name}' does not exist")
        load_document(self.store, document)
        self.slot_name = name
        self.created_at = document.created_at or _now()
        self.last_modified = document.last_modified or self.created_at
        slots.set_last_used(name)

    def open_slot(self, name: str) -> None:
        """Switch to another saved document, discarding undo history.

        Raises:
            KeyError: If the slot does not exist.
            ImportFailure: If the stored document is corrupt.
        """
        self._flush_pending()
        self._persist()
        self._load_slot(name)
        self.report = self.validator.validate(self.store)
        self.history.reset()
        self.history.record(self.store, "Open")
        logger.info(f"Opened slot '{name}'")

    def new_slot(self, name: str) -> None:
        """Start an empty document saved under a new name.

        Raises:
            ValueError: If the name is invalid or already used.
        """
        slots = self._require_slots()
        name = validate_slot_name(name)
        if slots.exists(name):
            raise ValueError(f"Slot '{name}' already exists")

        self._flush_pending()
        self._persist()
        self.store.clear()
        self.slot_name = name
        self.created_at = _now()
        slots.set_last_used(name)
        self._after_change()
        self.history.reset()
        self.history.record(self.store, "Initial")

    def rename_slot(self, old: str, new: str) -> None:
        slots = self._require_slots()
        slots.rename(old, new)
        if self.slot_name == old:
            self.slot_name = validate_slot_name(new)

    def delete_slot(self, name: str) -> None:
        """Delete a saved document other than the open one.

        Raises:
            ValueError: If name is the open slot.
            KeyError: If the slot does not exist.
        """
        slots = self._require_slots()
        if name == self.slot_name:
            raise ValueError(f"Slot '{name}' is open and cannot be deleted")
        if not slots.delete(name):
            raise KeyError(f"Slot '{name}' does not exist")


__all__ = ["EditorSession"]
