"""
Unit tests for EditorSession.

Tests:
- Mutations re-validate, persist and record one history entry each
- Rejected connections record nothing
- Debounced attribute edits coalesce into a single undo step
- Undo/redo restore exact prior states
- Import/export and history reset
- Slot lifecycle (open, new, rename, delete, last-used reopen)
"""

import json

import pytest

from btforge.config import EditorSettings
from btforge.errors import ExportFailure, ImportFailure
from btforge.graph import DecoratorKind, NodeKind
from btforge.persistence import MemorySlotStore
from btforge.session import EditorSession


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> EditorSettings:
    return EditorSettings(
        function_prefix="ai",
        history_capacity=50,
        history_debounce_seconds=1.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session(settings: EditorSettings, clock: FakeClock) -> EditorSession:
    return EditorSession(settings=settings, clock=clock)


def labels(session: EditorSession):
    return [entry.label for entry in session.history.entries]


# =============================================================================
# Mutations
# =============================================================================


class TestMutations:
    """Tests for the change pipeline."""

    def test_initial_state(self, session: EditorSession) -> None:
        assert labels(session) == ["Initial"]
        assert session.report.is_clean
        assert session.slot_name is None

    def test_each_mutation_records(self, session: EditorSession) -> None:
        root = session.create_node(NodeKind.SEQUENCE, name="Root")
        leaf = session.create_node(NodeKind.ACTION, name="Leaf")
        session.connect(root.id, leaf.id)
        session.move_node(leaf.id, 100, 100)
        session.add_param(leaf.id, "speed", "1")

        assert labels(session) == [
            "Initial", "Create node", "Create node", "Connect", "Move node", "Add param",
        ]

    def test_report_follows_graph(self, session: EditorSession) -> None:
        root = session.create_node(NodeKind.SEQUENCE)
        assert session.report.has_error(root.id)

        leaf = session.create_node(NodeKind.ACTION)
        session.connect(root.id, leaf.id)
        assert not session.report.has_error(root.id)
        assert session.report.has_error(leaf.id)

    def test_rejected_connect_records_nothing(self, session: EditorSession) -> None:
        node = session.create_node(NodeKind.CONDITION)
        other = session.create_node(NodeKind.ACTION)
        before = len(session.history)

        result = session.connect(node.id, other.id)

        assert result.error.code == "E1005"
        assert len(session.history) == before

    def test_disconnect_without_connections_records_nothing(self, session: EditorSession) -> None:
        node = session.create_node(NodeKind.ACTION)
        before = len(session.history)

        assert session.disconnect(node.id) == 0
        assert len(session.history) == before

    def test_copy_paste(self, session: EditorSession) -> None:
        assert session.paste_node() is None

        node = session.create_node(NodeKind.ACTION, name="Attack")
        session.copy_node(node.id)
        pasted = session.paste_node()

        assert pasted.name == "Attack_copy"
        assert labels(session)[-1] == "Paste node"

    def test_decorator_change(self, session: EditorSession) -> None:
        node = session.create_node(NodeKind.DECORATOR)
        session.set_decorator_type(node.id, DecoratorKind.WAIT)

        assert session.store.get_node(node.id).decorator_type == DecoratorKind.WAIT
        assert labels(session)[-1] == "Change decorator type"


# =============================================================================
# Debounced edits
# =============================================================================


class TestDebouncedEdits:
    """Tests for attribute-edit coalescing."""

    def test_burst_becomes_one_entry(self, session: EditorSession, clock: FakeClock) -> None:
        node = session.create_node(NodeKind.ACTION)
        before = len(session.history)

        session.edit_node(node.id, name="A")
        clock.advance(0.3)
        session.edit_node(node.id, name="At")
        clock.advance(0.3)
        session.edit_node(node.id, name="Attack")

        assert len(session.history) == before
        clock.advance(1.0)
        assert session.poll() is True
        assert len(session.history) == before + 1
        assert session.history.current.nodes[0].name == "Attack"

    def test_spaced_edits_are_separate(self, session: EditorSession, clock: FakeClock) -> None:
        node = session.create_node(NodeKind.ACTION)
        before = len(session.history)

        session.edit_node(node.id, name="First")
        clock.advance(1.5)
        session.edit_node(node.id, name="Second")
        clock.advance(1.5)
        session.poll()

        assert len(session.history) == before + 2

    def test_edit_applies_and_validates_immediately(self, session: EditorSession) -> None:
        node = session.create_node(NodeKind.ACTION)
        assert session.report.has_error(node.id)

        session.edit_node(node.id, func="attack")

        assert session.store.get_node(node.id).func == "attack"
        assert not session.report.has_error(node.id)

    def test_structural_change_commits_pending_edit(self, session: EditorSession) -> None:
        node = session.create_node(NodeKind.ACTION)
        session.edit_node(node.id, name="Renamed")

        session.create_node(NodeKind.SEQUENCE)

        assert labels(session)[-2:] == ["Edit node", "Create node"]
        assert session.debouncer.pending is None

    def test_undo_commits_pending_edit_first(self, session: EditorSession) -> None:
        node = session.create_node(NodeKind.ACTION, name="Original")
        session.edit_node(node.id, name="Edited")

        assert session.undo() is True

        assert session.store.get_node(node.id).name == "Original"
        assert session.redo() is True
        assert session.store.get_node(node.id).name == "Edited"

    def test_param_and_field_edits(self, session: EditorSession, clock: FakeClock) -> None:
        leaf = session.create_node(NodeKind.ACTION)
        board = session.create_node(NodeKind.BLACKBOARD)
        session.add_param(leaf.id, "target")
        session.add_field(board.id, "enemy")

        session.edit_param(leaf.id, 0, value="@enemy")
        clock.advance(2.0)
        session.edit_field(board.id, 0, value="boss")
        clock.advance(2.0)
        session.poll()

        assert labels(session)[-2:] == ["Edit param", "Edit blackboard field"]


# =============================================================================
# Undo / redo
# =============================================================================


class TestUndoRedo:
    """Tests for history navigation through the session."""

    def test_undo_all_and_redo_all(self, session: EditorSession) -> None:
        states = [session.store.serialize()]
        root = session.create_node(NodeKind.SEQUENCE, name="Root")
        states.append(session.store.serialize())
        for i in range(24):
            leaf = session.create_node(NodeKind.ACTION, name=f"leaf{i}")
            states.append(session.store.serialize())
            session.connect(root.id, leaf.id)
            states.append(session.store.serialize())

        assert len(session.history) == 50

        for expected in reversed(states[:-1]):
            assert session.undo() is True
            assert session.store.serialize() == expected
        assert session.undo() is False

        for expected in states[1:]:
            assert session.redo() is True
            assert session.store.serialize() == expected
        assert session.redo() is False

    def test_capacity(self, session: EditorSession) -> None:
        for _ in range(60):
            session.create_node(NodeKind.ACTION)

        assert len(session.history) == 50
        undone = 0
        while session.undo():
            undone += 1
        assert undone == 49
        assert len(session.store) == 11

    def test_new_action_discards_redo(self, session: EditorSession) -> None:
        session.create_node(NodeKind.ACTION)
        session.create_node(NodeKind.ACTION)
        session.undo()

        session.create_node(NodeKind.SEQUENCE)

        assert session.redo() is False
        assert [n.type for n in session.store.nodes] == [NodeKind.ACTION, NodeKind.SEQUENCE]

    def test_undo_restores_allocator(self, session: EditorSession) -> None:
        session.create_node(NodeKind.ACTION)
        session.create_node(NodeKind.ACTION)
        session.undo()

        assert session.create_node(NodeKind.ACTION).id == 2

    def test_jump_to(self, session: EditorSession) -> None:
        for _ in range(3):
            session.create_node(NodeKind.ACTION)

        assert session.jump_to(1) is True
        assert len(session.store) == 1
        with pytest.raises(IndexError):
            session.jump_to(10)


# =============================================================================
# Import / export
# =============================================================================


class TestImportExport:
    """Tests for JSON and Lua export."""

    def test_export_lua_uses_settings(self, session: EditorSession) -> None:
        leaf = session.create_node(NodeKind.ACTION, name="Attack")
        session.edit_node(leaf.id, func="attack")

        assert 'func = require "ai.attack"' in session.export_lua()

    def test_export_lua_empty_graph(self, session: EditorSession) -> None:
        with pytest.raises(ExportFailure) as exc_info:
            session.export_lua()
        assert exc_info.value.code == "E4001"

    def test_export_then_import(self, session: EditorSession, settings, clock) -> None:
        root = session.create_node(NodeKind.SEQUENCE, name="Root")
        leaf = session.create_node(NodeKind.ACTION, name="Leaf")
        session.connect(root.id, leaf.id)
        text = session.export_json()

        other = EditorSession(settings=settings, clock=clock)
        other.import_json(text)

        assert other.store.serialize() == session.store.serialize()
        assert labels(other) == ["Import"]
        assert other.undo() is False
        assert other.create_node(NodeKind.ACTION).id == 3

    def test_failed_import_leaves_session(self, session: EditorSession) -> None:
        session.create_node(NodeKind.ACTION, name="Keep")
        before = session.store.serialize()
        history_before = labels(session)

        with pytest.raises(ImportFailure) as exc_info:
            session.import_json(json.dumps({"nodes": [{"id": 1, "type": "ACTION"}, {"id": 1, "type": "ACTION"}]}))

        assert exc_info.value.code == "E3003"
        assert session.store.serialize() == before
        assert labels(session) == history_before

    def test_import_drops_pending_edit(self, session: EditorSession) -> None:
        node = session.create_node(NodeKind.ACTION)
        session.edit_node(node.id, name="Pending")

        session.import_json("{}")

        assert session.debouncer.pending is None
        assert len(session.store) == 0


# =============================================================================
# Slots
# =============================================================================


class TestSlots:
    """Tests for slot persistence."""

    @pytest.fixture
    def slots(self) -> MemorySlotStore:
        return MemorySlotStore()

    def test_new_slot_is_created(self, settings, clock, slots: MemorySlotStore) -> None:
        session = EditorSession(settings=settings, slots=slots, slot_name="main", clock=clock)

        assert session.slot_name == "main"
        assert slots.exists("main")
        assert slots.get_last_used() == "main"

    def test_every_change_is_saved(self, settings, clock, slots: MemorySlotStore) -> None:
        session = EditorSession(settings=settings, slots=slots, slot_name="main", clock=clock)
        node = session.create_node(NodeKind.ACTION)
        session.edit_node(node.id, name="Typed")

        document = slots.load("main")

        assert [n.name for n in document.nodes] == ["Typed"]

    def test_reopens_last_used(self, settings, clock, slots: MemorySlotStore) -> None:
        first = EditorSession(settings=settings, slots=slots, slot_name="main", clock=clock)
        first.create_node(NodeKind.SEQUENCE, name="Saved")

        second = EditorSession(settings=settings, slots=slots, clock=clock)

        assert second.slot_name == "main"
        assert [n.name for n in second.store.nodes] == ["Saved"]
        assert labels(second) == ["Initial"]

    def test_open_slot(self, settings, clock, slots: MemorySlotStore) -> None:
        session = EditorSession(settings=settings, slots=slots, slot_name="a", clock=clock)
        session.create_node(NodeKind.ACTION, name="InA")
        session.new_slot("b")
        session.create_node(NodeKind.ACTION, name="InB")

        session.open_slot("a")

        assert [n.name for n in session.store.nodes] == ["InA"]
        assert labels(session) == ["Open"]
        assert slots.get_last_used() == "a"
        assert [n.name for n in slots.load("b").nodes] == ["InB"]

    def test_open_missing_slot(self, settings, clock, slots: MemorySlotStore) -> None:
        session = EditorSession(settings=settings, slots=slots, slot_name="a", clock=clock)
        with pytest.raises(KeyError):
            session.open_slot("missing")

    def test_new_slot_name_taken(self, settings, clock, slots: MemorySlotStore) -> None:
        session = EditorSession(settings=settings, slots=slots, slot_name="a", clock=clock)
        with pytest.raises(ValueError):
            session.new_slot("a")

    def test_rename_open_slot(self, settings, clock, slots: MemorySlotStore) -> None:
        session = EditorSession(settings=settings, slots=slots, slot_name="draft", clock=clock)

        session.rename_slot("draft", "final")

        assert session.slot_name == "final"
        assert slots.get_last_used() == "final"
        session.create_node(NodeKind.ACTION)
        assert len(slots.load("final").nodes) == 1

    def test_delete_slot(self, settings, clock, slots: MemorySlotStore) -> None:
        session = EditorSession(settings=settings, slots=slots, slot_name="a", clock=clock)
        session.new_slot("b")

        with pytest.raises(ValueError):
            session.delete_slot("b")
        session.delete_slot("a")
        assert not slots.exists("a")
        with pytest.raises(KeyError):
            session.delete_slot("a")

    def test_slot_operations_need_a_store(self, session: EditorSession) -> None:
        with pytest.raises(RuntimeError):
            session.new_slot("x")
