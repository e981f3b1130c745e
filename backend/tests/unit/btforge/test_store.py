"""
Unit tests for GraphStore.

Tests the GraphStore class from graph/store.py:
- Node creation and id allocation
- Connection rules (E1001-E1008) and order bookkeeping
- Deletion, disconnection and child reordering (E1010)
- Attribute, param and blackboard field edits
- Copy/paste naming
- serialize/deserialize and import consistency (E3002-E3005)
"""

import random
from typing import Dict, List

import pytest

from btforge.errors import ImportFailure
from btforge.graph import (
    DecoratorKind,
    GraphStore,
    Node,
    NodeKind,
    WORLD_MAX,
    WORLD_MIN,
    NODE_HEIGHT,
    NODE_WIDTH,
)


# =============================================================================
# Helpers
# =============================================================================


def assert_contiguous_orders(store: GraphStore) -> None:
    """Every source's outgoing orders are exactly 0..k-1."""
    by_parent: Dict[int, List[int]] = {}
    for conn in store.connections:
        by_parent.setdefault(conn.from_id, []).append(conn.order)
    for parent_id, orders in by_parent.items():
        assert sorted(orders) == list(range(len(orders))), f"node {parent_id}: {orders}"


@pytest.fixture
def store() -> GraphStore:
    return GraphStore()


@pytest.fixture
def sequence_with_children(store: GraphStore):
    """SEQUENCE root with three ACTION children a, b, c."""
    root = store.create_node(NodeKind.SEQUENCE, name="Root")
    children = [store.create_node(NodeKind.ACTION, name=n) for n in ("a", "b", "c")]
    for child in children:
        assert store.connect(root.id, child.id).is_ok
    return root, children


# =============================================================================
# Node creation
# =============================================================================


class TestCreateNode:
    """Tests for create_node and id allocation."""

    def test_ids_are_sequential(self, store: GraphStore) -> None:
        first = store.create_node(NodeKind.ACTION)
        second = store.create_node(NodeKind.SEQUENCE)

        assert first.id == 1
        assert second.id == 2
        assert store.next_id == 3

    def test_default_names(self, store: GraphStore) -> None:
        assert store.create_node(NodeKind.FALLBACK).name == "Fallback"
        assert store.create_node(NodeKind.BLACKBOARD).name == "Blackboard"
        assert store.create_node(NodeKind.ACTION, name="Attack").name == "Attack"

    def test_type_appropriate_fields(self, store: GraphStore) -> None:
        action = store.create_node(NodeKind.ACTION)
        board = store.create_node(NodeKind.BLACKBOARD)
        sequence = store.create_node(NodeKind.SEQUENCE)

        assert action.params == []
        assert action.fields is None
        assert board.fields == []
        assert board.params is None
        assert sequence.params is None
        assert sequence.decorator_type is None

    def test_accepts_type_name_string(self, store: GraphStore) -> None:
        assert store.create_node("PARALLEL").type == NodeKind.PARALLEL

    def test_unknown_type_rejected(self, store: GraphStore) -> None:
        with pytest.raises(ValueError):
            store.create_node("BOGUS")
        assert len(store) == 0
        assert store.next_id == 1

    def test_position_clamped_to_world(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.ACTION, 5000, -5000)

        assert node.x == WORLD_MAX - NODE_WIDTH
        assert node.y == WORLD_MIN

        node = store.create_node(NodeKind.ACTION, -9000, 9000)
        assert node.x == WORLD_MIN
        assert node.y == WORLD_MAX - NODE_HEIGHT

    def test_deleted_ids_are_not_reused(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.ACTION)
        store.delete_node(node.id)

        assert store.create_node(NodeKind.ACTION).id == 2

    def test_get_node_unknown_raises(self, store: GraphStore) -> None:
        with pytest.raises(KeyError):
            store.get_node(42)
        assert store.find_node(42) is None


# =============================================================================
# Connections
# =============================================================================


class TestConnect:
    """Tests for connect and its structural rules."""

    def test_orders_follow_connection_count(self, store: GraphStore, sequence_with_children) -> None:
        root, children = sequence_with_children

        assert [c.order for c in store.outgoing(root.id)] == [0, 1, 2]
        assert store.children_of(root.id) == children

    def test_unknown_node(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.SEQUENCE)
        result = store.connect(node.id, 99)

        assert result.is_error
        assert result.error.code == "E1001"

    def test_self_connection(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.SEQUENCE)
        assert store.connect(node.id, node.id).error.code == "E1002"

    def test_duplicate_edge(self, store: GraphStore) -> None:
        root = store.create_node(NodeKind.SEQUENCE)
        leaf = store.create_node(NodeKind.ACTION)
        store.connect(root.id, leaf.id)

        result = store.connect(root.id, leaf.id)
        assert result.error.code == "E1003"
        assert len(store.connections) == 1

    @pytest.mark.parametrize("kind", [NodeKind.DECORATOR, NodeKind.SUBTREE])
    def test_single_child_sources(self, store: GraphStore, kind: NodeKind) -> None:
        source = store.create_node(kind)
        first = store.create_node(NodeKind.ACTION)
        second = store.create_node(NodeKind.ACTION)

        assert store.connect(source.id, first.id).is_ok
        result = store.connect(source.id, second.id)

        assert result.error.code == "E1004"
        assert store.children_of(source.id) == [first]

    @pytest.mark.parametrize("target_kind", list(NodeKind))
    def test_condition_source_always_rejected(self, store: GraphStore, target_kind: NodeKind) -> None:
        condition = store.create_node(NodeKind.CONDITION)
        target = store.create_node(target_kind)

        result = store.connect(condition.id, target.id)

        assert result.is_error
        assert result.error.code == "E1005"
        assert store.connections == []

    def test_action_source_rejected(self, store: GraphStore) -> None:
        action = store.create_node(NodeKind.ACTION)
        other = store.create_node(NodeKind.ACTION)
        assert store.connect(action.id, other.id).error.code == "E1005"

    def test_subtree_never_a_child(self, store: GraphStore) -> None:
        root = store.create_node(NodeKind.SEQUENCE)
        subtree = store.create_node(NodeKind.SUBTREE)

        assert store.connect(root.id, subtree.id).error.code == "E1006"

    def test_blackboard_attaches_to_roots(self, store: GraphStore) -> None:
        board = store.create_node(NodeKind.BLACKBOARD)
        other_board = store.create_node(NodeKind.BLACKBOARD)
        root = store.create_node(NodeKind.SEQUENCE)

        assert store.connect(board.id, root.id).is_ok
        # Parents that are all blackboards still count as a root
        assert store.connect(other_board.id, root.id).is_ok

    def test_blackboard_rejected_for_inner_nodes(self, store: GraphStore) -> None:
        root = store.create_node(NodeKind.SEQUENCE)
        leaf = store.create_node(NodeKind.ACTION)
        board = store.create_node(NodeKind.BLACKBOARD)
        store.connect(root.id, leaf.id)

        result = store.connect(board.id, leaf.id)

        assert result.error.code == "E1007"
        assert result.error.node_id == leaf.id

    def test_cycle_rejected(self, store: GraphStore) -> None:
        a = store.create_node(NodeKind.SEQUENCE)
        b = store.create_node(NodeKind.FALLBACK)
        c = store.create_node(NodeKind.PARALLEL)
        store.connect(a.id, b.id)
        store.connect(b.id, c.id)

        result = store.connect(c.id, a.id)

        assert result.error.code == "E1008"
        assert len(store.connections) == 2

    def test_rejection_message_format(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.SEQUENCE)
        error = store.connect(node.id, node.id).error

        assert str(error).startswith("[E1002] ")
        assert error.to_dict()["category"] == "structure"


class TestDeleteAndDisconnect:
    """Tests for delete_node, disconnect and reorder_children."""

    def test_delete_renumbers_parent(self, store: GraphStore, sequence_with_children) -> None:
        root, (a, b, c) = sequence_with_children

        store.delete_node(b.id)

        assert store.children_of(root.id) == [a, c]
        assert [conn.order for conn in store.outgoing(root.id)] == [0, 1]
        assert b.id not in store

    def test_delete_removes_outgoing(self, store: GraphStore, sequence_with_children) -> None:
        root, children = sequence_with_children

        store.delete_node(root.id)

        assert store.connections == []
        assert store.roots() == children

    def test_disconnect_both_directions(self, store: GraphStore) -> None:
        top = store.create_node(NodeKind.SEQUENCE)
        middle = store.create_node(NodeKind.FALLBACK)
        sibling = store.create_node(NodeKind.ACTION)
        leaf = store.create_node(NodeKind.ACTION)
        store.connect(top.id, middle.id)
        store.connect(top.id, sibling.id)
        store.connect(middle.id, leaf.id)

        removed = store.disconnect(middle.id)

        assert removed == 2
        assert store.children_of(top.id) == [sibling]
        assert store.outgoing(top.id)[0].order == 0

    def test_reorder_swaps_positions(self, store: GraphStore, sequence_with_children) -> None:
        root, (a, b, c) = sequence_with_children

        assert store.reorder_children(root.id, 0, 2).is_ok

        assert store.children_of(root.id) == [c, b, a]
        assert_contiguous_orders(store)

    def test_reorder_missing_position(self, store: GraphStore, sequence_with_children) -> None:
        root, children = sequence_with_children

        result = store.reorder_children(root.id, 0, 7)

        assert result.error.code == "E1010"
        assert store.children_of(root.id) == children

    def test_orders_stay_contiguous_under_random_edits(self, store: GraphStore) -> None:
        rng = random.Random(7)
        kinds = [NodeKind.SEQUENCE, NodeKind.FALLBACK, NodeKind.PARALLEL, NodeKind.ACTION]
        for _ in range(12):
            store.create_node(rng.choice(kinds))

        for _ in range(300):
            ids = [n.id for n in store.nodes]
            op = rng.random()
            if op < 0.6 and len(ids) > 1:
                store.connect(rng.choice(ids), rng.choice(ids))
            elif op < 0.75 and ids:
                store.disconnect(rng.choice(ids))
            elif op < 0.85 and ids:
                store.delete_node(rng.choice(ids))
            elif op < 0.95 and ids:
                parent = rng.choice(ids)
                count = store.child_count(parent)
                if count:
                    store.reorder_children(parent, rng.randrange(count), rng.randrange(count))
            else:
                store.create_node(rng.choice(kinds))
            assert_contiguous_orders(store)


# =============================================================================
# Attribute edits
# =============================================================================


class TestAttributes:
    """Tests for update_node, set_decorator_type and movement."""

    def test_update_free_text(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.ACTION)
        store.update_node(node.id, name="Attack", func="combat.attack", comment="hits")

        assert (node.name, node.func, node.comment) == ("Attack", "combat.attack", "hits")

    def test_update_unknown_attribute(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.ACTION)
        with pytest.raises(ValueError):
            store.update_node(node.id, id=5)

    def test_decorator_attribute_on_leaf(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.ACTION)
        with pytest.raises(ValueError):
            store.update_node(node.id, timeout_duration="5")

    def test_decorator_type_change_clears_attributes(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.DECORATOR)
        store.set_decorator_type(node.id, DecoratorKind.TIMEOUT)
        store.update_node(node.id, timeout_duration="5", func="x")

        store.set_decorator_type(node.id, "RETRY")

        assert node.decorator_type == DecoratorKind.RETRY
        assert node.timeout_duration == ""
        assert node.func == ""
        assert node.params is None

    def test_condition_interrupt_gets_params(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.DECORATOR)
        store.set_decorator_type(node.id, DecoratorKind.CONDITION_INTERRUPT)

        assert node.params == []
        store.add_param(node.id, "hp", "10")
        assert node.params[0].value == "10"

    def test_decorator_type_on_non_decorator(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.SEQUENCE)
        with pytest.raises(ValueError):
            store.set_decorator_type(node.id, DecoratorKind.INVERTER)

    def test_effective_type(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.DECORATOR)
        assert node.effective_type == "DECORATOR"
        store.set_decorator_type(node.id, DecoratorKind.INVERTER)
        assert node.effective_type == "INVERTER"

    def test_move_clamps(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.ACTION)
        store.move_node(node.id, 3000, 100)

        assert (node.x, node.y) == (1820.0, 100.0)

    def test_move_with_descendants(self, store: GraphStore, sequence_with_children) -> None:
        root, children = sequence_with_children
        other = store.create_node(NodeKind.ACTION, 10, 10)

        moved = store.move_with_descendants(root.id, 25, -5)

        assert moved == [root] + children
        assert all((n.x, n.y) == (25.0, -5.0) for n in moved)
        assert (other.x, other.y) == (10.0, 10.0)


class TestParamsAndFields:
    """Tests for param and blackboard field lists."""

    def test_param_lifecycle(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.CONDITION)
        store.add_param(node.id, "target")
        store.add_param(node.id, "range", "5")
        store.update_param(node.id, 0, value="@enemy")
        removed = store.remove_param(node.id, 1)

        assert removed.name == "range"
        assert [(p.name, p.value) for p in node.params] == [("target", "@enemy")]

    def test_params_rejected_on_composites(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.SEQUENCE)
        with pytest.raises(ValueError):
            store.add_param(node.id)

    def test_param_bad_index(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.ACTION)
        with pytest.raises(IndexError):
            store.update_param(node.id, 0, name="x")

    def test_field_lifecycle(self, store: GraphStore) -> None:
        board = store.create_node(NodeKind.BLACKBOARD)
        store.add_field(board.id, "hp", "100")
        store.add_field(board.id, "speed")
        store.update_field(board.id, 1, value="2.5", comment="m/s")
        store.remove_field(board.id, 0)

        assert [(f.key, f.value, f.comment) for f in board.fields] == [("speed", "2.5", "m/s")]

    def test_fields_only_on_blackboards(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.ACTION)
        with pytest.raises(ValueError):
            store.add_field(node.id, "hp")

    def test_blackboard_fields_in_creation_order(self, store: GraphStore) -> None:
        first = store.create_node(NodeKind.BLACKBOARD)
        second = store.create_node(NodeKind.BLACKBOARD)
        store.add_field(second.id, "b")
        store.add_field(first.id, "a")

        assert [f.key for f in store.blackboard_fields()] == ["a", "b"]


# =============================================================================
# Copy / paste
# =============================================================================


class TestCopyPaste:
    """Tests for copy_node / paste_node."""

    def test_paste_gets_fresh_id_offset_and_name(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.ACTION, 100, 100, "Attack")
        store.update_node(node.id, func="attack")

        pasted = store.paste_node(store.copy_node(node.id))

        assert pasted.id == 2
        assert pasted.name == "Attack_copy"
        assert (pasted.x, pasted.y) == (150.0, 150.0)
        assert pasted.func == "attack"
        assert pasted.params is not node.params

    def test_repeated_paste_counts_up(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.ACTION, name="Attack")
        copied = store.copy_node(node.id)

        names = [store.paste_node(copied).name for _ in range(3)]

        assert names == ["Attack_copy", "Attack_copy2", "Attack_copy3"]

    def test_copy_of_copy_continues_suffix(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.ACTION, name="Attack_copy")
        assert store.paste_node(store.copy_node(node.id)).name == "Attack_copy2"

    def test_paste_has_no_connections(self, store: GraphStore, sequence_with_children) -> None:
        root, _ = sequence_with_children
        pasted = store.paste_node(store.copy_node(root.id))

        assert store.outgoing(pasted.id) == []
        assert store.incoming(pasted.id) == []


# =============================================================================
# Serialization
# =============================================================================


class TestSerialization:
    """Tests for serialize/deserialize and snapshots."""

    def test_round_trip_is_idempotent(self, store: GraphStore, sequence_with_children) -> None:
        root, (a, b, c) = sequence_with_children
        board = store.create_node(NodeKind.BLACKBOARD)
        store.add_field(board.id, "hp", "100")
        store.connect(board.id, root.id)
        deco = store.create_node(NodeKind.DECORATOR)
        store.set_decorator_type(deco.id, DecoratorKind.RETRY)
        store.update_node(deco.id, retry_count="@hp")
        store.add_param(a.id, "x", "1")

        first = store.serialize()
        other = GraphStore()
        other.deserialize(first)

        assert other.serialize() == first
        assert first["version"] == "1.0"

    def test_allocator_reset_to_max_plus_one(self, store: GraphStore) -> None:
        store.deserialize({
            "nodes": [
                {"id": 3, "type": "SEQUENCE", "name": "Root"},
                {"id": 7, "type": "ACTION", "name": "Leaf"},
            ],
            "connections": [{"from": 3, "to": 7}],
        })

        assert store.next_id == 8
        assert store.create_node(NodeKind.ACTION).id == 8

    def test_missing_orders_follow_list_position(self, store: GraphStore) -> None:
        store.deserialize({
            "nodes": [
                {"id": 1, "type": "SEQUENCE"},
                {"id": 2, "type": "ACTION"},
                {"id": 3, "type": "ACTION"},
            ],
            "connections": [{"from": 1, "to": 3}, {"from": 1, "to": 2}],
        })

        assert [n.id for n in store.children_of(1)] == [3, 2]

    def test_gapped_orders_made_contiguous(self, store: GraphStore) -> None:
        store.deserialize({
            "nodes": [
                {"id": 1, "type": "SEQUENCE"},
                {"id": 2, "type": "ACTION"},
                {"id": 3, "type": "ACTION"},
            ],
            "connections": [
                {"from": 1, "to": 2, "order": 5},
                {"from": 1, "to": 3, "order": 2},
            ],
        })

        assert [n.id for n in store.children_of(1)] == [3, 2]
        assert_contiguous_orders(store)

    @pytest.mark.parametrize(
        "doc, code",
        [
            ({"nodes": [{"id": 1, "type": "NOPE"}]}, "E3002"),
            ({"nodes": [{"type": "ACTION"}]}, "E3002"),
            ({"nodes": ["x"]}, "E3002"),
            ({"nodes": [{"id": 1, "type": "ACTION", "params": [1]}]}, "E3002"),
            ({"nodes": [{"id": 1, "type": "BLACKBOARD", "fields": ["hp"]}]}, "E3002"),
            ({"nodes": [{"id": 1, "type": "SEQUENCE"}], "connections": ["x"]}, "E3002"),
            ([], "E3002"),
            ("text", "E3002"),
            ({"nodes": [{"id": 1, "type": "ACTION"}, {"id": 1, "type": "ACTION"}]}, "E3003"),
            ({"nodes": [{"id": 1, "type": "SEQUENCE"}], "connections": [{"from": 1, "to": 2}]}, "E3004"),
            (
                {
                    "nodes": [{"id": 1, "type": "SEQUENCE"}, {"id": 2, "type": "ACTION"}],
                    "connections": [{"from": 1, "to": 2}, {"from": 1, "to": 2}],
                },
                "E3005",
            ),
        ],
    )
    def test_bad_documents_leave_state_untouched(
        self, store: GraphStore, sequence_with_children, doc, code
    ) -> None:
        before = store.serialize()

        with pytest.raises(ImportFailure) as exc_info:
            store.deserialize(doc)

        assert exc_info.value.code == code
        assert store.serialize() == before

    def test_descendants_guard_against_imported_cycles(self, store: GraphStore) -> None:
        store.deserialize({
            "nodes": [{"id": 1, "type": "SEQUENCE"}, {"id": 2, "type": "SEQUENCE"}],
            "connections": [{"from": 1, "to": 2}, {"from": 2, "to": 1}],
        })

        assert [n.id for n in store.descendants(1)] == [1, 2]

    def test_snapshot_is_independent(self, store: GraphStore) -> None:
        node = store.create_node(NodeKind.ACTION, name="Before")
        nodes, connections, next_id = store.snapshot()

        store.update_node(node.id, name="After")
        store.create_node(NodeKind.ACTION)

        assert nodes[0].name == "Before"
        store.restore(nodes, connections, next_id)
        assert [n.name for n in store.nodes] == ["Before"]
        assert store.next_id == 2

    def test_clear_resets_allocator(self, store: GraphStore, sequence_with_children) -> None:
        store.clear()

        assert len(store) == 0
        assert store.connections == []
        assert store.create_node(NodeKind.ACTION).id == 1

    def test_node_dict_uses_camel_case(self) -> None:
        node = Node(id=1, type=NodeKind.DECORATOR, decorator_type=DecoratorKind.WAIT, wait_duration="2")
        data = node.to_dict()

        assert data["decoratorType"] == "WAIT"
        assert data["waitDuration"] == "2"
        assert "timeoutDuration" not in data
        assert Node.from_dict(data) == node
