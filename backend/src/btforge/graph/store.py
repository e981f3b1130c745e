"""
GraphStore - Owns the node and connection collections.

Every structural mutation goes through this class. Each method either fully
applies its effect or leaves the graph untouched:
- connect/reorder_children return a Result and reject invariant violations
- unknown node ids raise KeyError (caller bug, not a user action)

Invariants maintained:
- Node ids are unique and never reused within a session
- Connections only reference existing nodes
- Outgoing orders of every source form a contiguous 0..k-1 sequence
- DECORATOR / SUBTREE sources have at most one child
- CONDITION / ACTION nodes have no children
- SUBTREE nodes are never a child
- BLACKBOARD sources only attach to roots (targets whose parents are all blackboards)
- No duplicate (from, to) edges, no cycles
"""

from __future__ import annotations

import copy
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..errors import (
    BLACKBOARD_NOT_ROOT,
    CYCLE,
    DANGLING_CONNECTION,
    DUPLICATE_CONNECTION,
    DUPLICATE_EDGE,
    DUPLICATE_NODE_ID,
    LEAF_SOURCE,
    NO_SUCH_POSITION,
    SCHEMA_VIOLATION,
    SELF_CONNECTION,
    SINGLE_CHILD_TAKEN,
    SUBTREE_TARGET,
    UNKNOWN_NODE,
    EditorError,
    ImportFailure,
    Result,
    structural_error,
)
from .types import (
    DECORATOR_FIELDS,
    DEFAULT_NAMES,
    EDITABLE_ATTRIBUTES,
    BlackboardField,
    Connection,
    DecoratorKind,
    Node,
    NodeKind,
    Param,
    clamp_position,
)

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = "1.0"
PASTE_OFFSET = 50.0
COPY_SUFFIX_PATTERN = re.compile(r"^(.+)_copy(\d*)$")


class GraphStore:
    """Id-indexed node map plus ordered connection list.

    Example:
        >>> store = GraphStore()
        >>> root = store.create_node(NodeKind.SEQUENCE, 0, 0, "Root")
        >>> leaf = store.create_node(NodeKind.ACTION, 200, 0, "Attack")
        >>> store.connect(root.id, leaf.id).is_ok
        True
        >>> [n.name for n in store.children_of(root.id)]
        ['Attack']
    """

    def __init__(self) -> None:
        # Insertion order is creation order; the resolver depends on it
        self._nodes: Dict[int, Node] = {}
        self._connections: List[Connection] = []
        self._next_id = 1

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def next_id(self) -> int:
        """Id the next created node will receive."""
        return self._next_id

    @property
    def nodes(self) -> List[Node]:
        """Nodes in creation order."""
        return list(self._nodes.values())

    @property
    def connections(self) -> List[Connection]:
        return list(self._connections)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: int) -> Node:
        """Return the node with this id.

        Raises:
            KeyError: If no such node exists.
        """
        try:
            return self._nodes[node_id]
        except KeyError:
            raise KeyError(f"Node {node_id} does not exist") from None

    def find_node(self, node_id: int) -> Optional[Node]:
        return self._nodes.get(node_id)

    def outgoing(self, node_id: int) -> List[Connection]:
        """Outgoing connections sorted by order."""
        conns = [c for c in self._connections if c.from_id == node_id]
        conns.sort(key=lambda c: c.order)
        return conns

    def incoming(self, node_id: int) -> List[Connection]:
        return [c for c in self._connections if c.to_id == node_id]

    def children_of(self, node_id: int) -> List[Node]:
        """Child nodes in evaluation order."""
        return [self._nodes[c.to_id] for c in self.outgoing(node_id) if c.to_id in self._nodes]

    def parents_of(self, node_id: int) -> List[Node]:
        return [self._nodes[c.from_id] for c in self.incoming(node_id) if c.from_id in self._nodes]

    def child_count(self, node_id: int) -> int:
        return sum(1 for c in self._connections if c.from_id == node_id)

    def roots(self) -> List[Node]:
        """Nodes without an incoming connection, in creation order."""
        targets = {c.to_id for c in self._connections}
        return [n for n in self._nodes.values() if n.id not in targets]

    def nodes_of_kind(self, kind: NodeKind) -> List[Node]:
        return [n for n in self._nodes.values() if n.type == kind]

    def blackboard_fields(self) -> List[BlackboardField]:
        """Every blackboard field, in node creation order then field order."""
        fields: List[BlackboardField] = []
        for node in self._nodes.values():
            if node.type == NodeKind.BLACKBOARD and node.fields:
                fields.extend(node.fields)
        return fields

    def descendants(self, node_id: int) -> List[Node]:
        """Node itself followed by all descendants, pre-order.

        A visited set guards against cycles that may exist in imported
        documents; connect() itself never creates one.
        """
        start = self.get_node(node_id)
        result = [start]
        visited = {start.id}

        def collect(parent_id: int) -> None:
            for conn in self.outgoing(parent_id):
                child = self._nodes.get(conn.to_id)
                if child is not None and child.id not in visited:
                    visited.add(child.id)
                    result.append(child)
                    collect(child.id)

        collect(start.id)
        return result

    # =========================================================================
    # Node lifecycle
    # =========================================================================

    def create_node(
        self,
        kind: NodeKind | str,
        x: float = 0.0,
        y: float = 0.0,
        name: Optional[str] = None,
    ) -> Node:
        """Create a node of the given type with type-appropriate empty fields.

        Raises:
            ValueError: If kind is not a known node type.
        """
        kind = NodeKind(kind)
        px, py = clamp_position(x, y)
        node = Node(
            id=self._next_id,
            type=kind,
            name=name or DEFAULT_NAMES[kind],
            x=px,
            y=py,
        )
        if NodeKind.is_leaf(kind):
            node.params = []
        if kind == NodeKind.BLACKBOARD:
            node.fields = []

        self._nodes[node.id] = node
        self._next_id += 1
        logger.debug(f"Created {kind.value} node {node.id} '{node.name}'")
        return node

    def delete_node(self, node_id: int) -> Node:
        """Remove a node and every connection touching it.

        Former parents have their remaining children renumbered.
        """
        node = self.get_node(node_id)
        affected_parents = {c.from_id for c in self._connections if c.to_id == node_id}

        self._connections = [
            c for c in self._connections if c.from_id != node_id and c.to_id != node_id
        ]
        for parent_id in affected_parents:
            self._renumber(parent_id)

        del self._nodes[node_id]
        logger.debug(f"Deleted node {node_id} (renumbered parents: {sorted(affected_parents)})")
        return node

    def clear(self) -> None:
        """Remove everything and reset the id allocator."""
        self._nodes = {}
        self._connections = []
        self._next_id = 1

    # =========================================================================
    # Connections
    # =========================================================================

    def check_connect(self, from_id: int, to_id: int) -> Optional[EditorError]:
        """Return the rejection a connect(from_id, to_id) would produce, if any."""
        source = self._nodes.get(from_id)
        target = self._nodes.get(to_id)
        if source is None or target is None:
            missing = from_id if source is None else to_id
            return structural_error(UNKNOWN_NODE, f"Node {missing} does not exist", missing)

        if from_id == to_id:
            return structural_error(SELF_CONNECTION, "A node cannot be its own child", from_id)

        if any(c.from_id == from_id and c.to_id == to_id for c in self._connections):
            return structural_error(
                DUPLICATE_EDGE, f"Node {from_id} is already connected to node {to_id}", from_id
            )

        if NodeKind.is_single_child(source.type) and self.child_count(from_id) >= 1:
            return structural_error(
                SINGLE_CHILD_TAKEN,
                f"{source.type.value} node '{source.name}' already has a child",
                from_id,
            )

        if NodeKind.is_leaf(source.type):
            return structural_error(
                LEAF_SOURCE,
                f"{source.type.value} nodes are leaves and cannot have children",
                from_id,
            )

        if target.type == NodeKind.SUBTREE:
            return structural_error(
                SUBTREE_TARGET, f"Subtree node '{target.name}' cannot have a parent", to_id
            )

        if source.type == NodeKind.BLACKBOARD and not self._is_blackboard_attachable(to_id):
            return structural_error(
                BLACKBOARD_NOT_ROOT,
                f"Blackboard nodes only attach to roots; '{target.name}' already has a parent",
                to_id,
            )

        if self._reaches(to_id, from_id):
            return structural_error(
                CYCLE,
                f"Connecting {from_id} -> {to_id} would create a cycle",
                from_id,
            )

        return None

    def connect(
        self,
        from_id: int,
        to_id: int,
        from_point: str = "right",
        to_point: str = "left",
    ) -> Result[Connection]:
        """Append a connection as the source's last child.

        Returns:
            Result with the new Connection, or the rejection. A rejection
            leaves the graph untouched.
        """
        error = self.check_connect(from_id, to_id)
        if error is not None:
            logger.info(f"Rejected connection {from_id} -> {to_id}: {error}")
            return Result.fail(error)

        conn = Connection(
            from_id=from_id,
            to_id=to_id,
            order=self.child_count(from_id),
            from_point=from_point,
            to_point=to_point,
        )
        self._connections.append(conn)
        logger.debug(f"Connected {from_id} -> {to_id} (order {conn.order})")
        return Result.ok(conn)

    def disconnect(self, node_id: int) -> int:
        """Remove every connection touching node_id, both directions.

        Returns:
            Number of connections removed.
        """
        self.get_node(node_id)
        affected_parents = {c.from_id for c in self._connections if c.to_id == node_id}
        before = len(self._connections)

        self._connections = [
            c for c in self._connections if c.from_id != node_id and c.to_id != node_id
        ]
        for parent_id in affected_parents:
            self._renumber(parent_id)

        removed = before - len(self._connections)
        logger.debug(f"Disconnected node {node_id} ({removed} connections)")
        return removed

    def reorder_children(self, parent_id: int, from_order: int, to_order: int) -> Result[None]:
        """Swap the children at two order positions under parent_id."""
        conns = [c for c in self._connections if c.from_id == parent_id]
        from_conn = next((c for c in conns if c.order == from_order), None)
        to_conn = next((c for c in conns if c.order == to_order), None)

        if from_conn is None or to_conn is None:
            missing = from_order if from_conn is None else to_order
            return Result.fail(structural_error(
                NO_SUCH_POSITION,
                f"Node {parent_id} has no child at position {missing}",
                parent_id,
            ))

        from_conn.order, to_conn.order = to_order, from_order
        self._sort_parent_connections(parent_id)
        logger.debug(f"Swapped children {from_order} <-> {to_order} of node {parent_id}")
        return Result.ok()

    def _is_blackboard_attachable(self, node_id: int) -> bool:
        """True if the node is a root or all its parents are blackboards."""
        for conn in self._connections:
            if conn.to_id != node_id:
                continue
            parent = self._nodes.get(conn.from_id)
            if parent is None or parent.type != NodeKind.BLACKBOARD:
                return False
        return True

    def _reaches(self, start_id: int, goal_id: int) -> bool:
        """True if goal_id is start_id or one of its descendants."""
        stack = [start_id]
        seen = set()
        while stack:
            current = stack.pop()
            if current == goal_id:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(c.to_id for c in self._connections if c.from_id == current)
        return False

    def _renumber(self, parent_id: int) -> None:
        """Reassign contiguous orders to the parent's connections."""
        conns = [c for c in self._connections if c.from_id == parent_id]
        conns.sort(key=lambda c: c.order)
        for index, conn in enumerate(conns):
            conn.order = index
        self._sort_parent_connections(parent_id)

    def _sort_parent_connections(self, parent_id: int) -> None:
        """Move the parent's connections to the end of the list in order."""
        own = [c for c in self._connections if c.from_id == parent_id]
        others = [c for c in self._connections if c.from_id != parent_id]
        own.sort(key=lambda c: c.order)
        self._connections = others + own

    # =========================================================================
    # Attribute edits
    # =========================================================================

    def update_node(self, node_id: int, **attrs: str) -> Node:
        """Set free-text attributes on a node.

        Raises:
            ValueError: If an attribute is not editable or is a decorator
                attribute on a non-decorator node.
        """
        node = self.get_node(node_id)
        for attr in attrs:
            if attr not in EDITABLE_ATTRIBUTES:
                raise ValueError(f"Attribute '{attr}' is not editable")
            if attr in DECORATOR_FIELDS and node.type != NodeKind.DECORATOR:
                raise ValueError(
                    f"Attribute '{attr}' only applies to DECORATOR nodes, not {node.type.value}"
                )
        for attr, value in attrs.items():
            setattr(node, attr, "" if value is None else str(value))
        return node

    def set_decorator_type(self, node_id: int, kind: DecoratorKind | str) -> Node:
        """Switch a decorator's behaviour, clearing every decorator attribute."""
        node = self.get_node(node_id)
        if node.type != NodeKind.DECORATOR:
            raise ValueError(f"Node {node_id} is {node.type.value}, not DECORATOR")

        kind = DecoratorKind(kind)
        for attr in DECORATOR_FIELDS:
            setattr(node, attr, "")
        node.func = ""
        node.params = [] if kind == DecoratorKind.CONDITION_INTERRUPT else None
        node.decorator_type = kind
        logger.debug(f"Decorator {node_id} is now {kind.value}")
        return node

    def move_node(self, node_id: int, x: float, y: float) -> Node:
        node = self.get_node(node_id)
        node.x, node.y = clamp_position(x, y)
        return node

    def move_with_descendants(self, node_id: int, dx: float, dy: float) -> List[Node]:
        """Drag a node together with its whole subtree."""
        group = self.descendants(node_id)
        for node in group:
            node.x, node.y = clamp_position(node.x + dx, node.y + dy)
        return group

    # -- params ---------------------------------------------------------------

    def add_param(self, node_id: int, name: str = "", value: str = "") -> Param:
        node = self._param_owner(node_id)
        param = Param(name=name, value=value)
        node.params.append(param)
        return param

    def update_param(
        self,
        node_id: int,
        index: int,
        name: Optional[str] = None,
        value: Optional[str] = None,
    ) -> Param:
        node = self._param_owner(node_id)
        param = _at(node.params, index, "param")
        if name is not None:
            param.name = name
        if value is not None:
            param.value = value
        return param

    def remove_param(self, node_id: int, index: int) -> Param:
        node = self._param_owner(node_id)
        _at(node.params, index, "param")
        return node.params.pop(index)

    def _param_owner(self, node_id: int) -> Node:
        node = self.get_node(node_id)
        if not node.accepts_params:
            raise ValueError(f"Node {node_id} ({node.effective_type}) does not take params")
        if node.params is None:
            node.params = []
        return node

    # -- blackboard fields ----------------------------------------------------

    def add_field(self, node_id: int, key: str = "", value: str = "", comment: str = "") -> BlackboardField:
        node = self._blackboard(node_id)
        entry = BlackboardField(key=key, value=value, comment=comment)
        node.fields.append(entry)
        return entry

    def update_field(
        self,
        node_id: int,
        index: int,
        key: Optional[str] = None,
        value: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> BlackboardField:
        node = self._blackboard(node_id)
        entry = _at(node.fields, index, "field")
        if key is not None:
            entry.key = key
        if value is not None:
            entry.value = value
        if comment is not None:
            entry.comment = comment
        return entry

    def remove_field(self, node_id: int, index: int) -> BlackboardField:
        node = self._blackboard(node_id)
        _at(node.fields, index, "field")
        return node.fields.pop(index)

    def _blackboard(self, node_id: int) -> Node:
        node = self.get_node(node_id)
        if node.type != NodeKind.BLACKBOARD:
            raise ValueError(f"Node {node_id} is {node.type.value}, not BLACKBOARD")
        if node.fields is None:
            node.fields = []
        return node

    # =========================================================================
    # Copy / paste
    # =========================================================================

    def copy_node(self, node_id: int) -> Node:
        """Deep clone of a node, detached from the store."""
        return copy.deepcopy(self.get_node(node_id))

    def paste_node(self, copied: Node) -> Node:
        """Insert a clone of a copied node with a fresh id and unique name.

        The pasted node carries no connections.
        """
        node = copy.deepcopy(copied)
        node.id = self._next_id
        node.x, node.y = clamp_position(copied.x + PASTE_OFFSET, copied.y + PASTE_OFFSET)
        node.name = self.unique_copy_name(copied.name)

        self._nodes[node.id] = node
        self._next_id += 1
        logger.debug(f"Pasted node {node.id} '{node.name}' from '{copied.name}'")
        return node

    def unique_copy_name(self, original: str) -> str:
        """'Attack' -> 'Attack_copy', 'Attack_copy' -> 'Attack_copy2', ..."""
        base, counter = original, 1
        match = COPY_SUFFIX_PATTERN.match(original)
        if match:
            base = match.group(1)
            counter = int(match.group(2)) + 1 if match.group(2) else 2

        taken = {n.name for n in self._nodes.values()}
        candidate = f"{base}_copy{counter if counter > 1 else ''}"
        while candidate in taken:
            counter += 1
            candidate = f"{base}_copy{counter}"
        return candidate

    # =========================================================================
    # Serialization
    # =========================================================================

    def serialize(self) -> Dict[str, Any]:
        """Full state as a plain dict: {nodes, connections, version}."""
        return {
            "nodes": [n.to_dict() for n in self._nodes.values()],
            "connections": [c.to_dict() for c in self._connections],
            "version": DOCUMENT_VERSION,
        }

    def deserialize(self, doc: Dict[str, Any]) -> None:
        """Replace the full state from a serialized dict.

        The allocator is reset to max(existing ids) + 1. Connections without
        an order get their per-parent position; orders are made contiguous
        without changing the connection list order.

        Raises:
            ImportFailure: If the document is inconsistent. State is untouched.
        """
        nodes, connections = _build_state(doc)
        self._nodes = {n.id: n for n in nodes}
        self._connections = connections
        self._next_id = max(self._nodes, default=0) + 1
        logger.debug(f"Loaded {len(nodes)} nodes and {len(connections)} connections")

    def snapshot(self) -> Tuple[List[Node], List[Connection], int]:
        """Independent deep copy of the full state."""
        return (
            copy.deepcopy(list(self._nodes.values())),
            copy.deepcopy(self._connections),
            self._next_id,
        )

    def restore(self, nodes: Iterable[Node], connections: Iterable[Connection], next_id: int) -> None:
        """Replace the full state from snapshot parts, including the allocator."""
        cloned_nodes = copy.deepcopy(list(nodes))
        self._nodes = {n.id: n for n in cloned_nodes}
        self._connections = copy.deepcopy(list(connections))
        self._next_id = next_id


def _at(items: List[Any], index: int, label: str) -> Any:
    if index < 0 or index >= len(items):
        raise IndexError(f"No {label} at index {index}")
    return items[index]


def _build_state(doc: Dict[str, Any]) -> Tuple[List[Node], List[Connection]]:
    """Convert and check a serialized document without touching any store."""
    if not isinstance(doc, dict):
        raise ImportFailure(SCHEMA_VIOLATION, "Graph document must be an object")
    try:
        nodes = [Node.from_dict(raw) for raw in doc.get("nodes") or []]
        raw_connections = list(doc.get("connections") or [])
        per_parent: Dict[int, int] = {}
        connections: List[Connection] = []
        for raw in raw_connections:
            parent = int(raw["from"])
            position = per_parent.get(parent, 0)
            per_parent[parent] = position + 1
            connections.append(Connection.from_dict(raw, default_order=position))
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ImportFailure(SCHEMA_VIOLATION, f"Malformed graph document: {e}") from e

    ids = set()
    for node in nodes:
        if node.id in ids:
            raise ImportFailure(DUPLICATE_NODE_ID, f"Duplicate node id {node.id}")
        ids.add(node.id)

    edges = set()
    for conn in connections:
        if conn.from_id not in ids or conn.to_id not in ids:
            raise ImportFailure(
                DANGLING_CONNECTION,
                f"Connection {conn.from_id} -> {conn.to_id} references a missing node",
            )
        if conn.key in edges:
            raise ImportFailure(
                DUPLICATE_CONNECTION,
                f"Duplicate connection {conn.from_id} -> {conn.to_id}",
            )
        edges.add(conn.key)

    # Contiguous orders, stable by stored order then list position
    by_parent: Dict[int, List[Connection]] = {}
    for conn in connections:
        by_parent.setdefault(conn.from_id, []).append(conn)
    for siblings in by_parent.values():
        for index, conn in enumerate(sorted(siblings, key=lambda c: c.order)):
            conn.order = index

    return nodes, connections


__all__ = ["GraphStore", "DOCUMENT_VERSION"]
