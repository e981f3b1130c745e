"""
Graph Data Classes - In-memory representation of an authored behavior tree.

These dataclasses are the single source of truth for the editor state. They're
used by:
- GraphStore: Owns and mutates the node/connection collections
- GraphValidator: Derives per-node flags from them
- TreeCompiler: Walks them to emit Lua
- HistoryManager: Clones them into snapshots

Attribute names are snake_case in Python and camelCase in the persisted
document (see to_dict/from_dict).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# =============================================================================
# Node Type Constants
# =============================================================================


class NodeKind(str, Enum):
    """Node types available on the canvas."""

    # Composites
    SEQUENCE = "SEQUENCE"
    FALLBACK = "FALLBACK"
    PARALLEL = "PARALLEL"

    # Leaves
    CONDITION = "CONDITION"
    ACTION = "ACTION"

    # Single child
    DECORATOR = "DECORATOR"
    SUBTREE = "SUBTREE"

    # Other
    BLACKBOARD = "BLACKBOARD"
    WAIT = "WAIT"

    @classmethod
    def is_composite(cls, kind: "NodeKind") -> bool:
        """Check if node type orders 1+ children."""
        return kind in {cls.SEQUENCE, cls.FALLBACK, cls.PARALLEL}

    @classmethod
    def is_leaf(cls, kind: "NodeKind") -> bool:
        """Check if node type can never have children."""
        return kind in {cls.CONDITION, cls.ACTION}

    @classmethod
    def is_single_child(cls, kind: "NodeKind") -> bool:
        """Check if node type allows at most one outgoing connection."""
        return kind in {cls.DECORATOR, cls.SUBTREE}

    @classmethod
    def requires_children(cls, kind: "NodeKind") -> bool:
        """Check if a childless node of this type is flagged as an error."""
        return kind in {cls.SEQUENCE, cls.FALLBACK, cls.PARALLEL, cls.SUBTREE}


class DecoratorKind(str, Enum):
    """Behaviour of a DECORATOR node."""

    INVERTER = "INVERTER"
    REPEATER = "REPEATER"
    TIMEOUT = "TIMEOUT"
    RETRY = "RETRY"
    COOLDOWN = "COOLDOWN"
    WAIT = "WAIT"
    ONCE = "ONCE"
    ALWAYS_SUCCESS = "ALWAYS_SUCCESS"
    ALWAYS_FAILURE = "ALWAYS_FAILURE"
    UNTIL_SUCCESS = "UNTIL_SUCCESS"
    UNTIL_FAILURE = "UNTIL_FAILURE"
    SUBTREE_REF = "SUBTREE_REF"
    CONDITION_INTERRUPT = "CONDITION_INTERRUPT"


# Decorator type -> the attribute it requires
DECORATOR_ATTRIBUTES: Dict[DecoratorKind, str] = {
    DecoratorKind.REPEATER: "repeater_count",
    DecoratorKind.TIMEOUT: "timeout_duration",
    DecoratorKind.RETRY: "retry_count",
    DecoratorKind.COOLDOWN: "cooldown_duration",
    DecoratorKind.WAIT: "wait_duration",
    DecoratorKind.SUBTREE_REF: "subtree",
}

# Every attribute a decorator may carry; cleared when the decorator type changes
DECORATOR_FIELDS: Tuple[str, ...] = (
    "repeater_count",
    "timeout_duration",
    "retry_count",
    "cooldown_duration",
    "wait_duration",
    "subtree",
)

# Free-text attributes editable through GraphStore.update_node
EDITABLE_ATTRIBUTES: Tuple[str, ...] = (
    "name",
    "func",
    "policy",
    "comment",
) + DECORATOR_FIELDS

DEFAULT_NAMES: Dict[NodeKind, str] = {
    NodeKind.SEQUENCE: "Sequence",
    NodeKind.FALLBACK: "Fallback",
    NodeKind.PARALLEL: "Parallel",
    NodeKind.CONDITION: "Condition",
    NodeKind.ACTION: "Action",
    NodeKind.DECORATOR: "Decorator",
    NodeKind.BLACKBOARD: "Blackboard",
    NodeKind.SUBTREE: "Subtree",
    NodeKind.WAIT: "Wait",
}


# =============================================================================
# World Coordinates
# =============================================================================


WORLD_MIN = -2000.0
WORLD_MAX = 2000.0
NODE_WIDTH = 180.0
NODE_HEIGHT = 80.0


def clamp_position(x: float, y: float) -> Tuple[float, float]:
    """Clamp a node's top-left corner so the node stays inside the world."""
    return (
        max(WORLD_MIN, min(WORLD_MAX - NODE_WIDTH, float(x))),
        max(WORLD_MIN, min(WORLD_MAX - NODE_HEIGHT, float(y))),
    )


# =============================================================================
# Node Attributes
# =============================================================================


@dataclass
class Param:
    """A named argument passed to a CONDITION/ACTION function.

    Names are not required to be unique; empty names are skipped on export.
    """

    name: str = ""
    value: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Param":
        return cls(name=_text(data.get("name")), value=_text(data.get("value")))


@dataclass
class BlackboardField:
    """A key/value entry held by a BLACKBOARD node."""

    key: str = ""
    value: str = ""
    comment: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "value": self.value, "comment": self.comment}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BlackboardField":
        return cls(
            key=_text(data.get("key")),
            value=_text(data.get("value")),
            comment=_text(data.get("comment")),
        )


def _text(value: Any) -> str:
    """Treat missing values as empty strings."""
    if value is None:
        return ""
    return str(value)


# =============================================================================
# Node
# =============================================================================


@dataclass
class Node:
    """A node on the canvas.

    Type-dependent attributes stay None until the node type uses them, so the
    persisted document only carries the keys a node actually has.

    Example:
        >>> node = Node(id=1, type=NodeKind.ACTION, name="Attack", func="combat.attack")
        >>> node.effective_type
        'ACTION'
    """

    id: int
    type: NodeKind
    name: str = ""
    x: float = 0.0
    y: float = 0.0
    func: str = ""
    policy: str = ""
    comment: str = ""

    # CONDITION / ACTION / CONDITION_INTERRUPT
    params: Optional[List[Param]] = None

    # DECORATOR
    decorator_type: Optional[DecoratorKind] = None
    repeater_count: Optional[str] = None
    timeout_duration: Optional[str] = None
    retry_count: Optional[str] = None
    cooldown_duration: Optional[str] = None
    wait_duration: Optional[str] = None
    subtree: Optional[str] = None

    # BLACKBOARD
    fields: Optional[List[BlackboardField]] = None

    @property
    def effective_type(self) -> str:
        """Type emitted in generated code: the decorator type when present."""
        if self.decorator_type is not None:
            return self.decorator_type.value
        return self.type.value

    @property
    def accepts_params(self) -> bool:
        """Check if the node carries a function parameter list."""
        return NodeKind.is_leaf(self.type) or (
            self.type == NodeKind.DECORATOR
            and self.decorator_type == DecoratorKind.CONDITION_INTERRUPT
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted (camelCase) representation."""
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "x": self.x,
            "y": self.y,
            "func": self.func,
            "policy": self.policy,
            "comment": self.comment,
        }
        if self.params is not None:
            data["params"] = [p.to_dict() for p in self.params]
        if self.decorator_type is not None:
            data["decoratorType"] = self.decorator_type.value
        for attr, key in _CAMEL_KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        if self.fields is not None:
            data["fields"] = [f.to_dict() for f in self.fields]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        """Create from the persisted representation.

        Missing string attributes become empty strings.
        """
        decorator_type = data.get("decoratorType")
        params = data.get("params")
        fields = data.get("fields")
        node = cls(
            id=int(data["id"]),
            type=NodeKind(data["type"]),
            name=_text(data.get("name")),
            x=float(data.get("x") or 0.0),
            y=float(data.get("y") or 0.0),
            func=_text(data.get("func")),
            policy=_text(data.get("policy")),
            comment=_text(data.get("comment")),
            params=[Param.from_dict(p) for p in params] if params is not None else None,
            decorator_type=DecoratorKind(decorator_type) if decorator_type else None,
            fields=[BlackboardField.from_dict(f) for f in fields] if fields is not None else None,
        )
        for attr, key in _CAMEL_KEYS.items():
            if data.get(key) is not None:
                setattr(node, attr, _text(data[key]))
        return node


_CAMEL_KEYS: Dict[str, str] = {
    "repeater_count": "repeaterCount",
    "timeout_duration": "timeoutDuration",
    "retry_count": "retryCount",
    "cooldown_duration": "cooldownDuration",
    "wait_duration": "waitDuration",
    "subtree": "subtree",
}


# =============================================================================
# Connection
# =============================================================================


@dataclass
class Connection:
    """Directed parent -> child edge.

    order is scoped per source node and forms a contiguous 0..k-1 sequence.
    from_point/to_point are anchor hints for the renderer only.
    """

    from_id: int
    to_id: int
    order: int = 0
    from_point: str = "right"
    to_point: str = "left"

    @property
    def key(self) -> Tuple[int, int]:
        return (self.from_id, self.to_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_id,
            "to": self.to_id,
            "order": self.order,
            "fromPoint": self.from_point,
            "toPoint": self.to_point,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_order: int = 0) -> "Connection":
        order = data.get("order")
        return cls(
            from_id=int(data["from"]),
            to_id=int(data["to"]),
            order=int(order) if order is not None else default_order,
            from_point=_text(data.get("fromPoint")) or "right",
            to_point=_text(data.get("toPoint")) or "left",
        )


# =============================================================================
# Exports
# =============================================================================


__all__ = [
    "NodeKind",
    "DecoratorKind",
    "DECORATOR_ATTRIBUTES",
    "DECORATOR_FIELDS",
    "EDITABLE_ATTRIBUTES",
    "DEFAULT_NAMES",
    "WORLD_MIN",
    "WORLD_MAX",
    "NODE_WIDTH",
    "NODE_HEIGHT",
    "clamp_position",
    "Param",
    "BlackboardField",
    "Node",
    "Connection",
]
