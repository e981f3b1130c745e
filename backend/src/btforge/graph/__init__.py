"""
Graph model and store.

Components:
- NodeKind / DecoratorKind: Node type enumerations
- Node, Connection, Param, BlackboardField: Graph dataclasses
- GraphStore: Owner of the node/connection collections and all structural mutations
"""

from .types import (
    DECORATOR_ATTRIBUTES,
    DECORATOR_FIELDS,
    DEFAULT_NAMES,
    EDITABLE_ATTRIBUTES,
    NODE_HEIGHT,
    NODE_WIDTH,
    WORLD_MAX,
    WORLD_MIN,
    BlackboardField,
    Connection,
    DecoratorKind,
    Node,
    NodeKind,
    Param,
    clamp_position,
)
from .store import DOCUMENT_VERSION, GraphStore

__all__ = [
    "NodeKind",
    "DecoratorKind",
    "DECORATOR_ATTRIBUTES",
    "DECORATOR_FIELDS",
    "DEFAULT_NAMES",
    "EDITABLE_ATTRIBUTES",
    "WORLD_MIN",
    "WORLD_MAX",
    "NODE_WIDTH",
    "NODE_HEIGHT",
    "clamp_position",
    "Param",
    "BlackboardField",
    "Node",
    "Connection",
    "GraphStore",
    "DOCUMENT_VERSION",
]
