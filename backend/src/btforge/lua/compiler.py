"""
TreeCompiler - Turns the authored graph into a Lua behavior-tree definition.

Pipeline:
1. select_root(): pick the tree root, preferring the first child of a
   blackboard root over plain roots
2. compile_node(): recursive pre-order emission of one node and its children
3. compile(): main tree plus one body per SUBTREE node, keyed by its name

The result is a CompiledDocument whose render() produces:

    return {
        type = BT.NodeType.SEQUENCE,
        name = "Root",
        children = { ... },
        subtrees = {
            ["Patrol"] = { ... }
        }
    }

The compiler never consults validation state: whatever attributes are present
are emitted, so export works on a graph that still has flagged nodes.

Error codes:
- E4001: Graph has no root
- E4002: No usable root (only blackboards without children)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from ..errors import NO_ROOT, NO_VALID_ROOT, ExportFailure
from ..graph.store import GraphStore
from ..graph.types import DecoratorKind, Node, NodeKind
from .values import BlackboardRef, RawPath, ReferenceResolver, parse_value
from .writer import IDENTIFIER_PATTERN, LuaTable, lua_string, render, scalar

logger = logging.getLogger(__name__)


# Node attribute -> generated key, in emission order
DURATION_KEYS = (
    ("timeout_duration", "timeout_duration"),
    ("cooldown_duration", "cooldown_duration"),
    ("wait_duration", "wait_duration"),
    ("repeater_count", "repeater_count"),
    ("retry_count", "max_retries"),
)


# =============================================================================
# CompiledDocument
# =============================================================================


@dataclass
class CompiledDocument:
    """Main tree body plus extracted subtree bodies."""

    main: LuaTable
    root_id: int
    subtrees: Dict[str, LuaTable] = field(default_factory=dict)
    indent: str = "    "

    def to_table(self) -> LuaTable:
        """Main body, with a trailing `subtrees` entry when any were extracted."""
        if not self.subtrees:
            return self.main
        table = self.main.copy()
        bodies = LuaTable()
        for name, body in self.subtrees.items():
            bodies.set_indexed(name, body)
        table.set("subtrees", bodies)
        return table

    def render(self) -> str:
        return "return " + render(self.to_table(), self.indent)


# =============================================================================
# TreeCompiler
# =============================================================================


class TreeCompiler:
    """Compiles a GraphStore into Lua.

    Example:
        >>> store = GraphStore()
        >>> root = store.create_node(NodeKind.SEQUENCE, name="Root")
        >>> attack = store.create_node(NodeKind.ACTION, name="Attack")
        >>> _ = store.update_node(attack.id, func="attack")
        >>> store.connect(root.id, attack.id).is_ok
        True
        >>> print(TreeCompiler(store, function_prefix="ai").compile().render())
        return {
            type = BT.NodeType.SEQUENCE,
            name = "Root",
            children = {
                {
                    type = BT.NodeType.ACTION,
                    name = "Attack",
                    func = require "ai.attack"
                }
            }
        }
    """

    def __init__(
        self,
        store: GraphStore,
        function_prefix: str = "",
        indent: str = "    ",
    ) -> None:
        self._store = store
        self._prefix = (function_prefix or "").strip()
        self._indent = indent
        self._resolver = ReferenceResolver.from_store(store)

    # =========================================================================
    # Root selection
    # =========================================================================

    def select_root(self) -> Node:
        """Pick the node the main tree starts from.

        Raises:
            ExportFailure: E4001 when nothing is a root, E4002 when no root
                is usable.
        """
        roots = self._store.roots()
        if not roots:
            raise ExportFailure(NO_ROOT, "Graph has no root node to export")

        blackboard_roots = [n for n in roots if n.type == NodeKind.BLACKBOARD]
        other_roots = [n for n in roots if n.type != NodeKind.BLACKBOARD]

        for board in blackboard_roots:
            children = [
                c for c in self._store.children_of(board.id) if c.type != NodeKind.BLACKBOARD
            ]
            if children:
                return children[0]

        if other_roots:
            return other_roots[0]

        raise ExportFailure(NO_VALID_ROOT, "Graph has no valid root node to export")

    # =========================================================================
    # Compilation
    # =========================================================================

    def compile(self) -> CompiledDocument:
        """Compile the main tree and every SUBTREE body."""
        root = self.select_root()
        subtree_nodes = self._store.nodes_of_kind(NodeKind.SUBTREE)

        main = self.compile_node(root, exclude_subtrees=bool(subtree_nodes))
        if main is None:
            raise ExportFailure(NO_VALID_ROOT, "Graph has no valid root node to export")

        subtrees: Dict[str, LuaTable] = {}
        for holder in subtree_nodes:
            children = self._store.children_of(holder.id)
            if not children:
                continue
            body = self.compile_node(children[0], exclude_subtrees=False)
            if body is None:
                continue
            name = holder.name.strip()
            if name in subtrees:
                logger.warning(f"Subtree name '{name}' is defined more than once; last one wins")
            subtrees[name] = body

        logger.debug(
            f"Compiled tree from root {root.id} with {len(subtrees)} subtree(s)"
        )
        return CompiledDocument(main=main, root_id=root.id, subtrees=subtrees, indent=self._indent)

    def compile_node(
        self,
        node: Node,
        exclude_subtrees: bool = False,
        _path: Optional[Set[int]] = None,
    ) -> Optional[LuaTable]:
        """Emit one node and its children.

        Args:
            node: Node to emit.
            exclude_subtrees: Drop SUBTREE children (main tree mode); their
                bodies are emitted separately by compile().

        Returns:
            The node's table, or None for blackboard nodes.
        """
        if node.type == NodeKind.BLACKBOARD:
            return None

        path = set(_path or ())
        path.add(node.id)

        table = LuaTable()
        table.set("type", f"BT.NodeType.{node.effective_type}")
        table.set("name", lua_string(node.name))

        if node.func:
            table.set("func", self._function(node.func))

        if node.params:
            table.set("params", self._params(node))

        if node.policy:
            table.set("policy", self._policy(node.policy))

        for attr, key in DURATION_KEYS:
            raw = getattr(node, attr)
            if raw:
                table.set(key, scalar(self._resolver.resolve(raw)))

        if node.decorator_type == DecoratorKind.SUBTREE_REF and node.subtree:
            resolved = self._resolver.resolve(node.subtree)
            table.set(
                "subtree_name",
                scalar(resolved) if resolved.is_reference else lua_string(resolved.text),
            )

        children = LuaTable()
        for child in self._store.children_of(node.id):
            if child.type == NodeKind.BLACKBOARD:
                continue
            if exclude_subtrees and child.type == NodeKind.SUBTREE:
                continue
            if child.id in path:
                logger.warning(f"Skipping cyclic connection {node.id} -> {child.id}")
                continue
            emitted = self.compile_node(child, exclude_subtrees, path)
            if emitted is not None:
                children.append(emitted)
        if len(children):
            table.set("children", children)

        return table

    # -------------------------------------------------------------------------
    # Attribute formatting
    # -------------------------------------------------------------------------

    def _function(self, raw: str) -> str:
        value = parse_value(raw, allow_raw_path=True)
        if isinstance(value, BlackboardRef):
            return scalar(self._resolver.resolve(raw))
        if isinstance(value, RawPath):
            return f"require {lua_string(value.path)}"
        if self._prefix:
            return f"require {lua_string(self._prefix + '.' + value.text)}"
        return f"require {lua_string(value.text)}"

    def _params(self, node: Node) -> LuaTable:
        params = LuaTable()
        for param in node.params or []:
            if not param.name:
                continue
            resolved = self._resolver.resolve(param.value)
            if not resolved.is_reference and not resolved.text:
                params.set_indexed(param.name, "nil")
            else:
                params.set_indexed(param.name, scalar(resolved))
        return params

    def _policy(self, raw: str) -> str:
        resolved = self._resolver.resolve(raw)
        if resolved.is_reference:
            return scalar(resolved)
        if IDENTIFIER_PATTERN.match(resolved.text):
            return f"BT.ParallelPolicy.{resolved.text}"
        return f"BT.ParallelPolicy[{lua_string(resolved.text)}]"


def compile_lua(store: GraphStore, function_prefix: str = "", indent: str = "    ") -> str:
    """Compile a store straight to Lua text.

    Raises:
        ExportFailure: If the graph has no usable root.
    """
    return TreeCompiler(store, function_prefix=function_prefix, indent=indent).compile().render()


__all__ = [
    "TreeCompiler",
    "CompiledDocument",
    "compile_lua",
    "DURATION_KEYS",
]
