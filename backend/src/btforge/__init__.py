"""
BTForge - Behavior-tree authoring core.

Builds behavior trees as a node/connection graph, validates them, and
compiles them to a Lua table definition with extracted subtrees and
blackboard references.

Subpackages:
- btforge.graph: Data model and GraphStore
- btforge.validation: GraphValidator
- btforge.lua: Reference resolution, Lua generation and checking
- btforge.history: Undo/redo snapshots
- btforge.persistence: JSON documents and named slots
"""

# Errors
from .errors import EditorError, ErrorCategory, ExportFailure, ImportFailure, Result

# Graph
from .graph import Connection, DecoratorKind, GraphStore, Node, NodeKind

# Validation and generation
from .validation import GraphValidator, ValidationReport
from .lua import ReferenceResolver, TreeCompiler, compile_lua

# Session
from .config import EditorSettings, get_settings
from .session import EditorSession

__version__ = "0.1.0"

__all__ = [
    "EditorError",
    "ErrorCategory",
    "ExportFailure",
    "ImportFailure",
    "Result",
    "Connection",
    "DecoratorKind",
    "GraphStore",
    "Node",
    "NodeKind",
    "GraphValidator",
    "ValidationReport",
    "ReferenceResolver",
    "TreeCompiler",
    "compile_lua",
    "EditorSettings",
    "get_settings",
    "EditorSession",
]
