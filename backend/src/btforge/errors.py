"""
btforge Errors - Error taxonomy and result wrapper

This module provides the error types shared by every editor component:
- ErrorCategory: Which component raised the error (code range per category)
- EditorError: Structured error information (code, message, node)
- Result: Result wrapper for mutations that may be rejected
- ImportFailure: Persisted document could not be loaded
- ExportFailure: Graph could not be compiled

Error codes follow pattern E[1-5]xxx:
- E1xxx: Structural rejections (connect, reorder)
- E2xxx: Validation flags
- E3xxx: Document import
- E4xxx: Code generation export
- E5xxx: Lua chunk check
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")

ERROR_CODE_PATTERN = re.compile(r"^[EW][1-5][0-9]{3}$")


class ErrorCategory(str, Enum):
    """Error categories with code ranges.

    - STRUCTURE (E1xxx): A connect/reorder would break a graph invariant
    - VALIDATION (E2xxx): Advisory per-node flags, never blocking
    - IMPORT (E3xxx): Malformed persisted document
    - EXPORT (E4xxx): No root to compile from
    - SCRIPT (E5xxx): Generated Lua does not compile
    """

    STRUCTURE = "structure"
    VALIDATION = "validation"
    IMPORT = "import"
    EXPORT = "export"
    SCRIPT = "script"


# Structural rejections
UNKNOWN_NODE = "E1001"
SELF_CONNECTION = "E1002"
DUPLICATE_EDGE = "E1003"
SINGLE_CHILD_TAKEN = "E1004"
LEAF_SOURCE = "E1005"
SUBTREE_TARGET = "E1006"
BLACKBOARD_NOT_ROOT = "E1007"
CYCLE = "E1008"
NO_SUCH_POSITION = "E1010"

# Import
INVALID_JSON = "E3001"
SCHEMA_VIOLATION = "E3002"
DUPLICATE_NODE_ID = "E3003"
DANGLING_CONNECTION = "E3004"
DUPLICATE_CONNECTION = "E3005"

# Export
NO_ROOT = "E4001"
NO_VALID_ROOT = "E4002"

# Lua check
LUA_SYNTAX = "E5001"
LUA_RUNTIME = "E5002"


@dataclass
class EditorError:
    """Standard error type for editor operations.

    Example:
        >>> error = EditorError(
        ...     code="E1005",
        ...     category=ErrorCategory.STRUCTURE,
        ...     message="ACTION nodes are leaves and cannot have children",
        ...     node_id=3,
        ... )
        >>> str(error)
        '[E1005] ACTION nodes are leaves and cannot have children'
    """

    code: str
    category: ErrorCategory
    message: str
    node_id: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate error code format."""
        if not ERROR_CODE_PATTERN.match(self.code):
            raise ValueError(
                f"Invalid error code '{self.code}': "
                f"must match pattern E[1-5]xxx (e.g., E1001)"
            )

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: Dict[str, Any] = {
            "code": self.code,
            "category": self.category.value,
            "message": self.message,
        }
        if self.node_id is not None:
            result["node_id"] = self.node_id
        return result


def structural_error(code: str, message: str, node_id: Optional[int] = None) -> EditorError:
    """Build an E1xxx rejection."""
    return EditorError(code=code, category=ErrorCategory.STRUCTURE, message=message, node_id=node_id)


@dataclass
class Result(Generic[T]):
    """
    Result wrapper for mutations that can be rejected.

    A rejected mutation leaves the graph untouched.

    Usage:
        result = store.connect(1, 2)
        if result.is_error:
            report(result.error)
        else:
            use(result.value)
    """

    success: bool
    value: Optional[T] = None
    error: Optional[EditorError] = None

    @property
    def is_error(self) -> bool:
        """Check if this result represents a rejection."""
        return not self.success

    @property
    def is_ok(self) -> bool:
        """Check if this result represents success."""
        return self.success

    @classmethod
    def ok(cls, value: T = None) -> "Result[T]":
        """Create a successful result."""
        return cls(success=True, value=value, error=None)

    @classmethod
    def fail(cls, error: EditorError) -> "Result[T]":
        """Create a rejected result."""
        return cls(success=False, value=None, error=error)

    def unwrap(self) -> T:
        """Return the value or raise if this is a rejection."""
        if self.is_error:
            raise ValueError(str(self.error))
        return self.value  # type: ignore[return-value]


class ImportFailure(Exception):
    """Persisted document could not be loaded.

    State is left untouched when this is raised.
    """

    def __init__(self, code: str, message: str) -> None:
        self.error = EditorError(code=code, category=ErrorCategory.IMPORT, message=message)
        super().__init__(str(self.error))

    @property
    def code(self) -> str:
        return self.error.code


class ExportFailure(Exception):
    """Graph has no root to compile from."""

    def __init__(self, code: str, message: str) -> None:
        self.error = EditorError(code=code, category=ErrorCategory.EXPORT, message=message)
        super().__init__(str(self.error))

    @property
    def code(self) -> str:
        return self.error.code


__all__ = [
    "ErrorCategory",
    "EditorError",
    "Result",
    "ImportFailure",
    "ExportFailure",
    "structural_error",
    "UNKNOWN_NODE",
    "SELF_CONNECTION",
    "DUPLICATE_EDGE",
    "SINGLE_CHILD_TAKEN",
    "LEAF_SOURCE",
    "SUBTREE_TARGET",
    "BLACKBOARD_NOT_ROOT",
    "CYCLE",
    "NO_SUCH_POSITION",
    "INVALID_JSON",
    "SCHEMA_VIOLATION",
    "DUPLICATE_NODE_ID",
    "DANGLING_CONNECTION",
    "DUPLICATE_CONNECTION",
    "NO_ROOT",
    "NO_VALID_ROOT",
    "LUA_SYNTAX",
    "LUA_RUNTIME",
]
