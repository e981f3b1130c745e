"""
LuaChunkChecker - Verifies generated Lua with a real Lua runtime.

Two levels of checking:
- check(): compile only, nothing runs (E5001 on syntax error)
- evaluate(): run the chunk against stub `BT` and `require` globals and
  convert the returned table to Python

The stubs make every `BT.<Group>.<NAME>` evaluate to the string "<NAME>" and
`require "path"` evaluate to `{module = "path"}`, so a generated tree can be
inspected without the game runtime.

Error codes:
- E5001: Lua syntax error
- E5002: Lua runtime error
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from ..errors import LUA_RUNTIME, LUA_SYNTAX, EditorError, ErrorCategory

logger = logging.getLogger(__name__)

MAX_TABLE_DEPTH = 64

STUB_PRELUDE = """
local function names()
    return setmetatable({}, {__index = function(_, key) return key end})
end
BT = {
    NodeType = names(),
    ParallelPolicy = names(),
    MessageType = names(),
}
require = function(path) return {module = path} end
"""


# =============================================================================
# LuaCheckResult
# =============================================================================


@dataclass
class LuaCheckResult:
    """Outcome of checking or evaluating a chunk."""

    success: bool
    value: Any = None
    error: Optional[EditorError] = None
    line_number: Optional[int] = None

    @classmethod
    def ok(cls, value: Any = None) -> "LuaCheckResult":
        return cls(success=True, value=value)

    @classmethod
    def failed(cls, code: str, message: str) -> "LuaCheckResult":
        return cls(
            success=False,
            error=EditorError(code=code, category=ErrorCategory.SCRIPT, message=message),
            line_number=_line_number(message),
        )


def _line_number(message: str) -> Optional[int]:
    """Extract the line from messages like '[string "<chunk>"]:5: ...'."""
    match = re.search(r":(\d+):", message)
    return int(match.group(1)) if match else None


# =============================================================================
# LuaChunkChecker
# =============================================================================


class LuaChunkChecker:
    """Compiles and optionally evaluates Lua chunks.

    A fresh runtime is used for every evaluate() so chunks cannot leak
    globals into each other.

    Example:
        >>> checker = LuaChunkChecker()
        >>> checker.check("return {").success
        False
        >>> checker.evaluate('return {type = BT.NodeType.ACTION}').value
        {'type': 'ACTION'}
    """

    def _new_runtime(self) -> Any:
        try:
            from lupa import LuaRuntime
        except ImportError:
            raise RuntimeError(
                "lupa is required for Lua checks. Install with: pip install lupa"
            )

        return LuaRuntime(
            unpack_returned_tuples=True,
            register_eval=False,
            register_builtins=False,
        )

    def check(self, source: str) -> LuaCheckResult:
        """Compile a chunk without running it."""
        runtime = self._new_runtime()
        try:
            runtime.compile(source)
        except Exception as e:
            logger.info(f"Lua chunk failed to compile: {e}")
            return LuaCheckResult.failed(LUA_SYNTAX, str(e))
        return LuaCheckResult.ok()

    def evaluate(self, source: str) -> LuaCheckResult:
        """Run a chunk against the BT stubs and return its value as Python."""
        runtime = self._new_runtime()
        try:
            runtime.execute(STUB_PRELUDE)
            compiled = runtime.compile(source)
        except Exception as e:
            logger.info(f"Lua chunk failed to compile: {e}")
            return LuaCheckResult.failed(LUA_SYNTAX, str(e))

        try:
            value = compiled()
        except Exception as e:
            logger.info(f"Lua chunk raised: {e}")
            return LuaCheckResult.failed(LUA_RUNTIME, str(e))

        return LuaCheckResult.ok(lua_to_python(value))


# =============================================================================
# Conversion
# =============================================================================


def lua_to_python(value: Any, depth: int = 0) -> Any:
    """Convert a value returned by lupa into plain Python.

    - nil -> None, booleans and strings unchanged
    - numbers -> float
    - tables with keys 1..n -> list, other tables -> dict with string keys

    Raises:
        ValueError: If tables nest deeper than MAX_TABLE_DEPTH or the value
            is a function.
    """
    if depth > MAX_TABLE_DEPTH:
        raise ValueError(f"Lua table nesting too deep (>{MAX_TABLE_DEPTH})")

    if value is None or isinstance(value, (bool, str)):
        return value

    if isinstance(value, (int, float)):
        return float(value)

    if "LuaTable" in type(value).__name__:
        return _convert_table(value, depth)

    if callable(value):
        raise ValueError("Lua functions cannot be converted")

    return value


def _convert_table(table: Any, depth: int) -> Union[List[Any], Dict[str, Any]]:
    keys = list(table.keys())
    if keys and all(isinstance(k, int) and not isinstance(k, bool) for k in keys):
        if sorted(keys) == list(range(1, len(keys) + 1)):
            return [lua_to_python(table[i], depth + 1) for i in range(1, len(keys) + 1)]
    return {str(k): lua_to_python(table[k], depth + 1) for k in keys}


__all__ = [
    "LuaChunkChecker",
    "LuaCheckResult",
    "lua_to_python",
]
