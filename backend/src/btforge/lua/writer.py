"""
Lua literal formatting.

LuaTable is an ordered table constructor; render() turns it into text with
one entry per line so generated files diff cleanly. Values are either nested
LuaTables or strings that already hold Lua expression code.
"""

from __future__ import annotations

import math
import re
from typing import List, Optional, Tuple, Union

from .values import ResolvedValue

NUMBER_PATTERN = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}

LuaCode = Union["LuaTable", str]


def lua_string(text: str) -> str:
    """Quote text as a Lua string literal."""
    out = []
    for ch in text:
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif ord(ch) < 32 or ord(ch) == 127:
            out.append(f"\\{ord(ch):03d}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def lua_number(text: str) -> Optional[str]:
    """Lua number literal for a numeric string, None if not numeric."""
    if not NUMBER_PATTERN.match(text):
        return None
    number = float(text)
    if math.isinf(number):
        return None
    if number.is_integer() and abs(number) < 1e21:
        return str(int(number))
    return repr(number)


def lua_value(text: Optional[str]) -> str:
    """Format designer-entered text as a Lua scalar.

    Numeric text becomes a number, true/false (any case) a boolean, anything
    else a quoted string.

    Example:
        >>> lua_value("1.50")
        '1.5'
        >>> lua_value("TRUE")
        'true'
        >>> lua_value("idle")
        '"idle"'
    """
    if not text:
        return '""'
    number = lua_number(text)
    if number is not None:
        return number
    if text.lower() in ("true", "false"):
        return text.lower()
    return lua_string(text)


def blackboard_descriptor(resolved: ResolvedValue) -> str:
    """{BT.MessageType.BLACKBOARD, "key"[, default]}"""
    parts = ["BT.MessageType.BLACKBOARD", lua_string(resolved.key or "")]
    if resolved.default_value:
        parts.append(lua_value(resolved.default_value))
    return "{" + ", ".join(parts) + "}"


def scalar(resolved: ResolvedValue) -> str:
    """Reference descriptor or formatted literal."""
    if resolved.is_reference:
        return blackboard_descriptor(resolved)
    return lua_value(resolved.text)


class LuaTable:
    """Ordered Lua table constructor.

    Example:
        >>> t = LuaTable()
        >>> t.set("type", "BT.NodeType.ACTION")
        >>> t.set_indexed("Patrol", "true")
        >>> print(render(t))
        {
            type = BT.NodeType.ACTION,
            ["Patrol"] = true
        }
    """

    def __init__(self) -> None:
        self._entries: List[Tuple[Optional[str], LuaCode]] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return True

    @property
    def entries(self) -> List[Tuple[Optional[str], LuaCode]]:
        return list(self._entries)

    def set(self, name: str, value: LuaCode) -> None:
        """Add `name = value`; name must be a Lua identifier."""
        if not IDENTIFIER_PATTERN.match(name):
            raise ValueError(f"'{name}' is not a Lua identifier")
        self._entries.append((name, value))

    def set_indexed(self, key: str, value: LuaCode) -> None:
        """Add `["key"] = value`."""
        self._entries.append(("[" + lua_string(key) + "]", value))

    def append(self, value: LuaCode) -> None:
        """Add a positional (array) entry."""
        self._entries.append((None, value))

    def copy(self) -> "LuaTable":
        """Shallow copy; nested tables are shared."""
        table = LuaTable()
        table._entries = list(self._entries)
        return table

    def get(self, name: str) -> Optional[LuaCode]:
        for key, value in self._entries:
            if key == name:
                return value
        return None


def render(value: LuaCode, indent: str = "    ", level: int = 0) -> str:
    """Render a value; tables span multiple lines, empty tables are `{}`."""
    if not isinstance(value, LuaTable):
        return value
    if len(value) == 0:
        return "{}"

    inner = indent * (level + 1)
    lines = []
    for key, item in value.entries:
        text = render(item, indent, level + 1)
        lines.append(f"{inner}{key} = {text}" if key is not None else f"{inner}{text}")
    return "{\n" + ",\n".join(lines) + "\n" + indent * level + "}"


__all__ = [
    "LuaTable",
    "LuaCode",
    "lua_string",
    "lua_number",
    "lua_value",
    "blackboard_descriptor",
    "scalar",
    "render",
]
