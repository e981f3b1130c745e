"""
Lua code generation.

Components:
- values: Attribute sigils (@key, \\@literal, ?path) and the ReferenceResolver
- writer: LuaTable and literal formatting
- compiler: TreeCompiler (graph -> Lua document)
- checker: LuaChunkChecker (compile/evaluate generated chunks with lupa)
"""

from .values import (
    AttributeValue,
    BlackboardRef,
    Literal,
    RawPath,
    ReferenceResolver,
    ResolvedValue,
    ValueKind,
    is_reference,
    parse_value,
)
from .writer import LuaTable, lua_string, lua_value, render
from .compiler import CompiledDocument, TreeCompiler, compile_lua
from .checker import LuaCheckResult, LuaChunkChecker

__all__ = [
    "AttributeValue",
    "BlackboardRef",
    "Literal",
    "RawPath",
    "ReferenceResolver",
    "ResolvedValue",
    "ValueKind",
    "is_reference",
    "parse_value",
    "LuaTable",
    "lua_string",
    "lua_value",
    "render",
    "CompiledDocument",
    "TreeCompiler",
    "compile_lua",
    "LuaCheckResult",
    "LuaChunkChecker",
]
