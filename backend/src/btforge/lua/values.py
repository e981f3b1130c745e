"""
Attribute value references.

Free-text attributes may encode indirection with a sigil:
- "@key": read blackboard field `key` at runtime (BlackboardRef)
- "\\@text": escaped literal, emitted as "@text" (Literal)
- "?path": raw module path for `func`, bypassing the configured prefix (RawPath)

parse_value() turns a raw string into one of these tagged values once, and
ReferenceResolver attaches the blackboard default for references.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Union

from ..graph.types import BlackboardField

if TYPE_CHECKING:
    from ..graph.store import GraphStore

logger = logging.getLogger(__name__)

REFERENCE_PATTERN = re.compile(r"^@[^@\s]+$")
ESCAPE_PREFIX = "\\@"
RAW_PATH_PREFIX = "?"


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class BlackboardRef:
    key: str


@dataclass(frozen=True)
class RawPath:
    path: str


AttributeValue = Union[Literal, BlackboardRef, RawPath]


def is_reference(raw: Optional[str]) -> bool:
    """Check if a raw attribute value is a blackboard reference."""
    if not raw or not isinstance(raw, str):
        return False
    return bool(REFERENCE_PATTERN.match(raw)) and not raw.startswith(ESCAPE_PREFIX)


def parse_value(raw: Optional[str], allow_raw_path: bool = False) -> AttributeValue:
    """Parse a raw attribute string into a tagged value.

    Args:
        raw: The attribute text as typed by the designer.
        allow_raw_path: Recognise the "?path" override (only meaningful for func).

    Example:
        >>> parse_value("@hp")
        BlackboardRef(key='hp')
        >>> parse_value("\\\\@hp")
        Literal(text='@hp')
        >>> parse_value("?ai.patrol", allow_raw_path=True)
        RawPath(path='ai.patrol')
    """
    if not raw:
        return Literal("")
    if is_reference(raw):
        return BlackboardRef(raw[1:])
    if raw.startswith(ESCAPE_PREFIX):
        return Literal(raw[1:])
    if allow_raw_path and raw.startswith(RAW_PATH_PREFIX):
        return RawPath(raw[len(RAW_PATH_PREFIX):])
    return Literal(raw)


class ValueKind(str, Enum):
    LITERAL = "literal"
    REFERENCE = "reference"


@dataclass(frozen=True)
class ResolvedValue:
    """A literal, or a reference descriptor with its blackboard default.

    default_value is None when the key is not defined on any blackboard.
    """

    kind: ValueKind
    text: str = ""
    key: Optional[str] = None
    default_value: Optional[str] = None

    @property
    def is_reference(self) -> bool:
        return self.kind == ValueKind.REFERENCE


class ReferenceResolver:
    """Resolves references against the current set of blackboard fields.

    Lookup is by trimmed key; the first field in node creation order wins.
    Stateless apart from the field list it was built from.
    """

    def __init__(self, fields: Iterable[BlackboardField] = ()) -> None:
        self._defaults: Dict[str, str] = {}
        for entry in fields:
            key = entry.key.strip() if entry.key else ""
            if key and key not in self._defaults:
                self._defaults[key] = entry.value or ""

    @classmethod
    def from_store(cls, store: "GraphStore") -> "ReferenceResolver":
        return cls(store.blackboard_fields())

    def known_keys(self) -> List[str]:
        return list(self._defaults)

    def is_valid(self, key: str) -> bool:
        """Check if a referenced key is defined on some blackboard."""
        return key in self._defaults

    def default_for(self, key: str) -> Optional[str]:
        return self._defaults.get(key)

    def resolve(self, raw: Optional[str]) -> ResolvedValue:
        """Resolve a raw attribute string.

        Unknown keys still produce a reference descriptor, without a default.
        """
        value = parse_value(raw)
        if isinstance(value, BlackboardRef):
            default = self.default_for(value.key)
            if default is None:
                logger.debug(f"Blackboard key '{value.key}' is not defined")
            return ResolvedValue(
                kind=ValueKind.REFERENCE,
                key=value.key,
                default_value=default,
            )
        return ResolvedValue(kind=ValueKind.LITERAL, text=value.text)


__all__ = [
    "Literal",
    "BlackboardRef",
    "RawPath",
    "AttributeValue",
    "is_reference",
    "parse_value",
    "ValueKind",
    "ResolvedValue",
    "ReferenceResolver",
    "REFERENCE_PATTERN",
    "ESCAPE_PREFIX",
    "RAW_PATH_PREFIX",
]
