"""
GraphValidator - Derives validation flags from the current graph.

Validation is a pure function of the store: it never mutates anything and
never raises. Attributes that are missing or not strings are treated as empty.

Checks performed:
- CONDITION / ACTION need a function (E2001)
- PARALLEL needs a policy (E2002)
- DECORATOR: SUBTREE_REF needs a subtree name (E2003), WAIT needs a wait
  duration (E2004), every other decorator needs a child (E2005)
- SEQUENCE / FALLBACK / PARALLEL / SUBTREE need a child (E2005)
- SUBTREE names must be unique after trimming (E2006)
- Blackboard keys must be unique across all blackboards after trimming (E2007)

Advisory warnings (never set the node error flag):
- W2101: Malformed numeric decorator attribute
- W2102: Blackboard reference to an undefined key
- W2103: SUBTREE_REF naming a subtree that no SUBTREE node defines
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from ..graph.store import GraphStore
from ..graph.types import DecoratorKind, Node, NodeKind
from ..lua.values import ReferenceResolver, is_reference

logger = logging.getLogger(__name__)


# =============================================================================
# Issue Types
# =============================================================================


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class IssueCode(str, Enum):
    """Validation flag codes."""

    MISSING_FUNCTION = "E2001"
    MISSING_POLICY = "E2002"
    MISSING_SUBTREE_REFERENCE = "E2003"
    MISSING_WAIT_DURATION = "E2004"
    NO_CHILDREN = "E2005"
    DUPLICATE_SUBTREE_NAME = "E2006"
    DUPLICATE_BLACKBOARD_KEY = "E2007"

    MALFORMED_NUMBER = "W2101"
    UNKNOWN_BLACKBOARD_KEY = "W2102"
    UNKNOWN_SUBTREE = "W2103"

    @property
    def severity(self) -> Severity:
        return Severity.WARNING if self.value.startswith("W") else Severity.ERROR


@dataclass(frozen=True)
class NodeIssue:
    """A single flag raised against a node.

    field_index points at the offending param or blackboard field when the
    issue concerns one entry of a list attribute.
    """

    code: IssueCode
    node_id: int
    message: str
    field_index: Optional[int] = None
    attribute: Optional[str] = None

    @property
    def severity(self) -> Severity:
        return self.code.severity

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "code": self.code.value,
            "severity": self.severity.value,
            "node_id": self.node_id,
            "message": self.message,
        }
        if self.field_index is not None:
            result["field_index"] = self.field_index
        if self.attribute is not None:
            result["attribute"] = self.attribute
        return result


# =============================================================================
# ValidationReport
# =============================================================================


@dataclass
class ValidationReport:
    """All flags for one graph state."""

    issues: List[NodeIssue] = field(default_factory=list)
    warnings: List[NodeIssue] = field(default_factory=list)
    # trimmed name -> SUBTREE node ids sharing it
    duplicate_subtree_names: Dict[str, List[int]] = field(default_factory=dict)
    # trimmed key -> (blackboard node id, field index) occurrences
    duplicate_blackboard_keys: Dict[str, List[Tuple[int, int]]] = field(default_factory=dict)

    @property
    def errored_node_ids(self) -> Set[int]:
        return {issue.node_id for issue in self.issues}

    @property
    def is_clean(self) -> bool:
        """True when no node carries an error flag (warnings allowed)."""
        return not self.issues

    def has_error(self, node_id: int) -> bool:
        return any(issue.node_id == node_id for issue in self.issues)

    def issues_for(self, node_id: int) -> List[NodeIssue]:
        """Errors then warnings for one node."""
        return [i for i in self.issues + self.warnings if i.node_id == node_id]

    def is_duplicate_subtree(self, node_id: int) -> bool:
        return any(node_id in ids for ids in self.duplicate_subtree_names.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "warnings": [w.to_dict() for w in self.warnings],
            "duplicate_subtree_names": {k: list(v) for k, v in self.duplicate_subtree_names.items()},
            "duplicate_blackboard_keys": {
                k: [list(pair) for pair in v] for k, v in self.duplicate_blackboard_keys.items()
            },
        }


# =============================================================================
# Numeric attribute rules
# =============================================================================


INTEGER = re.compile(r"^-?\d+$")
UNSIGNED_INTEGER = re.compile(r"^\d+$")
UNSIGNED_NUMBER = re.compile(r"^\d+(\.\d+)?$")

# attribute -> (pattern, predicate, message)
NUMERIC_RULES = {
    "repeater_count": (
        INTEGER,
        lambda v: int(v) >= -1,
        "Repeat count must be an integer >= -1 (-1 repeats forever)",
    ),
    "timeout_duration": (
        UNSIGNED_NUMBER,
        lambda v: float(v) > 0,
        "Timeout must be a number > 0",
    ),
    "retry_count": (
        UNSIGNED_INTEGER,
        lambda v: int(v) >= 1,
        "Retry count must be an integer >= 1",
    ),
    "cooldown_duration": (
        UNSIGNED_NUMBER,
        lambda v: float(v) >= 0,
        "Cooldown must be a number >= 0",
    ),
    "wait_duration": (
        UNSIGNED_NUMBER,
        lambda v: float(v) >= 0,
        "Wait duration must be a number >= 0",
    ),
}

# Attributes that may hold a blackboard reference
REFERENCE_ATTRIBUTES = (
    "func",
    "policy",
    "timeout_duration",
    "cooldown_duration",
    "wait_duration",
    "repeater_count",
    "retry_count",
    "subtree",
)


def _text(value: Any) -> str:
    """Treat missing or non-string attributes as empty."""
    return value if isinstance(value, str) else ""


def _blank(value: Any) -> bool:
    return not _text(value).strip()


# =============================================================================
# GraphValidator
# =============================================================================


class GraphValidator:
    """Validates a GraphStore.

    Example:
        >>> store = GraphStore()
        >>> seq = store.create_node(NodeKind.SEQUENCE)
        >>> report = GraphValidator().validate(store)
        >>> report.has_error(seq.id)
        True
        >>> [str(i) for i in report.issues_for(seq.id)]
        ['[E2005] Sequence node needs at least one child']
    """

    def __init__(self, check_warnings: bool = True) -> None:
        """Initialize the validator.

        Args:
            check_warnings: Also produce W21xx advisory warnings.
        """
        self._check_warnings = check_warnings

    def validate(self, store: GraphStore) -> ValidationReport:
        report = ValidationReport()
        nodes = store.nodes
        parents_with_children = {c.from_id for c in store.connections}

        for node in nodes:
            report.issues.extend(self._node_issues(node, node.id in parents_with_children))

        self._check_subtree_names(nodes, report)
        self._check_blackboard_keys(nodes, report)

        if self._check_warnings:
            resolver = ReferenceResolver.from_store(store)
            subtree_names = {
                _text(n.name).strip() for n in nodes if n.type == NodeKind.SUBTREE
            }
            for node in nodes:
                report.warnings.extend(self._node_warnings(node, resolver, subtree_names))

        logger.debug(
            f"Validated {len(nodes)} nodes: "
            f"{len(report.issues)} errors, {len(report.warnings)} warnings"
        )
        return report

    # -------------------------------------------------------------------------
    # Per-node rules
    # -------------------------------------------------------------------------

    def _node_issues(self, node: Node, has_children: bool) -> List[NodeIssue]:
        issues: List[NodeIssue] = []
        label = _text(node.name) or node.type.value

        if NodeKind.is_leaf(node.type) and not _text(node.func):
            issues.append(NodeIssue(
                IssueCode.MISSING_FUNCTION, node.id,
                f"{label} needs a function name", attribute="func",
            ))

        if node.type == NodeKind.PARALLEL and not _text(node.policy):
            issues.append(NodeIssue(
                IssueCode.MISSING_POLICY, node.id,
                f"{label} needs a parallel policy", attribute="policy",
            ))

        if node.type == NodeKind.DECORATOR:
            if node.decorator_type == DecoratorKind.SUBTREE_REF:
                if _blank(node.subtree):
                    issues.append(NodeIssue(
                        IssueCode.MISSING_SUBTREE_REFERENCE, node.id,
                        f"{label} must name the subtree it references", attribute="subtree",
                    ))
            elif node.decorator_type == DecoratorKind.WAIT:
                if _blank(node.wait_duration):
                    issues.append(NodeIssue(
                        IssueCode.MISSING_WAIT_DURATION, node.id,
                        f"{label} needs a wait duration", attribute="wait_duration",
                    ))
            elif not has_children:
                issues.append(NodeIssue(
                    IssueCode.NO_CHILDREN, node.id, f"{label} node needs a child",
                ))
        elif NodeKind.requires_children(node.type) and not has_children:
            issues.append(NodeIssue(
                IssueCode.NO_CHILDREN, node.id, f"{label} node needs at least one child",
            ))

        return issues

    def _node_warnings(
        self,
        node: Node,
        resolver: ReferenceResolver,
        subtree_names: Set[str],
    ) -> List[NodeIssue]:
        warnings: List[NodeIssue] = []

        for attr in REFERENCE_ATTRIBUTES:
            raw = _text(getattr(node, attr, None))
            if is_reference(raw) and not resolver.is_valid(raw[1:]):
                warnings.append(NodeIssue(
                    IssueCode.UNKNOWN_BLACKBOARD_KEY, node.id,
                    f"Blackboard key '{raw[1:]}' is not defined", attribute=attr,
                ))

        for index, param in enumerate(node.params or []):
            raw = _text(param.value)
            if is_reference(raw) and not resolver.is_valid(raw[1:]):
                warnings.append(NodeIssue(
                    IssueCode.UNKNOWN_BLACKBOARD_KEY, node.id,
                    f"Blackboard key '{raw[1:]}' is not defined",
                    field_index=index, attribute="params",
                ))

        for attr, (pattern, predicate, message) in NUMERIC_RULES.items():
            raw = _text(getattr(node, attr, None)).strip()
            if not raw or is_reference(raw):
                continue
            if not (pattern.match(raw) and predicate(raw)):
                warnings.append(NodeIssue(
                    IssueCode.MALFORMED_NUMBER, node.id,
                    f"{message} (got '{raw}')", attribute=attr,
                ))

        if node.decorator_type == DecoratorKind.SUBTREE_REF:
            name = _text(node.subtree).strip()
            if name and not is_reference(name) and name not in subtree_names:
                warnings.append(NodeIssue(
                    IssueCode.UNKNOWN_SUBTREE, node.id,
                    f"No subtree named '{name}' exists", attribute="subtree",
                ))

        return warnings

    # -------------------------------------------------------------------------
    # Cross-node rules
    # -------------------------------------------------------------------------

    def _check_subtree_names(self, nodes: List[Node], report: ValidationReport) -> None:
        groups: Dict[str, List[int]] = {}
        for node in nodes:
            if node.type != NodeKind.SUBTREE:
                continue
            name = _text(node.name).strip()
            if name:
                groups.setdefault(name, []).append(node.id)

        for name, ids in groups.items():
            if len(ids) < 2:
                continue
            report.duplicate_subtree_names[name] = ids
            for node_id in ids:
                report.issues.append(NodeIssue(
                    IssueCode.DUPLICATE_SUBTREE_NAME, node_id,
                    f"Subtree name '{name}' is used by {len(ids)} subtree nodes",
                    attribute="name",
                ))

    def _check_blackboard_keys(self, nodes: List[Node], report: ValidationReport) -> None:
        groups: Dict[str, List[Tuple[int, int]]] = {}
        for node in nodes:
            if node.type != NodeKind.BLACKBOARD:
                continue
            for index, entry in enumerate(node.fields or []):
                key = _text(entry.key).strip()
                if key:
                    groups.setdefault(key, []).append((node.id, index))

        for key, occurrences in groups.items():
            if len(occurrences) < 2:
                continue
            report.duplicate_blackboard_keys[key] = occurrences
            for node_id, index in occurrences:
                report.issues.append(NodeIssue(
                    IssueCode.DUPLICATE_BLACKBOARD_KEY, node_id,
                    f"Blackboard key '{key}' is defined {len(occurrences)} times",
                    field_index=index, attribute="fields",
                ))


def validate(store: GraphStore) -> ValidationReport:
    """Validate with the default checks."""
    return GraphValidator().validate(store)


__all__ = [
    "Severity",
    "IssueCode",
    "NodeIssue",
    "ValidationReport",
    "GraphValidator",
    "validate",
    "NUMERIC_RULES",
]
