"""
Graph validation.

Components:
- GraphValidator: Pure, total validation pass over a GraphStore
- ValidationReport: Per-node flags plus duplicate name/key groups
- NodeIssue / IssueCode / Severity: Individual flags
"""

from .engine import (
    GraphValidator,
    IssueCode,
    NodeIssue,
    Severity,
    ValidationReport,
    validate,
)

__all__ = [
    "GraphValidator",
    "IssueCode",
    "NodeIssue",
    "Severity",
    "ValidationReport",
    "validate",
]
