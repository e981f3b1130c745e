"""Pydantic models for the persisted (JSON) graph document."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import INVALID_JSON, SCHEMA_VIOLATION, ImportFailure
from ..graph.store import DOCUMENT_VERSION, GraphStore
from ..graph.types import DecoratorKind, NodeKind

logger = logging.getLogger(__name__)


class _DocumentModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


class ParamModel(_DocumentModel):
    name: Optional[str] = ""
    value: Optional[str] = ""


class FieldModel(_DocumentModel):
    key: Optional[str] = ""
    value: Optional[str] = ""
    comment: Optional[str] = ""


class NodeModel(_DocumentModel):
    """One node as stored; decorator and blackboard keys are optional."""

    id: int
    type: NodeKind
    name: Optional[str] = ""
    x: float = 0.0
    y: float = 0.0
    func: Optional[str] = None
    policy: Optional[str] = None
    comment: Optional[str] = None
    params: Optional[List[ParamModel]] = None
    decorator_type: Optional[DecoratorKind] = Field(None, alias="decoratorType")
    repeater_count: Optional[str] = Field(None, alias="repeaterCount")
    timeout_duration: Optional[str] = Field(None, alias="timeoutDuration")
    retry_count: Optional[str] = Field(None, alias="retryCount")
    cooldown_duration: Optional[str] = Field(None, alias="cooldownDuration")
    wait_duration: Optional[str] = Field(None, alias="waitDuration")
    subtree: Optional[str] = None
    fields: Optional[List[FieldModel]] = None

    @field_validator("decorator_type", mode="before")
    @classmethod
    def empty_decorator_type(cls, value: Any) -> Any:
        return None if value == "" else value


class ConnectionModel(_DocumentModel):
    from_id: int = Field(..., alias="from")
    to_id: int = Field(..., alias="to")
    order: Optional[int] = None
    from_point: Optional[str] = Field("right", alias="fromPoint")
    to_point: Optional[str] = Field("left", alias="toPoint")


class PersistedDocument(_DocumentModel):
    """Export/import document: {nodes, connections, version, createdAt, lastModified}."""

    nodes: List[NodeModel] = Field(default_factory=list)
    connections: List[ConnectionModel] = Field(default_factory=list)
    version: str = DOCUMENT_VERSION
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    last_modified: Optional[datetime] = Field(None, alias="lastModified")

    def graph_dict(self) -> Dict[str, Any]:
        """Nodes and connections in the shape GraphStore.deserialize expects."""
        data = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        return {
            "nodes": data.get("nodes", []),
            "connections": data.get("connections", []),
            "version": self.version,
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=indent)


def parse_document(source: Union[str, bytes, Dict[str, Any]]) -> PersistedDocument:
    """Parse and check a persisted document.

    Raises:
        ImportFailure: E3001 if the text is not JSON, E3002 if it does not
            match the schema, E3003-E3005 if the graph is inconsistent.
    """
    if isinstance(source, (str, bytes)):
        try:
            data = json.loads(source)
        except json.JSONDecodeError as e:
            raise ImportFailure(INVALID_JSON, f"Document is not valid JSON: {e}") from e
    else:
        data = source

    if not isinstance(data, dict):
        raise ImportFailure(SCHEMA_VIOLATION, "Document must be a JSON object")

    try:
        document = PersistedDocument.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ImportFailure(
            SCHEMA_VIOLATION,
            f"Document does not match the schema at '{location}': {first['msg']}",
        ) from e

    # Consistency checks (ids, dangling and duplicate edges) on a scratch store
    GraphStore().deserialize(document.graph_dict())
    return document


def load_document(store: GraphStore, document: PersistedDocument) -> None:
    """Replace the store's state with the document's graph."""
    store.deserialize(document.graph_dict())


def dump_document(
    store: GraphStore,
    created_at: Optional[datetime] = None,
    last_modified: Optional[datetime] = None,
) -> PersistedDocument:
    """Build a persisted document from the store's current state."""
    now = datetime.now(timezone.utc)
    data = store.serialize()
    data["createdAt"] = created_at or now
    data["lastModified"] = last_modified or now
    return PersistedDocument.model_validate(data)


__all__ = [
    "ParamModel",
    "FieldModel",
    "NodeModel",
    "ConnectionModel",
    "PersistedDocument",
    "parse_document",
    "load_document",
    "dump_document",
]
