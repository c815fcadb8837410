"""Strict value types for an ERD graph.

These models describe the shape that is persisted and returned to clients.
Anything coming from an LLM or a partial client edit goes through
``normalize.normalize_erd`` first; nothing else should try to repair input.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

NODE_TYPE = "databaseSchema"
EDGE_TYPE = "superCurvyEdge"

MARKER_START_VALUES = (
    "one-start",
    "many-start",
    "zero-start",
    "zero-to-one-start",
    "zero-to-many-start",
)
MARKER_END_VALUES = (
    "one-end",
    "many-end",
    "zero-end",
    "zero-to-one-end",
    "zero-to-many-end",
)

MarkerStart = Literal[
    "one-start",
    "many-start",
    "zero-start",
    "zero-to-one-start",
    "zero-to-many-start",
]
MarkerEnd = Literal[
    "one-end",
    "many-end",
    "zero-end",
    "zero-to-one-end",
    "zero-to-many-end",
]
FieldKey = Literal["PK", "FK", "NONE"]

HANDLE_PATTERN = r"(?i)-(left|right)$"


class GraphModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SchemaField(GraphModel):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    type: str = Field(min_length=1)
    key: FieldKey = "NONE"
    nullable: bool = True
    default: Optional[str] = None
    note: Optional[str] = None


class Position(GraphModel):
    x: float = 0
    y: float = 0


class NodeData(GraphModel):
    label: str = Field(min_length=1)
    fields: List[SchemaField] = Field(alias="schema", min_length=1)

    @field_validator("label")
    @classmethod
    def label_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("label must not be blank")
        return value

    @model_validator(mode="after")
    def unique_field_ids(self) -> "NodeData":
        seen: set[str] = set()
        for field in self.fields:
            if field.id in seen:
                raise ValueError(f"duplicate field id {field.id!r}")
            seen.add(field.id)
        return self


class Node(GraphModel):
    id: str = Field(min_length=1)
    type: Literal["databaseSchema"] = NODE_TYPE
    position: Position
    data: NodeData


class Edge(GraphModel):
    id: str = Field(min_length=1)
    source: str = Field(min_length=1)
    target: str = Field(min_length=1)
    source_handle: str = Field(pattern=HANDLE_PATTERN)
    target_handle: str = Field(pattern=HANDLE_PATTERN)
    type: Literal["superCurvyEdge"] = EDGE_TYPE
    marker_start: MarkerStart
    marker_end: MarkerEnd
    data: Dict[str, Any] = Field(default_factory=dict)


class Erd(GraphModel):
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_ids(self) -> "Erd":
        node_ids = [node.id for node in self.nodes]
        if len(node_ids) != len(set(node_ids)):
            raise ValueError("node ids must be unique")
        edge_ids = [edge.id for edge in self.edges]
        if len(edge_ids) != len(set(edge_ids)):
            raise ValueError("edge ids must be unique")
        known = set(node_ids)
        for edge in self.edges:
            if edge.source not in known or edge.target not in known:
                raise ValueError(f"edge {edge.id} references a missing node")
        return self

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return self.model_dump(mode="json", by_alias=True)

    def node(self, node_id: str) -> Optional[Node]:
        return next((node for node in self.nodes if node.id == node_id), None)


class ChatMessage(GraphModel):
    role: Literal["user", "assistant", "system"]
    content: str
    ts: int
