"""Diff-style edits applied to a private copy of a diagram graph.

Every function here takes a ``{nodes, edges}`` graph (dict or ``Erd``), never
mutates it, and returns a new dict graph. Errors abort the whole call, so a
batch either applies completely or not at all.
"""
from __future__ import annotations

from copy import deepcopy
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .graph import Erd
from .handles import handle_points_at, rewrite_handle_field

KEY_MAP = {
    "NONE": "NONE",
    "PRIMARY": "PK",
    "PK": "PK",
    "FOREIGN": "FK",
    "FK": "FK",
    "UNIQUE": "UNIQUE",
}


class OpsError(ValueError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def to_canonical_key(key: Any) -> str:
    return KEY_MAP.get(str(key if key is not None else "NONE").strip().upper(), "NONE")


class _Op(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AddFieldOp(_Op):
    op: Literal["add_field"]
    table_id: str = Field(alias="tableId", min_length=1)
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    type: str = Field(min_length=1)
    key: Optional[str] = None


class RenameTableOp(_Op):
    op: Literal["rename_table"]
    old_id: str = Field(alias="oldId", min_length=1)
    new_id: str = Field(alias="newId", min_length=1)
    new_label: Optional[str] = Field(default=None, alias="newLabel")


class DeleteFieldOp(_Op):
    op: Literal["delete_field"]
    table_id: str = Field(alias="tableId", min_length=1)
    field_id: str = Field(alias="fieldId", min_length=1)


Op = Annotated[Union[AddFieldOp, RenameTableOp, DeleteFieldOp], Field(discriminator="op")]
OpList = TypeAdapter(List[Op])


def parse_ops(raw: Any) -> List[Union[AddFieldOp, RenameTableOp, DeleteFieldOp]]:
    return OpList.validate_python(raw)


def _clone(graph: Any) -> Dict[str, List[Dict[str, Any]]]:
    if isinstance(graph, Erd):
        return graph.to_dict()
    graph = graph or {}
    return {
        "nodes": deepcopy(list(graph.get("nodes") or [])),
        "edges": deepcopy(list(graph.get("edges") or [])),
    }


def _table(nodes: List[Dict[str, Any]], table_id: str) -> Dict[str, Any]:
    for node in nodes:
        if node.get("id") == table_id:
            return node
    raise OpsError("TABLE_NOT_FOUND", f"Table {table_id!r} not found")


def _schema(node: Dict[str, Any]) -> List[Dict[str, Any]]:
    data = node.get("data")
    if not isinstance(data, dict):
        data = node["data"] = {"label": node.get("id"), "schema": []}
    if not isinstance(data.get("schema"), list):
        data["schema"] = []
    return data["schema"]


def _field_index(schema: List[Dict[str, Any]], field_id: str) -> int:
    for idx, field in enumerate(schema):
        if field.get("id") == field_id:
            return idx
    raise OpsError("FIELD_NOT_FOUND", f"Field {field_id!r} not found")


def _drop_edges_touching(edges: List[Dict[str, Any]], field_id: str) -> List[Dict[str, Any]]:
    return [
        edge
        for edge in edges
        if not (
            handle_points_at(edge.get("sourceHandle"), field_id)
            or handle_points_at(edge.get("targetHandle"), field_id)
        )
    ]


def _add_field(graph: Dict[str, Any], op: AddFieldOp) -> None:
    schema = _schema(_table(graph["nodes"], op.table_id))
    if any(field.get("id") == op.id for field in schema):
        raise OpsError("FIELD_ID_EXISTS", f"Field id {op.id!r} already exists")
    schema.append(
        {
            "id": op.id,
            "title": op.title,
            "type": op.type,
            "key": to_canonical_key(op.key),
            "nullable": True,
            "default": None,
        }
    )


def _rename_table(graph: Dict[str, Any], op: RenameTableOp) -> None:
    node = _table(graph["nodes"], op.old_id)
    if op.new_id != op.old_id and any(n.get("id") == op.new_id for n in graph["nodes"]):
        raise OpsError("TABLE_ID_EXISTS", f"Table id {op.new_id!r} already exists")
    data = node.get("data") if isinstance(node.get("data"), dict) else {}
    node["id"] = op.new_id
    node["data"] = {**data, "label": op.new_label or data.get("label") or op.new_id}
    for edge in graph["edges"]:
        if edge.get("source") == op.old_id:
            edge["source"] = op.new_id
        if edge.get("target") == op.old_id:
            edge["target"] = op.new_id


def _delete_field(graph: Dict[str, Any], op: DeleteFieldOp) -> None:
    node = _table(graph["nodes"], op.table_id)
    schema = _schema(node)
    remaining = [field for field in schema if field.get("id") != op.field_id]
    if len(remaining) == len(schema):
        raise OpsError("FIELD_NOT_FOUND", f"Field {op.field_id!r} not found")
    node["data"]["schema"] = remaining
    graph["edges"] = _drop_edges_touching(graph["edges"], op.field_id)


HANDLERS = {
    "add_field": _add_field,
    "rename_table": _rename_table,
    "delete_field": _delete_field,
}


def apply_ops(graph: Any, ops: Sequence[Any]) -> Dict[str, List[Dict[str, Any]]]:
    """Apply ``ops`` in order to a deep copy of ``graph``; the input is never touched."""
    parsed = [op if isinstance(op, _Op) else OpList.validate_python([op])[0] for op in ops]
    working = _clone(graph)
    for op in parsed:
        HANDLERS[op.op](working, op)
    return working


# Single-field edits used by the REST field endpoints.


def add_field(graph: Any, table_id: str, field: Dict[str, Any]) -> Dict[str, Any]:
    working = _clone(graph)
    schema = _schema(_table(working["nodes"], table_id))
    if any(existing.get("id") == field.get("id") for existing in schema):
        raise OpsError("FIELD_ID_EXISTS", f"Field id {field.get('id')!r} already exists")
    schema.append(dict(field))
    return working


def update_field(graph: Any, table_id: str, field_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    working = _clone(graph)
    schema = _schema(_table(working["nodes"], table_id))
    idx = _field_index(schema, field_id)
    new_id = changes.get("id") or field_id
    if new_id != field_id and any(f.get("id") == new_id for f in schema):
        raise OpsError("FIELD_ID_EXISTS", f"Field id {new_id!r} already exists")

    schema[idx] = {**schema[idx], **changes, "id": new_id}
    if new_id != field_id:
        for edge in working["edges"]:
            edge["sourceHandle"] = rewrite_handle_field(edge.get("sourceHandle"), field_id, new_id)
            edge["targetHandle"] = rewrite_handle_field(edge.get("targetHandle"), field_id, new_id)
    return working


def delete_field(graph: Any, table_id: str, field_id: str) -> Dict[str, Any]:
    working = _clone(graph)
    schema = _schema(_table(working["nodes"], table_id))
    _field_index(schema, field_id)
    if len(schema) == 1:
        raise OpsError("LAST_FIELD", "A table must keep at least one field")
    _delete_field(working, DeleteFieldOp(op="delete_field", tableId=table_id, fieldId=field_id))
    return working


def reorder_fields(graph: Any, table_id: str, order: Sequence[str]) -> Dict[str, Any]:
    working = _clone(graph)
    node = _table(working["nodes"], table_id)
    schema = _schema(node)
    by_id = {field.get("id"): field for field in schema}
    if len(set(order)) != len(order):
        raise OpsError("INVALID_ORDER", "Field order contains duplicates")
    unknown = [field_id for field_id in order if field_id not in by_id]
    if unknown:
        raise OpsError("FIELD_NOT_FOUND", f"Unknown field ids: {', '.join(unknown)}")

    ordered = [by_id[field_id] for field_id in order]
    ordered.extend(field for field in schema if field.get("id") not in set(order))
    node["data"]["schema"] = ordered
    return working


def rename_label(graph: Any, table_id: str, label: str) -> Dict[str, Any]:
    working = _clone(graph)
    node = _table(working["nodes"], table_id)
    data = node.get("data") if isinstance(node.get("data"), dict) else {"schema": []}
    node["data"] = {**data, "label": label}
    return working
