"""Loose -> strict ERD reconciliation.

LLM output and partial client submissions routinely miss field types, edge
markers or handle sides. All of that is repaired here, so the AI path, the
manual edit path, legacy document upgrades and SQL export see one graph shape.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from ..errors import NormalizationError
from .cardinality import DEFAULT_MARKER_START, infer_marker_end
from .graph import EDGE_TYPE, MARKER_END_VALUES, MARKER_START_VALUES, NODE_TYPE, Erd
from .handles import force_side

logger = logging.getLogger(__name__)

DEFAULT_LABEL = "Table"
DEFAULT_FIELD_TYPE = "VARCHAR(255)"


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def _finite(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints past float range
        return False


def _number(value: Any) -> float:
    return value if _finite(value) else 0


def _list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _unique(candidate: str, used: set[str]) -> str:
    value = candidate
    suffix = 2
    while value in used:
        value = f"{candidate}_{suffix}"
        suffix += 1
    used.add(value)
    return value


def _key(value: Any) -> str:
    role = _text(value).upper()
    return role if role in ("PK", "FK") else "NONE"


def _default(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if _finite(value):
        return str(value)
    return None


def _normalize_field(raw: Mapping[str, Any], node_idx: int, field_idx: int, used: set[str]) -> Dict[str, Any]:
    field_id = _text(raw.get("id")) or f"field_{node_idx}_{field_idx}"
    field: Dict[str, Any] = {
        "id": _unique(field_id, used),
        "title": _text(raw.get("title")) or f"Field_{field_idx + 1}",
        "type": _text(raw.get("type")) or DEFAULT_FIELD_TYPE,
        "key": _key(raw.get("key")),
        "nullable": raw["nullable"] if isinstance(raw.get("nullable"), bool) else True,
        "default": _default(raw.get("default")),
    }
    note = raw.get("note")
    if isinstance(note, str) and note.strip():
        field["note"] = note.strip()
    return field


def _placeholder_field(node_id: str) -> Dict[str, Any]:
    return {
        "id": f"{node_id}-id",
        "title": "id",
        "type": "INT",
        "key": "PK",
        "nullable": False,
        "default": None,
    }


def _normalize_node(raw: Mapping[str, Any], node_idx: int, used_ids: set[str]) -> Dict[str, Any]:
    node_id = _unique(_text(raw.get("id")) or f"node_{node_idx}", used_ids)

    position = raw.get("position")
    position = position if isinstance(position, Mapping) else {}

    data = raw.get("data")
    data = data if isinstance(data, Mapping) else {}

    used_fields: set[str] = set()
    fields = [
        _normalize_field(item, node_idx, field_idx, used_fields)
        for field_idx, item in enumerate(_list(data.get("schema")))
        if isinstance(item, Mapping)
    ]
    if not fields:
        fields.append(_placeholder_field(node_id))

    return {
        "id": node_id,
        "type": NODE_TYPE,
        "position": {"x": _number(position.get("x")), "y": _number(position.get("y"))},
        "data": {
            "label": _text(data.get("label")) or DEFAULT_LABEL,
            "schema": fields,
        },
    }


def _resolve_node_id(value: Any, node_ids: set[str], labels: Mapping[str, str]) -> Optional[str]:
    ref = _text(value)
    if not ref:
        return None
    if ref in node_ids:
        return ref
    return labels.get(ref.lower())


def _default_handle(fields: Iterable[Mapping[str, Any]], preferred_key: str) -> Optional[str]:
    fields = list(fields)
    chosen = next((f for f in fields if f["key"] == preferred_key), None)
    if chosen is None and fields:
        chosen = fields[0]
    return chosen["id"] if chosen else None


def _normalize_edges(raw_edges: List[Any], nodes: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    node_index = {node["id"]: {f["id"]: f for f in node["data"]["schema"]} for node in nodes}
    node_ids = set(node_index)
    labels: Dict[str, str] = {}
    for node in nodes:
        labels.setdefault(node["data"]["label"].lower(), node["id"])

    used_ids: set[str] = set()
    edges: List[Dict[str, Any]] = []
    for raw in raw_edges:
        if not isinstance(raw, Mapping):
            continue
        source = _resolve_node_id(raw.get("source"), node_ids, labels)
        target = _resolve_node_id(raw.get("target"), node_ids, labels)
        if source is None or target is None:
            logger.debug("Dropping edge with unresolved endpoints: %r", raw.get("id"))
            continue

        source_handle = _text(raw.get("sourceHandle")) or _default_handle(node_index[source].values(), "PK")
        target_handle = _text(raw.get("targetHandle")) or _default_handle(node_index[target].values(), "FK")
        target_handle = force_side(target_handle, "left")

        marker_start = raw.get("markerStart")
        if marker_start not in MARKER_START_VALUES:
            marker_start = DEFAULT_MARKER_START
        marker_end = raw.get("markerEnd")
        if marker_end not in MARKER_END_VALUES:
            marker_end = infer_marker_end(node_index, target, target_handle)

        data = raw.get("data")
        edges.append(
            {
                "id": _unique(_text(raw.get("id")) or f"e{source}-{target}", used_ids),
                "source": source,
                "target": target,
                "sourceHandle": force_side(source_handle, "right"),
                "targetHandle": target_handle,
                "type": EDGE_TYPE,
                "markerStart": marker_start,
                "markerEnd": marker_end,
                "data": {str(k): v for k, v in data.items()} if isinstance(data, Mapping) else {},
            }
        )
    return edges


def normalize_erd(payload: Any) -> Erd:
    """Repair a loose ``{nodes, edges}`` payload into a strict ``Erd``.

    Raises ``TypeError`` when the root is not an object. Any other shape
    problem is defaulted away; a strict validation failure afterwards is a bug
    and surfaces as ``NormalizationError``.
    """
    if isinstance(payload, Erd):
        payload = payload.to_dict()
    if not isinstance(payload, Mapping):
        raise TypeError(f"ERD payload must be an object, got {type(payload).__name__}")

    used_node_ids: set[str] = set()
    nodes = [
        _normalize_node(raw, node_idx, used_node_ids)
        for node_idx, raw in enumerate(_list(payload.get("nodes")))
        if isinstance(raw, Mapping)
    ]
    edges = _normalize_edges(_list(payload.get("edges")), nodes)

    try:
        return Erd.model_validate({"nodes": nodes, "edges": edges})
    except ValidationError as exc:
        logger.exception("Normalized ERD failed strict validation")
        raise NormalizationError("Normalized diagram failed strict validation") from exc


def load_strict(nodes: Any, edges: Any) -> Erd:
    """Read a stored graph, upgrading legacy documents that predate normalization."""
    raw = {"nodes": nodes or [], "edges": edges or []}
    try:
        return Erd.model_validate(raw)
    except ValidationError:
        return normalize_erd(raw)
