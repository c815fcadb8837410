from __future__ import annotations

from typing import Any, Mapping, Optional

from .handles import strip_side

DEFAULT_MARKER_START = "one-start"
FALLBACK_MARKER_END = "many-end"


def marker_end_for(key: Optional[str], nullable: bool) -> str:
    """Relationship end marker for a target field's key role and nullability."""
    if key == "FK":
        return "zero-to-many-end" if nullable else "many-end"
    if key == "PK":
        return "zero-to-one-end" if nullable else "one-end"
    return "zero-to-many-end" if nullable else "many-end"


def infer_marker_end(
    node_index: Mapping[str, Mapping[str, Mapping[str, Any]]],
    target_id: str,
    target_handle: Optional[str],
) -> str:
    """Look up the target field by handle; ``node_index`` maps node id -> field id -> field."""
    fields = node_index.get(target_id)
    if fields is None:
        return FALLBACK_MARKER_END
    field_id = strip_side(target_handle)
    field = fields.get(field_id) if field_id else None
    if field is None:
        return FALLBACK_MARKER_END
    return marker_end_for(field.get("key"), field.get("nullable") is True)
