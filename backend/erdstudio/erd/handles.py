"""Edge handle strings: ``<fieldId>-left`` / ``<fieldId>-right``."""
from __future__ import annotations

import re
from typing import Dict, Optional

SIDE_SUFFIX = re.compile(r"-(left|right)$", re.IGNORECASE)
TABLE_COLUMN_HANDLE = re.compile(r"^(.+?)-([^-\s]+)-(left|right)$")


def strip_side(handle: Optional[str]) -> Optional[str]:
    if handle is None:
        return None
    return SIDE_SUFFIX.sub("", handle)


def force_side(handle: Optional[str], side: str) -> Optional[str]:
    if handle is None:
        return None
    return f"{strip_side(handle)}-{side}"


def handle_side(handle: Optional[str]) -> Optional[str]:
    if not handle:
        return None
    match = SIDE_SUFFIX.search(handle)
    return match.group(1).lower() if match else None


def parse_handle(handle: Optional[str]) -> Optional[Dict[str, str]]:
    """Split ``<table>-<column>-<side>`` into its table and column.

    The column is the last hyphen-free segment before the side; everything
    in front of it is the table, hyphens included.
    """
    if not handle:
        return None
    match = TABLE_COLUMN_HANDLE.match(handle)
    if not match:
        return None
    table, column, _side = match.groups()
    return {"table": table, "column": column}


def handle_points_at(handle: Optional[str], field_id: str) -> bool:
    if not handle or handle_side(handle) is None:
        return False
    return strip_side(handle) == field_id


def rewrite_handle_field(handle: Optional[str], old_field_id: str, new_field_id: str) -> Optional[str]:
    if not handle_points_at(handle, old_field_id):
        return handle
    return f"{new_field_id}-{handle_side(handle)}"
