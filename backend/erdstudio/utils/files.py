import re
from urllib.parse import quote


def sanitize_filename(name: str | None, fallback: str = "diagram") -> str:
    base = (name or fallback).lower()
    base = re.sub(r"\.[a-z0-9]+$", "", base)
    base = re.sub(r"[^a-z0-9]+", "_", base).strip("_")
    return base or fallback


def content_disposition(filename: str) -> str:
    return f"attachment; filename=\"{filename}\"; filename*=UTF-8''{quote(filename)}"
