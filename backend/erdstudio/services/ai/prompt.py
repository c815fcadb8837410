from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List

SYSTEM_PROMPT = """You are a precise assistant that turns natural language descriptions of database models into JSON for an Entity Relationship Diagram (ERD).

Return ONLY JSON. No markdown, no prose.

NODES (tables):
{
  "id": string,                       // "1", "2", "3", ...
  "position": {"x": number, "y": number},
  "type": "databaseSchema",
  "data": {
    "label": string,                  // table name
    "schema": [
      {
        "id": string,                 // "<table>-<column>"
        "title": string,              // column name only, never "(PK)"/"(FK)"
        "type": string,               // SQL type, e.g. "INT", "VARCHAR(255)", "TIMESTAMP"
        "key": "PK" | "FK",           // omit the key entirely for plain columns
        "nullable": boolean
      }
    ]
  }
}

EDGES (relationships):
{
  "id": "e<source>-<target>",
  "source": string,                   // node id of the referenced (PK) table
  "sourceHandle": "<sourceFieldId>-right",
  "target": string,                   // node id of the referencing (FK) table
  "targetHandle": "<targetFieldId>-left",
  "type": "superCurvyEdge",
  "markerStart": "one-start" | "many-start" | "zero-to-one-start" | "zero-to-many-start" | "zero-start",
  "markerEnd": "one-end" | "many-end" | "zero-to-one-end" | "zero-to-many-end" | "zero-end",
  "data": {}
}

CARDINALITY:
- one-to-one (mandatory): "one-start" -> "one-end"
- one-to-one (optional): "one-start" -> "zero-to-one-end"
- one-to-many (mandatory): "one-start" -> "many-end"
- zero-to-many: "one-start" -> "zero-to-many-end"
- many-to-many: model a join table with two one-to-many edges

Every table has a primary key. Foreign key columns carry "key": "FK".
Model only entities relevant to the user's domain; add created_at/updated_at (TIMESTAMP) where sensible.
"""


def minify_erd_for_prompt(graph: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    nodes = []
    for node in graph.get("nodes") or []:
        data = node.get("data") or {}
        nodes.append(
            {
                "id": node.get("id"),
                "label": data.get("label") or node.get("id"),
                "schema": [
                    {
                        "id": field.get("id"),
                        "title": field.get("title"),
                        "type": field.get("type"),
                        "key": field.get("key"),
                    }
                    for field in data.get("schema") or []
                ],
            }
        )
    edges = [
        {
            "id": edge.get("id"),
            "source": edge.get("source"),
            "target": edge.get("target"),
            "sourceHandle": edge.get("sourceHandle"),
            "targetHandle": edge.get("targetHandle"),
        }
        for edge in graph.get("edges") or []
    ]
    return {"nodes": nodes, "edges": edges}


def tail_for_prompt(chat: Iterable[Dict[str, Any]] | None, n: int = 6) -> List[str]:
    lines = [
        f"{str(message.get('role', 'user')).upper()}: {message['content'].strip()}"
        for message in chat or []
        if isinstance(message.get("content"), str) and message["content"].strip()
    ]
    return lines[-n:] if n > 0 else []


def compose_prompt(graph: Dict[str, Any], user_prompt: str, chat_tail: List[str] | None = None) -> str:
    compact = json.dumps(minify_erd_for_prompt(graph), separators=(",", ":"))
    history = "\n".join(chat_tail or [])
    return "\n".join(
        [
            "You are an ERD assistant.",
            "Return ONLY one of the following JSON shapes:",
            'A) Full ERD: {"nodes":[...], "edges":[...], "message":"..."}',
            'B) Operations: {"ops":['
            '{"op":"add_field","tableId":"...","id":"...","title":"...","type":"...","key":"NONE|PRIMARY|UNIQUE|FOREIGN"}, '
            '{"op":"rename_table","oldId":"...","newId":"...","newLabel":"..."}, '
            '{"op":"delete_field","tableId":"...","fieldId":"..."}'
            '], "message":"..."}',
            "Prefer B for small edits to the current diagram.",
            "",
            "CURRENT_ERD_JSON:",
            compact,
            "",
            "RECENT_CHAT_SUMMARY:",
            history or "(none)",
            "",
            "USER_REQUEST:",
            user_prompt.strip(),
        ]
    )
