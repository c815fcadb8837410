from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional


def _double_quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _backtick(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


TYPE_PATTERN = re.compile(r"^\s*([A-Za-z ]+?)\s*(\(.*\))?\s*$")

POSTGRES_TYPES = {
    "INT": "INTEGER",
    "INTEGER": "INTEGER",
    "TINYINT": "SMALLINT",
    "DOUBLE": "DOUBLE PRECISION",
    "DATETIME": "TIMESTAMP",
    "BOOL": "BOOLEAN",
    "BLOB": "BYTEA",
    "BINARY": "BYTEA",
    "STRING": "VARCHAR",
    "JSON": "JSONB",
}

MYSQL_TYPES = {
    "INTEGER": "INT",
    "BOOLEAN": "TINYINT(1)",
    "BOOL": "TINYINT(1)",
    "SERIAL": "INT",
    "BYTEA": "LONGBLOB",
    "UUID": "CHAR(36)",
    "JSONB": "JSON",
    "STRING": "VARCHAR",
    "TIMESTAMPTZ": "TIMESTAMP",
    "DOUBLE PRECISION": "DOUBLE",
}

SQLITE_TYPES = {
    "INT": "INTEGER",
    "BIGINT": "INTEGER",
    "SMALLINT": "INTEGER",
    "TINYINT": "INTEGER",
    "SERIAL": "INTEGER",
    "VARCHAR": "TEXT",
    "CHAR": "TEXT",
    "STRING": "TEXT",
    "UUID": "TEXT",
    "JSON": "TEXT",
    "JSONB": "TEXT",
    "FLOAT": "REAL",
    "DOUBLE": "REAL",
    "DOUBLE PRECISION": "REAL",
    "DECIMAL": "NUMERIC",
    "BOOL": "INTEGER",
    "BOOLEAN": "INTEGER",
    "BYTEA": "BLOB",
    "DATETIME": "TEXT",
    "TIMESTAMP": "TEXT",
    "TIMESTAMPTZ": "TEXT",
    "DATE": "TEXT",
}


def _map_type(raw: str, table: Dict[str, str], keep_length: bool = True) -> str:
    match = TYPE_PATTERN.match(raw or "")
    if not match:
        return raw.strip() or "TEXT"
    base = match.group(1).upper()
    args = match.group(2) or ""
    mapped = table.get(base, base)
    if "(" in mapped:
        return mapped
    return f"{mapped}{args}" if keep_length else mapped


def _postgres_identity(type_sql: str, inline_pk: bool) -> str:
    return f"{type_sql} GENERATED BY DEFAULT AS IDENTITY"


def _mysql_identity(type_sql: str, inline_pk: bool) -> str:
    return f"{type_sql} AUTO_INCREMENT"


def _sqlite_identity(type_sql: str, inline_pk: bool) -> str:
    # AUTOINCREMENT is only legal on a lone INTEGER PRIMARY KEY.
    return "INTEGER PRIMARY KEY AUTOINCREMENT" if inline_pk else type_sql


@dataclass(frozen=True)
class DialectRenderer:
    id: str
    q: Callable[[str], str]
    identity: Callable[[str, bool], str]
    types: Dict[str, str] = field(default_factory=dict)
    keep_length: bool = True
    now_sql: str = "CURRENT_TIMESTAMP"
    supports_schema: bool = False
    inlines_single_pk: bool = False

    def type(self, raw: str) -> str:
        return _map_type(raw, self.types, self.keep_length)

    def now(self) -> str:
        return self.now_sql


POSTGRES = DialectRenderer(
    id="postgres",
    q=_double_quote,
    identity=_postgres_identity,
    types=POSTGRES_TYPES,
    supports_schema=True,
)
MYSQL = DialectRenderer(
    id="mysql",
    q=_backtick,
    identity=_mysql_identity,
    types=MYSQL_TYPES,
)
SQLITE = DialectRenderer(
    id="sqlite",
    q=_double_quote,
    identity=_sqlite_identity,
    types=SQLITE_TYPES,
    keep_length=False,
    inlines_single_pk=True,
)

DIALECTS = {renderer.id: renderer for renderer in (POSTGRES, MYSQL, SQLITE)}
ALIASES = {"postgresql": "postgres", "pg": "postgres", "mariadb": "mysql", "sqlite3": "sqlite"}


def pick_dialect(
    query_value: Optional[str] = None,
    header_value: Optional[str] = None,
    default: str = "postgres",
) -> DialectRenderer:
    """Query parameter wins over header; anything unrecognised falls back to Postgres."""
    raw = (query_value or "").strip().lower() or (header_value or "").strip().lower() or default
    raw = ALIASES.get(raw, raw)
    return DIALECTS.get(raw, POSTGRES)
