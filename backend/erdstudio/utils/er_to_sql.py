from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..erd.graph import Erd
from ..erd.handles import parse_handle
from .dialects import POSTGRES, DialectRenderer

TIMESTAMP_COLUMNS = ("created_at", "updated_at")


@dataclass
class Column:
    name: str
    type: str
    pk: bool = False
    fk: bool = False


@dataclass
class ForeignKey:
    column: str
    ref_table: str
    ref_column: str
    name: str


@dataclass
class Table:
    name: str
    columns: Dict[str, Column] = field(default_factory=dict)
    fks: List[ForeignKey] = field(default_factory=list)

    @property
    def pks(self) -> List[str]:
        return [column.name for column in self.columns.values() if column.pk]


def _collect_tables(erd: Erd) -> Dict[str, Table]:
    tables: Dict[str, Table] = {}
    for node in erd.nodes:
        name = node.data.label.strip()
        table = tables.setdefault(name, Table(name=name))
        for schema_field in node.data.fields:
            column_name = schema_field.title.strip()
            table.columns[column_name] = Column(
                name=column_name,
                type=schema_field.type or "TEXT",
                pk=schema_field.key == "PK",
                fk=schema_field.key == "FK",
            )
    return tables


def _resolve_table(tables: Dict[str, Table], name: str) -> Optional[Table]:
    if name in tables:
        return tables[name]
    lowered = name.lower()
    return next((table for key, table in tables.items() if key.lower() == lowered), None)


def _infer_foreign_keys(erd: Erd, tables: Dict[str, Table]) -> None:
    for edge in erd.edges:
        a = parse_handle(edge.source_handle)
        b = parse_handle(edge.target_handle)
        if not a or not b:
            continue
        a_table = _resolve_table(tables, a["table"])
        b_table = _resolve_table(tables, b["table"])
        if not a_table or not b_table:
            continue
        a_col = a_table.columns.get(a["column"])
        b_col = b_table.columns.get(b["column"])
        if not a_col or not b_col:
            continue

        # Target is the child unless only the source column is flagged FK.
        child, child_col, parent, parent_col = b_table, b_col, a_table, a_col
        if a_col.fk and not b_col.fk:
            child, child_col, parent, parent_col = a_table, a_col, b_table, b_col

        fk = ForeignKey(
            column=child_col.name,
            ref_table=parent.name,
            ref_column=parent_col.name,
            name=f"fk_{child.name}_{child_col.name}_to_{parent.name}_{parent_col.name}",
        )
        # parallel edges between the same columns
        if fk not in child.fks:
            child.fks.append(fk)


def to_sql(
    erd: Erd,
    dialect: DialectRenderer = POSTGRES,
    *,
    schema: str = "",
    add_identity: bool = True,
    add_not_null: bool = True,
    add_fk_indexes: bool = True,
    add_timestamps_default: bool = True,
) -> str:
    """Render CREATE TABLE / CREATE INDEX statements for a strict ERD."""

    d = dialect
    tables = _collect_tables(erd)
    _infer_foreign_keys(erd, tables)

    use_schema = bool(schema) and d.supports_schema

    def fq(table_name: str) -> str:
        return f"{d.q(schema)}.{d.q(table_name)}" if use_schema else d.q(table_name)

    out: List[str] = []
    if use_schema:
        out.extend([f"CREATE SCHEMA IF NOT EXISTS {d.q(schema)};", ""])

    for name in sorted(tables):
        table = tables[name]
        pks = table.pks
        inline_pk = d.inlines_single_pk and add_identity and len(pks) == 1

        column_sql: List[str] = []
        for column in table.columns.values():
            type_sql = d.type(column.type)
            if add_identity and column.pk:
                type_sql = d.identity(type_sql, inline_pk)

            parts = [f"{d.q(column.name)} {type_sql}"]
            if add_not_null and (column.pk or column.fk) and not (inline_pk and column.pk):
                parts.append("NOT NULL")
            if add_timestamps_default and column.name in TIMESTAMP_COLUMNS:
                parts.append(f"DEFAULT {d.now()}")
            column_sql.append("  " + " ".join(parts))

        if pks and not inline_pk:
            column_sql.append(f"  PRIMARY KEY ({', '.join(d.q(pk) for pk in pks)})")

        for fk in table.fks:
            column_sql.append(
                f"  CONSTRAINT {d.q(fk.name)} FOREIGN KEY ({d.q(fk.column)}) "
                f"REFERENCES {fq(fk.ref_table)} ({d.q(fk.ref_column)})"
            )

        columns_block = ",\n".join(column_sql)
        out.extend([f"CREATE TABLE IF NOT EXISTS {fq(table.name)} (\n{columns_block}\n);", ""])

        if add_fk_indexes and table.fks:
            for column in dict.fromkeys(fk.column for fk in table.fks):
                index_name = d.q(f"{table.name}_{column}_idx")
                out.append(f"CREATE INDEX IF NOT EXISTS {index_name} ON {fq(table.name)} ({d.q(column)});")
            out.append("")

    return "\n".join(out)
