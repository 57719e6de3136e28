"""
Schema resolver: discover the target table's columns and their types.

Two catalog queries are issued once per connection: one listing every enum type
with its labels, one listing the table's columns with a normalized type
descriptor (the built-in type name, or `schema.typename` for user-defined types).
Descriptors are mapped to column types by `descriptor_to_type`, which is pure and
testable without a database.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pgflex.domain import (
    BOOLEAN,
    FLOAT,
    INTEGER,
    JSON,
    TEXT,
    TIMESTAMP,
    Column,
    ColumnType,
    ConfigError,
    Schema,
)
from pgflex.utils.logging import get_logger

log = get_logger(__name__)

EnumCatalog = Dict[str, List[str]]

ENUMS_SQL = """
SELECT n.nspname || '.' || t.typname AS name, e.enumlabel AS label
FROM pg_catalog.pg_type t
JOIN pg_catalog.pg_enum e ON t.oid = e.enumtypid
JOIN pg_catalog.pg_namespace n ON n.oid = t.typnamespace
ORDER BY name, e.enumsortorder
"""

COLUMNS_SQL = """
SELECT column_name,
       CASE WHEN data_type <> 'USER-DEFINED' THEN data_type
            ELSE udt_schema || '.' || udt_name END AS type
FROM information_schema.columns
WHERE table_name = %s
"""

COLUMNS_IN_SCHEMA_SQL = COLUMNS_SQL + "AND table_schema = %s\n"

# Exact strings as reported by information_schema.columns.data_type.
BUILTIN_TYPES: Mapping[str, ColumnType] = {
    "timestamp with time zone": TIMESTAMP,
    "timestamp without time zone": TIMESTAMP,
    "text": TEXT,
    "character varying": TEXT,
    "character": TEXT,
    "boolean": BOOLEAN,
    "smallint": INTEGER,
    "integer": INTEGER,
    "bigint": INTEGER,
    "decimal": FLOAT,
    "numeric": FLOAT,
    "real": FLOAT,
    "double precision": FLOAT,
    "json": JSON,
    "jsonb": JSON,
}


def build_enum_catalog(rows: Iterable[Tuple[str, str]]) -> EnumCatalog:
    """Group `(qualified_type_name, label)` rows by type, keeping row order."""
    catalog: EnumCatalog = {}
    for name, label in rows:
        catalog.setdefault(name, []).append(label)
    return catalog


def descriptor_to_type(descriptor: str, enums: Mapping[str, List[str]]) -> Optional[ColumnType]:
    """
    Map a normalized type descriptor to a column type.

    Returns None when the descriptor is neither a supported built-in type nor a
    known enum type; such columns are left out of the schema.
    """
    builtin = BUILTIN_TYPES.get(descriptor)
    if builtin is not None:
        return builtin
    labels = enums.get(descriptor)
    if labels is not None:
        return ColumnType.for_labels(labels)
    return None


def _check_reserved(name: str, column_type: Optional[ColumnType], expected: ColumnType, role: str) -> None:
    if column_type != expected:
        found = "an unsupported type" if column_type is None else f"type {column_type}"
        raise ConfigError(f"{role} column '{name}' must be of type {expected}, found {found}")


def build_schema(
    column_rows: Iterable[Tuple[str, str]],
    enums: Mapping[str, List[str]],
    table: str,
    time_column: str,
    extra_column: str,
    table_schema: Optional[str] = None,
) -> Schema:
    """
    Build a Schema from `(column_name, descriptor)` rows.

    Raises
    ------
    ConfigError
        If the table has no columns, or a reserved column is missing or has the
        wrong type.
    """
    columns: List[Column] = []
    mapped_names: set = set()
    seen_time = seen_extra = False
    any_rows = False

    for name, descriptor in column_rows:
        any_rows = True
        column_type = descriptor_to_type(descriptor, enums)

        if name == time_column:
            _check_reserved(name, column_type, TIMESTAMP, "time")
            seen_time = True
            continue
        if name == extra_column:
            _check_reserved(name, column_type, JSON, "extra")
            seen_extra = True
            continue

        if column_type is None:
            log.warning(
                "Unhandled column type '%s' for column '%s'; its values go to '%s'",
                descriptor,
                name,
                extra_column,
                extra={"table": table, "column": name, "descriptor": descriptor},
            )
            continue
        if name in mapped_names:
            log.warning("Column '%s' reported twice; keeping the first definition", name)
            continue
        mapped_names.add(name)
        columns.append(Column(name=name, type=column_type))

    if not any_rows:
        raise ConfigError(f"table '{table}' not found or has no columns")
    if not seen_time:
        raise ConfigError(f"time column '{time_column}' does not exist in table '{table}'")
    if not seen_extra:
        raise ConfigError(f"extra column '{extra_column}' does not exist in table '{table}'")

    return Schema(
        table=table,
        table_schema=table_schema,
        time_column=time_column,
        extra_column=extra_column,
        columns=tuple(columns),
    )


def _fetch(conn: Any, query: str, params: Optional[Tuple[Any, ...]] = None) -> List[Tuple[Any, ...]]:
    with conn.cursor() as cur:
        cur.execute(query, params)
        return [tuple(row) for row in cur.fetchall()]


def resolve_schema(
    conn: Any,
    table: str,
    time_column: str = "time",
    extra_column: str = "extra",
    table_schema: Optional[str] = None,
) -> Schema:
    """
    Introspect `table` over a live connection and return its Schema.

    Catalog query failures propagate unchanged; reconnecting is the caller's job.
    """
    enums = build_enum_catalog(_fetch(conn, ENUMS_SQL))

    if table_schema is None:
        rows = _fetch(conn, COLUMNS_SQL + "ORDER BY table_schema, ordinal_position", (table,))
    else:
        rows = _fetch(conn, COLUMNS_IN_SCHEMA_SQL + "ORDER BY ordinal_position", (table, table_schema))

    schema = build_schema(rows, enums, table, time_column, extra_column, table_schema)
    log.info(
        "Resolved schema for '%s': %d mapped columns",
        table,
        len(schema.columns),
        extra={"table": table, "columns": [c.name for c in schema.columns]},
    )
    return schema


__all__ = [
    "BUILTIN_TYPES",
    "COLUMNS_SQL",
    "ENUMS_SQL",
    "EnumCatalog",
    "build_enum_catalog",
    "build_schema",
    "descriptor_to_type",
    "resolve_schema",
]
