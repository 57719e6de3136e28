"""
Domain package for pgflex.

Exports the column types, the resolved schema and the error taxonomy used by the
resolver, the encoder and the writer.
"""

from pgflex.domain.errors import CoercionError, ConfigError, PgFlexError
from pgflex.domain.models import (
    BOOLEAN,
    FLOAT,
    INTEGER,
    JSON,
    TEXT,
    TIMESTAMP,
    Column,
    ColumnKind,
    ColumnType,
    Schema,
    ValueKind,
    WriteResult,
    value_kind,
)

__all__ = [
    "BOOLEAN",
    "FLOAT",
    "INTEGER",
    "JSON",
    "TEXT",
    "TIMESTAMP",
    "CoercionError",
    "Column",
    "ColumnKind",
    "ColumnType",
    "ConfigError",
    "PgFlexError",
    "Schema",
    "ValueKind",
    "WriteResult",
    "value_kind",
]
