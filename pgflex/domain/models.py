"""
Domain models for pgflex.

Defines the column type tags discovered from the catalog, the resolved table
schema, the tagged classification of dynamic record values and the result
contract returned by the writer.
"""
from __future__ import annotations

import enum
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Optional, Tuple, TypedDict

from pydantic import BaseModel, Field


class ColumnKind(str, enum.Enum):
    """Closed set of column types the encoder can coerce values into."""

    TIMESTAMP = "timestamp"
    TEXT = "text"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    JSON = "json"
    ENUM = "enum"


class ColumnType(BaseModel):
    """
    Type of a destination column.

    Enum columns additionally carry their legal labels in catalog order.
    """

    kind: ColumnKind
    labels: Tuple[str, ...] = Field(default=(), description="Allowed labels (enum only).")

    model_config = {"frozen": True}

    @classmethod
    def for_labels(cls, labels: "Tuple[str, ...] | list[str]") -> "ColumnType":
        return cls(kind=ColumnKind.ENUM, labels=tuple(labels))

    def accepts_label(self, value: str) -> bool:
        return self.kind is ColumnKind.ENUM and value in self.labels

    def __str__(self) -> str:
        if self.kind is ColumnKind.ENUM:
            return f"enum{list(self.labels)}"
        return self.kind.value


TIMESTAMP = ColumnType(kind=ColumnKind.TIMESTAMP)
TEXT = ColumnType(kind=ColumnKind.TEXT)
BOOLEAN = ColumnType(kind=ColumnKind.BOOLEAN)
INTEGER = ColumnType(kind=ColumnKind.INTEGER)
FLOAT = ColumnType(kind=ColumnKind.FLOAT)
JSON = ColumnType(kind=ColumnKind.JSON)


class Column(BaseModel):
    """A mapped (non-reserved) destination column."""

    name: str
    type: ColumnType

    model_config = {"frozen": True}


class Schema(BaseModel):
    """
    Resolved layout of the target table.

    `columns` holds the mapped columns in catalog order and never contains the
    reserved time and extra columns; those are addressed positionally.
    """

    table: str
    table_schema: Optional[str] = None
    time_column: str
    extra_column: str
    columns: Tuple[Column, ...] = ()

    model_config = {"frozen": True}

    @property
    def mapping(self) -> Mapping[str, ColumnType]:
        """Read-only column name -> type view, in column order."""
        return MappingProxyType({column.name: column.type for column in self.columns})

    @property
    def column_names(self) -> Tuple[str, ...]:
        """Destination column names in INSERT order: time, mapped..., extra."""
        return (self.time_column, *(c.name for c in self.columns), self.extra_column)


class ValueKind(str, enum.Enum):
    """Tag of a dynamically-typed record value."""

    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    OTHER = "other"


def value_kind(value: Any) -> ValueKind:
    """Classify a record value. `bool` is checked before numbers on purpose."""
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, Mapping):
        return ValueKind.MAPPING
    if isinstance(value, (list, tuple)):
        return ValueKind.SEQUENCE
    return ValueKind.OTHER


class WriteResult(TypedDict, total=False):
    """
    Outcome of one batch write.

    `status` is "ok" when the INSERT committed and "retry" when the connection was
    lost; the caller owns redelivery of a "retry" batch.
    """

    status: str
    rows: int
    duration_seconds: float
    error: Optional[str]


__all__ = [
    "BOOLEAN",
    "FLOAT",
    "INTEGER",
    "JSON",
    "TEXT",
    "TIMESTAMP",
    "Column",
    "ColumnKind",
    "ColumnType",
    "Schema",
    "ValueKind",
    "WriteResult",
    "value_kind",
]
