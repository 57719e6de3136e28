"""
pgflex - schema-driven log ingestion into PostgreSQL.

Log records (maps of property name to arbitrary JSON value) are written into an
existing table whose columns are discovered at startup:

- properties matching a column are coerced to that column's type
- everything else, and every value that cannot be coerced, lands in a single
  JSON "extra" column
- a dedicated timestamp column always receives the event time

Rows are sent as one multi-row INSERT per batch over a single connection that is
re-established, and the schema re-resolved, when it breaks.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from pgflex.config import Settings, get_settings
from pgflex.domain import ColumnKind, ColumnType, ConfigError, Schema, WriteResult
from pgflex.engine import RowEncoder, coerce_value, resolve_schema
from pgflex.infrastructure import ConnectionState, PostgresFlexWriter
from pgflex.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Types
    "ColumnKind",
    "ColumnType",
    "ConfigError",
    "Schema",
    "WriteResult",
    # Engine
    "RowEncoder",
    "coerce_value",
    "resolve_schema",
    # Writer
    "ConnectionState",
    "PostgresFlexWriter",
    # Logging
    "configure_logging",
    "get_logger",
]
