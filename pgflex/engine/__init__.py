"""
Engine package for pgflex.

Re-exports the schema resolver and the row encoder so downstream code can import
from `pgflex.engine` directly.
"""

from pgflex.engine.encoder import DEFAULT, RowEncoder, coerce_value, format_event_time
from pgflex.engine.resolver import build_enum_catalog, build_schema, descriptor_to_type, resolve_schema

__all__ = [
    # Encoder
    "DEFAULT",
    "RowEncoder",
    "coerce_value",
    "format_event_time",
    # Resolver
    "build_enum_catalog",
    "build_schema",
    "descriptor_to_type",
    "resolve_schema",
]
