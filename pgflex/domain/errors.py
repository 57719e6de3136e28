"""Error taxonomy for pgflex."""
from __future__ import annotations


class PgFlexError(Exception):
    """Base class for pgflex errors."""


class ConfigError(PgFlexError):
    """
    Fatal configuration problem detected at startup.

    Raised when a reserved column is missing from the table or does not have the
    type it must have. No partially resolved schema is ever used after this.
    """


class CoercionError(PgFlexError):
    """A value cannot be converted to its column's type. Never escapes a row."""


__all__ = ["CoercionError", "ConfigError", "PgFlexError"]
