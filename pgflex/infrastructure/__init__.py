"""
Infrastructure package for pgflex.

Centralizes database connectivity: the connection factory and the batch writer
that owns the connection. Keep this layer focused on I/O and resource
management, decoupled from the coercion rules in `pgflex.engine`.
"""

from pgflex.infrastructure.db_factory import TRANSIENT_ERRORS, build_dsn, connect
from pgflex.infrastructure.writer import ConnectionState, PostgresFlexWriter

__all__ = [
    "TRANSIENT_ERRORS",
    "ConnectionState",
    "PostgresFlexWriter",
    "build_dsn",
    "connect",
]
