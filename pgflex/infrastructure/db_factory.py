"""
Database connection factory for pgflex.

Opens the single psycopg connection the writer holds for its lifetime. Includes
retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

from typing import Optional

import psycopg
from psycopg import Connection
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from pgflex.config import Settings, get_settings
from pgflex.utils.logging import get_logger

log = get_logger(__name__)

# Errors meaning "the connection is gone"; anything else is a statement problem.
TRANSIENT_ERRORS = (psycopg.OperationalError, psycopg.InterfaceError)


def build_dsn(settings: Optional[Settings] = None, redact: bool = False) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    password = "***" if redact else settings.db_password
    return (
        f"postgresql://{settings.db_user}:{password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def connect(settings: Optional[Settings] = None) -> Connection:
    """
    Open an autocommit connection with automatic retry.

    Retries `settings.connect_attempts` times with exponential backoff on
    operational errors (refused connection, server restarting, ...).

    Returns
    -------
    Connection
        A new psycopg connection instance.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    settings = settings or get_settings()
    retrying = Retrying(
        stop=stop_after_attempt(settings.connect_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(psycopg.OperationalError),
        reraise=True,
    )
    for attempt in retrying:
        with attempt:
            log.debug(
                "Connecting to %s (attempt %d)",
                build_dsn(settings, redact=True),
                attempt.retry_state.attempt_number,
            )
            return psycopg.connect(
                host=settings.db_host,
                port=settings.db_port,
                dbname=settings.db_name,
                user=settings.db_user,
                password=settings.db_password,
                autocommit=True,
            )
    raise AssertionError("unreachable")  # pragma: no cover


__all__ = ["TRANSIENT_ERRORS", "build_dsn", "connect"]
