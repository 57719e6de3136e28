"""
Pytest configuration for pgflex.

Provides fixtures for:
- Fake connections/cursors for unit tests (no database needed)
- Database connection management for integration tests
- Target table setup from db/init.sql
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Generator, List, Optional, Sequence, Tuple

import psycopg
import pytest

from pgflex.config import Settings

ENUM_ROWS: List[Tuple[str, str]] = [
    ("public.severity", "debug"),
    ("public.severity", "info"),
    ("public.severity", "notice"),
    ("public.severity", "warning"),
    ("public.severity", "error"),
    ("public.severity", "critical"),
]

LOGS_COLUMNS: List[Tuple[str, str]] = [
    ("time", "timestamp with time zone"),
    ("severity", "public.severity"),
    ("message", "text"),
    ("extra", "jsonb"),
]


class FakeCursor:
    """Answers the two catalog queries and records everything else."""

    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn
        self._rows: List[Tuple[Any, ...]] = []

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb

    def execute(self, query: str, params: Optional[Sequence[Any]] = None) -> None:
        self._conn.executed.append((query, params))
        if self._conn.fail_with is not None:
            raise self._conn.fail_with
        if "pg_enum" in query:
            self._rows = list(self._conn.enum_rows)
        elif "information_schema.columns" in query:
            self._rows = list(self._conn.column_rows)
        else:
            self._conn.statements.append(query)
            self._rows = []

    def fetchall(self) -> List[Tuple[Any, ...]]:
        return self._rows


class FakeConnection:
    """
    Minimal stand-in for psycopg.Connection.

    `adapters`/`connection` satisfy psycopg's adaptation context so that
    `psycopg.sql` can quote against it without a server.
    """

    adapters = psycopg.adapters
    connection = None

    def __init__(
        self,
        column_rows: Sequence[Tuple[str, str]] = LOGS_COLUMNS,
        enum_rows: Sequence[Tuple[str, str]] = ENUM_ROWS,
    ) -> None:
        self.column_rows = list(column_rows)
        self.enum_rows = list(enum_rows)
        self.executed: List[Tuple[str, Any]] = []
        self.statements: List[str] = []
        self.fail_with: Optional[BaseException] = None
        self.closed = False

    def cursor(self) -> FakeCursor:
        if self.closed:
            raise psycopg.OperationalError("the connection is closed")
        return FakeCursor(self)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def connection_factory() -> Callable[..., FakeConnection]:
    return FakeConnection


@pytest.fixture
def unit_settings() -> Settings:
    return Settings(
        db_host="localhost",
        db_port=5432,
        db_user="postgres",
        db_password="postgres",
        db_name="logs",
        table="logs",
        time_column="time",
        extra_column="extra",
        connect_attempts=1,
    )


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "logs"),
        table="logs",
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def db_connection_available(test_settings: Settings) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(
            host=test_settings.db_host,
            port=test_settings.db_port,
            dbname=test_settings.db_name,
            user=test_settings.db_user,
            password=test_settings.db_password,
            connect_timeout=5,
        ) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_settings: Settings, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped autocommit connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(
        host=test_settings.db_host,
        port=test_settings.db_port,
        dbname=test_settings.db_name,
        user=test_settings.db_user,
        password=test_settings.db_password,
        autocommit=True,
    )
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def logs_table(db_connection: psycopg.Connection) -> str:
    """
    Ensure the example `logs` table from db/init.sql exists.
    """
    init_sql_path = Path(__file__).parent.parent / "db" / "init.sql"
    with db_connection.cursor() as cur:
        cur.execute(init_sql_path.read_text(encoding="utf-8"))
    return "logs"


@pytest.fixture(scope="function")
def clean_logs_table(db_connection: psycopg.Connection, logs_table: str):
    """
    Empty the logs table before and after each test function.
    """
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE public.logs;")
    yield
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE public.logs;")
