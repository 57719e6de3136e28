"""
Batch writer holding the single database connection.

The writer is a small state machine:

    DISCONNECTED --start()/write()--> CONNECTED
    CONNECTED --transient send failure--> RECONNECTING
    RECONNECTING --connect + resolve ok--> CONNECTED
    RECONNECTING --connect failed--> DISCONNECTED

The schema is resolved on every transition into CONNECTED and cached until the
next one. A batch that could not be sent is reported back as a "retry" result;
redelivery and backoff belong to the caller.
"""

from __future__ import annotations

import enum
import threading
import time
from typing import Any, Callable, Iterable, Optional

from psycopg import Connection

from pgflex.config import Settings, get_settings
from pgflex.domain import Schema, WriteResult
from pgflex.engine.encoder import Row, RowEncoder
from pgflex.engine.resolver import resolve_schema
from pgflex.infrastructure.db_factory import TRANSIENT_ERRORS, connect
from pgflex.utils.logging import get_logger

log = get_logger(__name__)


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class PostgresFlexWriter:
    """
    Write batches of (event time, record) pairs into one table.

    Safe to share between threads: the connection handle is guarded by a lock, so
    batches are sent one at a time.

    Example
    -------
        with PostgresFlexWriter(settings) as writer:
            result = writer.write([(datetime.now(timezone.utc), {"message": "hi"})])
            if result["status"] == "retry":
                ...  # redeliver later
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        connect_fn: Optional[Callable[[], Connection]] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._connect_fn = connect_fn or (lambda: connect(self.settings))
        self._conn: Optional[Any] = None
        self._encoder: Optional[RowEncoder] = None
        self._state = ConnectionState.DISCONNECTED
        self._lock = threading.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def schema(self) -> Optional[Schema]:
        return self._encoder.schema if self._encoder else None

    @property
    def encoder(self) -> Optional[RowEncoder]:
        return self._encoder

    def start(self) -> Schema:
        """Connect and resolve the schema. ConfigError aborts startup."""
        with self._lock:
            if self._state is not ConnectionState.CONNECTED:
                self._open()
            assert self._encoder is not None
            return self._encoder.schema

    def _open(self) -> None:
        conn = self._connect_fn()
        try:
            schema = resolve_schema(
                conn,
                self.settings.table,
                time_column=self.settings.time_column,
                extra_column=self.settings.extra_column,
                table_schema=self.settings.table_schema,
            )
        except Exception:
            conn.close()
            self._state = ConnectionState.DISCONNECTED
            raise
        self._conn = conn
        self._encoder = RowEncoder(schema, conn)
        self._state = ConnectionState.CONNECTED

    def _close_connection(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except TRANSIENT_ERRORS as exc:
                log.debug("Ignoring error while closing a broken connection: %s", exc)
            finally:
                self._conn = None
                self._encoder = None

    def _reconnect(self) -> None:
        self._state = ConnectionState.RECONNECTING
        self._close_connection()
        try:
            self._open()
        except TRANSIENT_ERRORS as exc:
            log.warning("Reconnect failed, will retry on next write: %s", exc)
            self._state = ConnectionState.DISCONNECTED
        else:
            log.info("Reconnected to database", extra={"table": self.settings.table})

    def write(self, batch: Iterable[Row]) -> WriteResult:
        """
        Insert every row of `batch` with a single INSERT statement.

        Returns status "ok" on success and "retry" when the connection was lost
        (the writer has already tried to reconnect). Errors that are not about
        the connection, such as a value the column rejects, propagate.
        """
        rows = list(batch)
        if not rows:
            return WriteResult(status="ok", rows=0, duration_seconds=0.0)

        start = time.perf_counter()
        with self._lock:
            if self._state is not ConnectionState.CONNECTED:
                try:
                    self._open()
                except TRANSIENT_ERRORS as exc:
                    log.warning("Database unavailable: %s", exc)
                    return WriteResult(
                        status="retry",
                        rows=len(rows),
                        duration_seconds=time.perf_counter() - start,
                        error=str(exc),
                    )

            assert self._encoder is not None and self._conn is not None
            statement = self._encoder.build_insert(rows)
            try:
                with self._conn.cursor() as cur:
                    cur.execute(statement)
            except TRANSIENT_ERRORS as exc:
                log.warning(
                    "Send failed, reconnecting: %s",
                    exc,
                    extra={"table": self.settings.table, "rows": len(rows)},
                )
                self._reconnect()
                return WriteResult(
                    status="retry",
                    rows=len(rows),
                    duration_seconds=time.perf_counter() - start,
                    error=str(exc),
                )

        duration = time.perf_counter() - start
        log.debug("Inserted %d rows in %.3fs", len(rows), duration)
        return WriteResult(status="ok", rows=len(rows), duration_seconds=duration)

    def close(self) -> None:
        with self._lock:
            self._close_connection()
            self._state = ConnectionState.DISCONNECTED

    def __enter__(self) -> "PostgresFlexWriter":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb
        self.close()


__all__ = ["ConnectionState", "PostgresFlexWriter"]
