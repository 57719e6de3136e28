"""
Integration tests for pgflex against a real PostgreSQL instance.

These tests verify that:
1. The schema resolver reads the example table and its enum type
2. Batches written through the writer land in the right columns
3. A broken connection is reported as retryable and recovered from

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os
from datetime import datetime, timezone

import psycopg
import pytest

from pgflex.domain import ColumnKind
from pgflex.engine.encoder import parse_rfc3339
from pgflex.engine.resolver import resolve_schema
from pgflex.infrastructure.writer import ConnectionState, PostgresFlexWriter

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


class TestSchemaResolution:
    def test_resolves_example_table(self, db_connection, logs_table):
        schema = resolve_schema(db_connection, logs_table, table_schema="public")

        assert list(schema.mapping) == [
            "severity",
            "message",
            "hostname",
            "pid",
            "duration",
            "success",
            "context",
        ]
        severity = schema.mapping["severity"]
        assert severity.kind is ColumnKind.ENUM
        assert "notice" in severity.labels
        # inet is not supported and is left out.
        assert "address" not in schema.mapping

    def test_resolution_is_idempotent(self, db_connection, logs_table):
        first = resolve_schema(db_connection, logs_table, table_schema="public")
        second = resolve_schema(db_connection, logs_table, table_schema="public")
        assert first == second


class TestWriter:
    def test_documented_scenario_round_trip(
        self, test_settings, db_connection, clean_logs_table
    ):
        record = {
            "severity": "notice",
            "message": "Starting up...",
            "hostname": "node0123",
            "meta": {"env": "production"},
        }
        with PostgresFlexWriter(test_settings) as writer:
            result = writer.write([(parse_rfc3339("2019-10-10T10:01:20.1234Z"), record)])
        assert result["status"] == "ok"

        with db_connection.cursor() as cur:
            cur.execute("SELECT time, severity::text, message, hostname, extra FROM public.logs")
            rows = cur.fetchall()

        assert rows == [
            (
                datetime(2019, 10, 10, 10, 1, 20, 123400, tzinfo=timezone.utc),
                "notice",
                '"Starting up..."',
                '"node0123"',
                {"meta": {"env": "production"}},
            )
        ]

    def test_defaults_and_fallbacks(self, test_settings, db_connection, clean_logs_table):
        batch = [
            (1570701680, {"severity": "verbose", "pid": "12abc", "success": "TRUE", "address": "10.0.0.1"}),
            (1570701681, {"duration": "1.5", "context": {"a": [1, 2]}, "message": None}),
        ]
        with PostgresFlexWriter(test_settings) as writer:
            assert writer.write(batch)["status"] == "ok"

        with db_connection.cursor() as cur:
            cur.execute(
                "SELECT severity::text, pid, success, duration, context, message, extra "
                "FROM public.logs ORDER BY time"
            )
            first, second = cur.fetchall()

        assert first == ("info", 12, True, None, None, None, {"severity": "verbose", "address": "10.0.0.1"})
        assert second == ("info", None, None, 1.5, {"a": [1, 2]}, None, {})

    def test_lost_connection_is_retryable(self, test_settings, db_connection, clean_logs_table):
        batch = [(datetime.now(timezone.utc), {"message": "after reconnect"})]
        with PostgresFlexWriter(test_settings) as writer:
            with db_connection.cursor() as cur:
                cur.execute(
                    "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                    "WHERE pid <> pg_backend_pid() AND datname = current_database() "
                    "AND application_name = ''"
                )

            result = writer.write(batch)
            if result["status"] == "retry":
                assert writer.state is ConnectionState.CONNECTED
                result = writer.write(batch)
            assert result["status"] == "ok"

        with db_connection.cursor() as cur:
            cur.execute("SELECT count(*) FROM public.logs")
            assert cur.fetchone()[0] == 1

    def test_hostile_values_are_stored_verbatim(self, test_settings, db_connection, clean_logs_table):
        hostile = "'); DROP TABLE public.logs; -- \\ \" "
        with PostgresFlexWriter(test_settings) as writer:
            assert writer.write([(1570701680, {"message": hostile, "note": hostile})])["status"] == "ok"

        with db_connection.cursor() as cur:
            cur.execute("SELECT message::jsonb #>> '{}', extra->>'note' FROM public.logs")
            assert cur.fetchone() == (hostile, hostile)
