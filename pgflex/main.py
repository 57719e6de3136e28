from __future__ import annotations

import contextlib
import json
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, ContextManager, Dict, Iterator, List, Optional, TextIO

import typer

from pgflex.config import get_settings
from pgflex.domain import CoercionError, ConfigError, Schema
from pgflex.engine.encoder import Row, RowEncoder, parse_rfc3339
from pgflex.engine.resolver import resolve_schema
from pgflex.infrastructure.db_factory import build_dsn, connect
from pgflex.infrastructure.writer import PostgresFlexWriter
from pgflex.utils.logging import configure_logging, get_logger

app = typer.Typer(help="Write JSON log records into a PostgreSQL table shaped by its own schema.")
log = get_logger(__name__)


def _event_time(record: Dict[str, Any], time_key: Optional[str]) -> Any:
    """Pop the event time from `record`, falling back to now."""
    if time_key and time_key in record:
        raw = record[time_key]
        try:
            if isinstance(raw, str):
                try:
                    moment = parse_rfc3339(raw).astimezone(timezone.utc)
                except (OverflowError, ValueError) as exc:
                    raise CoercionError(f"timestamp out of range in UTC: {raw!r}") from exc
            elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
                try:
                    moment = datetime.fromtimestamp(raw, tz=timezone.utc)
                except (OverflowError, OSError, ValueError) as exc:
                    raise CoercionError(f"epoch seconds out of range: {raw!r}") from exc
            else:
                raise CoercionError(f"unsupported time value {raw!r}")
        except CoercionError as exc:
            log.warning("Keeping '%s' in the record, using current time: %s", time_key, exc)
        else:
            del record[time_key]
            return moment
    return datetime.now(timezone.utc)


def read_rows(stream: TextIO, time_key: Optional[str]) -> Iterator[Row]:
    """Yield (event time, record) pairs from newline-delimited JSON."""
    for lineno, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            log.warning("Skipping line %d: invalid JSON (%s)", lineno, exc)
            continue
        if not isinstance(record, dict):
            log.warning("Skipping line %d: not a JSON object", lineno)
            continue
        yield _event_time(record, time_key), record


def batched(rows: Iterator[Row], size: int) -> Iterator[List[Row]]:
    batch: List[Row] = []
    for row in rows:
        batch.append(row)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def _open_input(path: Optional[Path]) -> ContextManager[TextIO]:
    if path is None:
        return contextlib.nullcontext(sys.stdin)
    return path.open("r", encoding="utf-8")


def _schema_payload(schema: Schema) -> Dict[str, Any]:
    return {
        "table": schema.table,
        "table_schema": schema.table_schema,
        "time_column": schema.time_column,
        "extra_column": schema.extra_column,
        "columns": {
            column.name: {"type": column.type.kind.value, "labels": list(column.type.labels)}
            if column.type.labels
            else {"type": column.type.kind.value}
            for column in schema.columns
        },
    }


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={build_dsn(settings, redact=True)} | table={settings.table} "
        f"schema={settings.table_schema or '-'} time={settings.time_column} "
        f"extra={settings.extra_column} | batch={settings.batch_size} "
        f"write_attempts={settings.write_attempts}"
    )


@app.command()
def schema() -> None:
    """
    Resolve the target table's schema and print it as JSON.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    conn = connect(settings)
    try:
        resolved = resolve_schema(
            conn,
            settings.table,
            time_column=settings.time_column,
            extra_column=settings.extra_column,
            table_schema=settings.table_schema,
        )
    except ConfigError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=2)
    finally:
        conn.close()
    typer.echo(json.dumps(_schema_payload(resolved), indent=2))


@app.command()
def ingest(
    file: Optional[Path] = typer.Option(
        None, "--file", "-f", help="Newline-delimited JSON input (default: stdin)."
    ),
    time_key: Optional[str] = typer.Option(
        "time", "--time-key", "-t", help="Record property holding the event time."
    ),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", "-b", min=1, help="Rows per INSERT (default from settings)."
    ),
) -> None:
    """
    Insert records read from a file or stdin, one INSERT per batch.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    size = batch_size or settings.batch_size
    total = 0

    try:
        writer = PostgresFlexWriter(settings)
        writer.start()
    except ConfigError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=2)

    with writer, _open_input(file) as stream:
        for batch in batched(read_rows(stream, time_key), size):
            for attempt in range(1, settings.write_attempts + 1):
                result = writer.write(batch)
                if result["status"] == "ok":
                    total += result["rows"]
                    break
                log.warning("Batch of %d rows not written (attempt %d)", len(batch), attempt)
                if attempt < settings.write_attempts:
                    time.sleep(min(2 ** (attempt - 1), 10))
            else:
                typer.echo(f"Giving up after {settings.write_attempts} attempts; {total} rows written.", err=True)
                raise typer.Exit(code=1)

    typer.echo(f"Inserted {total} rows into {settings.table}.")


@app.command("sql")
def show_sql(
    file: Optional[Path] = typer.Option(
        None, "--file", "-f", help="Newline-delimited JSON input (default: stdin)."
    ),
    time_key: Optional[str] = typer.Option(
        "time", "--time-key", "-t", help="Record property holding the event time."
    ),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", "-b", min=1, help="Rows per INSERT (default from settings)."
    ),
) -> None:
    """
    Print the INSERT statements that `ingest` would run, without running them.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    conn = connect(settings)
    try:
        resolved = resolve_schema(
            conn,
            settings.table,
            time_column=settings.time_column,
            extra_column=settings.extra_column,
            table_schema=settings.table_schema,
        )
        encoder = RowEncoder(resolved, conn)
        with _open_input(file) as stream:
            for batch in batched(read_rows(stream, time_key), batch_size or settings.batch_size):
                typer.echo(encoder.build_insert(batch) + ";")
    except ConfigError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=2)
    finally:
        conn.close()


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
