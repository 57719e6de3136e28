"""
Sample record generator for pgflex.

Emits deterministic pseudo-random log records as newline-delimited JSON, mixing
properties that match `db/init.sql` columns, properties with no column, and
values that cannot be coerced. Optionally writes them through the pgflex writer.
"""

from __future__ import annotations

import json
import random
import sys
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path

import typer

from pgflex.config import get_settings
from pgflex.infrastructure.writer import PostgresFlexWriter
from pgflex.main import batched, read_rows
from pgflex.utils.logging import configure_logging

app = typer.Typer(help="Generate synthetic log records as NDJSON and optionally write them to Postgres.")

SEVERITIES = ["debug", "info", "notice", "warning", "error", "critical"]


def _generate_records(path: Path, rows: int, seed: int) -> None:
    rng = random.Random(seed)
    start = datetime(2019, 10, 10, 10, 0, 0, tzinfo=UTC)

    with path.open("w", encoding="utf-8") as f:
        for i in range(rows):
            record = {
                "time": (start + timedelta(milliseconds=rng.randint(0, 86_400_000))).isoformat(),
                # Occasionally outside the enum, so it falls back to extra.
                "severity": rng.choice(SEVERITIES + ["verbose"]),
                "message": f"event {i}",
                "hostname": f"node{rng.randint(1, 9999):04d}",
                "pid": rng.choice([rng.randint(1, 65535), str(rng.randint(1, 65535))]),
                "duration": round(rng.uniform(0, 5), 4),
                "success": rng.choice([True, False, "true", "f", 1, 0]),
                "context": {"request_id": rng.randint(1, 1_000_000)},
                "meta": {"env": rng.choice(["production", "staging"])},
            }
            f.write(json.dumps(record) + "\n")


@app.command()
def main(
    rows: int = typer.Option(1_000, "--rows", "-r", help="Number of records to generate."),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    output: Path = typer.Option(
        Path("records.ndjson"), "--output", "-o", help="NDJSON output path."
    ),
    load: bool = typer.Option(False, "--load", help="Also write the records to Postgres."),
) -> None:
    """
    Generate synthetic records and optionally write them with pgflex.
    """
    start = time.perf_counter()
    output.parent.mkdir(parents=True, exist_ok=True)
    typer.echo(f"Generating {rows:,} records -> {output} (seed={seed})")
    _generate_records(output, rows=rows, seed=seed)
    typer.echo(f"Generation completed in {time.perf_counter() - start:.2f}s")

    if not load:
        return

    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    written = 0
    with PostgresFlexWriter(settings) as writer, output.open("r", encoding="utf-8") as f:
        for batch in batched(read_rows(f, "time"), settings.batch_size):
            result = writer.write(batch)
            if result["status"] != "ok":
                typer.echo(f"Batch not written: {result.get('error')}", err=True)
                raise typer.Exit(code=1)
            written += result["rows"]
    typer.echo(f"Wrote {written:,} records into {settings.table}.")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
