from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger

from .config import get_settings
from .dlq import DeadLetterQueue
from .errors import ImportPipelineError
from .factory import build_orchestrator
from .models import ImportRequest, ImportResult
from .utils import generate_id, load_items

app = typer.Typer(help="Bulk record import pipeline CLI")


async def _run_import(request: ImportRequest) -> ImportResult:
    orchestrator = build_orchestrator(get_settings())
    try:
        return await orchestrator.run(request)
    finally:
        await orchestrator.writer.backend.aclose()


@app.command("run")
def run(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON array or NDJSON file"),
    table: str = typer.Option(..., "--table", help="Target table (must be allow-listed)"),
    batch_id: Optional[str] = typer.Option(None, "--batch-id", help="Correlation label"),
    trace_id: Optional[str] = typer.Option(None, "--trace-id", help="Tracing id to propagate"),
    import_id: Optional[str] = typer.Option(None, "--import-id", help="Reuse an import id"),
):
    """Import the records in FILE into TABLE."""
    try:
        items = load_items(file)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read {file}: {e}")
        sys.exit(1)

    request = ImportRequest(
        table=table,
        items=items,
        batch_id=batch_id or file.stem,
        trace_id=trace_id or generate_id(),
        import_id=import_id,
    )
    try:
        result = asyncio.run(_run_import(request))
    except ImportPipelineError as e:
        logger.error(f"Import failed: {e}")
        sys.exit(1)

    typer.echo(json.dumps(result.model_dump(), indent=2))


@app.command("replay-dlq")
def replay_dlq(
    path: Path = typer.Argument(..., help="Dead-letter NDJSON file"),
    max_records: int = typer.Option(100, "--max-records", help="Replay at most this many records"),
):
    """Resubmit dead-lettered records, one new import run per record."""
    records = asyncio.run(DeadLetterQueue(path, mkdirs=False).replay(max_records))
    if not records:
        logger.info(f"No dead-letter records in {path}")
        return

    failed = 0
    for rec in records:
        meta = rec.metadata
        request = ImportRequest(
            table=meta.get("table", ""),
            items=rec.items,
            batch_id=meta.get("batchId") or generate_id(),
            trace_id=generate_id(),
            import_id=meta.get("importId"),
        )
        try:
            result = asyncio.run(_run_import(request))
            typer.echo(json.dumps(result.model_dump()))
        except ImportPipelineError as e:
            failed += 1
            logger.error(f"Replay of batch {request.batch_id} failed: {e}")

    if failed:
        logger.error(f"{failed}/{len(records)} dead-letter records failed again")
        sys.exit(1)
    logger.success(f"Replayed {len(records)} dead-letter records")


@app.command("show-config")
def show_config():
    """Print the effective settings."""
    settings = get_settings()
    data = settings.model_dump()
    data["allowed_tables"] = sorted(settings.allowed_tables)
    data["metrics_namespace"] = settings.metrics_namespace
    if data.get("POSTGRES_DSN"):
        data["POSTGRES_DSN"] = "***"
    typer.echo(json.dumps(data, indent=2, default=str))


if __name__ == "__main__":
    app()
