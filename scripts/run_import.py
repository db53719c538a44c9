#!/usr/bin/env python3
"""CLI script to import stores from one source through the ingestion boundary."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

import structlog
import typer

from storedirectory.config import get_settings
from storedirectory.errors import ConfigurationError, DirectoryError
from storedirectory.ingestion import BatchResult
from storedirectory.ingestion.sources import load_records
from storedirectory.ingestion.sources.apify import CategoryFilter, ingest_apify_places
from storedirectory.ingestion.sources.canonical import ingest_canonical_places
from storedirectory.ingestion.sources.submissions import ingest_submissions
from storedirectory.storage import open_storage

logger = structlog.get_logger(__name__)
app = typer.Typer()


class Source(str, Enum):
    APIFY = "apify"
    CANONICAL = "canonical"
    SUBMISSION = "submission"


def print_summary(result: BatchResult, source: Source, batch_id: str) -> None:
    mode = "DRY RUN" if result.dry_run else "LIVE"
    typer.echo(f"Import summary ({source.value}, batch {batch_id}, {mode})")
    typer.echo(f"  created:  {result.created}")
    typer.echo(f"  updated:  {result.updated}")
    typer.echo(f"  skipped:  {result.skipped}")
    typer.echo(f"  errors:   {result.errors}")
    if result.excluded:
        typer.echo(f"  excluded: {result.excluded} (below confidence threshold)")
    for reason, count in sorted(result.skip_reasons.items()):
        typer.echo(f"    {reason}: {count}")


@app.command()
def main(
    source: Source = typer.Argument(..., help="Record source: apify, canonical or submission"),
    batch_id: str = typer.Option(..., "--batch-id", help="Batch id for the audit trail"),
    file: Path | None = typer.Option(None, "--file", help="JSON array of records (apify, canonical)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report what would happen without writing"),
    confidence: float | None = typer.Option(
        None, "--confidence", min=0.0, max=1.0, help="Minimum confidence for canonical records"
    ),
    submission_ids: list[str] | None = typer.Option(
        None, "--submission-id", help="Approved submission id (repeatable)"
    ),
    actor: str | None = typer.Option(None, "--actor", help="Who initiated the import"),
) -> None:
    """Import one batch of stores. Exits 1 if any record failed."""
    settings = get_settings()

    try:
        records = None
        if source is Source.SUBMISSION:
            if not submission_ids:
                raise ConfigurationError("--submission-id is required for submission imports")
        else:
            if file is None:
                raise ConfigurationError(f"--file is required for {source.value} imports")
            records = load_records(file)
        storage = open_storage(settings)
    except DirectoryError as exc:
        logger.error("import_setup_failed", source=source.value, error=str(exc))
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    try:
        if source is Source.APIFY:
            result = ingest_apify_places(
                storage,
                records,
                batch_id=batch_id,
                actor=actor or "import-apify",
                source_file=str(file),
                dry_run=dry_run,
                category_filter=CategoryFilter.from_settings(settings),
            )
        elif source is Source.CANONICAL:
            result = ingest_canonical_places(
                storage,
                records,
                batch_id=batch_id,
                actor=actor or "import-canonical",
                threshold=settings.confidence_threshold if confidence is None else confidence,
                dry_run=dry_run,
            )
        else:
            result = ingest_submissions(
                storage,
                submission_ids,
                batch_id=batch_id,
                actor=actor or "admin",
                dry_run=dry_run,
            )
    finally:
        storage.close()

    print_summary(result, source, batch_id)
    raise typer.Exit(0 if result.ok else 1)


if __name__ == "__main__":
    app()
