#!/usr/bin/env python3
"""CLI script to check store-table integrity after an import or merge."""

from __future__ import annotations

import structlog
import typer

from storedirectory.config import get_settings
from storedirectory.errors import DirectoryError
from storedirectory.storage import open_storage
from storedirectory.verification import (
    compute_import_metrics,
    generate_verification_report,
    verification_passed,
)

logger = structlog.get_logger(__name__)
app = typer.Typer()


@app.command()
def main(
    batch_ids: list[str] | None = typer.Option(
        None, "--batch-id", help="Batch to count separately (repeatable)"
    ),
) -> None:
    """Print the verification report. Exits 1 when a hard check fails."""
    settings = get_settings()

    try:
        storage = open_storage(settings)
        try:
            metrics = compute_import_metrics(storage, batch_ids or (), page_size=settings.page_size)
        finally:
            storage.close()
    except DirectoryError as exc:
        logger.error("verification_failed", error=str(exc))
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    typer.echo(generate_verification_report(metrics))
    raise typer.Exit(0 if verification_passed(metrics) else 1)


if __name__ == "__main__":
    app()
