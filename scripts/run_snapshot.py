#!/usr/bin/env python3
"""CLI script to write a rollback snapshot of the store table. Read-only."""

from __future__ import annotations

from pathlib import Path

import structlog
import typer

from storedirectory.config import get_settings
from storedirectory.errors import DirectoryError
from storedirectory.snapshot import write_snapshot
from storedirectory.storage import open_storage

logger = structlog.get_logger(__name__)
app = typer.Typer()


@app.command()
def main(
    output_dir: Path | None = typer.Option(
        None, "--output-dir", help="Directory for the snapshot file (default SD_SNAPSHOT_DIR)"
    ),
) -> None:
    """Dump every store, archived ones included, to a timestamped JSON file."""
    settings = get_settings()

    try:
        storage = open_storage(settings)
        try:
            path, stats = write_snapshot(
                storage, output_dir or settings.snapshot_dir, page_size=settings.page_size
            )
        finally:
            storage.close()
    except (DirectoryError, OSError) as exc:
        logger.error("snapshot_failed", error=str(exc))
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    typer.echo(f"Snapshot written to {path}")
    for key, value in stats.items():
        typer.echo(f"  {key}: {value}")


if __name__ == "__main__":
    app()
