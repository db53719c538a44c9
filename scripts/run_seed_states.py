#!/usr/bin/env python3
"""CLI script to seed the states table. Safe to re-run."""

from __future__ import annotations

import structlog
import typer

from storedirectory.config import get_settings
from storedirectory.errors import DirectoryError
from storedirectory.ingestion.states import US_STATES, seed_states
from storedirectory.storage import open_storage

logger = structlog.get_logger(__name__)
app = typer.Typer()


@app.command()
def main() -> None:
    """Insert any missing US states."""
    settings = get_settings()

    try:
        storage = open_storage(settings)
        try:
            created = seed_states(storage)
        finally:
            storage.close()
    except DirectoryError as exc:
        logger.error("seed_states_failed", error=str(exc))
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    typer.echo(f"States seeded: {created} new, {len(US_STATES)} total")


if __name__ == "__main__":
    app()
