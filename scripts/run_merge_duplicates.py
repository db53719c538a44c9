#!/usr/bin/env python3
"""CLI script to merge stores that share an address dedup key.

Dry run unless ``--execute`` is given.  Live runs wait ``--delay`` seconds
before the first write so the operator can abort with Ctrl-C.
"""

from __future__ import annotations

import time

import structlog
import typer

from storedirectory.config import MIN_MERGE_DELAY_SECONDS, get_settings
from storedirectory.dedup import MergeRunStats, run_merge
from storedirectory.errors import DirectoryError
from storedirectory.storage import open_storage

logger = structlog.get_logger(__name__)
app = typer.Typer()


def print_summary(stats: MergeRunStats) -> None:
    mode = "DRY RUN" if stats.dry_run else "LIVE"
    typer.echo(f"Merge summary ({mode})")
    for outcome in stats.outcomes:
        if outcome.skipped:
            typer.echo(f"  group {outcome.group_id}: skipped ({outcome.skip_reason})")
            continue
        typer.echo(
            f"  group {outcome.group_id}: keep {outcome.canonical_id}, "
            f"archive {outcome.archived_ids or '-'}, "
            f"claims {outcome.claims_repointed}, events {outcome.events_repointed}, "
            f"redirects {outcome.redirects_created}, errors {outcome.errors}"
        )
    typer.echo(f"  groups found:     {stats.groups_found}")
    typer.echo(f"  groups merged:    {stats.groups_processed}")
    typer.echo(f"  groups skipped:   {stats.groups_skipped}")
    typer.echo(f"  stores archived:  {stats.stores_archived}")
    typer.echo(f"  errors:           {stats.errors}")


@app.command()
def main(
    execute: bool = typer.Option(False, "--execute", help="Actually write (default is a dry run)"),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Report only; the default, and wins over --execute"
    ),
    include_risky: bool = typer.Option(
        False, "--include-risky", help="Also merge groups with conflicting place ids"
    ),
    group: int | None = typer.Option(None, "--group", help="Process only this group number"),
    delay: float | None = typer.Option(
        None,
        "--delay",
        min=MIN_MERGE_DELAY_SECONDS,
        help="Seconds to wait before the first write (at least 1)",
    ),
) -> None:
    """Collapse duplicate stores into their canonical record."""
    settings = get_settings()
    live = execute and not dry_run

    try:
        storage = open_storage(settings)
    except DirectoryError as exc:
        logger.error("merge_setup_failed", error=str(exc))
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    try:
        if live:
            wait = settings.merge_delay_seconds if delay is None else delay
            typer.echo(f"LIVE merge starts in {wait:g}s. Press Ctrl-C to abort.")
            time.sleep(wait)
        stats = run_merge(
            storage,
            dry_run=not live,
            include_risky=include_risky,
            group_id=group,
            page_size=settings.page_size,
        )
    except DirectoryError as exc:
        logger.error("merge_failed", error=str(exc))
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc
    finally:
        storage.close()

    print_summary(stats)
    raise typer.Exit(1 if stats.errors else 0)


if __name__ == "__main__":
    app()
