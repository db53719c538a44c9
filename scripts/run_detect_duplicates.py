#!/usr/bin/env python3
"""CLI script to list duplicate store groups without changing anything.

The address group numbers printed here are the ones
``run_merge_duplicates.py --group`` accepts.
"""

from __future__ import annotations

from pathlib import Path

import structlog
import typer

from storedirectory.config import get_settings
from storedirectory.dedup import DetectionReport, detect_duplicates, export_report, select_canonical
from storedirectory.errors import DirectoryError
from storedirectory.storage import open_storage

logger = structlog.get_logger(__name__)
app = typer.Typer()


def print_report(report: DetectionReport, limit: int) -> None:
    typer.echo(f"Address hash duplicates: {len(report.address_groups)} groups")
    for group in report.address_groups[:limit]:
        canonical = select_canonical(group.stores)
        risky = f"  RISKY: {group.risk_reason}" if group.is_risky else ""
        typer.echo(f"  group {group.group_id} ({group.dedup_key}){risky}")
        for store in group.stores:
            marker = "*" if store.id == canonical.id else " "
            typer.echo(f"    {marker} [{store.id}] {store.name}, {store.address}")
    if len(report.address_groups) > limit:
        typer.echo(f"  ... and {len(report.address_groups) - limit} more groups")

    typer.echo(f"Phone duplicates: {len(report.phone_groups)} groups")
    for phone, members in report.phone_groups[:limit]:
        typer.echo(f"  {phone}: {', '.join(str(s.id) for s in members)}")

    typer.echo(f"Name+city duplicates: {len(report.name_city_groups)} groups")
    for _, members in report.name_city_groups[:limit]:
        typer.echo(f"  {members[0].name}: {', '.join(str(s.id) for s in members)}")

    typer.echo("Summary")
    for key, value in report.as_dict().items():
        typer.echo(f"  {key}: {value}")


@app.command()
def main(
    export: bool = typer.Option(False, "--export", help="Also write the groups to CSV files"),
    output_dir: Path | None = typer.Option(
        None, "--output-dir", help="Directory for CSV files (default SD_DEDUP_EXPORT_DIR)"
    ),
    limit: int = typer.Option(5, "--limit", min=0, help="Groups to print per section"),
) -> None:
    """Report stores sharing an address, a phone number, or a name within a city."""
    settings = get_settings()

    try:
        storage = open_storage(settings)
        try:
            report = detect_duplicates(storage, page_size=settings.page_size)
        finally:
            storage.close()
        paths = export_report(report, output_dir or settings.dedup_export_dir) if export else []
    except (DirectoryError, OSError) as exc:
        logger.error("detect_duplicates_failed", error=str(exc))
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    print_report(report, limit)
    for path in paths:
        typer.echo(f"Exported: {path}")


if __name__ == "__main__":
    app()
