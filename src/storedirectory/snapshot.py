"""Safety snapshot of the store table for manual rollback.

Reads every store (archived rows included) and writes them, with summary
statistics, to a timestamped JSON file.  Nothing is ever written back to
storage, and there is no automated restore.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from storedirectory.models import StoreRow
from storedirectory.storage import StorageClient, iter_pages

logger = structlog.get_logger(__name__)

SNAPSHOT_PURPOSE = "store table safety snapshot"


def snapshot_stats(stores: Sequence[StoreRow]) -> dict[str, int]:
    """Summary counts recorded alongside the snapshot."""
    return {
        "total_stores": len(stores),
        "active_stores": sum(1 for s in stores if not s.is_archived),
        "archived_stores": sum(1 for s in stores if s.is_archived),
        "with_address_hash": sum(1 for s in stores if s.address_hash),
        "without_address_hash": sum(1 for s in stores if not s.address_hash),
        "with_phone": sum(1 for s in stores if s.phone_normalized),
        "without_phone": sum(1 for s in stores if not s.phone_normalized),
        "verified_stores": sum(1 for s in stores if s.is_verified),
        "claimed_stores": sum(1 for s in stores if s.claimed_by),
    }


def build_snapshot(storage: StorageClient, page_size: int = 1000) -> dict[str, Any]:
    stores = list(iter_pages(storage, StoreRow, page_size=page_size))
    return {
        "metadata": {
            "created_at": datetime.now(UTC).isoformat(),
            "purpose": SNAPSHOT_PURPOSE,
            "stats": snapshot_stats(stores),
        },
        "stores": [s.model_dump(mode="json") for s in stores],
    }


def write_snapshot(
    storage: StorageClient,
    output_dir: str | Path,
    page_size: int = 1000,
) -> tuple[Path, dict[str, int]]:
    """Write ``stores-snapshot-<timestamp>.json`` under *output_dir*.

    Returns
    -------
    tuple
        ``(path, stats)`` for the written file.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    snapshot = build_snapshot(storage, page_size=page_size)
    timestamp = datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    path = out / f"stores-snapshot-{timestamp}.json"
    path.write_text(json.dumps(snapshot, indent=2))

    stats = snapshot["metadata"]["stats"]
    logger.info("snapshot_written", path=str(path), bytes=path.stat().st_size, **stats)
    return path, stats
