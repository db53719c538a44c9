"""Post-import integrity checks.

Counts stores per batch and looks for the problems an import or merge can
leave behind: place ids shared by active stores, missing required fields,
cities without stores, unverified rows, and archived stores whose
``merged_into_store_id`` does not point at an active store.  Read-only.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from storedirectory.models import CityRow, StateRow, StoreRow
from storedirectory.storage import StorageClient, iter_pages


def _merge_violations(stores: Sequence[StoreRow]) -> int:
    by_id = {s.id: s for s in stores}
    violations = 0
    for store in stores:
        if store.merged_into_store_id is None:
            continue
        target = by_id.get(store.merged_into_store_id)
        if target is None or target.is_archived or not store.is_archived:
            violations += 1
    return violations


def compute_import_metrics(
    storage: StorageClient,
    batch_ids: Sequence[str] = (),
    page_size: int = 1000,
) -> dict:
    """Gather integrity metrics over the whole store table.

    Parameters
    ----------
    storage:
        Storage client.
    batch_ids:
        Batches to report individually.  The state distribution covers only
        these batches, or every store when none are given.

    Returns
    -------
    dict
        ``{"total_stores", "active_stores", "batch_counts",
          "duplicate_place_ids", "null_fields", "orphaned_cities",
          "unverified_stores", "merge_violations", "state_distribution"}``
    """
    stores = list(iter_pages(storage, StoreRow, page_size=page_size))
    cities = list(iter_pages(storage, CityRow, page_size=page_size))
    state_codes = {s.id: s.code.upper() for s in storage.select(StateRow)}

    batch_counts = {b: sum(1 for s in stores if s.batch_id == b) for b in batch_ids}

    # Archived duplicates keep their place id; only active stores must be unique.
    place_ids = Counter(s.google_place_id for s in stores if s.google_place_id and not s.is_archived)
    duplicate_place_ids = sum(n - 1 for n in place_ids.values() if n > 1)

    used_city_ids = {s.city_id for s in stores}
    orphaned_cities = sum(1 for c in cities if c.id not in used_city_ids)

    in_scope = [s for s in stores if s.batch_id in batch_counts] if batch_ids else stores
    distribution = Counter(state_codes.get(s.state_id, "unknown") for s in in_scope)

    return {
        "total_stores": len(stores),
        "active_stores": sum(1 for s in stores if not s.is_archived),
        "batch_counts": batch_counts,
        "duplicate_place_ids": duplicate_place_ids,
        "null_fields": {
            "name": sum(1 for s in stores if not s.name),
            "address": sum(1 for s in stores if not s.address),
            "address_hash": sum(1 for s in stores if not s.address_hash),
            "google_place_id": sum(1 for s in stores if not s.google_place_id),
        },
        "orphaned_cities": orphaned_cities,
        "unverified_stores": sum(1 for s in stores if not s.is_verified),
        "merge_violations": _merge_violations(stores),
        "state_distribution": dict(distribution.most_common()),
    }


def verification_passed(metrics: dict) -> bool:
    """True when none of the hard integrity checks failed."""
    return (
        metrics.get("duplicate_place_ids", 0) == 0
        and metrics.get("unverified_stores", 0) == 0
        and metrics.get("merge_violations", 0) == 0
        and metrics.get("null_fields", {}).get("name", 0) == 0
        and metrics.get("null_fields", {}).get("address", 0) == 0
    )


def generate_verification_report(metrics: dict, top_states: int = 10) -> str:
    """Format :func:`compute_import_metrics` output as a multi-line report."""
    lines = [
        "Import Verification Report",
        "=" * 40,
        "",
        f"Total stores:            {metrics.get('total_stores', 0)}",
        f"Active stores:           {metrics.get('active_stores', 0)}",
    ]

    batch_counts = metrics.get("batch_counts", {})
    if batch_counts:
        lines.append("")
        lines.append("Per batch:")
        for batch_id, count in batch_counts.items():
            lines.append(f"  {batch_id}: {count}")
        lines.append(f"  total: {sum(batch_counts.values())}")

    lines += [
        "",
        f"Duplicate place ids:     {metrics.get('duplicate_place_ids', 0)}",
        f"Unverified stores:       {metrics.get('unverified_stores', 0)}",
        f"Merge violations:        {metrics.get('merge_violations', 0)}",
        f"Orphaned cities:         {metrics.get('orphaned_cities', 0)}",
        "",
        "Missing values:",
    ]
    for column, count in metrics.get("null_fields", {}).items():
        lines.append(f"  {column}: {count}")

    distribution = list(metrics.get("state_distribution", {}).items())
    if distribution:
        lines.append("")
        lines.append("State distribution:")
        for code, count in distribution[:top_states]:
            lines.append(f"  {code}: {count}")
        if len(distribution) > top_states:
            lines.append(f"  ... and {len(distribution) - top_states} more states")

    if verification_passed(metrics):
        lines.append("\nResult: PASS")
    else:
        lines.append("\nResult: FAIL (see counts above)")

    return "\n".join(lines)
