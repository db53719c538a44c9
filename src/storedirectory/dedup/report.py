"""Read-only duplicate detection report.

Address-hash groups are the ones ``run_merge`` acts on, numbered the same
way, so a group number from this report can be passed to
``run_merge_duplicates.py --group``.  Phone and name+city groups are
informational only and are never merged automatically.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from storedirectory.dedup.canonical import select_canonical
from storedirectory.dedup.grouper import DuplicateGroup, group_by_dedup_key
from storedirectory.models import CityRow, StateRow, StoreRow
from storedirectory.storage import StorageClient, iter_pages

logger = structlog.get_logger(__name__)

ADDRESS_CSV = "address-duplicates.csv"
PHONE_CSV = "phone-duplicates.csv"
NAME_CITY_CSV = "name-city-duplicates.csv"


@dataclass
class DetectionReport:
    active_stores: int = 0
    address_groups: list[DuplicateGroup] = field(default_factory=list)
    phone_groups: list[tuple[str, list[StoreRow]]] = field(default_factory=list)
    name_city_groups: list[tuple[str, list[StoreRow]]] = field(default_factory=list)
    city_names: dict[int, str] = field(default_factory=dict)
    state_names: dict[int, str] = field(default_factory=dict)

    def as_dict(self) -> dict[str, int]:
        return {
            "active_stores": self.active_stores,
            "address_groups": len(self.address_groups),
            "address_group_stores": sum(len(g.stores) for g in self.address_groups),
            "risky_address_groups": sum(1 for g in self.address_groups if g.is_risky),
            "phone_groups": len(self.phone_groups),
            "name_city_groups": len(self.name_city_groups),
        }


def _shared(stores: list[StoreRow], key_of) -> list[tuple[str, list[StoreRow]]]:
    by_key: dict[str, list[StoreRow]] = {}
    for store in stores:
        key = key_of(store)
        if key:
            by_key.setdefault(key, []).append(store)
    return [(key, members) for key, members in by_key.items() if len(members) > 1]


def detect_duplicates(storage: StorageClient, page_size: int = 1000) -> DetectionReport:
    """Group active stores by address hash, normalized phone, and name within a city."""
    stores = list(iter_pages(storage, StoreRow, page_size=page_size, is_archived=False))
    cities = {c.id: c.name for c in iter_pages(storage, CityRow, page_size=page_size)}

    report = DetectionReport(
        active_stores=len(stores),
        address_groups=group_by_dedup_key(stores),
        phone_groups=_shared(stores, lambda s: s.phone_normalized),
        name_city_groups=_shared(
            stores, lambda s: f"{' '.join(s.name.split()).casefold()}|{s.city_id}"
        ),
        city_names=cities,
        state_names={s.id: s.name for s in storage.select(StateRow)},
    )
    logger.info("duplicate_detection_complete", **report.as_dict())
    return report


def export_report(report: DetectionReport, output_dir: str | Path) -> list[Path]:
    """Write the three group listings as CSV files under *output_dir*.

    Returns
    -------
    list[Path]
        Paths of the address, phone and name+city files, in that order.
    """
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)

    def place(store: StoreRow) -> dict[str, str]:
        return {
            "city": report.city_names.get(store.city_id, ""),
            "state": report.state_names.get(store.state_id, ""),
        }

    address_rows = []
    for group in report.address_groups:
        canonical = select_canonical(group.stores)
        for store in group.stores:
            address_rows.append({
                "group_id": group.group_id,
                "hash": group.dedup_key,
                "store_id": store.id,
                "name": store.name,
                "address": store.address,
                **place(store),
                "claimed": "Yes" if store.claimed_by else "No",
                "google_place_id": store.google_place_id or "",
                "is_canonical": "Yes" if store.id == canonical.id else "No",
                "risky": "Yes" if group.is_risky else "No",
            })

    phone_rows = [
        {
            "group_id": n,
            "phone": phone,
            "store_id": store.id,
            "name": store.name,
            "address": store.address,
            **place(store),
        }
        for n, (phone, members) in enumerate(report.phone_groups, start=1)
        for store in members
    ]

    name_city_rows = [
        {
            "group_id": n,
            "name": store.name,
            "city": report.city_names.get(store.city_id, ""),
            "store_id": store.id,
            "address": store.address,
            "claimed": "Yes" if store.claimed_by else "No",
        }
        for n, (_, members) in enumerate(report.name_city_groups, start=1)
        for store in members
    ]

    paths = []
    for name, fields, rows in (
        (ADDRESS_CSV, ["group_id", "hash", "store_id", "name", "address", "city", "state",
                       "claimed", "google_place_id", "is_canonical", "risky"], address_rows),
        (PHONE_CSV, ["group_id", "phone", "store_id", "name", "address", "city", "state"],
         phone_rows),
        (NAME_CITY_CSV, ["group_id", "name", "city", "store_id", "address", "claimed"],
         name_city_rows),
    ):
        path = directory / name
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fields)
            writer.writeheader()
            writer.writerows(rows)
        paths.append(path)

    logger.info("duplicate_report_exported", output_dir=str(directory), files=len(paths))
    return paths
