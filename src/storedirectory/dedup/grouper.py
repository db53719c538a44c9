"""Duplicate discovery: group active stores by dedup key."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from storedirectory.models import StoreRow
from storedirectory.storage import StorageClient, iter_pages

logger = structlog.get_logger(__name__)


@dataclass
class DuplicateGroup:
    """Active stores sharing one dedup key. Computed per run, never persisted."""

    group_id: int  # 1-based, in discovery order
    dedup_key: str
    stores: list[StoreRow]
    is_risky: bool = False
    risk_reason: str | None = None

    @property
    def store_ids(self) -> list[int]:
        return [s.id for s in self.stores]


def is_group_risky(stores: Iterable[StoreRow]) -> tuple[bool, str | None]:
    """A group is risky when its members carry more than one distinct place id.

    Same address with different external identities can be two real
    businesses sharing a building (e.g. strip-mall units).
    """
    place_ids = sorted({s.google_place_id for s in stores if s.google_place_id})
    if len(place_ids) > 1:
        return True, f"multiple place ids: {', '.join(place_ids)}"
    return False, None


def group_by_dedup_key(stores: Iterable[StoreRow]) -> list[DuplicateGroup]:
    """Group *stores* by ``address_hash`` and keep groups with two or more members.

    Archived stores and stores without a dedup key never group.  Groups are
    numbered in order of first appearance in *stores*.
    """
    by_key: dict[str, list[StoreRow]] = {}
    for store in stores:
        if store.is_archived or not store.address_hash:
            continue
        by_key.setdefault(store.address_hash, []).append(store)

    groups: list[DuplicateGroup] = []
    for key, members in by_key.items():
        if len(members) < 2:
            continue
        risky, reason = is_group_risky(members)
        groups.append(
            DuplicateGroup(
                group_id=len(groups) + 1,
                dedup_key=key,
                stores=members,
                is_risky=risky,
                risk_reason=reason,
            )
        )
    return groups


def find_duplicate_groups(storage: StorageClient, page_size: int = 1000) -> list[DuplicateGroup]:
    """Load every active store (ordered by id) and return its duplicate groups."""
    stores = list(iter_pages(storage, StoreRow, page_size=page_size, is_archived=False))
    groups = group_by_dedup_key(stores)
    logger.info(
        "duplicate_groups_found",
        active_stores=len(stores),
        groups=len(groups),
        risky=sum(1 for g in groups if g.is_risky),
    )
    return groups
