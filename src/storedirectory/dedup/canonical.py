"""Canonical-record selection for a duplicate group.

Priority, each criterion breaking ties of the ones before it:
  1. Claimed stores (a human owner is authoritative).
  2. Stores with an external place id (richer provenance).
  3. Verified stores.
  4. Earliest creation (the most established URL).
  5. Lowest id, so the order is total.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from storedirectory.models import StoreRow

_NEVER = datetime.max.replace(tzinfo=UTC)


def _created(store: StoreRow) -> datetime:
    if store.created_at is None:
        return _NEVER
    if store.created_at.tzinfo is None:
        return store.created_at.replace(tzinfo=UTC)
    return store.created_at


def canonical_sort_key(store: StoreRow) -> tuple:
    return (
        store.claimed_by is None,
        not store.google_place_id,
        not store.is_verified,
        _created(store),
        store.id,
    )


def select_canonical(stores: Iterable[StoreRow]) -> StoreRow:
    """Return the store that survives a merge. Pure; independent of input order.

    Raises:
        ValueError: If *stores* is empty.
    """
    members = list(stores)
    if not members:
        msg = "cannot select a canonical store from an empty group"
        raise ValueError(msg)
    return min(members, key=canonical_sort_key)
