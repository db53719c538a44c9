"""Shared fixtures: an in-memory directory with the US states seeded."""

from __future__ import annotations

import itertools
from datetime import UTC, datetime

import pytest

from storedirectory.ingestion.cities import ensure_city
from storedirectory.ingestion.normalize import hash_address
from storedirectory.ingestion.states import lookup_state, seed_states
from storedirectory.models import ALL_TABLES, StateRow, StoreRow
from storedirectory.storage import MemoryStorage

MAIN_ST = "123 Main St, San Diego, California"


@pytest.fixture()
def storage() -> MemoryStorage:
    store = MemoryStorage()
    seed_states(store)
    return store


@pytest.fixture()
def california(storage) -> StateRow:
    return lookup_state(storage, "California")


@pytest.fixture()
def make_store(storage, california):
    """Insert a store row directly, bypassing the ingestion boundary.

    Defaults put every store at the same San Diego address, one day apart,
    so consecutive calls form a duplicate group.
    """
    city = ensure_city(storage, california, "San Diego")
    counter = itertools.count(1)

    def _make(**overrides) -> StoreRow:
        n = next(counter)
        address = overrides.pop("address", MAIN_ST)
        values = {
            "source_id": f"src-{n}",
            "name": f"Store {n}",
            "slug": f"store-{n}-san-diego",
            "address": address,
            "address_hash": hash_address(address),
            "city_id": city.id,
            "state_id": california.id,
            "is_verified": True,
            "is_approved": True,
            "batch_id": "fixture",
            "created_at": datetime(2024, 1, n, tzinfo=UTC),
        }
        values.update(overrides)
        return storage.insert(StoreRow, values)

    return _make


@pytest.fixture()
def row_counts(storage):
    """Return a function snapshotting the row count of every table."""

    def _counts() -> dict[str, int]:
        return {model.__table__: storage.count(model) for model in ALL_TABLES}

    return _counts


def apify_record(place_id: str | None = "ChIJ-1", **overrides) -> dict:
    """A crawler record in the shape the bulk importer receives."""
    record = {
        "title": "Appliance Outlet",
        "street": "123 Main St",
        "city": "San Diego",
        "state": "California",
        "phone": "(858) 555-1234",
        "website": "applianceoutlet.example",
        "totalScore": 4.5,
        "reviewsCount": 127,
        "categoryName": "Appliance store",
        "url": (
            "https://www.google.com/maps/search/?api=1&query=Appliance%20Outlet"
            + (f"&query_place_id={place_id}" if place_id else "")
        ),
    }
    record.update(overrides)
    return record


def canonical_record(place_id: str | None = "ChIJ-c1", confidence: float = 0.9, **overrides) -> dict:
    record = {
        "name": "Scratch & Dent Depot",
        "address": "500 Broadway, San Diego, CA 92101",
        "city": "San Diego",
        "state": "CA",
        "lat": 32.7157,
        "lng": -117.1611,
        "phone": "619-555-0100",
        "categories": ["Appliance store"],
        "externalIds": {"placeId": place_id} if place_id else {},
        "confidence": confidence,
    }
    record.update(overrides)
    return record
