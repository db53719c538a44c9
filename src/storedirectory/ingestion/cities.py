"""Idempotent city resolution.

``ensure_city`` is the only way cities are created.  It relies on the unique
``(state_id, name_key)`` constraint: the insert either creates the row or
returns the one that already exists, so two batches resolving the same city
at the same time converge on a single row.
"""

from __future__ import annotations

import structlog

from storedirectory.ingestion.normalize import normalize_city_name, slugify
from storedirectory.models import CityRow, StateRow
from storedirectory.storage import StorageClient

logger = structlog.get_logger(__name__)


def ensure_city(
    storage: StorageClient,
    state: StateRow,
    city_name: str,
    lat: float | None = None,
    lng: float | None = None,
) -> CityRow:
    """Return the city named *city_name* in *state*, creating it if absent.

    Lookup is case-insensitive.  Coordinates are only used when the city is
    created; an existing city keeps its centroid.

    Raises:
        ValueError: If *city_name* is blank.
    """
    name = " ".join(city_name.split()) if city_name else ""
    if not name:
        msg = "city name must not be blank"
        raise ValueError(msg)

    result = storage.upsert_on_conflict(
        CityRow,
        {
            "name": name,
            "name_key": normalize_city_name(name),
            "slug": slugify(name),
            "state_id": state.id,
            "state_code": state.code.lower(),
            "lat": lat,
            "lng": lng,
        },
        conflict=("state_id", "name_key"),
    )
    if result.inserted:
        logger.info("city_created", city=name, state=state.code, city_id=result.row.id)
    return result.row


def find_city(storage: StorageClient, state: StateRow, city_name: str) -> CityRow | None:
    """Read-only counterpart of :func:`ensure_city`, used by dry runs."""
    return storage.get(CityRow, state_id=state.id, name_key=normalize_city_name(city_name))
