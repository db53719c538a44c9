"""US state reference data and lookup."""

from __future__ import annotations

import structlog

from storedirectory.models import StateRow
from storedirectory.storage import StorageClient

logger = structlog.get_logger(__name__)

# (name, two-letter code)
US_STATES: list[tuple[str, str]] = [
    ("Alabama", "AL"),
    ("Alaska", "AK"),
    ("Arizona", "AZ"),
    ("Arkansas", "AR"),
    ("California", "CA"),
    ("Colorado", "CO"),
    ("Connecticut", "CT"),
    ("Delaware", "DE"),
    ("Florida", "FL"),
    ("Georgia", "GA"),
    ("Hawaii", "HI"),
    ("Idaho", "ID"),
    ("Illinois", "IL"),
    ("Indiana", "IN"),
    ("Iowa", "IA"),
    ("Kansas", "KS"),
    ("Kentucky", "KY"),
    ("Louisiana", "LA"),
    ("Maine", "ME"),
    ("Maryland", "MD"),
    ("Massachusetts", "MA"),
    ("Michigan", "MI"),
    ("Minnesota", "MN"),
    ("Mississippi", "MS"),
    ("Missouri", "MO"),
    ("Montana", "MT"),
    ("Nebraska", "NE"),
    ("Nevada", "NV"),
    ("New Hampshire", "NH"),
    ("New Jersey", "NJ"),
    ("New Mexico", "NM"),
    ("New York", "NY"),
    ("North Carolina", "NC"),
    ("North Dakota", "ND"),
    ("Ohio", "OH"),
    ("Oklahoma", "OK"),
    ("Oregon", "OR"),
    ("Pennsylvania", "PA"),
    ("Rhode Island", "RI"),
    ("South Carolina", "SC"),
    ("South Dakota", "SD"),
    ("Tennessee", "TN"),
    ("Texas", "TX"),
    ("Utah", "UT"),
    ("Vermont", "VT"),
    ("Virginia", "VA"),
    ("Washington", "WA"),
    ("West Virginia", "WV"),
    ("Wisconsin", "WI"),
    ("Wyoming", "WY"),
]


def _slug(name: str) -> str:
    return name.lower().replace(" ", "-")


_SLUG_BY_NAME = {name.lower(): _slug(name) for name, _ in US_STATES}
_SLUG_BY_CODE = {code.lower(): _slug(name) for name, code in US_STATES}


def state_slug_for(raw: str | None) -> str | None:
    """Map a full state name or two-letter code to its slug. ``None`` if unknown."""
    if not raw:
        return None
    key = " ".join(raw.split()).lower()
    if len(key) == 2:
        return _SLUG_BY_CODE.get(key)
    return _SLUG_BY_NAME.get(key)


def lookup_state(storage: StorageClient, raw: str | None) -> StateRow | None:
    """Resolve *raw* (name or code) to the stored state row."""
    slug = state_slug_for(raw)
    if slug is None:
        return None
    return storage.get(StateRow, slug=slug)


def seed_states(storage: StorageClient) -> int:
    """Idempotently insert every US state. Returns the number of new rows."""
    created = 0
    for name, code in US_STATES:
        result = storage.upsert_on_conflict(
            StateRow,
            {"name": name, "slug": _slug(name), "code": code.lower()},
            conflict=("slug",),
        )
        created += int(result.inserted)
    logger.info("states_seeded", created=created, total=len(US_STATES))
    return created


def state_name_for(raw: str | None) -> str | None:
    """Full state name for a name or two-letter code. ``None`` if unknown."""
    slug = state_slug_for(raw)
    if slug is None:
        return None
    return next(name for name, _ in US_STATES if _slug(name) == slug)
