"""Bulk place-data import (Apify Google Places crawler exports).

Records look like::

    {
        "title": "Store Name",
        "street": "123 Main St",
        "city": "San Diego",
        "state": "California",
        "phone": "(858) 555-1234",
        "website": "https://...",
        "totalScore": 4.5,
        "reviewsCount": 127,
        "categoryName": "Appliance store",
        "url": "https://www.google.com/maps/search/?api=1&query=...&query_place_id=ChIJ..."
    }

The place id embedded in ``url`` is the store's external identity.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, urlparse

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from storedirectory.config import DEFAULT_EXCLUDE_CATEGORIES, DEFAULT_INCLUDE_CATEGORIES, Settings
from storedirectory.ingestion.boundary import BatchResult, CandidateRecord, SkipReason, ingest
from storedirectory.ingestion.normalize import build_address
from storedirectory.ingestion.states import state_name_for
from storedirectory.models import IngestionOperation
from storedirectory.storage import StorageClient

logger = structlog.get_logger(__name__)

SOURCE = "apify"

_PLACE_ID_PATTERN = re.compile(r"query_place_id=([^&]+)")


class ApifyPlace(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    street: str | None = None
    city: str | None = None
    state: str | None = None  # full state name
    phone: str | None = None
    website: str | None = None
    rating: float | None = Field(None, validation_alias=AliasChoices("rating", "totalScore"))
    review_count: int | None = Field(
        None, validation_alias=AliasChoices("review_count", "reviewCount", "reviewsCount")
    )
    category_name: str | None = Field(
        None, validation_alias=AliasChoices("category_name", "categoryName")
    )
    url: str | None = None


# ---------------------------------------------------------------------------
# Category filtering
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CategoryFilter:
    """Allow/deny lists of business categories.

    Deny wins over allow.  When neither list matches, the category is kept
    if it contains *keyword*; a store wrongly kept can be archived later,
    a store wrongly dropped never reaches the directory.
    """

    include: Sequence[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE_CATEGORIES))
    exclude: Sequence[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_CATEGORIES))
    keyword: str = "appliance"

    @classmethod
    def from_settings(cls, settings: Settings) -> CategoryFilter:
        return cls(
            include=list(settings.include_categories),
            exclude=list(settings.exclude_categories),
            keyword=settings.category_keyword,
        )

    def is_relevant(self, category_name: str | None) -> bool:
        if not category_name:
            return False

        category = category_name.lower()
        if any(term.lower() in category for term in self.exclude):
            return False
        if any(term.lower() in category for term in self.include):
            return True
        return self.keyword.lower() in category


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def extract_place_id(url: str | None) -> str | None:
    """Pull the ``query_place_id`` parameter out of a Google Maps URL."""
    if not url:
        return None

    try:
        values = parse_qs(urlparse(url).query).get("query_place_id")
    except ValueError:
        values = None
    if values and values[0].strip():
        return values[0].strip()

    match = _PLACE_ID_PATTERN.search(url)
    return match.group(1) if match else None


def to_candidates(
    records: Iterable[dict[str, Any]],
    result: BatchResult,
    category_filter: CategoryFilter | None = None,
) -> list[CandidateRecord]:
    """Convert raw crawler records to candidates, recording adapter-level skips on *result*."""
    category_filter = category_filter or CategoryFilter()
    candidates: list[CandidateRecord] = []

    for raw in records:
        try:
            place = ApifyPlace.model_validate(raw)
        except ValidationError as exc:
            result.error(str(raw.get("title") or "(unnamed)"), SkipReason.INVALID_RECORD, str(exc))
            continue

        place_id = extract_place_id(place.url)
        candidate = CandidateRecord(
            source_id=place_id,
            google_place_id=place_id,
            name=place.title,
            address=build_address(place.street, place.city, state_name_for(place.state) or place.state),
            city=place.city,
            state=place.state,
            source=SOURCE,
            phone=place.phone,
            website=place.website,
            rating=place.rating,
            review_count=place.review_count,
        )

        if not category_filter.is_relevant(place.category_name):
            result.skip(
                candidate.label,
                SkipReason.IRRELEVANT_CATEGORY,
                f"category {place.category_name!r}",
            )
            continue
        if candidate.source_id is None:
            result.skip(candidate.label, SkipReason.MISSING_DEDUP_ID, "no place id in url")
            continue

        candidates.append(candidate)

    return candidates


# ---------------------------------------------------------------------------
# Main ingestion function
# ---------------------------------------------------------------------------

def ingest_apify_places(
    storage: StorageClient,
    records: Iterable[dict[str, Any]],
    *,
    batch_id: str,
    actor: str = "import-apify",
    source_file: str | None = None,
    dry_run: bool = False,
    category_filter: CategoryFilter | None = None,
) -> BatchResult:
    """Import crawler records through the ingestion boundary.

    Existing stores (same place id) are updated in place, so re-importing a
    file never creates new rows.
    """
    result = BatchResult(dry_run=dry_run)
    candidates = to_candidates(records, result, category_filter)
    logger.info(
        "apify_records_prepared",
        candidates=len(candidates),
        skipped=result.skipped,
        file=source_file,
    )
    return ingest(
        storage,
        candidates,
        batch_id=batch_id,
        actor=actor,
        operation=IngestionOperation.APIFY_IMPORT,
        dry_run=dry_run,
        result=result,
        details={"file": source_file} if source_file else None,
    )
