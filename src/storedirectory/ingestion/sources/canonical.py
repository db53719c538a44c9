"""Canonical-file import (staged output of the data-miner).

Records carry a confidence score; anything below the threshold is excluded
before the adapter looks at it.  Canonical imports never overwrite: a place
already in the directory is skipped as ``already_exists``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from storedirectory.ingestion.boundary import BatchResult, CandidateRecord, SkipReason, ingest
from storedirectory.ingestion.normalize import build_address
from storedirectory.ingestion.states import state_name_for, state_slug_for
from storedirectory.models import IngestionOperation
from storedirectory.storage import StorageClient

logger = structlog.get_logger(__name__)

SOURCE = "canonical"
DEFAULT_CONFIDENCE_THRESHOLD = 0.85

_ZIP_RE = re.compile(r"\s+\d{5}(?:-\d{4})?$")
_COUNTRY = frozenset({"US", "USA", "UNITED STATES"})


class ExternalIds(BaseModel):
    model_config = ConfigDict(extra="ignore")

    place_id: str | None = Field(
        None, validation_alias=AliasChoices("place_id", "placeId", "google_place_id")
    )


class CanonicalPlace(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None  # full name or two-letter code
    lat: float | None = None
    lng: float | None = None
    phone: str | None = None
    website: str | None = None
    categories: list[str] = Field(default_factory=list)
    external_ids: ExternalIds = Field(
        default_factory=ExternalIds,
        validation_alias=AliasChoices("external_ids", "externalIds"),
    )
    confidence: float = 0.0


def _confidence(raw: dict[str, Any]) -> float:
    try:
        return float(raw.get("confidence"))
    except (TypeError, ValueError):
        return 0.0


def street_of(address: str | None, city: str | None) -> str | None:
    """Strip the trailing ``city, ST 12345, USA`` segments from a one-line address."""
    if not address or not address.strip():
        return None
    parts = [p.strip() for p in address.split(",") if p.strip()]
    if len(parts) > 1 and parts[-1].upper() in _COUNTRY:
        parts.pop()
    if len(parts) > 1 and _ZIP_RE.fullmatch(" " + parts[-1]):
        parts.pop()
    if len(parts) > 1 and state_slug_for(_ZIP_RE.sub("", parts[-1])):
        parts.pop()
    if len(parts) > 1 and city and parts[-1].casefold() == " ".join(city.split()).casefold():
        parts.pop()
    return ", ".join(parts)


def filter_by_confidence(
    records: Iterable[dict[str, Any]],
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
) -> tuple[list[dict[str, Any]], int]:
    """Split *records* on *threshold*. Returns ``(eligible, excluded_count)``.

    Records without a numeric confidence are excluded.
    """
    eligible: list[dict[str, Any]] = []
    excluded = 0
    for raw in records:
        if _confidence(raw) >= threshold:
            eligible.append(raw)
        else:
            excluded += 1
    return eligible, excluded


def to_candidates(
    records: Iterable[dict[str, Any]],
    result: BatchResult,
    *,
    batch_id: str,
    actor: str,
    threshold: float,
) -> list[CandidateRecord]:
    """Convert eligible canonical records to insert-only candidates."""
    promoted_at = datetime.now(UTC).isoformat()
    candidates: list[CandidateRecord] = []

    for raw in records:
        try:
            place = CanonicalPlace.model_validate(raw)
        except ValidationError as exc:
            result.error(str(raw.get("name") or "(unnamed)"), SkipReason.INVALID_RECORD, str(exc))
            continue

        place_id = (place.external_ids.place_id or "").strip() or None
        # Recomposed as "street, city, state name" so the dedup key matches bulk imports.
        address = build_address(
            street_of(place.address, place.city),
            place.city,
            state_name_for(place.state) or place.state,
        )
        candidates.append(
            CandidateRecord(
                source_id=f"google_{place_id}" if place_id else None,
                google_place_id=place_id,
                name=place.name,
                address=address,
                city=place.city,
                state=place.state,
                source=SOURCE,
                phone=place.phone,
                website=place.website,
                lat=place.lat,
                lng=place.lng,
                insert_only=True,
                promotion_metadata={
                    "promoted_by": actor,
                    "promoted_at": promoted_at,
                    "source_batch_id": batch_id,
                    "confidence_threshold": threshold,
                    "original_confidence": place.confidence,
                    "categories": place.categories,
                },
            )
        )

    return candidates


def ingest_canonical_places(
    storage: StorageClient,
    records: Iterable[dict[str, Any]],
    *,
    batch_id: str,
    actor: str = "import-canonical",
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    dry_run: bool = False,
) -> BatchResult:
    """Import canonical records meeting *threshold* through the ingestion boundary."""
    eligible, excluded = filter_by_confidence(records, threshold)
    result = BatchResult(dry_run=dry_run, excluded=excluded)
    logger.info(
        "canonical_records_filtered",
        eligible=len(eligible),
        excluded=excluded,
        threshold=threshold,
    )

    candidates = to_candidates(eligible, result, batch_id=batch_id, actor=actor, threshold=threshold)
    return ingest(
        storage,
        candidates,
        batch_id=batch_id,
        actor=actor,
        operation=IngestionOperation.CANONICAL_IMPORT,
        dry_run=dry_run,
        result=result,
        details={"confidence_threshold": threshold},
    )
