"""Ingestion boundary: the single write path for Store rows.

Every store in the table entered through :func:`ingest`, which is why the
boundary forces ``is_verified = True`` on every write regardless of what the
candidate carried.  Cities are created here too, through ``ensure_city``.

Each candidate is processed in its own transaction.  A failing candidate is
counted and logged; it never rolls back candidates already committed in the
same batch.  After a live batch exactly one ``ingestion_log`` entry is
written, whatever the mix of successes and failures.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog

from storedirectory.errors import StorageError
from storedirectory.ingestion.cities import ensure_city, find_city
from storedirectory.ingestion.normalize import hash_address, normalize_phone, normalize_website, store_slug
from storedirectory.ingestion.states import lookup_state
from storedirectory.models import CityRow, IngestionLogRow, IngestionOperation, StateRow, StoreRow
from storedirectory.storage import StorageClient, UpsertResult

logger = structlog.get_logger(__name__)


class RecordStatus(str, Enum):
    ACCEPTED = "accepted"
    SKIPPED = "skipped"
    ERROR = "error"


class SkipReason(str, Enum):
    # Validation (skips)
    MISSING_DEDUP_ID = "missing_dedup_id"
    EMPTY_NAME = "empty_name"
    EMPTY_ADDRESS = "empty_address"
    EMPTY_STATE = "empty_state"
    EMPTY_CITY = "empty_city"
    IRRELEVANT_CATEGORY = "irrelevant_category"
    # Expected steady-state conflicts (skips)
    ALREADY_EXISTS = "already_exists"
    ADDRESS_EXISTS = "address_exists"
    # Errors
    UNKNOWN_STATE = "unknown_state"
    INVALID_RECORD = "invalid_record"
    NOT_FOUND = "not_found"
    STORAGE_ERROR = "storage_error"


@dataclass
class CandidateRecord:
    """Common shape every source adapter produces."""

    source_id: str | None
    name: str | None
    address: str | None
    city: str | None
    state: str | None
    source: str
    phone: str | None = None
    website: str | None = None
    rating: float | None = None
    review_count: int | None = None
    lat: float | None = None
    lng: float | None = None
    google_place_id: str | None = None
    # Skip instead of updating when the store already exists.
    insert_only: bool = False
    # Skip when an active store already sits at the same dedup key.
    reject_on_address_match: bool = False
    promotion_metadata: dict[str, Any] | None = None

    @property
    def label(self) -> str:
        name = (self.name or "").strip() or "(unnamed)"
        return f"{name} ({self.city or 'no city'}, {self.state or 'no state'})"


@dataclass
class RecordOutcome:
    label: str
    status: RecordStatus
    reason: SkipReason | None = None
    detail: str = ""
    store_id: int | None = None
    created: bool = False


@dataclass
class BatchResult:
    """Aggregate outcome of one ingestion batch. The only record of what happened."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    excluded: int = 0
    dry_run: bool = False
    skip_reasons: Counter = field(default_factory=Counter)
    outcomes: list[RecordOutcome] = field(default_factory=list)

    @property
    def affected(self) -> int:
        return self.created + self.updated

    @property
    def ok(self) -> bool:
        return self.errors == 0

    def accept(self, label: str, *, created: bool, store_id: int | None) -> None:
        if created:
            self.created += 1
        else:
            self.updated += 1
        self.outcomes.append(
            RecordOutcome(label, RecordStatus.ACCEPTED, store_id=store_id, created=created)
        )
        logger.info("store_created" if created else "store_updated", label=label, store_id=store_id,
                    dry_run=self.dry_run)

    def skip(self, label: str, reason: SkipReason, detail: str = "") -> None:
        self.skipped += 1
        self.skip_reasons[reason.value] += 1
        self.outcomes.append(RecordOutcome(label, RecordStatus.SKIPPED, reason, detail))
        logger.info("store_skipped", label=label, reason=reason.value, detail=detail)

    def error(self, label: str, reason: SkipReason, detail: str = "") -> None:
        self.errors += 1
        self.outcomes.append(RecordOutcome(label, RecordStatus.ERROR, reason, detail))
        logger.error("store_error", label=label, reason=reason.value, detail=detail)

    def as_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "excluded": self.excluded,
            "dry_run": self.dry_run,
            "skip_reasons": dict(self.skip_reasons),
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_candidate(candidate: CandidateRecord) -> SkipReason | None:
    """Return the reason *candidate* must be skipped, or ``None`` if it is complete."""
    if not (candidate.source_id or "").strip():
        return SkipReason.MISSING_DEDUP_ID
    if not (candidate.name or "").strip():
        return SkipReason.EMPTY_NAME
    if not (candidate.address or "").strip():
        return SkipReason.EMPTY_ADDRESS
    if not (candidate.state or "").strip():
        return SkipReason.EMPTY_STATE
    if not (candidate.city or "").strip():
        return SkipReason.EMPTY_CITY
    return None


def _find_existing(storage: StorageClient, candidate: CandidateRecord) -> StoreRow | None:
    """The store already holding this record's identity, by source id then place id.

    Sources key the same place differently (``ChIJ..`` vs ``google_ChIJ..``), so
    the place id is the identity shared across them.  Active rows win.
    """
    existing = storage.get(StoreRow, source_id=candidate.source_id)
    if existing is None and candidate.google_place_id:
        existing = storage.get(
            StoreRow, google_place_id=candidate.google_place_id, is_archived=False
        ) or storage.get(StoreRow, google_place_id=candidate.google_place_id)
    return existing


# ---------------------------------------------------------------------------
# Writes (boundary-internal)
# ---------------------------------------------------------------------------

_UPDATABLE_COLUMNS = (
    "google_place_id",
    "name",
    "slug",
    "address",
    "city_id",
    "state_id",
    "phone",
    "phone_normalized",
    "website",
    "rating",
    "review_count",
    "lat",
    "lng",
    "address_hash",
    "is_verified",
    "is_approved",
    "batch_id",
    "updated_at",
)


def _upsert_verified_store(
    storage: StorageClient,
    candidate: CandidateRecord,
    city: CityRow,
    state: StateRow,
    batch_id: str,
    existing: StoreRow | None = None,
) -> UpsertResult[StoreRow]:
    name = candidate.name.strip()
    values = {
        "source_id": candidate.source_id.strip(),
        "google_place_id": candidate.google_place_id,
        "name": name,
        "slug": store_slug(name, city.name),
        "address": candidate.address.strip(),
        "city_id": city.id,
        "state_id": state.id,
        "phone": (candidate.phone or "").strip() or None,
        "phone_normalized": normalize_phone(candidate.phone),
        "website": normalize_website(candidate.website),
        "rating": candidate.rating,
        "review_count": candidate.review_count,
        "lat": candidate.lat,
        "lng": candidate.lng,
        "address_hash": hash_address(candidate.address),
        "is_verified": True,  # the boundary guarantees this
        "is_approved": True,
        "source": candidate.source,
        "batch_id": batch_id,
        "promotion_metadata": candidate.promotion_metadata,
        "updated_at": datetime.now(UTC),
    }
    if existing is not None and existing.source_id != values["source_id"]:
        # Known under another source's id: update that row, keep its identity.
        storage.update(StoreRow, {k: values[k] for k in _UPDATABLE_COLUMNS}, id=existing.id)
        return UpsertResult(storage.get(StoreRow, id=existing.id), inserted=False)
    return storage.upsert_on_conflict(
        StoreRow, values, conflict=("source_id",), update=_UPDATABLE_COLUMNS
    )


def log_ingestion(
    storage: StorageClient,
    operation: IngestionOperation,
    source: str,
    records_affected: int,
    initiated_by: str,
    details: dict[str, Any] | None = None,
) -> IngestionLogRow:
    """Append one audit entry to ``ingestion_log``."""
    return storage.insert(
        IngestionLogRow,
        {
            "operation": operation,
            "source": source,
            "records_affected": records_affected,
            "initiated_by": initiated_by,
            "details": details,
        },
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def ingest(
    storage: StorageClient,
    candidates: Iterable[CandidateRecord],
    *,
    batch_id: str,
    actor: str,
    operation: IngestionOperation,
    dry_run: bool = False,
    result: BatchResult | None = None,
    details: dict[str, Any] | None = None,
    on_accepted: Callable[[CandidateRecord, StoreRow], None] | None = None,
) -> BatchResult:
    """Write *candidates* to the store table.

    Parameters
    ----------
    storage:
        Storage client; the only handle through which rows are written.
    candidates:
        Normalised records from a source adapter.
    batch_id:
        Identifier recorded on every store and used as the log entry source.
    actor:
        User or script that initiated the batch.
    operation:
        Kind of ingestion, recorded in the audit log.
    dry_run:
        Perform only reads and report what would happen.
    result:
        A result already carrying the adapter's own skips, if any.
    details:
        Extra context merged into the audit entry.
    on_accepted:
        Called inside the candidate's transaction after the store is written.

    Returns
    -------
    BatchResult
        Per-record outcomes and counters.  Not all-or-nothing: accepted
        records stay committed even when others fail.
    """
    if result is None:
        result = BatchResult()
    result.dry_run = dry_run

    for candidate in candidates:
        label = candidate.label

        reason = validate_candidate(candidate)
        if reason is not None:
            result.skip(label, reason)
            continue

        try:
            existing = _find_existing(storage, candidate)
            if existing is not None and candidate.insert_only:
                result.skip(label, SkipReason.ALREADY_EXISTS, f"store {existing.id}")
                continue

            state = lookup_state(storage, candidate.state)
            if state is None:
                result.error(label, SkipReason.UNKNOWN_STATE, f"unknown state {candidate.state!r}")
                continue

            if candidate.reject_on_address_match:
                address_hash = hash_address(candidate.address)
                match = address_hash and storage.get(
                    StoreRow, address_hash=address_hash, is_archived=False
                )
                if match:
                    result.skip(
                        label,
                        SkipReason.ADDRESS_EXISTS,
                        f"store {match.id} ({match.name}) already at this address",
                    )
                    continue

            if dry_run:
                if find_city(storage, state, candidate.city) is None:
                    logger.info("city_would_be_created", city=candidate.city, state=state.code)
                result.accept(
                    label,
                    created=existing is None,
                    store_id=existing.id if existing else None,
                )
                continue

            with storage.transaction():
                city = ensure_city(storage, state, candidate.city, candidate.lat, candidate.lng)
                upsert = _upsert_verified_store(storage, candidate, city, state, batch_id, existing)
                if on_accepted is not None:
                    on_accepted(candidate, upsert.row)
            result.accept(label, created=upsert.inserted, store_id=upsert.row.id)

        except StorageError as exc:
            result.error(label, SkipReason.STORAGE_ERROR, str(exc))

    if not dry_run:
        try:
            log_ingestion(
                storage,
                operation,
                source=batch_id,
                records_affected=result.affected,
                initiated_by=actor,
                details={**(details or {}), **result.as_dict()},
            )
        except StorageError as exc:
            result.errors += 1
            logger.error("ingestion_log_failed", batch_id=batch_id, error=str(exc))

    logger.info("ingest_batch_complete", batch_id=batch_id, operation=operation.value, **result.as_dict())
    return result
