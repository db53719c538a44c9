"""Typed row schemas for every table the engine reads or writes.

Rows are validated once, when they cross the storage boundary, so the
ingestion and merge code can rely on attribute access and types without
re-checking shape.  Each model declares the table it maps to, its primary
key, and the unique constraints the storage layer enforces.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict


class ArchivedReason(str, Enum):
    DUPLICATE = "duplicate"


class IngestionOperation(str, Enum):
    APIFY_IMPORT = "apify_import"
    CANONICAL_IMPORT = "canonical_import"
    SUBMISSION_APPROVED = "submission_approved"
    MERGE_DUPLICATES = "merge_duplicates"


class Row(BaseModel):
    """Base class for table rows."""

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    __table__: ClassVar[str]
    __primary_key__: ClassVar[str] = "id"
    __unique__: ClassVar[tuple[tuple[str, ...], ...]] = ()


class StateRow(Row):
    __table__ = "states"
    __unique__ = (("slug",),)

    id: int
    name: str
    slug: str
    code: str


class CityRow(Row):
    __table__ = "cities"
    __unique__ = (("state_id", "name_key"),)

    id: int
    name: str
    name_key: str
    slug: str
    state_id: int
    state_code: str
    lat: float | None = None
    lng: float | None = None
    created_at: datetime | None = None


class StoreRow(Row):
    __table__ = "stores"
    __unique__ = (("source_id",),)

    id: int
    source_id: str
    google_place_id: str | None = None
    name: str
    slug: str
    address: str
    city_id: int
    state_id: int
    phone: str | None = None
    phone_normalized: str | None = None
    website: str | None = None
    rating: float | None = None
    review_count: int | None = None
    lat: float | None = None
    lng: float | None = None
    address_hash: str | None = None
    is_verified: bool = False
    is_approved: bool = False
    claimed_by: str | None = None
    claimed_at: datetime | None = None
    is_archived: bool = False
    archived_reason: ArchivedReason | None = None
    merged_into_store_id: int | None = None
    source: str | None = None
    batch_id: str | None = None
    promotion_metadata: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ClaimRow(Row):
    __table__ = "store_claims"

    id: int
    store_id: int
    user_id: str
    status: str = "pending"
    created_at: datetime | None = None


class CtaEventRow(Row):
    __table__ = "cta_events"

    id: int
    store_id: int
    event_type: str
    created_at: datetime | None = None


class SlugRedirectRow(Row):
    __table__ = "store_slug_redirects"
    __primary_key__ = "old_slug"

    old_slug: str
    canonical_store_id: int
    created_at: datetime | None = None


class IngestionLogRow(Row):
    """Append-only audit record. Never updated or deleted."""

    __table__ = "ingestion_log"

    id: int
    operation: IngestionOperation
    source: str
    records_affected: int
    initiated_by: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime | None = None


class SubmissionRow(Row):
    __table__ = "store_submissions"

    id: str
    business_name: str
    street_address: str
    city: str
    state: str  # two-letter code
    phone: str | None = None
    website: str | None = None
    lat: float | None = None
    lng: float | None = None
    status: str = "pending"
    created_at: datetime | None = None


ALL_TABLES: tuple[type[Row], ...] = (
    StateRow,
    CityRow,
    StoreRow,
    ClaimRow,
    CtaEventRow,
    SlugRedirectRow,
    IngestionLogRow,
    SubmissionRow,
)
