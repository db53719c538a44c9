"""Ingestion boundary: the single entry point for store and city records.

Sources are isolated in ``storedirectory.ingestion.sources``; this package
owns validation, city resolution, dedup keys and the audit log.
"""

from __future__ import annotations

from storedirectory.ingestion.boundary import (
    BatchResult,
    CandidateRecord,
    RecordOutcome,
    RecordStatus,
    SkipReason,
    ingest,
    log_ingestion,
)
from storedirectory.ingestion.cities import ensure_city
from storedirectory.ingestion.normalize import hash_address, normalize_address, normalize_phone
from storedirectory.ingestion.states import lookup_state, seed_states

__all__ = [
    "BatchResult",
    "CandidateRecord",
    "RecordOutcome",
    "RecordStatus",
    "SkipReason",
    "ensure_city",
    "hash_address",
    "ingest",
    "log_ingestion",
    "lookup_state",
    "normalize_address",
    "normalize_phone",
    "seed_states",
]
