"""Approved user submissions.

An admin approves pending rows in ``store_submissions``; each becomes a store
with the synthetic identity ``submission_<id>``.  A submission whose address
already belongs to an active store is refused so the owner claims the
existing listing instead of creating a duplicate.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from storedirectory.ingestion.boundary import BatchResult, CandidateRecord, SkipReason, ingest
from storedirectory.ingestion.normalize import build_address
from storedirectory.ingestion.states import state_name_for
from storedirectory.models import IngestionOperation, StoreRow, SubmissionRow
from storedirectory.storage import StorageClient

logger = structlog.get_logger(__name__)

SOURCE = "submission"
_PREFIX = "submission_"


def submission_source_id(submission_id: str) -> str:
    return f"{_PREFIX}{submission_id}"


def to_candidate(submission: SubmissionRow) -> CandidateRecord:
    # Same "street, city, state name" shape as bulk imports so the dedup keys line up.
    state_name = state_name_for(submission.state) or submission.state

    return CandidateRecord(
        source_id=submission_source_id(submission.id),
        name=submission.business_name,
        address=build_address(submission.street_address, submission.city, state_name),
        city=submission.city,
        state=submission.state,
        source=SOURCE,
        phone=submission.phone,
        website=submission.website,
        lat=submission.lat,
        lng=submission.lng,
        reject_on_address_match=True,
    )


def ingest_submissions(
    storage: StorageClient,
    submission_ids: Iterable[str],
    *,
    batch_id: str,
    actor: str,
    dry_run: bool = False,
) -> BatchResult:
    """Create stores for the given pending submissions and mark them approved.

    The store write and the status change commit together.
    """
    result = BatchResult(dry_run=dry_run)
    candidates: list[CandidateRecord] = []

    for submission_id in submission_ids:
        submission = storage.get(SubmissionRow, id=submission_id, status="pending")
        if submission is None:
            result.error(
                submission_source_id(submission_id),
                SkipReason.NOT_FOUND,
                "submission not found or not pending",
            )
            continue
        candidates.append(to_candidate(submission))

    def mark_approved(candidate: CandidateRecord, store: StoreRow) -> None:
        submission_id = candidate.source_id.removeprefix(_PREFIX)
        storage.update(SubmissionRow, {"status": "approved"}, id=submission_id)
        logger.info("submission_approved", submission_id=submission_id, store_id=store.id, actor=actor)

    return ingest(
        storage,
        candidates,
        batch_id=batch_id,
        actor=actor,
        operation=IngestionOperation.SUBMISSION_APPROVED,
        dry_run=dry_run,
        result=result,
        on_accepted=mark_approved,
    )
