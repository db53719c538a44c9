"""Merge executor: collapse a duplicate group into its canonical store.

For every duplicate, in one transaction:
  a. repoint claims and CTA events to the canonical store, and re-home
     stores and slug redirects that previously pointed at the duplicate;
  b. create a slug redirect when the duplicate's slug differs;
  c. archive the duplicate with ``merged_into_store_id`` set.

A failed duplicate is counted and the run moves on.  Archiving is terminal
and guarded by ``is_archived = false``, so re-running a merge is a no-op for
stores already collapsed.  Dry runs perform the same steps as reads only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from storedirectory.dedup.canonical import select_canonical
from storedirectory.dedup.grouper import DuplicateGroup, find_duplicate_groups
from storedirectory.errors import ConfigurationError, MergeConflict, StorageError
from storedirectory.ingestion.boundary import log_ingestion
from storedirectory.models import (
    ArchivedReason,
    ClaimRow,
    CtaEventRow,
    IngestionOperation,
    SlugRedirectRow,
    StoreRow,
)
from storedirectory.storage import StorageClient

logger = structlog.get_logger(__name__)

MERGE_ACTOR = "merge-duplicates"


@dataclass
class MergeOutcome:
    """What happened (or would happen, in a dry run) to one duplicate group."""

    group_id: int
    dedup_key: str
    canonical_id: int | None
    dry_run: bool = True
    archived_ids: list[int] = field(default_factory=list)
    claims_repointed: int = 0
    events_repointed: int = 0
    stores_rehomed: int = 0
    redirects_rehomed: int = 0
    redirects_created: int = 0
    already_archived: int = 0
    errors: int = 0
    error_details: list[str] = field(default_factory=list)
    skipped: bool = False
    skip_reason: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "dedup_key": self.dedup_key,
            "canonical_id": self.canonical_id,
            "dry_run": self.dry_run,
            "archived_ids": list(self.archived_ids),
            "claims_repointed": self.claims_repointed,
            "events_repointed": self.events_repointed,
            "stores_rehomed": self.stores_rehomed,
            "redirects_rehomed": self.redirects_rehomed,
            "redirects_created": self.redirects_created,
            "already_archived": self.already_archived,
            "errors": self.errors,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
        }


@dataclass
class _DuplicateCounts:
    claims: int = 0
    events: int = 0
    stores_rehomed: int = 0
    redirects_rehomed: int = 0
    redirect_created: bool = False
    archived: bool = False


# ---------------------------------------------------------------------------
# Per-duplicate steps
# ---------------------------------------------------------------------------

def _needs_redirect(duplicate: StoreRow, canonical: StoreRow) -> bool:
    return bool(duplicate.slug) and duplicate.slug != canonical.slug


def _merge_duplicate(storage: StorageClient, duplicate: StoreRow, canonical: StoreRow) -> _DuplicateCounts:
    """Steps a-c for one duplicate. Must run inside a transaction."""
    counts = _DuplicateCounts()

    current_canonical = storage.get(StoreRow, id=canonical.id)
    if current_canonical is None or current_canonical.is_archived:
        msg = f"canonical store {canonical.id} is missing or archived"
        raise MergeConflict(msg)

    current = storage.get(StoreRow, id=duplicate.id)
    if current is None or current.is_archived:
        return counts

    counts.claims = storage.update(ClaimRow, {"store_id": canonical.id}, store_id=duplicate.id)
    counts.events = storage.update(CtaEventRow, {"store_id": canonical.id}, store_id=duplicate.id)
    # Keep "merged_into points at an active store" true for earlier merges.
    counts.stores_rehomed = storage.update(
        StoreRow, {"merged_into_store_id": canonical.id}, merged_into_store_id=duplicate.id
    )
    counts.redirects_rehomed = storage.update(
        SlugRedirectRow, {"canonical_store_id": canonical.id}, canonical_store_id=duplicate.id
    )

    if _needs_redirect(current, canonical):
        storage.upsert_on_conflict(
            SlugRedirectRow,
            {"old_slug": current.slug, "canonical_store_id": canonical.id},
            conflict=("old_slug",),
            update=("canonical_store_id",),
        )
        counts.redirect_created = True

    archived = storage.update(
        StoreRow,
        {
            "is_archived": True,
            "archived_reason": ArchivedReason.DUPLICATE,
            "merged_into_store_id": canonical.id,
            "updated_at": datetime.now(UTC),
        },
        id=duplicate.id,
        is_archived=False,
    )
    counts.archived = archived > 0
    return counts


def _simulate_duplicate(storage: StorageClient, duplicate: StoreRow, canonical: StoreRow) -> _DuplicateCounts:
    """Read-only counterpart of :func:`_merge_duplicate`."""
    current = storage.get(StoreRow, id=duplicate.id)
    if current is None or current.is_archived:
        return _DuplicateCounts()

    return _DuplicateCounts(
        claims=storage.count(ClaimRow, store_id=duplicate.id),
        events=storage.count(CtaEventRow, store_id=duplicate.id),
        stores_rehomed=storage.count(StoreRow, merged_into_store_id=duplicate.id),
        redirects_rehomed=storage.count(SlugRedirectRow, canonical_store_id=duplicate.id),
        redirect_created=_needs_redirect(current, canonical),
        archived=True,
    )


# ---------------------------------------------------------------------------
# Group and run level
# ---------------------------------------------------------------------------

def merge_group(
    storage: StorageClient,
    group: DuplicateGroup,
    canonical: StoreRow,
    *,
    dry_run: bool = True,
) -> MergeOutcome:
    """Archive every non-canonical member of *group* into *canonical*.

    In live mode one ``merge_duplicates`` audit entry is written for the
    group after all duplicates have been processed.
    """
    outcome = MergeOutcome(
        group_id=group.group_id,
        dedup_key=group.dedup_key,
        canonical_id=canonical.id,
        dry_run=dry_run,
    )
    duplicates = [s for s in group.stores if s.id != canonical.id]

    for duplicate in duplicates:
        try:
            if dry_run:
                counts = _simulate_duplicate(storage, duplicate, canonical)
            else:
                with storage.transaction():
                    counts = _merge_duplicate(storage, duplicate, canonical)
        except StorageError as exc:
            outcome.errors += 1
            outcome.error_details.append(f"store {duplicate.id}: {exc}")
            logger.error(
                "duplicate_merge_failed",
                group_id=group.group_id,
                store_id=duplicate.id,
                canonical_id=canonical.id,
                error=str(exc),
            )
            continue

        if not counts.archived:
            outcome.already_archived += 1
            continue

        outcome.archived_ids.append(duplicate.id)
        outcome.claims_repointed += counts.claims
        outcome.events_repointed += counts.events
        outcome.stores_rehomed += counts.stores_rehomed
        outcome.redirects_rehomed += counts.redirects_rehomed
        outcome.redirects_created += int(counts.redirect_created)
        logger.info(
            "duplicate_archived",
            group_id=group.group_id,
            store_id=duplicate.id,
            merged_into=canonical.id,
            dry_run=dry_run,
        )

    if not dry_run:
        try:
            log_ingestion(
                storage,
                IngestionOperation.MERGE_DUPLICATES,
                source=f"address_hash:{group.dedup_key}",
                records_affected=len(outcome.archived_ids),
                initiated_by=MERGE_ACTOR,
                details={
                    "canonical_store_id": canonical.id,
                    "archived_store_ids": list(outcome.archived_ids),
                    "address_hash": group.dedup_key,
                    "errors": outcome.errors,
                },
            )
        except StorageError as exc:
            outcome.errors += 1
            outcome.error_details.append(f"ingestion log: {exc}")
            logger.error("merge_log_failed", group_id=group.group_id, error=str(exc))

    return outcome


@dataclass
class MergeRunStats:
    dry_run: bool = True
    groups_found: int = 0
    groups_processed: int = 0
    groups_skipped: int = 0
    stores_archived: int = 0
    claims_repointed: int = 0
    events_repointed: int = 0
    redirects_created: int = 0
    errors: int = 0
    outcomes: list[MergeOutcome] = field(default_factory=list)

    def add(self, outcome: MergeOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.skipped:
            self.groups_skipped += 1
            return
        self.groups_processed += 1
        self.stores_archived += len(outcome.archived_ids)
        self.claims_repointed += outcome.claims_repointed
        self.events_repointed += outcome.events_repointed
        self.redirects_created += outcome.redirects_created
        self.errors += outcome.errors

    def as_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "groups_found": self.groups_found,
            "groups_processed": self.groups_processed,
            "groups_skipped": self.groups_skipped,
            "stores_archived": self.stores_archived,
            "claims_repointed": self.claims_repointed,
            "events_repointed": self.events_repointed,
            "redirects_created": self.redirects_created,
            "errors": self.errors,
        }


def run_merge(
    storage: StorageClient,
    *,
    dry_run: bool = True,
    include_risky: bool = False,
    group_id: int | None = None,
    page_size: int = 1000,
) -> MergeRunStats:
    """Find duplicate groups and merge each into its canonical store.

    Risky groups are reported as skipped unless *include_risky* is set.
    With *group_id*, only that group (numbered in discovery order) is
    processed.

    Raises:
        ConfigurationError: If *group_id* does not name a discovered group.
    """
    groups = find_duplicate_groups(storage, page_size=page_size)
    if group_id is not None:
        groups = [g for g in groups if g.group_id == group_id]
        if not groups:
            msg = f"no duplicate group with id {group_id}"
            raise ConfigurationError(msg)

    stats = MergeRunStats(dry_run=dry_run, groups_found=len(groups))
    for group in groups:
        if group.is_risky and not include_risky:
            logger.warning("risky_group_skipped", group_id=group.group_id, reason=group.risk_reason)
            stats.add(
                MergeOutcome(
                    group_id=group.group_id,
                    dedup_key=group.dedup_key,
                    canonical_id=None,
                    dry_run=dry_run,
                    skipped=True,
                    skip_reason=group.risk_reason,
                )
            )
            continue

        canonical = select_canonical(group.stores)
        stats.add(merge_group(storage, group, canonical, dry_run=dry_run))

    logger.info("merge_run_complete", **stats.as_dict())
    return stats
