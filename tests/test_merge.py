"""Tests for the merge executor.

Stores are inserted directly with ``make_store``; every default store sits
at the same address, so each test builds one duplicate group unless told
otherwise.
"""

from __future__ import annotations

import pytest

from storedirectory.dedup.canonical import select_canonical
from storedirectory.dedup.grouper import find_duplicate_groups
from storedirectory.dedup.merge import merge_group, run_merge
from storedirectory.errors import ConfigurationError, StorageError
from storedirectory.models import (
    ClaimRow,
    CtaEventRow,
    IngestionLogRow,
    IngestionOperation,
    SlugRedirectRow,
    StoreRow,
)
from storedirectory.verification import compute_import_metrics, verification_passed


def _add_activity(storage, store_id: int, claims: int = 1, events: int = 2) -> None:
    for i in range(claims):
        storage.insert(ClaimRow, {"store_id": store_id, "user_id": f"user-{store_id}-{i}"})
    for _ in range(events):
        storage.insert(CtaEventRow, {"store_id": store_id, "event_type": "call_click"})


# =========================================================================
# Duplicate collapse
# =========================================================================


class TestDuplicateCollapse:
    """Tests for the live merge of a safe group."""

    def test_claimed_store_survives(self, storage, make_store):
        unclaimed = make_store(google_place_id="ChIJ-old")  # older, has a place id
        claimed = make_store(claimed_by="owner-1")
        _add_activity(storage, unclaimed.id)

        stats = run_merge(storage, dry_run=False)

        assert (stats.groups_found, stats.groups_processed, stats.stores_archived) == (1, 1, 1)
        assert stats.errors == 0

        archived = storage.get(StoreRow, id=unclaimed.id)
        assert archived.is_archived is True
        assert archived.archived_reason == "duplicate"
        assert archived.merged_into_store_id == claimed.id
        assert storage.get(StoreRow, id=claimed.id).is_archived is False

        assert storage.count(ClaimRow, store_id=claimed.id) == 1
        assert storage.count(CtaEventRow, store_id=claimed.id) == 2
        assert storage.count(ClaimRow, store_id=unclaimed.id) == 0

        redirect = storage.get(SlugRedirectRow, old_slug=unclaimed.slug)
        assert redirect.canonical_store_id == claimed.id

    def test_claimed_store_survives_when_created_first(self, storage, make_store):
        claimed = make_store(claimed_by="owner-1")
        unclaimed = make_store(google_place_id="ChIJ-new")
        run_merge(storage, dry_run=False)
        assert storage.get(StoreRow, id=unclaimed.id).merged_into_store_id == claimed.id

    def test_outcome_counts(self, storage, make_store):
        keep = make_store(claimed_by="owner-1")
        dup = make_store()
        _add_activity(storage, dup.id, claims=2, events=3)

        outcome = run_merge(storage, dry_run=False).outcomes[0]
        assert outcome.canonical_id == keep.id
        assert outcome.archived_ids == [dup.id]
        assert (outcome.claims_repointed, outcome.events_repointed) == (2, 3)
        assert outcome.redirects_created == 1

    def test_no_redirect_when_slugs_match(self, storage, make_store):
        make_store(slug="appliance-outlet-san-diego")
        make_store(slug="appliance-outlet-san-diego")
        stats = run_merge(storage, dry_run=False)
        assert stats.stores_archived == 1
        assert stats.redirects_created == 0
        assert storage.count(SlugRedirectRow) == 0

    def test_one_log_entry_per_group(self, storage, make_store):
        keep = make_store()
        make_store()
        make_store()
        run_merge(storage, dry_run=False)

        entries = storage.select(IngestionLogRow, operation=IngestionOperation.MERGE_DUPLICATES)
        assert len(entries) == 1
        assert entries[0].records_affected == 2
        assert entries[0].details["canonical_store_id"] == keep.id
        assert entries[0].initiated_by == "merge-duplicates"

    def test_earlier_merges_follow_the_canonical(self, storage, make_store):
        keep = make_store(claimed_by="owner-1")
        middle = make_store()
        old = make_store(address="1 Old Rd, San Diego, California")
        storage.update(
            StoreRow,
            {"is_archived": True, "archived_reason": "duplicate", "merged_into_store_id": middle.id},
            id=old.id,
        )
        storage.insert(SlugRedirectRow, {"old_slug": old.slug, "canonical_store_id": middle.id})

        run_merge(storage, dry_run=False)

        assert storage.get(StoreRow, id=old.id).merged_into_store_id == keep.id
        assert storage.get(SlugRedirectRow, old_slug=old.slug).canonical_store_id == keep.id
        assert compute_import_metrics(storage)["merge_violations"] == 0

    def test_shared_place_id_group_verifies_after_merge(self, storage, make_store):
        make_store(google_place_id="ChIJ-same")
        make_store(google_place_id="ChIJ-same")

        stats = run_merge(storage, dry_run=False)

        assert stats.stores_archived == 1
        metrics = compute_import_metrics(storage)
        assert metrics["duplicate_place_ids"] == 0
        assert verification_passed(metrics)


# =========================================================================
# Risky groups
# =========================================================================


class TestRiskyGroups:
    def test_skipped_by_default(self, storage, make_store, row_counts):
        first = make_store(google_place_id="ChIJ-A")
        second = make_store(google_place_id="ChIJ-B")
        before = row_counts()

        stats = run_merge(storage, dry_run=False)

        assert stats.groups_skipped == 1
        assert stats.stores_archived == 0
        assert stats.outcomes[0].skipped
        assert "ChIJ-A" in stats.outcomes[0].skip_reason
        assert storage.get(StoreRow, id=first.id).is_archived is False
        assert storage.get(StoreRow, id=second.id).is_archived is False
        assert row_counts() == before

    def test_included_on_request(self, storage, make_store):
        make_store(google_place_id="ChIJ-A")
        make_store(google_place_id="ChIJ-B")
        stats = run_merge(storage, dry_run=False, include_risky=True)
        assert stats.stores_archived == 1


# =========================================================================
# Idempotence and dry runs
# =========================================================================


class TestTerminality:
    """Archiving is terminal; re-runs change nothing."""

    def test_second_run_finds_nothing(self, storage, make_store):
        keep = make_store(claimed_by="owner-1")
        dup = make_store()
        run_merge(storage, dry_run=False)
        archived = storage.get(StoreRow, id=dup.id)

        again = run_merge(storage, dry_run=False)

        assert again.groups_found == 0
        after = storage.get(StoreRow, id=dup.id)
        assert after.merged_into_store_id == keep.id
        assert after.updated_at == archived.updated_at

    def test_stale_group_is_a_no_op(self, storage, make_store):
        make_store(claimed_by="owner-1")
        dup = make_store()
        group = find_duplicate_groups(storage)[0]
        canonical = select_canonical(group.stores)

        merge_group(storage, group, canonical, dry_run=False)
        archived = storage.get(StoreRow, id=dup.id)
        outcome = merge_group(storage, group, canonical, dry_run=False)

        assert outcome.archived_ids == []
        assert outcome.already_archived == 1
        assert storage.get(StoreRow, id=dup.id) == archived


class TestDryRun:
    def test_no_writes(self, storage, make_store, row_counts):
        make_store(claimed_by="owner-1")
        dup = make_store()
        _add_activity(storage, dup.id)
        before = row_counts()

        stats = run_merge(storage, dry_run=True)

        assert row_counts() == before
        assert storage.get(StoreRow, id=dup.id).is_archived is False
        assert storage.count(ClaimRow, store_id=dup.id) == 1
        # Same outcome shape as a live run
        outcome = stats.outcomes[0]
        assert outcome.dry_run is True
        assert outcome.archived_ids == [dup.id]
        assert (outcome.claims_repointed, outcome.events_repointed) == (1, 2)
        assert outcome.redirects_created == 1

    def test_default_is_dry_run(self, storage, make_store):
        make_store()
        dup = make_store()
        assert run_merge(storage).dry_run is True
        assert storage.get(StoreRow, id=dup.id).is_archived is False


# =========================================================================
# Failure isolation
# =========================================================================


class TestFailureIsolation:
    """One failing duplicate never blocks the others."""

    def test_failed_duplicate_rolls_back_alone(self, storage, make_store, monkeypatch):
        keep = make_store(claimed_by="owner-1")
        good = make_store()
        bad = make_store()
        _add_activity(storage, good.id)
        _add_activity(storage, bad.id)

        original_update = storage.update

        def failing_update(model, values, **filters):
            if model is StoreRow and filters.get("id") == bad.id and values.get("is_archived"):
                raise StorageError("deadlock detected")
            return original_update(model, values, **filters)

        monkeypatch.setattr(storage, "update", failing_update)
        stats = run_merge(storage, dry_run=False)

        assert stats.errors == 1
        assert stats.stores_archived == 1
        assert storage.get(StoreRow, id=good.id).merged_into_store_id == keep.id
        # The failed duplicate's repoints were rolled back with it
        assert storage.get(StoreRow, id=bad.id).is_archived is False
        assert storage.count(ClaimRow, store_id=bad.id) == 1
        assert storage.get(SlugRedirectRow, old_slug=bad.slug) is None

        entry = storage.get(IngestionLogRow, operation=IngestionOperation.MERGE_DUPLICATES)
        assert entry.records_affected == 1
        assert entry.details["errors"] == 1

        # A later run picks up where this one stopped
        monkeypatch.undo()
        resumed = run_merge(storage, dry_run=False)
        assert resumed.errors == 0
        assert storage.get(StoreRow, id=bad.id).merged_into_store_id == keep.id

    def test_archived_canonical_aborts_each_duplicate(self, storage, make_store):
        make_store(claimed_by="owner-1")
        make_store()
        make_store()
        group = find_duplicate_groups(storage)[0]
        canonical = select_canonical(group.stores)
        storage.update(StoreRow, {"is_archived": True}, id=canonical.id)

        outcome = merge_group(storage, group, canonical, dry_run=False)

        assert outcome.errors == 2
        assert outcome.archived_ids == []
        assert storage.count(StoreRow, is_archived=False) == 2


# =========================================================================
# Group selection
# =========================================================================


class TestGroupSelection:
    def test_single_group(self, storage, make_store):
        first_a = make_store()
        first_b = make_store()
        second_a = make_store(address="9 Elm St, San Diego, California")
        second_b = make_store(address="9 Elm Street, San Diego, California")

        stats = run_merge(storage, dry_run=False, group_id=2)

        assert stats.groups_found == 1
        assert stats.outcomes[0].group_id == 2
        assert storage.get(StoreRow, id=second_b.id).merged_into_store_id == second_a.id
        assert storage.get(StoreRow, id=first_a.id).is_archived is False
        assert storage.get(StoreRow, id=first_b.id).is_archived is False

    def test_unknown_group(self, storage, make_store):
        make_store()
        make_store()
        with pytest.raises(ConfigurationError):
            run_merge(storage, group_id=7)
