"""Tests for duplicate grouping and canonical selection."""

from __future__ import annotations

import csv
import itertools
from datetime import UTC, datetime

import pytest

from storedirectory.dedup.canonical import select_canonical
from storedirectory.dedup.grouper import find_duplicate_groups, group_by_dedup_key, is_group_risky
from storedirectory.dedup.report import detect_duplicates, export_report
from storedirectory.models import StoreRow


def _store(store_id: int, **overrides) -> StoreRow:
    values = {
        "id": store_id,
        "source_id": f"src-{store_id}",
        "name": f"Store {store_id}",
        "slug": f"store-{store_id}",
        "address": "123 Main St",
        "city_id": 1,
        "state_id": 1,
        "address_hash": "aaaaaaaaaaaaaaaa",
        "created_at": datetime(2024, 1, store_id, tzinfo=UTC),
    }
    values.update(overrides)
    return StoreRow(**values)


# =========================================================================
# Grouping
# =========================================================================


class TestGroupByDedupKey:
    """Tests for grouping active stores by address hash."""

    def test_groups_shared_keys(self):
        stores = [_store(1), _store(2), _store(3, address_hash="bbbbbbbbbbbbbbbb")]
        groups = group_by_dedup_key(stores)
        assert len(groups) == 1
        assert groups[0].store_ids == [1, 2]
        assert groups[0].dedup_key == "aaaaaaaaaaaaaaaa"

    def test_group_ids_follow_discovery_order(self):
        stores = [
            _store(1, address_hash="k2"),
            _store(2, address_hash="k1"),
            _store(3, address_hash="k2"),
            _store(4, address_hash="k1"),
        ]
        groups = group_by_dedup_key(stores)
        assert [(g.group_id, g.dedup_key) for g in groups] == [(1, "k2"), (2, "k1")]

    def test_archived_stores_excluded(self):
        groups = group_by_dedup_key([_store(1), _store(2, is_archived=True)])
        assert groups == []

    def test_null_keys_never_group(self):
        groups = group_by_dedup_key([_store(1, address_hash=None), _store(2, address_hash=None)])
        assert groups == []


class TestRiskyGroups:
    def test_two_place_ids_is_risky(self):
        risky, reason = is_group_risky([_store(1, google_place_id="A"), _store(2, google_place_id="B")])
        assert risky
        assert "A" in reason and "B" in reason

    def test_one_place_id_is_safe(self):
        risky, reason = is_group_risky([_store(1, google_place_id="A"), _store(2)])
        assert not risky
        assert reason is None

    def test_repeated_place_id_is_safe(self):
        assert not is_group_risky([_store(1, google_place_id="A"), _store(2, google_place_id="A")])[0]

    def test_flag_carried_on_group(self):
        groups = group_by_dedup_key([_store(1, google_place_id="A"), _store(2, google_place_id="B")])
        assert groups[0].is_risky


class TestFindDuplicateGroups:
    def test_reads_every_page(self, storage, make_store):
        for _ in range(3):
            make_store()
        make_store(address="9 Elm St, San Diego, California")
        groups = find_duplicate_groups(storage, page_size=1)
        assert len(groups) == 1
        assert len(groups[0].stores) == 3

    def test_ignores_archived(self, storage, make_store):
        make_store()
        make_store(is_archived=True)
        assert find_duplicate_groups(storage) == []


# =========================================================================
# Canonical selection
# =========================================================================


class TestSelectCanonical:
    """Tests for the canonical priority order."""

    def test_claimed_wins_over_everything(self):
        older_with_place = _store(1, google_place_id="A", is_verified=True)
        claimed = _store(2, claimed_by="owner")
        assert select_canonical([older_with_place, claimed]).id == 2

    def test_place_id_beats_none(self):
        assert select_canonical([_store(1), _store(2, google_place_id="A")]).id == 2

    def test_verified_beats_unverified(self):
        assert select_canonical([_store(1), _store(2, is_verified=True)]).id == 2

    def test_earliest_created(self):
        assert select_canonical([_store(3), _store(2), _store(5)]).id == 2

    def test_missing_created_at_sorts_last(self):
        assert select_canonical([_store(1, created_at=None), _store(2)]).id == 2

    def test_naive_and_aware_timestamps_compare(self):
        naive = _store(1, created_at=datetime(2023, 6, 1))
        aware = _store(2, created_at=datetime(2024, 1, 1, tzinfo=UTC))
        assert select_canonical([aware, naive]).id == 1

    def test_id_breaks_full_ties(self):
        same = datetime(2024, 1, 1, tzinfo=UTC)
        assert select_canonical([_store(9, created_at=same), _store(4, created_at=same)]).id == 4

    def test_order_invariant(self):
        stores = [
            _store(1),
            _store(2, google_place_id="A"),
            _store(3, is_verified=True),
            _store(4, google_place_id="A", is_verified=True),
        ]
        chosen = {select_canonical(p).id for p in itertools.permutations(stores)}
        assert chosen == {4}

    def test_empty_group(self):
        with pytest.raises(ValueError):
            select_canonical([])


# =========================================================================
# Detection report
# =========================================================================


class TestDetectDuplicates:
    """Tests for the read-only detection report."""

    def test_group_numbers_match_merge(self, storage, make_store):
        make_store()
        make_store()
        make_store(address="9 Elm St, San Diego, California")
        make_store(address="9 Elm Street, San Diego, California")

        report = detect_duplicates(storage, page_size=1)

        assert [(g.group_id, g.store_ids) for g in report.address_groups] == [
            (g.group_id, g.store_ids) for g in find_duplicate_groups(storage)
        ]

    def test_phone_and_name_city_groups(self, storage, make_store):
        make_store(name="Dent Depot", phone_normalized="8585551234")
        make_store(name="dent  depot", address="1 Other Rd, San Diego, California")
        make_store(address="2 Far Ave, San Diego, California", phone_normalized="8585551234")

        report = detect_duplicates(storage)

        assert report.address_groups == []
        assert [(key, [s.id for s in members]) for key, members in report.phone_groups] == [
            ("8585551234", [1, 3])
        ]
        assert [[s.id for s in members] for _, members in report.name_city_groups] == [[1, 2]]

    def test_archived_stores_ignored(self, storage, make_store):
        make_store(phone_normalized="8585551234")
        make_store(phone_normalized="8585551234", is_archived=True)
        assert detect_duplicates(storage).as_dict()["phone_groups"] == 0

    def test_read_only(self, storage, make_store, row_counts):
        make_store()
        make_store()
        before = row_counts()
        detect_duplicates(storage)
        assert row_counts() == before


class TestExportReport:
    def test_address_csv_marks_canonical(self, storage, make_store, tmp_path):
        make_store()
        keep = make_store(claimed_by="owner-1")

        paths = export_report(detect_duplicates(storage), tmp_path / "dedup")

        assert [p.name for p in paths] == [
            "address-duplicates.csv",
            "phone-duplicates.csv",
            "name-city-duplicates.csv",
        ]
        with paths[0].open(newline="") as f:
            rows = list(csv.DictReader(f))
        assert [r["group_id"] for r in rows] == ["1", "1"]
        assert {r["store_id"]: r["is_canonical"] for r in rows} == {"1": "No", str(keep.id): "Yes"}
        assert rows[0]["city"] == "San Diego"
        assert rows[0]["state"] == "California"

    def test_empty_report_writes_headers(self, storage, tmp_path):
        paths = export_report(detect_duplicates(storage), tmp_path)
        assert paths[1].read_text().splitlines() == [
            "group_id,phone,store_id,name,address,city,state"
        ]
