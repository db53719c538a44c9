"""Duplicate detection and merging for stores sharing a dedup key."""

from __future__ import annotations

from storedirectory.dedup.canonical import canonical_sort_key, select_canonical
from storedirectory.dedup.grouper import (
    DuplicateGroup,
    find_duplicate_groups,
    group_by_dedup_key,
    is_group_risky,
)
from storedirectory.dedup.merge import MergeOutcome, MergeRunStats, merge_group, run_merge
from storedirectory.dedup.report import DetectionReport, detect_duplicates, export_report

__all__ = [
    "DetectionReport",
    "DuplicateGroup",
    "MergeOutcome",
    "MergeRunStats",
    "canonical_sort_key",
    "detect_duplicates",
    "export_report",
    "find_duplicate_groups",
    "group_by_dedup_key",
    "is_group_risky",
    "merge_group",
    "run_merge",
    "select_canonical",
]
