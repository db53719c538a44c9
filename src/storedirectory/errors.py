"""Exception hierarchy shared by the ingestion and merge paths."""

from __future__ import annotations


class DirectoryError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(DirectoryError):
    """Setup-time problem (missing flag, unreadable input). Fatal before any write."""


class StorageError(DirectoryError):
    """A storage operation failed (transaction failure, driver error)."""


class ConstraintViolation(StorageError):
    """A write violated a unique or foreign-key constraint."""


class MergeConflict(StorageError):
    """The canonical record changed underneath a merge and can no longer absorb duplicates."""
