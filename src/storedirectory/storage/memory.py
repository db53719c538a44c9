"""In-memory storage backend.

Mirrors the semantics of ``PostgresStorage`` closely enough to run the
ingestion and merge paths without a database: unique constraints are
enforced, upserts report whether they inserted, and transactions roll back
to a snapshot when the enclosed block raises.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from storedirectory.errors import ConstraintViolation
from storedirectory.models import Row
from storedirectory.storage.base import R, UpsertResult


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class MemoryStorage:
    """Thread-safe ``StorageClient`` keeping every table in a list of dicts."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables: dict[str, list[dict[str, Any]]] = {}
        self._sequences: dict[str, int] = {}

    # -- helpers ------------------------------------------------------------

    def _rows(self, model: type[Row]) -> list[dict[str, Any]]:
        return self._tables.setdefault(model.__table__, [])

    def _matching(self, model: type[Row], filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        wanted = {k: _plain(v) for k, v in filters.items()}
        return [
            row for row in self._rows(model)
            if all(row.get(col) == val for col, val in wanted.items())
        ]

    def _build(self, model: type[R], values: Mapping[str, Any]) -> dict[str, Any]:
        record = {k: _plain(v) for k, v in values.items()}
        pk = model.__primary_key__
        if pk == "id" and record.get("id") is None:
            next_id = self._sequences.get(model.__table__, 0) + 1
            self._sequences[model.__table__] = next_id
            record["id"] = next_id
        if "created_at" in model.model_fields and record.get("created_at") is None:
            record["created_at"] = datetime.now(UTC)
        return model.model_validate(record).model_dump()

    def _check_unique(self, model: type[Row], record: Mapping[str, Any]) -> None:
        constraints = ((model.__primary_key__,), *model.__unique__)
        for columns in constraints:
            key = tuple(record.get(c) for c in columns)
            if any(v is None for v in key):
                continue
            for row in self._rows(model):
                if tuple(row.get(c) for c in columns) == key:
                    msg = f"duplicate key value violates unique constraint on {model.__table__}{columns}"
                    raise ConstraintViolation(msg)

    # -- StorageClient ------------------------------------------------------

    def get(self, model: type[R], **filters: Any) -> R | None:
        rows = self.select(model, limit=1, **filters)
        return rows[0] if rows else None

    def select(
        self,
        model: type[R],
        *,
        order_by: str | None = None,
        limit: int | None = None,
        offset: int = 0,
        **filters: Any,
    ) -> list[R]:
        with self._lock:
            rows = self._matching(model, filters)
            if order_by:
                rows = sorted(rows, key=lambda r: (r.get(order_by) is None, r.get(order_by)))
            end = None if limit is None else offset + limit
            return [model.model_validate(copy.deepcopy(r)) for r in rows[offset:end]]

    def count(self, model: type[R], **filters: Any) -> int:
        with self._lock:
            return len(self._matching(model, filters))

    def insert(self, model: type[R], values: Mapping[str, Any]) -> R:
        with self._lock:
            record = self._build(model, values)
            self._check_unique(model, record)
            self._rows(model).append(record)
            return model.model_validate(copy.deepcopy(record))

    def upsert_on_conflict(
        self,
        model: type[R],
        values: Mapping[str, Any],
        conflict: Sequence[str],
        update: Sequence[str] | None = None,
    ) -> UpsertResult[R]:
        with self._lock:
            existing = self._matching(model, {c: values.get(c) for c in conflict})
            if not existing:
                return UpsertResult(row=self.insert(model, values), inserted=True)

            row = existing[0]
            if update:
                merged = {**row, **{c: _plain(values[c]) for c in update}}
                row.update(model.model_validate(merged).model_dump())
            return UpsertResult(row=model.model_validate(copy.deepcopy(row)), inserted=False)

    def update(self, model: type[R], values: Mapping[str, Any], **filters: Any) -> int:
        with self._lock:
            rows = self._matching(model, filters)
            for row in rows:
                merged = {**row, **{k: _plain(v) for k, v in values.items()}}
                row.update(model.model_validate(merged).model_dump())
            return len(rows)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            saved = copy.deepcopy((self._tables, self._sequences))
            try:
                yield
            except BaseException:
                self._tables, self._sequences = saved
                raise

    def close(self) -> None:
        """Nothing to release."""
