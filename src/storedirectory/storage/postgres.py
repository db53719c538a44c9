"""PostgreSQL storage backend.

Statements are composed with ``psycopg.sql`` from the table and column names
declared on the row models.  The connection runs in autocommit mode, so each
``transaction()`` block commits on exit and nested blocks become savepoints.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from enum import Enum
from typing import Any

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

from storedirectory.config import Settings, get_settings
from storedirectory.db import execute_command, execute_query, get_connection
from storedirectory.errors import ConfigurationError, ConstraintViolation, StorageError
from storedirectory.storage.base import R, UpsertResult

_INSERTED_FLAG = "_upsert_inserted"


def _prepare(value: Any) -> Any:
    """Adapt Python values to what psycopg expects for our column types."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return Jsonb(value)
    return value


def _where(filters: Mapping[str, Any]) -> tuple[sql.Composable, list[Any]]:
    if not filters:
        return sql.SQL(""), []

    clauses: list[sql.Composable] = []
    params: list[Any] = []
    for column, value in filters.items():
        if value is None:
            clauses.append(sql.SQL("{} IS NULL").format(sql.Identifier(column)))
        else:
            clauses.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
            params.append(_prepare(value))
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), params


class PostgresStorage:
    """``StorageClient`` backed by a psycopg 3 connection."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self.conn = conn

    @contextmanager
    def _errors(self) -> Iterator[None]:
        try:
            yield
        except psycopg.IntegrityError as exc:
            raise ConstraintViolation(str(exc)) from exc
        except psycopg.Error as exc:
            raise StorageError(str(exc)) from exc

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
        where, params = _where(filters)
        query = sql.SQL("SELECT * FROM {}").format(sql.Identifier(model.__table__)) + where
        if order_by:
            query += sql.SQL(" ORDER BY {}").format(sql.Identifier(order_by))
        if limit is not None:
            query += sql.SQL(" LIMIT %s")
            params.append(limit)
        if offset:
            query += sql.SQL(" OFFSET %s")
            params.append(offset)

        with self._errors():
            rows = execute_query(self.conn, query, tuple(params))
        return [model.model_validate(r) for r in rows]

    def count(self, model: type[R], **filters: Any) -> int:
        where, params = _where(filters)
        query = sql.SQL("SELECT count(*) AS n FROM {}").format(sql.Identifier(model.__table__)) + where
        with self._errors():
            rows = execute_query(self.conn, query, tuple(params))
        return int(rows[0]["n"])

    def insert(self, model: type[R], values: Mapping[str, Any]) -> R:
        columns = list(values)
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            sql.Identifier(model.__table__),
            sql.SQL(", ").join(map(sql.Identifier, columns)),
            sql.SQL(", ").join(sql.Placeholder() * len(columns)),
        )
        with self._errors():
            rows = execute_query(self.conn, query, tuple(_prepare(values[c]) for c in columns))
        return model.model_validate(rows[0])

    def upsert_on_conflict(
        self,
        model: type[R],
        values: Mapping[str, Any],
        conflict: Sequence[str],
        update: Sequence[str] | None = None,
    ) -> UpsertResult[R]:
        columns = list(values)
        # A no-op assignment still locks and returns the existing row.
        assigned = list(update) if update else [conflict[0]]
        query = sql.SQL(
            "INSERT INTO {table} ({columns}) VALUES ({values}) "
            "ON CONFLICT ({conflict}) DO UPDATE SET {assignments} "
            "RETURNING *, (xmax = 0) AS {flag}"
        ).format(
            table=sql.Identifier(model.__table__),
            columns=sql.SQL(", ").join(map(sql.Identifier, columns)),
            values=sql.SQL(", ").join(sql.Placeholder() * len(columns)),
            conflict=sql.SQL(", ").join(map(sql.Identifier, conflict)),
            assignments=sql.SQL(", ").join(
                sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(c)) for c in assigned
            ),
            flag=sql.Identifier(_INSERTED_FLAG),
        )
        with self._errors():
            rows = execute_query(self.conn, query, tuple(_prepare(values[c]) for c in columns))
        row = dict(rows[0])
        inserted = bool(row.pop(_INSERTED_FLAG))
        return UpsertResult(row=model.model_validate(row), inserted=inserted)

    def update(self, model: type[R], values: Mapping[str, Any], **filters: Any) -> int:
        where, where_params = _where(filters)
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(c)) for c in values
        )
        query = sql.SQL("UPDATE {} SET ").format(sql.Identifier(model.__table__)) + assignments + where
        params = [_prepare(v) for v in values.values()] + where_params
        with self._errors():
            return execute_command(self.conn, query, tuple(params))

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._errors(), self.conn.transaction():
            yield

    def close(self) -> None:
        self.conn.close()


def open_storage(settings: Settings | None = None) -> PostgresStorage:
    """Connect to the directory database named by ``SD_DATABASE_URL``.

    Raises:
        ConfigurationError: If no database URL is configured.
        StorageError: If the connection cannot be opened.
    """
    if settings is None:
        settings = get_settings()
    if not settings.database_url:
        msg = "SD_DATABASE_URL is not set"
        raise ConfigurationError(msg)

    try:
        conn = get_connection(settings)
    except psycopg.Error as exc:
        raise StorageError(f"cannot connect to database: {exc}") from exc
    return PostgresStorage(conn)
