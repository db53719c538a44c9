"""Storage-client interface shared by the Postgres and in-memory backends."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from storedirectory.models import Row

R = TypeVar("R", bound=Row)


@dataclass(frozen=True)
class UpsertResult(Generic[R]):
    """Outcome of an insert-or-update: the stored row and whether it was newly created."""

    row: R
    inserted: bool


class StorageClient(Protocol):
    """Generic query/transaction interface over the directory tables.

    Filters are equality matches on column values; ``None`` matches NULL.
    Every method returns validated row models, never raw dicts.
    """

    def get(self, model: type[R], **filters: Any) -> R | None:
        """Return the first row matching *filters*, or ``None``."""
        ...

    def select(
        self,
        model: type[R],
        *,
        order_by: str | None = None,
        limit: int | None = None,
        offset: int = 0,
        **filters: Any,
    ) -> list[R]:
        """Return all rows matching *filters*."""
        ...

    def count(self, model: type[R], **filters: Any) -> int:
        ...

    def insert(self, model: type[R], values: Mapping[str, Any]) -> R:
        """Insert one row. Raises ``ConstraintViolation`` on a unique conflict."""
        ...

    def upsert_on_conflict(
        self,
        model: type[R],
        values: Mapping[str, Any],
        conflict: Sequence[str],
        update: Sequence[str] | None = None,
    ) -> UpsertResult[R]:
        """Insert *values*, or resolve a conflict on the *conflict* columns.

        With *update* given, the listed columns of the existing row are
        overwritten from *values*.  With ``update=None`` the existing row is
        returned untouched (insert-or-return-existing).
        """
        ...

    def update(self, model: type[R], values: Mapping[str, Any], **filters: Any) -> int:
        """Update every row matching *filters*. Returns the affected row count."""
        ...

    def transaction(self) -> AbstractContextManager[None]:
        """Run the enclosed block atomically; nested blocks roll back independently."""
        ...

    def close(self) -> None:
        ...


def iter_pages(
    storage: StorageClient,
    model: type[R],
    *,
    page_size: int = 1000,
    order_by: str = "id",
    **filters: Any,
) -> Iterator[R]:
    """Yield every matching row, reading *page_size* rows at a time."""
    offset = 0
    while True:
        page = storage.select(model, order_by=order_by, limit=page_size, offset=offset, **filters)
        yield from page
        if len(page) < page_size:
            return
        offset += page_size
