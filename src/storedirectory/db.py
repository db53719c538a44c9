"""PostgreSQL database connection via psycopg3."""

import psycopg
from psycopg.rows import dict_row

from storedirectory.config import Settings


def get_connection(settings: Settings | None = None, *, autocommit: bool = True) -> psycopg.Connection:
    """Open a synchronous connection to PostgreSQL with dict row factory.

    Connections default to autocommit so that every ``conn.transaction()``
    block commits on exit and nested blocks become savepoints.
    """
    if settings is None:
        from storedirectory.config import get_settings
        settings = get_settings()

    return psycopg.connect(settings.database_url, row_factory=dict_row, autocommit=autocommit)


def execute_query(conn: psycopg.Connection, query, params: tuple | dict = ()) -> list[dict]:
    """Execute a query and return all rows as dicts."""
    with conn.cursor() as cur:
        cur.execute(query, params)
        if cur.description:
            return cur.fetchall()
        return []


def execute_command(conn: psycopg.Connection, query, params: tuple | dict = ()) -> int:
    """Execute a statement that returns no rows. Returns the affected row count."""
    with conn.cursor() as cur:
        cur.execute(query, params)
        return cur.rowcount
