# slotdesk/db/helpers.py
"""
Database helper functions for common patterns.
Reduces boilerplate in the service layer.

Every helper runs on a connection the caller already holds, either from
`db.connection()` or `db.transaction()`, so the scope of acquisition (and of
the transaction) is always visible at the call site.
"""

from collections.abc import Mapping, Sequence
from typing import Any

import psycopg
from psycopg import errors as pg_errors
from psycopg import sql

from slotdesk.errors import ConflictError
from slotdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Query = str | sql.Composable


class DatabaseError(Exception):
    """Custom exception for database operations."""

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message)
        self.operation = operation


def _preview(query: Query) -> str:
    return query[:100] if isinstance(query, str) else repr(query)[:100]


def _translate(e: psycopg.Error, query: Query, operation: str) -> Exception:
    if isinstance(e, pg_errors.UniqueViolation):
        constraint = getattr(e.diag, "constraint_name", None)
        logger.info("Unique constraint violated", constraint=constraint, operation=operation)
        return ConflictError("Resource already exists")

    logger.error(f"Database {operation} error", query=_preview(query), error=str(e))
    return DatabaseError(f"Query failed: {e}", operation=operation)


async def fetch_one(
    conn: psycopg.AsyncConnection, query: Query, params: Sequence[Any] = ()
) -> dict[str, Any] | None:
    """
    Execute query and return single row as dict.

    Args:
        conn: Connection borrowed from the pool
        query: SQL query with %s placeholders
        params: Query parameters

    Returns:
        Dict with row data or None if no results
    """
    try:
        async with conn.cursor() as cur:
            await cur.execute(query, params)
            row = await cur.fetchone()
            return row if row else None
    except psycopg.Error as e:
        raise _translate(e, query, "fetch_one") from e


async def fetch_all(
    conn: psycopg.AsyncConnection, query: Query, params: Sequence[Any] = ()
) -> list[dict[str, Any]]:
    """Execute query and return all rows as list of dicts."""
    try:
        async with conn.cursor() as cur:
            await cur.execute(query, params)
            return await cur.fetchall()
    except psycopg.Error as e:
        raise _translate(e, query, "fetch_all") from e


async def fetch_val(
    conn: psycopg.AsyncConnection, query: Query, params: Sequence[Any] = ()
) -> Any:
    """Execute query and return the first column of the first row."""
    try:
        async with conn.cursor() as cur:
            await cur.execute(query, params)
            row = await cur.fetchone()
            return next(iter(row.values())) if row else None
    except psycopg.Error as e:
        raise _translate(e, query, "fetch_val") from e


async def execute_query(
    conn: psycopg.AsyncConnection, query: Query, params: Sequence[Any] = ()
) -> int:
    """Execute query and return number of affected rows."""
    try:
        cursor = await conn.execute(query, params)
        return cursor.rowcount
    except psycopg.Error as e:
        raise _translate(e, query, "execute") from e


def build_update(
    table: str, changes: Mapping[str, Any], *, key_column: str = "id"
) -> tuple[sql.Composed, list[Any]]:
    """
    Compose `UPDATE table SET a = %s, ... WHERE key = %s RETURNING *`.

    Column names are quoted as identifiers; callers pass only keys taken from
    an explicit request model, never raw request bodies.

    Returns:
        (query, params) where the key value must be appended by the caller
    """
    if not changes:
        raise ValueError("build_update requires at least one column")

    assignments = [
        sql.SQL("{} = %s").format(sql.Identifier(column)) for column in changes
    ]
    assignments.append(sql.SQL("updated_at = NOW()"))

    query = sql.SQL("UPDATE {table} SET {assignments} WHERE {key} = %s RETURNING *").format(
        table=sql.Identifier(table),
        assignments=sql.SQL(", ").join(assignments),
        key=sql.Identifier(key_column),
    )
    return query, list(changes.values())
