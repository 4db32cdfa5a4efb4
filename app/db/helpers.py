# app/db/helpers.py
"""
Query helpers shared by the repositories.

Each helper borrows a pooled connection unless the caller passes one in
(for work that must share a transaction), and turns psycopg errors into
DatabaseError / DuplicateKeyError so services never import psycopg.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import errors as pg_errors

from app.db.pool import get_db_connection, get_db_transaction
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """A query or transaction failed."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class DuplicateKeyError(DatabaseError):
    """A unique index rejected the write."""

    def __init__(self, message: str, operation: str = "unknown", constraint: str | None = None):
        super().__init__(message, operation=operation, recoverable=False)
        self.constraint = constraint


def _translate_error(e: psycopg.Error, query: str, operation: str) -> DatabaseError:
    if isinstance(e, pg_errors.UniqueViolation):
        constraint = getattr(getattr(e, "diag", None), "constraint_name", None)
        logger.debug("Unique constraint hit", operation=operation, constraint=constraint)
        return DuplicateKeyError(f"Duplicate key: {e}", operation=operation, constraint=constraint)

    logger.error("Database query failed", operation=operation, query=query[:100], error=str(e))
    return DatabaseError(f"Query failed: {e}", operation=operation)


@asynccontextmanager
async def _borrow(
    connection: psycopg.AsyncConnection | None,
) -> AsyncIterator[psycopg.AsyncConnection]:
    if connection is not None:
        yield connection
        return
    async with await get_db_connection() as conn:
        yield conn


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """
    Run a query and return the first row as a dict, or None.

    Args:
        query: SQL with %s placeholders
        params: Query parameters
        connection: Existing connection to reuse
    """
    try:
        async with _borrow(connection) as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()
    except psycopg.Error as e:
        raise _translate_error(e, query, "fetch_one") from e


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    """Run a query and return every row as a dict."""
    try:
        async with _borrow(connection) as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()
    except psycopg.Error as e:
        raise _translate_error(e, query, "fetch_all") from e


async def fetch_val(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> Any:
    """First column of the first row (COUNT(*), RETURNING id, ...)."""
    row = await fetch_one(query, params, connection=connection)
    if not row:
        return None
    return next(iter(row.values()))


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """Run a write and return the affected row count."""
    try:
        async with _borrow(connection) as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
    except psycopg.Error as e:
        raise _translate_error(e, query, "execute") from e


async def execute_transaction(queries_and_params: list[tuple]) -> bool:
    """
    Run several statements atomically.

    Example:
        await execute_transaction([
            ("DELETE FROM user_music_taste WHERE user_id = %s", (user_id,)),
            ("INSERT INTO user_music_taste ...", (...)),
        ])
    """
    try:
        async with await get_db_transaction() as conn:
            for query, params in queries_and_params:
                await conn.execute(query, params)
    except psycopg.Error as e:
        logger.error("Transaction failed", statements=len(queries_and_params), error=str(e))
        raise DatabaseError(f"Transaction failed: {e}", operation="transaction") from e

    logger.debug("Transaction committed", statements=len(queries_and_params))
    return True
