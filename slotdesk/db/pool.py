# slotdesk/db/pool.py
"""
PostgreSQL connection pool manager using psycopg_pool.

One manager is created per application in the lifespan handler and reaches
route handlers through the `get_db` dependency. Services never open
connections themselves; they borrow one with `db.connection()` or, when
several statements must commit together, `db.transaction()`.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from fastapi import Request
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from slotdesk.config import Settings, settings
from slotdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 30.0
UTILIZATION_UNHEALTHY_PERCENT = 90
UTILIZATION_WARNING_PERCENT = 80


class DatabasePoolManager:
    """
    Owns the AsyncConnectionPool for the lifetime of the application.

    Connections are only ever handed out through async context managers, so
    they go back to the pool whether the block returns, raises a service
    error or fails in the driver.
    """

    def __init__(self, config: Settings = settings):
        self.config = config
        self.pool: AsyncConnectionPool | None = None
        self._initialized = False
        self._closed = False

    @property
    def ready(self) -> bool:
        return self._initialized and not self._closed and self.pool is not None

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("Database pool already initialized")
            return

        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        pool_config = self.config.get_db_pool_config()
        logger.info("Opening database pool", **pool_config)

        self.pool = AsyncConnectionPool(
            conninfo=self.config.DATABASE_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **pool_config,
        )

        try:
            await self.pool.open(wait=True)
            self._initialized = True
            await self._ping()
        except Exception as e:
            logger.error("Failed to initialize database pool", error=str(e))
            self._initialized = False
            await self._discard_pool()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info("Database pool ready")

    async def _discard_pool(self) -> None:
        if self.pool is None:
            return
        try:
            await self.pool.close()
        except Exception as close_error:
            logger.warning("Error closing half-open pool", error=str(close_error))
        self.pool = None

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        """Per-connection session setup: dict rows, autocommit, UTC, timeouts."""
        conn.row_factory = dict_row

        # Statements autocommit unless wrapped in transaction()
        await conn.set_autocommit(True)

        await conn.execute(
            sql.SQL("SET application_name = {}").format(
                sql.Literal(f"slotdesk-{self.config.environment}")
            )
        )
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute(
            sql.SQL("SET statement_timeout = {}").format(
                sql.Literal(self.config.DB_STATEMENT_TIMEOUT)
            )
        )

    async def _ping(self) -> float:
        """Round-trip `SELECT 1`; returns the elapsed milliseconds."""
        started = time.perf_counter()
        async with self.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1 AS ok")
                row = await cur.fetchone()
        if not row or row["ok"] != 1:
            raise RuntimeError(f"Unexpected ping result: {row!r}")
        return (time.perf_counter() - started) * 1000

    async def close(self) -> None:
        if not self._initialized or self._closed:
            return

        logger.info("Closing database pool")
        try:
            if self.pool:
                await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.warning("Database pool close timed out, forcing shutdown")
        finally:
            self._initialized = False
            self._closed = True

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Borrow a connection for the duration of the block.

        Usage:
            async with db.connection() as conn:
                row = await fetch_one(conn, "SELECT 1")
        """
        if not self.ready:
            raise RuntimeError("Database pool is not available")

        try:
            async with self.pool.connection() as conn:
                yield conn
        except psycopg.OperationalError as e:
            logger.error("Database connection error", error=str(e), error_type=type(e).__name__)
            raise

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Borrow a connection inside a transaction block.

        Commits when the block exits normally, rolls back when it raises.
        Row locks taken with SELECT ... FOR UPDATE last until then.

        Usage:
            async with db.transaction() as conn:
                await fetch_one(conn, "SELECT ... FOR UPDATE")
                await execute_query(conn, "UPDATE ...")
        """
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    def _pool_stats(self) -> dict[str, Any]:
        stats = self.pool.get_stats()
        size = stats.get("pool_size", 0)
        available = stats.get("pool_available", 0)
        utilization = (size - available) / size * 100 if size else 0
        return {
            "pool_size": size,
            "pool_available": available,
            "pool_utilization_percent": round(utilization, 2),
            "requests_waiting": stats.get("requests_waiting", 0),
        }

    async def health_check(self) -> dict[str, Any]:
        """
        Readiness of the pool for /readyz.

        Returns:
            {"healthy", "service", ...} with pool statistics and warnings
            when reachable, or an "error" entry when not
        """
        base = {"service": "database_pool"}
        if not self.ready:
            return {**base, "healthy": False, "error": "Pool not available"}

        try:
            connection_time_ms = await self._ping()
        except Exception as e:
            logger.error("Database pool health check failed", error=str(e))
            return {**base, "healthy": False, "error": str(e), "error_type": type(e).__name__}

        pool_stats = self._pool_stats()
        utilization = pool_stats["pool_utilization_percent"]

        warnings = []
        if utilization > UTILIZATION_WARNING_PERCENT:
            warnings.append(f"High pool utilization: {utilization:.1f}%")
        if pool_stats["requests_waiting"]:
            warnings.append(f"Requests waiting for connections: {pool_stats['requests_waiting']}")

        health = {
            **base,
            "healthy": utilization < UTILIZATION_UNHEALTHY_PERCENT,
            "connection_time_ms": round(connection_time_ms, 2),
            "pool_stats": pool_stats,
        }
        if warnings:
            health["warnings"] = warnings
        return health


def get_db(request: Request) -> DatabasePoolManager:
    """FastAPI dependency returning the application's pool manager."""
    return request.app.state.db
