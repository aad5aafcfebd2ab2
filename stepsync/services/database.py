"""Postgres connection pool for account and cursor persistence.

Uses ``asyncpg`` directly; every call runs inside its own transaction.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import asyncpg

from stepsync.config import Settings, get_settings

logger = logging.getLogger("stepsync.db")

# Module-level connection pool — initialized once at app startup
_pool: asyncpg.Pool | None = None


async def init_pool(settings: Settings | None = None) -> asyncpg.Pool:
    """Create the asyncpg connection pool. Call once at app startup."""
    global _pool
    s = settings or get_settings()
    _pool = await asyncpg.create_pool(
        s.database_url,
        min_size=s.database_pool_min,
        max_size=s.database_pool_max,
        command_timeout=30,
    )
    logger.info(
        "Database pool initialized (min=%d, max=%d)",
        s.database_pool_min,
        s.database_pool_max,
    )
    return _pool


async def close_pool() -> None:
    """Drain the pool. Call at app shutdown."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Database pool not initialized — call init_pool() first")
    return _pool


@asynccontextmanager
async def get_connection(
    pool: asyncpg.Pool | None = None,
) -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a connection and open a transaction on it.

    Usage::

        async with get_connection() as conn:
            row = await conn.fetchrow("SELECT * FROM accounts WHERE account_id = $1", uid)
    """
    pool = pool or get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            yield conn


async def execute(query: str, *args: Any, pool: asyncpg.Pool | None = None) -> str:
    """Execute a single statement and return its status string."""
    async with get_connection(pool) as conn:
        return await conn.execute(query, *args)


async def fetchrow(
    query: str, *args: Any, pool: asyncpg.Pool | None = None
) -> asyncpg.Record | None:
    """Fetch a single row."""
    async with get_connection(pool) as conn:
        return await conn.fetchrow(query, *args)


async def fetchval(query: str, *args: Any, pool: asyncpg.Pool | None = None) -> Any:
    """Fetch a single value."""
    async with get_connection(pool) as conn:
        return await conn.fetchval(query, *args)
