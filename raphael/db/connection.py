"""Database connection management for the user statistics store."""

import asyncio
import logging

import asyncpg
from contextlib import asynccontextmanager
from typing import Optional

logger = logging.getLogger("raphael.db")

_pool: Optional[asyncpg.Pool] = None

# Postgres usually comes up alongside the bot, give it a moment
_RETRY_DELAYS = (1, 2, 4, 8)


async def init_db(dsn: str, min_size: int = 1, max_size: int = 4) -> asyncpg.Pool:
    """Open the connection pool, retrying while the server starts up."""
    global _pool
    attempts = len(_RETRY_DELAYS) + 1

    for attempt in range(attempts):
        try:
            _pool = await asyncpg.create_pool(dsn, min_size=min_size, max_size=max_size)
            logger.info("Database initialized")
            return _pool
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            if attempt == attempts - 1:
                logger.error(f"Database connection failed after {attempts} attempts: {e}")
                raise
            delay = _RETRY_DELAYS[attempt]
            logger.warning(f"Database not ready (attempt {attempt + 1}/{attempts}): {e}. Retrying in {delay}s...")
            await asyncio.sleep(delay)


async def close_db():
    """Close the connection pool."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _pool


@asynccontextmanager
async def get_connection():
    """Borrow a connection from the pool."""
    pool = get_pool()
    async with pool.acquire() as conn:
        yield conn
