"""Tests for user statistics queries (database mocked)."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from raphael.db import connection
from raphael.db import models


def _patched_connection(conn):
    @asynccontextmanager
    async def _get_connection():
        yield conn
    return patch.object(models, "get_connection", _get_connection)


class TestQueries:
    @pytest.mark.asyncio
    async def test_ensure_schema(self):
        conn = AsyncMock()
        with _patched_connection(conn):
            await models.ensure_schema()
        assert "CREATE TABLE IF NOT EXISTS users" in conn.execute.call_args[0][0]

    @pytest.mark.asyncio
    async def test_upsert_user(self):
        conn = AsyncMock()
        with _patched_connection(conn):
            await models.upsert_user("42", "rimuru")
        sql, *args = conn.execute.call_args[0]
        assert "ON CONFLICT (id) DO UPDATE" in sql
        assert "message_count = users.message_count + 1" in sql
        assert args == ["42", "rimuru", ""]

    @pytest.mark.asyncio
    async def test_get_user_stats(self):
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value={"message_count": 3, "joined_at": None, "last_interaction": None})
        with _patched_connection(conn):
            stats = await models.get_user_stats("42")
        assert stats["message_count"] == 3

    @pytest.mark.asyncio
    async def test_get_user_missing(self):
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value=None)
        with _patched_connection(conn):
            assert await models.get_user("404") is None


class TestConnection:
    def test_get_pool_uninitialized(self):
        with patch.object(connection, "_pool", None):
            with pytest.raises(RuntimeError, match="not initialized"):
                connection.get_pool()

    @pytest.mark.asyncio
    async def test_init_db_retries(self):
        pool = MagicMock()
        pool.close = AsyncMock()
        create_pool = AsyncMock(side_effect=[OSError("refused"), pool])

        with patch("asyncpg.create_pool", create_pool), \
             patch("raphael.db.connection.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await connection.init_db("postgresql://x@localhost/x")

        assert result is pool
        assert create_pool.await_count == 2
        sleep.assert_awaited_once_with(1)
        assert connection._pool is pool

        await connection.close_db()
        assert connection._pool is None

    @pytest.mark.asyncio
    async def test_init_db_gives_up(self):
        create_pool = AsyncMock(side_effect=OSError("refused"))

        with patch("asyncpg.create_pool", create_pool), \
             patch("raphael.db.connection.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(OSError):
                await connection.init_db("postgresql://x@localhost/x")

        assert create_pool.await_count == 5
