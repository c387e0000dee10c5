"""User statistics queries."""

from typing import Optional
from .connection import get_connection


SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT,
    discriminator TEXT,
    joined_at TIMESTAMPTZ DEFAULT NOW(),
    message_count INTEGER DEFAULT 0,
    last_interaction TIMESTAMPTZ
);
"""


async def ensure_schema():
    """Create the users table if it does not exist."""
    async with get_connection() as conn:
        await conn.execute(SCHEMA)


async def get_user(user_id: str) -> Optional[dict]:
    """Full users row for a Discord user ID, or None."""
    async with get_connection() as conn:
        row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
        return dict(row) if row else None


async def upsert_user(user_id: str, username: str, discriminator: Optional[str] = None):
    """Count one message from a user, creating the row on first contact."""
    async with get_connection() as conn:
        await conn.execute("""
            INSERT INTO users (id, username, discriminator, message_count, last_interaction)
            VALUES ($1, $2, $3, 1, NOW())
            ON CONFLICT (id) DO UPDATE SET
                username = EXCLUDED.username,
                discriminator = EXCLUDED.discriminator,
                message_count = users.message_count + 1,
                last_interaction = NOW()
        """, user_id, username, discriminator or "")


async def get_user_stats(user_id: str) -> Optional[dict]:
    """Message count, first seen and last interaction for a user."""
    async with get_connection() as conn:
        row = await conn.fetchrow("""
            SELECT message_count, joined_at, last_interaction
            FROM users WHERE id = $1
        """, user_id)
        return dict(row) if row else None
