"""Database management commands."""

import asyncio
import click

from . import cli
from .shared import console


@cli.group()
def db():
    """Database management commands."""
    pass


@db.command("init")
def db_init():
    """Initialize database schema."""
    async def _init():
        from raphael.config import load_settings
        from raphael.db.connection import init_db, close_db
        from raphael.db.models import ensure_schema

        settings = load_settings()
        await init_db(settings.database_url)
        try:
            await ensure_schema()
        finally:
            await close_db()
        console.print("[green]✓ Database schema initialized[/green]")

    asyncio.run(_init())


@cli.command()
@click.argument("user_id")
def stats(user_id):
    """Show message statistics for a Discord user."""
    async def _stats():
        from raphael.config import load_settings
        from raphael.db.connection import init_db, close_db
        from raphael.db.models import get_user, get_user_stats

        settings = load_settings()
        await init_db(settings.database_url)
        try:
            user = await get_user(user_id)
            user_stats = await get_user_stats(user_id)
        finally:
            await close_db()

        if not user_stats:
            console.print(f"[yellow]No statistics for user {user_id}.[/yellow]")
            return

        console.print(f"[bold]{(user or {}).get('username') or user_id}[/bold] ({user_id})")
        console.print(f"  Messages:         {user_stats['message_count']}")
        console.print(f"  First seen:       {user_stats['joined_at']}")
        console.print(f"  Last interaction: {user_stats['last_interaction'] or 'never'}")

    asyncio.run(_stats())
