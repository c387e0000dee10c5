"""Raphaël — Main entry point."""

import asyncio
import logging
import os
import sys

from .channels.discord import DiscordChannel
from .config import RaphaelSettings, load_settings
from .conversation import ChatRelay
from .db.connection import close_db, init_db
from .db.models import ensure_schema
from .llm.ollama import OllamaProvider
from .session import SessionStore

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("raphael")


def configure_logging(settings: RaphaelSettings, level: int = logging.INFO):
    """error.log gets errors only, combined.log everything, console unless production."""
    os.makedirs(settings.log_dir, exist_ok=True)

    error_handler = logging.FileHandler(os.path.join(settings.log_dir, "error.log"), encoding="utf-8")
    error_handler.setLevel(logging.ERROR)
    handlers: list[logging.Handler] = [
        error_handler,
        logging.FileHandler(os.path.join(settings.log_dir, "combined.log"), encoding="utf-8"),
    ]
    if not settings.is_production:
        handlers.append(logging.StreamHandler())  # stderr (console)

    logging.basicConfig(level=level, format=_log_format, handlers=handlers)


async def run() -> int:
    """Main run loop. Returns the process exit code."""
    settings = load_settings()
    configure_logging(settings)

    if not settings.discord_token:
        logger.critical("DISCORD_TOKEN is missing; add it to your .env file.")
        return 1

    try:
        await init_db(settings.database_url)
        await ensure_schema()

        store = SessionStore(default_model=settings.ollama_model)
        provider = OllamaProvider(settings.ollama_base_url, timeout=settings.ollama_timeout)
        relay = ChatRelay(provider, store)
        logger.info(f"Using {provider.name} at {settings.ollama_base_url} (model: {store.active_model})")

        async with DiscordChannel(relay, settings) as bot:
            logger.info("Raphaël is running. Press Ctrl+C to stop.")
            await bot.start(settings.discord_token)

    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
        return 1
    finally:
        await close_db()
    return 0


def main():
    """Entry point."""
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
