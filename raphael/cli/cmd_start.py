"""Start command."""

import asyncio
import sys
import click

from . import cli
from .shared import console


@cli.command()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def start(debug):
    """Start the Discord bot."""
    if debug:
        import logging
        logging.getLogger("raphael").setLevel(logging.DEBUG)

    from raphael.main import run
    console.print("[bold blue]Starting Raphaël...[/bold blue]")
    code = asyncio.run(run())
    if code:
        sys.exit(code)
