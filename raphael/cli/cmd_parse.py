"""Offline reply pipeline command — inspect what a model reply turns into."""

import json
import click

from . import cli
from .shared import console


@cli.command()
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.option("--json", "as_json", is_flag=True, help="Print the structured reply as JSON")
def parse(source, as_json):
    """Run directive parsing, sanitising and link extraction on SOURCE (default: stdin)."""
    from dataclasses import asdict
    from raphael.communication.outbound import build_embed, process_reply

    reply = process_reply(source.read())

    if as_json:
        data = asdict(reply)
        data["embed"] = build_embed(reply.rich_content) if reply.rich_content else None
        click.echo(json.dumps(data, ensure_ascii=False, indent=2))
        return

    console.print("[bold]Text:[/bold]")
    if reply.display_text:
        console.print(reply.display_text, markup=False)
    else:
        console.print("[dim](empty)[/dim]")

    if reply.rich_content:
        console.print("\n[bold]Embed:[/bold]")
        for name, value in build_embed(reply.rich_content).items():
            console.print(f"  {name}: {value}", markup=False)

    if reply.actions:
        console.print("\n[bold]Actions:[/bold]")
        for action in reply.actions:
            console.print(f"  rename {action.target_user_id} → {action.new_nickname}", markup=False)

    if reply.links:
        console.print("\n[bold]Links:[/bold]")
        for link in reply.links:
            console.print(f"  [{link.label}] {link.url}", markup=False)
