"""Outbound reply processing — raw model text to a structured reply.

Pipeline order (each step consumes the previous one's output):
1. Directive extraction ($nick / $embed become actions)
2. Sanitising (artifact cleanup, $[code] blocks, emoji repair)
3. Link extraction (URLs become buttons)

Also renders rich content as a Discord embed payload. Platform caps
(embed field lengths, message length) are applied here, not in the
parsing stages.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from .directives import RenameDirective, RichContentDirective, parse_directives
from .links import ExtractedLink, extract_links, is_valid_url
from .sanitize import EmojiCatalog, sanitize

logger = logging.getLogger("raphael.outbound")

MAX_CONTENT_LENGTH = 1900
EMBED_COLOR = 0x5865F2

EMBED_TITLE_LIMIT = 250
EMBED_DESCRIPTION_LIMIT = 4000
EMBED_FOOTER_LIMIT = 2048
EMBED_AUTHOR_LIMIT = 256

_LITERAL_NEWLINE_RE = re.compile(r'\\n')


@dataclass
class StructuredReply:
    """What the messaging layer delivers for one model reply."""
    display_text: str
    rich_content: Optional[RichContentDirective] = None
    actions: list[RenameDirective] = field(default_factory=list)
    links: list[ExtractedLink] = field(default_factory=list)


def process_reply(raw: str, emoji_catalog: Optional[EmojiCatalog] = None) -> StructuredReply:
    """Run the full outbound pipeline on a raw model reply.

    Args:
        raw: Assistant message exactly as the backend returned it
        emoji_catalog: Guild emoji lookup (None outside guilds)

    Returns:
        StructuredReply with display text, first rich-content block,
        rename actions and extracted links
    """
    parsed = parse_directives(raw or "")
    text = sanitize(parsed.stripped_text, emoji_catalog)
    extraction = extract_links(text)

    reply = StructuredReply(
        display_text=extraction.clean_text,
        rich_content=parsed.rich_content,
        actions=parsed.renames,
        links=extraction.links,
    )
    logger.debug(
        f"Processed reply: {len(reply.display_text)} chars, "
        f"embed={'yes' if reply.rich_content else 'no'}, "
        f"{len(reply.actions)} actions, {len(reply.links)} links"
    )
    return reply


def _embed_text(text: str) -> str:
    """Turn the literal \\n sequences the model writes into real newlines."""
    return _LITERAL_NEWLINE_RE.sub("\n", text)


def build_embed(rich: RichContentDirective) -> dict:
    """Render a rich-content directive as a Discord embed payload.

    URLs for image, thumbnail and link are dropped unless valid.
    """
    embed = {
        "description": _embed_text(rich.description)[:EMBED_DESCRIPTION_LIMIT],
        "color": EMBED_COLOR,
    }
    if rich.title:
        embed["title"] = rich.title[:EMBED_TITLE_LIMIT]
    if rich.footer:
        embed["footer"] = {"text": _embed_text(rich.footer)[:EMBED_FOOTER_LIMIT]}
    if rich.image and is_valid_url(rich.image):
        embed["image"] = {"url": rich.image}
    if rich.thumbnail and is_valid_url(rich.thumbnail):
        embed["thumbnail"] = {"url": rich.thumbnail}
    if rich.author:
        embed["author"] = {"name": rich.author[:EMBED_AUTHOR_LIMIT]}
    if rich.url and is_valid_url(rich.url):
        embed["url"] = rich.url
    return embed


def message_content(reply: StructuredReply, notes: Optional[list[str]] = None) -> Optional[str]:
    """Plain message text to send alongside the reply, or None.

    When the reply carries rich content the embed replaces the text
    entirely, as the persona prompt instructs. Action notes are appended
    as a bullet list, and are kept alongside an embed.
    """
    notes_block = "Actions:\n- " + "\n- ".join(notes) if notes else ""
    if reply.rich_content is not None:
        return notes_block[:MAX_CONTENT_LENGTH] or None
    text = "\n\n".join(part for part in (reply.display_text, notes_block) if part)
    return text[:MAX_CONTENT_LENGTH]
