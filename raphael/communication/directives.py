"""Directive parsing — extract $nick / $embed instructions from LLM output.

The model embeds these directives anywhere in its reply text. They are
pulled out as structured actions and their text is removed before the
reply is shown to anyone.

Supported directives (keywords are case-insensitive):
  $nick[<nickname>;<user_id>]                                 — rename a member
  $embed[<title>;<description>;<footer>;<image>;<thumbnail>;<author>;<url>]
                                                              — rich content block

In $embed, "_" marks a field as absent and missing trailing fields count
as "_". Anything else that looks like $word[...] is left alone.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Union

PLACEHOLDER = "_"

EMBED_FIELDS = ("title", "description", "footer", "image", "thumbnail", "author", "url")

_NICK_RE = re.compile(r'\$nick\[([^;\]]+);([^\]]+)\]', re.IGNORECASE)
_EMBED_RE = re.compile(r'\$embed\[([^\]]*)\]', re.IGNORECASE)


@dataclass(frozen=True)
class RenameDirective:
    target_user_id: str
    new_nickname: str


@dataclass(frozen=True)
class RichContentDirective:
    description: str
    title: Optional[str] = None
    footer: Optional[str] = None
    image: Optional[str] = None
    thumbnail: Optional[str] = None
    author: Optional[str] = None
    url: Optional[str] = None


Directive = Union[RenameDirective, RichContentDirective]


@dataclass
class ParsedReply:
    """Result of a parse: reply text without directives + extracted directives."""
    stripped_text: str
    directives: list[Directive] = field(default_factory=list)

    @property
    def renames(self) -> list[RenameDirective]:
        return [d for d in self.directives if isinstance(d, RenameDirective)]

    @property
    def rich_content(self) -> Optional[RichContentDirective]:
        """First rich-content directive of the reply, if any."""
        for d in self.directives:
            if isinstance(d, RichContentDirective):
                return d
        return None


def _optional(value: str) -> Optional[str]:
    if not value or value == PLACEHOLDER:
        return None
    return value


def _rename_from_match(m: re.Match) -> Optional[RenameDirective]:
    nickname = m.group(1).strip()
    user_id = m.group(2).strip()
    if not nickname or not user_id:
        return None
    return RenameDirective(target_user_id=user_id, new_nickname=nickname)


def _rich_content_from_match(m: re.Match) -> Optional[RichContentDirective]:
    parts = [p.strip() for p in m.group(1).strip().split(";")]
    while len(parts) < len(EMBED_FIELDS):
        parts.append(PLACEHOLDER)
    # Extra fields past the seventh are ignored
    values = dict(zip(EMBED_FIELDS, parts))

    description = values.pop("description")
    if not description or description == PLACEHOLDER:
        return None
    return RichContentDirective(
        description=description,
        **{name: _optional(value) for name, value in values.items()},
    )


def _remove_spans(text: str, spans: list[tuple[int, int]]) -> str:
    """Cut the given [start, end) spans out of text, merging overlaps."""
    if not spans:
        return text
    pieces = []
    pos = 0
    for start, end in sorted(spans):
        if end <= pos:
            continue
        start = max(start, pos)
        pieces.append(text[pos:start])
        pos = end
    pieces.append(text[pos:])
    return "".join(pieces)


def parse_directives(raw: str) -> ParsedReply:
    """Extract every $nick / $embed directive from raw model output.

    Matches are found with a global scan over the raw text. Malformed
    directives (empty nickname or user id, empty description) produce no
    action, but a span the grammar matched is always removed from the
    returned text. Directives come back in order of appearance.

    Args:
        raw: LLM response text

    Returns:
        ParsedReply with the stripped text and the ordered directives
    """
    if not raw:
        return ParsedReply(stripped_text=raw or "")

    found: list[tuple[int, Directive]] = []
    spans: list[tuple[int, int]] = []

    for m in _NICK_RE.finditer(raw):
        spans.append(m.span())
        directive = _rename_from_match(m)
        if directive:
            found.append((m.start(), directive))

    for m in _EMBED_RE.finditer(raw):
        spans.append(m.span())
        directive = _rich_content_from_match(m)
        if directive:
            found.append((m.start(), directive))

    found.sort(key=lambda item: item[0])
    return ParsedReply(
        stripped_text=_remove_spans(raw, spans),
        directives=[d for _, d in found],
    )
