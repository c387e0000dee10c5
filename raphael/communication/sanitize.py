"""Reply sanitising — clean directive-free LLM text before delivery.

Runs after directive extraction. The cleanup stages are an ordered
table; order matters (e.g. the fence unwrap must run before the quote
and asterisk trimming, or a trailing ``` would survive). The table is
applied until the text stops changing, then the two rewrite stages run:

1. $[code] shorthand → fenced code block
2. <:name> / <:name:> → <:name:id> using the guild emoji catalog
"""

import re
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class CustomEmoji:
    name: str
    id: int


EmojiCatalog = Mapping[str, CustomEmoji]


# =============================================================================
# CLEANUP STAGES - ordered, each one only ever removes characters
# =============================================================================

CLEANUP_STAGES = [
    {
        'name': 'wrapping_fence',
        # Whole reply inside one fence with a language tag (```md\n...```) or
        # on a single line (```text```). A bare "```\n" opening is a real code
        # block and is kept.
        'pattern': re.compile(
            r'\A\s*```(?:[\w+-]+[ \t]*\n|(?!\s))((?:(?!```)[\s\S])*?)\s*```\s*\Z'
        ),
        'replacement': r'\1',
    },
    {
        'name': 'dangling_signature',
        'pattern': re.compile(r'(?:\s*Par Raphaël)+\s*\Z', re.IGNORECASE),
        'replacement': '',
    },
    {
        'name': 'leading_colon',
        'pattern': re.compile(r'\A(?:\s*:)+\s*'),
        'replacement': '',
    },
    {
        'name': 'trailing_artifacts',
        'pattern': re.compile(r'[*\s"\']+\Z'),
        'replacement': '',
    },
    {
        'name': 'leading_artifacts',
        'pattern': re.compile(r'\A\s*[*"\']+\s*'),
        'replacement': '',
    },
    {
        'name': 'whitespace_runs',
        'pattern': re.compile(r'\s{2,}'),
        'replacement': ' ',
    },
]

_CODE_SHORTHAND_RE = re.compile(r'\$\[([\s\S]*?)\]')
_BROKEN_EMOJI_RE = re.compile(r'<:([a-zA-Z0-9_]+)(?::>|>)')

# Every stage shortens the text when it matches, so this is only a guard
_MAX_CLEANUP_PASSES = 20


def _cleanup(text: str) -> str:
    for _ in range(_MAX_CLEANUP_PASSES):
        before = text
        for stage in CLEANUP_STAGES:
            text = stage['pattern'].sub(stage['replacement'], text)
        text = text.strip()
        if text == before:
            break
    return text


def expand_code_blocks(text: str) -> str:
    """Rewrite every $[code] span as a ``` fenced block of the trimmed code.

    Empty spans ($[] or $[   ]) and spans whose code opens another $[
    are left as written.
    """
    def _fence(m: re.Match) -> str:
        code = m.group(1).strip()
        if not code or "$[" in code:
            return m.group(0)
        return f"```\n{code}\n```"

    return _CODE_SHORTHAND_RE.sub(_fence, text)


def repair_emojis(text: str, emoji_catalog: Optional[EmojiCatalog]) -> str:
    """Complete custom emoji references that lost their numeric id.

    Names missing from the catalog are left exactly as written.
    """
    if not emoji_catalog:
        return text

    def _resolve(m: re.Match) -> str:
        emoji = emoji_catalog.get(m.group(1))
        if emoji is None:
            return m.group(0)
        return f"<:{emoji.name}:{emoji.id}>"

    return _BROKEN_EMOJI_RE.sub(_resolve, text)


def sanitize(text: str, emoji_catalog: Optional[EmojiCatalog] = None) -> str:
    """Apply the full sanitising pipeline to directive-free reply text.

    Total and idempotent: any string is accepted, stages that find nothing
    are no-ops, and sanitising the output again returns it unchanged.

    Args:
        text: Reply text with directives already removed
        emoji_catalog: Guild emoji lookup by name (None in DMs)

    Returns:
        Text ready for link extraction
    """
    if not text:
        return ""

    text = _cleanup(text)
    text = expand_code_blocks(text)
    return repair_emojis(text, emoji_catalog)
