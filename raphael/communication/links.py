"""Link extraction — pull URLs out of reply prose so they become buttons.

Two passes, markdown first: [label](https://...) links are consumed
before bare https:// URLs are matched, so a markdown URL is never
captured twice.
"""

import re
from dataclasses import dataclass, field

import httpx

MAX_LINKS = 5            # Discord allows 5 buttons per action row
MAX_LABEL_LENGTH = 80    # Discord button label limit
MAX_URL_LENGTH = 2048
FALLBACK_LABEL = "Lien"

_MARKDOWN_LINK_RE = re.compile(r'\[([^\]]+)\]\((https?://[^)]+)\)')
# Not preceded by "(" so a markdown URL that survived is not re-captured
_BARE_URL_RE = re.compile(r'(?<!\()https?://[^\s)\]]+')
_EMPTY_MARKDOWN_RE = re.compile(r'\[\s*\]\s*\(\s*\)')
_WHITESPACE_RUN_RE = re.compile(r'\s{2,}')


@dataclass(frozen=True)
class ExtractedLink:
    label: str
    url: str


@dataclass
class LinkExtraction:
    clean_text: str
    links: list[ExtractedLink] = field(default_factory=list)


def is_valid_url(value: str) -> bool:
    """True for absolute http(s) URLs of at most 2048 characters."""
    if not isinstance(value, str) or len(value) > MAX_URL_LENGTH:
        return False
    if any(c.isspace() for c in value):
        return False
    try:
        url = httpx.URL(value)
    except (httpx.InvalidURL, ValueError, TypeError):
        return False
    return url.scheme in ("http", "https") and bool(url.host)


def _label_from_host(url: str) -> str:
    try:
        host = httpx.URL(url).host
    except (httpx.InvalidURL, ValueError):
        return FALLBACK_LABEL
    if not host:
        return FALLBACK_LABEL
    return host.removeprefix("www.")[:MAX_LABEL_LENGTH]


def _drop_orphan_brackets(text: str) -> str:
    """Replace every "]" without an opening "[" before it by a space."""
    out = []
    depth = 0
    for ch in text:
        if ch == '[':
            depth += 1
        elif ch == ']':
            if depth == 0:
                out.append(' ')
                continue
            depth -= 1
        out.append(ch)
    return ''.join(out)


def extract_links(text: str) -> LinkExtraction:
    """Separate links from prose.

    Args:
        text: Sanitised reply text

    Returns:
        LinkExtraction with the remaining prose and at most MAX_LINKS
        links, unique by URL: markdown links first, then bare URLs,
        each pass in source order
    """
    if not text:
        return LinkExtraction(clean_text="")

    links: list[ExtractedLink] = []
    seen: set[str] = set()

    def _add(label: str, url: str):
        if url in seen or not is_valid_url(url):
            return
        seen.add(url)
        links.append(ExtractedLink(label=label, url=url))

    for m in _MARKDOWN_LINK_RE.finditer(text):
        _add(m.group(1)[:MAX_LABEL_LENGTH], m.group(2))
    clean_text = _MARKDOWN_LINK_RE.sub('', text)

    for m in _BARE_URL_RE.finditer(clean_text):
        url = m.group(0)
        if url not in seen:
            _add(_label_from_host(url), url)
    clean_text = _BARE_URL_RE.sub('', clean_text)

    clean_text = _EMPTY_MARKDOWN_RE.sub('', clean_text)
    clean_text = _drop_orphan_brackets(clean_text)
    clean_text = _WHITESPACE_RUN_RE.sub(' ', clean_text).strip()

    return LinkExtraction(clean_text=clean_text, links=links[:MAX_LINKS])
