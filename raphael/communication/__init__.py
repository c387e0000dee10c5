"""Communication sub-core — turning raw model output into deliverable replies.

- Directives: $nick / $embed extraction from LLM output
- Sanitize: artifact cleanup, $[code] blocks, emoji repair
- Links: markdown and bare URL extraction
- Outbound: the combined pipeline and embed rendering
- Errors: exception → user-facing message
"""

from .directives import (
    Directive,
    ParsedReply,
    RenameDirective,
    RichContentDirective,
    parse_directives,
)
from .sanitize import CustomEmoji, sanitize
from .links import ExtractedLink, LinkExtraction, extract_links, is_valid_url
from .outbound import StructuredReply, build_embed, message_content, process_reply
from .errors import classify_error

__all__ = [
    # Directives
    "Directive",
    "ParsedReply",
    "RenameDirective",
    "RichContentDirective",
    "parse_directives",
    # Sanitize
    "CustomEmoji",
    "sanitize",
    # Links
    "ExtractedLink",
    "LinkExtraction",
    "extract_links",
    "is_valid_url",
    # Outbound
    "StructuredReply",
    "build_embed",
    "message_content",
    "process_reply",
    # Errors
    "classify_error",
]
