"""Markdown sanitizer for untrusted tracker and agent text.

Removes content a human reviewer would not see but a model would read
(HTML comments, zero-width characters, hidden attributes, image alt text,
link titles) and redacts GitHub tokens. Everything else passes through
unchanged.
"""

import re

_HTML_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
_INVISIBLE = re.compile(r"[\u200b-\u200f\u202a-\u202e\u2060-\u2064\ufeff\u00ad]")
_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_IMAGE_ALT = re.compile(r"!\[[^\]]*\]\(")
_LINK_TITLE = re.compile(r"(\[[^\]]*\]\([^)\s]+)\s+(?:\"[^\"]*\"|'[^']*')\)")
_HIDDEN_ATTR = re.compile(
    r"\s+(?:alt|title|aria-label|data-[\w-]+|placeholder)\s*=\s*(?:\"[^\"]*\"|'[^']*')",
    re.IGNORECASE,
)
_ENTITY = re.compile(r"&#(x[0-9a-fA-F]+|\d+);")
_GITHUB_TOKEN = re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9_]{36,255}|github_pat_[A-Za-z0-9_]{11,221})\b")


def _decode_printable_entity(match: re.Match) -> str:
    raw = match.group(1)
    code = int(raw[1:], 16) if raw[0] in "xX" else int(raw)
    # Only printable ASCII is decoded; anything else is dropped.
    return chr(code) if 32 <= code <= 126 else ""


def sanitize_content(text: str) -> str:
    text = _HTML_COMMENT.sub("", text)
    text = _INVISIBLE.sub("", text)
    text = _CONTROL.sub("", text)
    text = _IMAGE_ALT.sub("![](", text)
    text = _LINK_TITLE.sub(r"\1)", text)
    text = _HIDDEN_ATTR.sub("", text)
    text = _ENTITY.sub(_decode_printable_entity, text)
    return _GITHUB_TOKEN.sub("[REDACTED_GITHUB_TOKEN]", text)
