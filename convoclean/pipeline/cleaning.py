"""Text cleaning for message content pulled out of CSV/XLSX exports."""

from __future__ import annotations

import re
from typing import Any

# UTF-8 read as cp1252, longest sequences first.
ENCODING_ARTIFACTS: list[tuple[str, str]] = [
    ("â€™", "'"),
    ("â€˜", "'"),
    ("â€œ", '"'),
    ("â€\x9d", '"'),
    ("â€”", "—"),
    ("â€“", "–"),
    ("â€¦", "..."),
    ("â€", '"'),
    ("Â\xa0", " "),
    ("Â ", " "),
    ("Â", ""),
    ("�", ""),
]

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_OUTER_QUOTES = re.compile(r'^"(.*)"$', re.DOTALL)
_INLINE_WHITESPACE = re.compile(r"[ \t\xa0]+")
_BLANK_LINES = re.compile(r"\n{3,}")


def fix_encoding_artifacts(text: str) -> str:
    for artifact, replacement in ENCODING_ARTIFACTS:
        text = text.replace(artifact, replacement)
    return text


def strip_csv_quoting(text: str) -> str:
    """Remove a CSV cell's outer quotes and unescape doubled quotes."""
    match = _OUTER_QUOTES.match(text)
    if match:
        text = match.group(1)
    return text.replace('""', '"')


def clean_text(value: Any) -> str:
    """Normalize message text for storage.

    Line breaks are kept; runs of spaces collapse to one and more than one
    blank line collapses to a single blank line. Non-string input becomes
    its string form, and None becomes the empty string.
    """
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    text = value if isinstance(value, str) else str(value)

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = strip_csv_quoting(text.strip())
    text = fix_encoding_artifacts(text)
    text = _CONTROL_CHARS.sub("", text)

    lines = [_INLINE_WHITESPACE.sub(" ", line).strip() for line in text.split("\n")]
    text = _BLANK_LINES.sub("\n\n", "\n".join(lines))
    return text.strip()
