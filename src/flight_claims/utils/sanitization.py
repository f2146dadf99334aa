"""Sanitization of operator-supplied text before it is written to claim records."""

import re
from typing import Any

# Maximum lengths for text fields (characters)
MAX_AIRLINE_REFERENCE = 128
MAX_FILED_BY = 128
MAX_NOTES = 2000

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE_RUN = re.compile(r"\s+")


def sanitize_text(text: Any, max_length: int) -> str:
    """Strip control characters and surrounding whitespace, truncate to max_length."""
    if text is None or not isinstance(text, str):
        return ""
    # Remove control characters (0x00-0x1F except tab/newline/carriage return)
    cleaned = _CONTROL_CHARS.sub("", text).strip()
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length]
    return cleaned


def sanitize_identifier(text: Any, max_length: int) -> str:
    """Like sanitize_text, but single-line: internal whitespace runs collapse to one space."""
    return _WHITESPACE_RUN.sub(" ", sanitize_text(text, max_length))


def sanitize_notes(notes: Any, max_length: int = MAX_NOTES) -> str | None:
    """Sanitize optional free-text notes. Returns None when nothing is left."""
    cleaned = sanitize_text(notes, max_length)
    return cleaned or None
