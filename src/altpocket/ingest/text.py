"""Whitespace normalisation and byte-budget truncation for extracted text."""

from __future__ import annotations


def normalize_text(text: str) -> str:
    """Trim *text* and collapse every whitespace run to a single space."""
    return " ".join(text.split())


def text_score(text: str) -> int:
    """Return the number of codepoints in the normalised form of *text*."""
    return len(normalize_text(text))


def truncate_utf8(text: str, limit: int) -> str:
    """Truncate *text* so its UTF-8 encoding is at most *limit* bytes.

    The cut never splits a multi-byte codepoint: after cutting at the byte
    limit, trailing bytes are dropped until the remainder decodes cleanly.

    Args:
        text: Text to truncate.
        limit: Maximum size in UTF-8 bytes.  ``limit <= 0`` yields ``""``.

    Returns:
        The longest prefix of *text* that fits in *limit* bytes.
    """
    if limit <= 0:
        return ""
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return text
    cut = encoded[:limit]
    while cut:
        try:
            return cut.decode("utf-8")
        except UnicodeDecodeError:
            cut = cut[:-1]
    return ""
