"""Readability extraction from raw HTML.

Converts a fetched page into a title plus three text variants:

- ``content_full``  : article text, blocks separated by blank lines,
                       capped at the full-content byte limit.
- ``content_search``: whitespace-normalised ``content_full`` capped at the
                       search byte limit.
- ``excerpt``       : whitespace-normalised ``content_full`` capped at
                       200 bytes.

The heuristic is deliberately simple and order-sensitive:

1. Remove boilerplate subtrees (scripts, media, forms, navigation, sidebars,
   footers, ads, comments, share widgets).
2. Score ``<body>`` and every content-root candidate by the codepoint count
   of its normalised text and keep the highest (first wins on ties).
3. Collect heading/paragraph/list/quote/pre blocks from that root in
   document order, dropping empty and repeated blocks.
4. When the root has no such blocks, use its whole normalised text.

Parsing uses BeautifulSoup with the stdlib ``html.parser`` backend, which
accepts malformed markup without aborting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

from altpocket.core.exceptions import ContentParseError
from altpocket.ingest.config import (
    BLOCK_SELECTOR,
    CONTENT_SELECTORS,
    EXCERPT_LIMIT_BYTES,
    PRUNE_SELECTORS,
)
from altpocket.ingest.text import normalize_text, text_score, truncate_utf8

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Output dataclass
# ---------------------------------------------------------------------------


@dataclass
class ExtractedContent:
    """Result of extracting article content from an HTML page.

    Attributes:
        title: Trimmed text of the first ``<title>`` element, or ``""``.
        excerpt: Normalised preview, at most 200 UTF-8 bytes.
        content_full: Article text, at most the full limit in UTF-8 bytes.
        content_search: Normalised article text, at most the search limit.
        content_bytes: UTF-8 byte length of ``content_full``.
    """

    title: str
    excerpt: str
    content_full: str
    content_search: str
    content_bytes: int


# ---------------------------------------------------------------------------
# Heuristic steps
# ---------------------------------------------------------------------------


def _text_of(node: Tag) -> str:
    return node.get_text()


def _prune_non_content(soup: BeautifulSoup) -> None:
    """Remove every subtree matching :data:`PRUNE_SELECTORS`, in order."""
    for selector in PRUNE_SELECTORS:
        for node in soup.select(selector):
            node.extract()


def _select_content_root(soup: BeautifulSoup) -> Tag | None:
    """Return the highest-scoring content root, or ``None`` if there is none.

    ``<body>`` is the baseline.  A candidate replaces the current best only
    with a strictly higher score, so the earliest candidate wins ties.
    """
    best: Tag | None = soup.body
    best_score = text_score(_text_of(best)) if best is not None else 0

    for selector in CONTENT_SELECTORS:
        for node in soup.select(selector):
            score = text_score(_text_of(node))
            if score > best_score:
                best = node
                best_score = score

    return best


def _extract_blocks(root: Tag) -> list[str]:
    """Return normalised, non-empty, de-duplicated block texts under *root*."""
    blocks: list[str] = []
    seen: set[str] = set()
    for node in root.select(BLOCK_SELECTOR):
        text = normalize_text(_text_of(node))
        if not text or text in seen:
            continue
        seen.add(text)
        blocks.append(text)
    return blocks


def _extract_readable_text(soup: BeautifulSoup) -> str:
    _prune_non_content(soup)
    root: Tag = _select_content_root(soup) or soup

    blocks = _extract_blocks(root)
    if not blocks:
        return normalize_text(_text_of(root))
    return "\n\n".join(blocks)


# ---------------------------------------------------------------------------
# Public extraction function
# ---------------------------------------------------------------------------


def extract_from_html(
    html: bytes | str,
    full_limit: int,
    search_limit: int,
) -> ExtractedContent:
    """Extract a title and the three text variants from raw HTML.

    Args:
        html: Raw response body.  Bytes are decoded using the document's
            declared or detected encoding.
        full_limit: Byte budget for ``content_full``.
        search_limit: Byte budget for ``content_search``.

    Returns:
        An :class:`ExtractedContent` instance.  All fields are empty strings
        (and ``content_bytes`` is 0) for a page with no text.

    Raises:
        ContentParseError: If the parser fails on the input.
    """
    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception as exc:  # noqa: BLE001
        raise ContentParseError(f"HTML parse failed: {exc}") from exc

    title_node = soup.find("title")
    title = title_node.get_text().strip() if title_node is not None else ""

    text = _extract_readable_text(soup)

    # PostgreSQL rejects NUL bytes in text columns.
    title = title.replace("\x00", "")
    text = text.replace("\x00", "")

    content_full = truncate_utf8(text, full_limit)
    search_text = normalize_text(content_full)
    content_search = truncate_utf8(search_text, search_limit)
    excerpt = truncate_utf8(search_text, EXCERPT_LIMIT_BYTES)

    content_bytes = len(content_full.encode("utf-8"))
    logger.debug(
        "extractor: title=%r content_bytes=%d search_bytes=%d",
        title[:80],
        content_bytes,
        len(content_search.encode("utf-8")),
    )

    return ExtractedContent(
        title=title,
        excerpt=excerpt,
        content_full=content_full,
        content_search=content_search,
        content_bytes=content_bytes,
    )
