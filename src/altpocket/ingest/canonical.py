"""URL canonicalization for bookmark deduplication.

Two submissions that differ only by tracking parameters, parameter order, or
a trailing slash map to the same canonical URL and therefore the same
content-address hash.  The hash is a dedup key only; nothing relies on it
for security.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from altpocket.core.exceptions import InvalidURLError
from altpocket.ingest.config import TRACKING_PARAM_PREFIX, TRACKING_PARAMS


@dataclass(frozen=True)
class CanonicalURL:
    """Canonical form of a submitted URL.

    Attributes:
        url: Canonical URL string.
        hash: Hex-encoded SHA-256 of ``url`` (64 characters).
    """

    url: str
    hash: str


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered.startswith(TRACKING_PARAM_PREFIX) or lowered in TRACKING_PARAMS


def url_hash(url: str) -> str:
    """Return the hex SHA-256 digest of *url*."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def canonicalize_url(raw_url: str) -> CanonicalURL:
    """Return the canonical URL and dedup hash for *raw_url*.

    Transformations applied (in order):

    1. Drop query parameters whose lowercased name starts with ``utm_`` or
       is a known click identifier (``fbclid``, ``gclid``).
    2. Re-encode the remaining parameters sorted by key.  The sort is stable,
       so repeated keys keep their relative order.  Blank values are kept.
    3. Strip trailing slashes from the path, keeping a bare ``/``.

    Scheme, host, and fragment are kept as authored.

    Args:
        raw_url: URL as submitted by the user.

    Returns:
        A :class:`CanonicalURL`.

    Raises:
        InvalidURLError: If the URL cannot be parsed or has no scheme or host.
    """
    candidate = raw_url.strip()
    if not candidate:
        raise InvalidURLError(raw_url, "Empty URL")
    try:
        parts = urlsplit(candidate)
        # Accessing .port validates the port component.
        parts.port
    except ValueError as exc:
        raise InvalidURLError(raw_url, f"Unparseable URL {raw_url!r}: {exc}") from exc
    if not parts.scheme or not parts.netloc:
        raise InvalidURLError(raw_url, f"URL {raw_url!r} has no scheme or host")

    # surrogateescape keeps non-UTF-8 percent escapes byte-exact.
    pairs = [
        (key, value)
        for key, value in parse_qsl(
            parts.query, keep_blank_values=True, errors="surrogateescape"
        )
        if not _is_tracking_param(key)
    ]
    pairs.sort(key=lambda pair: pair[0])
    query = urlencode(pairs, errors="surrogateescape")

    path = parts.path
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/") or "/"

    canonical = urlunsplit((parts.scheme, parts.netloc, path, query, parts.fragment))
    return CanonicalURL(url=canonical, hash=url_hash(canonical))
