"""Tag name normalisation.

Tags are matched by their normalised form: NFKC-folded and lower-cased, so
that ``"Python"``, ``" python "`` and full-width ``"Ｐｙｔｈｏｎ"`` all refer to
the same tag.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Iterable


def normalize_tag(name: str) -> str:
    """Return the normalised form of a single tag name.

    Args:
        name: Tag as typed by the user.

    Returns:
        The stripped, NFKC-normalised, lower-cased name, or ``""`` when the
        input is blank.
    """
    stripped = name.strip()
    if not stripped:
        return ""
    return unicodedata.normalize("NFKC", stripped).lower()


def normalize_tags(names: Iterable[str]) -> list[str]:
    """Normalise *names*, dropping blanks and duplicates.

    First-seen order is preserved.
    """
    result: list[str] = []
    seen: set[str] = set()
    for name in names:
        normalized = normalize_tag(name)
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        result.append(normalized)
    return result
