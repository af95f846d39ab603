"""
Text repair helpers for supplier feed content.

The supplier feed ships UTF-8 text that was decoded as ISO-8859-1 somewhere
upstream, so ``"Hygienický"`` arrives as ``"HygienickÃ½"``. Category paths
also carry escaped entities (``"Papier &gt; Toaletný papier"``).
"""

from __future__ import annotations

import re

_ENTITY_REPLACEMENTS = {
    "&gt;": ">",
    "&lt;": "<",
    "&amp;": "&",
    "&quot;": '"',
    "&apos;": "'",
    "&#39;": "'",
}
_ENTITY_PATTERN = re.compile("|".join(re.escape(entity) for entity in _ENTITY_REPLACEMENTS))


def fix_mojibake(text: str | None) -> str | None:
    """
    Recover UTF-8 text that was mis-decoded as Latin-1.

    Best effort only: text that cannot be re-encoded as Latin-1, or whose
    bytes are not valid UTF-8, is returned unchanged.
    """

    if text is None or not text.strip():
        return text
    try:
        return text.encode("latin-1").decode("utf-8")
    except UnicodeError:
        return text


def decode_html_entities(text: str | None) -> str | None:
    """Replace the small fixed set of entities found in the feed."""

    if text is None:
        return None
    return _ENTITY_PATTERN.sub(lambda match: _ENTITY_REPLACEMENTS[match.group(0)], text)


def normalize(text: str | None) -> str | None:
    """Repair mojibake, decode entities, and trim surrounding whitespace."""

    if text is None:
        return None
    if not text.strip():
        return text
    repaired = decode_html_entities(fix_mojibake(text))
    return repaired.strip()
