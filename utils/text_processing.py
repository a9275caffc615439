# utils/text_processing.py
"""String helpers shared by the registry, merge engine and prompt builders."""

import re
from collections.abc import Iterable

import structlog

logger = structlog.get_logger(__name__)

_KEY_SEPARATORS_RE = re.compile(r"[\s\-_·•・.]+")


def normalize_key(text: str | None) -> str:
    """Normalize a name for use in a registry key.

    Lower-cases and removes whitespace and separator characters so that
    ``"Ah-A"``, ``"ah a"`` and ``"AhA"`` all collapse to ``"aha"``.
    """
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)
    return _KEY_SEPARATORS_RE.sub("", text.strip().lower())


def entity_key(group_name: str | None, name: str | None) -> str:
    """Return the registry key ``normalize(group) + "_" + normalize(name)``."""
    return f"{normalize_key(group_name)}_{normalize_key(name)}"


def clean_text(value: object) -> str:
    """Return ``value`` as a stripped string; ``None`` becomes ``""``."""
    if value is None:
        return ""
    return str(value).strip()


def truncate_text(text: str | None, limit: int, ellipsis: str = "...") -> str:
    """Shorten ``text`` to ``limit`` characters, appending ``ellipsis`` if cut."""
    text = clean_text(text)
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit] + ellipsis


def contains_any(text: str | None, markers: Iterable[str]) -> bool:
    """Case-insensitive check for any of ``markers`` inside ``text``."""
    if not text:
        return False
    lowered = text.lower()
    return any(marker.lower() in lowered for marker in markers)


def unique_preserving_order(values: Iterable[str]) -> list[str]:
    """Drop blanks and duplicates (after stripping) but keep first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        cleaned = clean_text(value)
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        result.append(cleaned)
    return result
