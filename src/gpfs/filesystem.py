"""Path and filename helpers shared by the project index and the pull executor."""

from __future__ import annotations

import re
from collections.abc import Iterable

_UNSAFE = re.compile(r'[/\\:*?"<>|\x00-\x1f]')
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-+")
_IDENTIFIER = re.compile(r"^([^/\s]+)/(\d+)$")

MAX_NAME_LENGTH = 100
FALLBACK_NAME = "untitled"
ITEM_SUFFIX = ".md"


def sanitize_for_filesystem(value: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Lowercase, replace unsafe characters and whitespace with dashes, truncate.

    Never returns an empty string or a name starting with a dot.
    """
    name = _UNSAFE.sub("-", value.lower())
    name = _WHITESPACE.sub("-", name)
    name = _DASHES.sub("-", name).strip("-").lstrip(".")
    name = name[:max_length].strip("-")
    return name or FALLBACK_NAME


def unique_filename(base: str, used: Iterable[str], suffix: str = ITEM_SUFFIX) -> str:
    """Return ``base.md``, or ``base-2.md``, ``base-3.md``... if already taken.

    Comparison is case-insensitive so the result is also safe on
    case-insensitive filesystems.
    """
    taken = {u.lower() for u in used}
    candidate = f"{base}{suffix}"
    counter = 2
    while candidate.lower() in taken:
        candidate = f"{base}-{counter}{suffix}"
        counter += 1
    return candidate


def parse_project_identifier(identifier: str) -> tuple[str, int] | None:
    """Parse ``owner/number``; ``None`` when the format is invalid."""
    m = _IDENTIFIER.match(identifier.strip())
    if not m:
        return None
    return m.group(1), int(m.group(2))


__all__ = [
    "sanitize_for_filesystem",
    "unique_filename",
    "parse_project_identifier",
    "ITEM_SUFFIX",
]
