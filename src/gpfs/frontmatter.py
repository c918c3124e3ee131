"""Item file codec: a narrow frontmatter block followed by a free-text body.

Grammar (the only shape read or written)::

    document  := "---\\n" meta "---\\n" ["\\n"] body  |  body
    meta      := (blank | entry)*
    entry     := key ": " scalar
               | key ": []"
               | key ":" NEWLINE ("  - " scalar NEWLINE)+
               | "_sync:" NEWLINE ("  " key ": " scalar NEWLINE)*
    key       := [A-Za-z_][A-Za-z0-9_-]*
    scalar    := null | ~ | true | false | int | float
               | "json string" | 'single quoted' | bare string

Only ``_sync`` may hold a nested mapping. Bare strings are written only when
reading them back yields the identical string; everything else is emitted
as a JSON string literal. ``parse`` never raises and degrades to an item
whose body is the whole text; ``parse_strict`` raises ``ParseError`` when a
metadata block is present but malformed.
"""

from __future__ import annotations

import hashlib
import json
import math
import re
from typing import Any

from .errors import ParseError
from .models import Item, SyncMeta

DELIMITER = "---"
SYNC_KEY = "_sync"
CHECKSUM_LENGTH = 12

_KEY = r"[A-Za-z_][A-Za-z0-9_-]*"
_ENTRY_RE = re.compile(rf"^({_KEY}):(?: (.*))?$")
_NESTED_RE = re.compile(rf"^[ \t]+({_KEY}):(?: (.*))?$")
_ARRAY_ITEM_RE = re.compile(r"^[ \t]*-(?: (.*))?$")
_KEY_ONLY_RE = re.compile(rf"^{_KEY}$")
_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?(?:\d+\.\d*|\.\d+)(?:[eE][-+]?\d+)?$|^-?\d+[eE][-+]?\d+$")
_BARE_UNSAFE_START = ("-", "[", "{", "~", "!", "&", "*", "|", ">", "@", "`", "%", "?", ",")
_BARE_UNSAFE_CHARS = (":", "#", '"', "'", "\n", "\r", "\t")

# Recognised keys in the order they are written
_KNOWN_KEYS = (
    "id",
    "project_id",
    "project_owner",
    "project_number",
    "title",
    "status",
    "content_type",
    "content_id",
    "assignees",
    "labels",
    "deleted",
    SYNC_KEY,
)


def compute_checksum(body: str) -> str:
    """Short, stable content hash used as the sync baseline."""
    return hashlib.sha256(body.encode("utf-8")).hexdigest()[:CHECKSUM_LENGTH]


# --- scalars ---------------------------------------------------------------


def _parse_scalar(raw: str) -> Any:
    value = raw.strip()
    if value in ("", "null", "~"):
        return None
    if value == "true":
        return True
    if value == "false":
        return False
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    if value.startswith('"'):
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ParseError(f"invalid quoted string: {value}") from exc
        if not isinstance(decoded, str):
            raise ParseError(f"invalid quoted string: {value}")
        return decoded
    if value.startswith("'"):
        if len(value) < 2 or not value.endswith("'"):
            raise ParseError(f"unterminated quoted string: {value}")
        return value[1:-1].replace("''", "'")
    return value


def _is_bare_safe(value: str) -> bool:
    if not value or value != value.strip() or not value.isprintable():
        return False
    if value.startswith(_BARE_UNSAFE_START) or any(c in value for c in _BARE_UNSAFE_CHARS):
        return False
    if value == "[]":
        return False
    parsed = _parse_scalar(value)
    return isinstance(parsed, str) and parsed == value


def _format_scalar(value: Any, key: str) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"non-finite number for '{key}'")
        return repr(value)
    if isinstance(value, str):
        return value if _is_bare_safe(value) else json.dumps(value, ensure_ascii=False)
    raise ValueError(f"unsupported value for '{key}': {type(value).__name__}")


# --- document split --------------------------------------------------------


def _split(text: str) -> tuple[list[str], str] | None:
    """Return (metadata lines, body) or None when no block opens the text.

    Raises ParseError for an opening delimiter without a closing one.
    """
    if text.startswith(DELIMITER + "\n"):
        pos = len(DELIMITER) + 1
    elif text.startswith(DELIMITER + "\r\n"):
        pos = len(DELIMITER) + 2
    else:
        return None
    meta_lines: list[str] = []
    while True:
        nl = text.find("\n", pos)
        line = (text[pos:] if nl == -1 else text[pos:nl]).rstrip("\r")
        if line == DELIMITER:
            rest = "" if nl == -1 else text[nl + 1 :]
            # One blank separator line belongs to the delimiter, not the body
            if rest.startswith("\r\n"):
                rest = rest[2:]
            elif rest.startswith("\n"):
                rest = rest[1:]
            return meta_lines, rest
        if nl == -1:
            raise ParseError("unterminated metadata block")
        meta_lines.append(line)
        pos = nl + 1


def _parse_meta(lines: list[str]) -> dict[str, Any]:  # noqa: C901 - explicit grammar
    meta: dict[str, Any] = {}
    i = 0
    while i < len(lines):
        line = lines[i]
        if not line.strip():
            i += 1
            continue
        m = _ENTRY_RE.match(line)
        if not m:
            raise ParseError(f"line {i + 1}: expected 'key: value', got {line!r}")
        key, raw = m.group(1), m.group(2)
        if key in meta:
            raise ParseError(f"line {i + 1}: duplicate key '{key}'")
        i += 1
        if raw is not None and raw.strip():
            meta[key] = [] if raw.strip() == "[]" else _parse_scalar(raw)
            continue
        # Block value: array items or (for _sync only) nested entries
        block: list[str] = []
        while i < len(lines) and lines[i].strip() and not _ENTRY_RE.match(lines[i]):
            block.append(lines[i])
            i += 1
        if not block:
            meta[key] = None
        elif all(_ARRAY_ITEM_RE.match(b) for b in block):
            meta[key] = [_parse_scalar(_ARRAY_ITEM_RE.match(b).group(1) or "") for b in block]  # type: ignore[union-attr]
        elif key == SYNC_KEY:
            nested: dict[str, Any] = {}
            for b in block:
                nm = _NESTED_RE.match(b)
                if not nm:
                    raise ParseError(f"invalid {SYNC_KEY} entry: {b!r}")
                nested[nm.group(1)] = _parse_scalar(nm.group(2) or "")
            meta[key] = nested
        else:
            raise ParseError(f"nested mappings are only allowed under '{SYNC_KEY}' (key '{key}')")
    return meta


# --- item mapping ----------------------------------------------------------


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _opt_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    return list(value) if isinstance(value, list) else [value]


def _item_from_meta(meta: dict[str, Any], body: str) -> Item:
    sync_raw = meta.get(SYNC_KEY)
    sync = None
    if isinstance(sync_raw, dict):
        sync = SyncMeta(
            remote_updated_at=_opt_str(sync_raw.get("remote_updated_at")),
            local_checksum=_opt_str(sync_raw.get("local_checksum")),
        )
    return Item(
        title=_opt_str(meta.get("title")) or "",
        body=body,
        id=_opt_str(meta.get("id")),
        status=_opt_str(meta.get("status")),
        deleted=meta.get("deleted") is True,
        sync=sync,
        project_id=_opt_str(meta.get("project_id")),
        project_owner=_opt_str(meta.get("project_owner")),
        project_number=_opt_int(meta.get("project_number")),
        content_type=_opt_str(meta.get("content_type")),
        content_id=_opt_str(meta.get("content_id")),
        assignees=_as_list(meta.get("assignees")),
        labels=_as_list(meta.get("labels")),
        fields={k: v for k, v in meta.items() if k not in _KNOWN_KEYS},
    )


def parse_strict(text: str) -> Item:
    """Parse an item file, raising ParseError on a malformed metadata block."""
    split = _split(text)
    if split is None:
        return Item(body=text)
    meta_lines, body = split
    return _item_from_meta(_parse_meta(meta_lines), body)


def parse(text: str) -> Item:
    """Parse an item file; malformed metadata degrades to a body-only item."""
    try:
        return parse_strict(text)
    except ParseError:
        return Item(body=text)


def _emit(lines: list[str], key: str, value: Any) -> None:
    if isinstance(value, list):
        if not value:
            lines.append(f"{key}: []")
            return
        lines.append(f"{key}:")
        for entry in value:
            if isinstance(entry, (list, dict)):
                raise ValueError(f"arrays of '{key}' must hold scalars")
            lines.append(f"  - {_format_scalar(entry, key)}")
        return
    if isinstance(value, dict):
        raise ValueError(f"nested mappings are only allowed under '{SYNC_KEY}' (key '{key}')")
    lines.append(f"{key}: {_format_scalar(value, key)}")


def serialize(item: Item) -> str:
    """Render an item file; the inverse of ``parse``."""
    lines: list[str] = []
    optional = (
        ("id", item.id),
        ("project_id", item.project_id),
        ("project_owner", item.project_owner),
        ("project_number", item.project_number),
    )
    for key, value in optional:
        if value is not None:
            _emit(lines, key, value)
    _emit(lines, "title", item.title)
    _emit(lines, "status", item.status)
    for key, value in (("content_type", item.content_type), ("content_id", item.content_id)):
        if value is not None:
            _emit(lines, key, value)
    if item.assignees:
        _emit(lines, "assignees", item.assignees)
    if item.labels:
        _emit(lines, "labels", item.labels)
    for key, value in item.fields.items():
        if key in _KNOWN_KEYS or not _KEY_ONLY_RE.match(key):
            raise ValueError(f"invalid custom field name: {key!r}")
        _emit(lines, key, value)
    _emit(lines, "deleted", bool(item.deleted))
    if item.sync is not None:
        lines.append(f"{SYNC_KEY}:")
        lines.append(
            f"  remote_updated_at: {_format_scalar(item.sync.remote_updated_at, 'remote_updated_at')}"
        )
        lines.append(f"  local_checksum: {_format_scalar(item.sync.local_checksum, 'local_checksum')}")
    return f"{DELIMITER}\n" + "\n".join(lines) + f"\n{DELIMITER}\n\n{item.body}"


__all__ = ["compute_checksum", "parse", "parse_strict", "serialize", "CHECKSUM_LENGTH"]
