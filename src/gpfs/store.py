"""Local item store: one Markdown file per item inside a project directory."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .errors import ParseError
from .filesystem import ITEM_SUFFIX, sanitize_for_filesystem, unique_filename
from .frontmatter import compute_checksum, parse_strict, serialize
from .logging import get_logger
from .models import Item, SyncMeta


@dataclass
class LocalItem:
    path: Path
    item: Item
    current_checksum: str = field(init=False)

    def __post_init__(self) -> None:
        self.current_checksum = compute_checksum(self.item.body)

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def title(self) -> str:
        return self.item.title or self.path.stem

    @property
    def locally_changed(self) -> bool:
        """Body diverged from the last-sync baseline (no baseline, no signal)."""
        stored = self.item.stored_checksum
        return bool(stored) and stored != self.current_checksum


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def refreshed_sync(body: str) -> SyncMeta:
    return SyncMeta(remote_updated_at=utc_now(), local_checksum=compute_checksum(body))


def list_item_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        p for p in directory.iterdir() if p.is_file() and p.suffix == ITEM_SUFFIX and not p.name.startswith(".")
    )


def read_item(path: Path) -> LocalItem:
    """Read and parse one item file; raises ParseError or OSError."""
    text = path.read_text(encoding="utf-8")
    try:
        item = parse_strict(text)
    except ParseError as exc:
        raise ParseError(f"{path}: {exc}") from exc
    return LocalItem(path=path, item=item)


def load_items(directory: Path) -> list[LocalItem]:
    """Read every item file in ``directory``; malformed files are skipped."""
    logger = get_logger()
    items: list[LocalItem] = []
    for path in list_item_files(directory):
        try:
            items.append(read_item(path))
        except ParseError as exc:
            logger.warning(f"skipping malformed item file: {exc}", path=str(path))
        except UnicodeDecodeError as exc:
            logger.warning(f"skipping unreadable item file {path}: {exc}", path=str(path))
    return items


def write_item(path: Path, item: Item) -> LocalItem:
    """Serialize ``item`` to ``path`` via a temporary sibling and an atomic replace."""
    text = serialize(item)
    tmp = path.with_name(f".{path.name}.tmp")
    with open(tmp, "w", encoding="utf-8", newline="") as fh:
        fh.write(text)
        fh.flush()
        os.fsync(fh.fileno())
    tmp.replace(path)
    return LocalItem(path=path, item=item)


def remove_item(path: Path) -> None:
    path.unlink(missing_ok=True)


def new_item_file(directory: Path, title: str, body: str = "") -> LocalItem:
    """Create a not-yet-synced item (no id) with a collision-free filename."""
    used = [p.name for p in directory.iterdir()] if directory.is_dir() else []
    filename = unique_filename(sanitize_for_filesystem(title), used)
    return write_item(directory / filename, Item(title=title, body=body))


__all__ = [
    "LocalItem",
    "utc_now",
    "refreshed_sync",
    "list_item_files",
    "read_item",
    "load_items",
    "write_item",
    "remove_item",
    "new_item_file",
]
