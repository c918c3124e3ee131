"""Reconcile local item files against remote project items.

``reconcile`` is a pure function: given the parsed local items and the
remote items of one project it returns an ``ActionSet`` describing what a
push or a pull would do. No I/O happens here; the executors in ``push`` and
``pull`` consume the result.

Categories:

* ``local_new``          no canonical remote id -> push creates it
* ``local_modified``     body checksum diverged from the baseline -> push updates
* ``local_deleted``      tombstoned locally, remote still exists -> push deletes
* ``tombstone_cleanup``  tombstoned locally, remote already gone -> remove file only
* ``remote_new``         remote id unknown locally -> pull creates a file
* ``remote_modified``    remote title/body differ and local is untouched -> pull overwrites
* ``remote_deleted``     canonical id missing remotely -> pull tombstones
* ``unchanged``          in sync on both sides

When both sides diverged from the baseline the local side wins: the item is
reported as ``local_modified`` only, so a pull never discards unsynced edits.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import RemoteItem
from .store import LocalItem


@dataclass(frozen=True)
class ItemPair:
    local: LocalItem
    remote: RemoteItem


@dataclass
class ActionSet:
    local_new: list[LocalItem] = field(default_factory=list)
    local_modified: list[ItemPair] = field(default_factory=list)
    local_deleted: list[ItemPair] = field(default_factory=list)
    tombstone_cleanup: list[LocalItem] = field(default_factory=list)
    remote_new: list[RemoteItem] = field(default_factory=list)
    remote_modified: list[ItemPair] = field(default_factory=list)
    remote_deleted: list[LocalItem] = field(default_factory=list)
    unchanged: list[ItemPair] = field(default_factory=list)

    @property
    def in_sync(self) -> bool:
        return not (
            self.local_new
            or self.local_modified
            or self.local_deleted
            or self.tombstone_cleanup
            or self.remote_new
            or self.remote_modified
            or self.remote_deleted
        )

    def summary(self) -> dict[str, int]:
        return {
            "local_new": len(self.local_new),
            "local_modified": len(self.local_modified),
            "local_deleted": len(self.local_deleted),
            "tombstone_cleanup": len(self.tombstone_cleanup),
            "remote_new": len(self.remote_new),
            "remote_modified": len(self.remote_modified),
            "remote_deleted": len(self.remote_deleted),
            "unchanged": len(self.unchanged),
        }


def remote_differs(local: LocalItem, remote: RemoteItem) -> bool:
    return remote.title != local.item.title or remote.body != local.item.body


def reconcile(local_items: list[LocalItem], remote_items: list[RemoteItem]) -> ActionSet:
    """Classify every local and remote item of one project."""
    remote_by_id = {r.id: r for r in remote_items}
    actions = ActionSet()
    known_ids: set[str] = set()

    for local in local_items:
        item = local.item
        if not item.has_canonical_id:
            if item.deleted:
                # Never existed remotely; nothing to delete but the file
                actions.tombstone_cleanup.append(local)
            else:
                actions.local_new.append(local)
            continue

        item_id = item.id or ""
        known_ids.add(item_id)
        remote = remote_by_id.get(item_id)

        if item.deleted:
            if remote is not None:
                actions.local_deleted.append(ItemPair(local, remote))
            else:
                actions.tombstone_cleanup.append(local)
            continue

        if remote is None:
            actions.remote_deleted.append(local)
            continue

        if local.locally_changed:
            actions.local_modified.append(ItemPair(local, remote))
        elif remote_differs(local, remote):
            actions.remote_modified.append(ItemPair(local, remote))
        else:
            actions.unchanged.append(ItemPair(local, remote))

    for remote in remote_items:
        if remote.id not in known_ids:
            actions.remote_new.append(remote)
    return actions


def format_action_set(actions: ActionSet, project_key: str) -> list[str]:
    """Human-readable status lines for one project."""
    if actions.in_sync:
        return [f"[status] {project_key}: in sync ({len(actions.unchanged)} item(s))"]
    lines = [f"[status] {project_key}:"]
    sections: list[tuple[str, list[str]]] = [
        ("local modified (push)", [p.local.filename for p in actions.local_modified]),
        ("local deleted (push)", [p.local.filename for p in actions.local_deleted]),
        ("local new (push)", [li.filename for li in actions.local_new]),
        ("tombstones to clean (push)", [li.filename for li in actions.tombstone_cleanup]),
        ("remote modified (pull)", [p.remote.title for p in actions.remote_modified]),
        ("remote new (pull)", [r.title for r in actions.remote_new]),
        ("remote deleted (pull)", [li.filename for li in actions.remote_deleted]),
    ]
    for label, names in sections:
        if not names:
            continue
        lines.append(f"  {label}: {len(names)}")
        lines.extend(f"    - {name}" for name in names)
    return lines


__all__ = ["ItemPair", "ActionSet", "reconcile", "remote_differs", "format_action_set"]
