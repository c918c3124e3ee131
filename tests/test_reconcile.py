from __future__ import annotations

from pathlib import Path

from gpfs.frontmatter import compute_checksum
from gpfs.models import ContentKind, Item, RemoteItem, SyncMeta
from gpfs.reconcile import format_action_set, reconcile
from gpfs.store import LocalItem


def _remote(item_id: str, title: str = "Task", body: str = "body") -> RemoteItem:
    return RemoteItem(item_id, title, body, "Todo", ContentKind.DRAFT, "DI_" + item_id)


def _local(name: str, *, item_id: str | None = None, title: str = "Task", body: str = "body",
           baseline: str | None = "body", deleted: bool = False) -> LocalItem:
    sync = SyncMeta("2025-01-01T00:00:00+00:00", compute_checksum(baseline)) if baseline is not None else None
    item = Item(title=title, body=body, id=item_id, deleted=deleted, sync=sync)
    return LocalItem(path=Path(f"/tmp/project/{name}.md"), item=item)


def test_local_new_for_missing_or_placeholder_ids():
    actions = reconcile([_local("a"), _local("b", item_id="draft-1")], [])
    assert [li.filename for li in actions.local_new] == ["a.md", "b.md"]
    assert not actions.remote_deleted


def test_unchanged_when_both_sides_match():
    actions = reconcile([_local("a", item_id="PVTI_1")], [_remote("PVTI_1")])
    assert len(actions.unchanged) == 1
    assert actions.in_sync


def test_local_modified_when_body_diverges_from_baseline():
    local = _local("a", item_id="PVTI_1", body="edited")
    actions = reconcile([local], [_remote("PVTI_1")])
    assert [p.local for p in actions.local_modified] == [local]


def test_tie_break_local_wins():
    local = _local("a", item_id="PVTI_1", body="local edit")
    remote = _remote("PVTI_1", body="remote edit")
    actions = reconcile([local], [remote])
    assert len(actions.local_modified) == 1
    assert actions.remote_modified == []
    assert actions.unchanged == []


def test_remote_modified_when_only_remote_changed():
    actions = reconcile([_local("a", item_id="PVTI_1")], [_remote("PVTI_1", title="Renamed")])
    assert [p.remote.title for p in actions.remote_modified] == ["Renamed"]


def test_missing_baseline_is_not_a_local_change():
    local = _local("a", item_id="PVTI_1", body="hand edited", baseline=None)
    actions = reconcile([local], [_remote("PVTI_1")])
    assert actions.local_modified == []
    assert len(actions.remote_modified) == 1


def test_remote_deleted_and_remote_new():
    actions = reconcile([_local("a", item_id="PVTI_1")], [_remote("PVTI_2")])
    assert [li.filename for li in actions.remote_deleted] == ["a.md"]
    assert [r.id for r in actions.remote_new] == ["PVTI_2"]


def test_tombstones():
    still_remote = _local("a", item_id="PVTI_1", deleted=True)
    already_gone = _local("b", item_id="PVTI_9", deleted=True)
    never_created = _local("c", deleted=True)
    actions = reconcile([still_remote, already_gone, never_created], [_remote("PVTI_1")])
    assert [p.local for p in actions.local_deleted] == [still_remote]
    assert actions.tombstone_cleanup == [already_gone, never_created]
    # A tombstoned id is known locally, so the remote item is not "new"
    assert actions.remote_new == []


def test_summary_counts_and_status_lines():
    actions = reconcile(
        [_local("a"), _local("b", item_id="PVTI_1", body="x"), _local("c", item_id="PVTI_3")],
        [_remote("PVTI_1"), _remote("PVTI_2", title="Fresh")],
    )
    assert actions.summary() == {
        "local_new": 1,
        "local_modified": 1,
        "local_deleted": 0,
        "tombstone_cleanup": 0,
        "remote_new": 1,
        "remote_modified": 0,
        "remote_deleted": 1,
        "unchanged": 0,
    }
    lines = format_action_set(actions, "acme/1")
    assert lines[0] == "[status] acme/1:"
    assert "  local new (push): 1" in lines
    assert "    - Fresh" in lines
    assert "    - c.md" in lines


def test_status_line_when_in_sync():
    actions = reconcile([_local("a", item_id="PVTI_1")], [_remote("PVTI_1")])
    assert format_action_set(actions, "acme/1") == ["[status] acme/1: in sync (1 item(s))"]
