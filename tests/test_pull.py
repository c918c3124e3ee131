from __future__ import annotations

from dataclasses import replace

from gpfs.errors import NotFoundError
from gpfs.models import ContentKind, TrackedProject
from gpfs.projects import attach_project
from gpfs.pull import pull_all, pull_project, pull_projects
from gpfs.store import new_item_file, read_item, write_item


def test_pull_creates_files_for_new_items(project, remote):
    item = remote.add_item("Ship it", "release notes", status="Todo")

    result = pull_project(project, remote)

    assert (result.created, result.updated, result.deleted) == (1, 0, 0)
    local = read_item(project.path / "ship-it.md").item
    assert local.id == item.id
    assert local.title == "Ship it"
    assert local.body == "release notes"
    assert local.status == "Todo"
    assert local.project_id == "PVT_acme_1"
    assert (local.content_type, local.content_id) == ("DraftIssue", item.content_id)
    assert not read_item(project.path / "ship-it.md").locally_changed


def test_filename_collisions_get_numeric_suffixes(project, remote):
    remote.add_item("Bug Fix", "one")
    remote.add_item("Bug Fix", "two")

    pull_project(project, remote)

    names = sorted(p.name for p in project.path.iterdir())
    assert names == ["bug-fix-2.md", "bug-fix.md"]


def test_collision_with_existing_local_file(project, remote):
    new_item_file(project.path, "Bug Fix", "local only")
    remote.add_item("Bug Fix", "remote")

    pull_project(project, remote)

    assert read_item(project.path / "bug-fix.md").item.body == "local only"
    assert read_item(project.path / "bug-fix-2.md").item.body == "remote"


def test_untitled_remote_item(project, remote):
    remote.add_item("", "no title")

    pull_project(project, remote)

    assert (project.path / "untitled.md").exists()


def test_pull_is_idempotent(project, remote):
    remote.add_item("A", "a", status="Todo")
    remote.add_item("B", "b")
    pull_project(project, remote)

    second = pull_project(project, remote)

    assert (second.created, second.updated, second.deleted, second.unchanged) == (0, 0, 0, 2)


def test_remote_edit_overwrites_but_keeps_local_metadata(project, remote):
    item = remote.add_item("Plan", "v1")
    pull_project(project, remote)
    path = project.path / "plan.md"
    local = read_item(path)
    write_item(path, replace(local.item, labels=["infra"], assignees=["alice"], fields={"estimate": 5}))
    remote.edit_item(item.id, title="Plan v2", body="v2", status="Done")

    result = pull_project(project, remote)

    assert result.updated == 1
    updated = read_item(path)
    assert (updated.item.title, updated.item.body, updated.item.status) == ("Plan v2", "v2", "Done")
    assert updated.item.labels == ["infra"]
    assert updated.item.assignees == ["alice"]
    assert updated.item.fields == {"estimate": 5}
    assert not updated.locally_changed


def test_local_edit_is_never_overwritten(project, remote):
    item = remote.add_item("Plan", "v1")
    pull_project(project, remote)
    path = project.path / "plan.md"
    local = read_item(path)
    write_item(path, replace(local.item, body="my unsynced edit"))
    remote.edit_item(item.id, body="remote edit")

    result = pull_project(project, remote)

    assert result.updated == 0
    assert read_item(path).item.body == "my unsynced edit"


def test_status_drift_refreshes_metadata_only(project, remote):
    item = remote.add_item("Plan", "v1", status="Todo")
    pull_project(project, remote)
    remote.edit_item(item.id, status="In Progress", content_kind=ContentKind.ISSUE)

    result = pull_project(project, remote)

    assert result.updated == 1
    refreshed = read_item(project.path / "plan.md").item
    assert refreshed.status == "In Progress"
    assert refreshed.content_type == "Issue"
    assert refreshed.body == "v1"
    assert pull_project(project, remote).updated == 0


def test_remote_deletion_tombstones_and_keeps_file(project, remote):
    item = remote.add_item("Doomed", "precious body")
    pull_project(project, remote)
    remote.remove_item(item.id)

    result = pull_project(project, remote)

    assert result.deleted == 1
    path = project.path / "doomed.md"
    assert path.exists()
    tomb = read_item(path).item
    assert tomb.deleted is True
    assert tomb.body == "precious body"
    # Already tombstoned: a second pull leaves it alone
    again = pull_project(project, remote)
    assert (again.deleted, again.unchanged) == (0, 1)


def test_pull_leaves_local_only_items_alone(project, remote):
    local = new_item_file(project.path, "Idea", "not pushed yet")
    before = local.path.read_text(encoding="utf-8")

    result = pull_project(project, remote)

    assert result.unchanged == 1
    assert local.path.read_text(encoding="utf-8") == before


def test_missing_project_reports_error_and_continues(root, project, remote, tmp_path):
    ghost = TrackedProject(owner="acme", number=99, name="ghost", path=tmp_path / "ghost")
    remote.add_item("Real", "r")

    report = pull_projects([ghost, project], remote)

    assert report.results[0].error == "Project acme/99 not found"
    assert report.results[1].created == 1
    assert report.first_error == "acme/99: Project acme/99 not found"


def test_pull_all_covers_every_tracked_project(root, project, remote):
    info = remote.add_project("acme", 2, "Second Board")
    other = attach_project(root, info)
    remote.add_item("One", "1")
    remote.add_item("Two", "2", number=2)

    report = pull_all(root, remote)

    assert report.ok
    assert report.totals["created"] == 2
    assert (project.path / "one.md").exists()
    assert (other.path / "two.md").exists()


def test_list_failure_is_confined_to_project(project, remote):
    remote.fail_on["list_items"] = NotFoundError("Project acme/1 not found")

    result = pull_project(project, remote)

    assert result.error == "Project acme/1 not found"
    assert list(project.path.iterdir()) == []
