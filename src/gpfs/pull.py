"""Pull executor: apply remote-side decisions of the reconciler to local files.

Pull only ever writes files; it never removes one. Items missing remotely
are tombstoned in place (``deleted: true``) so their body survives, and
items with unsynced local edits are left alone entirely.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from .filesystem import sanitize_for_filesystem, unique_filename
from .github import RemoteClient
from .logging import get_logger
from .models import Item, ProjectResult, RemoteItem, SyncReport, TrackedProject
from .orchestrator import PROJECT_ERRORS, ProjectSnapshot, load_snapshot, record_failure, run_projects
from .projects import get_tracked_projects
from .reconcile import ItemPair
from .store import refreshed_sync, write_item


def _metadata_drifted(pair: ItemPair) -> bool:
    item, remote = pair.local.item, pair.remote
    return (
        item.status != remote.status
        or item.content_type != remote.content_kind.value
        or item.content_id != remote.content_id
    )


def _from_remote(item: Item, remote: RemoteItem) -> Item:
    return replace(
        item,
        id=remote.id,
        title=remote.title,
        body=remote.body,
        status=remote.status,
        content_type=remote.content_kind.value,
        content_id=remote.content_id,
        sync=refreshed_sync(remote.body),
    )


def _create(snapshot: ProjectSnapshot, remote: RemoteItem, used: list[str], result: ProjectResult) -> None:
    project = snapshot.project
    filename = unique_filename(sanitize_for_filesystem(remote.title or "untitled"), used)
    used.append(filename)
    item = _from_remote(
        Item(
            project_id=snapshot.info.id,
            project_owner=project.owner,
            project_number=project.number,
        ),
        remote,
    )
    path = project.path / filename
    write_item(path, item)
    get_logger().log_item_action("pull_create", project.key, path, item_id=remote.id)
    result.created += 1


def apply_pull(snapshot: ProjectSnapshot, result: ProjectResult) -> None:
    project = snapshot.project
    actions = snapshot.actions
    logger = get_logger()
    # Left alone by pull; the next push takes care of them
    result.unchanged += (
        len(actions.local_new)
        + len(actions.local_modified)
        + len(actions.local_deleted)
        + len(actions.tombstone_cleanup)
    )

    used = [p.name for p in project.path.iterdir()]
    for remote in actions.remote_new:
        _create(snapshot, remote, used, result)

    for pair in actions.remote_modified:
        write_item(pair.local.path, _from_remote(pair.local.item, pair.remote))
        logger.log_item_action("pull_update", project.key, pair.local.path, item_id=pair.remote.id)
        result.updated += 1

    for pair in actions.unchanged:
        if not _metadata_drifted(pair):
            result.unchanged += 1
            continue
        remote = pair.remote
        write_item(
            pair.local.path,
            replace(
                pair.local.item,
                status=remote.status,
                content_type=remote.content_kind.value,
                content_id=remote.content_id,
            ),
        )
        logger.log_item_action("pull_refresh", project.key, pair.local.path, item_id=remote.id)
        result.updated += 1

    for local in actions.remote_deleted:
        write_item(local.path, replace(local.item, deleted=True))
        logger.log_item_action("pull_tombstone", project.key, local.path, item_id=local.item.id)
        result.deleted += 1


def pull_project(project: TrackedProject, client: RemoteClient) -> ProjectResult:
    result = ProjectResult(project=project)
    logger = get_logger()
    logger.log_operation("pull_project_start", project=project.key)
    try:
        apply_pull(load_snapshot(project, client), result)
    except PROJECT_ERRORS as exc:
        record_failure(result, exc, "pull")
    logger.log_operation("pull_project_done", **result.to_dict())
    return result


def pull_projects(projects: list[TrackedProject], client: RemoteClient) -> SyncReport:
    return run_projects(projects, lambda p: pull_project(p, client))


def pull_all(base_dir: Path, client: RemoteClient) -> SyncReport:
    """Pull every tracked project under ``base_dir``; the daemon's poll action."""
    return pull_projects(get_tracked_projects(base_dir), client)


__all__ = ["apply_pull", "pull_project", "pull_projects", "pull_all"]
