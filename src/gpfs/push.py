"""Push executor: apply local-side decisions of the reconciler to the remote.

Per project, in order: create new local items, update locally modified
drafts, delete tombstoned items. The first failure aborts the remaining
actions of that project (counts made so far are kept); other projects are
unaffected. Re-running after a partial failure is safe because already
synced items reconcile as unchanged.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from .errors import NotDraftError, NotFoundError, ParseError
from .github import RemoteClient
from .logging import get_logger
from .models import ContentKind, ProjectResult, SyncReport, TrackedProject
from .orchestrator import (
    PROJECT_ERRORS,
    ProjectSnapshot,
    load_snapshot,
    record_failure,
    run_projects,
)
from .projects import project_for_path
from .reconcile import ItemPair
from .store import LocalItem, read_item, refreshed_sync, remove_item, write_item


def _create(snapshot: ProjectSnapshot, local: LocalItem, client: RemoteClient, result: ProjectResult, dry_run: bool) -> None:
    project = snapshot.project
    title = local.title
    if not dry_run:
        item_id = client.create_item(project.owner, project.number, title, local.item.body)
        write_item(
            local.path,
            replace(
                local.item,
                id=item_id,
                title=title,
                project_id=snapshot.info.id,
                project_owner=project.owner,
                project_number=project.number,
                content_type=ContentKind.DRAFT.value,
                sync=refreshed_sync(local.item.body),
            ),
        )
    else:
        item_id = None
    get_logger().log_item_action("create", project.key, local.path, item_id=item_id, dry_run=dry_run)
    result.created += 1


def _not_draft(pair: ItemPair, result: ProjectResult, project: TrackedProject) -> None:
    message = f"not-draft: {pair.local.filename} is a linked {pair.remote.content_kind.value}; left unchanged"
    get_logger().warning(message, project=project.key, path=str(pair.local.path))
    result.warnings.append(message)
    result.unchanged += 1


def _update(snapshot: ProjectSnapshot, pair: ItemPair, client: RemoteClient, result: ProjectResult, dry_run: bool) -> None:
    project = snapshot.project
    local, remote = pair.local, pair.remote
    if not remote.is_draft or not remote.content_id:
        _not_draft(pair, result, project)
        return
    if not dry_run:
        try:
            client.update_draft_item(remote.content_id, local.title, local.item.body)
        except NotDraftError:
            _not_draft(pair, result, project)
            return
        write_item(
            local.path,
            replace(
                local.item,
                title=local.title,
                content_type=remote.content_kind.value,
                content_id=remote.content_id,
                sync=refreshed_sync(local.item.body),
            ),
        )
    get_logger().log_item_action("update", project.key, local.path, item_id=remote.id, dry_run=dry_run)
    result.updated += 1


def _delete(snapshot: ProjectSnapshot, pair: ItemPair, client: RemoteClient, result: ProjectResult, dry_run: bool) -> None:
    project = snapshot.project
    if not dry_run:
        try:
            client.delete_item(project.owner, project.number, pair.remote.id)
        except NotFoundError:
            get_logger().debug("item already absent remotely", item_id=pair.remote.id)
        remove_item(pair.local.path)
    get_logger().log_item_action("delete", project.key, pair.local.path, item_id=pair.remote.id, dry_run=dry_run)
    result.deleted += 1


def _cleanup(snapshot: ProjectSnapshot, local: LocalItem, result: ProjectResult, dry_run: bool) -> None:
    if not dry_run:
        remove_item(local.path)
    get_logger().log_item_action("cleanup", snapshot.project.key, local.path, item_id=local.item.id, dry_run=dry_run)
    result.deleted += 1


def apply_push(
    snapshot: ProjectSnapshot,
    client: RemoteClient,
    result: ProjectResult,
    *,
    dry_run: bool = False,
    cleanup_tombstones: bool = True,
) -> None:
    actions = snapshot.actions
    # Local items the push leaves alone
    result.unchanged += len(actions.unchanged) + len(actions.remote_modified) + len(actions.remote_deleted)
    for local in actions.local_new:
        _create(snapshot, local, client, result, dry_run)
    for pair in actions.local_modified:
        _update(snapshot, pair, client, result, dry_run)
    for pair in actions.local_deleted:
        _delete(snapshot, pair, client, result, dry_run)
    if not cleanup_tombstones:
        result.unchanged += len(actions.tombstone_cleanup)
        return
    for local in actions.tombstone_cleanup:
        _cleanup(snapshot, local, result, dry_run)


def push_project(project: TrackedProject, client: RemoteClient, *, dry_run: bool = False) -> ProjectResult:
    result = ProjectResult(project=project)
    logger = get_logger()
    logger.log_operation("push_project_start", project=project.key, dry_run=dry_run)
    try:
        snapshot = load_snapshot(project, client)
        apply_push(snapshot, client, result, dry_run=dry_run)
    except PROJECT_ERRORS as exc:
        record_failure(result, exc, "push")
    logger.log_operation("push_project_done", **result.to_dict())
    return result


def push_projects(projects: list[TrackedProject], client: RemoteClient, *, dry_run: bool = False) -> SyncReport:
    return run_projects(projects, lambda p: push_project(p, client, dry_run=dry_run))


def push_file(base_dir: Path, path: Path, client: RemoteClient) -> ProjectResult | None:
    """Push a single item file; the daemon's per-file action.

    Returns ``None`` when the path is not an item of a tracked project or no
    longer exists. Tombstones whose remote item is already gone are kept for
    review; only a one-shot push removes them.
    """
    logger = get_logger()
    project = project_for_path(base_dir, path)
    if project is None:
        logger.debug("ignoring file outside tracked projects", path=str(path))
        return None
    if not path.exists():
        logger.debug("file vanished before push", path=str(path))
        return None
    result = ProjectResult(project=project)
    try:
        local = read_item(path)
    except ParseError as exc:
        logger.warning(f"skipping malformed item file: {exc}", path=str(path))
        result.warnings.append(str(exc))
        return result
    except OSError as exc:
        record_failure(result, exc, "push")
        return result

    item = local.item
    if item.has_canonical_id and not item.deleted and not local.locally_changed:
        # Already in sync with its baseline; no remote round trip needed
        result.unchanged = 1
        return result
    if item.deleted and not item.has_canonical_id:
        logger.debug("keeping tombstone of an item never created remotely", path=str(path))
        result.unchanged = 1
        return result
    try:
        snapshot = load_snapshot(project, client, local_items=[local])
        apply_push(snapshot, client, result, cleanup_tombstones=False)
    except PROJECT_ERRORS as exc:
        record_failure(result, exc, "push")
    return result


__all__ = ["apply_push", "push_project", "push_projects", "push_file"]
