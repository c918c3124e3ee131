"""Shared plumbing for push, pull and status runs.

A run always works per tracked project: fetch the project and its items,
read the local files, reconcile, then let an executor apply the result.
Failures are confined to the project they happen in; the aggregate
``SyncReport`` carries one ``ProjectResult`` per requested project.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .errors import GpfsError, ProjectNotTrackedError, classify_error
from .filesystem import parse_project_identifier
from .github import RemoteClient
from .logging import get_logger
from .models import ProjectInfo, ProjectResult, RemoteItem, SyncReport, TrackedProject
from .projects import find_project, get_tracked_projects
from .reconcile import ActionSet, reconcile
from .store import LocalItem, load_items

# Errors that abort one project's run but never the whole command
PROJECT_ERRORS: tuple[type[BaseException], ...] = (GpfsError, OSError)


@dataclass
class ProjectSnapshot:
    project: TrackedProject
    info: ProjectInfo
    local_items: list[LocalItem]
    remote_items: list[RemoteItem]
    actions: ActionSet


def load_snapshot(
    project: TrackedProject,
    client: RemoteClient,
    local_items: list[LocalItem] | None = None,
) -> ProjectSnapshot:
    info = client.view_project(project.owner, project.number)
    remote_items = client.list_items(project.owner, project.number)
    locals_ = load_items(project.path) if local_items is None else local_items
    return ProjectSnapshot(
        project=project,
        info=info,
        local_items=locals_,
        remote_items=remote_items,
        actions=reconcile(locals_, remote_items),
    )


def select_projects(base_dir: Path, identifier: str | None = None) -> list[TrackedProject]:
    """Resolve an optional ``owner/number`` into the projects a command runs on."""
    if identifier:
        parsed = parse_project_identifier(identifier)
        if parsed is None:
            raise ValueError(
                f'Invalid project identifier: "{identifier}". '
                "Expected format: owner/number (e.g., myorg/42)"
            )
        return [find_project(base_dir, *parsed)]
    projects = get_tracked_projects(base_dir)
    if not projects:
        raise ProjectNotTrackedError(
            "No tracked projects found. Run `gpfs attach <owner/number>` to start tracking a project."
        )
    return projects


def record_failure(result: ProjectResult, exc: BaseException, operation: str) -> None:
    info = classify_error(exc)
    result.error = info.message
    get_logger().log_error(
        f"{operation} failed for {result.project.key}",
        error=info.message,
        category=info.category,
        project=result.project.key,
    )


def run_projects(
    projects: list[TrackedProject], run_one: Callable[[TrackedProject], ProjectResult]
) -> SyncReport:
    """Run ``run_one`` for each project; one project's failure never stops the others."""
    report = SyncReport()
    for project in projects:
        report.results.append(run_one(project))
    return report


def project_status(project: TrackedProject, client: RemoteClient) -> ActionSet:
    return load_snapshot(project, client).actions


__all__ = [
    "PROJECT_ERRORS",
    "ProjectSnapshot",
    "load_snapshot",
    "select_projects",
    "record_failure",
    "run_projects",
    "project_status",
]
