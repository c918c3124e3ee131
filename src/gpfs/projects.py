"""Project index: discovers tracked projects by scanning the root directory.

Layout::

    <root>/<owner>/<number>-<name>/<item>.md

The scan is a pure read. Anything that does not match the pattern (log
files, the lock record, ``detached-*`` directories) is ignored.
"""

from __future__ import annotations

import re
from pathlib import Path

from .errors import ProjectNotTrackedError
from .filesystem import ITEM_SUFFIX, sanitize_for_filesystem
from .models import ProjectInfo, TrackedProject

_PROJECT_DIR = re.compile(r"^(\d+)-(.+)$")
DETACHED_PREFIX = "detached-"


def _count_items(path: Path) -> int:
    return sum(1 for p in path.iterdir() if p.is_file() and p.suffix == ITEM_SUFFIX)


def get_tracked_projects(base_dir: Path) -> list[TrackedProject]:
    """Return every tracked project under ``base_dir`` sorted by (owner, number)."""
    if not base_dir.is_dir():
        return []
    tracked: list[TrackedProject] = []
    for owner_path in base_dir.iterdir():
        if not owner_path.is_dir() or owner_path.name.startswith("."):
            continue
        try:
            project_dirs = list(owner_path.iterdir())
        except OSError:
            continue
        for project_path in project_dirs:
            m = _PROJECT_DIR.match(project_path.name)
            if not m or not project_path.is_dir():
                continue
            try:
                item_count = _count_items(project_path)
            except OSError:
                continue
            tracked.append(
                TrackedProject(
                    owner=owner_path.name,
                    number=int(m.group(1)),
                    name=m.group(2),
                    path=project_path,
                    item_count=item_count,
                )
            )
    tracked.sort(key=lambda p: (p.owner, p.number))
    return tracked


def find_project(base_dir: Path, owner: str, number: int) -> TrackedProject:
    for project in get_tracked_projects(base_dir):
        if project.owner == owner and project.number == number:
            return project
    raise ProjectNotTrackedError(
        f"Project not tracked: {owner}/{number}. Run `gpfs attach {owner}/{number}` first."
    )


def project_for_path(base_dir: Path, path: Path) -> TrackedProject | None:
    """Return the tracked project whose directory directly contains ``path``."""
    parent = path.parent.resolve()
    for project in get_tracked_projects(base_dir):
        if project.path.resolve() == parent:
            return project
    return None


def project_dir_for(base_dir: Path, info: ProjectInfo) -> Path:
    return base_dir / info.owner / f"{info.number}-{sanitize_for_filesystem(info.title)}"


def attach_project(base_dir: Path, info: ProjectInfo) -> TrackedProject:
    """Create the directory for ``info`` (or reuse the one already tracked)."""
    for project in get_tracked_projects(base_dir):
        if project.owner == info.owner and project.number == info.number:
            return project
    path = project_dir_for(base_dir, info)
    path.mkdir(parents=True, exist_ok=True)
    return TrackedProject(
        owner=info.owner,
        number=info.number,
        name=path.name.split("-", 1)[1],
        path=path,
    )


def detach_project(base_dir: Path, owner: str, number: int) -> Path:
    """Stop tracking a project by renaming its directory out of the pattern.

    Files are kept; returns the new directory path.
    """
    project = find_project(base_dir, owner, number)
    target = project.path.with_name(DETACHED_PREFIX + project.path.name)
    counter = 2
    while target.exists():
        target = project.path.with_name(f"{DETACHED_PREFIX}{counter}-{project.path.name}")
        counter += 1
    project.path.rename(target)
    return target


__all__ = [
    "get_tracked_projects",
    "find_project",
    "project_for_path",
    "project_dir_for",
    "attach_project",
    "detach_project",
]
