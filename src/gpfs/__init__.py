"""gpfs - mirror GitHub Projects (v2) items as local Markdown files.

High-level public API:

from pathlib import Path
from gpfs import GhProjectsClient, get_tracked_projects, push_projects, pull_projects

client = GhProjectsClient()
projects = get_tracked_projects(Path.home() / ".gpfs")
report = pull_projects(projects, client)
print(report.totals)

One-shot runs and the background daemon share the same reconciler and
executors; see ``gpfs.daemon`` for the scheduler.
"""

from __future__ import annotations

from .config import SyncConfig, load_config
from .errors import GpfsError
from .frontmatter import compute_checksum, parse, serialize
from .github import GhProjectsClient, RemoteClient
from .models import Item, ProjectResult, RemoteItem, SyncReport, TrackedProject
from .projects import get_tracked_projects
from .pull import pull_projects
from .push import push_projects
from .reconcile import ActionSet, reconcile

__version__ = "0.1.0"

__all__ = [
    "ActionSet",
    "GhProjectsClient",
    "GpfsError",
    "Item",
    "ProjectResult",
    "RemoteClient",
    "RemoteItem",
    "SyncConfig",
    "SyncReport",
    "TrackedProject",
    "compute_checksum",
    "get_tracked_projects",
    "load_config",
    "parse",
    "pull_projects",
    "push_projects",
    "reconcile",
    "serialize",
    "__version__",
]
