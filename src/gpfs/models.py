from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

# GitHub project-item node ids; anything else has not been created remotely yet
CANONICAL_ID_PREFIX = "PVTI_"


def is_canonical_id(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(CANONICAL_ID_PREFIX)


@dataclass(frozen=True)
class TrackedProject:
    """A ``<owner>/<number>-<name>`` directory under the root.

    Discovered by scanning; the directory itself is the only persisted state.
    """

    owner: str
    number: int
    name: str
    path: Path
    item_count: int = 0

    @property
    def key(self) -> str:
        return f"{self.owner}/{self.number}"


@dataclass(frozen=True)
class ProjectInfo:
    id: str
    number: int
    title: str
    owner: str


class ContentKind(str, Enum):
    DRAFT = "DraftIssue"
    ISSUE = "Issue"
    PULL_REQUEST = "PullRequest"

    @classmethod
    def parse(cls, value: Any) -> ContentKind:
        for kind in cls:
            if kind.value == value:
                return kind
        # Unknown kinds are treated as linked content: never edited in place
        return cls.ISSUE


@dataclass(frozen=True)
class RemoteItem:
    id: str
    title: str
    body: str
    status: str | None
    content_kind: ContentKind
    content_id: str | None

    @property
    def is_draft(self) -> bool:
        return self.content_kind is ContentKind.DRAFT


@dataclass
class SyncMeta:
    remote_updated_at: str | None = None
    local_checksum: str | None = None


@dataclass
class Item:
    """Canonical in-memory form of one item file.

    ``fields`` holds custom metadata keys in file order; every other
    attribute corresponds to a recognised frontmatter key.
    """

    title: str = ""
    body: str = ""
    id: str | None = None
    status: str | None = None
    deleted: bool = False
    sync: SyncMeta | None = None
    project_id: str | None = None
    project_owner: str | None = None
    project_number: int | None = None
    content_type: str | None = None
    content_id: str | None = None
    assignees: list[Any] = field(default_factory=list)
    labels: list[Any] = field(default_factory=list)
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def has_canonical_id(self) -> bool:
        return is_canonical_id(self.id)

    @property
    def stored_checksum(self) -> str | None:
        return self.sync.local_checksum if self.sync else None


@dataclass
class ProjectResult:
    project: TrackedProject
    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    error: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.deleted)

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project.key,
            "path": str(self.project.path),
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "unchanged": self.unchanged,
            "error": self.error,
            "warnings": list(self.warnings),
        }


@dataclass
class SyncReport:
    results: list[ProjectResult] = field(default_factory=list)

    @property
    def totals(self) -> dict[str, int]:
        keys = ("created", "updated", "deleted", "unchanged")
        return {k: sum(getattr(r, k) for r in self.results) for k in keys}

    @property
    def first_error(self) -> str | None:
        for result in self.results:
            if result.error:
                return f"{result.project.key}: {result.error}"
        return None

    @property
    def ok(self) -> bool:
        return self.first_error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "totals": self.totals,
            "projects": [r.to_dict() for r in self.results],
            "first_error": self.first_error,
        }


__all__ = [
    "CANONICAL_ID_PREFIX",
    "is_canonical_id",
    "TrackedProject",
    "ProjectInfo",
    "ContentKind",
    "RemoteItem",
    "SyncMeta",
    "Item",
    "ProjectResult",
    "SyncReport",
]
