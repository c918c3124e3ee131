"""Pytest configuration for gpfs tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`), and provides an
in-memory GitHub Projects client so no test ever shells out to `gh`.
"""

from __future__ import annotations

import os
import sys
from dataclasses import replace
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    # Prepend so that 'python -m gpfs' finds local package first
    sys.path.insert(0, str(SRC))

py_path = os.environ.get("PYTHONPATH", "")
parts = [p for p in py_path.split(os.pathsep) if p]
if str(SRC) not in parts:
    parts.insert(0, str(SRC))
    os.environ["PYTHONPATH"] = os.pathsep.join(parts)

from gpfs.errors import NotDraftError, NotFoundError  # noqa: E402
from gpfs.models import ContentKind, ProjectInfo, RemoteItem, TrackedProject  # noqa: E402
from gpfs.projects import attach_project  # noqa: E402


class FakeRemote:
    """In-memory stand-in for ``GhProjectsClient``.

    ``fail_on`` maps an operation name to the exception it should raise;
    ``calls`` records every operation in order.
    """

    def __init__(self) -> None:
        self.projects: dict[tuple[str, int], ProjectInfo] = {}
        self.items: dict[tuple[str, int], dict[str, RemoteItem]] = {}
        self.calls: list[tuple[str, ...]] = []
        self.fail_on: dict[str, Exception] = {}
        self.login = "octo"
        self._seq = 0

    def add_project(self, owner: str = "acme", number: int = 1, title: str = "Roadmap") -> ProjectInfo:
        info = ProjectInfo(id=f"PVT_{owner}_{number}", number=number, title=title, owner=owner)
        self.projects[(owner, number)] = info
        self.items.setdefault((owner, number), {})
        return info

    def add_item(
        self,
        title: str,
        body: str = "",
        *,
        status: str | None = None,
        kind: ContentKind = ContentKind.DRAFT,
        owner: str = "acme",
        number: int = 1,
    ) -> RemoteItem:
        self._seq += 1
        prefix = "DI" if kind is ContentKind.DRAFT else "I"
        item = RemoteItem(
            id=f"PVTI_{self._seq:04d}",
            title=title,
            body=body,
            status=status,
            content_kind=kind,
            content_id=f"{prefix}_{self._seq:04d}",
        )
        self.items[(owner, number)][item.id] = item
        return item

    def edit_item(self, item_id: str, owner: str = "acme", number: int = 1, **changes: object) -> RemoteItem:
        bucket = self.items[(owner, number)]
        bucket[item_id] = replace(bucket[item_id], **changes)  # type: ignore[arg-type]
        return bucket[item_id]

    def remove_item(self, item_id: str, owner: str = "acme", number: int = 1) -> None:
        del self.items[(owner, number)][item_id]

    def get(self, item_id: str, owner: str = "acme", number: int = 1) -> RemoteItem:
        return self.items[(owner, number)][item_id]

    def _record(self, op: str, *args: object) -> None:
        self.calls.append((op, *(str(a) for a in args)))
        exc = self.fail_on.get(op)
        if exc is not None:
            raise exc

    def mutating_calls(self) -> list[tuple[str, ...]]:
        return [c for c in self.calls if c[0] in {"create_item", "update_draft_item", "delete_item"}]

    # --- RemoteClient protocol ---------------------------------------------
    def logged_in_user(self) -> str:
        self._record("logged_in_user")
        return self.login

    def list_projects(self, owner: str) -> list[ProjectInfo]:
        self._record("list_projects", owner)
        return [info for (o, _), info in sorted(self.projects.items()) if o == owner]

    def create_project(self, owner: str, title: str) -> ProjectInfo:
        self._record("create_project", owner, title)
        number = 1 + max((n for (o, n) in self.projects if o == owner), default=0)
        return self.add_project(owner, number, title)

    def view_project(self, owner: str, number: int) -> ProjectInfo:
        self._record("view_project", owner, number)
        try:
            return self.projects[(owner, number)]
        except KeyError:
            raise NotFoundError(f"Project {owner}/{number} not found") from None

    def list_items(self, owner: str, number: int) -> list[RemoteItem]:
        self._record("list_items", owner, number)
        if (owner, number) not in self.projects:
            raise NotFoundError(f"Project {owner}/{number} not found")
        return list(self.items[(owner, number)].values())

    def create_item(self, owner: str, number: int, title: str, body: str) -> str:
        self._record("create_item", owner, number, title)
        return self.add_item(title, body, owner=owner, number=number).id

    def update_draft_item(self, content_id: str, title: str, body: str) -> None:
        self._record("update_draft_item", content_id, title)
        for bucket in self.items.values():
            for item_id, item in bucket.items():
                if item.content_id == content_id:
                    if not item.is_draft:
                        raise NotDraftError("Can only edit draft issues.")
                    bucket[item_id] = replace(item, title=title, body=body)
                    return
        raise NotFoundError(f"Draft item {content_id} not found")

    def delete_item(self, owner: str, number: int, item_id: str) -> None:
        self._record("delete_item", owner, number, item_id)
        bucket = self.items.get((owner, number), {})
        if item_id not in bucket:
            raise NotFoundError(f"Item {item_id} not found")
        del bucket[item_id]


@pytest.fixture
def remote() -> FakeRemote:
    fake = FakeRemote()
    fake.add_project()
    return fake


@pytest.fixture
def root(tmp_path: Path) -> Path:
    base = tmp_path / "gpfs-root"
    base.mkdir()
    return base


@pytest.fixture
def project(root: Path, remote: FakeRemote) -> TrackedProject:
    return attach_project(root, remote.projects[("acme", 1)])
