"""GitHub Projects (v2) client built on the GitHub CLI (``gh project ...``).

Encapsulates every remote interaction the sync engine needs so that the
executors only see typed results and the error taxonomy in ``errors``:

 - ``view_project`` / ``list_items`` / ``list_projects`` / ``logged_in_user``   read side
 - ``create_item`` / ``update_draft_item`` / ``delete_item`` / ``create_project``   write side

Failures are classified from gh's stderr. Transient failures (rate limits,
dropped connections) are retried through ``retry.run_with_retries`` before
surfacing as ``RemoteTransientError``.
"""

from __future__ import annotations

import json
import shutil
import subprocess  # nosec B404 - subprocess is required for GitHub CLI invocation
from typing import Any, Protocol

from .errors import (
    MissingScopeError,
    NotLoggedInError,
    NotDraftError,
    NotFoundError,
    RemoteError,
    RemoteTransientError,
)
from .logging import get_logger
from .models import ContentKind, ProjectInfo, RemoteItem
from .retry import RetryConfig, error_output, is_transient, run_with_retries

ITEM_LIST_LIMIT = 1000
PROJECT_LIST_LIMIT = 100
SCOPE_HINT = "GitHub CLI missing project scope. Run: gh auth refresh -s project"
LOGIN_HINT = "Not logged in to GitHub CLI. Run: gh auth login"


class RemoteClient(Protocol):  # pragma: no cover - interface only
    def logged_in_user(self) -> str: ...

    def list_projects(self, owner: str) -> list[ProjectInfo]: ...

    def create_project(self, owner: str, title: str) -> ProjectInfo: ...

    def view_project(self, owner: str, number: int) -> ProjectInfo: ...

    def list_items(self, owner: str, number: int) -> list[RemoteItem]: ...

    def create_item(self, owner: str, number: int, title: str, body: str) -> str: ...

    def update_draft_item(self, content_id: str, title: str, body: str) -> None: ...

    def delete_item(self, owner: str, number: int, item_id: str) -> None: ...


def _classify_failure(stderr: str, subject: str) -> RemoteError:
    text = stderr.strip()
    if "missing required scopes" in text:
        return MissingScopeError(SCOPE_HINT)
    if "not logged in" in text or "auth login" in text:
        return NotLoggedInError(LOGIN_HINT)
    if "ID must be the ID of the draft issue" in text:
        return NotDraftError(
            "Can only edit draft issues. For Issues/PRs, use gh issue edit or gh pr edit."
        )
    if "Could not resolve" in text:
        return NotFoundError(f"{subject} not found")
    if is_transient(text):
        return RemoteTransientError(f"{subject}: {text}")
    return RemoteError(f"{subject}: {text or 'gh exited with an error'}")


def _parse_project(raw: dict[str, Any], owner: str, number: int = 0) -> ProjectInfo:
    owner_data = raw.get("owner") if isinstance(raw.get("owner"), dict) else {}
    return ProjectInfo(
        id=str(raw.get("id")),
        number=int(raw.get("number") or number),
        title=str(raw.get("title") or ""),
        owner=str(owner_data.get("login") or owner),
    )


def _parse_item(raw: dict[str, Any]) -> RemoteItem:
    content = raw.get("content") if isinstance(raw.get("content"), dict) else {}
    status = raw.get("status")
    return RemoteItem(
        id=str(raw.get("id")),
        title=str(raw.get("title") or content.get("title") or ""),
        body=str(content.get("body") or ""),
        status=status if isinstance(status, str) else None,
        content_kind=ContentKind.parse(content.get("type")),
        content_id=content.get("id") if isinstance(content.get("id"), str) else None,
    )


class GhProjectsClient:
    """Thin wrapper around ``gh project`` subcommands.

    Public methods return parsed payloads and raise ``RemoteError``
    subclasses on failure.
    """

    def __init__(self, gh_path: str | None = None, retry: RetryConfig | None = None) -> None:
        self._gh = gh_path or shutil.which("gh") or "gh"
        self._retry = retry
        self.logger = get_logger()

    # --- internal helpers -------------------------------------------------
    def _run(self, args: list[str], subject: str) -> str:
        cmd = [self._gh, *args]
        self.logger.debug("gh invocation", command=" ".join(args[:2]), subject=subject)

        def _call() -> subprocess.CompletedProcess[str]:
            return subprocess.run(  # nosec B603 - fixed gh executable with argument list
                cmd, capture_output=True, text=True, check=True
            )

        try:
            result = run_with_retries(_call, cfg=self._retry)
        except FileNotFoundError as exc:
            raise RemoteError(f"GitHub CLI not found ({self._gh}); install gh") from exc
        except subprocess.CalledProcessError as exc:
            raise _classify_failure(error_output(exc), subject) from exc
        return result.stdout

    def _run_json(self, args: list[str], subject: str) -> Any:
        out = self._run(args, subject)
        try:
            return json.loads(out) if out.strip() else {}
        except json.JSONDecodeError as exc:
            raise RemoteError(f"{subject}: unexpected gh output") from exc

    # --- read side --------------------------------------------------------
    def view_project(self, owner: str, number: int) -> ProjectInfo:
        data = self._run_json(
            ["project", "view", str(number), "--owner", owner, "--format", "json"],
            f"Project {owner}/{number}",
        )
        return _parse_project(data if isinstance(data, dict) else {}, owner, number)

    def logged_in_user(self) -> str:
        login = self._run(["api", "user", "--jq", ".login"], "Logged-in user").strip()
        if not login:
            raise NotLoggedInError(LOGIN_HINT)
        return login

    def list_projects(self, owner: str) -> list[ProjectInfo]:
        data = self._run_json(
            ["project", "list", "--owner", owner, "--format", "json", "--limit", str(PROJECT_LIST_LIMIT)],
            f"Projects of {owner}",
        )
        raw_projects = data.get("projects") if isinstance(data, dict) else None
        if not isinstance(raw_projects, list):
            return []
        return [_parse_project(entry, owner) for entry in raw_projects if isinstance(entry, dict)]

    def list_items(self, owner: str, number: int) -> list[RemoteItem]:
        data = self._run_json(
            [
                "project",
                "item-list",
                str(number),
                "--owner",
                owner,
                "--format",
                "json",
                "--limit",
                str(ITEM_LIST_LIMIT),
            ],
            f"Project {owner}/{number}",
        )
        raw_items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(raw_items, list):
            return []
        return [_parse_item(entry) for entry in raw_items if isinstance(entry, dict)]

    # --- write side -------------------------------------------------------
    def create_project(self, owner: str, title: str) -> ProjectInfo:
        data = self._run_json(
            ["project", "create", "--owner", owner, "--title", title, "--format", "json"],
            f"New project for {owner}",
        )
        if not isinstance(data, dict) or not data.get("number"):
            raise RemoteError(f"New project for {owner}: project create returned no number")
        return _parse_project(data, owner)

    def create_item(self, owner: str, number: int, title: str, body: str) -> str:
        data = self._run_json(
            [
                "project",
                "item-create",
                str(number),
                "--owner",
                owner,
                "--title",
                title,
                "--body",
                body,
                "--format",
                "json",
            ],
            f"Project {owner}/{number}",
        )
        item_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(item_id, str) or not item_id:
            raise RemoteError(f"Project {owner}/{number}: item-create returned no id")
        return item_id

    def update_draft_item(self, content_id: str, title: str, body: str) -> None:
        self._run(
            ["project", "item-edit", "--id", content_id, "--title", title, "--body", body, "--format", "json"],
            f"Draft item {content_id}",
        )

    def delete_item(self, owner: str, number: int, item_id: str) -> None:
        self._run(
            [
                "project",
                "item-delete",
                str(number),
                "--owner",
                owner,
                "--id",
                item_id,
                "--format",
                "json",
            ],
            f"Item {item_id}",
        )


__all__ = ["RemoteClient", "GhProjectsClient", "ITEM_LIST_LIMIT", "PROJECT_LIST_LIMIT"]
