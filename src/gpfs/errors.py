"""Error taxonomy & redaction helpers.

Every failure the sync engine surfaces maps onto one of a small set of
categories so that executors, the daemon and the CLI can decide uniformly
whether to skip an item, abort a project, or just log and carry on.

Public API:
- ``GpfsError`` and its subclasses (raised by the remote client, the store
  and the lock record)
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

# Token patterns that may leak through gh stderr or environment dumps
_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ghp_[A-Za-z0-9]{20,40}"),  # GitHub classic tokens
    re.compile(r"gho_[A-Za-z0-9]{20,40}"),  # OAuth tokens issued to gh
    re.compile(r"github_pat_\w{20,}"),  # GitHub fine-grained tokens
]

_REDACTION_PLACEHOLDER = "<redacted>"


class GpfsError(RuntimeError):
    """Base class for errors raised by gpfs itself."""

    category = "generic"
    transient = False


class RemoteError(GpfsError):
    """The remote service rejected a request (the catch-all ``Other`` case)."""

    category = "remote"


class NotFoundError(RemoteError):
    category = "remote.not_found"


class MissingScopeError(RemoteError):
    category = "remote.missing_scope"


class NotLoggedInError(RemoteError):
    category = "remote.not_logged_in"


class NotDraftError(RemoteError):
    """Attempted to edit an item that is a linked issue or pull request."""

    category = "remote.not_draft"


class RemoteTransientError(RemoteError):
    category = "remote.transient"
    transient = True


class ParseError(GpfsError):
    """A local item file carries a metadata block that does not parse."""

    category = "parse"


class DaemonConflictError(GpfsError):
    category = "daemon.conflict"


class ProjectNotTrackedError(GpfsError):
    category = "project.not_tracked"


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Replace anything that looks like a GitHub token with a placeholder."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    Strategy:
    - gpfs errors carry their own category
    - filesystem failures -> 'io'
    - network-y keywords -> 'network', transient True
    - fallback -> 'generic'
    """
    msg = str(exc) if exc else ""
    name = exc.__class__.__name__
    if isinstance(exc, GpfsError):
        return ErrorInfo(exc.category, redact(msg), name, transient=exc.transient)
    if isinstance(exc, OSError):
        details = {"path": exc.filename} if getattr(exc, "filename", None) else None
        return ErrorInfo("io", redact(msg), name, details=details)
    low = msg.lower()
    if "rate limit" in low or "secondary rate" in low:
        return ErrorInfo("remote.rate_limit", redact(msg), name, transient=True)
    if any(k in low for k in ("timeout", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", redact(msg), name, transient=True)
    return ErrorInfo("generic", redact(msg), name)


__all__ = [
    "GpfsError",
    "RemoteError",
    "NotFoundError",
    "MissingScopeError",
    "NotLoggedInError",
    "NotDraftError",
    "RemoteTransientError",
    "ParseError",
    "DaemonConflictError",
    "ProjectNotTrackedError",
    "ErrorInfo",
    "classify_error",
    "redact",
]
