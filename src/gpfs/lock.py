"""Singleton lock record for the daemon (``<root>/daemon.pid``).

The record is a small JSON document::

    {"pid": 4242, "startedAt": "2025-01-01T00:00:00+00:00",
     "pollIntervalSeconds": 300, "debounceSeconds": 2}

It is created with ``O_CREAT | O_EXCL`` so two daemons racing for the same
root cannot both win. A record whose process is gone (or whose pid has been
recycled by a process started after ``startedAt``) is stale and reclaimed
under a ``daemon.pid.reclaim`` guard file.
"""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import psutil
from jsonschema import Draft7Validator

from .errors import DaemonConflictError
from .logging import get_logger

LOCK_FILENAME = "daemon.pid"
RECLAIM_SUFFIX = ".reclaim"
# A reclaim guard older than this was left by a crashed process
_RECLAIM_TIMEOUT = 30.0
# Seconds of slack between the recorded start and the process create time
_CLOCK_SLACK = 2.0

LOCK_RECORD_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "gpfs daemon lock record",
    "type": "object",
    "required": ["pid", "startedAt", "pollIntervalSeconds", "debounceSeconds"],
    "properties": {
        "pid": {"type": "integer", "minimum": 1},
        "startedAt": {"type": "string", "minLength": 1},
        "pollIntervalSeconds": {"type": "number", "exclusiveMinimum": 0},
        "debounceSeconds": {"type": "number", "exclusiveMinimum": 0},
    },
    "additionalProperties": True,
}

_VALIDATOR = Draft7Validator(LOCK_RECORD_SCHEMA)


@dataclass(frozen=True)
class LockRecord:
    pid: int
    started_at: str
    poll_interval: float
    debounce: float

    def to_json(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "startedAt": self.started_at,
            "pollIntervalSeconds": self.poll_interval,
            "debounceSeconds": self.debounce,
        }

    @classmethod
    def from_json(cls, data: Any) -> LockRecord:
        errors = sorted(_VALIDATOR.iter_errors(data), key=lambda err: list(err.path))
        if errors:
            raise ValueError("Invalid lock record: " + "; ".join(e.message for e in errors))
        started = str(data["startedAt"])
        datetime.fromisoformat(started)  # raises ValueError on garbage
        return cls(
            pid=int(data["pid"]),
            started_at=started,
            poll_interval=float(data["pollIntervalSeconds"]),
            debounce=float(data["debounceSeconds"]),
        )

    @property
    def started_timestamp(self) -> float:
        started = datetime.fromisoformat(self.started_at)
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        return started.timestamp()


def is_alive(record: LockRecord) -> bool:
    """True when the recorded process still exists and predates the record."""
    if not psutil.pid_exists(record.pid):
        return False
    try:
        created = psutil.Process(record.pid).create_time()
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Exists but not inspectable; assume it is the daemon
        return True
    return created <= record.started_timestamp + _CLOCK_SLACK


def read_record(path: Path) -> LockRecord | None:
    """Parse the lock record at ``path``; ``None`` when absent or unusable."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    try:
        return LockRecord.from_json(json.loads(raw))
    except ValueError as exc:  # json.JSONDecodeError is a ValueError
        get_logger().warning(f"ignoring invalid lock record {path}: {exc}", path=str(path))
        return None


@dataclass(frozen=True)
class DaemonStatus:
    running: bool
    record: LockRecord | None = None
    stale: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"running": self.running, "stale": self.stale}
        if self.record is not None:
            data.update(self.record.to_json())
        return data


def read_status(base_dir: Path) -> DaemonStatus:
    path = base_dir / LOCK_FILENAME
    record = read_record(path)
    if record is None:
        return DaemonStatus(running=False, stale=path.exists())
    if is_alive(record):
        return DaemonStatus(running=True, record=record)
    return DaemonStatus(running=False, record=record, stale=True)


class DaemonLock:
    """Owns ``<root>/daemon.pid`` for the lifetime of one daemon process."""

    def __init__(self, base_dir: Path) -> None:
        self.path = base_dir / LOCK_FILENAME
        self.record: LockRecord | None = None
        self.logger = get_logger()

    def _try_create(self, record: LockRecord) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(record.to_json(), fh)
            fh.write("\n")
        return True

    def _reclaim(self, stale: LockRecord | None) -> None:
        """Remove the record only if it still is the stale one we inspected.

        Reclaimers serialize on an ``O_EXCL`` guard file so that one of them
        cannot delete a record another has just written.
        """
        guard = self.path.with_name(self.path.name + RECLAIM_SUFFIX)
        try:
            fd = os.open(guard, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            try:
                abandoned = time.time() - guard.stat().st_mtime > _RECLAIM_TIMEOUT
            except FileNotFoundError:
                return
            if abandoned:
                self.logger.warning("removing abandoned reclaim guard", path=str(guard))
                guard.unlink(missing_ok=True)
            return
        os.close(fd)
        try:
            if read_record(self.path) == stale:
                self.path.unlink(missing_ok=True)
            else:
                self.logger.debug("lock record changed during reclaim", path=str(self.path))
        finally:
            guard.unlink(missing_ok=True)

    def acquire(self, poll_interval: float, debounce: float, pid: int | None = None) -> LockRecord:
        """Write the lock record or raise ``DaemonConflictError`` if a live daemon owns it."""
        record = LockRecord(
            pid=pid if pid is not None else os.getpid(),
            started_at=datetime.now(timezone.utc).isoformat(),
            poll_interval=poll_interval,
            debounce=debounce,
        )
        for _ in range(3):
            if self._try_create(record):
                self.record = record
                self.logger.log_operation("lock_acquired", pid=record.pid, path=str(self.path))
                return record
            existing = read_record(self.path)
            if existing is not None and is_alive(existing):
                raise DaemonConflictError(
                    f"Daemon already running (pid {existing.pid}, started {existing.started_at})"
                )
            self.logger.warning(
                "reclaiming stale lock record",
                path=str(self.path),
                stale_pid=existing.pid if existing else None,
            )
            self._reclaim(existing)
        raise DaemonConflictError(f"Could not acquire lock record {self.path}")

    def release(self) -> None:
        """Remove the record if it is still ours."""
        if self.record is None:
            return
        current = read_record(self.path)
        if current is not None and current.pid == self.record.pid:
            self.path.unlink(missing_ok=True)
            self.logger.log_operation("lock_released", pid=self.record.pid)
        self.record = None

    def __enter__(self) -> DaemonLock:
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()


__all__ = [
    "LOCK_FILENAME",
    "RECLAIM_SUFFIX",
    "LOCK_RECORD_SCHEMA",
    "LockRecord",
    "DaemonStatus",
    "DaemonLock",
    "is_alive",
    "read_record",
    "read_status",
]
