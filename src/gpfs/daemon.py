"""Background daemon: keeps tracked projects in sync without manual runs.

Two producers feed one serialized work queue:

* file changes (from a watchdog observer thread) arm a per-path debounce
  timer; when it expires a *push this file* action is queued
* a poll task queues a *pull all projects* action every ``poll_interval``

A single consumer runs the queued actions one at a time in a worker thread,
so a push and a pull never touch the same project directory concurrently
while timers keep firing on the event loop.
"""

from __future__ import annotations

import asyncio
import os
import signal
import subprocess  # nosec B404 - used to spawn the detached daemon process
import sys
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import psutil
from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .config import SyncConfig
from .errors import DaemonConflictError, GpfsError, classify_error
from .filesystem import ITEM_SUFFIX
from .github import GhProjectsClient, RemoteClient
from .lock import LOCK_FILENAME, DaemonLock, read_status
from .logging import configure_logging, get_logger
from .projects import project_for_path
from .pull import pull_all
from .push import push_file
from .retry import RetryConfig

_WATCHED_EVENTS = {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED, EVENT_TYPE_DELETED}


class DaemonState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Action:
    kind: str  # "push" or "pull"
    path: Path | None = None

    @property
    def key(self) -> str:
        return f"push:{self.path}" if self.kind == "push" else "pull"


PULL_ALL = Action("pull")


class DaemonScheduler:
    """Debounce + poll triggers merged into one single-consumer queue.

    ``notify_file_changed``, ``request_pull`` and ``request_stop`` may be
    called from any thread.
    """

    def __init__(
        self,
        push_file: Callable[[Path], Any],
        pull_all: Callable[[], Any],
        poll_interval: float,
        debounce: float,
        *,
        poll_on_start: bool = True,
    ) -> None:
        self._push_file = push_file
        self._pull_all = pull_all
        self.poll_interval = poll_interval
        self.debounce = debounce
        self.poll_on_start = poll_on_start
        self.state = DaemonState.STARTING
        self.logger = get_logger()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[Action | None] | None = None
        self._stop_event: asyncio.Event | None = None
        self._stop_requested = False
        self._timers: dict[Path, asyncio.TimerHandle] = {}
        self._queued: set[str] = set()

    # --- producers ---------------------------------------------------------
    def notify_file_changed(self, path: Path | str) -> None:
        loop = self._loop
        if loop is None or self.state is not DaemonState.RUNNING:
            return
        loop.call_soon_threadsafe(self._reset_timer, Path(path))

    def request_pull(self) -> None:
        loop = self._loop
        if loop is None or self.state is not DaemonState.RUNNING:
            return
        loop.call_soon_threadsafe(self._enqueue, PULL_ALL)

    def _reset_timer(self, path: Path) -> None:
        if self.state is not DaemonState.RUNNING or self._loop is None:
            return
        pending = self._timers.pop(path, None)
        if pending is not None:
            pending.cancel()
        self._timers[path] = self._loop.call_later(self.debounce, self._debounce_expired, path)

    def _debounce_expired(self, path: Path) -> None:
        self._timers.pop(path, None)
        self._enqueue(Action("push", path))

    def _enqueue(self, action: Action) -> None:
        if self.state is not DaemonState.RUNNING or self._queue is None:
            return
        if action.key in self._queued:
            self.logger.debug("action already queued", action=action.key)
            return
        self._queued.add(action.key)
        self._queue.put_nowait(action)

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            self._enqueue(PULL_ALL)

    # --- consumer ----------------------------------------------------------
    def _execute(self, action: Action) -> None:
        if action.kind == "push" and action.path is not None:
            self._push_file(action.path)
        else:
            self._pull_all()

    async def _consume(self) -> None:
        assert self._queue is not None
        loop = asyncio.get_running_loop()
        while True:
            action = await self._queue.get()
            if action is None:
                return
            self._queued.discard(action.key)
            try:
                with self.logger.timed_operation(f"daemon_{action.kind}", path=str(action.path or "")):
                    await loop.run_in_executor(None, self._execute, action)
            except Exception as exc:  # the loop must survive any failed action
                info = classify_error(exc)
                self.logger.log_error(
                    f"daemon {action.kind} failed", error=info.message, category=info.category
                )

    # --- lifecycle ---------------------------------------------------------
    async def run(self) -> None:
        """Run until ``request_stop``; returns once the in-flight action finished."""
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._stop_event = asyncio.Event()
        if self._stop_requested:
            self._stop_event.set()
        self.state = DaemonState.RUNNING
        self.logger.log_operation(
            "daemon_running", poll_interval=self.poll_interval, debounce=self.debounce
        )
        consumer = asyncio.create_task(self._consume())
        poller = asyncio.create_task(self._poll())
        if self.poll_on_start:
            self._enqueue(PULL_ALL)
        try:
            await self._stop_event.wait()
        finally:
            self.state = DaemonState.STOPPING
            for handle in self._timers.values():
                handle.cancel()
            self._timers.clear()
            poller.cancel()
            # Drop unstarted work before yielding to the consumer again
            dropped = 0
            while not self._queue.empty():
                self._queue.get_nowait()
                dropped += 1
            self._queued.clear()
            self._queue.put_nowait(None)
            await asyncio.gather(poller, return_exceptions=True)
            await consumer
            self.state = DaemonState.STOPPED
            self.logger.log_operation("daemon_stopped", dropped_actions=dropped)

    def request_stop(self) -> None:
        self._stop_requested = True
        loop, event = self._loop, self._stop_event
        if loop is not None and event is not None and not loop.is_closed():
            loop.call_soon_threadsafe(event.set)


class ChangeHandler(FileSystemEventHandler):
    """Forwards changes to item files of tracked projects to the scheduler."""

    def __init__(self, base_dir: Path, scheduler: DaemonScheduler) -> None:
        self.base_dir = base_dir
        self.scheduler = scheduler

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _WATCHED_EVENTS:
            return
        self._route(event.src_path)
        dest = getattr(event, "dest_path", "")
        if dest:
            self._route(dest)

    def _route(self, raw: str | bytes) -> None:
        path = Path(os.fsdecode(raw))
        if path.suffix != ITEM_SUFFIX or path.name.startswith("."):
            return
        if project_for_path(self.base_dir, path) is None:
            return
        self.scheduler.notify_file_changed(path)


class DaemonRunner:
    """Foreground daemon process: lock, log file, watcher and scheduler."""

    def __init__(self, config: SyncConfig, client: RemoteClient | None = None) -> None:
        self.config = config
        self.client = client or GhProjectsClient(
            gh_path=config.gh_path,
            retry=RetryConfig(attempts=config.retry_attempts, base_sleep=config.retry_base_sleep),
        )
        self.scheduler = DaemonScheduler(
            push_file=self._push,
            pull_all=self._pull,
            poll_interval=config.poll_interval,
            debounce=config.debounce,
        )

    def _push(self, path: Path) -> None:
        result = push_file(self.config.base_dir, path, self.client)
        if result is not None and result.changed:
            get_logger().log_operation("daemon_push_done", **result.to_dict())

    def _pull(self) -> None:
        report = pull_all(self.config.base_dir, self.client)
        get_logger().log_operation("daemon_pull_done", ok=report.ok, **report.totals)

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self.scheduler.request_stop)
            except NotImplementedError:  # pragma: no cover - Windows event loops
                signal.signal(sig, lambda *_: self.scheduler.request_stop())

    async def _main(self) -> None:
        base_dir = self.config.base_dir
        self._install_signal_handlers(asyncio.get_running_loop())
        observer = Observer()
        observer.schedule(ChangeHandler(base_dir, self.scheduler), str(base_dir), recursive=True)
        observer.start()
        try:
            await self.scheduler.run()
        finally:
            observer.stop()
            observer.join(timeout=5)

    def run(self) -> int:
        self.config.base_dir.mkdir(parents=True, exist_ok=True)
        lock = DaemonLock(self.config.base_dir)
        lock.acquire(self.config.poll_interval, self.config.debounce)
        configure_logging(
            json_logging=self.config.logging_json_enabled,
            level=self.config.logging_level,
            log_file=self.config.log_file,
        )
        get_logger().log_operation("daemon_start", pid=os.getpid(), base_dir=str(self.config.base_dir))
        try:
            asyncio.run(self._main())
        finally:
            lock.release()
        return 0


def start_background(config: SyncConfig) -> int:
    """Spawn a detached ``gpfs daemon start --foreground`` and return its pid."""
    status = read_status(config.base_dir)
    if status.running and status.record is not None:
        raise DaemonConflictError(f"Daemon already running (pid {status.record.pid})")
    config.base_dir.mkdir(parents=True, exist_ok=True)
    cmd = [
        sys.executable,
        "-m",
        "gpfs",
        "--base-dir",
        str(config.base_dir),
        "daemon",
        "start",
        "--foreground",
        "--poll-interval",
        str(config.poll_interval),
        "--debounce",
        str(config.debounce),
    ]
    if config.config_file is not None:
        cmd[3:3] = ["--config", str(config.config_file)]
    with open(os.devnull, "rb") as devnull, open(config.log_file, "ab") as log:
        proc = subprocess.Popen(  # nosec B603 - argument list built from our own interpreter
            cmd,
            stdin=devnull,
            stdout=log,
            stderr=subprocess.STDOUT,
            start_new_session=True,
            close_fds=True,
        )
    get_logger().log_operation("daemon_spawned", pid=proc.pid)
    return proc.pid


def stop_daemon(base_dir: Path, timeout: float = 10.0) -> bool:
    """SIGTERM the recorded daemon and wait for it; False when none was running."""
    status = read_status(base_dir)
    if not status.running or status.record is None:
        if status.stale:
            (base_dir / LOCK_FILENAME).unlink(missing_ok=True)
        return False
    pid = status.record.pid
    try:
        proc = psutil.Process(pid)
        proc.terminate()
        proc.wait(timeout=timeout)
    except psutil.NoSuchProcess:
        get_logger().debug("daemon exited before SIGTERM", pid=pid)
    except psutil.TimeoutExpired as exc:
        raise GpfsError(f"Daemon (pid {pid}) did not stop within {timeout:g}s") from exc
    return True


__all__ = [
    "DaemonState",
    "Action",
    "DaemonScheduler",
    "ChangeHandler",
    "DaemonRunner",
    "start_background",
    "stop_daemon",
]
