"""gpfs CLI.

Subcommands:
  list      -> tracked projects under the root directory
  create    -> create a new GitHub project and track it
  attach    -> start tracking a GitHub project (creates its directory)
  remote-attach-all -> track every project an owner has that is not tracked yet
  detach    -> stop tracking a project (directory is renamed, files kept)
  new       -> create a local item file that the next push creates remotely
  status    -> what push / pull would do, per project
  push      -> send local creates/edits/deletions to GitHub
  pull      -> fetch remote items into local files
  daemon    -> start | stop | status of the background sync daemon
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from gpfs.config import ConfigError, SyncConfig, load_config
from gpfs.daemon import DaemonRunner, start_background, stop_daemon
from gpfs.errors import GpfsError, classify_error
from gpfs.filesystem import parse_project_identifier
from gpfs.github import GhProjectsClient, RemoteClient
from gpfs.lock import read_status
from gpfs.logging import configure_logging
from gpfs.models import SyncReport
from gpfs.orchestrator import project_status, select_projects
from gpfs.projects import attach_project, detach_project, find_project, get_tracked_projects
from gpfs.pull import pull_projects
from gpfs.push import push_projects
from gpfs.reconcile import format_action_set
from gpfs.retry import RetryConfig
from gpfs.store import new_item_file

PROJECT_HELP = "owner/project-number (e.g., myorg/42)"

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    """Construct top-level CLI parser with subcommands.

    Keep ordering stable for help output readability.
    """
    p = _FormatterArgumentParser(
        prog="gpfs", description="Mirror GitHub Projects items as local Markdown files"
    )
    p.add_argument("--base-dir", help="Root directory for gpfs data (env: GPFS_BASE_DIR, default: ~/.gpfs)")
    p.add_argument("--config", help="Path to a gpfs.config.yaml (default: <base-dir>/gpfs.config.yaml)")
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress informational logging (env: GPFS_QUIET=1)",
    )
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    pl = sub.add_parser("list", help="List tracked projects")
    pl.add_argument("--json", action="store_true", help="Emit JSON instead of text")

    pc = sub.add_parser("create", help="Create a GitHub project and start tracking it")
    pc.add_argument("title", help="Title for the new project")
    pc.add_argument("--owner", help="Organization or user owning the project (default: logged-in user)")

    pa = sub.add_parser("attach", help="Start tracking a GitHub project")
    pa.add_argument("project", help=PROJECT_HELP)

    pr = sub.add_parser("remote-attach-all", help="Track every project of an owner that is not tracked yet")
    pr.add_argument("--owner", help="Owner whose projects are listed (default: logged-in user)")
    pr.add_argument("--dry-run", action="store_true", help="Only show which projects would be attached")

    pd = sub.add_parser("detach", help="Stop tracking a project (local files are kept)")
    pd.add_argument("project", help=PROJECT_HELP)

    pn = sub.add_parser("new", help="Create a local item file (created remotely on next push)")
    pn.add_argument("project", help=PROJECT_HELP)
    pn.add_argument("title")
    pn.add_argument("--body", default="", help="Initial body text")

    pst = sub.add_parser("status", help="Show pending push/pull actions")
    pst.add_argument("project", nargs="?", help=PROJECT_HELP + "; all tracked projects when omitted")
    pst.add_argument("--json", action="store_true")

    pp = sub.add_parser("push", help="Push local changes to GitHub")
    pp.add_argument("project", nargs="?", help=PROJECT_HELP + "; all tracked projects when omitted")
    pp.add_argument("--dry-run", action="store_true", help="Report actions without applying them")
    pp.add_argument("--json", action="store_true")

    pu = sub.add_parser("pull", help="Pull remote items into local files")
    pu.add_argument("project", nargs="?", help=PROJECT_HELP + "; all tracked projects when omitted")
    pu.add_argument("--json", action="store_true")

    dm = sub.add_parser("daemon", help="Manage the background sync daemon")
    dsub = dm.add_subparsers(
        dest="daemon_cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<action>",
    )
    ds = dsub.add_parser("start", help="Start the daemon")
    ds.add_argument("--foreground", action="store_true", help="Run in this process instead of detaching")
    ds.add_argument("--poll-interval", type=float, help="Seconds between remote polls (default 300)")
    ds.add_argument("--debounce", type=float, help="Seconds to wait after a file change (default 2)")
    dsub.add_parser("stop", help="Stop the running daemon")
    dst = dsub.add_parser("status", help="Show daemon status")
    dst.add_argument("--json", action="store_true")
    return p


def _print_lines(lines: Iterable[str]) -> None:
    for line in lines:
        print(line)


def _client(cfg: SyncConfig) -> GhProjectsClient:
    return GhProjectsClient(
        gh_path=cfg.gh_path,
        retry=RetryConfig(attempts=cfg.retry_attempts, base_sleep=cfg.retry_base_sleep),
    )


def _parse_identifier(identifier: str) -> tuple[str, int]:
    parsed = parse_project_identifier(identifier)
    if parsed is None:
        raise ValueError(
            f'Invalid project identifier: "{identifier}". '
            "Expected format: owner/number (e.g., myorg/42)"
        )
    return parsed


def _cmd_list(cfg: SyncConfig, args: argparse.Namespace) -> int:
    projects = get_tracked_projects(cfg.base_dir)
    if args.json:
        payload = [
            {
                "owner": p.owner,
                "number": p.number,
                "name": p.name,
                "path": str(p.path),
                "items": p.item_count,
            }
            for p in projects
        ]
        print(json.dumps(payload, indent=2))
        return 0
    if not projects:
        print(f"[list] no tracked projects in {cfg.base_dir}")
        print("Run `gpfs attach <owner/number>` to start tracking a project.")
        return 0
    for p in projects:
        print(f"{p.key:<24} {p.name:<32} {p.item_count:>4} item(s)  {p.path}")
    return 0


def _cmd_attach(cfg: SyncConfig, args: argparse.Namespace, client: RemoteClient) -> int:
    owner, number = _parse_identifier(args.project)
    info = client.view_project(owner, number)
    project = attach_project(cfg.base_dir, info)
    print(f"[attach] {info.owner}/{info.number} \"{info.title}\" -> {project.path}")
    print(f"Run `gpfs pull {project.key}` to fetch its items.")
    return 0


def _cmd_create(cfg: SyncConfig, args: argparse.Namespace, client: RemoteClient) -> int:
    owner = args.owner or client.logged_in_user()
    info = client.create_project(owner, args.title)
    try:
        project = attach_project(cfg.base_dir, info)
    except OSError as exc:
        raise GpfsError(
            f"Created project {info.owner}/{info.number} on GitHub but failed to create local directory: {exc}"
        ) from exc
    print(f"[create] {info.owner}/{info.number} \"{info.title}\" -> {project.path}")
    return 0


def _cmd_remote_attach_all(cfg: SyncConfig, args: argparse.Namespace, client: RemoteClient) -> int:
    owner = args.owner or client.logged_in_user()
    tracked = {p.key for p in get_tracked_projects(cfg.base_dir)}
    pending = [info for info in client.list_projects(owner) if f"{info.owner}/{info.number}" not in tracked]
    if not pending:
        print(f"[remote-attach-all] every project of {owner} is already attached")
        return 0
    for info in pending:
        if args.dry_run:
            print(f"[remote-attach-all] would attach {info.owner}/{info.number} \"{info.title}\"")
            continue
        project = attach_project(cfg.base_dir, info)
        print(f"[remote-attach-all] {info.owner}/{info.number} \"{info.title}\" -> {project.path}")
    if not args.dry_run:
        print(f"Attached {len(pending)} project(s). Run `gpfs pull` to fetch their items.")
    return 0


def _cmd_detach(cfg: SyncConfig, args: argparse.Namespace) -> int:
    owner, number = _parse_identifier(args.project)
    target = detach_project(cfg.base_dir, owner, number)
    print(f"[detach] {owner}/{number} no longer tracked; files kept in {target}")
    return 0


def _cmd_new(cfg: SyncConfig, args: argparse.Namespace) -> int:
    owner, number = _parse_identifier(args.project)
    project = find_project(cfg.base_dir, owner, number)
    local = new_item_file(project.path, args.title, args.body)
    print(f"[new] {local.path}")
    return 0


def _cmd_status(cfg: SyncConfig, args: argparse.Namespace, client: RemoteClient) -> int:
    projects = select_projects(cfg.base_dir, args.project)
    exit_code = 0
    payload: list[dict[str, Any]] = []
    for project in projects:
        try:
            actions = project_status(project, client)
        except (GpfsError, OSError) as exc:
            info = classify_error(exc)
            exit_code = 1
            payload.append({"project": project.key, "error": info.message})
            if not args.json:
                print(f"[status] {project.key}: error: {info.message}", file=sys.stderr)
            continue
        payload.append({"project": project.key, "in_sync": actions.in_sync, **actions.summary()})
        if not args.json:
            _print_lines(format_action_set(actions, project.key))
    if args.json:
        print(json.dumps(payload, indent=2))
    return exit_code


def _emit_report(command: str, report: SyncReport, as_json: bool, dry_run: bool = False) -> int:
    if as_json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        suffix = " (dry-run)" if dry_run else ""
        for result in report.results:
            line = (
                f"[{command}] {result.project.key}: created={result.created} "
                f"updated={result.updated} deleted={result.deleted} unchanged={result.unchanged}"
            )
            print(line + suffix)
            for warning in result.warnings:
                print(f"  warning: {warning}")
            if result.error:
                print(f"  error: {result.error}", file=sys.stderr)
        totals = report.totals
        print(
            f"[{command}] total: created={totals['created']} updated={totals['updated']} "
            f"deleted={totals['deleted']} unchanged={totals['unchanged']}{suffix}"
        )
    return 0 if report.ok else 1


def _cmd_push(cfg: SyncConfig, args: argparse.Namespace, client: RemoteClient) -> int:
    projects = select_projects(cfg.base_dir, args.project)
    report = push_projects(projects, client, dry_run=args.dry_run)
    return _emit_report("push", report, args.json, dry_run=args.dry_run)


def _cmd_pull(cfg: SyncConfig, args: argparse.Namespace, client: RemoteClient) -> int:
    projects = select_projects(cfg.base_dir, args.project)
    report = pull_projects(projects, client)
    return _emit_report("pull", report, args.json)


def _cmd_daemon(cfg: SyncConfig, args: argparse.Namespace) -> int:
    action = args.daemon_cmd
    if action == "start":
        if args.poll_interval is not None:
            cfg.poll_interval = args.poll_interval
        if args.debounce is not None:
            cfg.debounce = args.debounce
        if cfg.poll_interval <= 0 or cfg.debounce <= 0:
            raise ConfigError("--poll-interval and --debounce must be positive")
        if args.foreground:
            return DaemonRunner(cfg).run()
        pid = start_background(cfg)
        print(f"[daemon] started (pid {pid}); log: {cfg.log_file}")
        return 0
    if action == "stop":
        if stop_daemon(cfg.base_dir):
            print("[daemon] stopped")
        else:
            print("[daemon] not running")
        return 0
    status = read_status(cfg.base_dir)
    if getattr(args, "json", False):
        print(json.dumps(status.to_dict(), indent=2))
        return 0
    if status.running and status.record is not None:
        record = status.record
        print(
            f"[daemon] running (pid {record.pid}, since {record.started_at}, "
            f"poll {record.poll_interval:g}s, debounce {record.debounce:g}s)"
        )
    elif status.stale:
        print("[daemon] not running (stale lock record)")
    else:
        print("[daemon] not running")
    return 0


def _build_handlers(
    args: argparse.Namespace, cfg: SyncConfig, client_factory: Callable[[], RemoteClient]
) -> dict[str, Callable[[], int]]:
    return {
        "list": lambda: _cmd_list(cfg, args),
        "create": lambda: _cmd_create(cfg, args, client_factory()),
        "attach": lambda: _cmd_attach(cfg, args, client_factory()),
        "remote-attach-all": lambda: _cmd_remote_attach_all(cfg, args, client_factory()),
        "detach": lambda: _cmd_detach(cfg, args),
        "new": lambda: _cmd_new(cfg, args),
        "status": lambda: _cmd_status(cfg, args, client_factory()),
        "push": lambda: _cmd_push(cfg, args, client_factory()),
        "pull": lambda: _cmd_pull(cfg, args, client_factory()),
        "daemon": lambda: _cmd_daemon(cfg, args),
    }


def main(argv: list[str] | None = None, client: RemoteClient | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.quiet and os.environ.get("GPFS_QUIET") == "1":
        args.quiet = True
    try:
        cfg = load_config(args.base_dir, args.config)
    except ConfigError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 2
    configure_logging(
        json_logging=cfg.logging_json_enabled,
        level="WARNING" if args.quiet else cfg.logging_level,
    )
    handlers = _build_handlers(args, cfg, lambda: client or _client(cfg))
    handler = handlers.get(args.cmd)
    if handler is None:  # pragma: no cover - argparse enforces valid choices
        parser.print_help()
        return 1
    try:
        return handler()
    except (GpfsError, ConfigError, ValueError, OSError) as exc:
        info = classify_error(exc)
        print(f"[error] {info.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
