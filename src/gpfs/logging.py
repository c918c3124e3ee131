"""Structured logging for gpfs (plain text or one JSON object per line)."""

from __future__ import annotations

import json
import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

_RESERVED = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "exc_info",
    "exc_text",
    "stack_info",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
    "asctime",
}


_FIELD_PREFIX = "ctx_"


def _safe_extra(fields: dict[str, Any]) -> dict[str, Any]:
    """Prefix keys that would clash with ``LogRecord`` attributes (``created``, ``name``...)."""
    return {(_FIELD_PREFIX + k if k in _RESERVED else k): v for k, v in fields.items()}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Pass through the extras injected by StructuredLogger
        for k, v in record.__dict__.items():
            if k not in _RESERVED and not k.startswith("_") and k not in entry:
                entry[k] = v if isinstance(v, (str, int, float, bool, type(None))) else str(v)
        return json.dumps(entry)


class StructuredLogger:
    def __init__(
        self,
        name: str = "gpfs",
        json_logging: bool = False,
        level: str = "INFO",
        log_file: Path | None = None,
    ) -> None:
        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        for h in list(self._logger.handlers):
            self._logger.removeHandler(h)
            h.close()
        formatter: logging.Formatter = (
            JSONFormatter()
            if json_logging
            else logging.Formatter("%(asctime)s %(levelname)s %(message)s")
        )
        handler: logging.Handler
        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(log_file, encoding="utf-8")
        else:
            handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        self._logger.addHandler(handler)
        self._logger.propagate = False
        self.log_file = log_file

    def log_operation(self, operation: str, **kw: Any) -> None:
        extra = {"operation": operation, **kw}
        self._logger.info(f"Operation: {operation}", extra=_safe_extra(extra))

    def log_item_action(
        self,
        action: str,
        project: str,
        path: str | Path,
        item_id: str | None = None,
        dry_run: bool = False,
        **kw: Any,
    ) -> None:
        extra: dict[str, Any] = {
            "operation": f"item_{action}",
            "project": project,
            "path": str(path),
            "dry_run": dry_run,
            **kw,
        }
        if item_id:
            extra["item_id"] = item_id
        msg = (
            f"item {action} {project} {Path(path).name}"
            + (f" ({item_id})" if item_id else "")
            + (" [DRY]" if dry_run else "")
        )
        self._logger.info(msg, extra=_safe_extra(extra))

    def log_performance(self, operation: str, duration_ms: float, **kw: Any) -> None:
        extra = {"operation": operation, "duration_ms": round(duration_ms, 2), **kw}
        self._logger.info(f"Performance: {operation} completed in {duration_ms:.2f}ms", extra=_safe_extra(extra))

    def log_error(self, message: str, error: str | None = None, **kw: Any) -> None:
        extra = dict(kw)
        if error:
            extra["error"] = error
        self._logger.error(message, extra=_safe_extra(extra))

    def debug(self, message: str, **kw: Any) -> None:
        self._logger.debug(message, extra=_safe_extra(kw))

    def info(self, message: str, **kw: Any) -> None:
        self._logger.info(message, extra=_safe_extra(kw))

    def warning(self, message: str, **kw: Any) -> None:
        self._logger.warning(message, extra=_safe_extra(kw))

    def error(self, message: str, **kw: Any) -> None:  # noqa: D401
        self._logger.error(message, extra=_safe_extra(kw))

    @contextmanager
    def timed_operation(self, operation: str, **kw: Any) -> Iterator[None]:  # noqa: D401
        start = time.perf_counter()
        self.log_operation(f"{operation}_start", **kw)
        try:
            yield
            self.log_performance(operation, (time.perf_counter() - start) * 1000, **kw)
        except Exception as exc:
            self.log_error(f"operation {operation} failed", error=str(exc), **kw)
            raise


_GLOBAL: StructuredLogger | None = None


def get_logger() -> StructuredLogger:
    global _GLOBAL  # noqa: PLW0603
    if _GLOBAL is None:
        _GLOBAL = StructuredLogger()
    return _GLOBAL


def configure_logging(
    json_logging: bool = False, level: str = "INFO", log_file: Path | None = None
) -> StructuredLogger:
    global _GLOBAL  # noqa: PLW0603
    _GLOBAL = StructuredLogger(json_logging=json_logging, level=level, log_file=log_file)
    return _GLOBAL


__all__ = ["JSONFormatter", "StructuredLogger", "get_logger", "configure_logging"]
