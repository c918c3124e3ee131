"""Retrying ``gh`` invocations that fail for reasons outside our control.

GitHub answers bursts of project mutations with rate-limit and abuse
messages, and the CLI itself surfaces gateway errors and dropped
connections. ``run_with_retries`` re-runs a call when its error output
names one of those conditions and lets every other failure through on the
first attempt.

The delay between attempts doubles from ``base_sleep`` with a little
jitter, unless the error text names its own wait (``Retry-After: 12``,
``wait 30 seconds``). ``GPFS_RETRY_MAX_SLEEP`` clamps whichever delay wins.
Defaults come from ``GPFS_RETRY_ATTEMPTS`` and ``GPFS_RETRY_BASE``.
"""

from __future__ import annotations

import os
import random
import re
import subprocess  # nosec B404 - retries wrap GitHub CLI invocations
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .logging import get_logger

T = TypeVar("T")

TRANSIENT_TOKENS = (
    "rate limit",
    "abuse detection",
    "secondary rate",
    "timeout",
    "timed out",
    "connection reset",
    "temporarily unavailable",
    "502 bad gateway",
    "503 service unavailable",
)

_WAIT_HINTS = (
    re.compile(r"retry[-\s]after:?\s*(\d+)", re.IGNORECASE),
    re.compile(r"wait\s*(\d+)\s*seconds", re.IGNORECASE),
)
_rng = random.SystemRandom()


def _env_float(name: str) -> float | None:
    raw = os.environ.get(name)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        get_logger().warning(f"ignoring non-numeric {name}={raw!r}", operation="retry_config")
        return None


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=lambda: int(os.environ.get("GPFS_RETRY_ATTEMPTS", "3")))
    base_sleep: float = field(
        default_factory=lambda: float(os.environ.get("GPFS_RETRY_BASE", "0.5"))
    )
    max_sleep: float | None = field(default_factory=lambda: _env_float("GPFS_RETRY_MAX_SLEEP"))

    def delay(self, attempt: int, output: str) -> float:
        """Seconds to wait after failed ``attempt`` (1-based) given its output."""
        hinted = server_wait_hint(output)
        if hinted is None:
            hinted = self.base_sleep * 2 ** (attempt - 1) + _rng.uniform(0, 0.25)
        if self.max_sleep is not None and self.max_sleep >= 0:
            return min(hinted, self.max_sleep)
        return hinted


def server_wait_hint(text: str) -> float | None:
    """Wait in seconds requested by the error text, or None."""
    for pattern in _WAIT_HINTS:
        found = pattern.search(text or "")
        if found:
            seconds = float(found.group(1))
            return seconds if seconds > 0 else None
    return None


def is_transient(output: str) -> bool:
    lowered = output.lower()
    return any(token in lowered for token in TRANSIENT_TOKENS)


def error_output(exc: subprocess.CalledProcessError) -> str:
    """Combined stderr + stdout of a failed command, as text."""
    parts = []
    for chunk in (exc.stderr, exc.output):
        if not chunk:
            continue
        parts.append(chunk.decode("utf-8", "replace") if isinstance(chunk, bytes) else str(chunk))
    return "\n".join(parts)


def run_with_retries(fn: Callable[[], T], *, cfg: RetryConfig | None = None) -> T:
    cfg = cfg or RetryConfig()
    budget = max(1, cfg.attempts)
    attempt = 1
    while True:
        try:
            return fn()
        except subprocess.CalledProcessError as exc:
            output = error_output(exc)
            if attempt >= budget or not is_transient(output):
                raise
            pause = cfg.delay(attempt, output)
            get_logger().warning(
                f"gh call failed transiently ({attempt}/{budget}), retrying in {pause:.2f}s",
                operation="retry",
                attempt=attempt,
            )
            time.sleep(pause)
            attempt += 1


__all__ = [
    "RetryConfig",
    "TRANSIENT_TOKENS",
    "error_output",
    "is_transient",
    "run_with_retries",
    "server_wait_hint",
]
