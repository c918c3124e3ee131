from __future__ import annotations

import subprocess
import time
from typing import Any

import pytest

from gpfs import retry

RETRY_AFTER_SECONDS = 7.0
FLOAT_TOL = 0.05


class DummyCalledProcessError(subprocess.CalledProcessError):
    """Helper to craft subprocess errors with custom output."""

    def __init__(self, stderr: str):
        super().__init__(returncode=1, cmd=["gh", "project", "item-list"], stderr=stderr)


@pytest.fixture
def sleeps(monkeypatch: Any) -> list[float]:
    recorded: list[float] = []
    monkeypatch.setattr(time, "sleep", recorded.append)
    return recorded


def test_is_transient_tokens():
    assert retry.is_transient("API rate limit exceeded")
    assert retry.is_transient("You have triggered an ABUSE DETECTION mechanism")
    assert retry.is_transient("HTTP 502 Bad Gateway")
    assert retry.is_transient("read: connection reset by peer")
    assert not retry.is_transient("Could not resolve to a ProjectV2")


def test_transient_then_success(sleeps):
    attempts: list[int] = []

    def fn() -> str:
        attempts.append(1)
        if len(attempts) < 2:
            raise DummyCalledProcessError("secondary rate limit")
        return "ok"

    assert retry.run_with_retries(fn, cfg=retry.RetryConfig(attempts=3, base_sleep=0.01)) == "ok"
    assert len(attempts) == 2
    assert len(sleeps) == 1


def test_non_transient_fails_immediately(sleeps):
    attempts: list[int] = []

    def fn() -> str:
        attempts.append(1)
        raise DummyCalledProcessError("unknown flag: --bogus")

    with pytest.raises(subprocess.CalledProcessError):
        retry.run_with_retries(fn, cfg=retry.RetryConfig(attempts=4, base_sleep=0.01))
    assert len(attempts) == 1
    assert sleeps == []


def test_gives_up_after_configured_attempts(sleeps):
    attempts: list[int] = []

    def fn() -> str:
        attempts.append(1)
        raise DummyCalledProcessError("operation timed out")

    with pytest.raises(subprocess.CalledProcessError):
        retry.run_with_retries(fn, cfg=retry.RetryConfig(attempts=3, base_sleep=0.01))
    assert len(attempts) == 3
    assert len(sleeps) == 2


def test_retry_honors_retry_after(sleeps):
    state = {"count": 0}

    def fn() -> str:
        state["count"] += 1
        if state["count"] == 1:
            raise DummyCalledProcessError("Rate limit hit. Retry-After: 7")
        return "ok"

    assert retry.run_with_retries(fn, cfg=retry.RetryConfig(attempts=3, base_sleep=0.01)) == "ok"
    assert (RETRY_AFTER_SECONDS - FLOAT_TOL) <= sleeps[0] <= (RETRY_AFTER_SECONDS + FLOAT_TOL)


def test_retry_max_sleep_cap(sleeps, monkeypatch):
    monkeypatch.setenv("GPFS_RETRY_MAX_SLEEP", "0.05")
    state = {"count": 0}

    def fn() -> str:
        state["count"] += 1
        if state["count"] < 3:
            raise DummyCalledProcessError("Rate limit hit. Retry-After: 30")
        return "done"

    assert retry.run_with_retries(fn, cfg=retry.RetryConfig(attempts=4, base_sleep=0.02)) == "done"
    assert sleeps and all(s <= 0.05 for s in sleeps)


def test_config_from_environment(monkeypatch):
    monkeypatch.setenv("GPFS_RETRY_ATTEMPTS", "5")
    monkeypatch.setenv("GPFS_RETRY_BASE", "1.5")
    cfg = retry.RetryConfig()
    assert (cfg.attempts, cfg.base_sleep) == (5, 1.5)


def test_error_output_combines_streams():
    exc = subprocess.CalledProcessError(1, ["gh"], output=b"out", stderr="err")
    assert retry.error_output(exc) == "err\nout"


def test_server_wait_hint_patterns():
    assert retry.server_wait_hint("Retry-After: 12") == 12.0
    assert retry.server_wait_hint("please retry after 3") == 3.0
    assert retry.server_wait_hint("Wait 30 seconds before retrying") == 30.0
    assert retry.server_wait_hint("Retry-After: 0") is None
    assert retry.server_wait_hint("") is None


def test_delay_doubles_and_respects_explicit_cap(monkeypatch):
    monkeypatch.delenv("GPFS_RETRY_MAX_SLEEP", raising=False)
    cfg = retry.RetryConfig(attempts=5, base_sleep=1.0)
    assert 4.0 <= cfg.delay(3, "rate limit") <= 4.25
    capped = retry.RetryConfig(attempts=5, base_sleep=1.0, max_sleep=2.0)
    assert capped.delay(3, "rate limit") == 2.0
    assert capped.delay(1, "Retry-After: 9") == 2.0


def test_non_numeric_max_sleep_is_ignored(monkeypatch):
    monkeypatch.setenv("GPFS_RETRY_MAX_SLEEP", "soon")
    assert retry.RetryConfig().max_sleep is None
