from __future__ import annotations

import os
from pathlib import Path

import pytest

from gpfs.config import CONFIG_FILENAME, ConfigError, load_config, resolve_base_dir

FULL_CONFIG = """
daemon:
  poll_interval: 60
  debounce: 0.5
logging:
  json_enabled: true
  level: DEBUG
github:
  gh_path: /opt/gh/bin/gh
retry:
  attempts: 5
  base_sleep: 1.0
"""


def test_defaults_without_config_file(root, monkeypatch):
    monkeypatch.delenv("GPFS_GH_PATH", raising=False)
    cfg = load_config(root)
    assert cfg.base_dir == root
    assert (cfg.poll_interval, cfg.debounce) == (300.0, 2.0)
    assert cfg.logging_json_enabled is False
    assert cfg.gh_path is None
    assert cfg.config_file is None
    assert cfg.lock_file == root / "daemon.pid"
    assert cfg.log_file == root / "daemon.log"


def test_config_file_values(root):
    (root / CONFIG_FILENAME).write_text(FULL_CONFIG, encoding="utf-8")
    cfg = load_config(root)
    assert (cfg.poll_interval, cfg.debounce) == (60.0, 0.5)
    assert cfg.logging_json_enabled is True
    assert cfg.logging_level == "DEBUG"
    assert cfg.gh_path == "/opt/gh/bin/gh"
    assert (cfg.retry_attempts, cfg.retry_base_sleep) == (5, 1.0)
    assert cfg.config_file == root / CONFIG_FILENAME


def test_explicit_config_path(root, tmp_path):
    other = tmp_path / "elsewhere.yaml"
    other.write_text("daemon:\n  debounce: 4\n", encoding="utf-8")
    assert load_config(root, other).debounce == 4.0


def test_missing_explicit_config_path(root, tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(root, tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    "content",
    [
        "daemon:\n  poll_interval: -1\n",
        "daemon:\n  debounce: soon\n",
        "daemon: [1, 2]\n",
        "- just\n- a list\n",
        "daemon: {poll_interval: 1\n",
        "retry:\n  attempts: many\n",
        "retry:\n  attempts: 0\n",
        "retry:\n  base_sleep: slow\n",
        "retry:\n  base_sleep: -1\n",
    ],
)
def test_invalid_config(root, content):
    (root / CONFIG_FILENAME).write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(root)


def test_base_dir_resolution(monkeypatch, tmp_path):
    monkeypatch.setenv("GPFS_BASE_DIR", str(tmp_path / "from-env"))
    assert resolve_base_dir() == tmp_path / "from-env"
    assert resolve_base_dir(tmp_path / "explicit") == tmp_path / "explicit"
    monkeypatch.delenv("GPFS_BASE_DIR")
    assert resolve_base_dir() == Path.home() / ".gpfs"


def test_dotenv_does_not_override_environment(root, monkeypatch):
    monkeypatch.setenv("GPFS_TEST_PRESET", "from-env")
    # Register for restoration, then make sure it is absent
    monkeypatch.setenv("GPFS_TEST_FROM_FILE", "")
    monkeypatch.delenv("GPFS_TEST_FROM_FILE")
    (root / ".env").write_text("GPFS_TEST_PRESET=from-file\nGPFS_TEST_FROM_FILE=loaded\n", encoding="utf-8")

    load_config(root)

    assert os.environ["GPFS_TEST_PRESET"] == "from-env"
    assert os.environ["GPFS_TEST_FROM_FILE"] == "loaded"


def test_invalid_retry_environment(root, monkeypatch):
    monkeypatch.setenv("GPFS_RETRY_ATTEMPTS", "lots")
    with pytest.raises(ConfigError, match="attempts must be an integer"):
        load_config(root)
