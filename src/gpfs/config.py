from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv

CONFIG_FILENAME = "gpfs.config.yaml"
DEFAULT_POLL_INTERVAL = 300.0
DEFAULT_DEBOUNCE = 2.0


class ConfigError(RuntimeError):
    pass


@dataclass
class SyncConfig:
    base_dir: Path
    poll_interval: float = DEFAULT_POLL_INTERVAL
    debounce: float = DEFAULT_DEBOUNCE
    # Logging configuration
    logging_json_enabled: bool = False
    logging_level: str = "INFO"
    # GitHub CLI configuration
    gh_path: str | None = None
    retry_attempts: int = 3
    retry_base_sleep: float = 0.5
    config_file: Path | None = None

    @property
    def lock_file(self) -> Path:
        return self.base_dir / "daemon.pid"

    @property
    def log_file(self) -> Path:
        return self.base_dir / "daemon.log"


def resolve_base_dir(explicit: str | Path | None = None) -> Path:
    """Resolve the root directory: explicit argument > GPFS_BASE_DIR > ~/.gpfs."""
    if explicit:
        return Path(explicit).expanduser()
    env = os.environ.get("GPFS_BASE_DIR")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".gpfs"


def _positive_float(section: dict[str, Any], key: str, default: float) -> float:
    raw = section.get(key, default)
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def _retry_attempts(section: dict[str, Any]) -> int:
    raw = section.get("attempts", os.environ.get("GPFS_RETRY_ATTEMPTS", "3"))
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"attempts must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ConfigError(f"attempts must be at least 1, got {value}")
    return value


def _retry_base_sleep(section: dict[str, Any]) -> float:
    raw = section.get("base_sleep", os.environ.get("GPFS_RETRY_BASE", "0.5"))
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"base_sleep must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"base_sleep must not be negative, got {value}")
    return value


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {}) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    return cast(dict[str, Any], value)


def load_config(
    base_dir: str | Path | None = None, config_path: str | Path | None = None
) -> SyncConfig:
    root = resolve_base_dir(base_dir)
    env_file = root / ".env"
    if env_file.exists():
        # Existing environment wins over the file
        load_dotenv(str(env_file), override=False)

    p = Path(config_path) if config_path else root / CONFIG_FILENAME
    if config_path and not p.exists():
        raise ConfigError(f"Configuration file not found: {p}")
    raw: dict[str, Any] = {}
    if p.exists():
        try:
            loaded = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {p}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError(f"Configuration root must be a mapping: {p}")
        raw = cast(dict[str, Any], loaded)

    daemon = _section(raw, "daemon")
    logging_config = _section(raw, "logging")
    gh = _section(raw, "github")
    retry = _section(raw, "retry")

    return SyncConfig(
        base_dir=root,
        poll_interval=_positive_float(daemon, "poll_interval", DEFAULT_POLL_INTERVAL),
        debounce=_positive_float(daemon, "debounce", DEFAULT_DEBOUNCE),
        logging_json_enabled=bool(logging_config.get("json_enabled", False)),
        logging_level=str(logging_config.get("level", "INFO")),
        gh_path=gh.get("gh_path") or os.environ.get("GPFS_GH_PATH"),
        retry_attempts=_retry_attempts(retry),
        retry_base_sleep=_retry_base_sleep(retry),
        config_file=p if p.exists() else None,
    )


__all__ = ["ConfigError", "SyncConfig", "load_config", "resolve_base_dir", "CONFIG_FILENAME"]
