"""Configuration loader for the scheduler.

Rules:
- Fail closed when a config file is missing or invalid.
- Every setting has a default, so an empty `scheduler:` section is valid.
- Relative paths given through the environment are resolved against the
  current working directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from errors import ConfigError

ENV_SCHEDULER_CONFIG = "CADENCE_SCHEDULER_CONFIG"
ENV_LOGGING_CONFIG = "CADENCE_LOGGING_CONFIG"
ENV_JOBS = "CADENCE_JOBS"


@dataclass(frozen=True)
class SchedulerConfig:
    polling_interval_ms: int = 1000
    fan_out: bool = True
    stop_timeout_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.polling_interval_ms <= 0:
            raise ConfigError(f"polling_interval_ms must be positive (got {self.polling_interval_ms})")
        if self.stop_timeout_seconds <= 0:
            raise ConfigError(f"stop_timeout_seconds must be positive (got {self.stop_timeout_seconds})")

    @property
    def polling_interval_seconds(self) -> float:
        return self.polling_interval_ms / 1000


@dataclass(frozen=True)
class ConfigPaths:
    scheduler: Path
    logging: Path
    jobs: Path | None


def load_yaml_mapping(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Missing required config file: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML: {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid YAML root object in config file: {path}")
    return data


def load_scheduler_config(path: Path) -> SchedulerConfig:
    raw = load_yaml_mapping(path)
    scheduler_raw = raw.get("scheduler") or {}
    if not isinstance(scheduler_raw, dict):
        raise ConfigError(f"Invalid 'scheduler' section in {path} (expected mapping)")

    try:
        return SchedulerConfig(
            polling_interval_ms=int(scheduler_raw.get("polling_interval_ms", 1000)),
            fan_out=bool(scheduler_raw.get("fan_out", True)),
            stop_timeout_seconds=float(scheduler_raw.get("stop_timeout_seconds", 5.0)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid scheduler setting in {path}: {e}") from e


def _env_path(name: str) -> Path | None:
    v = os.environ.get(name)
    if not v:
        return None
    return Path(v)


def default_config_paths() -> ConfigPaths:
    # Default to paths relative to the runtime working directory (runtime/core).
    return ConfigPaths(
        scheduler=_env_path(ENV_SCHEDULER_CONFIG) or Path.cwd() / "config" / "scheduler.yaml",
        logging=_env_path(ENV_LOGGING_CONFIG) or Path.cwd() / "config" / "logging.yaml",
        jobs=_env_path(ENV_JOBS),
    )
