"""Job document loader (YAML -> ScheduledJob).

Job declarations are configuration, not state:

    jobs:
      nightly-report:
        callable: "reports.tasks:build_nightly"
        args: {days: 1}
        recurrence: {kind: daily, hour: 2, minute: 30}

Callables are referenced as `module:attribute` (the attribute may be dotted)
and are imported when the file is loaded.
"""

from __future__ import annotations

import importlib
from pathlib import Path
from typing import Any, Callable

from config.settings import load_yaml_mapping
from errors import ConfigError, NotFoundError
from recurrence.kinds import recurrence_from_document
from registry.registry import ScheduledJob


def resolve_callable(ref: str) -> Callable[..., Any]:
    if not isinstance(ref, str) or ":" not in ref:
        raise ConfigError(f"Invalid callable reference (expected 'module:attribute'): {ref!r}")
    module_name, _, attr_path = ref.partition(":")
    if not module_name or not attr_path:
        raise ConfigError(f"Invalid callable reference (expected 'module:attribute'): {ref!r}")

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise NotFoundError("module", module_name) from e

    for attr in attr_path.split("."):
        try:
            target = getattr(target, attr)
        except AttributeError as e:
            raise NotFoundError("callable", ref) from e

    if not callable(target):
        raise ConfigError(f"Referenced object is not callable: {ref}")
    return target


def load_job_document(key: str, raw: Any, *, source: Path) -> ScheduledJob[Any, Any]:
    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid job {key!r} in {source} (expected mapping)")
    if "callable" not in raw or "recurrence" not in raw:
        raise ConfigError(f"Job {key!r} in {source} must declare 'callable' and 'recurrence'")

    return ScheduledJob(
        func=resolve_callable(raw["callable"]),
        recurrence=recurrence_from_document(raw["recurrence"]),
        args=raw.get("args"),
    )


def load_job_documents(path: Path) -> dict[str, ScheduledJob[Any, Any]]:
    """Load every job declared in `path`, keyed by job key, in file order."""
    data = load_yaml_mapping(path)
    jobs_raw = data.get("jobs") or {}
    if not isinstance(jobs_raw, dict):
        raise ConfigError(f"Invalid 'jobs' section in {path} (expected mapping)")
    return {str(key): load_job_document(str(key), raw, source=path) for key, raw in jobs_raw.items()}
