"""Process bootstrap: build a scheduler from config files and run it."""

from __future__ import annotations

import logging
import threading
from typing import Any

from config.logging import apply_logging_config
from config.settings import ConfigPaths, default_config_paths, load_scheduler_config
from registry.loader import load_job_documents
from scheduler.events import DueEvent, ErrorEvent, SuccessEvent
from scheduler.runner import Scheduler

logger = logging.getLogger(__name__)


def _log_success(key: Any, event: SuccessEvent[Any]) -> None:
    logger.info("job_succeeded", extra={"event": "job_succeeded", "job_key": str(key)})


def _log_error(key: Any, event: ErrorEvent[Any]) -> None:
    logger.error(f"job_failed: {event.failure!r}", extra={"event": "job_failed", "job_key": str(key)})


def _log_next(key: Any, event: DueEvent) -> None:
    logger.info(
        "job_next_due",
        extra={"event": "job_next_due", "job_key": str(key), "kind": event.kind.value, "due_at": event.date.isoformat()},
    )


def build_scheduler(paths: ConfigPaths | None = None, *, autostart: bool = True) -> Scheduler[str]:
    paths = paths or default_config_paths()

    if paths.logging.exists():
        apply_logging_config(paths.logging)

    config = load_scheduler_config(paths.scheduler)
    # Jobs are validated before the loop starts so a bad file never half-registers.
    jobs = load_job_documents(paths.jobs) if paths.jobs is not None else {}

    scheduler: Scheduler[str] = Scheduler(config, autostart=autostart)
    scheduler.on("success", _log_success)
    scheduler.on("error", _log_error)
    scheduler.on("next-execute", _log_next)

    for key, job in jobs.items():
        scheduler.set(key, job)

    logger.info(f"Scheduler ready with {len(jobs)} job(s)", extra={"event": "scheduler_ready"})
    return scheduler


def main() -> int:
    scheduler = build_scheduler()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.destroy()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
