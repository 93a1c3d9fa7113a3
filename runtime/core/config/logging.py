"""Logging helpers.

The scheduler uses Python logging with a JSON formatter so job outcomes can
be followed per key.
"""

from __future__ import annotations

import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from config.settings import load_yaml_mapping
from utils import json_dumps


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            # Listeners run on caller threads or on the polling thread.
            "thread": record.threadName,
        }

        # Common structured extras (when provided).
        for k in ("job_key", "kind", "due_at", "event", "code"):
            v = getattr(record, k, None)
            if v is not None:
                base[k] = v

        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)

        return json_dumps(base)


def apply_logging_config(logging_config_path: Path) -> None:
    logging.config.dictConfig(load_yaml_mapping(logging_config_path))
