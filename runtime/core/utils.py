"""Small utility helpers used across the scheduler.

All scheduling happens on naive local wall-clock datetimes. Epoch milliseconds
are used for the due index so entries can be compared without touching jobs.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any


def local_now() -> datetime:
    return datetime.now()


def to_millis(dt: datetime) -> int:
    """Epoch milliseconds for a datetime (naive values are local time)."""
    return int(dt.timestamp() * 1000)


def from_millis(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000)


def format_local(dt: datetime) -> str:
    return dt.isoformat(timespec="seconds")


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=True, sort_keys=True, separators=(",", ":"), default=str)
