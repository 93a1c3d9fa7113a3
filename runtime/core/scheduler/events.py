"""Scheduler events.

Each scheduler owns one `EventEmitter`; there is no process-wide bus.
Listeners run synchronously on the thread that emits (caller threads for
`set`/`delete`, the polling thread for everything a tick produces).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Generic, TypeVar

from errors import NotFoundError
from recurrence.kinds import RecurrenceKind

logger = logging.getLogger(__name__)

JobT = TypeVar("JobT")
Listener = Callable[..., Any]


class EventName(str, Enum):
    SET = "set"
    DELETE = "delete"
    FIRST_EXECUTE = "first-execute"
    NEXT_EXECUTE = "next-execute"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class DueEvent:
    timestamp: int
    date: datetime
    kind: RecurrenceKind


@dataclass(frozen=True)
class SuccessEvent(Generic[JobT]):
    job: JobT
    result: Any
    time: datetime


@dataclass(frozen=True)
class ErrorEvent(Generic[JobT]):
    job: JobT | None
    time: datetime
    failure: BaseException


def _event_name(event: EventName | str) -> EventName:
    try:
        return EventName(event)
    except ValueError:
        raise NotFoundError("event", str(event)) from None


class EventEmitter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        # Each entry is (listener, once).
        self._listeners: dict[EventName, list[tuple[Listener, bool]]] = {name: [] for name in EventName}

    def on(self, event: EventName | str, listener: Listener) -> None:
        name = _event_name(event)
        with self._lock:
            self._listeners[name].append((listener, False))

    def once(self, event: EventName | str, listener: Listener) -> None:
        name = _event_name(event)
        with self._lock:
            self._listeners[name].append((listener, True))

    def remove_listener(self, event: EventName | str, listener: Listener) -> None:
        """Remove the most recently added registration of `listener`, if any."""
        name = _event_name(event)
        with self._lock:
            entries = self._listeners[name]
            for i in range(len(entries) - 1, -1, -1):
                if entries[i][0] == listener:
                    del entries[i]
                    return

    def listener_count(self, event: EventName | str) -> int:
        name = _event_name(event)
        with self._lock:
            return len(self._listeners[name])

    def emit(self, event: EventName, *args: Any) -> bool:
        """Call every listener for `event`; returns whether any were registered."""
        with self._lock:
            entries = list(self._listeners[event])
            if not entries:
                return False
            self._listeners[event] = [e for e in self._listeners[event] if not e[1]]

        for listener, _once in entries:
            try:
                listener(*args)
            except Exception:
                logger.exception("listener_failed", extra={"event": event.value})
        return True
