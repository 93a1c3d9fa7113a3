"""In-memory job registry.

The registry holds two structures in lock-step:
- the jobs, keyed by caller-supplied key (one `Registration` per `set`);
- the due index, key -> next due time in epoch milliseconds, kept apart from
  the job payload so a tick can scan due times without touching jobs.

Every registered key has exactly one due entry except while its job is in
flight (the executor takes the entry before invoking) and after a failed run
(the job stays registered with no due entry until it is set again).

All mutations happen under one re-entrant lock; events are emitted after the
lock is released.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Generic, Hashable, Iterator, TypeVar, Union

from errors import RecurrenceValidationError, RegistryInconsistencyError, SchedulerDestroyedError, SchemaViolation
from executor.state_machine import JobState, apply_transition
from recurrence.engine import first_due
from recurrence.kinds import Recurrence, is_recurrence
from scheduler.events import DueEvent, EventEmitter, EventName
from utils import format_local, from_millis, to_millis

logger = logging.getLogger(__name__)

ArgsT = TypeVar("ArgsT")
ResultT = TypeVar("ResultT")
KeyT = TypeVar("KeyT", bound=Hashable)


@dataclass(frozen=True)
class ScheduledJob(Generic[ArgsT, ResultT]):
    """A job callable, the value it is called with, and when it runs.

    `func` is always called with `args` as its single argument and may return
    a value or an awaitable; coroutine functions are awaited.
    """

    func: Callable[[ArgsT], Union[ResultT, Awaitable[ResultT]]]
    recurrence: Recurrence
    # Jobs declared without args are ScheduledJob[None, ...].
    args: ArgsT = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if not callable(self.func):
            raise TypeError(f"ScheduledJob.func must be callable, got {type(self.func).__name__}")
        if not is_recurrence(self.recurrence):
            raise RecurrenceValidationError(
                kind="unknown",
                violations=[
                    SchemaViolation(
                        path="/recurrence",
                        message=f"expected a recurrence kind, got {type(self.recurrence).__name__}",
                    )
                ],
            )


@dataclass(frozen=True)
class DueEntry(Generic[KeyT]):
    key: KeyT
    due_ms: int

    @property
    def date(self) -> datetime:
        return from_millis(self.due_ms)


@dataclass(eq=False)
class Registration(Generic[KeyT]):
    key: KeyT
    job: ScheduledJob[Any, Any]
    state: JobState = JobState.SCHEDULED

    def transition(self, new_state: JobState) -> None:
        self.state = apply_transition(self.state, new_state)


def due_event(due: datetime, job: ScheduledJob[Any, Any]) -> DueEvent:
    return DueEvent(timestamp=to_millis(due), date=due, kind=job.recurrence.kind)


class JobRegistry(Generic[KeyT]):
    def __init__(self, *, emitter: EventEmitter, clock: Callable[[], datetime]):
        self._emitter = emitter
        self._clock = clock
        self._lock = threading.RLock()
        self._jobs: dict[KeyT, Registration[KeyT]] = {}
        self._due: dict[KeyT, int] = {}
        self._closed = False

    # Public surface

    def set(self, key: KeyT, job: ScheduledJob[Any, Any]) -> None:
        """Insert or replace `key`, scheduling its first run from now."""
        if not isinstance(job, ScheduledJob):
            raise TypeError(f"Expected ScheduledJob, got {type(job).__name__}")

        with self._lock:
            if self._closed:
                raise SchedulerDestroyedError("set job")
            due = first_due(job.recurrence, self._clock())
            previous = self._jobs.pop(key, None)
            if previous is not None:
                previous.transition(JobState.REMOVED)
            self._due.pop(key, None)
            self._jobs[key] = Registration(key=key, job=job)
            self._due[key] = to_millis(due)

        logger.info(
            "job_set",
            extra={"event": "job_set", "job_key": str(key), "kind": job.recurrence.kind.value, "due_at": format_local(due)},
        )
        self._emitter.emit(EventName.SET, key, job)
        self._emitter.emit(EventName.FIRST_EXECUTE, key, due_event(due, job))

    def get(self, key: KeyT) -> ScheduledJob[Any, Any] | None:
        with self._lock:
            reg = self._jobs.get(key)
            return reg.job if reg is not None else None

    def delete(self, key: KeyT) -> bool:
        with self._lock:
            reg = self._jobs.pop(key, None)
            self._due.pop(key, None)
            if reg is not None:
                reg.transition(JobState.REMOVED)

        if reg is None:
            return False
        logger.info("job_deleted", extra={"event": "job_deleted", "job_key": str(key)})
        self._emitter.emit(EventName.DELETE, key)
        return True

    def clear(self) -> None:
        with self._lock:
            for reg in self._jobs.values():
                reg.transition(JobState.REMOVED)
            self._jobs.clear()
            self._due.clear()

    def close(self) -> None:
        """Clear everything and refuse further inserts."""
        with self._lock:
            self._closed = True
            self.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    def keys(self) -> list[KeyT]:
        with self._lock:
            return list(self._jobs)

    def due_entries(self) -> list[DueEntry[KeyT]]:
        with self._lock:
            return [DueEntry(key=k, due_ms=ms) for k, ms in self._due.items()]

    def state_of(self, key: KeyT) -> JobState | None:
        with self._lock:
            reg = self._jobs.get(key)
            return reg.state if reg is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._jobs

    def __iter__(self) -> Iterator[KeyT]:
        return iter(self.keys())

    # Executor bookkeeping

    def take_due(self, now_ms: int, *, skip: set[Any]) -> list[tuple[Registration[KeyT], int]]:
        """Remove and return every due entry at or before `now_ms`, in index order.

        Keys in `skip` (already in flight) keep their entries for a later tick.
        """
        with self._lock:
            due = [(k, ms) for k, ms in self._due.items() if ms <= now_ms and k not in skip]
            for key, _ms in due:
                if key not in self._jobs:
                    raise RegistryInconsistencyError(key)

            taken: list[tuple[Registration[KeyT], int]] = []
            for key, ms in due:
                del self._due[key]
                reg = self._jobs[key]
                reg.transition(JobState.DUE)
                taken.append((reg, ms))
            return taken

    def is_current(self, reg: Registration[KeyT]) -> bool:
        with self._lock:
            return self._jobs.get(reg.key) is reg

    def mark_running(self, reg: Registration[KeyT]) -> bool:
        with self._lock:
            if not self.is_current(reg):
                return False
            reg.transition(JobState.RUNNING)
            return True

    def reschedule(self, reg: Registration[KeyT], due: datetime) -> DueEvent | None:
        """Put `reg` back in the due index unless it was deleted or replaced meanwhile."""
        with self._lock:
            if not self.is_current(reg):
                return None
            reg.transition(JobState.SCHEDULED)
            self._due[reg.key] = to_millis(due)
        return due_event(due, reg.job)

    def complete(self, reg: Registration[KeyT]) -> bool:
        """Remove a finished one-shot registration; returns whether it was still current."""
        with self._lock:
            if not self.is_current(reg):
                return False
            del self._jobs[reg.key]
            self._due.pop(reg.key, None)
            reg.transition(JobState.REMOVED)
            return True

    def fail(self, reg: Registration[KeyT]) -> None:
        with self._lock:
            if self.is_current(reg):
                reg.transition(JobState.FAILED)
