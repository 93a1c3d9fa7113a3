"""Tick executor.

One tick:
- takes every due entry at or before `now` from the registry (insertion order);
- invokes the jobs, concurrently by default so a slow job does not hold up
  the others due in the same tick;
- reschedules recurring jobs, removes completed one-shot jobs, and leaves
  failed jobs registered but unscheduled;
- publishes the outcome of each invocation as a `success` or `error` event.

A key is never invoked twice at once: its due entry is taken before the call,
and keys still in flight are skipped by later ticks until they finish.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from recurrence.engine import next_due
from recurrence.kinds import OneShot
from registry.registry import JobRegistry, Registration, ScheduledJob
from scheduler.events import ErrorEvent, EventEmitter, EventName, SuccessEvent
from utils import from_millis, to_millis

logger = logging.getLogger(__name__)

# The executor whose job is running in this context; `asyncio.to_thread` copies
# it into the worker thread.
_job_owner: contextvars.ContextVar[Any] = contextvars.ContextVar("cadence_job_owner", default=None)


@dataclass(frozen=True)
class TickResult:
    now: datetime
    invoked: tuple[Any, ...] = ()
    succeeded: tuple[Any, ...] = ()
    failed: tuple[Any, ...] = ()
    skipped_in_flight: tuple[Any, ...] = ()


async def invoke(job: ScheduledJob[Any, Any]) -> Any:
    """Call a job with its stored args and wait for its result."""
    if inspect.iscoroutinefunction(job.func):
        result = await job.func(job.args)
    else:
        # Plain callables run off the event loop so they cannot stall other invocations.
        result = await asyncio.to_thread(job.func, job.args)
    if inspect.isawaitable(result):
        result = await result
    return result


class Executor:
    def __init__(
        self,
        *,
        registry: JobRegistry[Any],
        emitter: EventEmitter,
        clock: Callable[[], datetime],
        fan_out: bool = True,
    ):
        self._registry = registry
        self._emitter = emitter
        self._clock = clock
        self._fan_out = fan_out
        self._in_flight: set[Any] = set()
        self._in_flight_lock = threading.Lock()

    def in_job(self) -> bool:
        """Whether the caller is one of this executor's running jobs."""
        return _job_owner.get() is self

    @property
    def in_flight(self) -> frozenset[Any]:
        with self._in_flight_lock:
            return frozenset(self._in_flight)

    async def run_tick(self, now: datetime) -> TickResult:
        now_ms = to_millis(now)
        with self._in_flight_lock:
            busy = set(self._in_flight)
            taken = self._registry.take_due(now_ms, skip=busy)
            self._in_flight.update(reg.key for reg, _ in taken)

        skipped = tuple(e.key for e in self._registry.due_entries() if e.key in busy and e.due_ms <= now_ms)
        if not taken:
            return TickResult(now=now, skipped_in_flight=skipped)

        if self._fan_out:
            outcomes = await asyncio.gather(*(self._run_one(reg, due_ms) for reg, due_ms in taken))
        else:
            outcomes = [await self._run_one(reg, due_ms) for reg, due_ms in taken]

        keys = [reg.key for reg, _ in taken]
        return TickResult(
            now=now,
            invoked=tuple(k for k, ok in zip(keys, outcomes) if ok is not None),
            succeeded=tuple(k for k, ok in zip(keys, outcomes) if ok),
            failed=tuple(k for k, ok in zip(keys, outcomes) if ok is False),
            skipped_in_flight=skipped,
        )

    async def _run_one(self, reg: Registration[Any], due_ms: int) -> bool | None:
        """Run one taken registration; None means it was deleted before it started."""
        key = reg.key
        try:
            if not self._registry.mark_running(reg):
                return None
            return await self._execute(reg, due_ms)
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(key)

    async def _execute(self, reg: Registration[Any], due_ms: int) -> bool:
        key, job = reg.key, reg.job
        try:
            token = _job_owner.set(self)
            try:
                result = await invoke(job)
            finally:
                _job_owner.reset(token)
            if isinstance(job.recurrence, OneShot):
                if self._registry.complete(reg):
                    logger.info("job_completed", extra={"event": "job_completed", "job_key": str(key)})
                    self._emitter.emit(EventName.DELETE, key)
            else:
                due = next_due(from_millis(due_ms), job.recurrence)
                if due is not None:
                    scheduled = self._registry.reschedule(reg, due)
                    if scheduled is not None:
                        logger.debug(
                            "job_rescheduled",
                            extra={"event": "job_rescheduled", "job_key": str(key), "kind": job.recurrence.kind.value},
                        )
                        self._emitter.emit(EventName.NEXT_EXECUTE, key, scheduled)
        except Exception as exc:
            self._registry.fail(reg)
            logger.warning(
                "job_failed",
                extra={"event": "job_failed", "job_key": str(key), "kind": job.recurrence.kind.value},
                exc_info=True,
            )
            self._emitter.emit(EventName.ERROR, key, ErrorEvent(job=job, time=self._clock(), failure=exc))
            return False

        logger.debug("job_succeeded", extra={"event": "job_succeeded", "job_key": str(key)})
        self._emitter.emit(EventName.SUCCESS, key, SuccessEvent(job=job, result=result, time=self._clock()))
        return True
