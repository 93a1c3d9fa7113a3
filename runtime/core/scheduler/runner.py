"""Scheduler facade and polling loop.

The scheduler wires the pieces together:
- the registry stores jobs and their due times;
- the executor runs one tick at a time;
- a daemon thread calls the executor every `polling_interval_ms`.

The loop never re-enters itself: a tick always finishes before the next wait
begins, so a very slow job delays later ticks.

`destroy()` is terminal. In-flight invocations run to completion and their
`success`/`error` events still reach listeners, but they no longer change the
(now empty) registry.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Generic, Hashable, TypeVar

from config.settings import SchedulerConfig
from errors import RegistryInconsistencyError, SchedulerDestroyedError
from executor.engine import Executor, TickResult
from registry.registry import JobRegistry, ScheduledJob
from scheduler.events import ErrorEvent, EventEmitter, EventName, Listener
from utils import local_now

logger = logging.getLogger(__name__)

KeyT = TypeVar("KeyT", bound=Hashable)


class Scheduler(Generic[KeyT]):
    """In-process recurring job scheduler.

    Example:
        >>> scheduler = Scheduler(SchedulerConfig(polling_interval_ms=500))
        >>> scheduler.on("success", lambda key, event: print(key, event.result))
        >>> scheduler.set("double", ScheduledJob(func=lambda n: n * 2, args=12, recurrence=Minutely(second=10)))
        >>> # ... later ...
        >>> scheduler.destroy()
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        autostart: bool = True,
    ):
        self.config = config or SchedulerConfig()
        self._clock = clock or local_now
        self._emitter = EventEmitter()
        self._registry: JobRegistry[KeyT] = JobRegistry(emitter=self._emitter, clock=self._clock)
        self._executor = Executor(
            registry=self._registry,
            emitter=self._emitter,
            clock=self._clock,
            fan_out=self.config.fan_out,
        )

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._destroyed = False

        if autostart:
            self.start()

    # Jobs

    def set(self, key: KeyT, job: ScheduledJob[Any, Any]) -> None:
        self._registry.set(key, job)

    def get(self, key: KeyT) -> ScheduledJob[Any, Any] | None:
        return self._registry.get(key)

    def delete(self, key: KeyT) -> bool:
        return self._registry.delete(key)

    def keys(self) -> list[KeyT]:
        return self._registry.keys()

    def __len__(self) -> int:
        return len(self._registry)

    def __contains__(self, key: object) -> bool:
        return key in self._registry

    @property
    def registry(self) -> JobRegistry[KeyT]:
        return self._registry

    # Events

    def on(self, event: EventName | str, listener: Listener) -> None:
        self._emitter.on(event, listener)

    def once(self, event: EventName | str, listener: Listener) -> None:
        self._emitter.once(event, listener)

    def remove_listener(self, event: EventName | str, listener: Listener) -> None:
        self._emitter.remove_listener(event, listener)

    # Loop

    def start(self) -> None:
        """Start the polling loop in a daemon thread."""
        with self._lock:
            if self._destroyed:
                raise SchedulerDestroyedError("start polling loop")
            if self._thread is not None:
                logger.warning("Scheduler already started")
                return
            self._thread = threading.Thread(target=self._loop, daemon=True, name="cadence-scheduler")
        self._thread.start()

    async def run_tick(self, now: datetime | None = None) -> TickResult:
        """Run one tick on the caller's event loop."""
        if self._destroyed:
            raise SchedulerDestroyedError("run tick")
        now = now or self._clock()
        with self._lock:
            self._tick_count += 1
            self._last_tick = now
        return await self._executor.run_tick(now)

    def tick(self, now: datetime | None = None) -> TickResult:
        """Run one tick synchronously (must not be called from a running event loop)."""
        return asyncio.run(self.run_tick(now))

    def _loop(self) -> None:
        interval = self.config.polling_interval_seconds
        logger.info(
            f"Scheduler polling loop started (interval={self.config.polling_interval_ms}ms)",
            extra={"event": "scheduler_started"},
        )
        while not self._stop_event.wait(interval):
            try:
                self.tick()
            except SchedulerDestroyedError:
                break
            except RegistryInconsistencyError as e:
                logger.critical(
                    "registry_inconsistent",
                    extra={"event": "registry_inconsistent", "job_key": str(e.key), "code": "REGISTRY_INCONSISTENT"},
                    exc_info=True,
                )
                self._emitter.emit(EventName.ERROR, e.key, ErrorEvent(job=None, time=self._clock(), failure=e))
                self._stop_event.set()
                break
            except Exception as e:
                logger.exception(f"Tick failed: {e}", extra={"event": "tick_failed"})
                self._emitter.emit(EventName.ERROR, None, ErrorEvent(job=None, time=self._clock(), failure=e))

        logger.info("Scheduler polling loop stopped", extra={"event": "scheduler_stopped"})

    def destroy(self) -> None:
        """Stop the polling loop and drop every job. Idempotent."""
        with self._lock:
            if self._destroyed:
                return
            self._destroyed = True

        self._registry.close()
        self._stop_event.set()

        thread = self._thread
        # A job calling destroy() would otherwise wait on the tick that is running it.
        if thread is not None and thread is not threading.current_thread() and not self._executor.in_job():
            thread.join(timeout=self.config.stop_timeout_seconds)
            if thread.is_alive():
                logger.warning("Scheduler thread did not stop cleanly", extra={"event": "scheduler_stop_timeout"})

        logger.info("Scheduler destroyed", extra={"event": "scheduler_destroyed"})

    # Health

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "destroyed": self._destroyed,
            "jobs": len(self._registry),
            "in_flight": len(self._executor.in_flight),
            "tick_count": self._tick_count,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "polling_interval_ms": self.config.polling_interval_ms,
        }
