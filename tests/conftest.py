"""Shared test fixtures.

Scheduler tests drive ticks by hand with a controllable clock instead of
waiting on the polling thread, so they are deterministic.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from config.settings import SchedulerConfig
from scheduler.runner import Scheduler

# Wednesday, away from any DST transition.
WEDNESDAY_10AM = datetime(2024, 6, 12, 10, 0, 0)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(WEDNESDAY_10AM)


@pytest.fixture
def scheduler(clock: FakeClock):
    """Scheduler without a polling thread; tests call `tick()` themselves."""
    s: Scheduler[str] = Scheduler(SchedulerConfig(), clock=clock, autostart=False)
    yield s
    s.destroy()


@pytest.fixture
def sequential_scheduler(clock: FakeClock):
    s: Scheduler[str] = Scheduler(SchedulerConfig(fan_out=False), clock=clock, autostart=False)
    yield s
    s.destroy()
