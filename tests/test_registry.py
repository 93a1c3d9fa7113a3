"""Tests for the job registry and its due index."""

from __future__ import annotations

from datetime import datetime
from typing import get_type_hints

import pytest

from conftest import FakeClock
from errors import RecurrenceValidationError, RegistryInconsistencyError, SchedulerDestroyedError
from executor.state_machine import JobState
from recurrence.kinds import Daily, Interval, Minutely, RecurrenceKind
from registry.registry import ArgsT, DueEntry, JobRegistry, ScheduledJob
from scheduler.events import DueEvent, EventEmitter
from utils import to_millis


def _noop(_args: object) -> None:
    return None


def _job(recurrence=None, args=None) -> ScheduledJob:
    return ScheduledJob(func=_noop, recurrence=recurrence or Minutely(second=30), args=args)


@pytest.fixture
def emitter() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def registry(emitter: EventEmitter, clock: FakeClock) -> JobRegistry:
    return JobRegistry(emitter=emitter, clock=clock)


class TestScheduledJob:
    def test_requires_callable(self) -> None:
        with pytest.raises(TypeError, match="callable"):
            ScheduledJob(func="not callable", recurrence=Daily())

    def test_requires_recurrence(self) -> None:
        with pytest.raises(RecurrenceValidationError) as exc:
            ScheduledJob(func=_noop, recurrence={"kind": "daily"})
        assert exc.value.violations[0].path == "/recurrence"

    def test_args_share_the_callable_argument_type(self) -> None:
        hints = get_type_hints(ScheduledJob)
        assert hints["args"] is ArgsT
        assert hints["func"].__args__[0] is ArgsT

    def test_parametrized_job_keeps_args(self) -> None:
        job = ScheduledJob[int, int](func=abs, recurrence=Daily(), args=-3)
        assert job.func(job.args) == 3


class TestSet:
    def test_set_stores_job_and_first_due(self, registry: JobRegistry) -> None:
        job = _job(Daily(hour=23, minute=59, second=59))
        registry.set("report", job)

        assert registry.get("report") is job
        assert registry.due_entries() == [DueEntry(key="report", due_ms=to_millis(datetime(2024, 6, 12, 23, 59, 59)))]
        assert registry.state_of("report") is JobState.SCHEDULED

    def test_set_emits_set_then_first_execute(self, registry: JobRegistry, emitter: EventEmitter) -> None:
        seen: list[tuple] = []
        emitter.on("set", lambda key, job: seen.append(("set", key, job)))
        emitter.on("first-execute", lambda key, event: seen.append(("first-execute", key, event)))

        job = _job(Daily(hour=23, minute=59, second=59))
        registry.set("report", job)

        due = datetime(2024, 6, 12, 23, 59, 59)
        assert seen == [
            ("set", "report", job),
            ("first-execute", "report", DueEvent(timestamp=to_millis(due), date=due, kind=RecurrenceKind.DAILY)),
        ]

    def test_replace_reschedules_from_now(self, registry: JobRegistry, clock: FakeClock) -> None:
        registry.set("poll", _job(Interval(seconds=60)))
        clock.advance(seconds=30)
        replacement = _job(Interval(seconds=60))
        registry.set("poll", replacement)

        assert registry.get("poll") is replacement
        assert len(registry) == 1
        assert registry.due_entries()[0].date == datetime(2024, 6, 12, 10, 1, 30)

    def test_replace_moves_key_to_end_of_due_index(self, registry: JobRegistry) -> None:
        for key in ("a", "b", "c"):
            registry.set(key, _job())
        registry.set("a", _job())
        assert [e.key for e in registry.due_entries()] == ["b", "c", "a"]

    def test_rejects_non_job(self, registry: JobRegistry) -> None:
        with pytest.raises(TypeError):
            registry.set("x", {"func": _noop})

    def test_keys_accept_any_hashable(self, registry: JobRegistry) -> None:
        registry.set(("tenant", 7), _job())
        assert ("tenant", 7) in registry


class TestGetAndDelete:
    def test_get_missing_returns_none(self, registry: JobRegistry) -> None:
        assert registry.get("missing") is None

    def test_delete_removes_job_and_due_entry(self, registry: JobRegistry, emitter: EventEmitter) -> None:
        deleted: list[str] = []
        emitter.on("delete", deleted.append)
        registry.set("a", _job())

        assert registry.delete("a") is True
        assert registry.get("a") is None
        assert registry.due_entries() == []
        assert deleted == ["a"]

    def test_delete_missing_returns_false_without_event(self, registry: JobRegistry, emitter: EventEmitter) -> None:
        deleted: list[str] = []
        emitter.on("delete", deleted.append)
        assert registry.delete("missing") is False
        assert deleted == []

    def test_every_key_has_one_due_entry(self, registry: JobRegistry) -> None:
        for key in ("a", "b", "c"):
            registry.set(key, _job())
        registry.delete("b")
        assert sorted(registry.keys()) == sorted(e.key for e in registry.due_entries())


class TestTakeDue:
    def test_takes_only_due_entries_in_order(self, registry: JobRegistry, clock: FakeClock) -> None:
        registry.set("late", _job(Daily(hour=12)))
        registry.set("first", _job(Minutely(second=30)))
        registry.set("second", _job(Minutely(second=30)))

        taken = registry.take_due(to_millis(datetime(2024, 6, 12, 10, 0, 30)), skip=set())

        assert [reg.key for reg, _ in taken] == ["first", "second"]
        assert all(reg.state is JobState.DUE for reg, _ in taken)
        assert [e.key for e in registry.due_entries()] == ["late"]

    def test_skipped_keys_keep_their_entries(self, registry: JobRegistry) -> None:
        registry.set("busy", _job(Minutely(second=30)))
        taken = registry.take_due(to_millis(datetime(2024, 6, 12, 11, 0)), skip={"busy"})
        assert taken == []
        assert [e.key for e in registry.due_entries()] == ["busy"]

    def test_due_entry_without_job_is_fatal(self, registry: JobRegistry) -> None:
        registry.set("a", _job(Minutely(second=30)))
        registry._jobs.pop("a")

        with pytest.raises(RegistryInconsistencyError) as exc:
            registry.take_due(to_millis(datetime(2024, 6, 12, 11, 0)), skip=set())
        assert exc.value.key == "a"

    def test_stale_registration_is_not_rescheduled(self, registry: JobRegistry) -> None:
        registry.set("a", _job(Minutely(second=30)))
        (reg, _), = registry.take_due(to_millis(datetime(2024, 6, 12, 11, 0)), skip=set())
        assert registry.mark_running(reg)
        registry.set("a", _job(Minutely(second=45)))

        assert registry.reschedule(reg, datetime(2024, 6, 12, 11, 1)) is None
        assert reg.state is JobState.REMOVED
        assert registry.due_entries()[0].date == datetime(2024, 6, 12, 10, 0, 45)


class TestClose:
    def test_close_clears_and_rejects_inserts(self, registry: JobRegistry) -> None:
        registry.set("a", _job())
        registry.close()

        assert registry.closed
        assert list(registry) == []
        assert len(registry) == 0
        assert registry.due_entries() == []
        with pytest.raises(SchedulerDestroyedError):
            registry.set("b", _job())
