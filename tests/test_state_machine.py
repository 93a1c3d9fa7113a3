from __future__ import annotations

import pytest

from errors import ConflictError
from executor.state_machine import JobState, apply_transition, is_terminal


@pytest.mark.parametrize(
    "current,new_state",
    [
        (JobState.SCHEDULED, JobState.DUE),
        (JobState.DUE, JobState.RUNNING),
        (JobState.RUNNING, JobState.SCHEDULED),
        (JobState.RUNNING, JobState.FAILED),
        (JobState.RUNNING, JobState.REMOVED),
        (JobState.FAILED, JobState.REMOVED),
        (JobState.SCHEDULED, JobState.REMOVED),
    ],
)
def test_allowed_transitions(current: JobState, new_state: JobState) -> None:
    assert apply_transition(current, new_state) is new_state


@pytest.mark.parametrize(
    "current,new_state",
    [
        (JobState.SCHEDULED, JobState.RUNNING),
        (JobState.DUE, JobState.SCHEDULED),
        (JobState.FAILED, JobState.SCHEDULED),
        (JobState.FAILED, JobState.RUNNING),
    ],
)
def test_rejected_transitions(current: JobState, new_state: JobState) -> None:
    with pytest.raises(ConflictError, match="Invalid job state transition"):
        apply_transition(current, new_state)


def test_removed_is_terminal() -> None:
    assert is_terminal(JobState.REMOVED)
    with pytest.raises(ConflictError, match="terminal"):
        apply_transition(JobState.REMOVED, JobState.SCHEDULED)


def test_same_state_is_a_noop() -> None:
    assert apply_transition(JobState.REMOVED, JobState.REMOVED) is JobState.REMOVED
