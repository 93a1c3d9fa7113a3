"""Job registration lifecycle state machine.

Canonical lifecycle:
scheduled -> due -> running -> scheduled | failed | removed

Notes:
- A registration is one `set` of a key; replacing the key starts a new one.
- `failed` keeps the job registered without a due entry until it is set again.
- `removed` is terminal (deleted, replaced, one-shot completed, or destroyed).
"""

from __future__ import annotations

from enum import Enum

from errors import ConflictError


class JobState(str, Enum):
    SCHEDULED = "scheduled"
    DUE = "due"
    RUNNING = "running"
    FAILED = "failed"
    REMOVED = "removed"


_TERMINAL_STATES = {JobState.REMOVED}

# Allowed transitions excluding no-op transitions.
_ALLOWED: dict[JobState, set[JobState]] = {
    JobState.SCHEDULED: {JobState.DUE, JobState.REMOVED},
    JobState.DUE: {JobState.RUNNING, JobState.REMOVED},
    JobState.RUNNING: {JobState.SCHEDULED, JobState.FAILED, JobState.REMOVED},
    JobState.FAILED: {JobState.REMOVED},
    JobState.REMOVED: set(),
}


def is_terminal(state: JobState) -> bool:
    return state in _TERMINAL_STATES


def apply_transition(current: JobState, new_state: JobState) -> JobState:
    """Return `new_state` if the lifecycle allows moving there from `current`."""
    if new_state == current:
        return current

    if is_terminal(current):
        raise ConflictError(f"Registration is terminal; cannot transition from {current.value} to {new_state.value}")

    if new_state not in _ALLOWED[current]:
        raise ConflictError(f"Invalid job state transition: {current.value} -> {new_state.value}")

    return new_state
