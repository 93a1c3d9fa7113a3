"""Core scheduler error types.

The scheduler fails closed on anything it cannot schedule correctly: invalid
recurrences are rejected at construction time, and a broken registry invariant
stops the polling loop instead of being skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable


class CadenceError(Exception):
    """Base class for scheduler errors."""


@dataclass(frozen=True)
class SchemaViolation:
    path: str
    message: str


class RecurrenceValidationError(CadenceError):
    def __init__(self, kind: str, violations: Iterable[SchemaViolation]):
        self.kind = kind
        self.violations = list(violations)
        details = "; ".join(f"{v.path}: {v.message}" for v in self.violations)
        super().__init__(f"{kind} recurrence failed validation ({len(self.violations)} violation(s)): {details}")


class NotFoundError(CadenceError):
    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")


class ConflictError(CadenceError):
    def __init__(self, message: str, details: Any | None = None):
        self.details = details
        super().__init__(message)


class ConfigError(CadenceError):
    def __init__(self, message: str, details: Any | None = None):
        self.details = details
        super().__init__(message)


class RegistryInconsistencyError(CadenceError):
    """A due entry exists for a key the registry does not hold."""

    def __init__(self, key: Any):
        self.key = key
        super().__init__(f"Due entry has no registered job: {key!r}")


class SchedulerDestroyedError(CadenceError):
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Scheduler is destroyed; cannot {operation}")
