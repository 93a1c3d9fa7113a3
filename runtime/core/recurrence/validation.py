"""JSON Schema validation for recurrence documents.

The canonical schema lives next to this module under `schemas/` and is
expressed as YAML but is a valid JSON Schema Draft 2020-12 document.

This module is intentionally strict:
- Unknown kinds and fields that do not belong to the kind are rejected.
- Booleans are never accepted where an integer is expected.
- Validation errors are surfaced with stable JSON Pointer-like paths.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

import yaml
from jsonschema import Draft202012Validator

from errors import ConfigError, RecurrenceValidationError, SchemaViolation

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "recurrence.schema.yaml"


def _escape_json_pointer_token(token: str) -> str:
    # RFC 6901 escaping.
    return token.replace("~", "~0").replace("/", "~1")


def _json_pointer(path: Iterable[Any]) -> str:
    parts: list[str] = []
    for p in path:
        if isinstance(p, int):
            parts.append(str(p))
        else:
            parts.append(_escape_json_pointer_token(str(p)))
    return "/" + "/".join(parts) if parts else "/"


def _load_schema(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Recurrence schema not found: {path}")
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ConfigError(f"Expected YAML object at root: {path}")
    return raw


@lru_cache(maxsize=1)
def recurrence_validator() -> Draft202012Validator:
    schema = _load_schema(SCHEMA_PATH)
    # Ensure the schema itself is sane.
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def collect_violations(document: Any) -> list[SchemaViolation]:
    violations = [
        SchemaViolation(path=_json_pointer(err.absolute_path), message=err.message)
        for err in recurrence_validator().iter_errors(document)
    ]
    # Stable order: helps tests and makes errors easier to scan.
    violations.sort(key=lambda v: (v.path, v.message))
    return violations


def validate_recurrence_document(document: Any) -> None:
    """Validate a recurrence document, reporting every violation at once."""
    violations = collect_violations(document)
    if violations:
        kind = document.get("kind") if isinstance(document, dict) else None
        raise RecurrenceValidationError(kind=str(kind or "unknown"), violations=violations)
