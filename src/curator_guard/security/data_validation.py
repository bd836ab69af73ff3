"""Injection scanning for curated data files (categories, themes).

Structural validation is delegated to a caller-supplied validator; this
module adds the injection-pattern pass and merges both sets of messages.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from curator_guard.logging import get_logger
from curator_guard.security.sanitizer import detect_injection

log = get_logger("curator_guard.security.data_validation")


@dataclass
class ValidationResult:
    """Aggregated outcome of validating one data file."""

    valid: bool
    errors: list[str] = field(default_factory=list)


StructuralValidator = Callable[[Any], "ValidationResult | Mapping[str, Any]"]


def _coerce_result(result: ValidationResult | Mapping[str, Any]) -> ValidationResult:
    if isinstance(result, ValidationResult):
        return result
    return ValidationResult(
        valid=bool(result.get("valid", False)),
        errors=[str(e) for e in result.get("errors") or []],
    )


def _singular(name: str) -> str:
    if name.endswith("ies"):
        return name[:-3] + "y"
    return name.removesuffix("s")


def validate_records(
    records: Iterable[Mapping[str, Any]],
    *,
    key_field: str,
    fields: Sequence[str],
    label: str,
) -> ValidationResult:
    """Scan the named string fields of every record for injection patterns.

    Each hit produces ``'<Label> "<key>": <Field> contains potential
    injection pattern'``.
    """
    errors: list[str] = []
    for record in records:
        if not isinstance(record, Mapping):
            continue
        key = record.get(key_field)
        for field_name in fields:
            if detect_injection(record.get(field_name)):
                errors.append(
                    f'{label} "{key}": {field_name.capitalize()} '
                    "contains potential injection pattern"
                )
    return ValidationResult(valid=not errors, errors=errors)


def validate_data_file(
    path: str | Path,
    collection: str,
    key_field: str,
    fields: Sequence[str],
    structural_validator: StructuralValidator | None = None,
    label: str | None = None,
) -> ValidationResult:
    """Validate a JSON data file.

    Args:
        path: File to read.
        collection: Top-level key holding the record list, e.g. ``categories``.
        key_field: Record field used to name a record in messages.
        fields: Record fields to scan for injection patterns.
        structural_validator: Optional schema check run before the scan.
        label: Name used in messages. Defaults to the singular of *collection*.

    Returns:
        The merged result. Read and parse failures yield a single message
        instead of raising.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        log.warning("data_file_unreadable", path=str(path), error=str(e))
        return ValidationResult(valid=False, errors=[f"Failed to read or parse file: {e}"])

    errors: list[str] = []
    structurally_valid = True
    if structural_validator is not None:
        structural = _coerce_result(structural_validator(data))
        structurally_valid = structural.valid
        errors.extend(structural.errors)

    records = data.get(collection) if isinstance(data, dict) else None
    if isinstance(records, list):
        record_label = label or _singular(collection).capitalize()
        errors.extend(
            validate_records(records, key_field=key_field, fields=fields, label=record_label).errors
        )

    if errors:
        log.warning("data_file_invalid", path=str(path), error_count=len(errors))
    return ValidationResult(valid=structurally_valid and not errors, errors=errors)
