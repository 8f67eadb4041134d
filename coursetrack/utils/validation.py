"""
Validation helpers shared by the engines and routers.

Structural checks use JSON Schema (``jsonschema``); value checks that need
more than a shape (dates, vocabularies) live here as small functions that
raise ``coursetrack.utils.errors.ValidationError``.
"""

from datetime import date
from typing import Any, Dict, Iterable

from jsonschema import Draft7Validator

from coursetrack.utils.errors import ValidationError


def validate_against_schema(instance: Any, schema: Dict[str, Any], field_prefix: str) -> None:
    """
    Validate ``instance`` against a draft-7 schema.

    Raises ValidationError for the first error in path order so the report is
    stable between runs.
    """
    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(instance), key=lambda e: [str(p) for p in e.absolute_path])
    if not errors:
        return
    first = errors[0]
    path = ".".join(str(p) for p in first.absolute_path)
    raise ValidationError(f"{field_prefix}.{path}" if path else field_prefix, first.message)


def parse_iso_date(value: Any, field: str) -> date:
    """Parse a ``YYYY-MM-DD`` value; datetimes are truncated to their date."""
    if isinstance(value, date):
        return value if type(value) is date else value.date()
    if not isinstance(value, str):
        raise ValidationError(field, "Date must be a string in YYYY-MM-DD format")
    text = value.strip()
    if len(text) > 10 and text[10] not in "T ":
        raise ValidationError(field, f"Invalid date '{value}', expected YYYY-MM-DD")
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise ValidationError(field, f"Invalid date '{value}', expected YYYY-MM-DD") from None


def require_member(value: str, allowed: Iterable[str], field: str, noun: str) -> str:
    allowed = list(allowed)
    if value not in allowed:
        raise ValidationError(field, f"Invalid {noun}. Must be one of: {', '.join(allowed)}")
    return value
