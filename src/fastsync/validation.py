"""Input validation for fastsync.

This module provides validation functions for user-supplied values at the
CLI and local-mutation boundary. All validators raise ValidationError with
descriptive messages. The converters and the merge engine never validate.
"""

from __future__ import annotations

import math
import re
from datetime import date
from typing import Any
from urllib.parse import urlparse

__all__ = [
    "ValidationError",
    "WEIGHT_UNITS",
    "validate_entity_id",
    "validate_date",
    "validate_weight",
    "validate_weight_unit",
    "validate_target_duration",
    "validate_cups",
    "validate_base_url",
    "validate_positive_number",
]

WEIGHT_UNITS = ("lbs", "kg")
MAX_ID_LENGTH = 128
MAX_TARGET_DURATION_HOURS = 24 * 14

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ValidationError(ValueError):
    """Validation error with field and message attributes."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"

    def __repr__(self) -> str:
        return f"ValidationError(field='{self.field}', message='{self.message}')"


def validate_entity_id(entity_id: str, field_name: str = "id") -> str:
    """Validate a client-generated entity ID (fast, weight entry)."""
    if not isinstance(entity_id, str):
        raise ValidationError(
            field_name, f"must be a string, got {type(entity_id).__name__}"
        )
    stripped = entity_id.strip()
    if not stripped:
        raise ValidationError(field_name, "cannot be empty")
    if len(stripped) > MAX_ID_LENGTH:
        raise ValidationError(
            field_name, f"cannot exceed {MAX_ID_LENGTH} characters (got {len(stripped)})"
        )
    if "/" in stripped:
        raise ValidationError(field_name, "cannot contain '/'")
    return stripped


def validate_date(value: str, field_name: str = "date") -> str:
    """Validate a calendar day string in YYYY-MM-DD form."""
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValidationError(field_name, "must be a date in YYYY-MM-DD format")
    try:
        date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(field_name, f"invalid date: {e}") from None
    return value


def validate_positive_number(value: Any, field_name: str) -> float:
    """Validate a finite number greater than zero."""
    if isinstance(value, bool):
        raise ValidationError(field_name, "must be a number, got bool")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(field_name, f"must be a number, got {value!r}") from None
    if not math.isfinite(number) or number <= 0:
        raise ValidationError(field_name, "must be a positive number")
    return number


def validate_weight(value: Any) -> float:
    """Validate a body weight reading."""
    return validate_positive_number(value, "weight")


def validate_weight_unit(unit: str) -> str:
    """Validate a weight unit (lbs or kg)."""
    if unit not in WEIGHT_UNITS:
        raise ValidationError("weight_unit", f"must be one of {', '.join(WEIGHT_UNITS)}")
    return unit


def validate_target_duration(hours: Any) -> float:
    """Validate a fast's target duration in hours."""
    number = validate_positive_number(hours, "target_duration")
    if number > MAX_TARGET_DURATION_HOURS:
        raise ValidationError(
            "target_duration", f"cannot exceed {MAX_TARGET_DURATION_HOURS} hours"
        )
    return number


def validate_cups(cups: Any) -> int:
    """Validate a water cup count."""
    if isinstance(cups, bool) or not isinstance(cups, int):
        raise ValidationError("cups", f"must be an integer, got {type(cups).__name__}")
    if cups < 0:
        raise ValidationError("cups", "cannot be negative")
    return cups


def validate_base_url(url: str) -> str:
    """Validate the backend base URL (http or https, with a host)."""
    if not isinstance(url, str):
        raise ValidationError("api_base_url", f"must be a string, got {type(url).__name__}")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("api_base_url", "must be an http:// or https:// URL")
    return url.rstrip("/")
