"""
Field- and record-level validation of monitoring measurements.

Hard errors (missing required fields, non-numeric value) make a record
invalid; soft warnings (sample id convention, negative value, value outside
the parameter's reference range) are reported but do not block validity.
Records are stored either way, with the outcome attached.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from numbers import Real
from typing import Any, Iterator, Mapping, Optional

import pandas as pd

from envmon_processing.constants import (
    REFERENCE_RANGES,
    SAMPLE_ID_PATTERN,
    ReferenceRange,
)

_SAMPLE_ID_RE = re.compile(SAMPLE_ID_PATTERN)

PASSED_MESSAGE = "validation passed"


@dataclass
class ValidationResult:
    is_valid: bool
    message: str
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def is_number(value: Any) -> bool:
    """True for finite real numbers; booleans and numeric strings are not numbers."""
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return math.isfinite(float(value))


def _is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def required_field_errors(record: Mapping[str, Any]) -> Iterator[tuple[str, str]]:
    """
    Yield ``(field, message)`` for every hard-error rule a record breaks.

    Shared by record validation and bulk import validation so both find
    exactly the same failures.
    """
    if _is_blank(record.get("sample_id")):
        yield "sample_id", "sample ID is required"
    if _is_blank(record.get("parameter")):
        yield "parameter", "parameter is required"

    value = record.get("value")
    if value is None or (isinstance(value, str) and value == ""):
        yield "value", "measured value is required"
    elif not is_number(value):
        yield "value", "measured value must be a valid number"

    if _is_blank(record.get("measurement_date")):
        yield "measurement_date", "measurement date is required"
    if _is_blank(record.get("analyst")):
        yield "analyst", "analyst is required"


def validate_data_record(
    record: Mapping[str, Any],
    *,
    reference_ranges: Mapping[str, ReferenceRange] = REFERENCE_RANGES,
) -> ValidationResult:
    """
    Validate one measurement against format and reference-range rules.

    Args:
        record: Mapping with snake_case record fields (sample_id, parameter,
            value, measurement_date, analyst, ...).
        reference_ranges: Parameter -> ReferenceRange table.

    Returns:
        ValidationResult. ``message`` joins the errors if any, else the
        warnings, else reads "validation passed".
    """
    errors = [msg for _, msg in required_field_errors(record)]
    warnings = []

    sample_id = record.get("sample_id")
    if not _is_blank(sample_id) and not _SAMPLE_ID_RE.match(str(sample_id)):
        warnings.append(
            "sample ID should be 2 upper-case letters followed by 6-10 digits"
        )

    value = record.get("value")
    if is_number(value):
        if value < 0:
            warnings.append("measured value is negative, please confirm")
        parameter = record.get("parameter")
        rng = reference_ranges.get(parameter) if parameter else None
        if rng is not None and not rng.contains(value):
            warnings.append(
                f"{parameter} value ({value}) is outside the reference range "
                f"({rng.min}-{rng.max}{rng.unit})"
            )

    if errors:
        message = "; ".join(errors)
    elif warnings:
        message = "; ".join(warnings)
    else:
        message = PASSED_MESSAGE

    return ValidationResult(
        is_valid=not errors, message=message, errors=errors, warnings=warnings
    )


def _is_date(value: Any) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    if _is_blank(value):
        return False
    try:
        return not pd.isna(pd.to_datetime(str(value)))
    except (ValueError, OverflowError):
        return False


_FORMATS = {
    "number": (is_number, "must be a valid number"),
    "positive_number": (
        lambda v: is_number(v) and v >= 0,
        "must be a non-negative number",
    ),
    "date": (_is_date, "must be a valid date"),
    "sample_id": (
        lambda v: isinstance(v, str) and bool(_SAMPLE_ID_RE.match(v)),
        "must be 2 upper-case letters followed by 6-10 digits",
    ),
    "non_empty": (lambda v: v is not None and v != "", "must not be empty"),
}


def validate_format(value: Any, fmt: str) -> ValidationResult:
    """Check a single value against a named format; unknown formats pass."""
    spec = _FORMATS.get(fmt)
    if spec is None:
        return ValidationResult(True, f"unknown format type '{fmt}'")
    check, failure = spec
    if check(value):
        return ValidationResult(True, "format ok")
    return ValidationResult(False, failure, errors=[failure])


def validate_range(
    value: Any, min_value: float, max_value: float
) -> tuple[ValidationResult, Optional[ReferenceRange]]:
    """
    Check ``min_value <= value <= max_value``.

    Returns:
        Tuple of (ValidationResult, the checked range or None when the value
        is not a number).
    """
    if not is_number(value):
        msg = "value must be a valid number"
        return ValidationResult(False, msg, errors=[msg]), None
    rng = ReferenceRange(min_value, max_value)
    if rng.contains(value):
        return ValidationResult(True, "value within range"), rng
    msg = f"value ({value}) is outside the range ({min_value}-{max_value})"
    return ValidationResult(False, msg, errors=[msg]), rng
