"""
Record validation, filtering and sorting.
"""

from .filters import FILTER_KEYS, filter_monitoring_data, sort_monitoring_data
from .validation import (
    ValidationResult,
    required_field_errors,
    validate_data_record,
    validate_format,
    validate_range,
)

__all__ = [
    "FILTER_KEYS",
    "ValidationResult",
    "filter_monitoring_data",
    "required_field_errors",
    "sort_monitoring_data",
    "validate_data_record",
    "validate_format",
    "validate_range",
]
