"""Tests for record, format and range validation."""

import math

import pytest

from envmon_processing.constants import ReferenceRange
from envmon_processing.processing.validation import (
    PASSED_MESSAGE,
    is_number,
    required_field_errors,
    validate_data_record,
    validate_format,
    validate_range,
)


def test_valid_record_passes(valid_input):
    result = validate_data_record(valid_input)
    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []
    assert result.message == PASSED_MESSAGE


@pytest.mark.parametrize(
    "field", ["sample_id", "parameter", "value", "measurement_date", "analyst"]
)
def test_missing_required_field_is_error(valid_input, field):
    valid_input[field] = ""
    result = validate_data_record(valid_input)
    assert not result.is_valid
    assert len(result.errors) == 1
    assert result.errors[0]
    assert result.message == result.errors[0]


@pytest.mark.parametrize("value", ["abc", "7.5", True, math.nan, math.inf])
def test_non_numeric_value_is_error(valid_input, value):
    valid_input["value"] = value
    result = validate_data_record(valid_input)
    assert not result.is_valid
    assert "valid number" in result.errors[0]


def test_missing_value_key_is_required_error(valid_input):
    del valid_input["value"]
    fields = [f for f, _ in required_field_errors(valid_input)]
    assert fields == ["value"]


def test_warnings_do_not_block_validity(valid_input):
    valid_input.update(sample_id="bad-id", value=11.0)
    result = validate_data_record(valid_input)
    assert result.is_valid
    assert len(result.warnings) == 2
    assert "reference range" in result.message


def test_negative_value_warns(valid_input):
    valid_input.update(parameter="COD", value=-1.0)
    result = validate_data_record(valid_input)
    assert result.is_valid
    assert any("negative" in w for w in result.warnings)


def test_errors_take_precedence_in_message(valid_input):
    valid_input.update(sample_id="x", analyst="")
    result = validate_data_record(valid_input)
    assert not result.is_valid
    assert result.message == "; ".join(result.errors)


def test_custom_reference_ranges(valid_input):
    result = validate_data_record(
        valid_input, reference_ranges={"pH": ReferenceRange(8.0, 9.0)}
    )
    assert result.warnings


def test_is_number():
    assert is_number(1)
    assert is_number(2.5)
    assert not is_number(False)
    assert not is_number("1")
    assert not is_number(None)
    assert not is_number(math.nan)


@pytest.mark.parametrize(
    "value, fmt, ok",
    [
        (3.2, "number", True),
        ("3.2", "number", False),
        (0, "positive_number", True),
        (-1, "positive_number", False),
        ("2024-01-01", "date", True),
        ("not a date", "date", False),
        ("WS20240101", "sample_id", True),
        ("ws2024", "sample_id", False),
        ("x", "non_empty", True),
        ("", "non_empty", False),
        ("anything", "no_such_format", True),
    ],
)
def test_validate_format(value, fmt, ok):
    assert validate_format(value, fmt).is_valid is ok


def test_validate_range():
    result, rng = validate_range(5, 0, 10)
    assert result.is_valid
    assert rng == ReferenceRange(0, 10)

    result, _ = validate_range(11, 0, 10)
    assert not result.is_valid

    result, rng = validate_range("x", 0, 10)
    assert not result.is_valid
    assert rng is None
