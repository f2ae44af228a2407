"""Tests for trend prediction."""

import numpy as np
import pytest

from conftest import make_record
from envmon_processing.assessment.trend import (
    detect_oscillation,
    predict_trend,
    time_series,
    trend_direction,
)


def _daily(values, parameter="COD"):
    return [
        make_record(f"D{i}", parameter, v, measurement_date=f"2024-01-{i + 1:02d}")
        for i, v in enumerate(values)
    ]


def test_too_few_points_gives_empty_prediction():
    result = predict_trend(_daily([1.0, 2.0]))
    assert result.predicted_values == []
    assert result.trend_direction == "stable"
    assert result.parameter == ""


def test_negative_periods_raise():
    with pytest.raises(ValueError):
        predict_trend(_daily([1.0, 2.0, 3.0]), periods=-1)


def test_perfect_linear_increase():
    result = predict_trend(_daily([10.0, 12.0, 14.0, 16.0]), periods=2)
    assert result.parameter == "COD"
    assert result.slope == pytest.approx(2.0)
    assert result.r_squared == pytest.approx(1.0)
    assert result.confidence == pytest.approx(0.95)
    assert result.trend_direction == "increasing"
    assert [p.value for p in result.predicted_values] == pytest.approx([18.0, 20.0])
    first = result.predicted_values[0]
    assert first.lower_bound == pytest.approx(first.value)
    assert str(first.timestamp.date()) == "2024-01-05"
    assert first.confidence == pytest.approx(0.85)
    assert result.predicted_values[1].confidence == pytest.approx(0.75)


def test_decreasing_and_stable():
    assert predict_trend(_daily([20.0, 18.0, 16.0])).trend_direction == "decreasing"
    assert predict_trend(_daily([10.0, 10.0, 10.0])).trend_direction == "stable"


def test_records_are_sorted_by_time():
    records = _daily([10.0, 12.0, 14.0])
    result = predict_trend(list(reversed(records)))
    assert result.slope == pytest.approx(2.0)
    assert [v for _, v in result.historical] == [10.0, 12.0, 14.0]


def test_time_series_drops_unusable_rows():
    records = _daily([1.0, 2.0, 3.0])
    records[1].value = "bad"
    records[2].measurement_date = "not a date"
    series = time_series(records)
    assert series["value"].tolist() == [1.0]


def test_same_timestamp_falls_back_to_index():
    records = [make_record(f"D{i}", "COD", v) for i, v in enumerate([1.0, 2.0, 3.0])]
    result = predict_trend(records, periods=1)
    assert result.slope == pytest.approx(1.0)
    assert result.predicted_values[0].value == pytest.approx(4.0)


def test_trend_direction_threshold():
    values = np.array([100.0, 100.0])
    assert trend_direction(0.5, values) == "stable"
    assert trend_direction(2.0, values) == "increasing"
    assert trend_direction(-0.5, np.array([0.0])) == "decreasing"


def test_oscillation():
    assert detect_oscillation(np.array([1.0, 3.0, 1.0, 3.0, 1.0, 3.0])) == {
        "type": "oscillating",
        "period": 2,
    }
    assert detect_oscillation(np.array([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])) is None
    assert detect_oscillation(np.array([1.0, 3.0, 1.0])) is None
