"""Tests for range, IQR and z-score anomaly detection."""

import numpy as np
import pytest

from conftest import make_record
from envmon_processing.assessment.outliers import (
    AnomalyType,
    detect_anomalies,
    detect_outliers_iqr,
    detect_outliers_zscore,
    iqr_bounds,
    percentile,
    screen_anomalies,
    trend_break_deviation,
    zscore_bounds,
)
from envmon_processing.config import DetectionConfig, OutlierThresholds


def test_percentile_linear_interpolation():
    assert percentile([1, 2, 3, 4], 25) == pytest.approx(1.75)
    assert percentile([4, 1, 3, 2], 50) == pytest.approx(2.5)
    assert percentile([], 50) == 0.0


def test_iqr_bounds():
    lower, upper = iqr_bounds([1, 2, 3, 4, 5])
    assert lower == pytest.approx(-1.0)
    assert upper == pytest.approx(7.0)


def test_detect_outliers_iqr_mask_ignores_nan():
    values = np.array([1.0, 2.0, 3.0, 4.0, 5.0, 100.0, np.nan])
    mask = detect_outliers_iqr(values)
    assert mask.tolist() == [False, False, False, False, False, True, False]


def test_detect_outliers_zscore_constant_series():
    assert not detect_outliers_zscore(np.full(10, 3.0)).any()
    assert zscore_bounds([3.0, 3.0]) is None


def test_detect_outliers_zscore_flags_extreme():
    values = np.array([10.0] * 20 + [100.0])
    mask = detect_outliers_zscore(values)
    assert mask[-1]
    assert mask.sum() == 1


def test_range_method_flags_out_of_range_ph():
    records = [make_record("A", "pH", 7.5), make_record("B", "pH", 11.0)]
    results = detect_anomalies(records, "range")
    assert [r.data_id for r in results] == ["A", "B"]
    assert not results[0].is_anomaly
    assert results[0].anomaly_type is None
    assert results[1].is_anomaly
    assert results[1].anomaly_type is AnomalyType.RANGE_EXCEEDED
    assert results[1].confidence == 0.9
    assert results[1].reference_range.min == 6.0


def test_iqr_needs_four_points():
    records = [make_record(f"R{i}", "SS", v) for i, v in enumerate([10, 11, 90])]
    assert not any(r.is_anomaly for r in detect_anomalies(records, "iqr"))

    records.append(make_record("R3", "SS", 12))
    results = detect_anomalies(records, "iqr")
    assert [r.is_anomaly for r in results] == [False, False, True, False]
    assert results[2].confidence == 0.85


def test_cohorts_are_per_parameter():
    records = [make_record(f"P{i}", "SS", 10 + i) for i in range(4)]
    records += [make_record(f"Q{i}", "浊度", 50 + i) for i in range(4)]
    assert not any(r.is_anomaly for r in detect_anomalies(records, "iqr"))


def test_all_method_prefers_range():
    records = [make_record(f"R{i}", "pH", 7.0) for i in range(6)]
    records.append(make_record("X", "pH", 12.0))
    results = detect_anomalies(records, "all")
    assert results[-1].anomaly_type is AnomalyType.RANGE_EXCEEDED
    assert results[-1].confidence == 0.9


def test_zscore_method_with_override():
    values = [5.0, 5.1, 4.9, 5.0, 9.0]
    records = [make_record(f"Z{i}", "SS", v) for i, v in enumerate(values)]
    assert not any(r.is_anomaly for r in detect_anomalies(records, "zscore"))

    config = DetectionConfig(
        parameter_overrides={"SS": OutlierThresholds(zscore_threshold=1.5)}
    )
    results = detect_anomalies(records, "zscore", config=config)
    assert results[-1].is_anomaly
    assert results[-1].confidence == 0.95
    assert "Z-score" in results[-1].explanation


def test_non_numeric_values_are_never_flagged():
    records = [make_record("A", "pH", "n/a")]
    assert not detect_anomalies(records, "all")[0].is_anomaly


def test_unknown_method_raises():
    with pytest.raises(ValueError):
        detect_anomalies([], "magic")


def test_trend_break_deviation():
    deviation, window_mean = trend_break_deviation([1.0, 2.0, 3.0, 4.0], 10.0)
    assert window_mean == pytest.approx(3.0)
    assert deviation == pytest.approx(7.0 / np.std([2.0, 3.0, 4.0]))
    assert trend_break_deviation([1.0], 5.0) is None
    assert trend_break_deviation([2.0, 2.0, 2.0], 5.0) is None


def _dated(record_id, value, day):
    return make_record(record_id, "SS", value, measurement_date=f"2024-01-0{day}")


def test_screen_flags_trend_break_in_date_order():
    records = [
        _dated("BREAK", 11.0, 6),
        _dated("A", 5.0, 1),
        _dated("B", 15.0, 2),
        _dated("C", 10.0, 3),
        _dated("D", 10.1, 4),
        _dated("E", 9.9, 5),
    ]
    results = screen_anomalies(records)
    assert results[0].data_id == "BREAK"
    assert results[0].anomaly_type is AnomalyType.TREND_BREAK
    assert results[0].confidence == pytest.approx(0.9)
    assert "10.00" in results[0].explanation
    assert "sampling conditions" in results[0].suggested_action
    assert results[0].to_dict()["anomalyType"] == "trend_break"


def test_trend_break_needs_five_points():
    records = [
        _dated("C", 10.0, 3),
        _dated("D", 10.1, 4),
        _dated("E", 9.9, 5),
        _dated("BREAK", 11.0, 6),
    ]
    assert not any(r.is_anomaly for r in screen_anomalies(records))


def test_screen_range_confidence_grows_with_excess():
    records = [
        make_record("A", "pH", 9.5),
        make_record("B", "pH", 14.0),
        make_record("C", "COD", -1.0),
    ]
    mild, severe, below_zero = screen_anomalies(records)
    assert mild.anomaly_type is AnomalyType.RANGE_EXCEEDED
    assert mild.confidence == pytest.approx(0.7 + 0.5 / 9 * 0.5)
    assert "verify" in mild.suggested_action
    assert severe.confidence == pytest.approx(0.95)
    assert "calibration" in severe.suggested_action
    assert below_zero.confidence == pytest.approx(0.95)


def test_screen_zscore_uses_sensitivity():
    records = [make_record(f"Z{i}", "SS", 5.0) for i in range(9)]
    records.append(make_record("Z9", "SS", 9.0))
    results = screen_anomalies(records, 0.5)
    assert [r.is_anomaly for r in results] == [False] * 9 + [True]
    assert results[-1].anomaly_type is AnomalyType.OUTLIER
    assert results[-1].confidence == pytest.approx(0.65)
    assert "Z-score=3.00" in results[-1].explanation


def test_screen_rejects_bad_sensitivity():
    with pytest.raises(ValueError):
        screen_anomalies([], 1.5)
