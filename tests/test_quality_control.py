"""Tests for blank, parallel and spike recovery QC checks."""

import pytest

from envmon_processing.assessment.quality_control import (
    QCData,
    QCResult,
    QCType,
    RecoveryWindow,
    calculate_blank_result,
    calculate_parallel_deviation,
    calculate_spike_recovery,
    evaluate_qc,
)


class TestBlank:
    def test_within_half_detection_limit(self):
        result = calculate_blank_result(0.05, 0.1)
        assert result.passed
        assert result.threshold == pytest.approx(0.05)
        assert result.suggestions == []

    def test_exceeds_limit(self):
        result = calculate_blank_result(0.08, 0.1)
        assert not result.passed
        assert result.type is QCType.BLANK
        assert "check reagent purity" in result.suggestions

    def test_negative_blank_uses_magnitude(self):
        assert not calculate_blank_result(-0.2, 0.1).passed


class TestParallel:
    def test_relative_deviation(self):
        result = calculate_parallel_deviation(10.0, 12.0)
        assert result.value == pytest.approx(2 / 11 * 100)
        assert result.passed
        assert result.threshold == 20.0

    def test_fails_above_twenty_percent(self):
        result = calculate_parallel_deviation(10.0, 15.0)
        assert result.value == pytest.approx(40.0)
        assert not result.passed
        assert result.suggestions[0] == "check sample homogeneity"

    def test_zero_mean_is_zero_deviation(self):
        result = calculate_parallel_deviation(0.0, 0.0)
        assert result.value == 0.0
        assert result.passed


class TestSpikeRecovery:
    def test_recovery_in_window(self):
        result = calculate_spike_recovery(10.0, 19.5, 10.0)
        assert result.value == pytest.approx(95.0)
        assert result.passed
        assert result.threshold == RecoveryWindow(80.0, 120.0)

    def test_low_recovery_suggests_matrix_check(self):
        result = calculate_spike_recovery(10.0, 15.0, 10.0)
        assert not result.passed
        assert result.suggestions[0] == "check for matrix interference"
        assert len(result.suggestions) == 3

    def test_high_recovery_suggests_spike_check(self):
        result = calculate_spike_recovery(10.0, 25.0, 10.0)
        assert result.value == pytest.approx(150.0)
        assert result.suggestions[0] == "check that the spike amount is accurate"

    def test_window_edges_pass(self):
        assert calculate_spike_recovery(0.0, 8.0, 10.0).passed
        assert calculate_spike_recovery(0.0, 12.0, 10.0).passed

    def test_zero_spike_amount(self):
        result = calculate_spike_recovery(10.0, 12.0, 0.0)
        assert result.value == 0.0
        assert not result.passed


class TestEvaluate:
    def test_blank_uses_default_detection_limit(self):
        result = evaluate_qc(QCData(type=QCType.BLANK, values=[0.04]))
        assert result.passed
        assert result.threshold == pytest.approx(0.05)

    def test_blank_uses_own_detection_limit(self):
        qc = QCData(type=QCType.BLANK, values=[0.04], detection_limit=0.05)
        assert not evaluate_qc(qc).passed

    def test_parameter_is_carried(self):
        qc = QCData(type="parallel", values=[7.1, 7.2], parameter="pH")
        assert evaluate_qc(qc).parameter == "pH"

    def test_from_mapping_accepts_camel_case(self):
        qc = QCData.from_mapping(
            {"type": "spike_recovery", "values": [1.0, 2.0], "spikeAmount": 1.0}
        )
        assert qc.spike_amount == 1.0
        assert evaluate_qc(qc).value == pytest.approx(100.0)

    def test_missing_values_raise(self):
        with pytest.raises(ValueError):
            evaluate_qc(QCData(type=QCType.PARALLEL, values=[1.0]))

    def test_missing_spike_amount_raises(self):
        with pytest.raises(ValueError):
            evaluate_qc(QCData(type=QCType.SPIKE_RECOVERY, values=[1.0, 2.0]))

    def test_unknown_type_raises(self):
        with pytest.raises(ValueError):
            QCData.from_mapping({"type": "duplicate", "values": [1.0]})


def test_result_round_trips_through_dict():
    result = calculate_spike_recovery(10.0, 19.5, 10.0)
    data = result.to_dict()
    assert data["threshold"] == {"min": 80.0, "max": 120.0}
    assert data["type"] == "spike_recovery"
    assert QCResult.from_dict(data) == result
