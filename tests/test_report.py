"""Tests for report assembly, conclusions and the Markdown preview."""

import pytest

from conftest import make_record
from envmon_processing.assessment.descriptive import describe
from envmon_processing.assessment.quality_control import (
    calculate_blank_result,
    calculate_parallel_deviation,
)
from envmon_processing.constants import DataStatus
from envmon_processing.report.builder import (
    CONCLUSION_PREFIX,
    REPORT_TITLE,
    Report,
    ReportTemplate,
    build_report,
    generate_conclusion,
    preview_report,
)


@pytest.fixture
def records():
    rs = [make_record(f"D{i}", p, v) for i, (p, v) in enumerate(
        [("pH", 7.2), ("pH", 7.4), ("COD", 18.0)]
    )]
    rs[0].status = DataStatus.APPROVED
    rs[2].status = DataStatus.REJECTED
    return rs


def test_sections_for_minimal_report(records):
    report = build_report(records, [], [])
    assert [s.id for s in report.sections] == ["overview", "data_summary", "conclusion"]
    assert "3 monitoring record(s)" in report.section("overview").content
    assert "2 parameter(s)" in report.section("overview").content
    assert "1 approved, 1 rejected" in report.section("data_summary").content
    assert report.title == REPORT_TITLE
    assert report.template is ReportTemplate.STANDARD


def test_sections_with_statistics_and_qc(records):
    stats = [describe([1.0, 2.0]), describe([7.2, 7.4])]
    qc = [calculate_parallel_deviation(7.2, 7.4), calculate_blank_result(1.0, 0.1)]
    report = build_report(records, stats, qc, "detailed")
    assert [s.id for s in report.sections] == [
        "overview",
        "data_summary",
        "statistics",
        "quality_control",
        "conclusion",
    ]
    assert "mean=7.3000" in report.section("statistics").content
    assert "1 passed, 1 failed" in report.section("quality_control").content
    assert report.sections[-1].content == report.conclusion


def test_report_holds_snapshot(records):
    report = build_report(records, [], [])
    records[0].value = 99.0
    assert report.monitoring_data[0].value == 7.2


def test_unknown_template(records):
    with pytest.raises(ValueError):
        build_report(records, [], [], "fancy")


class TestConclusion:
    def test_good(self, records):
        qc = [calculate_parallel_deviation(7.2, 7.4)]
        text = generate_conclusion(records, qc)
        assert text.startswith(CONCLUSION_PREFIX)
        assert "good" in text

    def test_empty_inputs_are_good(self):
        assert "good" in generate_conclusion([], [])

    def test_acceptable(self):
        rs = [make_record(f"D{i}") for i in range(10)]
        rs[0].is_valid = False
        qc = [calculate_parallel_deviation(1.0, 1.0)] * 4 + [
            calculate_blank_result(1.0, 0.1)
        ]
        assert "acceptable" in generate_conclusion(rs, qc)

    def test_poor(self):
        rs = [make_record("D0"), make_record("D1")]
        rs[0].is_valid = False
        assert "re-check" in generate_conclusion(rs, [])


def test_report_round_trips_through_dict(records):
    stats = [describe([7.2, 7.4])]
    qc = [calculate_parallel_deviation(7.2, 7.4)]
    report = build_report(records, stats, qc)
    data = report.to_dict()
    assert data["template"] == "standard"
    restored = Report.from_dict(data)
    assert restored.sections == report.sections
    assert restored.conclusion == report.conclusion
    assert restored.statistics_results == report.statistics_results
    assert restored.qc_results == report.qc_results
    assert [r.id for r in restored.monitoring_data] == ["D0", "D1", "D2"]
    assert restored.generated_at == report.generated_at


def test_preview(records):
    assert preview_report(None) == ""
    text = preview_report(build_report(records, [], []))
    assert text.startswith(f"# {REPORT_TITLE}")
    assert "## Overview" in text
    assert "## Conclusion" in text
    assert "Template: standard" in text
