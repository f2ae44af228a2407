"""
Processing report assembly.

Builds a structured Report from the session's records, statistics and QC
results. Rendering to PDF or Word is left to downstream consumers of
``Report.to_dict()``; ``preview_report`` gives a Markdown rendering.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence

from envmon_processing.assessment.descriptive import StatisticsResult
from envmon_processing.assessment.quality_control import QCResult
from envmon_processing.constants import DataStatus
from envmon_processing.data.records import (
    MonitoringDataRecord,
    from_iso,
    new_id,
    to_iso,
    utc_now,
)

REPORT_TITLE = "Environmental Monitoring Data Processing Report"

CONCLUSION_PREFIX = "Based on this processing run: "
CONCLUSION_GOOD = (
    "all records passed validation and all QC checks passed; data quality is good."
)
CONCLUSION_ACCEPTABLE = (
    "most records passed validation and QC is largely acceptable; "
    "data quality is acceptable."
)
CONCLUSION_POOR = (
    "some records have problems; re-check them or re-sample and re-analyse."
)
ACCEPTABLE_VALID_RATIO = 0.9
ACCEPTABLE_QC_RATIO = 0.8


class ReportTemplate(str, Enum):
    STANDARD = "standard"
    SUMMARY = "summary"
    DETAILED = "detailed"


@dataclass(frozen=True)
class ReportSection:
    id: str
    title: str
    content: str

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict) -> "ReportSection":
        return cls(id=data["id"], title=data["title"], content=data["content"])


@dataclass
class Report:
    """Report snapshot; the embedded lists are copies taken at generation time."""

    id: str
    title: str
    template: ReportTemplate
    sections: list[ReportSection]
    monitoring_data: list[MonitoringDataRecord]
    statistics_results: list[StatisticsResult]
    qc_results: list[QCResult]
    conclusion: str
    generated_at: datetime = field(default_factory=utc_now)

    def section(self, section_id: str) -> Optional[ReportSection]:
        return next((s for s in self.sections if s.id == section_id), None)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "template": self.template.value,
            "sections": [s.to_dict() for s in self.sections],
            "monitoringData": [r.to_dict() for r in self.monitoring_data],
            "statisticsResults": [s.to_dict() for s in self.statistics_results],
            "qcResults": [q.to_dict() for q in self.qc_results],
            "conclusion": self.conclusion,
            "generatedAt": to_iso(self.generated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Report":
        return cls(
            id=data["id"],
            title=data.get("title", REPORT_TITLE),
            template=ReportTemplate(data.get("template", "standard")),
            sections=[ReportSection.from_dict(s) for s in data.get("sections", [])],
            monitoring_data=[
                MonitoringDataRecord.from_dict(r) for r in data.get("monitoringData", [])
            ],
            statistics_results=[
                StatisticsResult.from_dict(s) for s in data.get("statisticsResults", [])
            ],
            qc_results=[QCResult.from_dict(q) for q in data.get("qcResults", [])],
            conclusion=data.get("conclusion", ""),
            generated_at=from_iso(data.get("generatedAt")) or utc_now(),
        )


def _ratio(part: int, whole: int) -> float:
    return part / whole if whole else 0.0


def generate_conclusion(
    monitoring_data: Sequence[MonitoringDataRecord],
    qc_results: Sequence[QCResult],
) -> str:
    """Fixed-wording conclusion from the validity and QC pass ratios."""
    total = len(monitoring_data)
    valid = sum(1 for r in monitoring_data if r.is_valid)
    qc_total = len(qc_results)
    qc_passed = sum(1 for q in qc_results if q.passed)

    if valid == total and qc_passed == qc_total:
        verdict = CONCLUSION_GOOD
    elif (
        _ratio(valid, total) >= ACCEPTABLE_VALID_RATIO
        and _ratio(qc_passed, qc_total) >= ACCEPTABLE_QC_RATIO
    ):
        verdict = CONCLUSION_ACCEPTABLE
    else:
        verdict = CONCLUSION_POOR
    return CONCLUSION_PREFIX + verdict


def _build_sections(
    records: Sequence[MonitoringDataRecord],
    statistics_results: Sequence[StatisticsResult],
    qc_results: Sequence[QCResult],
    conclusion: str,
) -> list[ReportSection]:
    n_params = len({r.parameter for r in records})
    approved = sum(1 for r in records if r.status == DataStatus.APPROVED)
    rejected = sum(1 for r in records if r.status == DataStatus.REJECTED)

    sections = [
        ReportSection(
            "overview",
            "Overview",
            f"This report covers {len(records)} monitoring record(s) "
            f"across {n_params} parameter(s).",
        ),
        ReportSection(
            "data_summary",
            "Data Summary",
            f"{len(records)} record(s) entered, {approved} approved, "
            f"{rejected} rejected.",
        ),
    ]
    if statistics_results:
        latest = statistics_results[-1]
        sections.append(
            ReportSection(
                "statistics",
                "Statistical Analysis",
                f"mean={latest.mean:.4f}, "
                f"standard deviation={latest.standard_deviation:.4f}, "
                f"CV={latest.coefficient_of_variation:.2f}%.",
            )
        )
    if qc_results:
        passed = sum(1 for q in qc_results if q.passed)
        sections.append(
            ReportSection(
                "quality_control",
                "Quality Control",
                f"{len(qc_results)} QC check(s) run: {passed} passed, "
                f"{len(qc_results) - passed} failed.",
            )
        )
    sections.append(ReportSection("conclusion", "Conclusion", conclusion))
    return sections


def build_report(
    monitoring_data: Sequence[MonitoringDataRecord],
    statistics_results: Sequence[StatisticsResult],
    qc_results: Sequence[QCResult],
    template: ReportTemplate | str = ReportTemplate.STANDARD,
) -> Report:
    """
    Assemble a report from the current session contents.

    Args:
        monitoring_data: All records, in entry order.
        statistics_results: Statistics log; the last entry is reported.
        qc_results: QC log.
        template: "standard", "summary" or "detailed".

    Returns:
        Report with sections overview, data_summary, statistics (if any
        statistics exist), quality_control (if any QC exists) and conclusion.

    Raises:
        ValueError: If template is unknown.
    """
    template = ReportTemplate(template)
    records = [copy.deepcopy(r) for r in monitoring_data]
    conclusion = generate_conclusion(records, qc_results)
    return Report(
        id=new_id("RPT"),
        title=REPORT_TITLE,
        template=template,
        sections=_build_sections(records, statistics_results, qc_results, conclusion),
        monitoring_data=records,
        statistics_results=list(statistics_results),
        qc_results=list(qc_results),
        conclusion=conclusion,
    )


def preview_report(report: Optional[Report]) -> str:
    """Markdown rendering of a report; empty string when there is none."""
    if report is None:
        return ""
    lines = [
        f"# {report.title}",
        "",
        f"Generated: {report.generated_at:%Y-%m-%d %H:%M:%S} UTC",
        f"Template: {report.template.value}",
        "",
    ]
    for section in report.sections:
        lines += [f"## {section.title}", "", section.content, ""]
    return "\n".join(lines)
