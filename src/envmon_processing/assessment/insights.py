"""
Plain-language insights over a processing session's state.

Five checks run in a fixed order, each adding at most one insight (the trend
check adds one per parameter): a data overview, screened anomalies, failed
QC checks, clear per-parameter trends, and a low data-quality score.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Mapping, Optional

from envmon_processing.assessment.data_quality import assess_data_quality
from envmon_processing.assessment.outliers import screen_anomalies
from envmon_processing.assessment.trend import predict_trend
from envmon_processing.constants import REFERENCE_RANGES, ReferenceRange

if TYPE_CHECKING:
    from envmon_processing.session import ProcessingState


class InsightType(str, Enum):
    INFO = "info"
    ANOMALY = "anomaly"
    QUALITY = "quality"
    TREND = "trend"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


# Anomalies above this share of the records raise a warning
ANOMALY_WARNING_SHARE = 0.1
TREND_MIN_RECORDS = 5
TREND_MIN_CONFIDENCE = 0.6
QUALITY_WARNING_BELOW = 80
QUALITY_CRITICAL_BELOW = 60

ANOMALY_ACTIONS = [
    "check the flagged values in the data review phase",
    "verify the sampling and analysis procedure",
]
TREND_ACTIONS = [
    "keep monitoring this parameter",
    "look into the factors driving the change",
]
QUALITY_FALLBACK = "improve the data entry procedure"


@dataclass
class Insight:
    id: str
    type: InsightType
    title: str
    description: str
    severity: Severity = Severity.INFO
    related_data_ids: list[str] = field(default_factory=list)
    suggested_actions: list[str] = field(default_factory=list)
    confidence: float = 1.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "relatedDataIds": list(self.related_data_ids),
            "suggestedActions": list(self.suggested_actions),
            "confidence": self.confidence,
        }


def generate_insights(
    state: Optional["ProcessingState"],
    *,
    sensitivity: float = 0.5,
    now: Optional[datetime] = None,
    reference_ranges: Mapping[str, ReferenceRange] = REFERENCE_RANGES,
) -> list[Insight]:
    """
    Summarize what stands out in the session state.

    Args:
        state: Session state; None gives no insights.
        sensitivity: Passed to screen_anomalies.
        now: Reference time for the data-quality timeliness score.
        reference_ranges: Parameter -> ReferenceRange for screening and
            accuracy.

    Returns:
        Insights in check order: overview, anomalies, QC, trends (one per
        parameter with at least five records and a non-stable trend above
        60 % confidence), data quality (overall score below 80).
    """
    if state is None:
        return []

    records = state.monitoring_data
    insights = []

    if records:
        parameters = {r.parameter for r in records}
        insights.append(
            Insight(
                id="insight-overview",
                type=InsightType.INFO,
                title="Data overview",
                description=(
                    f"{len(records)} monitoring record(s) covering "
                    f"{len(parameters)} parameter(s)"
                ),
            )
        )

    flagged = [
        a.data_id
        for a in screen_anomalies(
            records, sensitivity, reference_ranges=reference_ranges
        )
        if a.is_anomaly
    ]
    if flagged:
        insights.append(
            Insight(
                id="insight-anomaly",
                type=InsightType.ANOMALY,
                title="Possible anomalies",
                description=f"{len(flagged)} record(s) may be anomalous and should be reviewed",
                severity=(
                    Severity.WARNING
                    if len(flagged) > len(records) * ANOMALY_WARNING_SHARE
                    else Severity.INFO
                ),
                related_data_ids=flagged,
                suggested_actions=list(ANOMALY_ACTIONS),
                confidence=0.85,
            )
        )

    failed_qc = [q for q in state.qc_results if not q.passed]
    if failed_qc:
        insights.append(
            Insight(
                id="insight-qc",
                type=InsightType.QUALITY,
                title="Quality control problems",
                description=(
                    f"{len(failed_qc)} QC check(s) failed; data reliability "
                    "may be affected"
                ),
                severity=Severity.WARNING,
                suggested_actions=[s for q in failed_qc for s in q.suggestions],
                confidence=0.9,
            )
        )

    by_param: dict[str, list] = {}
    for r in records:
        by_param.setdefault(r.parameter, []).append(r)
    for param, group in by_param.items():
        if len(group) < TREND_MIN_RECORDS:
            continue
        trend = predict_trend(group, periods=1)
        if trend.trend_direction == "stable" or trend.confidence <= TREND_MIN_CONFIDENCE:
            continue
        insights.append(
            Insight(
                id=f"insight-trend-{param}",
                type=InsightType.TREND,
                title=f"{param} trend",
                description=(
                    f"{param} is {trend.trend_direction}, confidence "
                    f"{int(trend.confidence * 100 + 0.5)}%"
                ),
                related_data_ids=[r.id for r in group],
                suggested_actions=list(TREND_ACTIONS),
                confidence=trend.confidence,
            )
        )

    quality = assess_data_quality(records, now=now, reference_ranges=reference_ranges)
    if quality.overall_score < QUALITY_WARNING_BELOW:
        first = quality.recommendations[0] if quality.recommendations else QUALITY_FALLBACK
        insights.append(
            Insight(
                id="insight-quality",
                type=InsightType.QUALITY,
                title="Data quality needs attention",
                description=f"data quality score {quality.overall_score}: {first}",
                severity=(
                    Severity.CRITICAL
                    if quality.overall_score < QUALITY_CRITICAL_BELOW
                    else Severity.WARNING
                ),
                suggested_actions=list(quality.recommendations),
                confidence=0.9,
            )
        )

    return insights
