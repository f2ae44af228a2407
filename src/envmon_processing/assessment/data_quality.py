"""
Data-quality assessment of a set of monitoring records.

Four 0-100 sub-scores are combined into an overall score:
completeness (30 %), consistency (25 %), accuracy (30 %), timeliness (15 %).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional, Sequence

import pandas as pd

from envmon_processing.constants import REFERENCE_RANGES, REQUIRED_FIELDS, ReferenceRange
from envmon_processing.data.records import MonitoringDataRecord
from envmon_processing.processing.validation import is_number

WEIGHTS = {
    "completeness": 0.3,
    "consistency": 0.25,
    "accuracy": 0.3,
    "timeliness": 0.15,
}
RECOMMEND_BELOW = 80
UNIT_PENALTY = 10
DATE_STYLE_PENALTY = 5
TIMELINESS_BASE = 30
RECENT_WINDOW = pd.Timedelta(days=7)

RECOMMENDATIONS = {
    "completeness": "fill in the missing required fields",
    "consistency": "check that formats and units are consistent",
    "accuracy": "re-check values outside the reference range",
    "timeliness": "enter the latest monitoring data promptly",
}


@dataclass
class QualityIssue:
    type: str
    severity: str  # "low", "medium" or "high"
    description: str

    def to_dict(self) -> dict:
        return {"type": self.type, "severity": self.severity, "description": self.description}


@dataclass
class DataQualityAssessment:
    overall_score: int = 0
    completeness: int = 0
    consistency: int = 0
    accuracy: int = 0
    timeliness: int = 0
    issues: list[QualityIssue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "overallScore": self.overall_score,
            "completeness": self.completeness,
            "consistency": self.consistency,
            "accuracy": self.accuracy,
            "timeliness": self.timeliness,
            "issues": [i.to_dict() for i in self.issues],
            "recommendations": list(self.recommendations),
        }


def _percent(part: int, whole: int) -> int:
    return int(part / whole * 100 + 0.5)


def _is_filled(value) -> bool:
    return value is not None and value != ""


def _completeness(records: Sequence[MonitoringDataRecord], issues: list) -> int:
    filled = sum(
        1 for r in records for f in REQUIRED_FIELDS if _is_filled(getattr(r, f))
    )
    score = _percent(filled, len(records) * len(REQUIRED_FIELDS))
    if score < 100:
        issues.append(
            QualityIssue(
                "completeness",
                "high" if score < RECOMMEND_BELOW else "medium",
                f"completeness is {score}%, some required fields are missing",
            )
        )
    return score


def _consistency(records: Sequence[MonitoringDataRecord], issues: list) -> int:
    score = 100
    df = pd.DataFrame(
        {
            "parameter": [r.parameter for r in records],
            "unit": [r.unit for r in records],
        }
    )
    units = df[df["unit"] != ""].groupby("parameter", sort=False)["unit"].unique()
    for param, param_units in units.items():
        if len(param_units) > 1:
            score -= UNIT_PENALTY
            issues.append(
                QualityIssue(
                    "consistency",
                    "medium",
                    f"{param} uses several units: {', '.join(param_units)}",
                )
            )

    styles = {
        "slash" if "/" in r.measurement_date else "dash"
        for r in records
        if r.measurement_date
    }
    if len(styles) > 1:
        score -= DATE_STYLE_PENALTY
        issues.append(QualityIssue("consistency", "low", "date formats are inconsistent"))
    return max(0, score)


def _accuracy(
    records: Sequence[MonitoringDataRecord],
    issues: list,
    reference_ranges: Mapping[str, ReferenceRange],
) -> int:
    checked = [
        (float(r.value), reference_ranges[r.parameter])
        for r in records
        if r.parameter in reference_ranges and is_number(r.value)
    ]
    if not checked:
        return 100
    in_range = sum(1 for value, rng in checked if rng.contains(value))
    score = _percent(in_range, len(checked))
    if score < 100:
        issues.append(
            QualityIssue(
                "accuracy",
                "high" if score < RECOMMEND_BELOW else "medium",
                f"{len(checked) - in_range} record(s) outside the reference range",
            )
        )
    return score


def _timeliness(
    records: Sequence[MonitoringDataRecord], issues: list, now: pd.Timestamp
) -> int:
    dates = pd.to_datetime(
        pd.Series([r.measurement_date for r in records], dtype=object),
        errors="coerce",
        format="mixed",
    )
    recent = int(((now - dates) < RECENT_WINDOW).sum())
    share = _percent(recent, len(records))
    if share < 50:
        issues.append(
            QualityIssue(
                "timeliness", "medium", "most records are more than a week old"
            )
        )
    return min(100, share + TIMELINESS_BASE)


def assess_data_quality(
    records: Sequence[MonitoringDataRecord],
    *,
    now: Optional[datetime] = None,
    reference_ranges: Mapping[str, ReferenceRange] = REFERENCE_RANGES,
) -> DataQualityAssessment:
    """
    Score completeness, consistency, accuracy and timeliness of records.

    Args:
        records: Records to assess.
        now: Reference time for timeliness (defaults to the current time).
        reference_ranges: Parameter -> ReferenceRange used for accuracy.

    Returns:
        DataQualityAssessment; an empty input scores 0 everywhere with a
        single "no data" recommendation.
    """
    if not records:
        return DataQualityAssessment(recommendations=["no data to assess"])

    ts = pd.Timestamp(now) if now is not None else pd.Timestamp.now()
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)

    issues: list[QualityIssue] = []
    scores = {
        "completeness": _completeness(records, issues),
        "consistency": _consistency(records, issues),
        "accuracy": _accuracy(records, issues, reference_ranges),
        "timeliness": _timeliness(records, issues, ts),
    }
    overall = int(sum(scores[k] * w for k, w in WEIGHTS.items()) + 0.5)
    return DataQualityAssessment(
        overall_score=overall,
        issues=issues,
        recommendations=[
            RECOMMENDATIONS[k] for k, v in scores.items() if v < RECOMMEND_BELOW
        ],
        **scores,
    )
