"""
Five-dimension performance score for a processing session.

Each dimension (data entry, data review, statistics, quality control, report)
scores 0-20; the total is their plain sum. Recorded operation errors are
returned alongside as feedback with their deductions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from envmon_processing.constants import (
    DIMENSION_MAX_SCORE,
    LOW_DIMENSION_SCORE,
    DataStatus,
)

if TYPE_CHECKING:
    from envmon_processing.session import ProcessingState


class Grade(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    PASS = "pass"
    FAIL = "fail"


# Lower bound of each grade, highest first
GRADE_THRESHOLDS = [
    (90, Grade.EXCELLENT),
    (80, Grade.GOOD),
    (60, Grade.PASS),
]

DIMENSIONS = ("data_entry", "data_review", "statistics", "quality_control", "report")

DIMENSION_SUGGESTIONS = {
    "data_entry": "improve data entry: check field formats and value ranges",
    "data_review": "review every pending record before moving on",
    "statistics": "run a statistical analysis of the approved data",
    "quality_control": "strengthen quality control so QC samples pass",
    "report": "generate the processing report",
}

_CAMEL = {
    "data_entry": "dataEntry",
    "data_review": "dataReview",
    "statistics": "statistics",
    "quality_control": "qualityControl",
    "report": "report",
}


@dataclass
class ScoreDimension:
    score: int = 0
    max_score: int = DIMENSION_MAX_SCORE
    details: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "maxScore": self.max_score,
            "details": list(self.details),
        }


@dataclass
class Score:
    total_score: int
    dimensions: dict[str, ScoreDimension]
    grade: Grade
    suggestions: list[str] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "totalScore": self.total_score,
            "dimensions": {
                _CAMEL[name]: dim.to_dict() for name, dim in self.dimensions.items()
            },
            "grade": self.grade.value,
            "suggestions": list(self.suggestions),
            "errors": [dict(e) for e in self.errors],
        }


def grade_for(total_score: float) -> Grade:
    """Map a 0-100 total onto its grade bucket."""
    for lower, grade in GRADE_THRESHOLDS:
        if total_score >= lower:
            return grade
    return Grade.FAIL


def _ratio_score(part: int, whole: int) -> int:
    # Python's round() is banker's rounding; scores round half up
    return int(DIMENSION_MAX_SCORE * part / whole + 0.5)


def calculate_score(state: "ProcessingState") -> Score:
    """
    Derive the score fresh from the current session state.

    Args:
        state: Session state with monitoring data, statistics and QC results,
            report slot and recorded errors.

    Returns:
        Score with all five dimensions populated, grade and suggestions (one
        per dimension scoring below 15).
    """
    dims = {name: ScoreDimension() for name in DIMENSIONS}
    records = state.monitoring_data
    total = len(records)

    if total:
        valid = sum(1 for r in records if r.is_valid)
        dims["data_entry"].score = _ratio_score(valid, total)
        dims["data_entry"].details.append(f"valid records: {valid}/{total}")

        reviewed = sum(1 for r in records if r.status != DataStatus.PENDING)
        dims["data_review"].score = _ratio_score(reviewed, total)
        dims["data_review"].details.append(f"reviewed records: {reviewed}/{total}")

    if state.statistics_results:
        dims["statistics"].score = DIMENSION_MAX_SCORE
        dims["statistics"].details.append(
            f"statistical analyses run: {len(state.statistics_results)}"
        )

    qc_total = len(state.qc_results)
    if qc_total:
        qc_passed = sum(1 for r in state.qc_results if r.passed)
        dims["quality_control"].score = _ratio_score(qc_passed, qc_total)
        dims["quality_control"].details.append(f"QC passed: {qc_passed}/{qc_total}")

    if state.report_data is not None:
        dims["report"].score = DIMENSION_MAX_SCORE
        dims["report"].details.append("report generated")

    total_score = sum(d.score for d in dims.values())
    suggestions = [
        DIMENSION_SUGGESTIONS[name]
        for name, dim in dims.items()
        if dim.score < LOW_DIMENSION_SCORE
    ]
    errors = [
        {
            "step": e.phase,
            "description": e.description,
            "deduction": e.deduction,
            "standardReference": e.standard_reference,
        }
        for e in state.errors
    ]
    return Score(
        total_score=total_score,
        dimensions=dims,
        grade=grade_for(total_score),
        suggestions=suggestions,
        errors=errors,
    )
