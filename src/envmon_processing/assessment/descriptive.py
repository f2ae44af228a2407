"""
Descriptive statistics for monitoring values.

Computes mean, sample standard deviation, coefficient of variation
(CV = 100 * s / mean), median and linear-interpolated percentiles, plus
per-parameter aggregates ready for bar or box charts.
"""

from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np
import pandas as pd

from envmon_processing.assessment.outliers import percentile
from envmon_processing.data.records import MonitoringDataRecord
from envmon_processing.processing.validation import is_number

CHART_TYPES = ("bar", "boxplot")
BAR_DATASET_LABEL = "Measured value"


@dataclass(frozen=True)
class StatisticsResult:
    """Immutable snapshot of one statistics computation."""

    method: str
    data_count: int
    mean: float
    standard_deviation: float
    coefficient_of_variation: float  # percent
    min: float
    max: float
    median: float
    percentiles: dict = field(
        default_factory=lambda: {"p25": 0.0, "p75": 0.0, "p90": 0.0, "p95": 0.0}
    )
    chart_data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "dataCount": self.data_count,
            "mean": self.mean,
            "standardDeviation": self.standard_deviation,
            "coefficientOfVariation": self.coefficient_of_variation,
            "min": self.min,
            "max": self.max,
            "median": self.median,
            "percentiles": dict(self.percentiles),
            "chartData": self.chart_data,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StatisticsResult":
        return cls(
            method=data.get("method", "descriptive"),
            data_count=int(data.get("dataCount", 0)),
            mean=data.get("mean", 0.0),
            standard_deviation=data.get("standardDeviation", 0.0),
            coefficient_of_variation=data.get("coefficientOfVariation", 0.0),
            min=data.get("min", 0.0),
            max=data.get("max", 0.0),
            median=data.get("median", 0.0),
            percentiles=dict(data.get("percentiles") or {}),
            chart_data=data.get("chartData") or {},
        )


def _as_array(values: Sequence[float] | np.ndarray | pd.Series) -> np.ndarray:
    vals = np.asarray(values, dtype=float)
    return vals[np.isfinite(vals)]


def mean(values: Sequence[float] | np.ndarray | pd.Series) -> float:
    """Arithmetic mean; 0 for empty input."""
    vals = _as_array(values)
    if len(vals) == 0:
        return 0.0
    return float(np.mean(vals))


def standard_deviation(values: Sequence[float] | np.ndarray | pd.Series) -> float:
    """Sample standard deviation (divisor n-1); 0 for fewer than 2 values."""
    vals = _as_array(values)
    if len(vals) < 2:
        return 0.0
    return float(np.std(vals, ddof=1))


def coefficient_of_variation(values: Sequence[float] | np.ndarray | pd.Series) -> float:
    """
    CV = 100 * s / mean, in percent. Returns 0 if the mean is 0.

    The sign follows the mean.
    """
    mu = mean(values)
    if mu == 0:
        return 0.0
    return standard_deviation(values) / mu * 100


def median(values: Sequence[float] | np.ndarray | pd.Series) -> float:
    return percentile(values, 50)


def empty_result(method: str = "descriptive") -> StatisticsResult:
    """All-zero result for an empty selection."""
    return StatisticsResult(
        method=method,
        data_count=0,
        mean=0.0,
        standard_deviation=0.0,
        coefficient_of_variation=0.0,
        min=0.0,
        max=0.0,
        median=0.0,
        chart_data={"type": "bar", "labels": [], "datasets": []},
    )


def describe(
    values: Sequence[float] | np.ndarray | pd.Series,
    *,
    method: str = "descriptive",
    chart_data: dict | None = None,
) -> StatisticsResult:
    """
    Summarize a list of values into a StatisticsResult.

    Mean and median are clamped into [min, max] so floating-point rounding
    cannot break ``min <= median <= max`` or ``min <= mean <= max``.
    """
    vals = _as_array(values)
    if len(vals) == 0:
        return empty_result(method)

    vmin = float(np.min(vals))
    vmax = float(np.max(vals))
    return StatisticsResult(
        method=method,
        data_count=int(len(vals)),
        mean=float(np.clip(mean(vals), vmin, vmax)),
        standard_deviation=standard_deviation(vals),
        coefficient_of_variation=coefficient_of_variation(vals),
        min=vmin,
        max=vmax,
        median=float(np.clip(median(vals), vmin, vmax)),
        percentiles={
            "p25": percentile(vals, 25),
            "p75": percentile(vals, 75),
            "p90": percentile(vals, 90),
            "p95": percentile(vals, 95),
        },
        chart_data=chart_data if chart_data is not None else {},
    )


def _numeric_frame(records: Sequence[MonitoringDataRecord]) -> pd.DataFrame:
    rows = [
        (r.parameter, float(r.value)) for r in records if is_number(r.value)
    ]
    return pd.DataFrame(rows, columns=["parameter", "value"])


def build_chart_data(
    records: Sequence[MonitoringDataRecord],
    chart_type: str = "bar",
) -> dict[str, Any]:
    """
    Group numeric values by parameter for charting.

    Args:
        records: Records to aggregate; non-numeric values are skipped.
        chart_type: "bar" for one dataset of per-parameter means, "boxplot"
            for per-parameter five-number summaries.

    Returns:
        ``{"type", "labels", "datasets"}``. Labels keep first-appearance order.

    Raises:
        ValueError: If chart_type is unknown.
    """
    if chart_type not in CHART_TYPES:
        raise ValueError(f"chart_type must be one of {CHART_TYPES}, got '{chart_type}'")

    df = _numeric_frame(records)
    chart = {"type": chart_type, "labels": [], "datasets": []}
    if df.empty:
        return chart

    grouped = df.groupby("parameter", sort=False)["value"]
    labels = [str(p) for p in pd.unique(df["parameter"])]
    chart["labels"] = labels

    if chart_type == "bar":
        means = grouped.mean()
        chart["datasets"] = [
            {"label": BAR_DATASET_LABEL, "data": [float(means[p]) for p in labels]}
        ]
    else:
        chart["datasets"] = [
            {
                "label": p,
                "min": float(grouped.get_group(p).min()),
                "q1": percentile(grouped.get_group(p), 25),
                "median": percentile(grouped.get_group(p), 50),
                "q3": percentile(grouped.get_group(p), 75),
                "max": float(grouped.get_group(p).max()),
            }
            for p in labels
        ]
    return chart
