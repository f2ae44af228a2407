"""
Trend prediction for one monitored parameter.

Fits value ~ measurement time by least squares and projects a few sampling
intervals ahead, with a 95 % band from the residual spread. The time axis is
measured in days since the first measurement.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from envmon_processing.data.records import MonitoringDataRecord
from envmon_processing.processing.validation import is_number

MIN_POINTS = 3
STABLE_RELATIVE_SLOPE = 0.01
MAX_CONFIDENCE = 0.95
MIN_STEP_CONFIDENCE = 0.5
STEP_CONFIDENCE_DECAY = 0.1
Z_95 = 1.96
OSCILLATION_MIN_POINTS = 6
OSCILLATION_RATIO = 0.6


@dataclass
class PredictedPoint:
    timestamp: pd.Timestamp
    value: float
    lower_bound: float
    upper_bound: float
    confidence: float

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "value": self.value,
            "lowerBound": self.lower_bound,
            "upperBound": self.upper_bound,
            "confidence": self.confidence,
        }


@dataclass
class TrendPrediction:
    """Result of predict_trend; slope is in value units per day."""

    parameter: str = ""
    historical: list[tuple[pd.Timestamp, float]] = field(default_factory=list)
    predicted_values: list[PredictedPoint] = field(default_factory=list)
    confidence: float = 0.0
    trend_direction: str = "stable"  # "stable", "increasing", "decreasing"
    seasonal_pattern: Optional[dict] = None
    slope: float = 0.0
    r_squared: float = 0.0

    def to_dict(self) -> dict:
        return {
            "parameter": self.parameter,
            "historicalData": [
                {"timestamp": ts.isoformat(), "value": v} for ts, v in self.historical
            ],
            "predictedValues": [p.to_dict() for p in self.predicted_values],
            "confidence": self.confidence,
            "trendDirection": self.trend_direction,
            "seasonalPattern": self.seasonal_pattern,
            "slope": self.slope,
            "rSquared": self.r_squared,
        }


def time_series(records: Sequence[MonitoringDataRecord]) -> pd.DataFrame:
    """
    Numeric records as a time-sorted frame with columns ``timestamp, value``.

    Date and time are combined; records whose date does not parse are dropped.
    """
    rows = [
        (f"{r.measurement_date} {r.measurement_time}".strip(), float(r.value))
        for r in records
        if is_number(r.value) and r.measurement_date
    ]
    df = pd.DataFrame(rows, columns=["when", "value"])
    df["timestamp"] = pd.to_datetime(df["when"], errors="coerce", format="mixed")
    df = df.dropna(subset=["timestamp"]).sort_values("timestamp", kind="stable")
    return df[["timestamp", "value"]].reset_index(drop=True)


def trend_direction(slope: float, values: np.ndarray) -> str:
    """Stable when |slope / mean| < 1 %, else the sign of the slope."""
    mu = float(np.mean(values))
    relative = abs(slope / mu) if mu != 0 else abs(slope)
    if relative < STABLE_RELATIVE_SLOPE:
        return "stable"
    return "increasing" if slope > 0 else "decreasing"


def detect_oscillation(values: np.ndarray) -> Optional[dict]:
    """Flag alternating series: more than 60 % of successive differences flip sign."""
    if len(values) < OSCILLATION_MIN_POINTS:
        return None
    diffs = np.diff(values)
    sign_changes = int(np.sum(diffs[1:] * diffs[:-1] < 0))
    if sign_changes / (len(diffs) - 1) > OSCILLATION_RATIO:
        return {"type": "oscillating", "period": 2}
    return None


def predict_trend(
    records: Sequence[MonitoringDataRecord],
    periods: int = 3,
) -> TrendPrediction:
    """
    Project a parameter's values ``periods`` sampling intervals ahead.

    Args:
        records: Records of a single parameter. Non-numeric or undated ones
            are skipped.
        periods: Number of future points to predict.

    Returns:
        TrendPrediction. Fewer than 3 usable points give an empty, "stable"
        prediction.

    Raises:
        ValueError: If periods is negative.
    """
    if periods < 0:
        raise ValueError(f"periods must be >= 0, got {periods}")

    series = time_series(records)
    if len(series) < MIN_POINTS:
        return TrendPrediction()

    timestamps = series["timestamp"]
    y = series["value"].to_numpy(dtype=float)
    x = ((timestamps - timestamps.iloc[0]) / pd.Timedelta(days=1)).to_numpy(dtype=float)
    if np.ptp(x) == 0:
        # All measured at the same instant: fall back to one day per sample
        x = np.arange(len(y), dtype=float)

    res = stats.linregress(x, y)
    slope = float(res.slope)
    intercept = float(res.intercept)
    r_squared = float(res.rvalue**2) if np.isfinite(res.rvalue) else 0.0
    confidence = min(MAX_CONFIDENCE, r_squared)

    residuals = y - (slope * x + intercept)
    residual_std = float(np.sqrt(np.mean(residuals**2)))
    margin = Z_95 * residual_std * np.sqrt(1 + 1 / len(y))
    interval = (x[-1] - x[0]) / (len(x) - 1)

    predicted = []
    for i in range(1, periods + 1):
        future_x = x[-1] + interval * i
        value = slope * future_x + intercept
        predicted.append(
            PredictedPoint(
                timestamp=timestamps.iloc[0] + pd.Timedelta(days=future_x),
                value=value,
                lower_bound=value - margin,
                upper_bound=value + margin,
                confidence=max(MIN_STEP_CONFIDENCE, confidence - i * STEP_CONFIDENCE_DECAY),
            )
        )

    parameters = [r.parameter for r in records if r.parameter]
    return TrendPrediction(
        parameter=parameters[0] if parameters else "",
        historical=list(zip(timestamps, y.tolist())),
        predicted_values=predicted,
        confidence=confidence,
        trend_direction=trend_direction(slope, y),
        seasonal_pattern=detect_oscillation(y),
        slope=slope,
        r_squared=r_squared,
    )
