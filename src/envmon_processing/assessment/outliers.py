"""
Anomaly detection for monitoring measurements.

Three independent rules flag suspect values: the parameter's hard reference
range, the IQR boxplot rule and a population z-score, the latter two computed
within the cohort of same-parameter records. With ``method="all"`` the rules
are tried in that order and the first match wins.

``screen_anomalies`` is the sensitivity-driven variant used for insights:
thresholds tighten as sensitivity rises, confidence grows with the size of
the excess, and a fourth rule flags a value that breaks from the moving
window of the measurements taken just before it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from envmon_processing.config import DetectionConfig
from envmon_processing.constants import REFERENCE_RANGES, ReferenceRange
from envmon_processing.data.records import MonitoringDataRecord, range_to_dict
from envmon_processing.processing.validation import is_number


class AnomalyMethod(str, Enum):
    RANGE = "range"
    IQR = "iqr"
    ZSCORE = "zscore"
    ALL = "all"


class AnomalyType(str, Enum):
    RANGE_EXCEEDED = "range_exceeded"
    OUTLIER = "outlier"
    TREND_BREAK = "trend_break"


RANGE_CONFIDENCE = 0.9
IQR_CONFIDENCE = 0.85
ZSCORE_CONFIDENCE = 0.95


@dataclass
class AnomalyResult:
    """Outcome of anomaly detection for one record."""

    data_id: str
    is_anomaly: bool = False
    anomaly_type: Optional[AnomalyType] = None
    confidence: float = 0.0
    explanation: str = ""
    reference_range: Optional[ReferenceRange] = None
    suggested_action: str = ""

    def to_dict(self) -> dict:
        return {
            "dataId": self.data_id,
            "isAnomaly": self.is_anomaly,
            "anomalyType": self.anomaly_type.value if self.anomaly_type else None,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "referenceRange": range_to_dict(self.reference_range),
            "suggestedAction": self.suggested_action,
        }


def percentile(values: np.ndarray | pd.Series | Sequence[float], q: float) -> float:
    """
    Linear-interpolated percentile of finite values (0 for empty input).

    Index ``q/100 * (n-1)`` on the sorted values, interpolating between the
    neighbouring order statistics.
    """
    vals = np.asarray(values, dtype=float)
    vals = vals[np.isfinite(vals)]
    if len(vals) == 0:
        return 0.0
    return float(np.percentile(vals, q, method="linear"))


def iqr_bounds(
    values: np.ndarray | pd.Series | Sequence[float],
    *,
    whis: float = 1.5,
) -> tuple[float, float]:
    """Return ``(Q1 - whis*IQR, Q3 + whis*IQR)`` for the finite values."""
    q1 = percentile(values, 25)
    q3 = percentile(values, 75)
    iqr = q3 - q1
    return q1 - whis * iqr, q3 + whis * iqr


def zscore_bounds(
    values: np.ndarray | pd.Series | Sequence[float],
    *,
    threshold: float = 3.0,
) -> Optional[tuple[float, float, float, float]]:
    """
    Return ``(mean, std, lower, upper)`` using the population std (ddof=0).

    None when there are no finite values or the std is zero.
    """
    vals = np.asarray(values, dtype=float)
    vals = vals[np.isfinite(vals)]
    if len(vals) == 0:
        return None
    mu = float(np.mean(vals))
    sigma = float(np.std(vals))
    if sigma <= 0:
        return None
    return mu, sigma, mu - threshold * sigma, mu + threshold * sigma


def detect_outliers_iqr(
    values: np.ndarray | pd.Series,
    *,
    whis: float = 1.5,
) -> np.ndarray:
    """
    Identify outliers using the interquartile range (IQR) method.

    Outliers are points outside [Q1 - whis*IQR, Q3 + whis*IQR]. A zero IQR
    still applies: every value away from the quartiles is flagged.

    Returns:
        Boolean array: True for outliers. NaN values are never outliers.
    """
    vals = np.asarray(values, dtype=float)
    mask_valid = np.isfinite(vals)
    result = np.zeros(len(vals), dtype=bool)
    if not mask_valid.any():
        return result

    lower, upper = iqr_bounds(vals, whis=whis)
    result[mask_valid] = (vals[mask_valid] < lower) | (vals[mask_valid] > upper)
    return result


def detect_outliers_zscore(
    values: np.ndarray | pd.Series,
    *,
    threshold: float = 3.0,
) -> np.ndarray:
    """
    Identify outliers using Z-score (population standard deviation).

    Outliers are points with |z| > threshold. A constant series has no
    outliers.

    Returns:
        Boolean array: True for outliers. NaN values are never outliers.
    """
    vals = np.asarray(values, dtype=float)
    mask_valid = np.isfinite(vals)
    result = np.zeros(len(vals), dtype=bool)

    bounds = zscore_bounds(vals, threshold=threshold)
    if bounds is None:
        return result

    mu, sigma, _, _ = bounds
    z = np.abs(vals[mask_valid] - mu) / sigma
    result[mask_valid] = z > threshold
    return result


def _cohort_values(records: Sequence[MonitoringDataRecord]) -> dict[str, np.ndarray]:
    """Numeric values per parameter, in record order."""
    cohorts: dict[str, list[float]] = {}
    for r in records:
        if is_number(r.value):
            cohorts.setdefault(r.parameter, []).append(float(r.value))
    return {p: np.asarray(v, dtype=float) for p, v in cohorts.items()}


def detect_anomalies(
    records: Sequence[MonitoringDataRecord],
    method: AnomalyMethod | str = AnomalyMethod.RANGE,
    *,
    config: Optional[DetectionConfig] = None,
) -> list[AnomalyResult]:
    """
    Flag suspect measurements.

    Args:
        records: Records to screen; they also form the IQR/z-score cohorts.
        method: "range", "iqr", "zscore" or "all".
        config: Thresholds, minimum cohort sizes and reference ranges.

    Returns:
        One AnomalyResult per record, in input order. Records without a
        numeric value are never flagged.

    Raises:
        ValueError: If method is unknown.
    """
    method = AnomalyMethod(method)
    config = config or DetectionConfig()
    use_range = method in (AnomalyMethod.RANGE, AnomalyMethod.ALL)
    use_iqr = method in (AnomalyMethod.IQR, AnomalyMethod.ALL)
    use_z = method in (AnomalyMethod.ZSCORE, AnomalyMethod.ALL)

    cohorts = _cohort_values(records)
    iqr_cache: dict[str, Optional[tuple[float, float]]] = {}
    z_cache: dict[str, Optional[tuple[float, float, float, float]]] = {}

    results = []
    for record in records:
        result = AnomalyResult(data_id=record.id)
        results.append(result)
        if not is_number(record.value):
            continue
        value = float(record.value)
        param = record.parameter
        cohort = cohorts.get(param, np.empty(0))
        thresholds = config.thresholds_for(param)

        if use_range:
            rng = config.reference_ranges.get(param)
            if rng is not None and not rng.contains(value):
                result.is_anomaly = True
                result.anomaly_type = AnomalyType.RANGE_EXCEEDED
                result.confidence = RANGE_CONFIDENCE
                result.explanation = (
                    f"{param} value ({value}) is outside the reference range "
                    f"({rng.min}-{rng.max})"
                )
                result.reference_range = rng
                continue

        if use_iqr and len(cohort) >= config.iqr_min_points:
            if param not in iqr_cache:
                iqr_cache[param] = iqr_bounds(cohort, whis=thresholds.iqr_whis)
            lower, upper = iqr_cache[param]
            if value < lower or value > upper:
                result.is_anomaly = True
                result.anomaly_type = AnomalyType.OUTLIER
                result.confidence = IQR_CONFIDENCE
                result.explanation = (
                    f"{param} value ({value}) is a statistical outlier (IQR method)"
                )
                result.reference_range = ReferenceRange(lower, upper)
                continue

        if use_z and len(cohort) >= config.zscore_min_points:
            if param not in z_cache:
                z_cache[param] = zscore_bounds(
                    cohort, threshold=thresholds.zscore_threshold
                )
            bounds = z_cache[param]
            if bounds is not None:
                mu, sigma, lower, upper = bounds
                z = abs(value - mu) / sigma
                if z > thresholds.zscore_threshold:
                    result.is_anomaly = True
                    result.anomaly_type = AnomalyType.OUTLIER
                    result.confidence = ZSCORE_CONFIDENCE
                    result.explanation = (
                        f"{param} value ({value}) has Z-score={z:.2f}, beyond "
                        f"{thresholds.zscore_threshold:g} standard deviations"
                    )
                    result.reference_range = ReferenceRange(lower, upper)

    return results


# Sensitivity-driven screening
TREND_WINDOW = 3
TREND_MIN_POINTS = 5
SCREEN_ZSCORE_MIN_POINTS = 3
SCREEN_IQR_MIN_POINTS = 4
TREND_BREAK_MAX_CONFIDENCE = 0.9
SCREEN_MAX_CONFIDENCE = 0.95

RANGE_ACTION_SEVERE = "re-sample or check the instrument calibration"
RANGE_ACTION = "verify the value or mark it as an outlier"
ZSCORE_ACTION = "check the sampling and analysis of this measurement"
IQR_ACTION = "compare with neighbouring measurements"
TREND_BREAK_ACTION = (
    "check for an environmental change or a change in sampling conditions"
)


def trend_break_deviation(
    previous: np.ndarray | Sequence[float],
    value: float,
) -> Optional[tuple[float, float]]:
    """
    Distance of ``value`` from the moving window before it, in window stds.

    The window is the last three earlier values (population std). Returns
    ``(deviation, window_mean)``, or None with fewer than two earlier values
    or a flat window.
    """
    window = np.asarray(previous, dtype=float)[-TREND_WINDOW:]
    if len(window) < 2:
        return None
    sigma = float(np.std(window))
    if sigma == 0:
        return None
    mu = float(np.mean(window))
    return abs(value - mu) / sigma, mu


def _chronological(
    records: Sequence[MonitoringDataRecord],
) -> dict[str, list[MonitoringDataRecord]]:
    """Numeric records per parameter, stably sorted by measurement date."""
    numeric = [r for r in records if is_number(r.value)]
    dates = pd.to_datetime(
        pd.Series([r.measurement_date for r in numeric], dtype=object),
        errors="coerce",
        format="mixed",
    )
    by_param: dict[str, list[MonitoringDataRecord]] = {}
    for i in dates.sort_values(kind="stable", na_position="last").index:
        record = numeric[i]
        by_param.setdefault(record.parameter, []).append(record)
    return by_param


def _range_excess(value: float, rng: ReferenceRange) -> float:
    bound = rng.min if value < rng.min else rng.max
    return abs(value - bound) / abs(bound) if bound else float("inf")


def screen_anomalies(
    records: Sequence[MonitoringDataRecord],
    sensitivity: float = 0.5,
    *,
    reference_ranges: Mapping[str, ReferenceRange] = REFERENCE_RANGES,
) -> list[AnomalyResult]:
    """
    Screen records with thresholds scaled by ``sensitivity``.

    Rules run in order and the first match wins:

    * range: outside the parameter's reference range.
    * z-score: |z| > 3 - sensitivity (cohort of at least 3).
    * IQR: outside Q1/Q3 -/+ (2.5 - sensitivity) * IQR (cohort of at least
      4, nonzero IQR).
    * trend break: more than 2.5 - sensitivity window stds away from the
      mean of the three measurements dated just before it (cohort of at
      least 5, at least two earlier measurements).

    Args:
        records: Records to screen; they also form the per-parameter cohorts.
        sensitivity: 0 (lenient) to 1 (strict).
        reference_ranges: Parameter -> ReferenceRange for the range rule.

    Returns:
        One AnomalyResult per record, in input order, each flagged result
        carrying a suggested action. Non-numeric values are never flagged.

    Raises:
        ValueError: If sensitivity is outside [0, 1].
    """
    if not 0 <= sensitivity <= 1:
        raise ValueError(f"sensitivity must be within [0, 1], got {sensitivity}")

    z_threshold = 3 - sensitivity
    whis = 1.5 + (1 - sensitivity)
    trend_threshold = 2.5 - sensitivity

    cohorts = _cohort_values(records)
    timelines = _chronological(records)
    positions = {
        r.id: i for timeline in timelines.values() for i, r in enumerate(timeline)
    }

    results = []
    for record in records:
        result = AnomalyResult(data_id=record.id)
        results.append(result)
        if not is_number(record.value):
            continue
        value = float(record.value)
        param = record.parameter
        cohort = cohorts.get(param, np.empty(0))

        rng = reference_ranges.get(param)
        if rng is not None and not rng.contains(value):
            excess = _range_excess(value, rng)
            result.is_anomaly = True
            result.anomaly_type = AnomalyType.RANGE_EXCEEDED
            result.confidence = min(SCREEN_MAX_CONFIDENCE, 0.7 + excess * 0.5)
            result.explanation = (
                f"{param} value ({value}) is outside the reference range "
                f"({rng.min}-{rng.max})"
            )
            result.reference_range = rng
            result.suggested_action = RANGE_ACTION_SEVERE if excess > 0.5 else RANGE_ACTION
            continue

        if len(cohort) >= SCREEN_ZSCORE_MIN_POINTS:
            bounds = zscore_bounds(cohort, threshold=z_threshold)
            if bounds is not None:
                mu, sigma, lower, upper = bounds
                z = abs(value - mu) / sigma
                if z > z_threshold:
                    result.is_anomaly = True
                    result.anomaly_type = AnomalyType.OUTLIER
                    result.confidence = min(
                        SCREEN_MAX_CONFIDENCE, 0.6 + (z - z_threshold) * 0.1
                    )
                    result.explanation = (
                        f"{param} value ({value}) has Z-score={z:.2f}, beyond "
                        f"{z_threshold:.1f} standard deviations"
                    )
                    result.reference_range = ReferenceRange(lower, upper)
                    result.suggested_action = ZSCORE_ACTION
                    continue

        if len(cohort) >= SCREEN_IQR_MIN_POINTS:
            q1, q3 = percentile(cohort, 25), percentile(cohort, 75)
            if q3 > q1:
                lower, upper = iqr_bounds(cohort, whis=whis)
                if value < lower or value > upper:
                    result.is_anomaly = True
                    result.anomaly_type = AnomalyType.OUTLIER
                    result.confidence = IQR_CONFIDENCE
                    result.explanation = (
                        f"{param} value ({value}) is outside the IQR range "
                        f"({lower:.2f}-{upper:.2f})"
                    )
                    result.reference_range = ReferenceRange(lower, upper)
                    result.suggested_action = IQR_ACTION
                    continue

        if len(cohort) >= TREND_MIN_POINTS:
            timeline = timelines[param]
            pos = positions[record.id]
            earlier = [float(r.value) for r in timeline[:pos]]
            found = trend_break_deviation(earlier, value)
            if found is not None and found[0] > trend_threshold:
                deviation, window_mean = found
                result.is_anomaly = True
                result.anomaly_type = AnomalyType.TREND_BREAK
                result.confidence = min(
                    TREND_BREAK_MAX_CONFIDENCE, 0.5 + deviation * 0.1
                )
                result.explanation = (
                    f"{param} value ({value}) departs from the recent trend "
                    f"(moving mean {window_mean:.2f})"
                )
                result.suggested_action = TREND_BREAK_ACTION

    return results
