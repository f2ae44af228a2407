"""
Runtime configuration for anomaly detection and processing sessions.

Detection thresholds default to the usual boxplot rule (1.5 x IQR) and a
3-sigma z-score cutoff, and can be overridden per monitored parameter.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Mapping, Optional

from envmon_processing.constants import (
    DEFAULT_DETECTION_LIMIT,
    REFERENCE_RANGES,
    STANDARD_REFERENCE,
    ReferenceRange,
)


@dataclass(frozen=True)
class OutlierThresholds:
    """IQR multiplier and z-score cutoff applied to one parameter cohort."""

    iqr_whis: float = 1.5
    zscore_threshold: float = 3.0


@dataclass(frozen=True)
class DetectionConfig:
    """
    Settings for range, IQR and z-score anomaly detection.

    Attributes:
        iqr_whis: Default IQR multiplier for outlier bounds.
        zscore_threshold: Default |z| cutoff.
        iqr_min_points: Minimum cohort size for the IQR method.
        zscore_min_points: Minimum cohort size for the z-score method.
        parameter_overrides: Per-parameter thresholds replacing the defaults.
        reference_ranges: Parameter -> ReferenceRange used by the range method.
    """

    iqr_whis: float = 1.5
    zscore_threshold: float = 3.0
    iqr_min_points: int = 4
    zscore_min_points: int = 3
    parameter_overrides: Mapping[str, OutlierThresholds] = field(default_factory=dict)
    reference_ranges: Mapping[str, ReferenceRange] = field(
        default_factory=lambda: dict(REFERENCE_RANGES)
    )

    def thresholds_for(self, parameter: Optional[str]) -> OutlierThresholds:
        """Return the thresholds for a parameter, falling back to the defaults."""
        override = self.parameter_overrides.get(parameter) if parameter else None
        if override is not None:
            return override
        return OutlierThresholds(
            iqr_whis=self.iqr_whis, zscore_threshold=self.zscore_threshold
        )


@dataclass(frozen=True)
class SessionConfig:
    """Settings for one ProcessingSession."""

    detection: DetectionConfig = field(default_factory=DetectionConfig)
    default_detection_limit: float = DEFAULT_DETECTION_LIMIT
    reviewer_id: str = "user"
    invalid_entry_deduction: int = 2
    failed_qc_deduction: int = 5
    standard_reference: str = STANDARD_REFERENCE

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SessionConfig":
        """
        Build a SessionConfig from a plain mapping (e.g. parsed JSON).

        Unknown keys are ignored. ``detection`` may itself be a mapping with
        the DetectionConfig field names; ``parameter_overrides`` maps
        parameter names to ``{"iqr_whis": ..., "zscore_threshold": ...}``.
        """
        if not data:
            return cls()
        if isinstance(data, SessionConfig):
            return data

        detection = data.get("detection")
        if isinstance(detection, Mapping):
            det_kwargs = {
                f.name: detection[f.name]
                for f in fields(DetectionConfig)
                if f.name in detection and f.name != "parameter_overrides"
            }
            if "reference_ranges" in det_kwargs:
                det_kwargs["reference_ranges"] = {
                    k: ReferenceRange(**v) if isinstance(v, Mapping) else ReferenceRange(*v)
                    for k, v in det_kwargs["reference_ranges"].items()
                }
            overrides = detection.get("parameter_overrides") or {}
            det_kwargs["parameter_overrides"] = {
                param: OutlierThresholds(**vals) for param, vals in overrides.items()
            }
            detection = DetectionConfig(**det_kwargs)
        elif detection is None:
            detection = DetectionConfig()

        kwargs = {
            f.name: data[f.name]
            for f in fields(cls)
            if f.name in data and f.name != "detection"
        }
        return cls(detection=detection, **kwargs)
