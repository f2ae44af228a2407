"""
Quality-control checks: blank, parallel (duplicate) and spike recovery.

Acceptance limits follow HJ 630-2011 practice: blank within half the
detection limit, parallel relative deviation at most 20 %, spike recovery
between 80 % and 120 %. Every failing check carries remediation suggestions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, NamedTuple, Optional, Sequence, Union

from envmon_processing.constants import (
    BLANK_LIMIT_FACTOR,
    DEFAULT_DETECTION_LIMIT,
    PARALLEL_MAX_DEVIATION,
    SPIKE_RECOVERY_MAX,
    SPIKE_RECOVERY_MIN,
)
from envmon_processing.data.records import new_id


class QCType(str, Enum):
    BLANK = "blank"
    PARALLEL = "parallel"
    SPIKE_RECOVERY = "spike_recovery"


class RecoveryWindow(NamedTuple):
    min: float
    max: float


BLANK_SUGGESTIONS = [
    "check reagent purity",
    "check glassware cleanliness",
    "check the laboratory for contamination sources",
]
PARALLEL_SUGGESTIONS = [
    "check sample homogeneity",
    "check consistency of the analytical procedure",
    "consider analysing more parallel samples",
]
SPIKE_SUGGESTIONS_TAIL = [
    "check that the analytical method suits the sample matrix",
    "consider the standard addition method",
]


@dataclass(frozen=True)
class QCResult:
    """Outcome of one QC check."""

    type: QCType
    passed: bool
    value: float
    threshold: Union[float, RecoveryWindow]
    message: str
    suggestions: list[str] = field(default_factory=list)
    parameter: Optional[str] = None

    def to_dict(self) -> dict:
        threshold = (
            {"min": self.threshold.min, "max": self.threshold.max}
            if isinstance(self.threshold, RecoveryWindow)
            else self.threshold
        )
        return {
            "type": self.type.value,
            "passed": self.passed,
            "value": self.value,
            "threshold": threshold,
            "message": self.message,
            "suggestions": list(self.suggestions),
            "parameter": self.parameter,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QCResult":
        threshold = data.get("threshold", 0.0)
        if isinstance(threshold, Mapping):
            threshold = RecoveryWindow(threshold["min"], threshold["max"])
        return cls(
            type=QCType(data["type"]),
            passed=bool(data["passed"]),
            value=data.get("value", 0.0),
            threshold=threshold,
            message=data.get("message", ""),
            suggestions=list(data.get("suggestions") or []),
            parameter=data.get("parameter"),
        )


@dataclass
class QCData:
    """
    Input for one QC check.

    ``values`` holds the measurements the check needs: ``[blank]`` for a
    blank, ``[v1, v2]`` for a parallel pair, ``[original, spiked]`` for
    spike recovery.
    """

    type: QCType
    values: list[float]
    parameter: Optional[str] = None
    spike_amount: Optional[float] = None
    detection_limit: Optional[float] = None
    expected_value: Optional[float] = None
    id: str = field(default_factory=lambda: new_id("QC"))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "QCData":
        """Accept snake_case or camelCase keys (``spikeAmount``, ``detectionLimit``)."""

        def pick(snake: str, camel: str) -> Any:
            return data.get(snake, data.get(camel))

        kwargs = {}
        if data.get("id"):
            kwargs["id"] = data["id"]
        return cls(
            type=QCType(data["type"]),
            values=list(data.get("values") or []),
            parameter=data.get("parameter"),
            spike_amount=pick("spike_amount", "spikeAmount"),
            detection_limit=pick("detection_limit", "detectionLimit"),
            expected_value=pick("expected_value", "expectedValue"),
            **kwargs,
        )


def calculate_blank_result(blank_value: float, detection_limit: float) -> QCResult:
    """Blank passes when ``|blank| <= detection_limit * 0.5``."""
    threshold = detection_limit * BLANK_LIMIT_FACTOR
    passed = abs(blank_value) <= threshold
    if passed:
        message = f"blank value ({blank_value}) within limit (<= {threshold:g})"
    else:
        message = f"blank value ({blank_value}) exceeds limit (<= {threshold:g})"
    return QCResult(
        type=QCType.BLANK,
        passed=passed,
        value=blank_value,
        threshold=threshold,
        message=message,
        suggestions=[] if passed else list(BLANK_SUGGESTIONS),
    )


def calculate_parallel_deviation(value1: float, value2: float) -> QCResult:
    """
    Relative deviation of a duplicate pair, ``|v1 - v2| / mean * 100``.

    A zero mean gives a deviation of 0. Passes when deviation <= 20 %.
    """
    mu = (value1 + value2) / 2
    deviation = abs(value1 - value2) / mu * 100 if mu != 0 else 0.0
    threshold = PARALLEL_MAX_DEVIATION
    passed = deviation <= threshold
    if passed:
        message = f"parallel relative deviation ({deviation:.2f}%) within limit (<= {threshold:g}%)"
    else:
        message = f"parallel relative deviation ({deviation:.2f}%) exceeds limit (<= {threshold:g}%)"
    return QCResult(
        type=QCType.PARALLEL,
        passed=passed,
        value=deviation,
        threshold=threshold,
        message=message,
        suggestions=[] if passed else list(PARALLEL_SUGGESTIONS),
    )


def calculate_spike_recovery(
    original: float, spiked: float, spike_amount: float
) -> QCResult:
    """
    Spike recovery ``(spiked - original) / spike_amount * 100``.

    A zero spike amount gives a recovery of 0. Passes within 80-120 %.
    """
    recovery = (spiked - original) / spike_amount * 100 if spike_amount != 0 else 0.0
    window = RecoveryWindow(SPIKE_RECOVERY_MIN, SPIKE_RECOVERY_MAX)
    passed = window.min <= recovery <= window.max
    limits = f"{window.min:g}%-{window.max:g}%"
    if passed:
        message = f"spike recovery ({recovery:.2f}%) within limits ({limits})"
        suggestions = []
    else:
        message = f"spike recovery ({recovery:.2f}%) outside limits ({limits})"
        first = (
            "check for matrix interference"
            if recovery < window.min
            else "check that the spike amount is accurate"
        )
        suggestions = [first, *SPIKE_SUGGESTIONS_TAIL]
    return QCResult(
        type=QCType.SPIKE_RECOVERY,
        passed=passed,
        value=recovery,
        threshold=window,
        message=message,
        suggestions=suggestions,
    )


def _require(values: Sequence[float], n: int, qc_type: QCType) -> None:
    if len(values) < n:
        raise ValueError(
            f"{qc_type.value} QC needs {n} value(s), got {len(values)}"
        )


def evaluate_qc(
    qc_data: QCData,
    *,
    default_detection_limit: float = DEFAULT_DETECTION_LIMIT,
) -> QCResult:
    """
    Dispatch a QC input to its formula.

    Raises:
        ValueError: If the input lacks the values its type needs, or a spike
            recovery check has no spike amount.
    """
    qc_type = QCType(qc_data.type)
    values = [float(v) for v in qc_data.values]

    if qc_type is QCType.BLANK:
        _require(values, 1, qc_type)
        limit = qc_data.detection_limit or default_detection_limit
        result = calculate_blank_result(values[0], float(limit))
    elif qc_type is QCType.PARALLEL:
        _require(values, 2, qc_type)
        result = calculate_parallel_deviation(values[0], values[1])
    else:
        _require(values, 2, qc_type)
        if qc_data.spike_amount is None:
            raise ValueError("spike_recovery QC needs a spike_amount")
        result = calculate_spike_recovery(
            values[0], values[1], float(qc_data.spike_amount)
        )

    if qc_data.parameter:
        result = QCResult(
            type=result.type,
            passed=result.passed,
            value=result.value,
            threshold=result.threshold,
            message=result.message,
            suggestions=result.suggestions,
            parameter=qc_data.parameter,
        )
    return result
