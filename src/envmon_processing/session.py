"""
Processing session: the phase state machine and the only mutable state.

A ProcessingSession owns one exercise's records, review decisions, statistics
and QC logs, report slot and error list. Every mutation appends to the
operation history where applicable, writes the state document to the
configured key-value store, and notifies subscribers with a state snapshot.
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from envmon_processing.assessment.data_quality import (
    DataQualityAssessment,
    assess_data_quality,
)
from envmon_processing.assessment.descriptive import (
    StatisticsResult,
    build_chart_data,
    describe,
    empty_result,
)
from envmon_processing.assessment.insights import Insight, generate_insights
from envmon_processing.assessment.outliers import (
    AnomalyMethod,
    AnomalyResult,
    AnomalyType,
    detect_anomalies,
    screen_anomalies,
)
from envmon_processing.assessment.quality_control import QCData, QCResult, evaluate_qc
from envmon_processing.assessment.scoring import Score, calculate_score
from envmon_processing.assessment.trend import TrendPrediction, predict_trend
from envmon_processing.config import SessionConfig
from envmon_processing.constants import (
    DECISION_STATUS,
    DEFAULT_COLUMN_MAPPING,
    DEFAULT_REVIEW_RANGE,
    PHASE_NAMES,
    PHASE_ORDER,
    STORAGE_KEY_PREFIX,
    DataStatus,
    Phase,
    ReferenceRange,
    ReviewDecision,
)
from envmon_processing.data.records import (
    DataVersion,
    MonitoringDataRecord,
    OperationError,
    OperationRecord,
    ReviewedDataRecord,
    from_iso,
    new_id,
    to_iso,
    utc_now,
)
from envmon_processing.processing.filters import (
    filter_monitoring_data,
    sort_monitoring_data,
)
from envmon_processing.processing.validation import (
    ValidationResult,
    is_number,
    validate_data_record,
)
from envmon_processing.report.builder import (
    Report,
    ReportTemplate,
    build_report,
    preview_report,
)
from envmon_processing.storage import InMemoryStore, KeyValueStore, PersistenceError

logger = logging.getLogger(__name__)

NOT_INITIALIZED = "session not initialized"
RECORD_NOT_FOUND = "record not found"

StateListener = Callable[[Optional["ProcessingState"]], None]


@dataclass
class ProcessingState:
    """Everything one processing exercise has produced so far."""

    phase: Phase = Phase.DATA_ENTRY
    monitoring_data: list[MonitoringDataRecord] = field(default_factory=list)
    reviewed_data: list[ReviewedDataRecord] = field(default_factory=list)
    statistics_results: list[StatisticsResult] = field(default_factory=list)
    qc_results: list[QCResult] = field(default_factory=list)
    report_data: Optional[Report] = None
    errors: list[OperationError] = field(default_factory=list)
    start_time: datetime = field(default_factory=utc_now)
    elapsed_time: float = 0.0  # seconds

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "monitoringData": [r.to_dict() for r in self.monitoring_data],
            "reviewedData": [r.to_dict() for r in self.reviewed_data],
            "statisticsResults": [s.to_dict() for s in self.statistics_results],
            "qcResults": [q.to_dict() for q in self.qc_results],
            "reportData": self.report_data.to_dict() if self.report_data else None,
            "errors": [e.to_dict() for e in self.errors],
            "startTime": to_iso(self.start_time),
            "elapsedTime": self.elapsed_time,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProcessingState":
        report = data.get("reportData")
        return cls(
            phase=Phase(data.get("phase", Phase.DATA_ENTRY.value)),
            monitoring_data=[
                MonitoringDataRecord.from_dict(r) for r in data.get("monitoringData", [])
            ],
            reviewed_data=[
                ReviewedDataRecord.from_dict(r) for r in data.get("reviewedData", [])
            ],
            statistics_results=[
                StatisticsResult.from_dict(s) for s in data.get("statisticsResults", [])
            ],
            qc_results=[QCResult.from_dict(q) for q in data.get("qcResults", [])],
            report_data=Report.from_dict(report) if report else None,
            errors=[OperationError.from_dict(e) for e in data.get("errors", [])],
            start_time=from_iso(data.get("startTime")) or utc_now(),
            elapsed_time=float(data.get("elapsedTime", 0.0)),
        )


@dataclass
class OperationResult:
    """Outcome of a session call; ``data`` carries the affected object."""

    is_valid: bool
    message: str
    data: Any = None


@dataclass
class CompletionSummary:
    state: ProcessingState
    score: Score
    total_data: int
    valid_data: int
    reviewed_data: int
    statistics_count: int
    qc_count: int
    qc_passed: int
    has_report: bool
    total_errors: int
    elapsed_time: float


def _input_fields(data: Mapping[str, Any]) -> tuple[dict, list[str]]:
    """Split caller input into editable snake_case fields and ignored keys."""
    fields_, ignored = {}, []
    for key, val in data.items():
        target = DEFAULT_COLUMN_MAPPING.get(key)
        if target:
            fields_[target] = val
        elif key != "id":
            ignored.append(key)
    if is_number(fields_.get("value")):
        fields_["value"] = float(fields_["value"])
    return fields_, ignored


class ProcessingSession:
    """
    Orchestrates one environmental-monitoring data-processing exercise.

    Args:
        config: SessionConfig or a mapping accepted by SessionConfig.from_dict.
        store: Key-value store for the persisted state document. Defaults to
            an InMemoryStore.
        session_id: Distinguishes sessions sharing one store.

    The session is uninitialized until ``init()`` or a successful
    ``restore_saved_state()``; until then mutating calls return an
    OperationResult with ``is_valid=False`` and getters return None or [].
    """

    def __init__(
        self,
        config: Union[SessionConfig, Mapping[str, Any], None] = None,
        store: Optional[KeyValueStore] = None,
        session_id: str = "default",
    ) -> None:
        self.config = SessionConfig.from_dict(config)
        self.store = store if store is not None else InMemoryStore()
        self.session_id = session_id
        self._state: Optional[ProcessingState] = None
        self._listeners: list[StateListener] = []
        self._operation_history: list[OperationRecord] = []
        self._data_versions: list[DataVersion] = []

    @property
    def storage_key(self) -> str:
        return f"{STORAGE_KEY_PREFIX}:{self.session_id}"

    @property
    def is_initialized(self) -> bool:
        return self._state is not None

    # Lifecycle and phases

    def init(self, config: Union[SessionConfig, Mapping[str, Any], None] = None) -> None:
        """Start a fresh exercise, discarding any in-memory state."""
        if config is not None:
            self.config = SessionConfig.from_dict(config)
        self._state = ProcessingState()
        self._operation_history = []
        self._data_versions = []
        logger.info("Session %s initialized", self.session_id)
        self._commit()

    def get_state(self) -> Optional[ProcessingState]:
        """Deep copy of the current state, or None when uninitialized."""
        return copy.deepcopy(self._state)

    @property
    def state(self) -> Optional[ProcessingState]:
        return self.get_state()

    @property
    def phase(self) -> Phase:
        return self._state.phase if self._state else Phase.DATA_ENTRY

    def _touch_elapsed(self) -> None:
        self._state.elapsed_time = (utc_now() - self._state.start_time).total_seconds()

    def set_phase(self, phase: Union[Phase, str]) -> OperationResult:
        """
        Move to ``phase`` if it is at most one step ahead of the current one.

        Moving backward or re-entering the current phase is always allowed.
        """
        if self._state is None:
            return OperationResult(False, NOT_INITIALIZED)
        try:
            target = Phase(phase)
        except ValueError:
            logger.warning("Rejected transition to unknown phase %r", phase)
            return OperationResult(False, f"invalid target phase '{phase}'")

        current = self._state.phase
        if PHASE_ORDER.index(target) > PHASE_ORDER.index(current) + 1:
            message = (
                f"cannot jump from {PHASE_NAMES[current]} to {PHASE_NAMES[target]}"
            )
            logger.warning(message)
            return OperationResult(False, message)

        self._state.phase = target
        self._touch_elapsed()
        logger.info("Session %s entered phase %s", self.session_id, target.value)
        self._commit()
        return OperationResult(True, f"entered {PHASE_NAMES[target]} phase", target)

    def next_phase(self) -> OperationResult:
        if self._state is None:
            return OperationResult(False, NOT_INITIALIZED)
        index = PHASE_ORDER.index(self._state.phase)
        if index >= len(PHASE_ORDER) - 1:
            return OperationResult(False, "already at the last phase")
        return self.set_phase(PHASE_ORDER[index + 1])

    def previous_phase(self) -> OperationResult:
        if self._state is None:
            return OperationResult(False, NOT_INITIALIZED)
        index = PHASE_ORDER.index(self._state.phase)
        if index <= 0:
            return OperationResult(False, "already at the first phase")
        return self.set_phase(PHASE_ORDER[index - 1])

    def complete(self) -> OperationResult:
        """Jump to the complete phase and summarize the exercise with its score."""
        if self._state is None:
            return OperationResult(False, NOT_INITIALIZED)
        self._state.phase = Phase.COMPLETE
        self._touch_elapsed()
        logger.info("Session %s complete", self.session_id)
        self._commit()

        state = self._state
        summary = CompletionSummary(
            state=copy.deepcopy(state),
            score=calculate_score(state),
            total_data=len(state.monitoring_data),
            valid_data=sum(1 for r in state.monitoring_data if r.is_valid),
            reviewed_data=len(state.reviewed_data),
            statistics_count=len(state.statistics_results),
            qc_count=len(state.qc_results),
            qc_passed=sum(1 for q in state.qc_results if q.passed),
            has_report=state.report_data is not None,
            total_errors=len(state.errors),
            elapsed_time=state.elapsed_time,
        )
        return OperationResult(True, "processing complete", summary)

    def reset(self) -> None:
        """Replace the state with a fresh one and clear history and versions."""
        self._state = ProcessingState()
        self._operation_history = []
        self._data_versions = []
        logger.info("Session %s reset", self.session_id)
        self._commit()

    # Records

    def _find(self, data_id: str) -> Optional[MonitoringDataRecord]:
        if self._state is None:
            return None
        return next((r for r in self._state.monitoring_data if r.id == data_id), None)

    def validate_data_record(self, record: Mapping[str, Any]) -> ValidationResult:
        """Validate caller input (snake_case, camelCase or Chinese keys)."""
        fields_, _ = _input_fields(record)
        return validate_data_record(
            fields_, reference_ranges=self.config.detection.reference_ranges
        )

    def add_monitoring_data(self, data: Mapping[str, Any]) -> OperationResult:
        """
        Validate and store one measurement.

        The record is stored whether or not it is valid; an invalid record
        also adds a scored entry-phase error. A caller-supplied ``id`` is kept
        unless another record already uses it.

        Returns:
            OperationResult whose ``is_valid`` and ``message`` come from
            validation and whose ``data`` is a copy of the stored record.
        """
        if self._state is None:
            return OperationResult(False, NOT_INITIALIZED)

        fields_, ignored = _input_fields(data)
        if ignored:
            logger.debug("Ignoring non-input keys %s", ignored)
        validation = validate_data_record(
            fields_, reference_ranges=self.config.detection.reference_ranges
        )

        record_id = data.get("id")
        if not record_id or self._find(record_id) is not None:
            record_id = new_id("DATA")
        record = MonitoringDataRecord.from_input(
            record_id,
            fields_,
            is_valid=validation.is_valid,
            validation_message=validation.message,
        )
        self._state.monitoring_data.append(record)
        self._record_operation(
            "create", "data", record.id, None, record.to_dict(), "added monitoring data"
        )
        if not validation.is_valid:
            self._add_error(
                Phase.DATA_ENTRY, validation.message, self.config.invalid_entry_deduction
            )
        logger.debug("Added record %s (valid=%s)", record.id, validation.is_valid)
        self._commit()
        return OperationResult(validation.is_valid, validation.message, copy.deepcopy(record))

    def update_monitoring_data(
        self, data_id: str, updates: Mapping[str, Any]
    ) -> OperationResult:
        """
        Edit a record's input fields and re-validate it.

        ``id``, ``status``, ``is_valid`` and ``created_at`` cannot be edited;
        such keys are ignored. The record is snapshotted as a DataVersion
        before the edit.
        """
        if self._state is None:
            return OperationResult(False, NOT_INITIALIZED)
        record = self._find(data_id)
        if record is None:
            return OperationResult(False, RECORD_NOT_FOUND)

        fields_, ignored = _input_fields(updates)
        if ignored:
            logger.warning("Ignoring non-editable keys %s for %s", ignored, data_id)

        previous = record.to_dict()
        self._create_version(record, "updated data")
        for name, val in fields_.items():
            setattr(record, name, val if name == "value" else ("" if val is None else str(val)))
        self._revalidate(record)
        self._record_operation(
            "update", "data", data_id, previous, record.to_dict(), "updated monitoring data"
        )
        self._commit()
        return OperationResult(True, "record updated", copy.deepcopy(record))

    def _revalidate(self, record: MonitoringDataRecord) -> None:
        validation = validate_data_record(
            record.input_fields(),
            reference_ranges=self.config.detection.reference_ranges,
        )
        record.is_valid = validation.is_valid
        record.validation_message = validation.message

    def get_monitoring_data(self, data_id: str) -> Optional[MonitoringDataRecord]:
        return copy.deepcopy(self._find(data_id))

    def get_all_monitoring_data(self) -> list[MonitoringDataRecord]:
        if self._state is None:
            return []
        return copy.deepcopy(self._state.monitoring_data)

    def filter_monitoring_data(self, **filters: Any) -> list[MonitoringDataRecord]:
        """
        Records matching every given filter.

        Keys: parameter, status, sample_type, is_valid, date_from, date_to,
        value_min, value_max. None or "" means no filter for that key.
        """
        if self._state is None:
            return []
        return copy.deepcopy(filter_monitoring_data(self._state.monitoring_data, filters))

    def sort_monitoring_data(
        self, field: str, order: str = "asc"
    ) -> list[MonitoringDataRecord]:
        if self._state is None:
            return []
        return copy.deepcopy(sort_monitoring_data(self._state.monitoring_data, field, order))

    # Versions

    def _create_version(self, record: MonitoringDataRecord, description: str) -> DataVersion:
        existing = sum(1 for v in self._data_versions if v.data_id == record.id)
        version = DataVersion(
            data_id=record.id,
            version=existing + 1,
            data=record.to_dict(),
            change_description=description,
            created_by=self.config.reviewer_id,
        )
        self._data_versions.append(version)
        return version

    def get_version_history(self, data_id: str) -> list[DataVersion]:
        """Versions of one record, newest first."""
        versions = [v for v in self._data_versions if v.data_id == data_id]
        return copy.deepcopy(sorted(versions, key=lambda v: v.version, reverse=True))

    def restore_version(self, version_id: str) -> OperationResult:
        """
        Restore a record's input fields from a saved version.

        The current contents are snapshotted first. Review status is kept;
        validity is recomputed.
        """
        if self._state is None:
            return OperationResult(False, NOT_INITIALIZED)
        version = next((v for v in self._data_versions if v.version_id == version_id), None)
        if version is None:
            return OperationResult(False, "version not found")
        record = self._find(version.data_id)
        if record is None:
            return OperationResult(False, RECORD_NOT_FOUND)

        previous = record.to_dict()
        self._create_version(record, "backup before restore")
        saved = MonitoringDataRecord.from_dict(version.data)
        for name, val in saved.input_fields().items():
            setattr(record, name, val)
        self._revalidate(record)
        self._record_operation(
            "update",
            "data",
            record.id,
            previous,
            record.to_dict(),
            f"restored to version {version.version}",
        )
        self._commit()
        return OperationResult(
            True, f"restored to version {version.version}", copy.deepcopy(record)
        )

    # Review

    def detect_anomalies(
        self,
        data_ids: Optional[Sequence[str]] = None,
        method: Union[AnomalyMethod, str] = AnomalyMethod.RANGE,
    ) -> list[AnomalyResult]:
        """
        Screen stored records (all, or those in ``data_ids``) for anomalies.

        Raises:
            ValueError: If method is unknown.
        """
        if self._state is None:
            return []
        records = self._state.monitoring_data
        if data_ids:
            wanted = set(data_ids)
            records = [r for r in records if r.id in wanted]
        return detect_anomalies(records, method, config=self.config.detection)

    def screen_anomalies(
        self,
        data_ids: Optional[Sequence[str]] = None,
        sensitivity: float = 0.5,
    ) -> list[AnomalyResult]:
        """
        Sensitivity-scaled screening, including the trend-break rule.

        Raises:
            ValueError: If sensitivity is outside [0, 1].
        """
        if self._state is None:
            return []
        records = self._state.monitoring_data
        if data_ids:
            wanted = set(data_ids)
            records = [r for r in records if r.id in wanted]
        return screen_anomalies(
            records, sensitivity, reference_ranges=self.config.detection.reference_ranges
        )

    def update_data_review(
        self,
        data_id: str,
        decision: Union[ReviewDecision, str],
        reason: str,
        *,
        modified_value: Optional[float] = None,
        reviewer_id: Optional[str] = None,
        is_anomaly: bool = False,
        anomaly_type: Union[AnomalyType, str, None] = None,
        reference_range: Optional[ReferenceRange] = None,
    ) -> OperationResult:
        """
        Record a review decision and update the record's status.

        accept -> approved, reject -> rejected, modify -> reviewed with the
        record's value replaced by ``modified_value``. The latest decision
        replaces any earlier one for the same record.

        Raises:
            ValueError: If decision is not accept, reject or modify.
        """
        decision = ReviewDecision(decision)
        if self._state is None:
            return OperationResult(False, NOT_INITIALIZED)
        record = self._find(data_id)
        if record is None:
            return OperationResult(False, RECORD_NOT_FOUND)
        if not reason or not str(reason).strip():
            return OperationResult(False, "a review reason is required")
        if decision is ReviewDecision.MODIFY and not is_number(modified_value):
            return OperationResult(
                False, "modify requires a numeric modified_value"
            )

        if reference_range is None:
            reference_range = self.config.detection.reference_ranges.get(
                record.parameter, DEFAULT_REVIEW_RANGE
            )
        review = ReviewedDataRecord(
            data_id=data_id,
            reviewer_id=reviewer_id or self.config.reviewer_id,
            original_value=record.value,
            decision=decision,
            reason=str(reason),
            reference_range=reference_range,
            is_anomaly=is_anomaly,
            anomaly_type=anomaly_type.value if isinstance(anomaly_type, AnomalyType) else anomaly_type,
            modified_value=float(modified_value) if decision is ReviewDecision.MODIFY else None,
        )

        record.status = DECISION_STATUS[decision]
        if decision is ReviewDecision.MODIFY:
            record.value = review.modified_value

        reviews = self._state.reviewed_data
        existing = next((i for i, r in enumerate(reviews) if r.data_id == data_id), None)
        previous = reviews[existing].to_dict() if existing is not None else None
        if existing is not None:
            reviews[existing] = review
        else:
            reviews.append(review)

        self._record_operation(
            "review", "data", data_id, previous, review.to_dict(),
            f"reviewed data: {decision.value}",
        )
        logger.debug("Reviewed %s: %s", data_id, decision.value)
        self._commit()
        return OperationResult(True, "review recorded", copy.deepcopy(review))

    def get_review_record(self, data_id: str) -> Optional[ReviewedDataRecord]:
        if self._state is None:
            return None
        review = next((r for r in self._state.reviewed_data if r.data_id == data_id), None)
        return copy.deepcopy(review)

    # Statistics, QC and report

    def calculate_statistics(
        self,
        data_ids: Optional[Sequence[str]] = None,
        method: str = "descriptive",
    ) -> OperationResult:
        """
        Describe the numeric values of the selected records.

        Selection is the records in ``data_ids`` or, when omitted or empty,
        every record not rejected. A non-empty result is appended to the
        statistics log; an empty selection returns an all-zero result that is
        not logged.
        """
        if self._state is None:
            return OperationResult(False, NOT_INITIALIZED)
        if data_ids:
            wanted = set(data_ids)
            selected = [r for r in self._state.monitoring_data if r.id in wanted]
        else:
            selected = [
                r for r in self._state.monitoring_data if r.status != DataStatus.REJECTED
            ]

        values = [float(r.value) for r in selected if is_number(r.value)]
        if not values:
            return OperationResult(True, "no numeric data selected", empty_result(method))

        result = describe(values, method=method, chart_data=build_chart_data(selected, "bar"))
        self._state.statistics_results.append(result)
        logger.debug("Statistics over %d value(s)", result.data_count)
        self._commit()
        return OperationResult(True, "statistics calculated", copy.deepcopy(result))

    def add_qc_data(self, qc_data: Union[QCData, Mapping[str, Any]]) -> OperationResult:
        """
        Evaluate one QC check and append its result.

        A failed check adds a scored quality-control error.

        Raises:
            ValueError: On an unknown QC type or missing input values.
        """
        if self._state is None:
            return OperationResult(False, NOT_INITIALIZED)
        if not isinstance(qc_data, QCData):
            qc_data = QCData.from_mapping(qc_data)

        result = evaluate_qc(
            qc_data, default_detection_limit=self.config.default_detection_limit
        )
        self._state.qc_results.append(result)
        self._record_operation(
            "qc", "qc", qc_data.id, None, result.to_dict(),
            f"{result.type.value} QC check",
        )
        if not result.passed:
            self._add_error(
                Phase.QUALITY_CONTROL, result.message, self.config.failed_qc_deduction
            )
        self._commit()
        return OperationResult(True, result.message, result)

    def get_qc_results(self) -> list[QCResult]:
        if self._state is None:
            return []
        return copy.deepcopy(self._state.qc_results)

    def get_statistics_results(self) -> list[StatisticsResult]:
        if self._state is None:
            return []
        return copy.deepcopy(self._state.statistics_results)

    def generate_report(
        self, template: Union[ReportTemplate, str] = ReportTemplate.STANDARD
    ) -> OperationResult:
        """
        Build a report from the current contents into the single report slot.

        Raises:
            ValueError: If template is unknown.
        """
        if self._state is None:
            return OperationResult(False, NOT_INITIALIZED)
        state = self._state
        report = build_report(
            state.monitoring_data, state.statistics_results, state.qc_results, template
        )
        previous = state.report_data.to_dict() if state.report_data else None
        state.report_data = report
        self._record_operation(
            "report", "report", report.id, previous, report.to_dict(),
            f"generated {report.template.value} report",
        )
        logger.info("Generated report %s", report.id)
        self._commit()
        return OperationResult(True, "report generated", copy.deepcopy(report))

    def get_report_data(self) -> Optional[Report]:
        if self._state is None:
            return None
        return copy.deepcopy(self._state.report_data)

    def preview_report(self) -> str:
        if self._state is None:
            return ""
        return preview_report(self._state.report_data)

    # Scoring and analysis

    def calculate_score(self) -> Optional[Score]:
        if self._state is None:
            return None
        return calculate_score(self._state)

    def assess_data_quality(
        self, *, now: Optional[datetime] = None
    ) -> Optional[DataQualityAssessment]:
        if self._state is None:
            return None
        return assess_data_quality(
            self._state.monitoring_data,
            now=now,
            reference_ranges=self.config.detection.reference_ranges,
        )

    def predict_trend(self, parameter: str, periods: int = 3) -> Optional[TrendPrediction]:
        """Trend of one parameter's non-rejected values."""
        if self._state is None:
            return None
        records = [
            r
            for r in self._state.monitoring_data
            if r.parameter == parameter and r.status != DataStatus.REJECTED
        ]
        return predict_trend(records, periods)

    def generate_insights(
        self, *, sensitivity: float = 0.5, now: Optional[datetime] = None
    ) -> list[Insight]:
        if self._state is None:
            return []
        return generate_insights(
            self._state,
            sensitivity=sensitivity,
            now=now,
            reference_ranges=self.config.detection.reference_ranges,
        )

    # Audit

    def _record_operation(
        self,
        action: str,
        target_type: str,
        target_id: Optional[str],
        previous_value: Optional[dict],
        new_value: Optional[dict],
        description: str,
    ) -> None:
        self._operation_history.append(
            OperationRecord.create(
                action,
                target_type,
                target_id,
                previous_value,
                new_value,
                description,
                user_id=self.config.reviewer_id,
            )
        )

    def _add_error(self, phase: Phase, description: str, deduction: int) -> None:
        self._state.errors.append(
            OperationError(
                phase=phase.value,
                description=description,
                deduction=deduction,
                standard_reference=self.config.standard_reference,
            )
        )

    def get_operation_history(
        self,
        action: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
    ) -> list[OperationRecord]:
        """Operation log in order, optionally filtered on each attribute."""
        history = self._operation_history
        if action:
            history = [h for h in history if h.action == action]
        if target_type:
            history = [h for h in history if h.target_type == target_type]
        if target_id:
            history = [h for h in history if h.target_id == target_id]
        return copy.deepcopy(history)

    def get_errors(self) -> list[OperationError]:
        if self._state is None:
            return []
        return copy.deepcopy(self._state.errors)

    # Observers

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Call ``listener(state_snapshot)`` after every mutation.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.get_state()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("State listener %r failed", listener)

    # Persistence

    def _commit(self) -> None:
        self._save()
        self._notify()

    def _document(self) -> dict:
        return {
            "state": self._state.to_dict(),
            "operationHistory": [op.to_dict() for op in self._operation_history],
            "dataVersions": [v.to_dict() for v in self._data_versions],
        }

    def _save(self) -> None:
        if self._state is None:
            return
        text = json.dumps(self._document(), ensure_ascii=False, default=str)
        try:
            self.store.set(self.storage_key, text)
        except (PersistenceError, OSError):
            logger.exception("Failed to save state for session %s", self.session_id)

    def _read_saved(self) -> Optional[str]:
        try:
            return self.store.get(self.storage_key)
        except (PersistenceError, OSError):
            logger.exception("Failed to read state for session %s", self.session_id)
            return None

    def has_saved_state(self) -> bool:
        return self._read_saved() is not None

    def restore_saved_state(self) -> bool:
        """
        Load the persisted document into this session.

        Returns:
            True if a well-formed document was loaded. Missing or malformed
            state leaves the session untouched and returns False.
        """
        text = self._read_saved()
        if text is None:
            return False
        try:
            doc = json.loads(text)
            state = ProcessingState.from_dict(doc["state"])
            history = [OperationRecord.from_dict(o) for o in doc.get("operationHistory") or []]
            versions = [DataVersion.from_dict(v) for v in doc.get("dataVersions") or []]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Ignoring malformed saved state for %s: %s", self.session_id, e)
            return False

        self._state = state
        self._operation_history = history
        self._data_versions = versions
        logger.info("Restored session %s", self.session_id)
        self._notify()
        return True

    def clear_saved_state(self) -> None:
        """Delete the persisted document and return to the uninitialized state."""
        try:
            self.store.delete(self.storage_key)
        except (PersistenceError, OSError):
            logger.exception("Failed to clear state for session %s", self.session_id)
        self._state = None
        self._operation_history = []
        self._data_versions = []
