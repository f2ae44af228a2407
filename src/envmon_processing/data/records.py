"""
Record types held by a processing session.

Attributes are snake_case; ``to_dict``/``from_dict`` use the camelCase wire
names shared by JSON export and the persisted state document.
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from envmon_processing.constants import (
    RECORD_FIELDS,
    DataStatus,
    ReferenceRange,
    ReviewDecision,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Return a unique upper-case id such as ``DATA-3F9A0C1B2D4E``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}".upper()


def to_iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


def from_iso(text: Optional[str]) -> Optional[datetime]:
    if not text:
        return None
    return datetime.fromisoformat(text)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def range_to_dict(rng: Optional[ReferenceRange]) -> Optional[dict]:
    if rng is None:
        return None
    return {"min": rng.min, "max": rng.max, "unit": rng.unit}


def range_from_dict(data: Optional[dict]) -> Optional[ReferenceRange]:
    if data is None:
        return None
    return ReferenceRange(data["min"], data["max"], data.get("unit", ""))


@dataclass
class MonitoringDataRecord:
    """One measurement entered by the analyst."""

    id: str
    sample_id: str = ""
    sample_type: str = ""
    parameter: str = ""
    value: Any = None  # float when valid; raw input is kept otherwise
    unit: str = ""
    measurement_date: str = ""
    measurement_time: str = ""
    analyst: str = ""
    instrument: str = ""
    method: str = ""
    status: DataStatus = DataStatus.PENDING
    is_valid: bool = False
    validation_message: str = ""
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_input(
        cls,
        record_id: str,
        data: dict,
        *,
        is_valid: bool,
        validation_message: str,
    ) -> "MonitoringDataRecord":
        """Build a pending record from caller-supplied snake_case fields."""
        return cls(
            id=record_id,
            sample_id=_text(data.get("sample_id")),
            sample_type=_text(data.get("sample_type")),
            parameter=_text(data.get("parameter")),
            value=data.get("value"),
            unit=_text(data.get("unit")),
            measurement_date=_text(data.get("measurement_date")),
            measurement_time=_text(data.get("measurement_time")),
            analyst=_text(data.get("analyst")),
            instrument=_text(data.get("instrument")),
            method=_text(data.get("method")),
            status=DataStatus.PENDING,
            is_valid=is_valid,
            validation_message=validation_message,
        )

    def input_fields(self) -> dict:
        """Editable snake_case fields, as accepted by the validator."""
        return {
            "sample_id": self.sample_id,
            "sample_type": self.sample_type,
            "parameter": self.parameter,
            "value": self.value,
            "unit": self.unit,
            "measurement_date": self.measurement_date,
            "measurement_time": self.measurement_time,
            "analyst": self.analyst,
            "instrument": self.instrument,
            "method": self.method,
        }

    def to_export_dict(self) -> dict:
        """The public fields written by JSON export, in export order."""
        out = {}
        for attr, camel, _ in RECORD_FIELDS:
            val = getattr(self, attr)
            out[camel] = val.value if isinstance(val, DataStatus) else val
        return out

    def to_dict(self) -> dict:
        out = {"id": self.id}
        out.update(self.to_export_dict())
        out["validationMessage"] = self.validation_message
        out["createdAt"] = to_iso(self.created_at)
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "MonitoringDataRecord":
        kwargs = {
            attr: data[camel]
            for attr, camel, _ in RECORD_FIELDS
            if camel in data and data[camel] is not None
        }
        if "status" in kwargs:
            kwargs["status"] = DataStatus(kwargs["status"])
        if "value" not in kwargs:
            kwargs["value"] = data.get("value")
        return cls(
            id=data["id"],
            validation_message=data.get("validationMessage", ""),
            created_at=from_iso(data.get("createdAt")) or utc_now(),
            **kwargs,
        )


@dataclass
class ReviewedDataRecord:
    """Latest review decision for one monitoring record."""

    data_id: str
    reviewer_id: str
    original_value: Any
    decision: ReviewDecision
    reason: str
    reference_range: ReferenceRange
    is_anomaly: bool = False
    anomaly_type: Optional[str] = None
    modified_value: Optional[float] = None
    review_date: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "dataId": self.data_id,
            "reviewerId": self.reviewer_id,
            "reviewDate": to_iso(self.review_date),
            "originalValue": self.original_value,
            "isAnomaly": self.is_anomaly,
            "anomalyType": self.anomaly_type,
            "decision": self.decision.value,
            "modifiedValue": self.modified_value,
            "reason": self.reason,
            "referenceRange": range_to_dict(self.reference_range),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ReviewedDataRecord":
        return cls(
            data_id=data["dataId"],
            reviewer_id=data.get("reviewerId", "user"),
            review_date=from_iso(data.get("reviewDate")) or utc_now(),
            original_value=data.get("originalValue"),
            is_anomaly=bool(data.get("isAnomaly", False)),
            anomaly_type=data.get("anomalyType"),
            decision=ReviewDecision(data["decision"]),
            modified_value=data.get("modifiedValue"),
            reason=data.get("reason", ""),
            reference_range=range_from_dict(data.get("referenceRange")),
        )


@dataclass(frozen=True)
class OperationRecord:
    """Immutable audit-log entry for one mutating operation."""

    id: str
    timestamp: datetime
    action: str
    target_type: str
    target_id: Optional[str]
    previous_value: Optional[dict]
    new_value: Optional[dict]
    description: str
    user_id: str = "user"

    @classmethod
    def create(
        cls,
        action: str,
        target_type: str,
        target_id: Optional[str],
        previous_value: Optional[dict],
        new_value: Optional[dict],
        description: str,
        *,
        user_id: str = "user",
    ) -> "OperationRecord":
        return cls(
            id=new_id("OP"),
            timestamp=utc_now(),
            action=action,
            target_type=target_type,
            target_id=target_id,
            previous_value=copy.deepcopy(previous_value),
            new_value=copy.deepcopy(new_value),
            description=description,
            user_id=user_id,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": to_iso(self.timestamp),
            "userId": self.user_id,
            "action": self.action,
            "targetType": self.target_type,
            "targetId": self.target_id,
            "previousValue": copy.deepcopy(self.previous_value),
            "newValue": copy.deepcopy(self.new_value),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OperationRecord":
        return cls(
            id=data["id"],
            timestamp=from_iso(data.get("timestamp")) or utc_now(),
            action=data["action"],
            target_type=data["targetType"],
            target_id=data.get("targetId"),
            previous_value=data.get("previousValue"),
            new_value=data.get("newValue"),
            description=data.get("description", ""),
            user_id=data.get("userId", "user"),
        )


@dataclass
class OperationError:
    """A scored mistake (invalid entry, failed QC) made during the exercise."""

    phase: str
    description: str
    deduction: int
    standard_reference: str = ""
    id: str = field(default_factory=lambda: new_id("ERR"))
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "phase": self.phase,
            "description": self.description,
            "deduction": self.deduction,
            "standardReference": self.standard_reference,
            "timestamp": to_iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OperationError":
        return cls(
            id=data["id"],
            phase=data["phase"],
            description=data.get("description", ""),
            deduction=int(data.get("deduction", 0)),
            standard_reference=data.get("standardReference", ""),
            timestamp=from_iso(data.get("timestamp")) or utc_now(),
        )


@dataclass
class DataVersion:
    """Snapshot of a record taken before an edit or restore."""

    data_id: str
    version: int
    data: dict
    change_description: str
    created_by: str = "user"
    version_id: str = field(default_factory=lambda: new_id("VER"))
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "versionId": self.version_id,
            "dataId": self.data_id,
            "version": self.version,
            "data": copy.deepcopy(self.data),
            "createdAt": to_iso(self.created_at),
            "createdBy": self.created_by,
            "changeDescription": self.change_description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DataVersion":
        return cls(
            version_id=data["versionId"],
            data_id=data["dataId"],
            version=int(data["version"]),
            data=data["data"],
            created_at=from_iso(data.get("createdAt")) or utc_now(),
            created_by=data.get("createdBy", "user"),
            change_description=data.get("changeDescription", ""),
        )
