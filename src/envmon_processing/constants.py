"""
Shared constants for environmental monitoring data processing.

Phase order, record statuses, analyte reference ranges (HJ 630-2011
practice), QC acceptance thresholds, and import/export column tables.
"""

from enum import Enum
from typing import NamedTuple


class Phase(str, Enum):
    DATA_ENTRY = "data_entry"
    DATA_REVIEW = "data_review"
    STATISTICS = "statistics"
    QUALITY_CONTROL = "quality_control"
    REPORT = "report"
    COMPLETE = "complete"


PHASE_ORDER = [
    Phase.DATA_ENTRY,
    Phase.DATA_REVIEW,
    Phase.STATISTICS,
    Phase.QUALITY_CONTROL,
    Phase.REPORT,
    Phase.COMPLETE,
]

PHASE_NAMES = {
    Phase.DATA_ENTRY: "Data Entry",
    Phase.DATA_REVIEW: "Data Review",
    Phase.STATISTICS: "Statistics",
    Phase.QUALITY_CONTROL: "Quality Control",
    Phase.REPORT: "Report",
    Phase.COMPLETE: "Complete",
}


class DataStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewDecision(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    MODIFY = "modify"


# Status a record takes after each review decision
DECISION_STATUS = {
    ReviewDecision.ACCEPT: DataStatus.APPROVED,
    ReviewDecision.REJECT: DataStatus.REJECTED,
    ReviewDecision.MODIFY: DataStatus.REVIEWED,
}


class ReferenceRange(NamedTuple):
    """Acceptable [min, max] for an analyte, with its unit."""

    min: float
    max: float
    unit: str = ""

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


REFERENCE_RANGES = {
    "pH": ReferenceRange(6.0, 9.0, ""),
    "COD": ReferenceRange(0, 40, "mg/L"),
    "BOD5": ReferenceRange(0, 10, "mg/L"),
    "NH3-N": ReferenceRange(0, 2.0, "mg/L"),
    "TP": ReferenceRange(0, 0.4, "mg/L"),
    "TN": ReferenceRange(0, 2.0, "mg/L"),
    "DO": ReferenceRange(2, 15, "mg/L"),
    "SS": ReferenceRange(0, 150, "mg/L"),
    "水温": ReferenceRange(0, 40, "°C"),
    "电导率": ReferenceRange(0, 2000, "μS/cm"),
    "浊度": ReferenceRange(0, 100, "NTU"),
    "总硬度": ReferenceRange(0, 450, "mg/L"),
    "氯化物": ReferenceRange(0, 250, "mg/L"),
    "硫酸盐": ReferenceRange(0, 250, "mg/L"),
    "铁": ReferenceRange(0, 0.3, "mg/L"),
    "锰": ReferenceRange(0, 0.1, "mg/L"),
    "铜": ReferenceRange(0, 1.0, "mg/L"),
    "锌": ReferenceRange(0, 1.0, "mg/L"),
    "铅": ReferenceRange(0, 0.05, "mg/L"),
    "镉": ReferenceRange(0, 0.005, "mg/L"),
    "汞": ReferenceRange(0, 0.001, "mg/L"),
    "砷": ReferenceRange(0, 0.05, "mg/L"),
    "六价铬": ReferenceRange(0, 0.05, "mg/L"),
}

# Fallback review range when the parameter has no reference entry
DEFAULT_REVIEW_RANGE = ReferenceRange(0, 100, "")

SAMPLE_TYPES = ["地表水", "地下水", "废水", "饮用水", "海水", "雨水"]

# Two upper-case letters followed by 6-10 digits, e.g. WS20240101
SAMPLE_ID_PATTERN = r"^[A-Z]{2}\d{6,10}$"

REQUIRED_FIELDS = ["sample_id", "parameter", "value", "measurement_date", "analyst"]

# Blank <= 0.5 x detection limit; parallel RD <= 20 %; spike recovery 80-120 %
BLANK_LIMIT_FACTOR = 0.5
PARALLEL_MAX_DEVIATION = 20.0
SPIKE_RECOVERY_MIN = 80.0
SPIKE_RECOVERY_MAX = 120.0
DEFAULT_DETECTION_LIMIT = 0.1

STANDARD_REFERENCE = "HJ 630-2011"
STORAGE_KEY_PREFIX = "data_processing_center_state"

DIMENSION_MAX_SCORE = 20
LOW_DIMENSION_SCORE = 15

# Record fields in export order: (snake_case attribute, camelCase wire name, Chinese header)
RECORD_FIELDS = [
    ("sample_id", "sampleId", "样品编号"),
    ("sample_type", "sampleType", "样品类型"),
    ("parameter", "parameter", "监测项目"),
    ("value", "value", "测量值"),
    ("unit", "unit", "单位"),
    ("measurement_date", "measurementDate", "测定日期"),
    ("measurement_time", "measurementTime", "测定时间"),
    ("analyst", "analyst", "分析人员"),
    ("instrument", "instrument", "使用仪器"),
    ("method", "method", "分析方法"),
    ("status", "status", "状态"),
    ("is_valid", "isValid", "是否有效"),
]

# Fields a caller may supply when entering or importing a record
INPUT_FIELDS = [f for f, _, _ in RECORD_FIELDS if f not in ("status", "is_valid")]

DEFAULT_COLUMN_MAPPING = {
    alias: field
    for field, camel, chinese in RECORD_FIELDS
    if field in INPUT_FIELDS
    for alias in (chinese, camel, field)
}
