"""
envmon-processing - Environmental Monitoring Data Processing

Validation, anomaly detection, descriptive statistics, quality control,
import/export, reporting and scoring for an environmental-monitoring
data-processing exercise, orchestrated by a phase-driven ProcessingSession.
"""

from .assessment import (
    calculate_score,
    describe,
    detect_anomalies,
    evaluate_qc,
)
from .config import DetectionConfig, SessionConfig
from .constants import DataStatus, Phase, ReviewDecision
from .data import (
    export_to_csv,
    export_to_json,
    import_to_session,
    parse_csv_text,
    parse_json_text,
    validate_import_data,
)
from .processing import validate_data_record
from .report import build_report, preview_report
from .session import OperationResult, ProcessingSession, ProcessingState
from .storage import InMemoryStore, JsonFileStore

__version__ = "0.1.0"

__all__ = [
    "DataStatus",
    "DetectionConfig",
    "InMemoryStore",
    "JsonFileStore",
    "OperationResult",
    "Phase",
    "ProcessingSession",
    "ProcessingState",
    "ReviewDecision",
    "SessionConfig",
    "build_report",
    "calculate_score",
    "describe",
    "detect_anomalies",
    "evaluate_qc",
    "export_to_csv",
    "export_to_json",
    "import_to_session",
    "parse_csv_text",
    "parse_json_text",
    "preview_report",
    "validate_data_record",
    "validate_import_data",
    "__version__",
]
