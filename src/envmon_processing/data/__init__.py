"""
Monitoring record types and CSV/JSON/Excel import-export.
"""

from .io import (
    ImportResult,
    ImportRowError,
    ImportSummary,
    ImportValidationResult,
    export_to_csv,
    export_to_excel,
    export_to_json,
    import_to_session,
    map_columns,
    parse_csv_text,
    parse_json_text,
    read_csv,
    read_excel,
    validate_import_data,
)
from .records import (
    DataVersion,
    MonitoringDataRecord,
    OperationError,
    OperationRecord,
    ReviewedDataRecord,
)

__all__ = [
    "DataVersion",
    "ImportResult",
    "ImportRowError",
    "ImportSummary",
    "ImportValidationResult",
    "MonitoringDataRecord",
    "OperationError",
    "OperationRecord",
    "ReviewedDataRecord",
    "export_to_csv",
    "export_to_excel",
    "export_to_json",
    "import_to_session",
    "map_columns",
    "parse_csv_text",
    "parse_json_text",
    "read_csv",
    "read_excel",
    "validate_import_data",
]
