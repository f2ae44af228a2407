"""
Import and export of monitoring records as CSV, JSON and Excel.

Imports go through one pipeline: read a table, rename source columns to
canonical snake_case fields via a column mapping (unmapped columns are
dropped), coerce ``value`` to a number where it parses, then apply the same
hard-error rules as record validation. A bad row is reported, never fatal.
"""

import csv
import io
import itertools
import json
import logging
import re
import warnings
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
from pandas.errors import EmptyDataError, ParserError, ParserWarning

from envmon_processing.constants import DEFAULT_COLUMN_MAPPING, RECORD_FIELDS
from envmon_processing.data.records import MonitoringDataRecord
from envmon_processing.processing.validation import required_field_errors

if TYPE_CHECKING:
    from envmon_processing.session import ProcessingSession

logger = logging.getLogger(__name__)

DEFAULT_SHEET_NAME = "监测数据"
JSON_ONLY_FIELDS = {"status": "status", "isValid": "is_valid", "is_valid": "is_valid"}


@dataclass(frozen=True)
class ImportRowError:
    """One failed rule in one imported row; row 0 means the whole file."""

    row: int
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"row": self.row, "field": self.field, "message": self.message}


@dataclass
class ImportResult:
    """
    Parsed rows with their validation errors.

    ``data`` holds snake_case field dicts; invalid rows are kept unless
    ``skip_invalid`` was requested.
    """

    success: bool
    total_rows: int
    imported_rows: int
    errors: list[ImportRowError] = field(default_factory=list)
    data: list[dict] = field(default_factory=list)


@dataclass
class ImportValidationResult:
    is_valid: bool
    total_rows: int
    valid_rows: int
    invalid_rows: int
    errors: list[ImportRowError] = field(default_factory=list)
    valid_data: list[dict] = field(default_factory=list)


@dataclass
class ImportSummary:
    success: bool
    message: str
    imported: int
    total: int
    errors: list[ImportRowError] = field(default_factory=list)


def _failed(message: str) -> ImportResult:
    return ImportResult(
        success=False,
        total_rows=0,
        imported_rows=0,
        errors=[ImportRowError(0, "", message)],
    )


def map_columns(source_columns: Sequence[str], target_fields: Sequence[str]) -> dict[str, str]:
    """Pair source headers with target fields position by position, skipping blanks."""
    return {
        src: dst for src, dst in zip(source_columns, target_fields) if src and dst
    }


def _row_errors(row: Mapping[str, Any], row_number: int) -> list[ImportRowError]:
    return [
        ImportRowError(row_number, fld, f"row {row_number}: {msg}")
        for fld, msg in required_field_errors(row)
    ]


def _coerce_value(value: Any) -> Any:
    """Numeric strings become floats; anything unparseable is kept as given."""
    if isinstance(value, str):
        if value == "":
            return value
        parsed = pd.to_numeric(value, errors="coerce")
        return value if pd.isna(parsed) else float(parsed)
    if isinstance(value, (int, float, np.number)) and not isinstance(value, bool):
        return float(value)
    return value


def _cell_text(value: Any) -> str:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return ""
    if isinstance(value, (pd.Timestamp, datetime)):
        if value.hour == value.minute == value.second == 0:
            return value.strftime("%Y-%m-%d")
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value).strip()


def _map_row(row: Mapping[str, Any], column_mapping: Mapping[str, str]) -> dict:
    mapped = {}
    for source, val in row.items():
        target = column_mapping.get(source) or column_mapping.get(str(source).strip())
        if target:
            mapped[target] = val
    return mapped


def _process_frame(
    df: pd.DataFrame,
    *,
    column_mapping: Optional[Mapping[str, str]],
    skip_invalid: bool,
    first_row_number: int,
    unreadable: Optional[Mapping[int, str]] = None,
) -> ImportResult:
    mapping = column_mapping or DEFAULT_COLUMN_MAPPING
    unreadable = unreadable or {}
    errors = [
        ImportRowError(n, "", f"row {n}: could not parse line: {reason}")
        for n, reason in sorted(unreadable.items())
    ]
    data = []
    imported = 0

    # rows pandas could not rebuild keep their numbers
    row_numbers = (
        n for n in itertools.count(first_row_number) if n not in unreadable
    )
    for row_number, raw in zip(row_numbers, df.to_dict(orient="records")):
        mapped = _map_row(raw, mapping)
        mapped = {
            k: (_coerce_value(v) if k == "value" else _cell_text(v))
            for k, v in mapped.items()
        }
        row_errors = _row_errors(mapped, row_number)
        errors.extend(row_errors)
        if not row_errors:
            data.append(mapped)
            imported += 1
        elif not skip_invalid:
            data.append(mapped)

    total = len(df) + len(unreadable)
    logger.info("Parsed %d row(s), %d valid", total, imported)
    return ImportResult(
        success=not errors or skip_invalid,
        total_rows=total,
        imported_rows=imported,
        errors=errors,
        data=data,
    )


_SKIPPED_LINE = re.compile(r"Skipping line (\d+): (.*)", re.DOTALL)


def _skipped_lines(caught: Sequence[warnings.WarningMessage]) -> dict[int, str]:
    """Line number -> reason for each line pandas reported and left out."""
    skipped = {}
    for w in caught:
        match = _SKIPPED_LINE.match(str(w.message))
        if issubclass(w.category, ParserWarning) and match:
            skipped[int(match.group(1))] = match.group(2).strip()
        else:
            warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)
    return skipped


def parse_csv_text(
    text: str,
    delimiter: str = ",",
    *,
    has_header: bool = True,
    column_mapping: Optional[Mapping[str, str]] = None,
    skip_invalid: bool = False,
) -> ImportResult:
    """
    Parse CSV text into validated, field-mapped rows.

    Quoted fields may contain the delimiter, doubled quotes and line breaks.
    Fields are trimmed and empty lines skipped; a line of bare delimiters is
    a row of blank fields and fails validation. Without a header the columns
    are named ``column1..N`` after the first line's width; extra trailing
    fields on later lines are dropped. A line the reader cannot rebuild (a
    bare carriage return in an unquoted field) is reported as a row error
    under its own row number.

    Args:
        text: CSV content.
        delimiter: Field separator.
        has_header: Whether the first line holds column names.
        column_mapping: Source header -> snake_case field; defaults to
            DEFAULT_COLUMN_MAPPING (Chinese, camelCase and snake_case headers).
        skip_invalid: Leave invalid rows out of ``data`` and report success.

    Returns:
        ImportResult. Empty or unreadable input gives ``success=False`` with
        a row-0 error.
    """
    if not text or not text.strip():
        return _failed("file is empty")

    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", ParserWarning)
            df = pd.read_csv(
                io.StringIO(text),
                sep=delimiter,
                header=0 if has_header else None,
                dtype=str,
                index_col=False,
                keep_default_na=False,
                quotechar='"',
                doublequote=True,
                skipinitialspace=True,
                engine="python",
                on_bad_lines="warn",
            )
    except EmptyDataError:
        return _failed("file is empty")
    except (ParserError, ValueError) as e:
        logger.warning("Could not parse CSV: %s", e)
        return _failed(f"could not parse CSV: {e}")

    unreadable = _skipped_lines(caught)
    for row_number, reason in unreadable.items():
        logger.warning("Could not parse CSV line %d: %s", row_number, reason)

    df = df.fillna("").apply(lambda col: col.str.strip())
    if not has_header:
        df.columns = [f"column{i + 1}" for i in range(df.shape[1])]
    else:
        df.columns = [str(c).strip() for c in df.columns]

    return _process_frame(
        df,
        column_mapping=column_mapping,
        skip_invalid=skip_invalid,
        first_row_number=2 if has_header else 1,
        unreadable=unreadable,
    )


def read_csv(
    file_path: Union[str, Path],
    delimiter: str = ",",
    *,
    encoding: str = "utf-8",
    **kwargs: Any,
) -> ImportResult:
    """Read a CSV file and parse it with parse_csv_text."""
    path = Path(file_path)
    try:
        text = path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s: %s", path, e)
        return _failed(f"could not read file: {e}")
    return parse_csv_text(text, delimiter, **kwargs)


def read_excel(
    file_path: Union[str, Path],
    sheet_name: Union[str, int] = 0,
    *,
    has_header: bool = True,
    column_mapping: Optional[Mapping[str, str]] = None,
    skip_invalid: bool = False,
) -> ImportResult:
    """
    Read one worksheet of an .xlsx workbook into validated rows.

    Date cells become ``YYYY-MM-DD`` text; numeric ``value`` cells are kept
    as numbers.
    """
    path = Path(file_path)
    try:
        df = pd.read_excel(
            path, sheet_name=sheet_name, header=0 if has_header else None
        )
    except (OSError, ValueError, KeyError, zipfile.BadZipFile) as e:
        logger.warning("Could not read %s: %s", path, e)
        return _failed(f"could not read file: {e}")

    if not has_header:
        df.columns = [f"column{i + 1}" for i in range(df.shape[1])]
    df = df.dropna(how="all").reset_index(drop=True)
    if df.empty:
        return _failed("file is empty")

    return _process_frame(
        df.astype(object).where(df.notna(), ""),
        column_mapping=column_mapping,
        skip_invalid=skip_invalid,
        first_row_number=2 if has_header else 1,
    )


def parse_json_text(text: str) -> ImportResult:
    """
    Parse a JSON array as written by export_to_json.

    Keys are mapped to snake_case; ``status`` and ``isValid`` are kept.
    """
    try:
        items = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Could not parse JSON: %s", e)
        return _failed(f"could not parse JSON: {e}")
    if not isinstance(items, list):
        return _failed("expected a JSON array of records")

    mapping = {**DEFAULT_COLUMN_MAPPING, **JSON_ONLY_FIELDS}
    errors = []
    data = []
    for i, item in enumerate(items):
        row_number = i + 1
        if not isinstance(item, Mapping):
            errors.append(
                ImportRowError(row_number, "", f"row {row_number}: not an object")
            )
            continue
        row = _map_row(item, mapping)
        row_errors = _row_errors(row, row_number)
        errors.extend(row_errors)
        data.append(row)

    return ImportResult(
        success=not errors,
        total_rows=len(items),
        imported_rows=len(items) - len({e.row for e in errors}),
        errors=errors,
        data=data,
    )


def export_rows(
    records: Iterable[MonitoringDataRecord],
    *,
    use_chinese_headers: bool = True,
) -> list[dict]:
    """
    One dict per record in export column order.

    Chinese headers render validity as 是/否; English headers use the
    camelCase field names and a boolean.
    """
    rows = []
    for record in records:
        row = {}
        for attr, camel, chinese in RECORD_FIELDS:
            val = getattr(record, attr)
            if attr == "status":
                val = val.value
            elif attr == "is_valid" and use_chinese_headers:
                val = "是" if val else "否"
            row[chinese if use_chinese_headers else camel] = val
        rows.append(row)
    return rows


def export_to_csv(
    records: Sequence[MonitoringDataRecord],
    delimiter: str = ",",
    *,
    include_headers: bool = True,
    use_chinese_headers: bool = True,
) -> str:
    """
    Render records as CSV text.

    Fields containing the delimiter, a quote or a line break are quoted,
    with inner quotes doubled. Lines end in ``\\n`` with no trailing newline.
    No records give an empty string.
    """
    if not records:
        return ""
    df = pd.DataFrame(export_rows(records, use_chinese_headers=use_chinese_headers))
    # the writer only quotes characters of its own line terminator
    has_cr = df.map(lambda v: isinstance(v, str) and "\r" in v).to_numpy().any()
    text = df.to_csv(
        sep=delimiter,
        index=False,
        header=include_headers,
        lineterminator="\n",
        quotechar='"',
        doublequote=True,
        quoting=csv.QUOTE_ALL if has_cr else csv.QUOTE_MINIMAL,
    )
    return text[:-1] if text.endswith("\n") else text


def export_to_json(records: Iterable[MonitoringDataRecord]) -> str:
    """JSON array of the twelve public record fields."""
    return json.dumps(
        [r.to_export_dict() for r in records], ensure_ascii=False, indent=2
    )


def export_to_excel(
    records: Sequence[MonitoringDataRecord],
    file_path: Union[str, Path],
    *,
    sheet_name: str = DEFAULT_SHEET_NAME,
    include_headers: bool = True,
    use_chinese_headers: bool = True,
) -> Path:
    """Write records to an .xlsx workbook and return its path."""
    path = Path(file_path)
    columns = [c if use_chinese_headers else camel for _, camel, c in RECORD_FIELDS]
    df = pd.DataFrame(
        export_rows(records, use_chinese_headers=use_chinese_headers),
        columns=columns,
    )
    df.to_excel(
        path,
        sheet_name=sheet_name,
        index=False,
        header=include_headers,
        engine="openpyxl",
    )
    logger.info("Exported %d record(s) to %s", len(df), path)
    return path


def validate_import_data(rows: Sequence[Mapping[str, Any]]) -> ImportValidationResult:
    """
    Apply the hard-error validation rules to each row (numbered from 1).

    Rows may use snake_case, camelCase or Chinese keys.
    """
    errors: list[ImportRowError] = []
    valid_data = []
    for i, raw in enumerate(rows):
        row = _map_row(raw, DEFAULT_COLUMN_MAPPING)
        row_errors = _row_errors(row, i + 1)
        if row_errors:
            errors.extend(row_errors)
        else:
            valid_data.append(dict(raw))

    return ImportValidationResult(
        is_valid=not errors,
        total_rows=len(rows),
        valid_rows=len(valid_data),
        invalid_rows=len(rows) - len(valid_data),
        errors=errors,
        valid_data=valid_data,
    )


def import_to_session(
    session: "ProcessingSession",
    rows: Iterable[Mapping[str, Any]],
) -> ImportSummary:
    """
    Add each row to the session via add_monitoring_data.

    Invalid rows are still stored by the session (flagged invalid) and are
    reported in ``errors``.
    """
    imported = 0
    total = 0
    errors = []
    for i, row in enumerate(rows):
        total += 1
        result = session.add_monitoring_data(
            _map_row(row, DEFAULT_COLUMN_MAPPING)
        )
        if result.is_valid:
            imported += 1
        else:
            errors.append(ImportRowError(i + 1, "", f"row {i + 1}: {result.message}"))

    logger.info("Imported %d of %d row(s) into session", imported, total)
    return ImportSummary(
        success=not errors,
        message=f"imported {imported} record(s)",
        imported=imported,
        total=total,
        errors=errors,
    )
