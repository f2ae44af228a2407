"""
Filtering and sorting of monitoring records.

Filters are applied as a compound boolean mask over a DataFrame view of the
records; empty filter values (None or "") mean "no filter" for that key.
"""

from typing import Any, Iterable, Optional

import pandas as pd

from envmon_processing.constants import RECORD_FIELDS, DataStatus
from envmon_processing.data.records import MonitoringDataRecord
from envmon_processing.utils.natural_sort import natural_sort_key

# Filter keys compared for equality against a record attribute
EQUALITY_FILTERS = ("parameter", "status", "sample_type", "is_valid")
RANGE_FILTERS = ("date_from", "date_to", "value_min", "value_max")
FILTER_KEYS = EQUALITY_FILTERS + RANGE_FILTERS

SORTABLE_FIELDS = {attr for attr, _, _ in RECORD_FIELDS} | {"id", "created_at"}


def records_to_frame(records: list[MonitoringDataRecord]) -> pd.DataFrame:
    """One row per record (index = position in ``records``) for mask building."""
    return pd.DataFrame(
        {
            "parameter": [r.parameter for r in records],
            "status": [r.status.value for r in records],
            "sample_type": [r.sample_type for r in records],
            "is_valid": [bool(r.is_valid) for r in records],
            "measurement_date": [r.measurement_date for r in records],
            "value": [r.value for r in records],
        },
        index=pd.RangeIndex(len(records)),
    )


def _is_unset(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def _equality_mask(df: pd.DataFrame, col: str, selected: Any) -> pd.Series:
    if isinstance(selected, DataStatus):
        selected = selected.value
    if col == "is_valid":
        return df[col] == bool(selected)
    return df[col] == selected


def filter_monitoring_data(
    records: list[MonitoringDataRecord],
    filters: Optional[dict[str, Any]] = None,
) -> list[MonitoringDataRecord]:
    """
    Return the records matching every filter, in their original order.

    Args:
        records: Records to filter.
        filters: Mapping with any of ``parameter``, ``status``,
            ``sample_type``, ``is_valid`` (equality), ``date_from``,
            ``date_to`` (inclusive bounds on measurement_date) and
            ``value_min``, ``value_max`` (inclusive bounds on value).
            Unparseable dates or values never exclude a record.

    Raises:
        ValueError: On an unknown filter key.
    """
    filters = filters or {}
    unknown = set(filters) - set(FILTER_KEYS)
    if unknown:
        raise ValueError(
            f"Unknown filter keys {sorted(unknown)}. Available: {list(FILTER_KEYS)}"
        )
    if not records:
        return []

    df = records_to_frame(records)
    mask = pd.Series(True, index=df.index)

    for col in EQUALITY_FILTERS:
        selected = filters.get(col)
        if not _is_unset(selected):
            mask &= _equality_mask(df, col, selected)

    dates = pd.to_datetime(df["measurement_date"], errors="coerce", format="mixed")
    if not _is_unset(filters.get("date_from")):
        mask &= ~(dates < pd.to_datetime(filters["date_from"]))
    if not _is_unset(filters.get("date_to")):
        mask &= ~(dates > pd.to_datetime(filters["date_to"]))

    values = pd.to_numeric(df["value"], errors="coerce")
    if not _is_unset(filters.get("value_min")):
        mask &= ~(values < filters["value_min"])
    if not _is_unset(filters.get("value_max")):
        mask &= ~(values > filters["value_max"])

    return [records[i] for i in df.index[mask]]


def _sort_key(value: Any) -> tuple:
    # Missing values last, numbers before text, text in natural order
    if value is None or value == "":
        return (2, ())
    if isinstance(value, DataStatus):
        value = value.value
    if isinstance(value, str):
        return (1, natural_sort_key(value.lower()))
    return (0, value)


def sort_monitoring_data(
    records: Iterable[MonitoringDataRecord],
    field: str,
    order: str = "asc",
) -> list[MonitoringDataRecord]:
    """
    Return a new list sorted by a record attribute.

    Text compares case-insensitively in natural order ("WS2" before "WS10").

    Raises:
        ValueError: On an unknown field or an order other than asc/desc.
    """
    if field not in SORTABLE_FIELDS:
        raise ValueError(
            f"Cannot sort by '{field}'. Available: {sorted(SORTABLE_FIELDS)}"
        )
    if order not in ("asc", "desc"):
        raise ValueError(f"order must be 'asc' or 'desc', got '{order}'")
    return sorted(
        records,
        key=lambda r: _sort_key(getattr(r, field)),
        reverse=order == "desc",
    )
