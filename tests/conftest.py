"""
Shared fixtures for envmon-processing tests.
"""

import pytest

from envmon_processing.data.records import MonitoringDataRecord
from envmon_processing.session import ProcessingSession
from envmon_processing.storage import InMemoryStore


def make_record(
    record_id: str = "DATA-1",
    parameter: str = "pH",
    value=7.5,
    **overrides,
) -> MonitoringDataRecord:
    """Valid stored record with sensible defaults."""
    fields = {
        "sample_id": "WS20240101",
        "sample_type": "地表水",
        "parameter": parameter,
        "value": value,
        "unit": "",
        "measurement_date": "2024-01-01",
        "measurement_time": "09:00",
        "analyst": "张三",
        "instrument": "pH meter",
        "method": "GB 6920",
    }
    fields.update(overrides)
    return MonitoringDataRecord.from_input(
        record_id, fields, is_valid=True, validation_message="validation passed"
    )


@pytest.fixture
def valid_input():
    """Caller input for one valid pH measurement."""
    return {
        "sample_id": "WS20240101",
        "sample_type": "地表水",
        "parameter": "pH",
        "value": 7.5,
        "unit": "",
        "measurement_date": "2024-01-01",
        "measurement_time": "09:00",
        "analyst": "张三",
        "instrument": "pH meter",
        "method": "GB 6920",
    }


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def session(store):
    """Initialized session backed by an in-memory store."""
    s = ProcessingSession(store=store, session_id="test")
    s.init()
    return s


@pytest.fixture
def ph_records():
    values = [7.0, 7.2, 7.4, 7.1, 7.3]
    return [make_record(f"DATA-{i}", "pH", v) for i, v in enumerate(values)]
