"""Tests for the key-value stores."""

import pytest

from envmon_processing.session import ProcessingSession
from envmon_processing.storage import InMemoryStore, JsonFileStore, PersistenceError


def test_in_memory_store():
    store = InMemoryStore()
    assert store.get("k") is None
    store.set("k", "v")
    assert store.get("k") == "v"
    assert "k" in store
    store.delete("k")
    store.delete("k")
    assert len(store) == 0


def test_json_file_store(tmp_path):
    store = JsonFileStore(tmp_path / "state")
    key = "data_processing_center_state:lab 1"
    assert store.get(key) is None

    store.set(key, '{"a": 1}')
    path = store.path_for(key)
    assert path.name == "data_processing_center_state_lab_1.json"
    assert path.read_text(encoding="utf-8") == '{"a": 1}'
    assert store.get(key) == '{"a": 1}'
    assert not path.with_suffix(".json.tmp").exists()

    store.delete(key)
    store.delete(key)
    assert store.get(key) is None


def test_json_file_store_read_error(tmp_path):
    store = JsonFileStore(tmp_path)
    store.path_for("k").mkdir()
    with pytest.raises(PersistenceError):
        store.get("k")


def test_session_restores_from_disk(tmp_path):
    session = ProcessingSession(store=JsonFileStore(tmp_path), session_id="lab")
    session.init()
    session.add_monitoring_data(
        {
            "sample_id": "WS20240101",
            "parameter": "氯化物",
            "value": 30.0,
            "measurement_date": "2024-01-01",
            "analyst": "王五",
        }
    )

    restored = ProcessingSession(store=JsonFileStore(tmp_path), session_id="lab")
    assert restored.restore_saved_state()
    record = restored.get_all_monitoring_data()[0]
    assert record.parameter == "氯化物"
    assert record.analyst == "王五"
