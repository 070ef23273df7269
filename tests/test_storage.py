import json
from datetime import timezone

import pytest

from MaruLog.clock import FixedClock
from MaruLog.errors import PersistenceCorruptError, PersistenceIOError
from MaruLog.models import SCHEMA_VERSION, ActivityLogEntry
from MaruLog.storage import JsonFileAdapter, MemoryAdapter, decode_entries, encode_entries
from MaruLog.store import ActivityLogStore

T0 = 1_700_000_000_000


@pytest.fixture
def entries():
    return [
        ActivityLogEntry(id="a", category_id="sleep", start_time=T0, end_time=T0 + 28_800_000),
        ActivityLogEntry(id="b", category_id="meal", start_time=T0 - 60_000, end_time=T0),
        ActivityLogEntry(id="c", category_id="school_work", start_time=T0 + 30_000_000, end_time=None),
    ]


def test_encode_uses_versioned_camel_case_document(entries):
    raw = json.loads(encode_entries(entries))
    assert raw["schemaVersion"] == SCHEMA_VERSION
    assert raw["entries"][0] == {"id": "a", "categoryId": "sleep", "startTime": T0, "endTime": T0 + 28_800_000}
    assert raw["entries"][2]["endTime"] is None


def test_save_of_load_preserves_collection(entries):
    adapter = MemoryAdapter.with_entries(entries)
    loaded = adapter.load()
    adapter.save(loaded)
    assert adapter.load() == entries
    assert [e.id for e in adapter.load()] == ["a", "b", "c"]


def test_decode_accepts_unversioned_list():
    legacy = json.dumps([
        {"id": "x", "categoryId": "move", "startTime": T0, "endTime": None},
        {"id": "y", "categoryId": "leisure", "startTime": T0 - 10, "endTime": T0 - 5},
    ])
    decoded = decode_entries(legacy)
    assert [e.id for e in decoded] == ["x", "y"]
    assert decoded[0].is_open


def test_decode_empty_blob_is_empty_log():
    assert decode_entries("") == []
    assert decode_entries(b"  \n") == []


@pytest.mark.parametrize("blob", [
    "{broken",
    '"just a string"',
    '{"entries": []}',
    '{"schemaVersion": "1", "entries": []}',
    '{"schemaVersion": 1, "entries": [{"id": "a", "categoryId": "nap", "startTime": 1, "endTime": 2}]}',
    '{"schemaVersion": 1, "entries": [{"id": "a", "categoryId": "meal", "startTime": 5, "endTime": 2}]}',
    b"\xff\xfe",
])
def test_decode_rejects_corrupt_data(blob):
    with pytest.raises(PersistenceCorruptError):
        decode_entries(blob)


def test_decode_rejects_newer_schema():
    blob = json.dumps({"schemaVersion": SCHEMA_VERSION + 1, "entries": []})
    with pytest.raises(PersistenceCorruptError, match="schema version"):
        decode_entries(blob)


def test_json_file_adapter_missing_file_is_empty(tmp_path):
    adapter = JsonFileAdapter(tmp_path / "nested" / "log.json")
    assert adapter.load() == []


def test_json_file_adapter_round_trip(tmp_path, entries):
    path = tmp_path / "nested" / "log.json"
    adapter = JsonFileAdapter(path)
    adapter.save(entries)

    assert path.exists()
    assert not path.with_name("log.json.tmp").exists()
    assert JsonFileAdapter(path).load() == entries


def test_json_file_adapter_read_error(tmp_path):
    # A directory where the file should be makes the read fail.
    path = tmp_path / "log.json"
    path.mkdir()
    with pytest.raises(PersistenceIOError):
        JsonFileAdapter(path).load()


def test_json_file_adapter_write_error(tmp_path, monkeypatch, entries):
    def fail_replace(src, dst):
        raise OSError("read-only file system")

    monkeypatch.setattr("MaruLog.storage.os.replace", fail_replace)
    with pytest.raises(PersistenceIOError, match="read-only"):
        JsonFileAdapter(tmp_path / "log.json").save(entries)
    assert not (tmp_path / "log.json.tmp").exists()


def test_store_recovers_from_corrupt_file(tmp_path):
    path = tmp_path / "log.json"
    path.write_text("[{\"id\": ", encoding="utf-8")
    store = ActivityLogStore(JsonFileAdapter(path), clock=FixedClock(T0), tz=timezone.utc)

    assert store.entries == []
    assert isinstance(store.warnings[0], PersistenceCorruptError)

    store.start("meal")
    reloaded = JsonFileAdapter(path).load()
    assert [e.category_id for e in reloaded] == ["meal"]


def test_newer_schema_file_survives_next_save(tmp_path):
    path = tmp_path / "log.json"
    original = json.dumps({"schemaVersion": SCHEMA_VERSION + 1, "entries": [
        {"id": "keep", "categoryId": "meal", "startTime": T0 - 60_000, "endTime": T0},
    ]}).encode("utf-8")
    path.write_bytes(original)

    store = ActivityLogStore(JsonFileAdapter(path), clock=FixedClock(T0), tz=timezone.utc)
    store.start("sleep")

    moved = list(tmp_path.glob("log.json.corrupt-*"))
    assert len(moved) == 1
    assert moved[0].read_bytes() == original
    assert str(moved[0]) in str(store.warnings[0])
    assert [e.category_id for e in JsonFileAdapter(path).load()] == ["sleep"]


def test_unreadable_file_is_not_overwritten_when_it_cannot_be_moved(tmp_path, monkeypatch):
    path = tmp_path / "log.json"
    path.write_bytes(b"{broken")

    def fail_replace(src, dst):
        raise OSError("device busy")

    monkeypatch.setattr("MaruLog.storage.os.replace", fail_replace)
    store = ActivityLogStore(JsonFileAdapter(path), clock=FixedClock(T0), tz=timezone.utc)
    entry = store.start("meal")

    assert store.current_open_entry() == entry
    assert path.read_bytes() == b"{broken"
    assert isinstance(store.warnings[0], PersistenceCorruptError)
    assert isinstance(store.warnings[1], PersistenceIOError)
