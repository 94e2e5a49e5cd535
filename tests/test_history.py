"""Tests for the operation history store."""

import json
from pathlib import Path

import pytest

from tunnel_switcher.exceptions import StorageError
from tunnel_switcher.history import MAX_HISTORY_ENTRIES, HistoryEntry, HistoryStore


@pytest.fixture
def store(tmp_path: Path) -> HistoryStore:
    return HistoryStore(tmp_path / "history" / "history.json")


def test_empty_when_file_missing(store: HistoryStore):
    assert store.read() == []


def test_append_keeps_newest_first_and_caps(store: HistoryStore):
    for i in range(25):
        store.append(HistoryEntry(type="success", message=f"op {i}"))

    entries = store.read()
    assert len(entries) == MAX_HISTORY_ENTRIES == 20
    assert entries[0]["message"] == "op 24"
    assert entries[-1]["message"] == "op 5"


def test_entries_carry_a_timestamp(store: HistoryStore):
    store.append(HistoryEntry(type="error", message="Activation failed"))
    [entry] = store.read()
    assert entry["type"] == "error"
    assert entry["timestamp"]


def test_replace_overwrites_wholesale(store: HistoryStore):
    store.append(HistoryEntry(type="success", message="old"))
    store.replace([
        HistoryEntry(type="error", message="b", timestamp="2026-01-02T00:00:00Z"),
        HistoryEntry(type="success", message="a", timestamp="2026-01-01T00:00:00Z"),
    ])
    assert [e["message"] for e in store.read()] == ["b", "a"]


def test_replace_truncates_to_cap(store: HistoryStore):
    store.replace([HistoryEntry(type="success", message=str(i)) for i in range(30)])
    assert len(store.read()) == 20


def test_clear_is_idempotent(store: HistoryStore):
    store.append(HistoryEntry(type="success", message="x"))
    store.clear()
    store.clear()
    assert store.read() == []


def test_non_list_file_is_a_storage_error(store: HistoryStore):
    store.path.parent.mkdir(parents=True)
    store.path.write_text(json.dumps({"history": []}))
    with pytest.raises(StorageError):
        store.read()
