from __future__ import annotations

from pathlib import Path

import pytest

from observability.errors import StorageQuotaExceeded
from observability.storage import DuckDBStorage, InMemoryStorage


def test_in_memory_storage_get_set_remove() -> None:
    storage = InMemoryStorage()
    assert storage.get_item("k") is None

    storage.set_item("k", "v1")
    storage.set_item("k", "v2")
    assert storage.get_item("k") == "v2"

    storage.remove_item("k")
    storage.remove_item("k")
    assert storage.get_item("k") is None


def test_in_memory_quota_rejects_oversized_value_and_keeps_previous() -> None:
    storage = InMemoryStorage(quota_bytes=8)
    storage.set_item("k", "small")

    with pytest.raises(StorageQuotaExceeded) as excinfo:
        storage.set_item("k", "x" * 9)

    assert excinfo.value.key == "k"
    assert excinfo.value.size == 9
    assert storage.get_item("k") == "small"


def test_duckdb_storage_replaces_values_and_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "store.duckdb"
    storage = DuckDBStorage(path=path)
    try:
        storage.set_item("live-probe-enabled", "false")
        storage.set_item("live-probe-enabled", "true")
        storage.set_item("other", "x")
        storage.remove_item("other")
    finally:
        storage.close()

    reopened = DuckDBStorage(path=path)
    try:
        assert reopened.get_item("live-probe-enabled") == "true"
        assert reopened.get_item("other") is None
    finally:
        reopened.close()


def test_duckdb_storage_custom_table(tmp_path: Path) -> None:
    storage = DuckDBStorage(path=tmp_path / "store.duckdb", table="probe_kv")
    try:
        storage.set_item("k", "v")
        assert storage.get_item("k") == "v"
    finally:
        storage.close()
