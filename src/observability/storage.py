"""Durable key/value storage backends for the persistence sink."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import duckdb

from .errors import StorageQuotaExceeded

TOGGLE_KEY = "live-probe-enabled"
LOGS_KEY = "live-probe-logs"


class DurableStorage(Protocol):
    """A synchronous string key/value store (the host's `localStorage`)."""

    def get_item(self, key: str) -> str | None:
        """Return the stored value, or None when absent."""

    def set_item(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    def remove_item(self, key: str) -> None:
        """Delete a key (no-op when absent)."""

    def close(self) -> None:
        """Close any underlying resources."""


class InMemoryStorage:
    """In-memory store for tests and short-lived hosts.

    An optional `quota_bytes` makes `set_item` raise `StorageQuotaExceeded`
    when a single value would exceed it.
    """

    def __init__(self, *, quota_bytes: int | None = None) -> None:
        self._lock = threading.Lock()
        self._items: dict[str, str] = {}
        self._quota_bytes = quota_bytes

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        size = len(value.encode("utf-8"))
        if self._quota_bytes is not None and size > self._quota_bytes:
            raise StorageQuotaExceeded(key=key, size=size, quota=self._quota_bytes)
        with self._lock:
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def close(self) -> None:  # noqa: D401 - keep interface consistent
        """No-op."""


@dataclass(frozen=True)
class DuckDBOptions:
    path: Path
    table: str = "live_probe_storage"


class DuckDBStorage:
    """DuckDB-backed key/value store for durable local persistence."""

    def __init__(self, *, path: str | Path, table: str = "live_probe_storage") -> None:
        """Create (or open) a DuckDB-backed store at the given path."""
        self._opts = DuckDBOptions(path=Path(path), table=table)
        self._lock = threading.Lock()
        self._conn = duckdb.connect(str(self._opts.path))
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        """Create the backing table if it does not exist yet."""
        create_sql = f"""
        create table if not exists {self._opts.table} (
          key varchar primary key,
          value varchar not null
        )
        """
        with self._lock:
            self._conn.execute(create_sql)

    def get_item(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                f"select value from {self._opts.table} where key = ?",
                [key],
            ).fetchone()
        return None if row is None else row[0]

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                f"insert or replace into {self._opts.table} (key, value) values (?, ?)",
                [key, value],
            )

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._conn.execute(f"delete from {self._opts.table} where key = ?", [key])

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        with self._lock:
            self._conn.close()
