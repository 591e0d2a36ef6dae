"""Fixed-capacity, FIFO-evicting store of event records."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable, Sequence

from .models import EventRecord


class BoundedBuffer:
    """Ordered sequence holding at most `capacity` records (oldest evicted first)."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1. Got: {capacity}")
        self._capacity = capacity
        self._lock = threading.Lock()
        self._records: deque[EventRecord] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def append(self, record: EventRecord) -> EventRecord | None:
        """Append a record, returning the evicted record when at capacity."""
        with self._lock:
            evicted = self._records[0] if len(self._records) == self._capacity else None
            self._records.append(record)
            return evicted

    def extend(self, records: Iterable[EventRecord]) -> None:
        """Append records in order (used when rehydrating persisted entries)."""
        for record in records:
            self.append(record)

    def snapshot(self) -> Sequence[EventRecord]:
        """Return a point-in-time, read-only copy in insertion order."""
        with self._lock:
            return tuple(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
