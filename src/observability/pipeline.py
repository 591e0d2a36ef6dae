"""Capture pipeline: the single choke point between interceptors and sinks.

`capture()` runs synchronously on the caller's thread and never raises:

1. stamp the record (non-decreasing wall clock) with the session id,
2. build the immutable `EventRecord` (values are masked by the caller) and
   drop it if it cannot be serialized to JSON,
3. append it to the bounded buffer,
4. persist the full snapshot (when persistence is enabled),
5. queue the record for remote delivery (when the remote sink is enabled),
6. notify the render sink.

Failures in steps 4-6 are reported on the diagnostic channel and never undo
the append.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from typing import Any

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from .buffer import BoundedBuffer
from .logging_config import get_logger
from .models import Category, EventRecord, color_for, utc_now
from .sinks import PersistenceSink, RemoteSink, RenderSink

logger = get_logger(__name__)


class CapturePipeline:
    """Builds records, appends them to the buffer and fans them out to sinks."""

    def __init__(
        self,
        *,
        session_id: str,
        buffer: BoundedBuffer,
        persistence: PersistenceSink | None = None,
        remote: RemoteSink | None = None,
        render: RenderSink | None = None,
    ) -> None:
        self._session_id = session_id
        self._buffer = buffer
        self._persistence = persistence
        self._remote = remote
        self._render = render

        # Serializes steps 1-6 so buffer order matches timestamp order.
        self._lock = threading.RLock()
        self._last_timestamp: datetime | None = None

        self._failures: dict[str, int] = {"persist": 0, "remote": 0, "render": 0}
        self._dropped = 0
        self._first_failure_at: datetime | None = None
        self._last_failure_at: datetime | None = None

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def buffer(self) -> BoundedBuffer:
        return self._buffer

    @property
    def persistence(self) -> PersistenceSink | None:
        return self._persistence

    @property
    def remote(self) -> RemoteSink | None:
        return self._remote

    def capture(
        self,
        category: str | Category,
        message: str,
        color: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> EventRecord | None:
        """Record one observation. Returns the record, or None if it was dropped."""
        with self._lock:
            try:
                record = EventRecord(
                    timestamp=self._next_timestamp(),
                    session_id=self._session_id,
                    category=category,
                    message=message,
                    color=color or color_for(category),
                    details=dict(details) if details is not None else None,
                )
                # Every sink and export needs the JSON shape.
                record.to_storage()
            except (ValidationError, PydanticSerializationError, TypeError, ValueError) as exc:
                self._dropped += 1
                logger.warning("Dropping malformed %s observation: %s", category, exc)
                return None

            self._buffer.append(record)

            if self._persistence is not None:
                try:
                    self._persistence.save(self._buffer.snapshot())
                except Exception:  # noqa: BLE001 - the buffer stays authoritative
                    self._note_failure("persist")
                    logger.warning("Failed to persist logs", exc_info=True)

            if self._remote is not None:
                try:
                    self._remote.enqueue(record)
                except Exception:  # noqa: BLE001 - delivery is best-effort
                    self._note_failure("remote")
                    logger.warning("Failed to queue log for the server", exc_info=True)

            if self._render is not None:
                try:
                    self._render.render(record)
                except Exception:  # noqa: BLE001 - presentation is not load-bearing
                    self._note_failure("render")
                    logger.warning("Render sink failed", exc_info=True)

            return record

    def rehydrate(self, records: Iterable[EventRecord]) -> None:
        """Load previously persisted records into the buffer without fan-out."""
        with self._lock:
            self._buffer.extend(records)

    def snapshot(self) -> Sequence[EventRecord]:
        return self._buffer.snapshot()

    def clear(self) -> None:
        """Empty the buffer (and the persisted copy, when persistence is enabled)."""
        with self._lock:
            self._buffer.clear()
            if self._persistence is not None:
                try:
                    self._persistence.save(())
                except Exception:  # noqa: BLE001 - the buffer stays authoritative
                    self._note_failure("persist")
                    logger.warning("Failed to persist cleared logs", exc_info=True)

    def _next_timestamp(self) -> datetime:
        now = utc_now()
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    def _note_failure(self, sink: str) -> None:
        now = utc_now()
        self._failures[sink] += 1
        self._first_failure_at = self._first_failure_at or now
        self._last_failure_at = now

    def degraded_status(self) -> dict[str, Any]:
        """Return a minimal degraded-status snapshot."""
        status: dict[str, Any] = {
            "persist_failures": self._failures["persist"],
            "remote_failures": self._failures["remote"],
            "render_failures": self._failures["render"],
            "dropped": self._dropped,
            "first_failure_at": self._first_failure_at,
            "last_failure_at": self._last_failure_at,
        }
        if self._remote is not None:
            status["remote"] = self._remote.degraded_status()
        return status
