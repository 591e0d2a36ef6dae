"""Event record sinks (render, persistence, remote delivery)."""

from __future__ import annotations

import json
import queue
import threading
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol
from urllib.parse import urljoin, urlsplit

import requests
from pydantic import TypeAdapter

from .context import suppress_capture
from .errors import EndpointRefused
from .logging_config import get_logger
from .models import EventRecord, utc_now
from .storage import LOGS_KEY, DurableStorage

logger = get_logger(__name__)
render_logger = get_logger("observability.render")

_RECORDS = TypeAdapter(list[EventRecord])

_DEFAULT_PORTS = {"http": 80, "https": 443}


class RenderSink(Protocol):
    """Presentation consumer notified with every new record."""

    def render(self, record: EventRecord) -> None:
        """Display a single record."""


class LoggingRenderSink:
    """Render sink that echoes `[CATEGORY] message` lines to a logger."""

    def __init__(self, log: Any = None) -> None:
        self._log = log or render_logger

    def render(self, record: EventRecord) -> None:
        self._log.info("[%s] %s", record.category, record.message)


class PersistenceSink:
    """Serializes buffer snapshots under a single durable-storage key."""

    def __init__(self, storage: DurableStorage, *, key: str = LOGS_KEY) -> None:
        self._storage = storage
        self._key = key

    @property
    def storage(self) -> DurableStorage:
        return self._storage

    def save(self, entries: Sequence[EventRecord]) -> None:
        """Write the full snapshot as a JSON array (replaces the previous one).

        Storage failures (quota, I/O) propagate to the caller.
        """
        payload = json.dumps([entry.to_storage() for entry in entries], separators=(",", ":"))
        self._storage.set_item(self._key, payload)

    def load(self) -> list[EventRecord]:
        """Return the stored entries in order, or `[]` when absent or corrupt."""
        try:
            raw = self._storage.get_item(self._key)
        except Exception:  # noqa: BLE001 - a broken store must not block initialization
            logger.warning("Failed to read persisted logs from %r", self._key, exc_info=True)
            return []
        if not raw:
            return []
        try:
            return _RECORDS.validate_json(raw)
        except ValueError:
            logger.warning("Discarding corrupt persisted logs under %r", self._key)
            return []


def _origin_tuple(scheme: str, netloc: str) -> tuple[str, str, int | None]:
    parts = urlsplit(f"{scheme}://{netloc}")
    scheme = scheme.lower()
    return scheme, (parts.hostname or "").lower(), parts.port or _DEFAULT_PORTS.get(scheme)


def resolve_endpoint(endpoint: str, origin: str | None) -> str:
    """Resolve `endpoint` against `origin`, enforcing same-origin.

    Relative paths are joined onto the origin. Absolute (or scheme-relative)
    URLs are allowed only when scheme, host and port all match the origin.

    Raises:
    - `EndpointRefused` for cross-origin endpoints, or any endpoint when no
      origin is known.
    """
    target = urlsplit(endpoint)
    if origin is None:
        raise EndpointRefused(endpoint, origin=origin)
    base = urlsplit(origin)

    if not target.scheme and not target.netloc:
        url = urljoin(origin, endpoint)
        target = urlsplit(url)
    else:
        url = endpoint
        if not target.scheme:
            url = f"{base.scheme}:{endpoint}"
            target = urlsplit(url)

    if _origin_tuple(target.scheme, target.netloc) != _origin_tuple(base.scheme, base.netloc):
        raise EndpointRefused(endpoint, origin=origin)
    return url


class RemoteSink:
    """Best-effort, one-POST-per-record delivery on a background thread.

    Records are queued without blocking the caller; a single daemon worker
    drains the queue. Failed sends are dropped, never retried.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        origin: str | None,
        session: requests.Session | None = None,
        timeout_s: float = 5.0,
        max_queue_size: int = 1000,
    ) -> None:
        """Create a remote sink.

        Args:
            endpoint: Relative path or same-origin absolute URL.
            origin: The host's own origin (`scheme://host[:port]`).
            session: HTTP session used for delivery (a private one by default).
            timeout_s: Per-request timeout.
            max_queue_size: Bound for queued records; records are dropped when
                full to avoid blocking capture.
        """
        self.endpoint = endpoint
        self.origin = origin
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._timeout_s = timeout_s
        self._queue: queue.Queue[EventRecord | None] = queue.Queue(maxsize=max_queue_size)
        self._worker: threading.Thread | None = None
        self._start_lock = threading.Lock()
        self._closed = False

        self._failures = 0
        self._dropped = 0
        self._first_failure_at: datetime | None = None
        self._last_failure_at: datetime | None = None

    def _ensure_started(self) -> None:
        """Start the background delivery thread if it hasn't been started yet."""
        with self._start_lock:
            if self._worker is not None:
                return
            self._worker = threading.Thread(target=self._run_worker, name="live-probe-remote", daemon=True)
            self._worker.start()

    def enqueue(self, record: EventRecord) -> bool:
        """Queue a record for delivery (non-blocking). Returns False if dropped."""
        if self._closed:
            return False
        self._ensure_started()
        try:
            self._queue.put_nowait(record)
        except queue.Full:
            self._dropped += 1
            self._note_failure()
            logger.debug("Remote queue full; dropping %s record", record.category)
            return False
        return True

    def send(self, record: EventRecord) -> bool:
        """Deliver a single record now. Returns True on a 2xx response."""
        try:
            url = resolve_endpoint(self.endpoint, self.origin)
        except EndpointRefused as exc:
            self._note_failure()
            logger.warning("%s", exc)
            return False

        try:
            with suppress_capture():
                resp = self._session.post(
                    url,
                    data=json.dumps(record.to_wire()),
                    headers={"Content-Type": "application/json"},
                    timeout=self._timeout_s,
                )
        except requests.RequestException as exc:
            self._note_failure()
            logger.warning("Failed to send log to server: %s", exc)
            return False

        if not 200 <= resp.status_code < 300:
            self._note_failure()
            logger.warning("Log server %s answered HTTP %s", url, resp.status_code)
            return False
        return True

    def flush(self) -> None:
        """Block until every queued record has been attempted."""
        if self._worker is not None:
            self._queue.join()

    def close(self, timeout_s: float | None = 5.0) -> None:
        """Drain the queue and stop the worker.

        Safe to call multiple times.
        """
        if self._closed:
            return
        self._closed = True
        if self._worker is not None:
            self._queue.put(None)
            self._worker.join(timeout_s)
        if self._owns_session:
            self._session.close()

    def _run_worker(self) -> None:
        """Background loop that drains the queue and posts records."""
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                self.send(item)
            except Exception:  # noqa: BLE001 - delivery must not kill the worker
                self._note_failure()
                logger.warning("Unexpected remote delivery failure", exc_info=True)
            finally:
                self._queue.task_done()

    def _note_failure(self) -> None:
        now = utc_now()
        self._failures += 1
        self._first_failure_at = self._first_failure_at or now
        self._last_failure_at = now

    def degraded_status(self) -> dict[str, Any]:
        """Return a minimal degraded-status snapshot."""
        return {
            "failures": self._failures,
            "dropped": self._dropped,
            "first_failure_at": self._first_failure_at,
            "last_failure_at": self._last_failure_at,
        }
