"""Live probe: wires configuration, storage, sinks and interceptors together.

`LiveProbe` is the explicit context object for one capture session. The
module-level `init()` / `capture()` / `shutdown()` functions manage a single
process-wide probe for hosts that want the one-call setup; `init()` is
idempotent, so calling it twice never creates a second buffer writing the
same storage key.
"""

from __future__ import annotations

import asyncio
import json
import threading
import uuid
from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import urlsplit

import duckdb
import requests

from config import ProbeConfig
from interceptors.base import Interceptor
from interceptors.bus import BusInterceptor, LifecycleBus
from interceptors.dom import DomInterceptor, EventTarget
from interceptors.errors import ErrorInterceptor
from interceptors.network import FetchInterceptor, HttpClientInterceptor
from observability.buffer import BoundedBuffer
from observability.logging_config import get_logger
from observability.models import Category, EventRecord, color_for, iso_timestamp, utc_now
from observability.pipeline import CapturePipeline
from observability.sinks import LoggingRenderSink, PersistenceSink, RemoteSink, RenderSink
from observability.storage import TOGGLE_KEY, DuckDBStorage, DurableStorage, InMemoryStorage

logger = get_logger(__name__)

VERSION = "1.0.0"


def new_session_id() -> str:
    """Opaque identifier, generated once per probe."""
    return uuid.uuid4().hex


class LiveProbe:
    """One capture session: buffer, sinks and installed interceptors."""

    def __init__(
        self,
        config: ProbeConfig | None = None,
        *,
        storage: DurableStorage | None = None,
        render: RenderSink | None = None,
        session: requests.Session | None = None,
        event_target: EventTarget | None = None,
        event_bus: LifecycleBus | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        instrument_network: bool = True,
        instrument_errors: bool = True,
    ) -> None:
        """Create a probe; nothing is installed until `initialize()`.

        Args:
            config: Probe options (defaults when omitted).
            storage: Durable key/value store. Defaults to a DuckDB file when
                `config.storage_path` is set, otherwise an in-memory store.
            render: Presentation sink (defaults to a logging echo).
            session: HTTP session for remote delivery.
            event_target: Document root to listen on for UI events.
            event_bus: Third-party lifecycle bus; its interceptor is installed
                only when one is given.
            loop: Event loop whose unhandled task failures are recorded.
            instrument_network: Wrap `requests` and `http.client`.
            instrument_errors: Hook the global exception handlers.
        """
        self.config = config or ProbeConfig()
        self.session_id = new_session_id()
        self._storage = storage
        self._render = render if render is not None else LoggingRenderSink()
        self._session = session
        self._event_target = event_target
        self._event_bus = event_bus
        self._loop = loop
        self._instrument_network = instrument_network
        self._instrument_errors = instrument_errors

        self._lock = threading.Lock()
        self._initialized = False
        self._closed = False
        self._enabled = False
        self._pipeline: CapturePipeline | None = None
        self._interceptors: list[Interceptor] = []

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def pipeline(self) -> CapturePipeline:
        if self._pipeline is None:
            raise RuntimeError("LiveProbe.initialize() has not been called")
        return self._pipeline

    @property
    def interceptors(self) -> list[Interceptor]:
        return list(self._interceptors)

    def initialize(self) -> LiveProbe:
        """Build sinks, restore persisted entries and install interceptors.

        Safe to call multiple times; only the first call has any effect.
        """
        with self._lock:
            if self._initialized:
                return self
            cfg = self.config

            storage = self._storage
            if storage is None:
                storage = self._storage = self._open_storage(cfg.storage_path)

            if cfg.enabled is None:
                self._enabled = self._read_toggle(storage)
            else:
                self._enabled = cfg.enabled

            persistence = PersistenceSink(storage) if cfg.persist_logs else None
            remote = None
            if cfg.send_to_server:
                remote = RemoteSink(
                    endpoint=cfg.server_endpoint,
                    origin=cfg.origin,
                    session=self._session,
                    timeout_s=cfg.remote_timeout_s,
                    max_queue_size=cfg.remote_queue_size,
                )

            self._pipeline = CapturePipeline(
                session_id=self.session_id,
                buffer=BoundedBuffer(cfg.max_entries),
                persistence=persistence,
                remote=remote,
                render=self._render,
            )
            if persistence is not None:
                self._pipeline.rehydrate(persistence.load())

            self._install_interceptors()
            self._initialized = True

        self.capture(
            Category.INIT,
            f"Live Probe v{VERSION} initialized (session: {self.session_id})",
            color_for(Category.INIT),
        )
        return self

    def _install_interceptors(self) -> None:
        pipeline = self.pipeline
        candidates: list[Interceptor] = []
        if self._event_target is not None:
            candidates.append(DomInterceptor(pipeline, self._event_target))
        if self._event_bus is not None:
            candidates.append(BusInterceptor(pipeline, self._event_bus))
        if self._instrument_network:
            candidates.append(FetchInterceptor(pipeline))
            candidates.append(HttpClientInterceptor(pipeline))
        if self._instrument_errors:
            candidates.append(ErrorInterceptor(pipeline, loop=self._loop))

        for interceptor in candidates:
            if interceptor.install():
                self._interceptors.append(interceptor)

    @staticmethod
    def _open_storage(path: str | None) -> DurableStorage:
        if not path:
            return InMemoryStorage()
        try:
            return DuckDBStorage(path=path)
        except duckdb.Error:
            logger.warning("Cannot open storage at %s; keeping logs in memory", path, exc_info=True)
            return InMemoryStorage()

    @staticmethod
    def _read_toggle(storage: DurableStorage) -> bool:
        try:
            return storage.get_item(TOGGLE_KEY) == "true"
        except Exception:  # noqa: BLE001 - fall back to hidden
            logger.warning("Failed to read toggle state", exc_info=True)
            return False

    def capture(
        self,
        category: str | Category,
        message: str,
        color: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> EventRecord | None:
        """Record a custom event. Returns None if the probe is not running."""
        if self._pipeline is None or self._closed:
            logger.debug("Probe not initialized; ignoring %s event", category)
            return None
        return self._pipeline.capture(category, message, color, details)

    def snapshot(self) -> Sequence[EventRecord]:
        return self.pipeline.snapshot()

    def clear(self) -> None:
        """Empty the buffer, then record that it was cleared."""
        self.pipeline.clear()
        self.capture(Category.CLEAR, "Debug log cleared", color_for(Category.INFO))

    def toggle(self) -> bool:
        """Flip the enabled state, store it, and return the new state."""
        self._enabled = not self._enabled
        if self._storage is not None:
            try:
                self._storage.set_item(TOGGLE_KEY, "true" if self._enabled else "false")
            except Exception:  # noqa: BLE001 - the in-memory state still flips
                logger.warning("Failed to store toggle state", exc_info=True)
        if self._enabled:
            self.capture(Category.INFO, "Debug panel enabled", color_for(Category.INFO))
        return self._enabled

    def export(self) -> dict[str, Any]:
        """Return the export artifact for the current buffer."""
        entries = self.pipeline.snapshot()
        page_url = self.config.page_url
        data = {
            "sessionId": self.session_id,
            "exportedAt": iso_timestamp(utc_now()),
            "pageUrl": (urlsplit(page_url).path or "/") if page_url else None,
            "entries": [entry.to_storage() for entry in entries],
        }
        self.capture(Category.INFO, f"Exported {len(entries)} log entries", color_for(Category.INFO))
        return data

    def export_json(self) -> str:
        return json.dumps(self.export(), indent=2)

    def degraded_status(self) -> dict[str, Any]:
        return self.pipeline.degraded_status()

    def shutdown(self) -> None:
        """Uninstall interceptors, drain remote delivery and close storage.

        Safe to call multiple times.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for interceptor in reversed(self._interceptors):
                interceptor.uninstall()
            self._interceptors.clear()

            if self._pipeline is not None and self._pipeline.remote is not None:
                self._pipeline.remote.close()
            if self._storage is not None:
                try:
                    self._storage.close()
                except Exception:  # noqa: BLE001 - teardown must finish
                    logger.warning("Failed to close storage", exc_info=True)


_active: LiveProbe | None = None
_active_lock = threading.Lock()


def init(config: ProbeConfig | None = None, /, **options: Any) -> LiveProbe:
    """Initialize the process-wide probe (idempotent).

    Collaborators (`storage`, `render`, `session`, `event_target`,
    `event_bus`, `loop`, `instrument_network`, `instrument_errors`) are passed
    through to `LiveProbe`; every other keyword is a `ProbeConfig` option.
    A second call returns the existing probe unchanged.
    """
    global _active
    collaborator_names = {
        "storage",
        "render",
        "session",
        "event_target",
        "event_bus",
        "loop",
        "instrument_network",
        "instrument_errors",
    }
    collaborators = {k: options.pop(k) for k in list(options) if k in collaborator_names}

    with _active_lock:
        cfg = config or ProbeConfig(**options)
        if _active is not None:
            if cfg != _active.config:
                logger.warning("Live probe already initialized; ignoring new options")
            return _active
        _active = LiveProbe(cfg, **collaborators).initialize()
        return _active


def get_probe() -> LiveProbe | None:
    return _active


def capture(
    category: str | Category,
    message: str,
    color: str | None = None,
    details: Mapping[str, Any] | None = None,
) -> EventRecord | None:
    """Record a custom business event on the process-wide probe."""
    probe = _active
    if probe is None:
        logger.debug("Live probe not initialized; ignoring %s event", category)
        return None
    return probe.capture(category, message, color, details)


def shutdown() -> None:
    """Tear down the process-wide probe so `init()` can start a fresh one."""
    global _active
    with _active_lock:
        probe, _active = _active, None
    if probe is not None:
        probe.shutdown()
