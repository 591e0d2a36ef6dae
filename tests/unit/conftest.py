from __future__ import annotations

from collections.abc import Callable

import pytest

import live_probe
from observability.buffer import BoundedBuffer
from observability.models import EventRecord
from observability.pipeline import CapturePipeline
from observability.sinks import PersistenceSink, RemoteSink


class RecordingRenderSink:
    """Render sink that keeps every record it is handed."""

    def __init__(self) -> None:
        self.rendered: list[EventRecord] = []

    def render(self, record: EventRecord) -> None:
        self.rendered.append(record)


@pytest.fixture(autouse=True)
def _shutdown_process_probe():
    """Tear down the process-wide probe so interceptors never leak across tests."""
    yield
    live_probe.shutdown()


@pytest.fixture
def render_sink() -> RecordingRenderSink:
    return RecordingRenderSink()


@pytest.fixture
def make_pipeline(render_sink: RecordingRenderSink) -> Callable[..., CapturePipeline]:
    def _make(
        capacity: int = 100,
        *,
        persistence: PersistenceSink | None = None,
        remote: RemoteSink | None = None,
        session_id: str = "session-1",
    ) -> CapturePipeline:
        return CapturePipeline(
            session_id=session_id,
            buffer=BoundedBuffer(capacity),
            persistence=persistence,
            remote=remote,
            render=render_sink,
        )

    return _make
