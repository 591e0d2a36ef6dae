from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import requests

from observability.errors import EndpointRefused
from observability.models import EventRecord
from observability.sinks import LoggingRenderSink, PersistenceSink, RemoteSink, resolve_endpoint
from observability.storage import LOGS_KEY, InMemoryStorage


class _FakeResponse:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code


class _FakeSession:
    def __init__(self, *, status_code: int = 204, exc: Exception | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self._status_code = status_code
        self._exc = exc
        self.closed = False

    def post(self, url: str, *, data: str, headers: dict[str, str], timeout: float) -> _FakeResponse:
        self.calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        if self._exc is not None:
            raise self._exc
        return _FakeResponse(self._status_code)

    def close(self) -> None:
        self.closed = True


def _records(n: int) -> list[EventRecord]:
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        EventRecord(
            timestamp=start + timedelta(milliseconds=i),
            session_id="sess",
            category="FETCH" if i % 2 else "CLICK",
            message=f"message {i}",
            color="#00bfff",
            details={"status": 200 + i} if i % 2 else None,
        )
        for i in range(n)
    ]


def test_persistence_round_trip_preserves_order_and_fields() -> None:
    sink = PersistenceSink(InMemoryStorage())
    entries = _records(5)
    sink.save(entries)
    assert sink.load() == entries


def test_persistence_stores_json_array_under_logs_key() -> None:
    storage = InMemoryStorage()
    PersistenceSink(storage).save(_records(2))
    stored = json.loads(storage.get_item(LOGS_KEY) or "")
    assert [e["message"] for e in stored] == ["message 0", "message 1"]
    assert stored[0]["sessionId"] == "sess"
    assert stored[0]["colorHint"] == "#00bfff"


@pytest.mark.parametrize("raw", ["not json", "{\"a\": 1}", "[{\"message\": \"missing fields\"}]"])
def test_corrupt_persisted_logs_load_as_empty(raw: str, caplog: pytest.LogCaptureFixture) -> None:
    storage = InMemoryStorage()
    storage.set_item(LOGS_KEY, raw)
    with caplog.at_level(logging.WARNING, logger="observability.sinks"):
        assert PersistenceSink(storage).load() == []
    assert "corrupt" in caplog.text


def test_absent_persisted_logs_load_as_empty() -> None:
    assert PersistenceSink(InMemoryStorage()).load() == []


@pytest.mark.parametrize(
    "endpoint,expected",
    [
        ("/api/debug-logs", "http://localhost:8000/api/debug-logs"),
        ("collect", "http://localhost:8000/collect"),
        ("http://localhost:8000/collect", "http://localhost:8000/collect"),
        ("http://LOCALHOST:8000/collect", "http://LOCALHOST:8000/collect"),
        ("//localhost:8000/collect", "http://localhost:8000/collect"),
    ],
)
def test_resolve_endpoint_same_origin(endpoint: str, expected: str) -> None:
    assert resolve_endpoint(endpoint, "http://localhost:8000") == expected


@pytest.mark.parametrize(
    "endpoint",
    [
        "https://evil.example.com/collect",
        "//evil.example.com/collect",
        "https://localhost:8000/collect",
        "http://localhost:9000/collect",
    ],
)
def test_resolve_endpoint_refuses_cross_origin(endpoint: str) -> None:
    with pytest.raises(EndpointRefused):
        resolve_endpoint(endpoint, "http://localhost:8000")


def test_resolve_endpoint_default_ports_match() -> None:
    assert resolve_endpoint("https://app.example.com:443/x", "https://app.example.com") == (
        "https://app.example.com:443/x"
    )


def test_resolve_endpoint_requires_origin() -> None:
    with pytest.raises(EndpointRefused):
        resolve_endpoint("/api/debug-logs", None)


def test_cross_origin_send_is_refused_without_network_call(caplog: pytest.LogCaptureFixture) -> None:
    session = _FakeSession()
    sink = RemoteSink(
        endpoint="https://evil.example.com/collect",
        origin="http://localhost:8000",
        session=session,  # type: ignore[arg-type]
    )
    with caplog.at_level(logging.WARNING, logger="observability.sinks"):
        assert sink.send(_records(1)[0]) is False

    assert session.calls == []
    assert "Refusing cross-origin endpoint" in caplog.text
    assert sink.degraded_status()["failures"] == 1


def test_send_posts_wire_format_json() -> None:
    session = _FakeSession()
    sink = RemoteSink(endpoint="/api/debug-logs", origin="http://localhost:8000", session=session)  # type: ignore[arg-type]
    record = _records(2)[1]

    assert sink.send(record) is True

    (call,) = session.calls
    assert call["url"] == "http://localhost:8000/api/debug-logs"
    assert call["headers"] == {"Content-Type": "application/json"}
    assert json.loads(call["data"]) == record.to_wire()
    assert "details" not in json.loads(call["data"])


def test_send_failures_are_dropped_not_raised() -> None:
    failing = RemoteSink(
        endpoint="/logs",
        origin="http://localhost:8000",
        session=_FakeSession(exc=requests.ConnectionError("down")),  # type: ignore[arg-type]
    )
    rejected = RemoteSink(
        endpoint="/logs",
        origin="http://localhost:8000",
        session=_FakeSession(status_code=500),  # type: ignore[arg-type]
    )
    record = _records(1)[0]
    assert failing.send(record) is False
    assert rejected.send(record) is False
    assert failing.degraded_status()["failures"] == 1
    assert rejected.degraded_status()["failures"] == 1


def test_enqueue_delivers_in_background_in_order() -> None:
    session = _FakeSession()
    sink = RemoteSink(endpoint="/logs", origin="http://localhost:8000", session=session)  # type: ignore[arg-type]
    records = _records(4)
    for record in records:
        assert sink.enqueue(record) is True

    sink.flush()
    sink.close()

    assert [json.loads(c["data"])["message"] for c in session.calls] == [r.message for r in records]
    assert sink.enqueue(records[0]) is False


def test_close_is_idempotent_and_keeps_caller_session_open() -> None:
    session = _FakeSession()
    sink = RemoteSink(endpoint="/logs", origin="http://localhost:8000", session=session)  # type: ignore[arg-type]
    sink.close()
    sink.close()
    assert session.closed is False


def test_logging_render_sink_echoes_category_and_message(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="observability.render"):
        LoggingRenderSink().render(_records(1)[0])
    assert "[CLICK] message 0" in caplog.text
