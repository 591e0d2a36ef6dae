from __future__ import annotations

import json
import logging
import sys

import pytest

from observability.logging_config import JSONFormatter, setup_logging


def _record(msg: str, *args: object, exc_info=None) -> logging.LogRecord:
    return logging.LogRecord("observability.sinks", logging.WARNING, __file__, 42, msg, args, exc_info, "send")


def test_json_formatter_emits_one_object_per_record() -> None:
    line = JSONFormatter().format(_record("Log server %s answered HTTP %s", "http://x", 503))

    data = json.loads(line)
    assert data["level"] == "WARNING"
    assert data["logger"] == "observability.sinks"
    assert data["message"] == "Log server http://x answered HTTP 503"
    assert data["function"] == "send"
    assert data["line"] == 42
    assert "exception" not in data


def test_json_formatter_includes_exception_and_context() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        rec = _record("Render sink failed", exc_info=sys.exc_info())
    rec.context = {"sink": "render"}

    data = json.loads(JSONFormatter().format(rec))

    assert "RuntimeError: boom" in data["exception"]
    assert data["context"] == {"sink": "render"}


def test_setup_logging_reads_level_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    root = logging.getLogger()
    saved_level, saved_handlers = root.level, list(root.handlers)
    monkeypatch.setenv("LIVE_PROBE_LOG_LEVEL", "debug")
    try:
        setup_logging(json_output=False)
        assert root.level == logging.DEBUG
        assert not isinstance(root.handlers[-1].formatter, JSONFormatter)

        setup_logging("warning")
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[-1].formatter, JSONFormatter)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
