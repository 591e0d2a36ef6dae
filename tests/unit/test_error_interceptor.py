from __future__ import annotations

import asyncio
import sys
import threading

import pytest

from interceptors.errors import ErrorInterceptor


def _raise_and_capture() -> tuple[type[BaseException], BaseException, object]:
    try:
        raise ValueError("bad value")
    except ValueError:
        exc_type, exc, tb = sys.exc_info()
    assert exc_type is not None and exc is not None
    return exc_type, exc, tb


def test_uncaught_error_recorded_and_previous_hook_chained(make_pipeline, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[BaseException] = []
    monkeypatch.setattr(sys, "excepthook", lambda t, e, tb: seen.append(e))
    pipeline = make_pipeline()
    interceptor = ErrorInterceptor(pipeline)
    interceptor.install()
    try:
        exc_type, exc, tb = _raise_and_capture()
        sys.excepthook(exc_type, exc, tb)  # type: ignore[arg-type]
    finally:
        interceptor.uninstall()

    assert seen == [exc]
    (record,) = pipeline.snapshot()
    assert record.category == "ERROR"
    assert record.message.startswith("ValueError: bad value at ")
    assert record.details is not None
    assert record.details["filename"].endswith("test_error_interceptor.py")
    assert isinstance(record.details["lineno"], int)


def test_uninstall_restores_previous_hooks(make_pipeline, monkeypatch: pytest.MonkeyPatch) -> None:
    def previous(*args: object) -> None:
        pass

    monkeypatch.setattr(sys, "excepthook", previous)
    monkeypatch.setattr(threading, "excepthook", previous)
    interceptor = ErrorInterceptor(make_pipeline())
    interceptor.install()
    assert sys.excepthook is not previous

    interceptor.uninstall()

    assert sys.excepthook is previous
    assert threading.excepthook is previous


def test_thread_errors_are_recorded(make_pipeline, monkeypatch: pytest.MonkeyPatch) -> None:
    chained: list[str] = []
    monkeypatch.setattr(threading, "excepthook", lambda args: chained.append(args.thread.name))
    pipeline = make_pipeline()
    interceptor = ErrorInterceptor(pipeline)
    interceptor.install()

    def worker() -> None:
        raise RuntimeError("worker failed")

    try:
        thread = threading.Thread(target=worker, name="worker-1")
        thread.start()
        thread.join()
    finally:
        interceptor.uninstall()

    assert chained == ["worker-1"]
    (record,) = pipeline.snapshot()
    assert record.message.startswith("RuntimeError: worker failed at ")
    assert record.details is not None
    assert record.details["thread"] == "worker-1"


def test_install_twice_hooks_once(make_pipeline, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "excepthook", lambda *args: None)
    pipeline = make_pipeline()
    interceptor = ErrorInterceptor(pipeline)
    interceptor.install()
    interceptor.install()
    try:
        sys.excepthook(*_raise_and_capture())  # type: ignore[arg-type]
    finally:
        interceptor.uninstall()
    assert len(pipeline.snapshot()) == 1


@pytest.mark.asyncio
async def test_unhandled_task_failure_is_recorded(make_pipeline) -> None:
    loop = asyncio.get_running_loop()
    seen: list[dict] = []
    loop.set_exception_handler(lambda _loop, context: seen.append(context))
    pipeline = make_pipeline()
    interceptor = ErrorInterceptor(pipeline, loop=loop)
    interceptor.install()
    try:
        loop.call_exception_handler(
            {"message": "Task exception was never retrieved", "exception": KeyError("order-42")}
        )
    finally:
        interceptor.uninstall()
        chained_handler = loop.get_exception_handler()
        loop.set_exception_handler(None)

    assert len(seen) == 1
    assert chained_handler is not None
    (record,) = pipeline.snapshot()
    assert record.category == "ERROR"
    assert record.message == "Unhandled rejection: KeyError: 'order-42'"


@pytest.mark.asyncio
async def test_unhandled_context_without_exception_uses_message(make_pipeline) -> None:
    loop = asyncio.get_running_loop()
    loop.set_exception_handler(lambda _loop, _context: None)
    pipeline = make_pipeline()
    interceptor = ErrorInterceptor(pipeline, loop=loop)
    interceptor.install()
    try:
        loop.call_exception_handler({"message": "Future was destroyed but it is pending"})
    finally:
        interceptor.uninstall()
        loop.set_exception_handler(None)

    assert pipeline.snapshot()[0].message == "Unhandled rejection: Future was destroyed but it is pending"
