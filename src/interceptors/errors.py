"""Uncaught error interceptor.

Synchronous errors arrive through `sys.excepthook` (main thread) and
`threading.excepthook` (other threads). Asynchronous failures nobody awaited
arrive through the asyncio event loop's exception handler. Every hook chains
to the handler it replaced, so host behavior is unchanged.
"""

from __future__ import annotations

import asyncio
import sys
import threading
import traceback
from types import TracebackType
from typing import Any

from observability.models import Category, color_for
from observability.pipeline import CapturePipeline

from .base import Interceptor


def _source_location(tb: TracebackType | None) -> tuple[str, int | None]:
    if tb is None:
        return "unknown", None
    frames = traceback.extract_tb(tb)
    if not frames:
        return "unknown", None
    last = frames[-1]
    return last.filename, last.lineno


class ErrorInterceptor(Interceptor):
    """Records uncaught exceptions and unretrieved task failures."""

    name = "errors"

    def __init__(self, pipeline: CapturePipeline, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        super().__init__(pipeline)
        self._loop = loop

    def _install(self) -> None:
        self._install_excepthook()
        self._install_thread_excepthook()
        if self._loop is not None:
            self.watch_loop(self._loop)

    def _install_excepthook(self) -> None:
        previous = sys.excepthook

        def excepthook(
            exc_type: type[BaseException], exc: BaseException, tb: TracebackType | None
        ) -> None:
            self._observe(self._uncaught, exc_type, exc, tb, None)
            previous(exc_type, exc, tb)

        sys.excepthook = excepthook

        def restore() -> None:
            if sys.excepthook is excepthook:
                sys.excepthook = previous

        self._subscribe(restore, "sys.excepthook")

    def _install_thread_excepthook(self) -> None:
        previous = threading.excepthook

        def thread_excepthook(args: threading.ExceptHookArgs) -> None:
            thread_name = args.thread.name if args.thread is not None else None
            self._observe(self._uncaught, args.exc_type, args.exc_value, args.exc_traceback, thread_name)
            previous(args)

        threading.excepthook = thread_excepthook

        def restore() -> None:
            if threading.excepthook is thread_excepthook:
                threading.excepthook = previous

        self._subscribe(restore, "threading.excepthook")

    def watch_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Chain an exception handler onto `loop` (unhandled task failures)."""
        previous = loop.get_exception_handler()

        def handler(handler_loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
            self._observe(self._unhandled, context)
            if previous is not None:
                previous(handler_loop, context)
            else:
                handler_loop.default_exception_handler(context)

        loop.set_exception_handler(handler)

        def restore() -> None:
            if loop.get_exception_handler() is handler:
                loop.set_exception_handler(previous)

        self._subscribe(restore, f"asyncio loop {id(loop):#x}")

    def _uncaught(
        self,
        exc_type: type[BaseException],
        exc: BaseException | None,
        tb: TracebackType | None,
        thread_name: str | None,
    ) -> None:
        filename, lineno = _source_location(tb)
        message = f"{exc_type.__name__}: {exc} at {filename}:{lineno}"
        details: dict[str, Any] = {"type": exc_type.__name__, "filename": filename, "lineno": lineno}
        if thread_name is not None:
            details["thread"] = thread_name
        self._capture(Category.ERROR, message, color_for(Category.ERROR), details)

    def _unhandled(self, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        reason = f"{type(exc).__name__}: {exc}" if exc is not None else context.get("message", "unknown")
        self._capture(Category.ERROR, f"Unhandled rejection: {reason}", color_for(Category.ERROR))
