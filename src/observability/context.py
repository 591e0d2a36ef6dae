"""Per-context capture suppression.

Network calls made by the probe itself (remote delivery), and the
`http.client` traffic underneath an already-recorded `requests` call, run
inside `suppress_capture()` so interceptors pass them through unrecorded.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_suppressed: ContextVar[bool] = ContextVar("live_probe_capture_suppressed", default=False)


def capture_suppressed() -> bool:
    return _suppressed.get()


@contextmanager
def suppress_capture() -> Iterator[None]:
    token = _suppressed.set(True)
    try:
        yield
    finally:
        _suppressed.reset(token)
