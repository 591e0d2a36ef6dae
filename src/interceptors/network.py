"""Network call interceptors.

Two host primitives are wrapped:

- `requests.Session.request` (the generic "fetch"-style call; every
  `requests.get/post/...` goes through it).
- `http.client.HTTPConnection.request` / `.getresponse` (the lower-level
  request/response API used directly by `urllib` and friends).

Each outbound call records "initiated" before delegating and exactly one
"completed" record once it settles. Return values and exceptions of the
original call are passed through untouched. The `http.client` traffic
underneath a recorded `requests` call is not recorded a second time.
"""

from __future__ import annotations

import functools
import http.client
from typing import Any

import requests

from observability.context import capture_suppressed, suppress_capture
from observability.errors import ProbeError
from observability.masking import redact_url
from observability.models import Category, color_for

from .base import WRAPPED_MARKER, Interceptor

# Per-connection (method, url) of the request awaiting `getresponse()`.
_PENDING_ATTR = "_live_probe_pending"


def _status_color(status: int) -> str:
    return color_for(Category.INFO) if 200 <= status < 300 else color_for(Category.ERROR)


def _describe_fetch(method: str | bytes, url: str | bytes) -> tuple[str, str]:
    method_name = method.decode() if isinstance(method, bytes) else str(method)
    target = redact_url(url.decode() if isinstance(url, bytes) else str(url))
    return method_name.upper(), target


def _content_length(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class FetchInterceptor(Interceptor):
    """Wraps `requests.Session.request`."""

    name = "fetch"

    def _install(self) -> None:
        original = requests.Session.request
        if getattr(original, WRAPPED_MARKER, False):
            raise ProbeError("requests.Session.request is already instrumented")

        interceptor = self

        @functools.wraps(original)
        def request(session: requests.Session, method: str | bytes, url: str | bytes, *args: Any, **kwargs: Any):
            if capture_suppressed():
                return original(session, method, url, *args, **kwargs)

            described = interceptor._observe(_describe_fetch, method, url)
            if described is None:
                # Unparseable target; the host call runs unrecorded.
                return original(session, method, url, *args, **kwargs)
            method_name, target = described
            interceptor._observe(interceptor._initiated, method_name, target)
            try:
                with suppress_capture():
                    response = original(session, method, url, *args, **kwargs)
            except Exception as exc:
                interceptor._observe(interceptor._failed, method_name, target, exc)
                raise
            interceptor._observe(
                interceptor._completed, method_name, target, response, bool(kwargs.get("stream"))
            )
            return response

        setattr(request, WRAPPED_MARKER, True)
        requests.Session.request = request  # type: ignore[method-assign]

        def restore() -> None:
            if requests.Session.request is request:
                requests.Session.request = original  # type: ignore[method-assign]

        self._subscribe(restore, "requests.Session.request")

    def _initiated(self, method: str, url: str) -> None:
        self._capture(
            Category.FETCH,
            f"→ {method} {url}",
            color_for(Category.FETCH),
            {"phase": "initiated", "method": method, "url": url},
        )

    def _completed(self, method: str, url: str, response: requests.Response, stream: bool) -> None:
        size = _content_length(response.headers.get("Content-Length"))
        if size is None and not stream:
            # Non-streamed bodies are already read by the time `request` returns.
            size = len(response.content or b"")
        self._capture(
            Category.FETCH,
            f"← {response.status_code} {method} {url}",
            _status_color(response.status_code),
            {"phase": "completed", "method": method, "url": url, "status": response.status_code, "bytes": size},
        )

    def _failed(self, method: str, url: str, exc: Exception) -> None:
        self._capture(
            Category.ERROR,
            f"Fetch error: {type(exc).__name__} on {method} {url}",
            color_for(Category.ERROR),
            {"phase": "completed", "method": method, "url": url, "error": type(exc).__name__},
        )


def _connection_url(conn: http.client.HTTPConnection, url: str) -> str:
    if url.startswith(("http://", "https://")):
        return url
    scheme = "https" if isinstance(conn, http.client.HTTPSConnection) else "http"
    default_port = http.client.HTTPS_PORT if scheme == "https" else http.client.HTTP_PORT
    host = conn.host if conn.port in (None, default_port) else f"{conn.host}:{conn.port}"
    return f"{scheme}://{host}{url}"


def _describe_connection_request(conn: http.client.HTTPConnection, method: str, url: str) -> tuple[str, str]:
    return str(method).upper(), redact_url(_connection_url(conn, url))


class HttpClientInterceptor(Interceptor):
    """Wraps `http.client.HTTPConnection.request` and `.getresponse`."""

    name = "http.client"

    def _install(self) -> None:
        conn_cls = http.client.HTTPConnection
        original_request = conn_cls.request
        original_getresponse = conn_cls.getresponse
        if getattr(original_request, WRAPPED_MARKER, False) or getattr(original_getresponse, WRAPPED_MARKER, False):
            raise ProbeError("http.client.HTTPConnection is already instrumented")

        interceptor = self

        @functools.wraps(original_request)
        def request(conn: http.client.HTTPConnection, method: str, url: str, *args: Any, **kwargs: Any):
            if capture_suppressed():
                return original_request(conn, method, url, *args, **kwargs)

            described = interceptor._observe(_describe_connection_request, conn, method, url)
            setattr(conn, _PENDING_ATTR, described)
            if described is None:
                return original_request(conn, method, url, *args, **kwargs)
            method_name, target = described
            interceptor._observe(interceptor._initiated, method_name, target)
            try:
                return original_request(conn, method, url, *args, **kwargs)
            except Exception as exc:
                setattr(conn, _PENDING_ATTR, None)
                interceptor._observe(interceptor._failed, method_name, target, exc)
                raise

        @functools.wraps(original_getresponse)
        def getresponse(conn: http.client.HTTPConnection, *args: Any, **kwargs: Any):
            pending = getattr(conn, _PENDING_ATTR, None)
            if pending is None or capture_suppressed():
                return original_getresponse(conn, *args, **kwargs)

            setattr(conn, _PENDING_ATTR, None)
            method, target = pending
            try:
                response = original_getresponse(conn, *args, **kwargs)
            except Exception as exc:
                interceptor._observe(interceptor._failed, method, target, exc)
                raise
            interceptor._observe(interceptor._completed, method, target, response)
            return response

        setattr(request, WRAPPED_MARKER, True)
        setattr(getresponse, WRAPPED_MARKER, True)
        conn_cls.request = request  # type: ignore[method-assign]
        conn_cls.getresponse = getresponse  # type: ignore[method-assign]

        def restore() -> None:
            if conn_cls.request is request:
                conn_cls.request = original_request  # type: ignore[method-assign]
            if conn_cls.getresponse is getresponse:
                conn_cls.getresponse = original_getresponse  # type: ignore[method-assign]

        self._subscribe(restore, "http.client.HTTPConnection")

    def _initiated(self, method: str, url: str) -> None:
        self._capture(
            Category.XHR,
            f"→ {method} {url}",
            color_for(Category.FETCH),
            {"phase": "initiated", "method": method, "url": url},
        )

    def _completed(self, method: str, url: str, response: http.client.HTTPResponse) -> None:
        self._capture(
            Category.XHR,
            f"← {response.status} {url}",
            _status_color(response.status),
            {
                "phase": "completed",
                "method": method,
                "url": url,
                "status": response.status,
                "bytes": _content_length(response.getheader("Content-Length")),
            },
        )

    def _failed(self, method: str, url: str, exc: Exception) -> None:
        self._capture(
            Category.ERROR,
            f"XHR error: {type(exc).__name__} on {method} {url}",
            color_for(Category.ERROR),
            {"phase": "completed", "method": method, "url": url, "error": type(exc).__name__},
        )
