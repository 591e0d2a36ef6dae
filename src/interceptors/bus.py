"""Third-party lifecycle bus interceptor.

Installed only when the host hands a lifecycle bus to the probe at
initialization. The bus emits request/response lifecycle events
(`configRequest`, `beforeRequest`, `afterRequest`, `beforeSwap`,
`responseError`, `sendError`) with a mapping payload.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol
from urllib.parse import urlencode

from observability.masking import mask_mapping, redact_url
from observability.models import Category, color_for, truncate
from observability.pipeline import CapturePipeline

from .base import Interceptor

RESPONSE_PREVIEW_LIMIT = 200

BusHandler = Callable[[Mapping[str, Any]], None]


class LifecycleBus(Protocol):
    def on(self, event_name: str, handler: BusHandler) -> None: ...

    def off(self, event_name: str, handler: BusHandler) -> None: ...


def _path(detail: Mapping[str, Any]) -> str:
    path = detail.get("path")
    return redact_url(str(path)) if path else "unknown"


def _status(detail: Mapping[str, Any]) -> int:
    try:
        return int(detail.get("status") or 0)
    except (TypeError, ValueError):
        return 0


class BusInterceptor(Interceptor):
    """Maps lifecycle bus events onto BUS/ERROR records."""

    name = "bus"

    def __init__(self, pipeline: CapturePipeline, bus: LifecycleBus) -> None:
        super().__init__(pipeline)
        self._bus = bus

    def _install(self) -> None:
        self._listen("configRequest", self._on_config_request)
        self._listen("beforeRequest", self._on_before_request)
        self._listen("afterRequest", self._on_after_request)
        self._listen("beforeSwap", self._on_before_swap)
        self._listen("responseError", self._on_response_error)
        self._listen("sendError", self._on_send_error)

    def _listen(self, event_name: str, handler: BusHandler) -> None:
        def listener(detail: Mapping[str, Any]) -> None:
            self._observe(handler, detail)

        self._bus.on(event_name, listener)
        self._subscribe(lambda: self._bus.off(event_name, listener), f"bus:{event_name}")

    def _on_config_request(self, detail: Mapping[str, Any]) -> None:
        params = mask_mapping(detail.get("parameters") or {})
        query = urlencode(params, doseq=True, safe="[]")
        self._capture(Category.BUS, f"Config: {_path(detail)}?{query}", color_for(Category.BUS))

    def _on_before_request(self, detail: Mapping[str, Any]) -> None:
        self._capture(Category.BUS, f"→ Request: {_path(detail)}", color_for(Category.BUS))

    def _on_after_request(self, detail: Mapping[str, Any]) -> None:
        status = _status(detail)
        body = str(detail.get("response_text") or "")
        color = color_for(Category.INFO) if 200 <= status < 300 else color_for(Category.ERROR)
        self._capture(
            Category.BUS,
            f"← {status} from {_path(detail)} ({len(body)} bytes)",
            color,
            {"status": status, "bytes": len(body)},
        )
        if status >= 400:
            self._capture(Category.ERROR, truncate(body, RESPONSE_PREVIEW_LIMIT), color_for(Category.ERROR))

    def _on_before_swap(self, detail: Mapping[str, Any]) -> None:
        target = detail.get("target") or "unknown"
        self._capture(Category.BUS, f"Swapping into: {target}", color_for(Category.BUS))

    def _on_response_error(self, detail: Mapping[str, Any]) -> None:
        self._capture(Category.ERROR, f"response error: {_status(detail)}", color_for(Category.ERROR))

    def _on_send_error(self, detail: Mapping[str, Any]) -> None:
        self._capture(Category.ERROR, f"send error: {detail.get('error')}", color_for(Category.ERROR))
