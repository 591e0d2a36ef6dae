"""Interceptor base class and subscription handles.

Interceptors install once (re-installing is a no-op), keep one `Subscription`
per hook they register, and never let an internal failure escape into the
host's call path.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from observability.logging_config import get_logger
from observability.models import Category, EventRecord
from observability.pipeline import CapturePipeline

logger = get_logger(__name__)

# Attribute set on every wrapper function installed over a host API.
WRAPPED_MARKER = "__live_probe_wrapped__"


class Subscription:
    """Handle for one registered hook; `cancel()` undoes the registration."""

    def __init__(self, cancel: Callable[[], None], *, description: str) -> None:
        self._cancel = cancel
        self.description = description
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Remove the hook. Safe to call multiple times."""
        if not self._active:
            return
        self._active = False
        self._cancel()

    def __repr__(self) -> str:
        state = "active" if self._active else "cancelled"
        return f"<Subscription {self.description} ({state})>"


class Interceptor:
    """Base class for every instrumented source."""

    name = "interceptor"

    def __init__(self, pipeline: CapturePipeline) -> None:
        self._pipeline = pipeline
        self._subscriptions: list[Subscription] = []
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions)

    def install(self) -> bool:
        """Install the hooks once. Returns False if installation degraded to a no-op."""
        if self._installed:
            return True
        try:
            self._install()
        except Exception:  # noqa: BLE001 - a missing host API disables only this interceptor
            logger.warning("%s interceptor unavailable; continuing without it", self.name, exc_info=True)
            self._cancel_subscriptions()
            return False
        self._installed = True
        return True

    def uninstall(self) -> None:
        """Cancel every subscription in reverse registration order."""
        self._cancel_subscriptions()
        self._installed = False

    def _install(self) -> None:
        raise NotImplementedError

    def _subscribe(self, cancel: Callable[[], None], description: str) -> Subscription:
        subscription = Subscription(cancel, description=description)
        self._subscriptions.append(subscription)
        return subscription

    def _cancel_subscriptions(self) -> None:
        while self._subscriptions:
            subscription = self._subscriptions.pop()
            try:
                subscription.cancel()
            except Exception:  # noqa: BLE001 - teardown continues with the rest
                logger.warning("Failed to cancel %r", subscription, exc_info=True)

    def _capture(
        self,
        category: str | Category,
        message: str,
        color: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> EventRecord | None:
        return self._pipeline.capture(category, message, color, details)

    def _observe(self, handler: Callable[..., Any], *args: Any) -> Any:
        """Run an observation handler; returns its result, or None if it failed."""
        try:
            return handler(*args)
        except Exception:  # noqa: BLE001 - instrumentation must never break the host
            logger.debug("%s interceptor dropped an observation", self.name, exc_info=True)
            return None
