"""Interceptors: one per instrumented source.

Each interceptor wraps or subscribes to a host capability, turns what it
observes into masked messages, and hands them to the capture pipeline.
"""

from .base import Interceptor, Subscription
from .bus import BusInterceptor, LifecycleBus
from .dom import DomInterceptor, EventTarget
from .errors import ErrorInterceptor
from .network import FetchInterceptor, HttpClientInterceptor

__all__ = [
    "BusInterceptor",
    "DomInterceptor",
    "ErrorInterceptor",
    "EventTarget",
    "FetchInterceptor",
    "HttpClientInterceptor",
    "Interceptor",
    "LifecycleBus",
    "Subscription",
]
