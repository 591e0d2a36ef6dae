"""Capture primitives for the live probe.

This package provides the pieces every interceptor feeds into:
- Immutable, masked event records with a per-session identifier.
- A bounded, FIFO-evicting buffer of those records.
- Sinks that persist snapshots locally and deliver records to a collector
  without blocking the capture path.
"""

from .buffer import BoundedBuffer
from .errors import EndpointRefused, ProbeError, StorageQuotaExceeded
from .masking import REDACTION_TOKEN, mask, mask_mapping
from .models import Category, EventRecord
from .pipeline import CapturePipeline
from .sinks import LoggingRenderSink, PersistenceSink, RemoteSink, RenderSink
from .storage import DuckDBStorage, DurableStorage, InMemoryStorage

__all__ = [
    "BoundedBuffer",
    "CapturePipeline",
    "Category",
    "DuckDBStorage",
    "DurableStorage",
    "EndpointRefused",
    "EventRecord",
    "InMemoryStorage",
    "LoggingRenderSink",
    "PersistenceSink",
    "ProbeError",
    "REDACTION_TOKEN",
    "RemoteSink",
    "RenderSink",
    "StorageQuotaExceeded",
    "mask",
    "mask_mapping",
]
