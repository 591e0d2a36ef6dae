"""Exceptions raised inside the probe.

None of these ever reach host code: sinks raise them and the pipeline (or the
remote delivery worker) catches and reports them on the diagnostic channel.
"""

from __future__ import annotations


class ProbeError(RuntimeError):
    """Base class for probe-internal failures."""


class StorageQuotaExceeded(ProbeError):
    """The durable store refused a write because it is over quota."""

    def __init__(self, *, key: str, size: int, quota: int) -> None:
        self.key = key
        self.size = size
        self.quota = quota
        super().__init__(f"Storage quota exceeded writing {key!r}: {size} > {quota} bytes")


class EndpointRefused(ProbeError):
    """The remote endpoint is neither relative nor same-origin."""

    def __init__(self, endpoint: str, *, origin: str | None) -> None:
        self.endpoint = endpoint
        self.origin = origin
        super().__init__(f"Refusing cross-origin endpoint {endpoint!r} (origin: {origin!r})")
