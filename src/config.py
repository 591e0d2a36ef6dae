"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting environment variables into a strongly-typed `ProbeConfig`.
- Falling back to defaults (with a warning) for invalid runtime options, so a
  bad option never aborts probe initialization.
"""

from __future__ import annotations

import logging
import os
from typing import Any, TypeVar

import dotenv
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, ValidationInfo, field_validator

logger = logging.getLogger(__name__)

_T = TypeVar("_T", int, float)

DEFAULT_MAX_ENTRIES = 100
DEFAULT_SERVER_ENDPOINT = "/api/debug-logs"
DEFAULT_REMOTE_QUEUE_SIZE = 1000
DEFAULT_REMOTE_TIMEOUT_S = 5.0

_BOOL = TypeAdapter(bool)


def _get_env_bool(name: str, default: bool | None) -> bool | None:
    """Read a boolean env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    normalized = raw.strip().lower()
    if normalized in {"true", "1", "yes", "y", "on"}:
        return True
    if normalized in {"false", "0", "no", "n", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false). Got: {raw!r}")


def _get_env_number(name: str, default: _T, cast: type[_T]) -> _T:
    """Read an int/float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}. Got: {raw!r}") from exc


def _get_env_str(name: str) -> str | None:
    raw = os.getenv(name, "").strip()
    return raw or None


def _positive_int_or_default(name: str, v: Any, default: int) -> int:
    if isinstance(v, bool):
        v = None
    try:
        value = int(v)
    except (TypeError, ValueError):
        logger.warning("Invalid %s %r; falling back to %s", name, v, default)
        return default
    if value < 1:
        logger.warning("%s must be >= 1 (got %s); falling back to %s", name, value, default)
        return default
    return value


class ProbeConfig(BaseModel):
    """Initialization options for the live probe.

    Accepts the camelCase option names (`maxEntries`, `persistLogs`, ...) as
    well as their snake_case field names.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    # None means "use the stored toggle state".
    enabled: bool | None = Field(default=None, description="Start visible/active")
    max_entries: int = Field(default=DEFAULT_MAX_ENTRIES, alias="maxEntries", description="Buffer capacity")
    persist_logs: bool = Field(default=False, alias="persistLogs", description="Enable the persistence sink")
    send_to_server: bool = Field(default=False, alias="sendToServer", description="Enable the remote sink")
    server_endpoint: str = Field(
        default=DEFAULT_SERVER_ENDPOINT,
        alias="serverEndpoint",
        description="Relative or same-origin absolute path",
    )

    origin: str | None = Field(default=None, description="Host origin, scheme://host[:port]")
    page_url: str | None = Field(default=None, alias="pageUrl", description="Current page URL (export)")
    storage_path: str | None = Field(default=None, alias="storagePath", description="DuckDB file for persistence")
    remote_queue_size: int = Field(default=DEFAULT_REMOTE_QUEUE_SIZE, alias="remoteQueueSize")
    remote_timeout_s: float = Field(default=DEFAULT_REMOTE_TIMEOUT_S, alias="remoteTimeout")

    @field_validator("max_entries", mode="before")
    @classmethod
    def _validate_max_entries(cls, v: Any) -> int:
        return _positive_int_or_default("maxEntries", v, DEFAULT_MAX_ENTRIES)

    @field_validator("remote_queue_size", mode="before")
    @classmethod
    def _validate_remote_queue_size(cls, v: Any) -> int:
        return _positive_int_or_default("remoteQueueSize", v, DEFAULT_REMOTE_QUEUE_SIZE)

    @field_validator("remote_timeout_s", mode="before")
    @classmethod
    def _validate_remote_timeout(cls, v: Any) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            value = 0.0
        if value <= 0:
            logger.warning("Invalid remoteTimeout %r; falling back to %s", v, DEFAULT_REMOTE_TIMEOUT_S)
            return DEFAULT_REMOTE_TIMEOUT_S
        return value

    @field_validator("server_endpoint", mode="before")
    @classmethod
    def _validate_server_endpoint(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            logger.warning("Invalid serverEndpoint %r; falling back to %s", v, DEFAULT_SERVER_ENDPOINT)
            return DEFAULT_SERVER_ENDPOINT
        return v.strip()

    @field_validator("enabled", "persist_logs", "send_to_server", mode="before")
    @classmethod
    def _validate_flags(cls, v: Any, info: ValidationInfo) -> bool | None:
        default = cls.model_fields[info.field_name].default
        if v is None:
            return default
        try:
            return _BOOL.validate_python(v)
        except ValidationError:
            logger.warning("Invalid %s %r; falling back to %s", info.field_name, v, default)
            return default

    @field_validator("origin", "page_url", "storage_path", mode="before")
    @classmethod
    def _validate_optional_text(cls, v: Any, info: ValidationInfo) -> str | None:
        if v is None:
            return None
        if isinstance(v, os.PathLike):
            v = os.fspath(v)
        if not isinstance(v, str):
            logger.warning("Invalid %s %r; ignoring it", info.field_name, v)
            return None
        return v

    @field_validator("origin")
    @classmethod
    def _strip_origin(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip().rstrip("/") or None


def load_config() -> ProbeConfig:
    """Load probe configuration from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages when a boolean or numeric
      variable cannot be parsed.
    """
    dotenv.load_dotenv()

    return ProbeConfig(
        enabled=_get_env_bool("LIVE_PROBE_ENABLED", None),
        max_entries=_get_env_number("LIVE_PROBE_MAX_ENTRIES", DEFAULT_MAX_ENTRIES, int),
        persist_logs=_get_env_bool("LIVE_PROBE_PERSIST_LOGS", False),
        send_to_server=_get_env_bool("LIVE_PROBE_SEND_TO_SERVER", False),
        server_endpoint=os.getenv("LIVE_PROBE_SERVER_ENDPOINT", DEFAULT_SERVER_ENDPOINT),
        origin=_get_env_str("LIVE_PROBE_ORIGIN"),
        page_url=_get_env_str("LIVE_PROBE_PAGE_URL"),
        storage_path=_get_env_str("LIVE_PROBE_STORAGE_PATH"),
    )
