"""Event record models.

Records are designed to be:
- Immutable and append-only (the buffer and sinks decide retention).
- Cheap to render: the message is a single line capped at `MESSAGE_MAX_LENGTH`.
- Safe by default: every value reaching a record has already been masked by
  the interceptor that extracted it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

MESSAGE_MAX_LENGTH = 200


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(tz=timezone.utc)


def truncate(text: str, limit: int = MESSAGE_MAX_LENGTH) -> str:
    """Cut `text` down to `limit` characters."""
    return text if len(text) <= limit else text[:limit]


def iso_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a `Z` suffix."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Category(str, Enum):
    """Built-in record categories. Host code may use any other string."""

    INIT = "INIT"
    CLICK = "CLICK"
    INPUT = "INPUT"
    KEY = "KEY"
    FORM = "FORM"
    FETCH = "FETCH"
    XHR = "XHR"
    BUS = "BUS"
    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"
    CLEAR = "CLEAR"


COLORS: dict[str, str] = {
    "INIT": "#0f0",
    "CLICK": "#ff6b6b",
    "INPUT": "#00bfff",
    "KEY": "#ffff00",
    "FORM": "#ff00ff",
    "BUS": "#ffa500",
    "FETCH": "#00bfff",
    "XHR": "#00bfff",
    "ERROR": "#ff0000",
    "WARN": "#ffa500",
    "INFO": "#0f0",
    "DEBUG": "#888",
}


def color_for(category: str | Category) -> str:
    """Default display hint for a category (INFO colour when unknown)."""
    key = category.value if isinstance(category, Category) else str(category)
    return COLORS.get(key, COLORS["INFO"])


class EventRecord(BaseModel):
    """A normalized, immutable observation."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    timestamp: datetime
    session_id: str = Field(alias="sessionId")
    category: str
    message: str
    color: str = Field(default=COLORS["INFO"], alias="colorHint")

    # Only interceptors with rich context attach this (status, byte counts, ...).
    details: dict[str, Any] | None = None

    @field_validator("timestamp")
    @classmethod
    def _millisecond_precision(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v.replace(microsecond=(v.microsecond // 1000) * 1000)

    @field_validator("category", mode="before")
    @classmethod
    def _category_value(cls, v: Any) -> Any:
        if isinstance(v, Category):
            return v.value
        return v

    @field_validator("message")
    @classmethod
    def _single_line(cls, v: str) -> str:
        return truncate(" ".join(v.splitlines()))

    @field_serializer("timestamp")
    def _iso_timestamp(self, v: datetime) -> str:
        return iso_timestamp(v)

    def to_storage(self) -> dict[str, Any]:
        """Full record shape used by the persistence sink and export."""
        return self.model_dump(mode="json", by_alias=True)

    def to_wire(self) -> dict[str, Any]:
        """Remote delivery payload (one JSON object per record)."""
        data = self.model_dump(mode="json", by_alias=True)
        return {
            "timestamp": data["timestamp"],
            "sessionId": data["sessionId"],
            "category": data["category"],
            "message": data["message"],
            "colorHint": data["colorHint"],
        }
