"""Masking policy applied at the point raw values are extracted.

Masking is keyed on the field *identifier* (name/id), never on the value's
content: a secret typed into an innocuously named field is not caught.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .models import MESSAGE_MAX_LENGTH, truncate

REDACTION_TOKEN = "[REDACTED]"

SENSITIVE_PATTERN = re.compile(r"password|secret|token|key|auth|credential|ssn|credit|card", re.IGNORECASE)

# `type` attribute values that always mark a credential field.
SECRET_INPUT_TYPES = frozenset({"password"})


def is_sensitive_identifier(field_identifier: str | None) -> bool:
    """Return True if the identifier matches the sensitive pattern set."""
    if not field_identifier:
        return False
    return SENSITIVE_PATTERN.search(field_identifier) is not None


def mask(field_identifier: str, raw_value: str, is_secret_field: bool) -> str:
    """Redact or truncate a raw value. Pure function."""
    if is_secret_field or is_sensitive_identifier(field_identifier):
        return REDACTION_TOKEN
    return truncate(str(raw_value), MESSAGE_MAX_LENGTH)


def mask_mapping(data: Mapping[str, Any]) -> dict[str, Any]:
    """Mask a (possibly nested) mapping by key name.

    Nested mappings are masked recursively; scalar values under a
    non-sensitive key are stringified and truncated like `mask`.
    """
    masked: dict[str, Any] = {}
    for key, value in data.items():
        name = str(key)
        if is_sensitive_identifier(name):
            masked[name] = REDACTION_TOKEN
        elif isinstance(value, Mapping):
            masked[name] = mask_mapping(value)
        elif isinstance(value, (list, tuple)):
            masked[name] = [mask(name, str(v), False) for v in value]
        elif value is None or isinstance(value, (bool, int, float)):
            masked[name] = value
        else:
            masked[name] = mask(name, str(value), False)
    return masked


def redact_url(url: str) -> str:
    """Drop URL credentials and redact query parameters with sensitive names."""
    parts = urlsplit(url)
    netloc = parts.netloc.rsplit("@", 1)[-1]
    if parts.query:
        pairs = [
            (key, REDACTION_TOKEN if is_sensitive_identifier(key) else value)
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
        ]
        query = urlencode(pairs, safe="[]")
    else:
        query = ""
    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))
