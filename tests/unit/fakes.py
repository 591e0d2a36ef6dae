"""Minimal stand-ins for a host document (elements, events, event target)."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass
class FakeElement:
    tag_name: str
    id: str = ""
    class_list: list[str] = field(default_factory=list)
    text_content: str | None = None
    parent: FakeElement | None = None
    attributes: dict[str, str] = field(default_factory=dict)
    value: str = ""

    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name)


@dataclass
class FakeEvent:
    type: str
    target: FakeElement
    key: str | None = None


class FakeDocument:
    """Document root that records listeners and dispatches to them."""

    def __init__(self) -> None:
        self.listeners: list[tuple[str, Callable[[Any], None], bool]] = []

    def add_event_listener(self, event_type: str, listener: Callable[[Any], None], capture: bool = False) -> None:
        self.listeners.append((event_type, listener, capture))

    def remove_event_listener(self, event_type: str, listener: Callable[[Any], None], capture: bool = False) -> None:
        self.listeners.remove((event_type, listener, capture))

    def dispatch(self, event: FakeEvent) -> None:
        for event_type, listener, _capture in list(self.listeners):
            if event_type == event.type:
                listener(event)
