"""UI interaction interceptor (click, input, submit, keydown).

The host exposes its document root as an `EventTarget`; listeners are
registered in capture phase so they observe events before application
handlers can stop propagation.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol

from observability.masking import SECRET_INPUT_TYPES, mask, redact_url
from observability.models import Category, color_for, truncate
from observability.pipeline import CapturePipeline

from .base import Interceptor

PANEL_ELEMENT_ID = "live-probe-panel"

ALLOWED_KEYS = frozenset({"Enter", "Escape", "/"})

MAX_CLASS_NAMES = 3
CLICK_TEXT_LIMIT = 40

_FIELD_TAGS = frozenset({"input", "textarea"})

# Lifecycle-bus request attributes worth flagging on a clicked element.
BUS_REQUEST_ATTRIBUTES = ("hx-get", "hx-post")


class Element(Protocol):
    tag_name: str
    id: str
    class_list: Sequence[str]
    text_content: str | None
    parent: Element | None

    def get_attribute(self, name: str) -> str | None: ...


class UIEvent(Protocol):
    type: str
    target: Element
    key: str | None


class EventTarget(Protocol):
    def add_event_listener(self, event_type: str, listener: Callable[[Any], None], capture: bool = False) -> None: ...

    def remove_event_listener(
        self, event_type: str, listener: Callable[[Any], None], capture: bool = False
    ) -> None: ...


def within_panel(element: Element | None, panel_id: str = PANEL_ELEMENT_ID) -> bool:
    """True if `element` is the viewer panel or one of its descendants."""
    node = element
    while node is not None:
        if getattr(node, "id", None) == panel_id:
            return True
        node = getattr(node, "parent", None)
    return False


def describe_element(element: Element) -> str:
    """`tag#id.cls1.cls2 - "text"` summary used for click records."""
    tag = (element.tag_name or "").lower()
    element_id = f"#{element.id}" if element.id else ""
    classes = list(element.class_list or ())[:MAX_CLASS_NAMES]
    class_part = "." + ".".join(classes) if classes else ""
    text = truncate((element.text_content or "").strip(), CLICK_TEXT_LIMIT)
    return f'{tag}{element_id}{class_part} - "{text}"'


class DomInterceptor(Interceptor):
    """Records qualifying UI events dispatched on the host's document root."""

    name = "dom"

    def __init__(self, pipeline: CapturePipeline, target: EventTarget, *, panel_id: str = PANEL_ELEMENT_ID) -> None:
        super().__init__(pipeline)
        self._target = target
        self._panel_id = panel_id

    def _install(self) -> None:
        self._listen("click", self._on_click)
        self._listen("input", self._on_input)
        self._listen("submit", self._on_submit)
        self._listen("keydown", self._on_keydown)

    def _listen(self, event_type: str, handler: Callable[[UIEvent], None]) -> None:
        def listener(event: UIEvent) -> None:
            self._observe(handler, event)

        self._target.add_event_listener(event_type, listener, True)
        self._subscribe(
            lambda: self._target.remove_event_listener(event_type, listener, True),
            f"dom:{event_type}",
        )

    def _on_click(self, event: UIEvent) -> None:
        target = event.target
        if within_panel(target, self._panel_id):
            return
        self._capture(
            Category.CLICK,
            describe_element(target),
            color_for(Category.CLICK),
            {"tag": (target.tag_name or "").lower(), "id": target.id or None},
        )
        for attribute in BUS_REQUEST_ATTRIBUTES:
            url = target.get_attribute(attribute)
            if url is None:
                continue
            self._capture(
                Category.BUS,
                f'Element has {attribute}="{redact_url(url)}"',
                color_for(Category.BUS),
                {"attribute": attribute},
            )

    def _on_input(self, event: UIEvent) -> None:
        target = event.target
        if within_panel(target, self._panel_id):
            return
        if (target.tag_name or "").lower() not in _FIELD_TAGS:
            return

        name = target.get_attribute("name") or ""
        label = target.id or name or "unnamed"
        field_type = (target.get_attribute("type") or "").lower()
        value = mask(
            " ".join(part for part in (target.id, name) if part) or label,
            getattr(target, "value", "") or "",
            field_type in SECRET_INPUT_TYPES,
        )
        self._capture(Category.INPUT, f'{label} = "{value}"', color_for(Category.INPUT))

    def _on_submit(self, event: UIEvent) -> None:
        target = event.target
        if within_panel(target, self._panel_id):
            return
        action = target.get_attribute("action") or "no action"
        self._capture(Category.FORM, f"Form submitted: {action}", color_for(Category.FORM))

    def _on_keydown(self, event: UIEvent) -> None:
        if event.key not in ALLOWED_KEYS:
            return
        target = event.target
        if within_panel(target, self._panel_id):
            return
        tag = (target.tag_name or "").upper()
        element_id = f"#{target.id}" if target.id else ""
        self._capture(Category.KEY, f"{event.key} pressed on {tag}{element_id}", color_for(Category.KEY))
