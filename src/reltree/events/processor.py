"""Event processor base classes."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reltree.events.types import (
        Event,
        NavigateEvent,
        NodeErrorEvent,
        RenderEndEvent,
        RenderStartEvent,
        SelectEvent,
        ToggleEvent,
    )


# Mapping from event class name to handler method name.
_EVENT_METHOD_MAP: dict[str, str] = {
    "RenderStartEvent": "on_render_start",
    "RenderEndEvent": "on_render_end",
    "ToggleEvent": "on_toggle",
    "SelectEvent": "on_select",
    "NavigateEvent": "on_navigate",
    "NodeErrorEvent": "on_node_error",
}


class EventProcessor:
    """Base class for synchronous event consumers.

    Subclass and override ``on_event`` to receive all events,
    or use ``TypedEventProcessor`` for per-type dispatch.
    """

    def on_event(self, event: Event) -> None:
        """Called for every event. Override in subclasses."""

    def shutdown(self) -> None:
        """Called once when the session is closed. Override to flush buffers."""


class AsyncEventProcessor(EventProcessor):
    """Extends EventProcessor with async variants.

    Async emission prefers ``on_event_async`` and ``shutdown_async``,
    falling back to the sync methods for plain processors.
    """

    async def on_event_async(self, event: Event) -> None:
        """Async version of on_event. Override in subclasses."""

    async def shutdown_async(self) -> None:
        """Async version of shutdown. Override to flush buffers."""


class TypedEventProcessor(EventProcessor):
    """Dispatches ``on_event`` to typed handler methods automatically.

    Override any of the ``on_*`` methods below to handle specific event types.
    Unhandled event types are silently ignored.
    """

    def on_event(self, event: Event) -> None:
        method_name = _EVENT_METHOD_MAP.get(type(event).__name__)
        if method_name is not None:
            method = getattr(self, method_name, None)
            if method is not None:
                method(event)

    def on_render_start(self, event: RenderStartEvent) -> None: ...
    def on_render_end(self, event: RenderEndEvent) -> None: ...
    def on_toggle(self, event: ToggleEvent) -> None: ...
    def on_select(self, event: SelectEvent) -> None: ...
    def on_navigate(self, event: NavigateEvent) -> None: ...
    def on_node_error(self, event: NodeErrorEvent) -> None: ...


class EventCollector(EventProcessor):
    """Keeps every event it receives, in order. Handy for hosts and tests."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    def on_event(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[Event]:
        return [e for e in self.events if isinstance(e, event_type)]
