"""Event system for observing a tree session."""

from reltree.events.dispatcher import EventDispatcher
from reltree.events.processor import (
    AsyncEventProcessor,
    EventCollector,
    EventProcessor,
    TypedEventProcessor,
)
from reltree.events.types import (
    BaseEvent,
    Event,
    NavigateEvent,
    NodeErrorEvent,
    RenderEndEvent,
    RenderStartEvent,
    SelectEvent,
    ToggleEvent,
)

__all__ = [
    # Event types
    "BaseEvent",
    "Event",
    "NavigateEvent",
    "NodeErrorEvent",
    "RenderEndEvent",
    "RenderStartEvent",
    "SelectEvent",
    "ToggleEvent",
    # Processor interfaces
    "AsyncEventProcessor",
    "EventCollector",
    "EventProcessor",
    "TypedEventProcessor",
    # Dispatcher
    "EventDispatcher",
]
