"""Event types emitted by a tree session."""

from __future__ import annotations

import time
from dataclasses import dataclass, field


def _now() -> float:
    """Current timestamp."""
    return time.time()


@dataclass(frozen=True)
class BaseEvent:
    """Base class for all session events.

    Attributes:
        session_id: Identifier of the session that produced this event.
        timestamp: Unix timestamp when the event was created.
    """

    session_id: str
    timestamp: float = field(default_factory=_now)


@dataclass(frozen=True)
class RenderStartEvent(BaseEvent):
    """Emitted when a render pass begins.

    Attributes:
        entity: Entity of the root set.
        generation: Render generation of this pass.
        root_count: Number of roots being rendered.
    """

    entity: str = ""
    generation: int = 0
    root_count: int = 0


@dataclass(frozen=True)
class RenderEndEvent(BaseEvent):
    """Emitted when a render pass finishes.

    Attributes:
        entity: Entity of the root set.
        generation: Render generation of this pass.
        node_count: Number of nodes in the produced tree (0 when stale).
        duration_ms: Wall-clock duration in milliseconds.
        stale: True when a newer generation superseded this pass and its
            result was discarded.
    """

    entity: str = ""
    generation: int = 0
    node_count: int = 0
    duration_ms: float = 0.0
    stale: bool = False


@dataclass(frozen=True)
class ToggleEvent(BaseEvent):
    """Emitted when a node is expanded or collapsed.

    Attributes:
        key: Node identity that was toggled.
        expanded: State after the toggle.
        removed: Keys removed from the expanded set by a collapse.
    """

    key: str = ""
    expanded: bool = False
    removed: frozenset[str] = frozenset()


@dataclass(frozen=True)
class SelectEvent(BaseEvent):
    """Emitted when a root is selected or deselected."""

    key: str = ""
    selected: bool = False


@dataclass(frozen=True)
class NavigateEvent(BaseEvent):
    """Emitted when the host is asked to navigate to a record.

    Attributes:
        entity: Target entity.
        record_id: Target record id.
        expand: Whether the target root is opened on arrival.
    """

    entity: str = ""
    record_id: str = ""
    expand: bool = False


@dataclass(frozen=True)
class NodeErrorEvent(BaseEvent):
    """Emitted for each degraded (MISSING or ERROR) node of a render.

    Attributes:
        key: Identity of the nearest keyed ancestor, if any.
        label: Label of the degraded node.
        error: Error message.
    """

    key: str | None = None
    label: str = ""
    error: str = ""


Event = RenderStartEvent | RenderEndEvent | ToggleEvent | SelectEvent | NavigateEvent | NodeErrorEvent
