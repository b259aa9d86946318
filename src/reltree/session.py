"""Host-facing controller for one tree view.

``TreeSession`` owns the root set, the expansion state and the render
generation. Hosts wire their input handling to ``on_toggle``/``on_select``/
``on_navigate`` and call ``render`` whenever they want a fresh tree.

Every change to the root set or the configuration bumps the generation. A
render pass remembers the generation it started under; if a newer one
exists by the time it finishes, its result is discarded and ``render``
returns ``None``.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from reltree.events import (
    EventDispatcher,
    NavigateEvent,
    NodeErrorEvent,
    RenderEndEvent,
    RenderStartEvent,
    SelectEvent,
    ToggleEvent,
)
from reltree.expansion import ExpansionState
from reltree.identity import RootNode, fk_node, parse_identifier, root_node
from reltree.schema import SchemaCache
from reltree.tree.config import RenderConfig
from reltree.tree.renderer import GraphTreeRenderer
from reltree.tree.view import ViewNodeType

if TYPE_CHECKING:
    from reltree.events import Event
    from reltree.formatting import ValueFormatter
    from reltree.records import Record, RecordService
    from reltree.schema import SchemaProvider
    from reltree.tree.template import DetailTemplate
    from reltree.tree.view import ViewTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NavigationRequest:
    """Ask the host to switch to ``entity`` and select record ``record_id``.

    Attributes:
        entity: Target entity
        record_id: Target record id
        expand: Whether the target root should be opened on arrival
    """

    entity: str
    record_id: str
    expand: bool = False

    @property
    def root_key(self) -> str:
        return root_node(self.entity, self.record_id).key


class TreeSession:
    """State and transitions of one explorer tree.

    Args:
        schemas: Schema provider (wrapped in a ``SchemaCache``)
        records: Record data service
        config: Initial render configuration
        dispatcher: Receives session events; a silent one is used if omitted
        formatter: Value formatter passed to the renderer
        template: Optional detail template for the root level
        strict: Passed to the renderer; see ``GraphTreeRenderer``
    """

    def __init__(
        self,
        schemas: SchemaCache | SchemaProvider,
        records: RecordService,
        config: RenderConfig | None = None,
        dispatcher: EventDispatcher | None = None,
        *,
        formatter: ValueFormatter | None = None,
        template: DetailTemplate | None = None,
        strict: bool = True,
    ) -> None:
        self.schemas = schemas if isinstance(schemas, SchemaCache) else SchemaCache(schemas)
        self.records = records
        self.config = config or RenderConfig()
        self.dispatcher = dispatcher or EventDispatcher()
        self.template = template
        self.session_id = uuid.uuid4().hex[:16]
        self.state = ExpansionState()
        self.renderer = GraphTreeRenderer(self.schemas, records, formatter, strict=strict)

        self.entity: str | None = None
        self.roots: list[Record] = []
        self.generation = 0
        self.last_tree: ViewTree | None = None

    def __repr__(self) -> str:
        return f"TreeSession(entity={self.entity!r}, roots={len(self.roots)}, generation={self.generation})"

    def _emit(self, event: Event) -> None:
        if self.dispatcher.active:
            self.dispatcher.emit(event)

    def _bump(self) -> int:
        self.generation += 1
        return self.generation

    # =========================================================================
    # Root set
    # =========================================================================

    async def load_roots(
        self,
        entity: str,
        records: list[Record],
        *,
        selected_id: Any = None,
        expand_levels: int = 1,
    ) -> None:
        """Replace the root set. Expansion state starts over.

        Args:
            selected_id: Root to select and open; its outbound FKs are
                pre-expanded ``expand_levels`` deep.

        Raises:
            ValueError: If ``selected_id`` is not the id of one of ``records``
        """
        records = list(records)
        selected = None
        if selected_id is not None:
            selected = next((r for r in records if str(r.get("id")) == str(selected_id)), None)
            if selected is None:
                raise ValueError(f"Selected id {selected_id!r} is not in the {entity} root set")

        self.entity = entity
        self.roots = records
        self.state.clear()
        self.last_tree = None
        self._bump()

        if selected is None:
            return
        key = root_node(entity, selected_id).key
        self.state.set_selection(key)
        self.state.expand(key)
        if expand_levels >= 1:
            await self.expand_fk_levels(entity, selected, expand_levels, parent_key=key)

    async def expand_fk_levels(self, entity: str, record: Record, levels: int, *, parent_key: str | None = None) -> None:
        """Expand every outbound FK of ``record``, ``levels`` deep.

        Targets that cannot be loaded are skipped; their FK node stays open.
        """
        if levels <= 0:
            return
        schema = await self.schemas.get_extended(entity)
        for col in schema.fk_columns:
            target_id = record.get(col.name)
            if target_id is None or target_id == "":
                continue
            key = fk_node(col.foreign_key.entity, target_id, record.get("id")).key
            self.state.expand(key, parent=parent_key)
            if levels > 1:
                try:
                    target = await self.records.get_by_id(col.foreign_key.entity, target_id)
                except Exception:
                    logger.debug("Not expanding below %s", key, exc_info=True)
                    continue
                await self.expand_fk_levels(col.foreign_key.entity, target, levels - 1, parent_key=key)

    def set_config(self, config: RenderConfig) -> None:
        """Switch the render configuration. Any in-flight render becomes stale."""
        self.config = config
        self._bump()

    # =========================================================================
    # Rendering
    # =========================================================================

    def _visible_roots(self) -> list[Record]:
        """Only the selected root when one is selected, else the whole set."""
        selected = self.state.selected
        if selected is None or self.entity is None:
            return self.roots
        for record in self.roots:
            if root_node(self.entity, record.get("id")).key == selected:
                return [record]
        return self.roots

    async def render(self) -> ViewTree | None:
        """Render the current state, or return None if superseded meanwhile."""
        if self.entity is None:
            raise RuntimeError("No root set loaded; call load_roots() first")

        generation = self.generation
        entity = self.entity
        roots = self._visible_roots()
        self._emit(RenderStartEvent(self.session_id, entity=entity, generation=generation, root_count=len(roots)))
        start = time.monotonic()

        tree = await self.renderer.render_roots(
            entity,
            roots,
            self.state,
            self.config,
            template=self.template,
            generation=generation,
            is_stale=lambda: self.generation != generation,
        )
        duration_ms = (time.monotonic() - start) * 1000

        if self.generation != generation:
            logger.debug("Discarding stale render (generation %d, current %d)", generation, self.generation)
            self._emit(RenderEndEvent(self.session_id, entity=entity, generation=generation, duration_ms=duration_ms, stale=True))
            return None

        self.last_tree = tree
        self._emit_node_errors(tree)
        self._emit(
            RenderEndEvent(
                self.session_id,
                entity=entity,
                generation=generation,
                node_count=len(tree),
                duration_ms=duration_ms,
            )
        )
        return tree

    def _emit_node_errors(self, tree: ViewTree) -> None:
        if not self.dispatcher.active:
            return

        def visit(node, parent_key):
            if node.type in (ViewNodeType.MISSING, ViewNodeType.ERROR):
                self._emit(NodeErrorEvent(self.session_id, key=parent_key, label=node.label, error=node.message or ""))
            for child in node.children:
                visit(child, node.key or parent_key)

        for root in tree.roots:
            visit(root, None)

    # =========================================================================
    # Host events
    # =========================================================================

    def on_toggle(self, key: str) -> bool:
        """Expand or cascade-collapse ``key``.

        Raises:
            MalformedIdentifier: If ``key`` is not a valid node identity
        """
        parse_identifier(key)
        if self.state.is_expanded(key):
            removed = self.state.collapse(key, spare_earlier=True)
            self._emit(ToggleEvent(self.session_id, key=key, expanded=False, removed=frozenset(removed)))
            return False

        parents = self.last_tree.parents().get(key, []) if self.last_tree is not None else []
        self.state.expand(key, parent=parents)
        self._emit(ToggleEvent(self.session_id, key=key, expanded=True))
        return True

    def on_select(self, key: str) -> bool:
        """Toggle selection of a root key.

        Raises:
            MalformedIdentifier: If ``key`` is not a valid node identity
            ValueError: If ``key`` is not a root of the current root set
        """
        node = parse_identifier(key)
        if not isinstance(node, RootNode) or node.entity != self.entity or not any(
            str(r.get("id")) == node.id for r in self.roots
        ):
            raise ValueError(f"Only roots of the current root set can be selected, got {key!r}")
        selected = self.state.select(key)
        self._emit(SelectEvent(self.session_id, key=key, selected=selected))
        return selected

    def on_navigate(self, entity: str, record_id: Any, *, expand: bool = False) -> NavigationRequest:
        """Describe a jump to another record; the host performs it."""
        request = NavigationRequest(entity, str(record_id), expand)
        self._emit(NavigateEvent(self.session_id, entity=entity, record_id=request.record_id, expand=expand))
        return request

    async def navigate_and_expand(self, entity: str, record_id: Any, *, expand_levels: int = 1) -> ViewTree | None:
        """Switch to ``entity``, then select, open and render ``record_id``."""
        self.on_navigate(entity, record_id, expand=True)
        records = await self.records.get_all(entity)
        await self.load_roots(entity, records, selected_id=record_id, expand_levels=expand_levels)
        return await self.render()
