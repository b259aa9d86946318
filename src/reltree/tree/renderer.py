"""Recursive rendering of a relational graph into a view tree.

Starting from a root record, each expanded node shows the record's
attributes, its outbound foreign keys (each a subtree of its own) and the
groups of records referencing it (back-references). Every subtree is keyed
by a path-scoped identity, so the same record may be open in several places
at once.

Traversal stops at reference cycles: a record already on the current path
is drawn as a terminal marker (or omitted) and never expanded. Remote
lookups for sibling subtrees run concurrently, but output order always
follows the schema and configuration.

Failures stay local: a vanished record or a failing lookup becomes a
MISSING/ERROR node in place of its subtree. Only identity-grammar
violations propagate, and only when the renderer is strict.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from reltree.backrefs import BackReferenceLoader, BackReferencePreview
from reltree.cycles import CycleDecision, CycleGuard, TraversalPath
from reltree.exceptions import MalformedIdentifier, RecordNotFound
from reltree.formatting import (
    DefaultValueFormatter,
    ValueFormatter,
    backref_label,
    fk_display_name,
    full_label,
    humanize,
    record_label,
)
from reltree.identity import (
    RecordRef,
    backref_group_node,
    backref_row_node,
    fk_node,
    root_node,
)
from reltree.schema import DEFAULT_AREA_COLOR, Column, SchemaCache, fk_label_field
from reltree.tree.config import RenderConfig
from reltree.tree.view import AttributeCell, ViewNode, ViewNodeType, ViewTree

if TYPE_CHECKING:
    from reltree.expansion import ExpansionState
    from reltree.records import Record, RecordService
    from reltree.schema import BackReferenceDef, Schema, SchemaProvider
    from reltree.tree.template import DetailTemplate, TemplateChild

logger = logging.getLogger(__name__)


class GraphTreeRenderer:
    """Turns root records plus a live schema into a ``ViewTree``.

    Args:
        schemas: Schema provider, wrapped in a ``SchemaCache`` if it is not one
        records: Record data service
        formatter: Value formatter for attribute display
        strict: If True, malformed node identities raise ``MalformedIdentifier``;
            otherwise the offending node is skipped and logged.

    Example:
        >>> renderer = GraphTreeRenderer(provider, service)
        >>> tree = await renderer.render_roots("Flight", flights, state, RenderConfig())
    """

    def __init__(
        self,
        schemas: SchemaCache | SchemaProvider,
        records: RecordService,
        formatter: ValueFormatter | None = None,
        *,
        strict: bool = True,
    ) -> None:
        self.schemas = schemas if isinstance(schemas, SchemaCache) else SchemaCache(schemas)
        self.records = records
        self.formatter = formatter or DefaultValueFormatter()
        self.strict = strict

    def _new_pass(
        self,
        state: ExpansionState,
        config: RenderConfig | None,
        template: DetailTemplate | None,
        is_stale: Callable[[], bool] | None,
    ) -> _RenderPass:
        return _RenderPass(self, state, config or RenderConfig(), template, is_stale)

    async def render_root(
        self,
        entity: str,
        record: Record,
        state: ExpansionState,
        config: RenderConfig | None = None,
        *,
        template: DetailTemplate | None = None,
    ) -> ViewNode:
        """Render one root record and everything expanded beneath it."""
        render_pass = self._new_pass(state, config, template, None)
        schema = await self.schemas.get_extended(entity)
        return await render_pass.render_root(entity, record, schema)

    async def render_roots(
        self,
        entity: str,
        records: list[Record],
        state: ExpansionState,
        config: RenderConfig | None = None,
        *,
        template: DetailTemplate | None = None,
        generation: int = 0,
        is_stale: Callable[[], bool] | None = None,
    ) -> ViewTree:
        """Render a root set. Roots keep their input order.

        Args:
            is_stale: Optional check consulted before descending into a
                subtree; once it returns True the pass stops expanding (its
                result is about to be discarded anyway).
        """
        render_pass = self._new_pass(state, config, template, is_stale)
        schema = await self.schemas.get_extended(entity)
        roots = await asyncio.gather(*(render_pass.render_root(entity, r, schema) for r in records))
        return ViewTree(entity=entity, roots=list(roots), generation=generation, config=render_pass.config)


class _RenderPass:
    """State of one render pass: config, guards and per-pass fetch memos."""

    def __init__(
        self,
        renderer: GraphTreeRenderer,
        state: ExpansionState,
        config: RenderConfig,
        template: DetailTemplate | None,
        is_stale: Callable[[], bool] | None,
    ) -> None:
        self.renderer = renderer
        self.schemas = renderer.schemas
        self.formatter = renderer.formatter
        self.state = state
        self.config = config
        self.template = template
        self.guard = CycleGuard(config.show_cycles)
        self.loader = BackReferenceLoader(renderer.records, config.back_ref_preview_limit)
        self._is_stale = is_stale or (lambda: False)
        self._record_tasks: dict[RecordRef, asyncio.Task[Record]] = {}

    # =========================================================================
    # Helpers
    # =========================================================================

    def _key(self, build: Callable[[], Any]) -> str | None:
        """Build a node key; in non-strict mode a malformed one skips the node."""
        try:
            return build().key
        except MalformedIdentifier:
            if self.renderer.strict:
                raise
            logger.warning("Skipping node with malformed identity", exc_info=True)
            return None

    async def _fetch(self, ref: RecordRef) -> Record:
        """Fetch a record once per pass; concurrent callers share the request."""
        task = self._record_tasks.get(ref)
        if task is None:
            task = asyncio.ensure_future(self.renderer.records.get_by_id(ref.entity, ref.id))
            self._record_tasks[ref] = task
        return dict(await asyncio.shield(task))

    def _columns(self, schema: Schema) -> list[Column]:
        columns = schema.visible_columns(self.config.show_system_columns)
        if self.config.attribute_order == "alpha":
            columns = sorted(columns, key=lambda c: c.name)
        return columns

    def _attribute(self, col: Column, record: Record, schema: Schema) -> ViewNode:
        value = self.formatter.format(record.get(col.name), col, schema)
        return ViewNode(ViewNodeType.ATTRIBUTE, label=humanize(col.name), name=col.name, value=value)

    def _attribute_row(self, columns: list[Column], record: Record, schema: Schema) -> ViewNode:
        cells = [
            AttributeCell(col.name, self.formatter.format(record.get(col.name), col, schema), humanize(col.name))
            for col in columns
        ]
        return ViewNode(ViewNodeType.ATTRIBUTE_ROW, label="attributes", cells=cells)

    def _display_cells(self, columns: list[Column], record: Record, schema: Schema) -> list[AttributeCell]:
        """Row cells: plain columns formatted, FK columns by their label field."""
        cells = []
        for col in columns:
            if col.is_foreign_key:
                label = record.get(fk_label_field(col.name))
                raw = record.get(col.name)
                if label:
                    value = str(label)
                elif raw is not None:
                    value = f"#{raw}"
                else:
                    value = ""
                cells.append(AttributeCell(fk_label_field(col.name), value, humanize(fk_display_name(col))))
            else:
                cells.append(
                    AttributeCell(col.name, self.formatter.format(record.get(col.name), col, schema), humanize(col.name))
                )
        return cells

    @staticmethod
    def _failure(exc: BaseException, what: str, entity: str, record_id: Any = None) -> ViewNode:
        if isinstance(exc, RecordNotFound):
            return ViewNode(
                ViewNodeType.MISSING,
                label=f"{entity} #{record_id}",
                entity=entity,
                record_id=None if record_id is None else str(record_id),
                message="record not found",
            )
        logger.warning("Failed to render %s for %s #%s", what, entity, record_id, exc_info=exc)
        return ViewNode(
            ViewNodeType.ERROR,
            label=f"{entity} #{record_id}" if record_id is not None else entity,
            entity=entity,
            record_id=None if record_id is None else str(record_id),
            message=f"{what} failed: {exc}",
        )

    # =========================================================================
    # Root
    # =========================================================================

    async def render_root(self, entity: str, record: Record, schema: Schema) -> ViewNode:
        record_id = record.get("id")
        key = self._key(lambda: root_node(entity, record_id))
        label = record_label(record, schema)
        expanded = key is not None and self.state.is_expanded(key)
        node = ViewNode(
            ViewNodeType.ROOT,
            label=label.title,
            subtitle=label.subtitle,
            key=key,
            entity=entity,
            record_id=str(record_id),
            expandable=key is not None,
            expanded=expanded,
            selected=key is not None and self.state.is_selected(key),
            area_color=schema.area_color,
        )
        if expanded:
            # The root is on its own path so a reference back to it is a cycle.
            path = TraversalPath.seed(RecordRef(entity, record_id))
            if self.template is not None:
                node.children = await self.render_template_content(
                    entity, record, schema, path, self.template.attributes, self.template.children
                )
            else:
                node.children = await self.render_node(entity, record, schema, path)
        return node

    # =========================================================================
    # Node content
    # =========================================================================

    async def render_node(self, entity: str, record: Record, schema: Schema, path: TraversalPath) -> list[ViewNode]:
        """Attributes, FK subtrees and back-reference groups of one record."""
        if self._is_stale():
            return []

        columns = self._columns(schema)
        attr_cols = [c for c in columns if not c.is_foreign_key]
        fk_cols = [c for c in columns if c.is_foreign_key]

        # Fetch siblings concurrently; assemble in column order below.
        *fk_results, backref_nodes = await asyncio.gather(
            *(self.render_fk(col, record, path) for col in fk_cols),
            self.render_backrefs(entity, record.get("id"), schema, path),
        )
        fk_nodes = dict(zip((c.name for c in fk_cols), fk_results))
        all_fk_nodes = [n for col in fk_cols for n in fk_nodes[col.name]]

        row_layout = self.config.is_row_layout
        attr_row = [self._attribute_row(attr_cols, record, schema)] if row_layout and attr_cols else []
        attr_list = [] if row_layout else [self._attribute(c, record, schema) for c in attr_cols]

        position = self.config.reference_position
        if position == "start":
            if row_layout:
                return attr_row + all_fk_nodes + backref_nodes
            return all_fk_nodes + backref_nodes + attr_list
        if position == "inline":
            if row_layout:
                return attr_row + all_fk_nodes + backref_nodes
            nodes: list[ViewNode] = []
            for col in columns:
                if col.is_foreign_key:
                    nodes.extend(fk_nodes[col.name])
                else:
                    nodes.append(self._attribute(col, record, schema))
            return nodes + backref_nodes
        return attr_row + attr_list + all_fk_nodes + backref_nodes

    async def render_references(self, entity: str, record: Record, schema: Schema, path: TraversalPath) -> list[ViewNode]:
        """FK subtrees and back-reference groups only (content of an expanded row)."""
        if self._is_stale():
            return []
        fk_cols = [c for c in self._columns(schema) if c.is_foreign_key]
        *fk_results, backref_nodes = await asyncio.gather(
            *(self.render_fk(col, record, path) for col in fk_cols),
            self.render_backrefs(entity, record.get("id"), schema, path),
        )
        return [n for nodes in fk_results for n in nodes] + backref_nodes

    async def _render_target(
        self,
        ref: RecordRef,
        path: TraversalPath,
        render: Callable[[Record, Schema], Awaitable[list[ViewNode]]],
    ) -> list[ViewNode]:
        try:
            schema = await self.schemas.get_extended(ref.entity)
            record = await self._fetch(ref)
        except MalformedIdentifier:
            raise
        except Exception as exc:
            return [self._failure(exc, "load", ref.entity, ref.id)]
        return await render(record, schema)

    # =========================================================================
    # Outbound foreign keys
    # =========================================================================

    async def _fk_label(self, col: Column, parent: Record, target: RecordRef) -> tuple[str, str]:
        """(label, area color) of an FK target, preferring the pre-joined label."""
        preloaded = parent.get(fk_label_field(col.name))
        label = str(preloaded) if preloaded else f"#{target.id}"
        area_color = DEFAULT_AREA_COLOR
        try:
            target_schema = await self.schemas.get_extended(target.entity)
            area_color = target_schema.area_color
            if not preloaded:
                label = full_label(await self._fetch(target), target_schema)
        except Exception:
            logger.debug("Falling back to id label for %s", target, exc_info=True)
        return label, area_color

    async def render_fk(
        self,
        col: Column,
        parent: Record,
        path: TraversalPath,
        template_child: TemplateChild | None = None,
    ) -> list[ViewNode]:
        """Render one FK column as an expandable node (0 or 1 nodes)."""
        value = parent.get(col.name)
        display = fk_display_name(col)
        if value is None or value == "":
            if not self.config.show_null_fks:
                return []
            return [ViewNode(ViewNodeType.NULL_FK, label=humanize(display), name=display, value="")]

        target = RecordRef(col.foreign_key.entity, value)
        key = self._key(lambda: fk_node(target.entity, target.id, parent.get("id")))
        if key is None:
            return []

        decision = self.guard.check(path, target)
        if decision == CycleDecision.OMIT:
            return []

        label, area_color = await self._fk_label(col, parent, target)
        if decision == CycleDecision.MARK:
            return [
                ViewNode(
                    ViewNodeType.CYCLE,
                    label=label,
                    key=key,
                    entity=target.entity,
                    record_id=target.id,
                    name=display,
                    value=label,
                    area_color=area_color,
                    message="reference cycle",
                )
            ]

        # Template children open automatically.
        expanded = template_child is not None or self.state.is_expanded(key)
        node = ViewNode(
            ViewNodeType.FK,
            label=label,
            key=key,
            entity=target.entity,
            record_id=target.id,
            name=display,
            value=label,
            expandable=True,
            expanded=expanded,
            area_color=area_color,
        )
        if expanded:
            child_path = path.extend(target)
            if template_child is not None:
                node.children = await self._render_target(
                    target,
                    child_path,
                    lambda rec, sch: self.render_template_content(
                        target.entity, rec, sch, child_path, template_child.attributes, template_child.children
                    ),
                )
            else:
                node.children = await self._render_target(
                    target,
                    child_path,
                    lambda rec, sch: self.render_node(target.entity, rec, sch, child_path),
                )
        return [node]

    # =========================================================================
    # Back-references
    # =========================================================================

    def _group_node(
        self,
        key: str,
        ref: BackReferenceDef,
        parent_entity: str,
        record_id: Any,
        preview: BackReferencePreview,
    ) -> ViewNode:
        return ViewNode(
            ViewNodeType.BACKREF_GROUP,
            label=backref_label(ref, parent_entity),
            key=key,
            entity=ref.entity,
            record_id=str(record_id),
            name=ref.column,
            expandable=True,
            expanded=self.state.is_expanded(key),
            area_color=ref.area_color,
            total_count=preview.total_count,
            shown_count=preview.shown_count,
            is_truncated=preview.is_truncated,
        )

    def _group_error(self, ref: BackReferenceDef, parent_entity: str, preview: BackReferencePreview) -> ViewNode:
        return ViewNode(
            ViewNodeType.ERROR,
            label=backref_label(ref, parent_entity),
            entity=ref.entity,
            name=ref.column,
            area_color=ref.area_color,
            message=str(preview.error),
        )

    async def render_backrefs(self, entity: str, record_id: Any, schema: Schema, path: TraversalPath) -> list[ViewNode]:
        """One group node per non-empty back-reference definition."""
        refs = list(schema.back_references)
        if not refs:
            return []
        previews = await asyncio.gather(*(self.loader.load(entity, record_id, ref) for ref in refs))
        groups = await asyncio.gather(
            *(self._render_group(entity, record_id, ref, preview, path) for ref, preview in zip(refs, previews))
        )
        return [g for g in groups if g is not None]

    async def _render_group(
        self,
        entity: str,
        record_id: Any,
        ref: BackReferenceDef,
        preview: BackReferencePreview,
        path: TraversalPath,
        template_child: TemplateChild | None = None,
    ) -> ViewNode | None:
        if preview.error is not None:
            return self._group_error(ref, entity, preview)
        if preview.is_empty:
            return None
        key = self._key(lambda: backref_group_node(ref.entity, entity, record_id))
        if key is None:
            return None

        node = self._group_node(key, ref, entity, record_id, preview)
        if node.expanded:
            node.children = await self._render_rows(entity, record_id, ref, preview, path, template_child)
        return node

    async def _render_rows(
        self,
        parent_entity: str,
        parent_id: Any,
        ref: BackReferenceDef,
        preview: BackReferencePreview,
        path: TraversalPath,
        template_child: TemplateChild | None,
    ) -> list[ViewNode]:
        try:
            ref_schema = await self.schemas.get_extended(ref.entity)
        except Exception as exc:
            return [self._failure(exc, "schema lookup", ref.entity)]

        if template_child is not None:
            columns = [c for c in (_find_column(ref_schema, a) for a in template_child.attributes) if c is not None]
        else:
            columns = self._columns(ref_schema)

        rows = await asyncio.gather(
            *(
                self._render_row(parent_entity, parent_id, ref, ref_schema, row, columns, path, template_child)
                for row in preview.rows
            )
        )
        nodes = [r for r in rows if r is not None]
        if preview.is_truncated:
            remaining = preview.total_count - preview.shown_count
            nodes.append(
                ViewNode(
                    ViewNodeType.MORE,
                    label=f"{remaining} more",
                    entity=ref.entity,
                    name=ref.column,
                    total_count=preview.total_count,
                    shown_count=preview.shown_count,
                    is_truncated=True,
                )
            )
        return nodes

    async def _render_row(
        self,
        parent_entity: str,
        parent_id: Any,
        ref: BackReferenceDef,
        ref_schema: Schema,
        row: Record,
        columns: list[Column],
        path: TraversalPath,
        template_child: TemplateChild | None,
    ) -> ViewNode | None:
        row_ref = RecordRef(ref.entity, row.get("id"))
        key = self._key(lambda: backref_row_node(ref.entity, row.get("id"), parent_entity, parent_id))
        if key is None:
            return None

        decision = self.guard.check(path, row_ref)
        if decision == CycleDecision.OMIT:
            return None

        label = full_label(row, ref_schema)
        cells = self._display_cells(columns, row, ref_schema)
        if decision == CycleDecision.MARK:
            return ViewNode(
                ViewNodeType.CYCLE,
                label=label,
                key=key,
                entity=ref.entity,
                record_id=row_ref.id,
                area_color=ref_schema.area_color,
                cells=cells,
                message="reference cycle",
            )

        expandable = template_child is None or bool(template_child.children)
        expanded = expandable and self.state.is_expanded(key)
        node = ViewNode(
            ViewNodeType.BACKREF_ROW,
            label=label,
            key=key,
            entity=ref.entity,
            record_id=row_ref.id,
            expandable=expandable,
            expanded=expanded,
            area_color=ref_schema.area_color,
            cells=cells,
        )
        if expanded:
            row_path = path.extend(row_ref)
            if template_child is not None:
                node.children = await self.render_template_content(
                    ref.entity, row, ref_schema, row_path, (), template_child.children
                )
            else:
                node.children = await self.render_references(ref.entity, row, ref_schema, row_path)
        return node

    # =========================================================================
    # Template mode
    # =========================================================================

    async def render_template_content(
        self,
        entity: str,
        record: Record,
        schema: Schema,
        path: TraversalPath,
        attributes: tuple[str, ...],
        children: tuple[TemplateChild, ...],
    ) -> list[ViewNode]:
        """Only the template's attributes (as one row) and children, in template order."""
        if self._is_stale():
            return []

        nodes: list[ViewNode] = []
        columns = [c for c in (_find_column(schema, a) for a in attributes) if c is not None]
        if columns:
            nodes.append(
                ViewNode(ViewNodeType.ATTRIBUTE_ROW, label="attributes", cells=self._display_cells(columns, record, schema))
            )

        async def render_child(child: TemplateChild) -> list[ViewNode]:
            if child.type == "fk":
                col = _find_column(schema, child.field)
                if col is None or not col.is_foreign_key:
                    return []
                return await self.render_fk(col, record, path, template_child=child)
            group = await self._render_template_backref(entity, record.get("id"), schema, child, path)
            return [group] if group is not None else []

        results = await asyncio.gather(*(render_child(c) for c in children))
        for child_nodes in results:
            nodes.extend(child_nodes)
        return nodes

    async def _render_template_backref(
        self,
        entity: str,
        record_id: Any,
        schema: Schema,
        child: TemplateChild,
        path: TraversalPath,
    ) -> ViewNode | None:
        ref = next((r for r in schema.back_references if r.entity == child.entity), None)
        if ref is None:
            return None
        preview = await self.loader.load(
            entity, record_id, ref, limit=child.limit, order_by=child.order_by, descending=child.descending
        )
        return await self._render_group(entity, record_id, ref, preview, path, template_child=child)


def _find_column(schema: Schema, name: str | None) -> Column | None:
    """Column by exact name, or an FK column named ``{name}_id``."""
    if not name:
        return None
    col = schema.column(name)
    if col is not None:
        return col
    col = schema.column(f"{name}_id")
    if col is not None and col.is_foreign_key:
        return col
    return None

