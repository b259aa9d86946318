"""Relational schema model, provider protocol and read-through cache.

A ``Schema`` describes one entity: its ordered columns (some of them
foreign keys), the back-references other entities hold to it, and display
metadata. Schemas are immutable for a session and cached by entity name.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol

import networkx as nx

from reltree.exceptions import SchemaNotFound

logger = logging.getLogger(__name__)

# Hidden by default: bookkeeping columns, not user attributes
SYSTEM_COLUMNS = frozenset({"_version", "_created_at", "_updated_at"})

DEFAULT_AREA_COLOR = "#f5f5f5"


def fk_base_name(column_name: str) -> str:
    """``aircraft_type_id`` -> ``aircraft_type``."""
    return column_name[:-3] if column_name.endswith("_id") else column_name


def fk_label_field(column_name: str) -> str:
    """Name of the pre-joined label field for an FK column: ``aircraft_id`` -> ``aircraft_label``."""
    return fk_base_name(column_name) + "_label"


@dataclass(frozen=True)
class ForeignKey:
    """Target of a foreign-key column."""

    entity: str
    column: str = "id"


@dataclass(frozen=True)
class Column:
    """One column of an entity.

    Attributes:
        name: Column name
        type: Declared type (informational)
        foreign_key: Target entity if this column is an outbound reference
        hidden: Never shown in the tree
        system: Bookkeeping column, shown only with ``show_system_columns``
        label: Primary label role
        label2: Secondary label role (subtitle)
        enum_values: Optional mapping of stored value to display text
    """

    name: str
    type: str = "TEXT"
    foreign_key: ForeignKey | None = None
    hidden: bool = False
    system: bool = False
    label: bool = False
    label2: bool = False
    enum_values: Mapping[Any, str] | None = None

    @property
    def is_foreign_key(self) -> bool:
        return self.foreign_key is not None

    @property
    def is_system(self) -> bool:
        return self.system or self.name in SYSTEM_COLUMNS

    @property
    def label_field(self) -> str:
        """Field holding this column's display value (``*_label`` for FKs)."""
        return fk_label_field(self.name) if self.is_foreign_key else self.name


@dataclass(frozen=True)
class BackReferenceDef:
    """Records of ``entity`` point to the owning schema's records via ``column``."""

    entity: str
    column: str
    area_color: str = DEFAULT_AREA_COLOR

    @property
    def key(self) -> str:
        """Grouping key used by record services: ``{entity}:{column}``."""
        return f"{self.entity}:{self.column}"


@dataclass(frozen=True)
class Schema:
    """Extended schema of one entity."""

    entity: str
    columns: tuple[Column, ...] = ()
    back_references: tuple[BackReferenceDef, ...] = ()
    label_fields: tuple[str, ...] | None = None
    has_computed_label: bool = False
    area_color: str = DEFAULT_AREA_COLOR

    def __post_init__(self) -> None:
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "back_references", tuple(self.back_references))
        if self.label_fields is None:
            derived = [c.label_field for c in self.columns if c.label]
            derived += [c.label_field for c in self.columns if c.label2 and not c.label]
            object.__setattr__(self, "label_fields", tuple(derived) or None)
        else:
            object.__setattr__(self, "label_fields", tuple(self.label_fields))

    def column(self, name: str) -> Column | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    @property
    def fk_columns(self) -> tuple[Column, ...]:
        return tuple(c for c in self.columns if c.is_foreign_key)

    def visible_columns(self, show_system: bool = False) -> list[Column]:
        """Columns to display: hidden ones never, system ones only on request."""
        return [c for c in self.columns if not c.hidden and (show_system or not c.is_system)]

    def with_back_references(self, back_references: Iterable[BackReferenceDef]) -> Schema:
        return Schema(
            entity=self.entity,
            columns=self.columns,
            back_references=tuple(back_references),
            label_fields=self.label_fields,
            has_computed_label=self.has_computed_label,
            area_color=self.area_color,
        )

    @classmethod
    def from_dict(cls, entity: str, data: Mapping[str, Any]) -> Schema:
        """Build a schema from a plain mapping (JSON datasets, fixtures).

        Columns are given as ``{"name": ..., "references": "Entity", ...}`` or
        as bare column names.
        """
        columns = []
        for raw in data.get("columns", ()):
            if isinstance(raw, str):
                columns.append(Column(raw))
                continue
            ref = raw.get("references") or raw.get("foreign_key")
            if isinstance(ref, Mapping):
                fk = ForeignKey(ref["entity"], ref.get("column", "id"))
            elif ref:
                fk = ForeignKey(str(ref))
            else:
                fk = None
            columns.append(
                Column(
                    name=raw["name"],
                    type=raw.get("type", "TEXT"),
                    foreign_key=fk,
                    hidden=bool(raw.get("hidden", False)),
                    system=bool(raw.get("system", False)),
                    label=bool(raw.get("label", False)),
                    label2=bool(raw.get("label2", False)),
                    enum_values=raw.get("enum_values"),
                )
            )
        back_refs = tuple(
            BackReferenceDef(r["entity"], r["column"], r.get("area_color", DEFAULT_AREA_COLOR))
            for r in data.get("back_references", ())
        )
        return cls(
            entity=entity,
            columns=tuple(columns),
            back_references=back_refs,
            label_fields=tuple(data["label_fields"]) if data.get("label_fields") else None,
            has_computed_label=bool(data.get("has_computed_label", False)),
            area_color=data.get("area_color", DEFAULT_AREA_COLOR),
        )


def derive_back_references(schemas: Mapping[str, Schema]) -> dict[str, Schema]:
    """Fill in each schema's back-references as the inverse of all declared FKs.

    Schemas that already declare back-references are left untouched.
    """
    inverse: dict[str, list[BackReferenceDef]] = {name: [] for name in schemas}
    for name, schema in schemas.items():
        for col in schema.fk_columns:
            target = col.foreign_key.entity
            if target in inverse:
                inverse[target].append(BackReferenceDef(name, col.name, schema.area_color))

    result = {}
    for name, schema in schemas.items():
        if schema.back_references:
            result[name] = schema
        else:
            result[name] = schema.with_back_references(inverse[name])
    return result


class SchemaProvider(Protocol):
    """Supplies extended schemas by entity name. Must be idempotent."""

    async def get_extended(self, entity: str) -> Schema:
        """Return the schema of ``entity``; raise SchemaNotFound if unknown."""
        ...

    async def list_entities(self) -> list[str]:
        """Names of all known entities."""
        ...


class StaticSchemaProvider:
    """In-memory provider over a fixed set of schemas.

    Args:
        schemas: Schemas by entity name, or an iterable of schemas
        derive_backrefs: Derive missing back-references from FKs
    """

    def __init__(self, schemas: Mapping[str, Schema] | Iterable[Schema], *, derive_backrefs: bool = True) -> None:
        if not isinstance(schemas, Mapping):
            schemas = {s.entity: s for s in schemas}
        self._schemas = derive_back_references(schemas) if derive_backrefs else dict(schemas)

    async def get_extended(self, entity: str) -> Schema:
        try:
            return self._schemas[entity]
        except KeyError:
            raise SchemaNotFound(entity) from None

    async def list_entities(self) -> list[str]:
        return sorted(self._schemas)


class SchemaCache:
    """Memoizing read-through cache in front of a ``SchemaProvider``.

    No eviction: schemas are immutable for a session. Concurrent lookups of
    the same entity share a single provider call. Failures are not cached.

    Example:
        >>> cache = SchemaCache(provider)
        >>> schema = await cache.get_extended("Flight")
        >>> cache.invalidate()  # "reload schema"
    """

    def __init__(self, provider: SchemaProvider) -> None:
        self._provider = provider
        self._data: dict[str, Schema] = {}
        self._pending: dict[str, asyncio.Future[Schema]] = {}

    @property
    def provider(self) -> SchemaProvider:
        return self._provider

    def peek(self, entity: str) -> Schema | None:
        """Cached schema without triggering a lookup."""
        return self._data.get(entity)

    async def get_extended(self, entity: str) -> Schema:
        cached = self._data.get(entity)
        if cached is not None:
            return cached

        pending = self._pending.get(entity)
        if pending is not None:
            return await asyncio.shield(pending)

        future: asyncio.Future[Schema] = asyncio.get_running_loop().create_future()
        self._pending[entity] = future
        try:
            schema = await self._provider.get_extended(entity)
        except BaseException as exc:
            if isinstance(exc, asyncio.CancelledError):
                future.cancel()
            elif not future.done():
                future.set_exception(exc)
                # Mark retrieved so an unobserved failure is not reported by asyncio.
                future.exception()
            raise
        else:
            self._data[entity] = schema
            future.set_result(schema)
            logger.debug("Loaded schema for %s", entity)
            return schema
        finally:
            self._pending.pop(entity, None)

    async def list_entities(self) -> list[str]:
        return await self._provider.list_entities()

    def invalidate(self, entity: str | None = None) -> None:
        """Drop one cached schema, or all of them."""
        if entity is None:
            self._data.clear()
        else:
            self._data.pop(entity, None)

    def __contains__(self, entity: object) -> bool:
        return entity in self._data

    def __len__(self) -> int:
        return len(self._data)


# =============================================================================
# Entity-level reference graph
# =============================================================================


def build_reference_graph(schemas: Iterable[Schema]) -> nx.MultiDiGraph:
    """Entity graph with one edge per FK column: source -> target, keyed by column."""
    G = nx.MultiDiGraph()
    schemas = list(schemas)
    for schema in schemas:
        G.add_node(schema.entity, area_color=schema.area_color)
    for schema in schemas:
        for col in schema.fk_columns:
            G.add_edge(schema.entity, col.foreign_key.entity, key=col.name, column=col.name)
    return G


def reference_cycles(G: nx.MultiDiGraph) -> list[list[str]]:
    """Entity-level reference cycles (self-references included), sorted for stable output."""
    cycles = [_rotate_cycle(c) for c in nx.simple_cycles(nx.DiGraph(G))]
    return sorted(cycles, key=lambda c: (len(c), c))


def _rotate_cycle(cycle: list[str]) -> list[str]:
    """Rotate a cycle so it starts at its smallest entity name."""
    if not cycle:
        return cycle
    start = cycle.index(min(cycle))
    return cycle[start:] + cycle[:start]
