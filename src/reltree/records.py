"""Record data service protocols and an in-memory implementation."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol, runtime_checkable

from reltree.exceptions import RecordNotFound
from reltree.schema import BackReferenceDef, Schema, SchemaProvider, StaticSchemaProvider

Record = dict[str, Any]


@dataclass
class BackReferenceGroup:
    """Records of ``entity`` that point at one record via ``column``."""

    entity: str
    column: str
    count: int
    records: list[Record] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.entity}:{self.column}"


class RecordService(Protocol):
    """Fetches records on demand. No transactional guarantees are assumed."""

    async def get_by_id(self, entity: str, record_id: Any) -> Record:
        """Return one record; raise RecordNotFound if it does not exist."""
        ...

    async def get_all(self, entity: str) -> list[Record]:
        ...

    async def get_back_references(self, entity: str, record_id: Any) -> dict[str, BackReferenceGroup]:
        """Inbound references to a record, grouped by ``"{entity}:{column}"``.

        Groups with no records may be left out.
        """
        ...


@runtime_checkable
class PagedRecordService(Protocol):
    """Optional capability: fetch one back-reference group with server-side limiting."""

    async def get_back_reference_page(
        self,
        entity: str,
        record_id: Any,
        ref: BackReferenceDef,
        *,
        limit: int | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> tuple[int, list[Record]]:
        """Return ``(total_count, rows)`` with at most ``limit`` rows."""
        ...


def sort_key(value: Any) -> tuple[int, Any]:
    """Order None first, numbers numerically, everything else as text."""
    if value is None:
        return (0, 0)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    return (2, str(value))


def _same_id(a: Any, b: Any) -> bool:
    return a is not None and b is not None and str(a) == str(b)


class InMemoryRecordService:
    """Dict-backed record service, mostly for tests, demos and JSON datasets.

    Args:
        data: Records by entity name; each record carries an ``id``
        schemas: Provider used to look up back-reference definitions

    Example:
        >>> service = InMemoryRecordService({"Flight": [{"id": 1}]}, provider)
        >>> await service.get_by_id("Flight", 1)
        {'id': 1}
    """

    def __init__(self, data: Mapping[str, list[Record]], schemas: SchemaProvider) -> None:
        self._data = {entity: [dict(r) for r in rows] for entity, rows in data.items()}
        self._schemas = schemas

    async def get_by_id(self, entity: str, record_id: Any) -> Record:
        for row in self._data.get(entity, ()):
            if _same_id(row.get("id"), record_id):
                return dict(row)
        raise RecordNotFound(entity, record_id)

    async def get_all(self, entity: str) -> list[Record]:
        rows = sorted(self._data.get(entity, ()), key=lambda r: sort_key(r.get("id")))
        return [dict(r) for r in rows]

    def _referencing(self, ref: BackReferenceDef, record_id: Any) -> list[Record]:
        return [dict(r) for r in self._data.get(ref.entity, ()) if _same_id(r.get(ref.column), record_id)]

    async def get_back_references(self, entity: str, record_id: Any) -> dict[str, BackReferenceGroup]:
        await self.get_by_id(entity, record_id)
        schema = await self._schemas.get_extended(entity)
        groups: dict[str, BackReferenceGroup] = {}
        for ref in schema.back_references:
            rows = sorted(self._referencing(ref, record_id), key=lambda r: sort_key(r.get("id")))
            if rows:
                groups[ref.key] = BackReferenceGroup(ref.entity, ref.column, len(rows), rows)
        return groups

    async def get_back_reference_page(
        self,
        entity: str,
        record_id: Any,
        ref: BackReferenceDef,
        *,
        limit: int | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> tuple[int, list[Record]]:
        rows = self._referencing(ref, record_id)
        rows.sort(key=lambda r: sort_key(r.get(order_by or "id")), reverse=descending)
        total = len(rows)
        if limit is not None:
            rows = rows[:limit]
        return total, rows


class UnpagedRecordService:
    """Wraps a record service and hides its paging capability.

    Useful to force client-side truncation of back-reference groups.
    """

    def __init__(self, inner: RecordService) -> None:
        self._inner = inner

    async def get_by_id(self, entity: str, record_id: Any) -> Record:
        return await self._inner.get_by_id(entity, record_id)

    async def get_all(self, entity: str) -> list[Record]:
        return await self._inner.get_all(entity)

    async def get_back_references(self, entity: str, record_id: Any) -> dict[str, BackReferenceGroup]:
        return await self._inner.get_back_references(entity, record_id)


def load_json_dataset(path: str | Path) -> tuple[StaticSchemaProvider, InMemoryRecordService]:
    """Load a JSON dataset file into a schema provider and record service.

    Expected layout::

        {
          "schemas": {"Flight": {"columns": [{"name": "aircraft_id", "references": "Aircraft"}]}},
          "records": {"Flight": [{"id": 1, "aircraft_id": 3}]}
        }
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    schemas = {name: Schema.from_dict(name, definition) for name, definition in data.get("schemas", {}).items()}
    provider = StaticSchemaProvider(schemas)
    return provider, InMemoryRecordService(data.get("records", {}), provider)
