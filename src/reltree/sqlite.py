"""SQLite data source using aiosqlite.

One object serves both roles the renderer needs: it introspects tables into
extended schemas (``SchemaProvider``) and answers record lookups
(``RecordService`` plus server-side paging via ``PagedRecordService``).

Foreign keys come from ``PRAGMA foreign_key_list``. Every FK column gets a
pre-joined ``{base}_label`` field holding the target's label column, so the
tree can label FK nodes without a lookup per node.
"""

from __future__ import annotations

import logging
from typing import Any

from reltree.exceptions import RecordNotFound, SchemaNotFound
from reltree.formatting import LABEL_CANDIDATES
from reltree.records import BackReferenceGroup, Record
from reltree.schema import BackReferenceDef, Column, ForeignKey, Schema, derive_back_references, fk_label_field

logger = logging.getLogger(__name__)


def _require_aiosqlite() -> Any:
    """Import aiosqlite with a clear error message if not installed."""
    try:
        import aiosqlite

        return aiosqlite
    except ImportError:
        raise ImportError("SqliteDataSource requires aiosqlite. Install it with: pip install reltree[sqlite]") from None


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _label_column(schema: Schema) -> str | None:
    """The column used as a record's display label in joins."""
    if schema.label_fields:
        first = schema.label_fields[0]
        col = schema.column(first)
        if col is not None and not col.is_foreign_key:
            return first
    for candidate in LABEL_CANDIDATES:
        if schema.column(candidate) is not None:
            return candidate
    return None


class SqliteDataSource:
    """Schema provider and record service over one SQLite database.

    Args:
        path: Path to the SQLite database file.

    Example::

        async with SqliteDataSource("./fleet.db") as source:
            session = TreeSession(source, source)
            await session.load_roots("Flight", await source.get_all("Flight"))
            tree = await session.render()
    """

    def __init__(self, path: str):
        self._path = path
        self._db: Any = None
        self._schemas: dict[str, Schema] | None = None
        self._aiosqlite = _require_aiosqlite()

    async def __aenter__(self) -> SqliteDataSource:
        await self._ensure_db()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def initialize(self) -> None:
        """Open the connection."""
        self._db = await self._aiosqlite.connect(self._path)
        self._db.row_factory = self._aiosqlite.Row

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def _ensure_db(self) -> None:
        """Lazy-initialize on first use."""
        if self._db is None:
            await self.initialize()

    async def _fetchall(self, sql: str, params: tuple = ()) -> list[Any]:
        await self._ensure_db()
        async with self._db.execute(sql, params) as cursor:
            return list(await cursor.fetchall())

    # === Schema introspection ===

    async def _introspect(self) -> dict[str, Schema]:
        tables = [
            row[0]
            for row in await self._fetchall(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
            )
        ]
        schemas: dict[str, Schema] = {}
        for table in tables:
            fks = {
                row["from"]: ForeignKey(row["table"], row["to"] or "id")
                for row in await self._fetchall(f"PRAGMA foreign_key_list({_quote(table)})")
            }
            columns = [
                Column(name=row["name"], type=row["type"] or "TEXT", foreign_key=fks.get(row["name"]))
                for row in await self._fetchall(f"PRAGMA table_info({_quote(table)})")
            ]
            schemas[table] = Schema(entity=table, columns=tuple(columns))
        logger.debug("Introspected %d tables from %s", len(schemas), self._path)
        return derive_back_references(schemas)

    async def _all_schemas(self) -> dict[str, Schema]:
        if self._schemas is None:
            self._schemas = await self._introspect()
        return self._schemas

    async def get_extended(self, entity: str) -> Schema:
        schemas = await self._all_schemas()
        if entity not in schemas:
            raise SchemaNotFound(entity)
        return schemas[entity]

    async def list_entities(self) -> list[str]:
        return sorted(await self._all_schemas())

    def reset(self) -> None:
        """Forget introspected schemas (after DDL changes)."""
        self._schemas = None

    # === Queries ===

    async def _select(self, entity: str) -> str:
        """SELECT ... FROM entity with one LEFT JOIN per labelled FK target."""
        schemas = await self._all_schemas()
        schema = await self.get_extended(entity)
        fields = ["t.*"]
        joins = []
        for i, col in enumerate(schema.fk_columns):
            target = schemas.get(col.foreign_key.entity)
            label = _label_column(target) if target is not None else None
            if label is None:
                continue
            alias = f"j{i}"
            fields.append(f"{alias}.{_quote(label)} AS {_quote(fk_label_field(col.name))}")
            joins.append(
                f"LEFT JOIN {_quote(target.entity)} {alias} "
                f"ON {alias}.{_quote(col.foreign_key.column)} = t.{_quote(col.name)}"
            )
        return f"SELECT {', '.join(fields)} FROM {_quote(entity)} t {' '.join(joins)}".rstrip()

    async def get_by_id(self, entity: str, record_id: Any) -> Record:
        sql = await self._select(entity)
        rows = await self._fetchall(f"{sql} WHERE t.id = ?", (record_id,))
        if not rows:
            raise RecordNotFound(entity, record_id)
        return dict(rows[0])

    async def get_all(self, entity: str) -> list[Record]:
        sql = await self._select(entity)
        return [dict(row) for row in await self._fetchall(f"{sql} ORDER BY t.id")]

    async def _count(self, ref: BackReferenceDef, record_id: Any) -> int:
        rows = await self._fetchall(
            f"SELECT COUNT(*) FROM {_quote(ref.entity)} WHERE {_quote(ref.column)} = ?", (record_id,)
        )
        return int(rows[0][0])

    async def get_back_references(self, entity: str, record_id: Any) -> dict[str, BackReferenceGroup]:
        schema = await self.get_extended(entity)
        groups: dict[str, BackReferenceGroup] = {}
        for ref in schema.back_references:
            sql = await self._select(ref.entity)
            rows = await self._fetchall(f"{sql} WHERE t.{_quote(ref.column)} = ? ORDER BY t.id", (record_id,))
            if rows:
                groups[ref.key] = BackReferenceGroup(ref.entity, ref.column, len(rows), [dict(r) for r in rows])
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
        """``(total_count, rows)`` using COUNT plus LIMIT on the server."""
        ref_schema = await self.get_extended(ref.entity)
        if ref_schema.column(ref.column) is None:
            raise ValueError(f"{ref.entity} has no column {ref.column!r}")
        if order_by is not None and ref_schema.column(order_by) is None:
            raise ValueError(f"{ref.entity} has no column {order_by!r} to order by")

        total = await self._count(ref, record_id)
        if total == 0:
            return 0, []

        sql = await self._select(ref.entity)
        order = f"t.{_quote(order_by)} {'DESC' if descending else 'ASC'}, t.id" if order_by else "t.id"
        params: tuple = (record_id,)
        sql = f"{sql} WHERE t.{_quote(ref.column)} = ? ORDER BY {order}"
        if limit is not None:
            sql += " LIMIT ?"
            params += (limit,)
        return total, [dict(row) for row in await self._fetchall(sql, params)]
