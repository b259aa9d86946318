"""Back-reference loading with a preview limit.

The loader asks the record service for the inbound records of one
back-reference group, keeps at most ``limit`` of them, and always reports
the true total. Data-service failures never escape: they come back as an
empty preview carrying a ``BackReferenceLoadError``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from reltree.exceptions import BackReferenceLoadError
from reltree.records import BackReferenceGroup, PagedRecordService, Record, RecordService, sort_key
from reltree.schema import BackReferenceDef

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_LIMIT = 10


@dataclass
class BackReferencePreview:
    """Result of loading one back-reference group.

    Attributes:
        definition: The back-reference that was loaded
        total_count: True number of referencing records
        rows: At most ``limit`` records
        is_truncated: True when ``total_count`` exceeds the limit
        error: Set when the data service failed; the preview is then empty
    """

    definition: BackReferenceDef
    total_count: int = 0
    rows: list[Record] = field(default_factory=list)
    is_truncated: bool = False
    error: BackReferenceLoadError | None = None

    @property
    def is_empty(self) -> bool:
        return self.total_count == 0

    @property
    def shown_count(self) -> int:
        return len(self.rows)

    @property
    def count_label(self) -> str:
        """``"10 of 42"`` when truncated, else ``"3"``."""
        if self.is_truncated:
            return f"{self.shown_count} of {self.total_count}"
        return str(self.total_count)


class BackReferenceLoader:
    """Loads back-reference previews for one render pass.

    Uses server-side limiting when the service implements
    ``PagedRecordService``; otherwise fetches the grouped references once
    per record and truncates client-side. Grouped results are memoized for
    the loader's lifetime, and concurrent requests for the same record share
    one fetch.

    Args:
        service: Record data service
        preview_limit: Default maximum number of rows per group
    """

    def __init__(self, service: RecordService, preview_limit: int = DEFAULT_PREVIEW_LIMIT) -> None:
        if preview_limit < 1:
            raise ValueError(f"preview_limit must be >= 1, got {preview_limit}")
        self._service = service
        self.preview_limit = preview_limit
        self._grouped: dict[tuple[str, str], asyncio.Task[dict[str, BackReferenceGroup]]] = {}

    @property
    def server_side_limit(self) -> bool:
        return isinstance(self._service, PagedRecordService)

    async def _get_grouped(self, entity: str, record_id: Any) -> dict[str, BackReferenceGroup]:
        key = (entity, str(record_id))
        task = self._grouped.get(key)
        if task is None:
            task = asyncio.ensure_future(self._service.get_back_references(entity, record_id))
            self._grouped[key] = task
        return await asyncio.shield(task)

    async def load(
        self,
        entity: str,
        record_id: Any,
        ref: BackReferenceDef,
        *,
        limit: int | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> BackReferencePreview:
        """Load the preview of ``ref`` for record ``entity#record_id``."""
        limit = self.preview_limit if limit is None else limit
        try:
            if self.server_side_limit:
                total, rows = await self._service.get_back_reference_page(
                    entity, record_id, ref, limit=limit, order_by=order_by, descending=descending
                )
            else:
                groups = await self._get_grouped(entity, record_id)
                group = groups.get(ref.key)
                if group is None:
                    total, rows = 0, []
                else:
                    total, rows = group.count, list(group.records)
                    if order_by is not None:
                        rows.sort(key=lambda r: sort_key(r.get(order_by)), reverse=descending)
        except Exception as exc:
            error = BackReferenceLoadError(entity, record_id, ref.entity, exc)
            logger.warning("%s", error.message)
            return BackReferencePreview(definition=ref, error=error)

        return BackReferencePreview(
            definition=ref,
            total_count=total,
            rows=list(rows[:limit]),
            is_truncated=total > limit,
        )
