"""Event dispatcher that fans out session events to processors."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reltree.events.processor import AsyncEventProcessor, EventProcessor

if TYPE_CHECKING:
    from reltree.events.types import Event

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Holds the session's event processors and dispatches events to them.

    Dispatch is best-effort by default: a failing processor is logged and
    skipped, and the session carries on. With ``strict=True`` the first
    failure propagates.
    """

    def __init__(
        self,
        processors: list[EventProcessor] | None = None,
        *,
        strict: bool = False,
    ) -> None:
        self._processors: list[EventProcessor] = list(processors) if processors else []
        self._strict = strict

    @property
    def active(self) -> bool:
        """True if there is at least one registered processor."""
        return bool(self._processors)

    @property
    def processors(self) -> tuple[EventProcessor, ...]:
        return tuple(self._processors)

    def add(self, processor: EventProcessor) -> None:
        self._processors.append(processor)

    def remove(self, processor: EventProcessor) -> None:
        self._processors.remove(processor)

    def _failed(self, processor: EventProcessor, what: str) -> None:
        if self._strict:
            raise
        logger.warning("EventProcessor %s failed on %s", processor, what, exc_info=True)

    def emit(self, event: Event) -> None:
        """Send *event* to every processor synchronously."""
        for processor in self._processors:
            try:
                processor.on_event(event)
            except Exception:
                self._failed(processor, type(event).__name__)

    async def emit_async(self, event: Event) -> None:
        """Send *event* to every processor, using async when available."""
        for processor in self._processors:
            try:
                if isinstance(processor, AsyncEventProcessor):
                    await processor.on_event_async(event)
                else:
                    processor.on_event(event)
            except Exception:
                self._failed(processor, type(event).__name__)

    def shutdown(self) -> None:
        """Shut down all processors. Best-effort unless strict.

        In strict mode every processor is still shut down; the first
        failure is re-raised afterwards.
        """
        first_error: BaseException | None = None
        for processor in self._processors:
            try:
                processor.shutdown()
            except Exception as e:
                first_error = first_error or self._shutdown_failed(processor, e)
        if first_error is not None:
            raise first_error

    async def shutdown_async(self) -> None:
        """Shut down all processors, using async when available. Best-effort unless strict."""
        first_error: BaseException | None = None
        for processor in self._processors:
            try:
                if isinstance(processor, AsyncEventProcessor):
                    await processor.shutdown_async()
                else:
                    processor.shutdown()
            except Exception as e:
                first_error = first_error or self._shutdown_failed(processor, e)
        if first_error is not None:
            raise first_error

    def _shutdown_failed(self, processor: EventProcessor, error: Exception) -> Exception | None:
        if self._strict:
            return error
        logger.warning("EventProcessor %s failed during shutdown", processor, exc_info=True)
        return None
