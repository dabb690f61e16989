"""
Event sinks — where committed events go.

Implement EventSink for a real transport (queue, webhook, audit table).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import asdict
from typing import Protocol

from inkwell.events._types import Event

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    """
    Sink protocol.

    Example:
        class QueueSink:
            def __init__(self, queue: asyncio.Queue[Event]) -> None:
                self.queue = queue

            async def publish(self, event: Event) -> None:
                await self.queue.put(event)
    """

    async def publish(self, event: Event) -> None: ...


class MemorySink:
    """Collects events in memory. Single process / tests only."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def publish(self, event: Event) -> None:
        self.events.append(event)

    def of_type[T](self, event_type: type[T]) -> list[T]:
        return [e for e in self.events if isinstance(e, event_type)]

    def clear(self) -> None:
        self.events.clear()


class LoggingSink:
    """Writes every event to the `inkwell.events` logger."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    async def publish(self, event: Event) -> None:
        logger.log(self._level, "%s %s", type(event).__name__, asdict(event))


async def publish_all(sink: EventSink, events: Iterable[Event]) -> None:
    """
    Publish events that belong to an already committed operation.

    A failing sink cannot undo the commit, so its error is logged and the
    remaining events are still delivered.
    """
    for event in events:
        try:
            await sink.publish(event)
        except Exception:
            logger.exception("Event sink failed for %s", type(event).__name__)


__all__ = ("EventSink", "MemorySink", "LoggingSink", "publish_all")
