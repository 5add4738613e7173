"""In-process async event bus for steward.

Managers publish lifecycle events about agents; handlers (the work poller,
tests, future notifiers) subscribe by type. Dispatch is asynchronous and
isolated: a failing handler is logged and never reaches the publisher.

The bus carries notifications only. Anything that must not be lost is
written to the database before its event is published.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable
from uuid import UUID

logger = logging.getLogger(__name__)

TASK_QUEUED = "task_queued"
TASK_COMPLETED = "task_completed"
TASK_FAILED = "task_failed"
WORK_SESSION_STARTED = "work_session_started"
WORK_SESSION_FINISHED = "work_session_finished"
CONVERSATION_COMPACTED = "conversation_compacted"
KNOWLEDGE_EXTRACTED = "knowledge_extracted"
BRIEFING_CREATED = "briefing_created"

EVENT_TYPES = frozenset({
    TASK_QUEUED,
    TASK_COMPLETED,
    TASK_FAILED,
    WORK_SESSION_STARTED,
    WORK_SESSION_FINISHED,
    CONVERSATION_COMPACTED,
    KNOWLEDGE_EXTRACTED,
    BRIEFING_CREATED,
})

EventHandler = Callable[["Event"], Awaitable[None]]


@dataclass
class Event:
    """Something that happened to one agent."""

    type: str
    agent_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventBus:
    """Bounded queue of events plus per-type handler lists.

    Events wait in the queue until the background loop started by
    ``start()`` dispatches them, or until ``drain()`` dispatches them in
    the caller's task. A full queue drops the new event.
    """

    def __init__(self, max_queue: int = 1000):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_queue)
        self._task: asyncio.Task | None = None
        self._dropped = 0

    def on(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe a handler. Several handlers per type are allowed."""
        if event_type not in EVENT_TYPES:
            logger.warning("Subscribing to unknown event type '%s'", event_type)
        self._handlers[event_type].append(handler)
        logger.debug("Registered handler for '%s': %s", event_type, handler.__qualname__)

    async def emit(self, event: Event) -> None:
        """Queue an event without waiting for handlers."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning("Event bus queue full, dropping %s for agent %s", event.type, event.agent_id)

    async def publish(self, event_type: str, agent_id: UUID | None, **data: Any) -> None:
        """Build and queue an event for an agent."""
        await self.emit(Event(type=event_type, agent_id=str(agent_id) if agent_id else "", data=data))

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._process_loop(), name="event-bus")
        logger.info("Event bus started")

    async def stop(self) -> None:
        """Stop the loop, then dispatch whatever is still queued."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.drain()
        logger.info("Event bus stopped (%d dropped)", self._dropped)

    async def drain(self) -> None:
        """Dispatch every queued event in the caller's task."""
        while True:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            await self._dispatch(event)

    async def _process_loop(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            except Exception:
                logger.exception("Unexpected error dispatching %s", event.type)

    async def _dispatch(self, event: Event) -> None:
        handlers = self._handlers.get(event.type)
        if handlers:
            await asyncio.gather(*(self._safe_handle(h, event) for h in list(handlers)))

    async def _safe_handle(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Handler %s failed for event %s", handler.__qualname__, event.type)

    @property
    def pending(self) -> int:
        """Number of events waiting in the queue."""
        return self._queue.qsize()

    @property
    def dropped(self) -> int:
        return self._dropped
