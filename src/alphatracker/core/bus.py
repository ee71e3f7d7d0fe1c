"""Async event bus for position lifecycle notifications."""

import asyncio
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from alphatracker.core.types import Event, EventType
from alphatracker.logging import get_logger

logger = get_logger(__name__)


class EventBus:
    """Async pub/sub bus.

    Publishing only enqueues; handlers run on the bus task (or on ``flush``).
    A failing handler is logged and never affects the publisher.
    """

    def __init__(self, max_queue_size: int = 10000) -> None:
        """Initialize the event bus.

        Args:
            max_queue_size: Bound on queued events; publishing past it raises.
        """
        self._subscribers: dict[EventType, list[Callable[[Event], Any]]] = defaultdict(list)
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_queue_size)
        self._running = False
        self._task: asyncio.Task[None] | None = None

    def subscribe(self, event_type: EventType, handler: Callable[[Event], Any]) -> None:
        """Subscribe a handler to an event type."""
        self._subscribers[event_type].append(handler)
        logger.debug(f"Subscribed handler {getattr(handler, '__name__', handler)} to {event_type}")

    def unsubscribe(self, event_type: EventType, handler: Callable[[Event], Any]) -> None:
        """Unsubscribe a handler from an event type."""
        if handler in self._subscribers[event_type]:
            self._subscribers[event_type].remove(handler)

    async def publish(self, event: Event) -> None:
        """Enqueue an event.

        Raises:
            RuntimeError: when the queue is full; events are never dropped silently.
        """
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            raise RuntimeError(
                f"EventBus queue full ({self._queue.qsize()}/{self._queue.maxsize}), "
                f"cannot publish {event.event_type}"
            ) from None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def _process_events(self) -> None:
        while self._running:
            try:
                event = await self._queue.get()
                await self._dispatch(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error processing events: {e}", exc_info=True)

    async def _dispatch(self, event: Event) -> None:
        handlers = list(self._subscribers.get(event.event_type, []))
        if not handlers:
            logger.debug(f"No subscribers for {event.event_type}")
            return
        await asyncio.gather(*(self._safe_call_handler(h, event) for h in handlers))

    async def _safe_call_handler(self, handler: Callable[[Event], Any], event: Event) -> None:
        try:
            result = handler(event)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(
                f"Handler {getattr(handler, '__name__', handler)} raised for {event.event_type}: {e}",
                exc_info=True,
            )

    async def start(self) -> None:
        """Start the dispatch task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._process_events())
        logger.info("Event bus started")

    async def flush(self) -> int:
        """Dispatch everything currently queued. Returns the number of events handled."""
        processed = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self._dispatch(event)
            processed += 1
        return processed

    async def stop(self) -> None:
        """Cancel the dispatch task and drop undelivered events."""
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                logger.debug("Event bus task cancelled")

        drained = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            drained += 1
        if drained:
            logger.debug(f"Dropped {drained} undelivered events on stop")
        logger.info("Event bus stopped")
