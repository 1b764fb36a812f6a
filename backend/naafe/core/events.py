"""Event bus system for real-time SSE event streaming."""

import asyncio
import logging
from typing import Dict, Any, AsyncGenerator, Iterable, Optional
from datetime import datetime

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-memory event bus using asyncio.Queue for pub/sub pattern.

    Supports Server-Sent Events (SSE) streaming to multiple clients. Events may
    carry an audience (list of user ids); subscribers that pass ``user_id``
    only receive events addressed to them.
    """

    def __init__(self, queue_size: int = 1000):
        """Initialize the event bus with an empty subscriber list."""
        self.queue_size = queue_size
        self._subscribers: list[tuple[asyncio.Queue, Optional[str]]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(
        self,
        event_type: str,
        data: Dict[str, Any],
        audience: Optional[Iterable[str]] = None
    ) -> None:
        """
        Publish an event to all matching subscribers.

        Args:
            event_type: Type of event (e.g., "negotiation:update", "service:cancelled")
            data: Event payload data
            audience: User ids allowed to see the event; None means everyone
        """
        recipients = set(audience) if audience is not None else None
        event = {
            "type": event_type,
            "data": data,
            "audience": sorted(recipients) if recipients is not None else None,
            "timestamp": datetime.utcnow().isoformat()
        }

        # Send to all active subscribers
        dead = []
        for queue, user_id in self._subscribers:
            if recipients is not None and user_id is not None and user_id not in recipients:
                continue
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Dropping subscriber with full queue for event {event_type}")
                self._close(queue)
                dead.append((queue, user_id))

        # Clean up dead queues
        for entry in dead:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

    @staticmethod
    def _close(queue: asyncio.Queue) -> None:
        """Discard backlog and wake the subscriber with the end-of-stream marker."""
        while not queue.empty():
            queue.get_nowait()
        queue.put_nowait(None)

    async def subscribe(self, user_id: Optional[str] = None) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Subscribe to events and receive them as an async generator.

        Args:
            user_id: Only receive events whose audience includes this user

        Yields:
            Event dictionaries containing type, data, audience and timestamp

        Usage:
            async for event in event_bus.subscribe(user_id):
                print(event)
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        entry = (queue, user_id)
        self._subscribers.append(entry)

        try:
            while True:
                event = await queue.get()
                if event is None:
                    logger.info(f"Subscription closed for user {user_id}")
                    return
                yield event
        finally:
            # Clean up subscription
            if entry in self._subscribers:
                self._subscribers.remove(entry)


# Global event bus instance
event_bus = EventBus()
