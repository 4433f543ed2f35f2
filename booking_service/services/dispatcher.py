"""
Event Dispatcher

Fans verified webhook events out to live subscribers (open WebSocket
connections). Subscribers register for specific event types or "*".
There is no persistence or replay: an event published while nobody is
listening is simply gone.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Iterable, Optional, Set, Tuple

logger = logging.getLogger(__name__)

WILDCARD = "*"


class EventDispatcher:
    """Process-wide publish point; one instance lives on app.state."""

    def __init__(self, queue_size: int = 500):
        self.queue_size = queue_size
        self._subscribers: Dict[str, Tuple[Set[str], asyncio.Queue]] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, event_types: Optional[Iterable[str]] = None) -> Tuple[str, asyncio.Queue]:
        """Register a subscriber. Returns (subscriber_id, queue)."""
        types = {t.strip() for t in (event_types or []) if t and t.strip()} or {WILDCARD}
        sub_id = str(uuid.uuid4())[:8]
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[sub_id] = (types, queue)
        logger.info(f"Event subscriber connected: {sub_id} types={sorted(types)} (total: {len(self._subscribers)})")
        return sub_id, queue

    def unsubscribe(self, sub_id: str) -> None:
        self._subscribers.pop(sub_id, None)
        logger.info(f"Event subscriber disconnected: {sub_id} (total: {len(self._subscribers)})")

    def publish(self, event_type: str, payload: Dict[str, Any]) -> int:
        """
        Deliver to every matching subscriber without blocking.
        Returns how many subscribers received the event.
        """
        message = {"type": event_type, "data": payload}
        delivered = 0
        for sub_id, (types, queue) in list(self._subscribers.items()):
            if WILDCARD not in types and event_type not in types:
                continue
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                # Drop oldest event to make room
                try:
                    queue.get_nowait()
                    queue.put_nowait(message)
                except (asyncio.QueueEmpty, asyncio.QueueFull):
                    logger.warning(f"Dropped {event_type} for slow subscriber {sub_id}")
                    continue
            delivered += 1

        logger.debug(f"Published {event_type} to {delivered} subscriber(s)")
        return delivered
