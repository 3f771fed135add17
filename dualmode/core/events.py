"""Simple in-process async event bus for lifecycle events.

Events are dictionaries with at least keys:
- type: str (e.g., 'context_initialized', 'cleanup_started', 'cleanup_task_failed')
- run_id: str (identifier of the test run)
- ts: float (unix timestamp)

Usage:
  bus = EventBus()
  manager = TestContextManager(event_bus=bus)
  q = bus.subscribe()
  ... await q.get()  # receives event dicts
  bus.unsubscribe(q)
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Optional, Set


class EventBus:
    """Fan-out of event dicts to subscriber queues."""

    def __init__(self, maxsize: int = 1000) -> None:
        self._subscribers: Set[asyncio.Queue] = set()
        self._maxsize = maxsize

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: Dict[str, Any]) -> int:
        """Deliver ``event`` to every subscriber without blocking.

        A subscriber whose queue is full misses the event; it stays subscribed.

        Returns:
            Number of subscribers that received the event
        """
        delivered = 0
        for q in list(self._subscribers):
            try:
                q.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                continue
        return delivered

    async def emit(
        self, event_type: str, run_id: str, extra: Optional[Dict[str, Any]] = None
    ) -> int:
        """Build and publish a lifecycle event."""
        payload: Dict[str, Any] = {"type": event_type, "run_id": run_id, "ts": time.time()}
        if extra:
            payload.update(extra)
        return await self.publish(payload)
