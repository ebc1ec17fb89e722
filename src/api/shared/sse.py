"""
Live auction events over server-sent events.

Each subscriber owns a bounded queue. Delivery is at-most-once: there is
no replay buffer, a subscriber whose queue is full misses the event, and
reconnecting clients re-query state. Idle streams get a keep-alive
comment every heartbeat interval.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import StreamingResponse

from ...core.timeutil import utcnow

logger = logging.getLogger(__name__)

KEEP_ALIVE = ": keep-alive\n\n"


@dataclass
class StreamLimits:
    heartbeat_interval: float = 30.0  # seconds
    retry_ms: int = 3000  # reconnect delay sent to the client
    max_connections: int = 1000
    max_per_user: int = 5
    queue_size: int = 100


@dataclass(frozen=True)
class LiveEvent:
    """One pushed auction event; id is the broker message id."""

    id: str
    type: str
    data: Dict[str, Any]
    auction_id: Optional[str] = None

    def encode(self) -> str:
        return f"id: {self.id}\nevent: {self.type}\ndata: {json.dumps(self.data)}\n\n"


@dataclass(eq=False)
class Subscriber:
    user_id: Optional[str] = None
    auction_id: Optional[str] = None  # None watches every auction
    queue_size: int = 100
    id: str = field(default_factory=lambda: uuid4().hex)
    connected_at: datetime = field(default_factory=utcnow)
    dropped: int = 0

    def __post_init__(self):
        self.queue: "asyncio.Queue[LiveEvent]" = asyncio.Queue(maxsize=self.queue_size)

    def wants(self, event: LiveEvent) -> bool:
        return self.auction_id is None or event.auction_id in (None, self.auction_id)

    def offer(self, event: LiveEvent) -> bool:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"SSE subscriber {self.id} is behind, dropped {event.type} {event.id}")
            return False
        return True


class SSEManager:
    """
    Subscriber registry and broadcaster for the notification fan-out.

    Usage:
        manager = SSEManager()
        sub = await manager.connect(user_id="alice", auction_id="a1")
        await manager.broadcast("BidPlaced", payload, auction_id="a1", event_id=message_id)
    """

    def __init__(self, limits: Optional[StreamLimits] = None):
        self.limits = limits or StreamLimits()
        self._subscribers: Dict[str, Subscriber] = {}
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._subscribers)

    def _user_count(self, user_id: str) -> int:
        return sum(1 for s in self._subscribers.values() if s.user_id == user_id)

    async def connect(self, user_id: Optional[str] = None, auction_id: Optional[str] = None) -> Subscriber:
        """
        Raises:
            HTTPException: 503 at total capacity, 429 over the per-user limit
        """
        async with self._lock:
            if len(self._subscribers) >= self.limits.max_connections:
                raise HTTPException(status_code=503, detail="Notification service at capacity")
            if user_id and self._user_count(user_id) >= self.limits.max_per_user:
                raise HTTPException(status_code=429, detail="Too many notification streams for this user")

            sub = Subscriber(user_id=user_id, auction_id=auction_id, queue_size=self.limits.queue_size)
            self._subscribers[sub.id] = sub

        logger.info(f"SSE subscriber {sub.id} joined (user: {user_id}, auction: {auction_id})")
        return sub

    async def disconnect(self, sub: Subscriber):
        async with self._lock:
            self._subscribers.pop(sub.id, None)
        logger.info(f"SSE subscriber {sub.id} left ({sub.dropped} dropped)")

    async def broadcast(
        self,
        event_type: str,
        data: Dict[str, Any],
        auction_id: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> int:
        """Queue the event for every interested subscriber; returns how many took it."""
        event = LiveEvent(id=event_id or uuid4().hex, type=event_type, data=data, auction_id=auction_id)
        return sum(1 for sub in list(self._subscribers.values()) if sub.wants(event) and sub.offer(event))

    async def stream(self, sub: Subscriber) -> AsyncGenerator[str, None]:
        yield f"retry: {self.limits.retry_ms}\n\n"
        try:
            while True:
                try:
                    event = await asyncio.wait_for(sub.queue.get(), timeout=self.limits.heartbeat_interval)
                except asyncio.TimeoutError:
                    yield KEEP_ALIVE
                    continue
                yield event.encode()
        finally:
            await self.disconnect(sub)


async def create_sse_response(
    manager: SSEManager,
    user_id: Optional[str] = None,
    auction_id: Optional[str] = None,
) -> StreamingResponse:
    sub = await manager.connect(user_id=user_id, auction_id=auction_id)
    return StreamingResponse(
        manager.stream(sub),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
