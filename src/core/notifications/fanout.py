"""
Notification Fan-out

Forwards auction events to live push connections. Consumer group
`notify`; the inbox keeps a redelivered message from being pushed twice.
"""

import logging
from typing import Any, Dict, Optional, Protocol

from ..broker.base import RedeliveryPolicy
from ..consumers.registry import ConsumerDefinition
from ..database.adapter import DatabaseAdapter
from ..events.models import MessageEnvelope, parse_payload
from ..events.taxonomy import AuctionEventType
from ..inbox.guard import InboxGuard

logger = logging.getLogger(__name__)

CONSUMER_ID = "notify"


class Broadcaster(Protocol):
    async def broadcast(
        self,
        event_type: str,
        data: Dict[str, Any],
        auction_id: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> int: ...


class NotificationFanout:
    def __init__(self, db: DatabaseAdapter, broadcaster: Broadcaster):
        self.db = db
        self.broadcaster = broadcaster

    def definition(self, prefetch: int = 16, policy: Optional[RedeliveryPolicy] = None) -> ConsumerDefinition:
        return ConsumerDefinition(
            CONSUMER_ID,
            {
                AuctionEventType.CREATED.value: self.handle,
                AuctionEventType.BID_PLACED.value: self.handle,
                AuctionEventType.FINISHED.value: self.handle,
            },
            prefetch=prefetch,
            policy=policy,
        )

    async def handle(self, envelope: MessageEnvelope) -> None:
        event = parse_payload(envelope)
        data = event.model_dump(mode="json")
        auction_id = data.get("auction_id") or data.get("id")

        async with self.db.transaction() as tx:
            async with InboxGuard(tx, envelope.message_id, CONSUMER_ID) as guard:
                if not guard.should_process:
                    return

        # Pushed after the claim commits, so at most once per message
        sent = await self.broadcaster.broadcast(
            envelope.message_type, data, auction_id=auction_id, event_id=envelope.message_id
        )
        logger.debug(f"Pushed {envelope.message_type} {envelope.message_id} to {sent} connection(s)")
