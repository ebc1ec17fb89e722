"""
High-Bid / Finish Reconciler

Applies BidPlaced and AuctionFinished back onto the authority store.

- BidPlaced raises current_high_bid for accepted bids only, and only
  upwards, in one conditional UPDATE. Delivery order does not matter.
- AuctionFinished records winner/sold amount and the final status with a
  compare-and-swap on updated_at. A lost race raises
  ConcurrencyConflictError and the broker redelivers.

Both handlers claim the message in the inbox in the same transaction.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from ..broker.base import RedeliveryPolicy
from ..consumers.registry import ConsumerDefinition
from ..database.adapter import DatabaseAdapter
from ..errors import AuctionNotFoundError, ConcurrencyConflictError
from ..events.models import AuctionFinished, BidPlaced, MessageEnvelope, parse_payload
from ..events.taxonomy import AuctionEventType
from ..inbox.guard import InboxGuard
from ..timeutil import utcnow
from .mapping import apply_finish
from .repository import AuctionRepository

logger = logging.getLogger(__name__)

CONSUMER_ID = "auction"


class AuctionReconciler:
    def __init__(self, db: DatabaseAdapter, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.repo = AuctionRepository(db)
        self._clock = clock

    def definition(self, prefetch: int = 16, policy: Optional[RedeliveryPolicy] = None) -> ConsumerDefinition:
        return ConsumerDefinition(
            CONSUMER_ID,
            {
                AuctionEventType.BID_PLACED.value: self.on_bid_placed,
                AuctionEventType.FINISHED.value: self.on_auction_finished,
            },
            prefetch=prefetch,
            policy=policy,
        )

    async def on_bid_placed(self, envelope: MessageEnvelope) -> None:
        event: BidPlaced = parse_payload(envelope)

        async with self.db.transaction() as tx:
            async with InboxGuard(tx, envelope.message_id, CONSUMER_ID) as guard:
                if not guard.should_process:
                    return
                if not event.is_accepted:
                    logger.debug(f"Ignoring {event.bid_status} bid {event.id} on {event.auction_id}")
                    return

                raised = await self.repo.raise_high_bid(tx, event.auction_id, event.amount)
                if raised:
                    logger.info(f"High bid on {event.auction_id} raised to {event.amount}")
                elif not await self.repo.exists(event.auction_id, tx):
                    raise AuctionNotFoundError(event.auction_id)

    async def on_auction_finished(self, envelope: MessageEnvelope) -> None:
        event: AuctionFinished = parse_payload(envelope)

        async with self.db.transaction() as tx:
            async with InboxGuard(tx, envelope.message_id, CONSUMER_ID) as guard:
                if not guard.should_process:
                    return

                auction = await self.repo.get(event.auction_id, tx)
                if auction is None:
                    raise AuctionNotFoundError(event.auction_id)

                finished = apply_finish(auction, event, self._clock())
                if await self.repo.finish(tx, finished, auction.updated_at) != 1:
                    raise ConcurrencyConflictError(event.auction_id)

        logger.info(f"Auction {event.auction_id} finished with status {finished.status.value}")
