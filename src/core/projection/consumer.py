"""
Idempotent Projection Consumer

Applies auction events to the search store. Each handler validates the
payload, then claims the message in the inbox and applies the change in
one transaction:

    AuctionCreated   business rules, then upsert unless the id was deleted
    AuctionUpdated   business rules, then apply if updated_at >= stored updated_at
    AuctionDeleted   delete and tombstone the id (missing row is a no-op)
    BidPlaced        raise current_high_bid for accepted bids
    AuctionFinished  apply if finished_at >= stored updated_at

Stale events are acknowledged without mutation, as are events for a
tombstoned id; events for an id not seen yet are retried. There is no
retry loop here: failures propagate and the broker redelivers.
"""

import logging
from typing import FrozenSet, Iterable, Optional, Union

from ..auctions.mapping import finish_status
from ..broker.base import RedeliveryPolicy
from ..consumers.registry import ConsumerDefinition
from ..database.adapter import DatabaseAdapter, Transaction
from ..errors import NegativeMileageError, ProhibitedModelError, ProjectionNotReadyError
from ..events.models import (
    AuctionCreated,
    AuctionDeleted,
    AuctionFinished,
    AuctionUpdated,
    BidPlaced,
    MessageEnvelope,
    parse_payload,
)
from ..events.taxonomy import AuctionEventType
from ..inbox.guard import InboxGuard
from ..observability.metrics import record_counter
from .models import ProjectionItem
from .store import ProjectionStore

logger = logging.getLogger(__name__)

CONSUMER_ID = "search"


def check_item_rules(event: Union[AuctionCreated, AuctionUpdated], prohibited_models: FrozenSet[str]) -> None:
    """Raise the business-rule error for an item the search store refuses."""
    if event.model in prohibited_models:
        raise ProhibitedModelError(event.model)
    if event.mileage < 0:
        raise NegativeMileageError(event.mileage)


class ProjectionConsumer:
    def __init__(self, db: DatabaseAdapter, prohibited_models: Iterable[str] = ("Foo",)):
        self.db = db
        self.store = ProjectionStore(db)
        self.prohibited_models = frozenset(prohibited_models)

    def definition(self, prefetch: int = 16, policy: Optional[RedeliveryPolicy] = None) -> ConsumerDefinition:
        return ConsumerDefinition(
            CONSUMER_ID,
            {
                AuctionEventType.CREATED.value: self.on_auction_created,
                AuctionEventType.UPDATED.value: self.on_auction_updated,
                AuctionEventType.DELETED.value: self.on_auction_deleted,
                AuctionEventType.BID_PLACED.value: self.on_bid_placed,
                AuctionEventType.FINISHED.value: self.on_auction_finished,
            },
            prefetch=prefetch,
            policy=policy,
        )

    def _stale(self, envelope: MessageEnvelope, item_id: str):
        record_counter("stale_events_discarded_total", attributes={"message_type": envelope.message_type})
        logger.info(f"Discarding stale {envelope.message_type} {envelope.message_id} for {item_id}")

    async def _missing(self, tx: Transaction, envelope: MessageEnvelope, item_id: str) -> None:
        """Acknowledge events for a deleted item; anything else is not projected yet."""
        if not await self.store.is_deleted(item_id, tx):
            raise ProjectionNotReadyError(item_id, envelope.message_type)
        self._stale(envelope, item_id)

    async def on_auction_created(self, envelope: MessageEnvelope) -> None:
        event: AuctionCreated = parse_payload(envelope)
        check_item_rules(event, self.prohibited_models)

        async with self.db.transaction() as tx:
            async with InboxGuard(tx, envelope.message_id, CONSUMER_ID) as guard:
                if not guard.should_process:
                    return
                applied = await self.store.upsert(tx, ProjectionItem(**event.model_dump()))

        if applied:
            logger.info(f"Projected auction {event.id}")
        else:
            self._stale(envelope, event.id)

    async def on_auction_updated(self, envelope: MessageEnvelope) -> None:
        event: AuctionUpdated = parse_payload(envelope)
        check_item_rules(event, self.prohibited_models)

        async with self.db.transaction() as tx:
            async with InboxGuard(tx, envelope.message_id, CONSUMER_ID) as guard:
                if not guard.should_process:
                    return
                if await self.store.apply_update(tx, event):
                    logger.info(f"Projection updated for {event.id}")
                    return
                if await self.store.get(event.id, tx) is None:
                    await self._missing(tx, envelope, event.id)
                    return
                self._stale(envelope, event.id)

    async def on_auction_deleted(self, envelope: MessageEnvelope) -> None:
        event: AuctionDeleted = parse_payload(envelope)

        async with self.db.transaction() as tx:
            async with InboxGuard(tx, envelope.message_id, CONSUMER_ID) as guard:
                if not guard.should_process:
                    return
                deleted = await self.store.delete(tx, event.id)

        logger.info(f"Projection delete for {event.id}: {deleted} row(s)")

    async def on_bid_placed(self, envelope: MessageEnvelope) -> None:
        event: BidPlaced = parse_payload(envelope)

        async with self.db.transaction() as tx:
            async with InboxGuard(tx, envelope.message_id, CONSUMER_ID) as guard:
                if not guard.should_process or not event.is_accepted:
                    return
                if await self.store.raise_high_bid(tx, event.auction_id, event.amount):
                    return
                if await self.store.get(event.auction_id, tx) is None:
                    await self._missing(tx, envelope, event.auction_id)

    async def on_auction_finished(self, envelope: MessageEnvelope) -> None:
        event: AuctionFinished = parse_payload(envelope)

        async with self.db.transaction() as tx:
            async with InboxGuard(tx, envelope.message_id, CONSUMER_ID) as guard:
                if not guard.should_process:
                    return
                item = await self.store.get(event.auction_id, tx)
                if item is None:
                    await self._missing(tx, envelope, event.auction_id)
                    return
                if event.finished_at < item.updated_at:
                    self._stale(envelope, event.auction_id)
                    return

                winner, sold_amount = item.winner, item.sold_amount
                if event.item_sold:
                    winner, sold_amount = event.winner, event.amount
                status = finish_status(sold_amount, item.reserve_price)
                await self.store.apply_finish(
                    tx, event.auction_id, winner, sold_amount, status.value, event.finished_at
                )

        logger.info(f"Projection finished {event.auction_id}: {status.value}")
