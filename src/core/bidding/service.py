"""
Bid Placement Service

Validates a bid through the gateway, stores it, and appends BidPlaced to
the bidding outbox in one transaction.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Protocol
from uuid import uuid4

from ..database.adapter import DatabaseAdapter, DatabaseBackend, Transaction
from ..events.models import BidPlaced, to_payload
from ..events.taxonomy import AuctionEventType
from ..outbox.transactional import transactional_publish
from ..timeutil import from_db_time, to_db_time, utcnow
from .gateway import evaluate_bid
from .models import AuctionSnapshot, Bid, BidStatus

logger = logging.getLogger(__name__)


class AuctionLookup(Protocol):
    async def get_auction(self, auction_id: str) -> AuctionSnapshot: ...


class BidPlacementService:
    def __init__(
        self,
        db: DatabaseAdapter,
        gateway: AuctionLookup,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.gateway = gateway
        self._clock = clock

    async def _lock_auction(self, tx: Transaction, auction_id: str) -> None:
        # SQLite transactions already run one at a time under the adapter lock
        if tx.backend == DatabaseBackend.POSTGRESQL:
            await tx.execute("SELECT pg_advisory_xact_lock(hashtext($1))", auction_id)

    async def _highest_accepted(self, tx: Transaction, auction_id: str) -> Optional[int]:
        return await tx.fetchval(
            "SELECT MAX(amount) AS high FROM bids WHERE auction_id = $1 AND bid_status = $2",
            auction_id, BidStatus.ACCEPTED.value
        )

    async def place_bid(self, auction_id: str, bidder: str, amount: int) -> Bid:
        """
        Validate and store a bid.

        The local high bid is read, compared and extended in one
        transaction, serialized per auction, so concurrent bids on the
        same auction are judged one after another.
        """
        snapshot = await self.gateway.get_auction(auction_id)

        async with transactional_publish(self.db) as txn:
            await self._lock_auction(txn.tx, auction_id)
            now = self._clock()
            status = evaluate_bid(snapshot, bidder, amount, now, await self._highest_accepted(txn.tx, auction_id))

            bid = Bid(
                id=str(uuid4()),
                auction_id=auction_id,
                bidder=bidder,
                amount=amount,
                bid_status=status,
                bid_time=now,
            )
            event = BidPlaced(
                id=bid.id,
                auction_id=auction_id,
                bidder=bidder,
                bid_time=now,
                amount=amount,
                bid_status=status.value,
            )
            await txn.tx.execute(
                """
                INSERT INTO bids (id, auction_id, bidder, amount, bid_status, bid_time)
                VALUES ($1, $2, $3, $4, $5, $6)
                """,
                bid.id, auction_id, bidder, amount, status.value, to_db_time(now)
            )
            await txn.emit(auction_id, AuctionEventType.BID_PLACED, to_payload(event))

        logger.info(f"Bid {bid.id} on {auction_id} by {bidder}: {amount} ({status.value})")
        return bid

    async def get_bids(self, auction_id: str) -> List[Bid]:
        """Bids for an auction, newest first."""
        rows = await self.db.fetch(
            """
            SELECT id, auction_id, bidder, amount, bid_status, bid_time
            FROM bids WHERE auction_id = $1
            ORDER BY bid_time DESC
            """,
            auction_id
        )
        return [
            Bid(
                id=row["id"],
                auction_id=row["auction_id"],
                bidder=row["bidder"],
                amount=row["amount"],
                bid_status=BidStatus(row["bid_status"]),
                bid_time=from_db_time(row["bid_time"]),
            )
            for row in rows
        ]
