"""
Bid Validation Gateway

Synchronous point query of the authority store for bid legality. The
projection is never consulted here: a bid must not be judged against
lagging data. The query is bounded by a short timeout because it blocks
a user-facing action.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

from ..database.adapter import DatabaseAdapter
from ..errors import AuctionNotFoundError, BidRejectedError, GatewayTimeoutError
from ..observability.metrics import record_histogram
from ..observability.tracing import create_span
from ..timeutil import from_db_time
from .models import AuctionSnapshot, BidStatus

logger = logging.getLogger(__name__)


class BidValidationGateway:
    def __init__(self, db: DatabaseAdapter, timeout: float = 5.0):
        self.db = db
        self.timeout = timeout

    async def _query(self, auction_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.fetchrow(
            """
            SELECT id, reserve_price, seller, auction_end, current_high_bid
            FROM auctions WHERE id = $1
            """,
            auction_id,
        )

    async def get_auction(self, auction_id: str) -> AuctionSnapshot:
        """
        Current authority state of an auction.

        Raises:
            AuctionNotFoundError: no such auction
            GatewayTimeoutError: the store did not answer within the timeout
        """
        started = time.perf_counter()
        with create_span("gateway.get_auction", {"auction_id": auction_id}):
            try:
                row = await asyncio.wait_for(self._query(auction_id), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                logger.warning(f"Auction lookup for {auction_id} timed out after {self.timeout}s")
                raise GatewayTimeoutError(auction_id, self.timeout) from e
            finally:
                record_histogram("gateway_query_duration_seconds", time.perf_counter() - started)

        if row is None:
            raise AuctionNotFoundError(auction_id)

        return AuctionSnapshot(
            id=row["id"],
            reserve_price=row["reserve_price"],
            seller=row["seller"],
            auction_end=from_db_time(row["auction_end"]),
            current_high_bid=row["current_high_bid"],
        )


def evaluate_bid(
    snapshot: AuctionSnapshot,
    bidder: str,
    amount: int,
    now: datetime,
    local_high_bid: Optional[int] = None,
) -> BidStatus:
    """
    Judge a bid against the authority snapshot.

    `local_high_bid` is the highest accepted bid the bidding store already
    holds, which may be ahead of the authority's reconciled value.

    Raises:
        BidRejectedError: the seller bid on their own auction
    """
    if bidder == snapshot.seller:
        raise BidRejectedError(
            "Cannot bid on your own auction",
            {"auction_id": snapshot.id, "bidder": bidder},
        )
    if snapshot.auction_end < now:
        return BidStatus.FINISHED

    known = [b for b in (snapshot.current_high_bid, local_high_bid) if b is not None]
    if known and amount <= max(known):
        return BidStatus.TOO_LOW
    return BidStatus.ACCEPTED
