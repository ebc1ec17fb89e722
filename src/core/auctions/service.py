"""
Auction Service

Authority-side mutations. Every mutation writes the aggregate and its
outbox record in one transaction.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional
from uuid import uuid4

from ..database.adapter import DatabaseAdapter
from ..errors import AuctionForbiddenError, AuctionNotFoundError, ConcurrencyConflictError
from ..events.models import AuctionDeleted, to_payload
from ..events.taxonomy import AuctionEventType
from ..outbox.transactional import transactional_publish
from ..timeutil import utcnow
from .mapping import (
    apply_update,
    auction_to_created,
    auction_to_dto,
    auction_to_updated,
    new_auction,
)
from .models import AuctionDto, CreateAuctionRequest, UpdateAuctionRequest
from .repository import AuctionRepository

logger = logging.getLogger(__name__)


class AuctionService:
    """
    Creates, edits and deletes auctions on behalf of an authenticated user.

    Usage:
        service = AuctionService(db)
        dto = await service.create_auction("alice", CreateAuctionRequest(...))
    """

    def __init__(self, db: DatabaseAdapter, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.repo = AuctionRepository(db)
        self._clock = clock

    async def create_auction(self, seller: str, request: CreateAuctionRequest) -> AuctionDto:
        auction = new_auction(str(uuid4()), seller, request, self._clock())

        async with transactional_publish(self.db) as txn:
            await self.repo.insert(txn.tx, auction)
            await txn.emit(auction.id, AuctionEventType.CREATED, to_payload(auction_to_created(auction)))

        logger.info(f"Auction created: {auction.id} by {seller}")
        return auction_to_dto(auction)

    async def update_auction(self, auction_id: str, user: str, request: UpdateAuctionRequest) -> AuctionDto:
        async with transactional_publish(self.db) as txn:
            current = await self.repo.get(auction_id, txn.tx)
            if current is None:
                raise AuctionNotFoundError(auction_id)
            if current.seller != user:
                raise AuctionForbiddenError(auction_id, user)

            updated = apply_update(current, request, self._clock())
            if await self.repo.update_item(txn.tx, updated, current.updated_at) != 1:
                raise ConcurrencyConflictError(auction_id)
            await txn.emit(auction_id, AuctionEventType.UPDATED, to_payload(auction_to_updated(updated)))

        logger.info(f"Auction updated: {auction_id} by {user}")
        return auction_to_dto(updated)

    async def delete_auction(self, auction_id: str, user: str) -> None:
        async with transactional_publish(self.db) as txn:
            current = await self.repo.get(auction_id, txn.tx)
            if current is None:
                raise AuctionNotFoundError(auction_id)
            if current.seller != user:
                raise AuctionForbiddenError(auction_id, user)

            await self.repo.delete(txn.tx, auction_id)
            await txn.emit(auction_id, AuctionEventType.DELETED, to_payload(AuctionDeleted(id=auction_id)))

        logger.info(f"Auction deleted: {auction_id} by {user}")

    async def get_auction(self, auction_id: str) -> AuctionDto:
        auction = await self.repo.get(auction_id)
        if auction is None:
            raise AuctionNotFoundError(auction_id)
        return auction_to_dto(auction)

    async def list_auctions(self, updated_since: Optional[datetime] = None) -> List[AuctionDto]:
        return [auction_to_dto(a) for a in await self.repo.list_since(updated_since)]
