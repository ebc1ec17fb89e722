"""
Auctions API

Authority CRUD. Every mutation commits its row change and the matching
domain event in one transaction; the relay publishes the event later.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from ....core.auctions import (
    AuctionDto,
    AuctionService,
    CreateAuctionRequest,
    UpdateAuctionRequest,
)
from ...shared.middleware import require_user

router = APIRouter(prefix="/api/auctions", tags=["auctions"])


def get_auction_service(request: Request) -> AuctionService:
    return request.app.state.auction_service


def _wake_relay(request: Request):
    relay = getattr(request.app.state, "relay", None)
    if relay is not None:
        relay.notify()


@router.get("", response_model=List[AuctionDto])
async def list_auctions(
    date: Optional[datetime] = Query(None, description="Only auctions updated after this instant"),
    service: AuctionService = Depends(get_auction_service),
):
    """List auctions, optionally only those changed since `date`."""
    return await service.list_auctions(date)


@router.get("/{auction_id}", response_model=AuctionDto)
async def get_auction(auction_id: str, service: AuctionService = Depends(get_auction_service)):
    return await service.get_auction(auction_id)


@router.post("", response_model=AuctionDto, status_code=201)
async def create_auction(
    request: Request,
    body: CreateAuctionRequest,
    user: str = Depends(require_user),
    service: AuctionService = Depends(get_auction_service),
):
    dto = await service.create_auction(user, body)
    _wake_relay(request)
    return dto


@router.put("/{auction_id}", response_model=AuctionDto)
async def update_auction(
    request: Request,
    auction_id: str,
    body: UpdateAuctionRequest,
    user: str = Depends(require_user),
    service: AuctionService = Depends(get_auction_service),
):
    """Edit the item of an auction. Only its seller may do so."""
    dto = await service.update_auction(auction_id, user, body)
    _wake_relay(request)
    return dto


@router.delete("/{auction_id}", status_code=204)
async def delete_auction(
    request: Request,
    auction_id: str,
    user: str = Depends(require_user),
    service: AuctionService = Depends(get_auction_service),
):
    await service.delete_auction(auction_id, user)
    _wake_relay(request)
    return Response(status_code=204)
