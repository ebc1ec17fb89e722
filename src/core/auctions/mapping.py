"""
Auction Mapping

Pure conversions between rows, aggregates, DTOs and event contracts.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from ..events.models import AuctionCreated, AuctionFinished, AuctionUpdated
from ..timeutil import from_db_time, to_db_time
from .models import (
    Auction,
    AuctionDto,
    AuctionStatus,
    CreateAuctionRequest,
    Item,
    UpdateAuctionRequest,
)

# Column order shared by `auctions` and `projection_items`
AUCTION_COLUMNS = (
    "id", "reserve_price", "seller", "winner", "sold_amount", "current_high_bid",
    "created_at", "updated_at", "auction_end", "status",
    "make", "model", "year", "color", "mileage", "image_url",
)


def next_version(current: datetime, now: datetime) -> datetime:
    """A timestamp strictly later than `current`, normally `now`."""
    if now > current:
        return now
    return current + timedelta(microseconds=1)


def finish_status(sold_amount: Optional[int], reserve_price: int) -> AuctionStatus:
    """Finished when the sale beat the reserve, ReserveNotMet otherwise."""
    if sold_amount is not None and sold_amount > reserve_price:
        return AuctionStatus.FINISHED
    return AuctionStatus.RESERVE_NOT_MET


def new_auction(auction_id: str, seller: str, request: CreateAuctionRequest, now: datetime) -> Auction:
    return Auction(
        id=auction_id,
        reserve_price=request.reserve_price,
        seller=seller,
        created_at=now,
        updated_at=now,
        auction_end=request.auction_end,
        status=AuctionStatus.LIVE,
        item=Item(
            make=request.make,
            model=request.model,
            year=request.year,
            color=request.color,
            mileage=request.mileage,
            image_url=request.image_url,
        ),
    )


def apply_update(auction: Auction, request: UpdateAuctionRequest, now: datetime) -> Auction:
    """Aggregate with the request's non-null item fields applied."""
    changes = request.model_dump(exclude_none=True)
    item = auction.item.model_copy(update=changes)
    return auction.model_copy(update={"item": item, "updated_at": next_version(auction.updated_at, now)})


def apply_finish(auction: Auction, event: AuctionFinished, now: datetime) -> Auction:
    """Aggregate after the auction-finished outcome is applied."""
    winner, sold_amount = auction.winner, auction.sold_amount
    if event.item_sold:
        winner, sold_amount = event.winner, event.amount
    return auction.model_copy(update={
        "winner": winner,
        "sold_amount": sold_amount,
        "status": finish_status(sold_amount, auction.reserve_price),
        "updated_at": next_version(auction.updated_at, now),
    })


def auction_from_row(row: Dict[str, Any]) -> Auction:
    return Auction(
        id=row["id"],
        reserve_price=row["reserve_price"],
        seller=row["seller"],
        winner=row["winner"],
        sold_amount=row["sold_amount"],
        current_high_bid=row["current_high_bid"],
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
        auction_end=from_db_time(row["auction_end"]),
        status=AuctionStatus(row["status"]),
        item=Item(
            make=row["make"],
            model=row["model"],
            year=row["year"],
            color=row["color"],
            mileage=row["mileage"],
            image_url=row["image_url"] or "",
        ),
    )


def auction_to_row(auction: Auction) -> Tuple[Any, ...]:
    """Values in AUCTION_COLUMNS order."""
    item = auction.item
    return (
        auction.id,
        auction.reserve_price,
        auction.seller,
        auction.winner,
        auction.sold_amount,
        auction.current_high_bid,
        to_db_time(auction.created_at),
        to_db_time(auction.updated_at),
        to_db_time(auction.auction_end),
        auction.status.value,
        item.make,
        item.model,
        item.year,
        item.color,
        item.mileage,
        item.image_url,
    )


def auction_to_dto(auction: Auction) -> AuctionDto:
    item = auction.item
    return AuctionDto(
        id=auction.id,
        reserve_price=auction.reserve_price,
        seller=auction.seller,
        winner=auction.winner,
        sold_amount=auction.sold_amount,
        current_high_bid=auction.current_high_bid,
        created_at=auction.created_at,
        updated_at=auction.updated_at,
        auction_end=auction.auction_end,
        status=auction.status.value,
        make=item.make,
        model=item.model,
        year=item.year,
        color=item.color,
        mileage=item.mileage,
        image_url=item.image_url,
    )


def auction_to_created(auction: Auction) -> AuctionCreated:
    return AuctionCreated(**auction_to_dto(auction).model_dump())


def auction_to_updated(auction: Auction) -> AuctionUpdated:
    item = auction.item
    return AuctionUpdated(
        id=auction.id,
        make=item.make,
        model=item.model,
        year=item.year,
        color=item.color,
        mileage=item.mileage,
        updated_at=auction.updated_at,
    )
