"""
Auction Models

The authority aggregate, its embedded item and the request/response
shapes of the authority service.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AuctionStatus(str, Enum):
    LIVE = "Live"
    FINISHED = "Finished"
    RESERVE_NOT_MET = "ReserveNotMet"


class Item(BaseModel):
    """The vehicle on sale. A value embedded in its auction."""

    model_config = ConfigDict(frozen=True)

    make: str
    model: str
    year: int
    color: str
    mileage: int
    image_url: str = ""


class Auction(BaseModel):
    """Authority aggregate, one row of `auctions`."""

    id: str
    reserve_price: int = 0
    seller: str
    winner: Optional[str] = None
    sold_amount: Optional[int] = None
    current_high_bid: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    auction_end: datetime
    status: AuctionStatus = AuctionStatus.LIVE
    item: Item


class AuctionDto(BaseModel):
    """Flat view of an auction returned by the authority service."""

    id: str
    reserve_price: int = 0
    seller: str
    winner: Optional[str] = None
    sold_amount: Optional[int] = None
    current_high_bid: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    auction_end: datetime
    status: str
    make: str
    model: str
    year: int
    color: str
    mileage: int
    image_url: str = ""


class CreateAuctionRequest(BaseModel):
    make: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    year: int
    color: str = Field(..., min_length=1)
    mileage: int
    image_url: str = ""
    reserve_price: int = Field(default=0, ge=0)
    auction_end: datetime


class UpdateAuctionRequest(BaseModel):
    """Partial item edit; omitted fields keep their current value."""

    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    color: Optional[str] = None
    mileage: Optional[int] = None
