"""
Bidding Models
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..events.models import BidStatus


class Bid(BaseModel):
    id: str
    auction_id: str
    bidder: str
    amount: int
    bid_status: BidStatus
    bid_time: datetime


class AuctionSnapshot(BaseModel):
    """Authority state needed to judge a bid, read without a projection hop."""

    id: str
    reserve_price: int
    seller: str
    auction_end: datetime
    current_high_bid: Optional[int] = None


class GetAuctionRequest(BaseModel):
    auction_id: str = Field(..., min_length=1)


class PlaceBidRequest(BaseModel):
    auction_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
