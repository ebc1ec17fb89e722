"""
Auction Authority

The auction aggregate, its mutations and the reconciler that folds bid
and finish events back into it.
"""

from .models import (
    Auction,
    AuctionDto,
    AuctionStatus,
    CreateAuctionRequest,
    Item,
    UpdateAuctionRequest,
)
from .repository import AuctionRepository
from .service import AuctionService
from .reconciler import AuctionReconciler

__all__ = [
    "Auction",
    "AuctionDto",
    "AuctionStatus",
    "CreateAuctionRequest",
    "Item",
    "UpdateAuctionRequest",
    "AuctionRepository",
    "AuctionService",
    "AuctionReconciler",
]
