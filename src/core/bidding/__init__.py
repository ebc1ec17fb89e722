"""
Bidding

Bid validation against the authority store and bid placement through
the bidding outbox.
"""

from .models import AuctionSnapshot, Bid, BidStatus, GetAuctionRequest, PlaceBidRequest
from .gateway import BidValidationGateway, evaluate_bid
from .client import AuctionGatewayClient
from .service import BidPlacementService

__all__ = [
    "AuctionSnapshot",
    "Bid",
    "BidStatus",
    "GetAuctionRequest",
    "PlaceBidRequest",
    "BidValidationGateway",
    "evaluate_bid",
    "AuctionGatewayClient",
    "BidPlacementService",
]
