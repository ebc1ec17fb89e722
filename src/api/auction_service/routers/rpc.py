"""
Gateway RPC

Synchronous point query used by the bidding side to validate a bid.
Not-found and timeout surface as 404 and 504 through the core error
handler.
"""

from fastapi import APIRouter, Request

from ....core.bidding import AuctionSnapshot, BidValidationGateway, GetAuctionRequest

router = APIRouter(prefix="/api/rpc", tags=["rpc"])


@router.post("/get-auction", response_model=AuctionSnapshot)
async def get_auction(request: Request, body: GetAuctionRequest):
    gateway: BidValidationGateway = request.app.state.gateway
    return await gateway.get_auction(body.auction_id)
