#!/usr/bin/env python3
"""
Bidding Service API
===================

Accepts bids, judges them against a point query to the auction service,
and records each bid with its BidPlaced event in the bidding store.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ...core.bidding import AuctionGatewayClient, Bid, BidPlacementService, PlaceBidRequest
from ...core.bidding.service import AuctionLookup
from ...core.broker import MessageBroker
from ...core.config import CoreSettings, get_settings
from ...core.database import DatabaseAdapter, DatabaseConfig, apply_schema, create_database
from ...core.observability import init_observability
from ...core.outbox import outbox_lifespan
from ..shared.middleware import register_error_handlers, TracingMiddleware, require_user
from ..shared.routers import health_router

logger = logging.getLogger(__name__)

API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "7003"))

RELAY_NAME = "bidding-outbox-relay"

router = APIRouter(prefix="/api/bids", tags=["bids"])


def get_bid_service(request: Request) -> BidPlacementService:
    return request.app.state.bid_service


@router.post("", response_model=Bid, status_code=201)
async def place_bid(
    request: Request,
    body: PlaceBidRequest,
    user: str = Depends(require_user),
    service: BidPlacementService = Depends(get_bid_service),
):
    """
    Place a bid. The response carries the verdict (Accepted, TooLow or
    Finished); every verdict is recorded and published.
    """
    bid = await service.place_bid(body.auction_id, user, body.amount)

    relay = getattr(request.app.state, "relay", None)
    if relay is not None:
        relay.notify()
    return bid


@router.get("/{auction_id}", response_model=List[Bid])
async def get_bids(auction_id: str, service: BidPlacementService = Depends(get_bid_service)):
    return await service.get_bids(auction_id)


def create_app(
    db: Optional[DatabaseAdapter] = None,
    broker: Optional[MessageBroker] = None,
    lookup: Optional[AuctionLookup] = None,
    settings: Optional[CoreSettings] = None,
    observability: bool = True,
) -> FastAPI:
    """
    Build the bidding service app.

    Args:
        db: Connected bidding store; opened from BIDDING_* env vars if omitted
        broker: Broker for the outbox relay; no relay runs without one
        lookup: Auction lookup; an HTTP gateway client to AUCTION_SERVICE_URL if omitted
        settings: Core settings; loaded from the environment if omitted
        observability: Configure logging, tracing and metrics at startup
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if observability:
            init_observability("bidding-service", settings)

        owns_db = app.state.db is None
        if owns_db:
            app.state.db = await create_database(DatabaseConfig.from_env("BIDDING"))
        store = app.state.db
        await apply_schema(store, "bidding")

        client = None
        gateway = lookup
        if gateway is None:
            client = AuctionGatewayClient(settings.auction_service_url, timeout=settings.gateway_timeout)
            gateway = client
        app.state.bid_service = BidPlacementService(store, gateway)

        try:
            if broker is None:
                logger.info("No broker configured; outbox relay runs elsewhere")
                yield
            else:
                async with outbox_lifespan(store, broker, RELAY_NAME, settings) as relay:
                    app.state.relay = relay
                    yield
        finally:
            app.state.relay = None
            if client is not None:
                await client.close()
            if owns_db:
                await store.disconnect()

    app = FastAPI(
        title="Bidding Service",
        description="Bid placement with synchronous validation",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.db = db
    app.state.relay = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(TracingMiddleware)

    register_error_handlers(app)

    app.include_router(health_router)
    app.include_router(router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.api.bidding_service.main:app",
        host=API_HOST,
        port=API_PORT,
    )
