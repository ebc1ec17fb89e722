#!/usr/bin/env python3
"""
Auction Service API
===================

Authority for auctions. Owns the auction store and its outbox, answers
the bid validation RPC, and exposes operator endpoints for the outbox and
for escalated faults.

When started with a broker, this instance also runs the outbox relay;
the relay lease keeps a single publisher across instances.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ...core.auctions import AuctionService
from ...core.bidding import BidValidationGateway
from ...core.broker import MessageBroker
from ...core.config import CoreSettings, get_settings
from ...core.database import DatabaseAdapter, DatabaseConfig, apply_schema, create_database
from ...core.faults import FaultSink
from ...core.observability import init_observability
from ...core.outbox import outbox_lifespan
from ..shared.middleware import register_error_handlers, TracingMiddleware
from ..shared.routers import health_router
from .routers import auctions_router, rpc_router, admin_router

logger = logging.getLogger(__name__)

API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "7001"))

RELAY_NAME = "auction-outbox-relay"


def create_app(
    db: Optional[DatabaseAdapter] = None,
    broker: Optional[MessageBroker] = None,
    settings: Optional[CoreSettings] = None,
    observability: bool = True,
) -> FastAPI:
    """
    Build the auction service app.

    Args:
        db: Connected auction store; opened from AUCTION_* env vars if omitted
        broker: Broker for the outbox relay; no relay runs without one
        settings: Core settings; loaded from the environment if omitted
        observability: Configure logging, tracing and metrics at startup
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if observability:
            init_observability("auction-service", settings)

        owns_db = app.state.db is None
        if owns_db:
            app.state.db = await create_database(DatabaseConfig.from_env("AUCTION"))
        store = app.state.db
        await apply_schema(store, "auction")

        app.state.auction_service = AuctionService(store)
        app.state.gateway = BidValidationGateway(store, timeout=settings.gateway_timeout)
        app.state.fault_sink = FaultSink(store)

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
            if owns_db:
                await store.disconnect()

    app = FastAPI(
        title="Auction Service",
        description="Auction authority, bid validation RPC and fault operations",
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
    app.include_router(auctions_router)
    app.include_router(rpc_router)
    app.include_router(admin_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.api.auction_service.main:app",
        host=API_HOST,
        port=API_PORT,
    )
