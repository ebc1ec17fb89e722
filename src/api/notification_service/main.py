#!/usr/bin/env python3
"""
Notification Service API
========================

Pushes AuctionCreated, BidPlaced and AuctionFinished to connected
browsers over SSE. Delivery is at-most-once; clients that reconnect
re-query the search service.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from ...core.broker import MessageBroker
from ...core.config import CoreSettings, get_settings
from ...core.database import DatabaseAdapter, DatabaseConfig, apply_schema, create_database
from ...core.notifications import NotificationFanout
from ...core.observability import init_observability
from ..shared.middleware import register_error_handlers, TracingMiddleware, get_current_user
from ..shared.routers import health_router
from ..shared.sse import SSEManager, create_sse_response

logger = logging.getLogger(__name__)

API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "7004"))

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("/stream")
async def stream_notifications(
    request: Request,
    auction_id: Optional[str] = Query(None, alias="auctionId", description="Only events for this auction"),
    user: Optional[str] = Depends(get_current_user),
):
    """Server-sent event stream of live auction events."""
    return await create_sse_response(request.app.state.sse, user_id=user, auction_id=auction_id)


@router.get("/stats")
async def notification_stats(request: Request):
    manager: SSEManager = request.app.state.sse
    return {
        "total_connections": manager.connection_count,
        "max_connections": manager.limits.max_connections,
    }


def create_app(
    db: Optional[DatabaseAdapter] = None,
    broker: Optional[MessageBroker] = None,
    sse: Optional[SSEManager] = None,
    settings: Optional[CoreSettings] = None,
    observability: bool = True,
) -> FastAPI:
    """
    Build the notification service app.

    Args:
        db: Connected notify store (inbox only); opened from NOTIFY_* env vars if omitted
        broker: When given, the fan-out consumer is bound to it here
        sse: Connection manager shared with a fan-out bound elsewhere
        settings: Core settings; loaded from the environment if omitted
        observability: Configure logging, tracing and metrics at startup
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if observability:
            init_observability("notification-service", settings)

        owns_db = app.state.db is None
        if owns_db:
            app.state.db = await create_database(DatabaseConfig.from_env("NOTIFY"))
        store = app.state.db
        await apply_schema(store, "notify")

        if broker is not None:
            fanout = NotificationFanout(store, app.state.sse)
            fanout.definition(prefetch=settings.consumer_prefetch).bind(broker)

        try:
            yield
        finally:
            if owns_db:
                await store.disconnect()

    app = FastAPI(
        title="Notification Service",
        description="Live auction events over server-sent events",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.db = db
    app.state.sse = sse or SSEManager()

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
        "src.api.notification_service.main:app",
        host=API_HOST,
        port=API_PORT,
    )
