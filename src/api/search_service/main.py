#!/usr/bin/env python3
"""
Search Service API
==================

Serves the projection store. At startup it catches up with the auction
service over HTTP; afterwards the projection consumer keeps it current.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ...core.config import CoreSettings, get_settings
from ...core.database import DatabaseAdapter, DatabaseConfig, apply_schema, create_database
from ...core.observability import init_observability
from ...core.projection import ProjectionStore, ProjectionSynchronizer
from ..shared.middleware import register_error_handlers, TracingMiddleware
from ..shared.routers import health_router
from .routers import router as search_router

logger = logging.getLogger(__name__)

API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "7002"))


def create_app(
    db: Optional[DatabaseAdapter] = None,
    settings: Optional[CoreSettings] = None,
    sync_client: Optional[httpx.AsyncClient] = None,
    sync_on_startup: bool = True,
    observability: bool = True,
) -> FastAPI:
    """
    Build the search service app.

    Args:
        db: Connected search store; opened from SEARCH_* env vars if omitted
        settings: Core settings; loaded from the environment if omitted
        sync_client: HTTP client for the startup catch-up (tests inject one)
        sync_on_startup: Pull changed auctions from the auction service first
        observability: Configure logging, tracing and metrics at startup
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if observability:
            init_observability("search-service", settings)

        owns_db = app.state.db is None
        if owns_db:
            app.state.db = await create_database(DatabaseConfig.from_env("SEARCH"))
        store = app.state.db
        await apply_schema(store, "search")
        app.state.projection_store = ProjectionStore(store)

        if sync_on_startup:
            synchronizer = ProjectionSynchronizer(store, settings.auction_service_url, client=sync_client)
            try:
                await synchronizer.sync()
            except httpx.HTTPError as e:
                # Serve what is projected; consumers fill in the rest
                logger.warning(f"Projection catch-up failed, serving existing data: {e}")

        try:
            yield
        finally:
            if owns_db:
                await store.disconnect()

    app = FastAPI(
        title="Search Service",
        description="Eventually consistent auction search",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.db = db

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(TracingMiddleware)

    register_error_handlers(app)

    app.include_router(health_router)
    app.include_router(search_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.api.search_service.main:app",
        host=API_HOST,
        port=API_PORT,
    )
