"""
Outbox Lifecycle Management

Integrates the outbox relay with the FastAPI application lifecycle.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from ..broker.base import MessageBroker
from ..config import CoreSettings, get_settings
from ..database.adapter import DatabaseAdapter
from .lease import RelayLease
from .processor import OutboxRelay

logger = logging.getLogger(__name__)


def create_relay(
    db: DatabaseAdapter,
    broker: MessageBroker,
    runner_name: str,
    settings: Optional[CoreSettings] = None,
) -> OutboxRelay:
    """Build a leased relay for one store's outbox from settings."""
    settings = settings or get_settings()
    return OutboxRelay(
        db,
        broker,
        poll_interval=settings.outbox_poll_interval,
        batch_size=settings.outbox_batch_size,
        lease=RelayLease(db, runner_name=runner_name, lease_seconds=settings.relay_lease_seconds),
    )


@asynccontextmanager
async def outbox_lifespan(
    db: DatabaseAdapter,
    broker: MessageBroker,
    runner_name: str,
    settings: Optional[CoreSettings] = None,
) -> AsyncIterator[Optional[OutboxRelay]]:
    """
    Lifespan context manager for an outbox relay.

    Usage in FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            async with outbox_lifespan(db, broker, "auction-outbox-relay") as relay:
                app.state.relay = relay
                yield

    Yields None when OUTBOX_PROCESSOR_ENABLED=false; another instance is
    expected to run the relay then.
    """
    settings = settings or get_settings()
    if not settings.outbox_processor_enabled:
        logger.info("Outbox relay disabled: OUTBOX_PROCESSOR_ENABLED=false")
        yield None
        return

    relay = create_relay(db, broker, runner_name, settings)
    logger.info(f"Starting outbox relay {runner_name}...")
    await relay.start()
    try:
        yield relay
    finally:
        logger.info(f"Stopping outbox relay {runner_name}...")
        await relay.stop()
