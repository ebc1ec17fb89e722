"""
Transactional Outbox

Durable append log written in the same transaction as aggregate changes,
and the relay that publishes it to the broker.

Usage:
    from src.core.outbox import on_aggregate_changed

    async with db.transaction() as tx:
        await tx.execute("INSERT INTO auctions ...")
        await on_aggregate_changed(tx, auction_id, "AuctionCreated", payload)
"""

from .models import OutboxRecord
from .writer import OutboxWriter
from .transactional import TransactionalPublisher, on_aggregate_changed, transactional_publish
from .lease import RelayLease
from .processor import OutboxRelay, outbox_counts
from .lifecycle import create_relay, outbox_lifespan

__all__ = [
    "OutboxRecord",
    "OutboxWriter",
    "TransactionalPublisher",
    "on_aggregate_changed",
    "transactional_publish",
    "RelayLease",
    "OutboxRelay",
    "outbox_counts",
    "create_relay",
    "outbox_lifespan",
]
