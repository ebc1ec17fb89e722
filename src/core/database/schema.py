"""
Store Schemas

Table definitions for each service store. DDL is kept portable between
SQLite and PostgreSQL; the only dialect difference is the auto-increment
sequence column, substituted per backend.

Timestamps are ISO-8601 UTC text (see core.timeutil), so string order is
time order on both engines.
"""

import logging
from typing import Dict, List, Union

from .adapter import DatabaseAdapter, DatabaseBackend

logger = logging.getLogger(__name__)

_SERIAL = {
    DatabaseBackend.SQLITE: "INTEGER PRIMARY KEY AUTOINCREMENT",
    DatabaseBackend.POSTGRESQL: "BIGSERIAL PRIMARY KEY",
}

OUTBOX_DDL = [
    """
    CREATE TABLE IF NOT EXISTS outbox (
        seq {serial},
        id TEXT NOT NULL UNIQUE,
        aggregate_id TEXT NOT NULL,
        message_type TEXT NOT NULL,
        payload TEXT NOT NULL,
        headers TEXT NOT NULL DEFAULT '{{}}',
        enqueued_at TEXT NOT NULL,
        sent_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_outbox_unsent ON outbox(sent_at, seq)",
    """
    CREATE TABLE IF NOT EXISTS relay_leases (
        runner_name TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        lease_expires_at TEXT NOT NULL,
        heartbeat_at TEXT NOT NULL,
        pid INTEGER NOT NULL,
        host TEXT NOT NULL
    )
    """,
]

INBOX_DDL = [
    """
    CREATE TABLE IF NOT EXISTS inbox (
        consumer_id TEXT NOT NULL,
        message_id TEXT NOT NULL,
        processed_at TEXT NOT NULL,
        PRIMARY KEY (consumer_id, message_id)
    )
    """,
]

AUCTION_DDL = [
    """
    CREATE TABLE IF NOT EXISTS auctions (
        id TEXT PRIMARY KEY,
        reserve_price INTEGER NOT NULL DEFAULT 0,
        seller TEXT NOT NULL,
        winner TEXT,
        sold_amount INTEGER,
        current_high_bid INTEGER,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        auction_end TEXT NOT NULL,
        status TEXT NOT NULL,
        make TEXT NOT NULL,
        model TEXT NOT NULL,
        year INTEGER NOT NULL,
        color TEXT NOT NULL,
        mileage INTEGER NOT NULL,
        image_url TEXT NOT NULL DEFAULT ''
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_auctions_updated_at ON auctions(updated_at)",
    """
    CREATE TABLE IF NOT EXISTS fault_records (
        id TEXT PRIMARY KEY,
        message_id TEXT NOT NULL,
        source_queue TEXT NOT NULL,
        message_type TEXT NOT NULL,
        exception_type TEXT NOT NULL,
        exception_message TEXT NOT NULL DEFAULT '',
        attempt_count INTEGER NOT NULL DEFAULT 0,
        first_failed_at TEXT,
        original_message TEXT NOT NULL,
        state TEXT NOT NULL,
        recorded_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_fault_records_state ON fault_records(state, recorded_at)",
]

PROJECTION_DDL = [
    """
    CREATE TABLE IF NOT EXISTS projection_items (
        id TEXT PRIMARY KEY,
        reserve_price INTEGER NOT NULL DEFAULT 0,
        seller TEXT NOT NULL,
        winner TEXT,
        sold_amount INTEGER,
        current_high_bid INTEGER,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        auction_end TEXT NOT NULL,
        status TEXT NOT NULL,
        make TEXT NOT NULL,
        model TEXT NOT NULL,
        year INTEGER NOT NULL,
        color TEXT NOT NULL,
        mileage INTEGER NOT NULL,
        image_url TEXT NOT NULL DEFAULT ''
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_projection_auction_end ON projection_items(auction_end)",
    """
    CREATE TABLE IF NOT EXISTS projection_tombstones (
        id TEXT PRIMARY KEY,
        deleted_at TEXT NOT NULL
    )
    """,
]

BIDDING_DDL = [
    """
    CREATE TABLE IF NOT EXISTS bids (
        id TEXT PRIMARY KEY,
        auction_id TEXT NOT NULL,
        bidder TEXT NOT NULL,
        amount INTEGER NOT NULL,
        bid_status TEXT NOT NULL,
        bid_time TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_bids_auction ON bids(auction_id, amount)",
]

# Tables per service store. The authority and bidding stores publish through
# their own outbox; every consuming store keeps an inbox.
STORE_SCHEMAS: Dict[str, List[str]] = {
    "auction": AUCTION_DDL + OUTBOX_DDL + INBOX_DDL,
    "search": PROJECTION_DDL + INBOX_DDL,
    "bidding": BIDDING_DDL + OUTBOX_DDL,
    "notify": INBOX_DDL,
}


async def apply_schema(db: DatabaseAdapter, store: Union[str, List[str]]) -> None:
    """
    Create the tables of a store if they do not exist.

    Args:
        db: Connected adapter for the store
        store: Store name from STORE_SCHEMAS, or an explicit DDL list
    """
    statements = STORE_SCHEMAS[store] if isinstance(store, str) else store
    serial = _SERIAL[db.backend]
    for statement in statements:
        await db.execute(statement.format(serial=serial))
    logger.info(f"Schema applied: {store if isinstance(store, str) else 'custom'} ({db.backend.value})")
