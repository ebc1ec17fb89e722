"""
Database abstraction layer supporting SQLite and PostgreSQL.

Each service (auction authority, search projection, bidding) owns its own
store; every store is reached through a DatabaseAdapter.

Usage:
    from src.core.database import create_database, DatabaseConfig, apply_schema

    db = await create_database(DatabaseConfig.from_env("AUCTION"))
    await apply_schema(db, "auction")

    async with db.transaction() as tx:
        await tx.execute("UPDATE auctions SET status = $1 WHERE id = $2", status, auction_id)
"""

from .adapter import (
    DatabaseAdapter,
    DatabaseBackend,
    DatabaseConfig,
    Transaction,
    create_database,
    get_database,
    close_database,
)
from .schema import apply_schema, STORE_SCHEMAS

__all__ = [
    "DatabaseAdapter",
    "DatabaseBackend",
    "DatabaseConfig",
    "Transaction",
    "create_database",
    "get_database",
    "close_database",
    "apply_schema",
    "STORE_SCHEMAS",
]
