"""
Auction Repository

SQL access to the `auctions` table of the authority store. Writes take
the caller's transaction; conditional writes return the affected row
count so callers can detect a lost compare-and-swap.
"""

from datetime import datetime
from typing import List, Optional, Union

from ..database.adapter import DatabaseAdapter, Transaction
from ..timeutil import to_db_time
from .mapping import AUCTION_COLUMNS, auction_from_row, auction_to_row
from .models import Auction

Executor = Union[DatabaseAdapter, Transaction]

_COLUMN_LIST = ", ".join(AUCTION_COLUMNS)
_PLACEHOLDERS = ", ".join(f"${i}" for i in range(1, len(AUCTION_COLUMNS) + 1))


class AuctionRepository:
    def __init__(self, db: DatabaseAdapter):
        self.db = db

    async def get(self, auction_id: str, tx: Optional[Transaction] = None) -> Optional[Auction]:
        executor: Executor = tx or self.db
        row = await executor.fetchrow(
            f"SELECT {_COLUMN_LIST} FROM auctions WHERE id = $1", auction_id
        )
        return auction_from_row(row) if row else None

    async def list_since(self, updated_since: Optional[datetime] = None) -> List[Auction]:
        """Auctions ordered by make, optionally only those updated after a point in time."""
        if updated_since is None:
            rows = await self.db.fetch(
                f"SELECT {_COLUMN_LIST} FROM auctions ORDER BY make, id"
            )
        else:
            rows = await self.db.fetch(
                f"SELECT {_COLUMN_LIST} FROM auctions WHERE updated_at > $1 ORDER BY make, id",
                to_db_time(updated_since),
            )
        return [auction_from_row(row) for row in rows]

    async def insert(self, tx: Transaction, auction: Auction) -> None:
        await tx.execute(
            f"INSERT INTO auctions ({_COLUMN_LIST}) VALUES ({_PLACEHOLDERS})",
            *auction_to_row(auction),
        )

    async def update_item(self, tx: Transaction, auction: Auction, expected_updated_at: datetime) -> int:
        """Write item fields and updated_at if updated_at is still `expected_updated_at`."""
        item = auction.item
        return await tx.execute(
            """
            UPDATE auctions
            SET make = $1, model = $2, year = $3, color = $4, mileage = $5, updated_at = $6
            WHERE id = $7 AND updated_at = $8
            """,
            item.make, item.model, item.year, item.color, item.mileage,
            to_db_time(auction.updated_at),
            auction.id,
            to_db_time(expected_updated_at),
        )

    async def finish(self, tx: Transaction, auction: Auction, expected_updated_at: datetime) -> int:
        """Write the finish outcome if updated_at is still `expected_updated_at`."""
        return await tx.execute(
            """
            UPDATE auctions
            SET winner = $1, sold_amount = $2, status = $3, updated_at = $4
            WHERE id = $5 AND updated_at = $6
            """,
            auction.winner,
            auction.sold_amount,
            auction.status.value,
            to_db_time(auction.updated_at),
            auction.id,
            to_db_time(expected_updated_at),
        )

    async def raise_high_bid(self, tx: Transaction, auction_id: str, amount: int) -> int:
        """Set current_high_bid to `amount` only if that increases it."""
        return await tx.execute(
            """
            UPDATE auctions
            SET current_high_bid = $1
            WHERE id = $2 AND (current_high_bid IS NULL OR current_high_bid < $1)
            """,
            amount,
            auction_id,
        )

    async def delete(self, tx: Transaction, auction_id: str) -> int:
        return await tx.execute("DELETE FROM auctions WHERE id = $1", auction_id)

    async def exists(self, auction_id: str, tx: Optional[Transaction] = None) -> bool:
        executor: Executor = tx or self.db
        return await executor.fetchval("SELECT 1 FROM auctions WHERE id = $1", auction_id) is not None
