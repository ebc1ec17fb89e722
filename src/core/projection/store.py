"""
Projection Store

SQL access to `projection_items` in the search store. The guarded writes
implement last-writer-by-version: a change applies only when its logical
timestamp is not older than the stored updated_at.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

from ..auctions.mapping import AUCTION_COLUMNS
from ..database.adapter import DatabaseAdapter, Transaction
from ..events.models import AuctionUpdated
from ..timeutil import from_db_time, to_db_time, utcnow
from .models import PagedResult, ProjectionItem, SearchParams

Executor = Union[DatabaseAdapter, Transaction]

_COLUMN_LIST = ", ".join(AUCTION_COLUMNS)
_PLACEHOLDERS = ", ".join(f"${i}" for i in range(1, len(AUCTION_COLUMNS) + 1))
_UPSERT_SET = ", ".join(f"{c} = excluded.{c}" for c in AUCTION_COLUMNS if c != "id")

ENDING_SOON_WINDOW = timedelta(hours=6)


def item_from_row(row: Dict[str, Any]) -> ProjectionItem:
    data = dict(row)
    for key in ("created_at", "updated_at", "auction_end"):
        data[key] = from_db_time(data[key])
    data["image_url"] = data.get("image_url") or ""
    return ProjectionItem(**data)


def item_to_row(item: ProjectionItem) -> Tuple[Any, ...]:
    data = item.model_dump()
    for key in ("created_at", "updated_at", "auction_end"):
        data[key] = to_db_time(data[key])
    return tuple(data[c] for c in AUCTION_COLUMNS)


class ProjectionStore:
    def __init__(self, db: DatabaseAdapter):
        self.db = db

    async def get(self, item_id: str, tx: Optional[Transaction] = None) -> Optional[ProjectionItem]:
        executor: Executor = tx or self.db
        row = await executor.fetchrow(
            f"SELECT {_COLUMN_LIST} FROM projection_items WHERE id = $1", item_id
        )
        return item_from_row(row) if row else None

    async def count(self) -> int:
        return int(await self.db.fetchval("SELECT COUNT(*) AS n FROM projection_items") or 0)

    async def latest_updated_at(self) -> Optional[datetime]:
        return from_db_time(await self.db.fetchval("SELECT MAX(updated_at) AS latest FROM projection_items"))

    async def upsert(self, tx: Transaction, item: ProjectionItem) -> int:
        """Insert, or replace a row that is not newer than `item`. Deleted ids stay deleted."""
        if await self.is_deleted(item.id, tx):
            return 0
        return await tx.execute(
            f"""
            INSERT INTO projection_items ({_COLUMN_LIST}) VALUES ({_PLACEHOLDERS})
            ON CONFLICT (id) DO UPDATE SET {_UPSERT_SET}
            WHERE projection_items.updated_at <= excluded.updated_at
            """,
            *item_to_row(item),
        )

    async def apply_update(self, tx: Transaction, event: AuctionUpdated) -> int:
        return await tx.execute(
            """
            UPDATE projection_items
            SET make = $1, model = $2, year = $3, color = $4, mileage = $5, updated_at = $6
            WHERE id = $7 AND updated_at <= $6
            """,
            event.make, event.model, event.year, event.color, event.mileage,
            to_db_time(event.updated_at),
            event.id,
        )

    async def apply_finish(
        self,
        tx: Transaction,
        item_id: str,
        winner: Optional[str],
        sold_amount: Optional[int],
        status: str,
        finished_at: datetime,
    ) -> int:
        return await tx.execute(
            """
            UPDATE projection_items
            SET winner = $1, sold_amount = $2, status = $3, updated_at = $4
            WHERE id = $5 AND updated_at <= $4
            """,
            winner, sold_amount, status, to_db_time(finished_at), item_id,
        )

    async def raise_high_bid(self, tx: Transaction, item_id: str, amount: int) -> int:
        return await tx.execute(
            """
            UPDATE projection_items
            SET current_high_bid = $1
            WHERE id = $2 AND (current_high_bid IS NULL OR current_high_bid < $1)
            """,
            amount, item_id,
        )

    async def delete(self, tx: Transaction, item_id: str) -> int:
        """Delete the row and leave a tombstone so a late Created cannot restore it."""
        await tx.execute(
            """
            INSERT INTO projection_tombstones (id, deleted_at) VALUES ($1, $2)
            ON CONFLICT (id) DO NOTHING
            """,
            item_id, to_db_time(utcnow()),
        )
        return await tx.execute("DELETE FROM projection_items WHERE id = $1", item_id)

    async def is_deleted(self, item_id: str, tx: Optional[Transaction] = None) -> bool:
        executor: Executor = tx or self.db
        row = await executor.fetchrow("SELECT id FROM projection_tombstones WHERE id = $1", item_id)
        return row is not None

    async def search(self, params: SearchParams, now: Optional[datetime] = None) -> PagedResult:
        """
        Filtered, ordered, paged search.

        filter_by: finished (ended), endingSoon (ends within 6h), default live.
        order_by: make (make, model), new (newest first), default soonest end.
        """
        now = now or utcnow()
        clauses: List[str] = []
        args: List[Any] = []

        def arg(value: Any) -> str:
            args.append(value)
            return f"${len(args)}"

        if params.search_term:
            term = arg(f"%{params.search_term.lower()}%")
            clauses.append(f"(LOWER(make) LIKE {term} OR LOWER(model) LIKE {term} OR LOWER(color) LIKE {term})")

        if params.filter_by == "finished":
            clauses.append(f"auction_end < {arg(to_db_time(now))}")
        elif params.filter_by == "endingSoon":
            clauses.append(
                f"auction_end > {arg(to_db_time(now))} AND auction_end < {arg(to_db_time(now + ENDING_SOON_WINDOW))}"
            )
        else:
            clauses.append(f"auction_end > {arg(to_db_time(now))}")

        if params.seller:
            clauses.append(f"seller = {arg(params.seller)}")
        if params.winner:
            clauses.append(f"winner = {arg(params.winner)}")

        if params.order_by == "make":
            order = "make ASC, model ASC"
        elif params.order_by == "new":
            order = "created_at DESC"
        else:
            order = "auction_end ASC"

        where = " AND ".join(clauses)
        total = int(await self.db.fetchval(
            f"SELECT COUNT(*) AS n FROM projection_items WHERE {where}", *args
        ) or 0)

        limit = arg(params.page_size)
        offset = arg((params.page_number - 1) * params.page_size)
        rows = await self.db.fetch(
            f"""
            SELECT {_COLUMN_LIST} FROM projection_items
            WHERE {where}
            ORDER BY {order}, id
            LIMIT {limit} OFFSET {offset}
            """,
            *args,
        )
        return PagedResult.build([item_from_row(r) for r in rows], total, params.page_size)
