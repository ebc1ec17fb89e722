"""
Transactional Event Publisher

Combines an aggregate mutation with its outbox append in a single
transaction: either both commit or neither does.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from ..database.adapter import DatabaseAdapter, Transaction
from ..errors import OutboxError
from ..events.taxonomy import AuctionEventType, validate_event_type
from .models import OutboxRecord
from .writer import OutboxWriter

_writer = OutboxWriter()


async def on_aggregate_changed(
    tx: Transaction,
    aggregate_id: str,
    event_type: Union[AuctionEventType, str],
    payload: Dict[str, Any],
    headers: Optional[Dict[str, Any]] = None,
) -> OutboxRecord:
    """
    Record that an aggregate changed.

    Called by mutation code inside the transaction that performs the
    change. Nothing is published here; the relay picks the record up
    after commit.
    """
    message_type = event_type.value if isinstance(event_type, AuctionEventType) else event_type
    if not validate_event_type(message_type):
        raise OutboxError(f"Unknown message type: {message_type}", {"aggregate_id": aggregate_id})
    return await _writer.append(tx, aggregate_id, message_type, payload, headers)


class TransactionalPublisher:
    """
    Publishes events transactionally with business operations.

    Usage:
        async with transactional_publish(db) as txn:
            await txn.tx.execute("INSERT INTO auctions ...")
            await txn.emit(auction_id, AuctionEventType.CREATED, payload)
        # Both commit together or both roll back
    """

    def __init__(self, tx: Transaction):
        self.tx = tx
        self._records: List[OutboxRecord] = []

    async def emit(
        self,
        aggregate_id: str,
        event_type: Union[AuctionEventType, str],
        payload: Dict[str, Any],
        headers: Optional[Dict[str, Any]] = None,
    ) -> OutboxRecord:
        """Emit an event (appends to the outbox in the current transaction)."""
        record = await on_aggregate_changed(self.tx, aggregate_id, event_type, payload, headers)
        self._records.append(record)
        return record

    @property
    def emitted_records(self) -> List[OutboxRecord]:
        """Records emitted in this transaction."""
        return self._records.copy()


@asynccontextmanager
async def transactional_publish(db: DatabaseAdapter) -> AsyncIterator[TransactionalPublisher]:
    """
    Open a transaction on `db` and yield a publisher bound to it.

    Usage:
        async with transactional_publish(db) as txn:
            await txn.tx.execute("DELETE FROM auctions WHERE id = $1", auction_id)
            await txn.emit(auction_id, "AuctionDeleted", {"id": auction_id})
    """
    async with db.transaction() as tx:
        yield TransactionalPublisher(tx)
