"""
Outbox Writer

Appends messages to the outbox table inside the caller's transaction, so
the aggregate change and its message commit or roll back together.
"""

import json
import logging
from typing import Any, Dict, Optional

from ..database.adapter import Transaction
from ..errors import OutboxError
from ..observability.metrics import record_counter
from ..observability.tracing import stamp_trace_headers
from ..timeutil import to_db_time
from .models import OutboxRecord

logger = logging.getLogger(__name__)


class OutboxWriter:
    """
    Writes messages to the outbox for reliable delivery.

    Usage:
        async with db.transaction() as tx:
            await tx.execute("UPDATE auctions SET ...")
            await OutboxWriter().append(
                tx,
                aggregate_id=auction_id,
                message_type="AuctionUpdated",
                payload={...},
            )
        # Transaction commits, outbox record is persisted
    """

    async def append(
        self,
        tx: Transaction,
        aggregate_id: str,
        message_type: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, Any]] = None,
    ) -> OutboxRecord:
        """
        Append a message to the outbox.

        Args:
            tx: Open transaction of the aggregate's store
            aggregate_id: ID of the aggregate the message is about
            message_type: Message type from the taxonomy (e.g. "AuctionCreated")
            payload: JSON-serializable message body
            headers: Optional transport headers

        Returns:
            The created OutboxRecord

        Raises:
            OutboxError: if called without an open transaction
        """
        if not isinstance(tx, Transaction):
            raise OutboxError(
                "Outbox append requires an open transaction",
                {"aggregate_id": aggregate_id, "message_type": message_type},
            )

        record = OutboxRecord(
            aggregate_id=aggregate_id,
            message_type=message_type,
            payload=payload,
            headers=stamp_trace_headers(dict(headers or {})),
        )

        await tx.execute(
            """
            INSERT INTO outbox (id, aggregate_id, message_type, payload, headers, enqueued_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            record.id,
            record.aggregate_id,
            record.message_type,
            json.dumps(record.payload),
            json.dumps(record.headers),
            to_db_time(record.enqueued_at),
        )

        record_counter("outbox_appended_total", attributes={"message_type": message_type})
        logger.debug(
            "Appended to outbox: id=%s type=%s aggregate=%s",
            record.id, record.message_type, record.aggregate_id
        )

        return record
