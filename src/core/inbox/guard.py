"""
Inbox Guard

Consumer-side dedup ledger. A message is claimed for a consumer by
inserting (consumer_id, message_id) in the same transaction that applies
its effect, so the claim and the effect commit or roll back together.
"""

import logging
from typing import Union

from ..database.adapter import DatabaseAdapter, Transaction
from ..observability.metrics import record_counter
from ..timeutil import to_db_time, utcnow

logger = logging.getLogger(__name__)


class InboxGuard:
    """
    Guards against duplicate message processing.

    Usage:
        async with db.transaction() as tx:
            async with InboxGuard(tx, envelope.message_id, "search") as guard:
                if guard.should_process:
                    await apply(tx, event)
                else:
                    logger.info("Message already processed, skipping")

    If processing raises, the surrounding transaction rolls back and the
    claim goes with it, so a redelivery is processed again.
    """

    def __init__(self, tx: Transaction, message_id: str, consumer_id: str):
        self.tx = tx
        self.message_id = message_id
        self.consumer_id = consumer_id
        self.should_process = False

    async def __aenter__(self):
        self.should_process = await mark_processed(self.tx, self.message_id, self.consumer_id)
        if self.should_process:
            logger.debug(
                f"InboxGuard: message {self.message_id} claimed by {self.consumer_id}"
            )
        else:
            record_counter("inbox_duplicates_total", attributes={"consumer_id": self.consumer_id})
            logger.info(
                f"InboxGuard: message {self.message_id} already processed by {self.consumer_id}"
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


async def is_processed(
    db: Union[DatabaseAdapter, Transaction], message_id: str, consumer_id: str
) -> bool:
    """
    Check if a message has been processed by a consumer.

    Returns:
        True if already processed, False otherwise
    """
    result = await db.fetchrow(
        """
        SELECT 1 AS hit FROM inbox
        WHERE consumer_id = $1 AND message_id = $2
        """,
        consumer_id,
        message_id
    )

    return result is not None


async def mark_processed(
    db: Union[DatabaseAdapter, Transaction], message_id: str, consumer_id: str
) -> bool:
    """
    Claim a message for a consumer.

    Returns:
        True if claimed now, False if it was already processed
    """
    inserted = await db.execute(
        """
        INSERT INTO inbox (consumer_id, message_id, processed_at)
        VALUES ($1, $2, $3)
        ON CONFLICT (consumer_id, message_id) DO NOTHING
        """,
        consumer_id,
        message_id,
        to_db_time(utcnow())
    )
    return inserted == 1
