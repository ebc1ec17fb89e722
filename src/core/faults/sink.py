"""
Fault Sink

Operational store of dead-lettered messages (`fault_records` in the
authority store) and the manual actions an operator can take on them.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..database.adapter import DatabaseAdapter, Transaction
from ..outbox.models import OutboxRecord
from ..observability.tracing import traced
from ..outbox.transactional import on_aggregate_changed
from ..timeutil import to_db_time, utcnow
from .models import FaultRecord, FaultState

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, message_id, source_queue, message_type, exception_type, exception_message, "
    "attempt_count, first_failed_at, original_message, state, recorded_at"
)


class FaultSink:
    """
    Records faults and supports manual intervention.

    Responsibilities:
    - Record corrected and escalated faults
    - Query fault records
    - Republish escalated messages after a manual fix
    - Purge old records
    """

    def __init__(self, db: DatabaseAdapter):
        self.db = db

    async def record(self, tx: Transaction, fault: FaultRecord) -> None:
        await tx.execute(
            f"""
            INSERT INTO fault_records ({_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            """,
            fault.id,
            fault.message_id,
            fault.source_queue,
            fault.message_type,
            fault.exception_type,
            fault.exception_message,
            fault.attempt_count,
            to_db_time(fault.first_failed_at) if fault.first_failed_at else None,
            fault.original_message,
            fault.state.value,
            to_db_time(fault.recorded_at),
        )

    async def list(
        self,
        state: Optional[FaultState] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[FaultRecord]:
        """Fault records, newest first."""
        if state:
            rows = await self.db.fetch(
                f"""
                SELECT {_COLUMNS} FROM fault_records
                WHERE state = $1
                ORDER BY recorded_at DESC
                LIMIT $2 OFFSET $3
                """,
                state.value, limit, offset
            )
        else:
            rows = await self.db.fetch(
                f"""
                SELECT {_COLUMNS} FROM fault_records
                ORDER BY recorded_at DESC
                LIMIT $1 OFFSET $2
                """,
                limit, offset
            )
        return [FaultRecord.from_row(row) for row in rows]

    async def get(self, fault_id: str) -> Optional[FaultRecord]:
        row = await self.db.fetchrow(f"SELECT {_COLUMNS} FROM fault_records WHERE id = $1", fault_id)
        return FaultRecord.from_row(row) if row else None

    async def count(self, state: Optional[FaultState] = None) -> int:
        if state:
            result = await self.db.fetchval(
                "SELECT COUNT(*) AS count FROM fault_records WHERE state = $1", state.value
            )
        else:
            result = await self.db.fetchval("SELECT COUNT(*) AS count FROM fault_records")
        return int(result or 0)

    @traced("faults.retry")
    async def retry(self, fault_id: str, operator: Optional[str] = None) -> Optional[OutboxRecord]:
        """
        Re-append an escalated message to the outbox and mark it Republished.

        Returns:
            The new outbox record, or None if no escalated fault has that id
        """
        async with self.db.transaction() as tx:
            row = await tx.fetchrow(
                f"SELECT {_COLUMNS} FROM fault_records WHERE id = $1 AND state = $2",
                fault_id, FaultState.ESCALATED.value
            )
            if row is None:
                return None

            fault = FaultRecord.from_row(row)
            envelope = fault.original_envelope()
            record = await on_aggregate_changed(
                tx,
                envelope.aggregate_id,
                envelope.message_type,
                envelope.payload,
                headers={"retried_from_fault": fault.id},
            )
            await tx.execute(
                "UPDATE fault_records SET state = $1 WHERE id = $2",
                FaultState.REPUBLISHED.value, fault_id
            )

        logger.info(f"Fault {fault_id} republished as {record.id} by {operator}")
        return record

    async def purge_old(self, days: int = 30, operator: Optional[str] = None) -> int:
        """Delete fault records older than N days."""
        count = await self.db.execute(
            "DELETE FROM fault_records WHERE recorded_at < $1",
            to_db_time(utcnow() - timedelta(days=days))
        )
        logger.info(f"Fault sink purged {count} records older than {days} days by {operator}")
        return count

    async def get_stats(self) -> Dict[str, Any]:
        by_state = await self.db.fetch(
            "SELECT state, COUNT(*) AS count FROM fault_records GROUP BY state"
        )
        by_type = await self.db.fetch(
            """
            SELECT exception_type, COUNT(*) AS count
            FROM fault_records
            WHERE state = $1
            GROUP BY exception_type
            ORDER BY count DESC
            """,
            FaultState.ESCALATED.value
        )
        oldest = await self.db.fetchval(
            "SELECT MIN(recorded_at) AS oldest FROM fault_records WHERE state = $1",
            FaultState.ESCALATED.value
        )
        return {
            "by_state": {row["state"]: int(row["count"]) for row in by_state},
            "escalated_by_exception": {row["exception_type"]: int(row["count"]) for row in by_type},
            "oldest_escalated": oldest,
        }
