"""
Outbox Relay

Background worker that polls the outbox and publishes unsent records to
the broker, in enqueue order per aggregate, marking each record sent only
after the broker confirms it.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..broker.base import MessageBroker
from ..database.adapter import DatabaseAdapter
from ..observability.metrics import record_counter, record_histogram
from ..observability.tracing import create_span
from ..timeutil import to_db_time, utcnow
from .lease import RelayLease
from .models import OutboxRecord

logger = logging.getLogger(__name__)


class OutboxRelay:
    """
    Publishes outbox records and marks them sent.

    Features:
    - Polls the outbox for unsent records, oldest first
    - Publishes each aggregate's records in enqueue order
    - Defers the rest of an aggregate when a publish fails; other
      aggregates keep going
    - Optional lease so only one instance publishes at a time

    Delivery is at-least-once: a crash between publish and mark-sent
    republishes the record with the same message id on the next tick.
    """

    def __init__(
        self,
        db: DatabaseAdapter,
        broker: MessageBroker,
        poll_interval: float = 10.0,
        batch_size: int = 100,
        lease: Optional[RelayLease] = None,
    ):
        self.db = db
        self.broker = broker
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.lease = lease
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._wakeup = asyncio.Event()
        self._published_total = 0
        self._failed_total = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Start the relay loop."""
        if self._running:
            return

        self._running = True
        self._wakeup.clear()
        self._task = asyncio.create_task(self._run())
        logger.info("OutboxRelay started")

    async def stop(self):
        """Stop the relay; a batch in progress is allowed to finish."""
        if not self._running:
            return
        self._running = False
        self._wakeup.set()
        if self._task:
            await self._task
            self._task = None
        if self.lease and self.lease.held:
            await self.lease.release()
        logger.info("OutboxRelay stopped")

    def notify(self):
        """Wake the loop early, e.g. right after a commit."""
        self._wakeup.set()

    async def _run(self):
        """Main processing loop."""
        while self._running:
            published = 0
            try:
                published = await self.run_once()
            except Exception as e:
                logger.error(f"OutboxRelay error: {e}", exc_info=True)

            if not self._running:
                break
            if published >= self.batch_size:
                # Backlog; poll again immediately
                continue
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()

    async def run_once(self) -> int:
        """
        Publish one batch of unsent records.

        Returns:
            Number of records published and marked sent
        """
        if self.lease and not await self.lease.acquire():
            return 0

        started = time.perf_counter()
        with create_span("outbox.relay_batch") as span:
            rows = await self.db.fetch(
                """
                SELECT seq, id, aggregate_id, message_type, payload, headers, enqueued_at, sent_at
                FROM outbox
                WHERE sent_at IS NULL
                ORDER BY seq ASC
                LIMIT $1
                """,
                self.batch_size,
            )
            if not rows:
                return 0

            groups: "OrderedDict[str, List[OutboxRecord]]" = OrderedDict()
            for row in rows:
                record = OutboxRecord.from_row(row)
                groups.setdefault(record.aggregate_id, []).append(record)

            published = 0
            for aggregate_id, records in groups.items():
                published += await self._publish_aggregate(aggregate_id, records)

            span.set_attribute("outbox.fetched", len(rows))
            span.set_attribute("outbox.published", published)

        record_histogram("outbox_relay_duration_seconds", time.perf_counter() - started)
        if published:
            logger.info(f"Relayed {published}/{len(rows)} outbox records")
        return published

    async def _publish_aggregate(self, aggregate_id: str, records: List[OutboxRecord]) -> int:
        """Publish one aggregate's records in order; stop at the first failure."""
        published = 0
        for record in records:
            try:
                await self.broker.publish(record.to_envelope())
            except Exception as e:
                self._failed_total += 1
                record_counter("outbox_publish_failures_total", attributes={"message_type": record.message_type})
                logger.warning(
                    f"Publish failed for outbox record {record.id} "
                    f"(aggregate {aggregate_id}); deferring {len(records) - published} record(s): {e}"
                )
                break

            await self.db.execute(
                "UPDATE outbox SET sent_at = $1 WHERE id = $2 AND sent_at IS NULL",
                to_db_time(utcnow()),
                record.id,
            )
            published += 1
            self._published_total += 1
            record_counter("outbox_published_total", attributes={"message_type": record.message_type})
            logger.debug(f"Published outbox record {record.id} ({record.message_type})")
        return published

    async def get_stats(self) -> Dict[str, Any]:
        """Get outbox statistics."""
        return {
            **await outbox_counts(self.db),
            "published_total": self._published_total,
            "publish_failures_total": self._failed_total,
            "running": self._running,
            "lease_held": self.lease.held if self.lease else None,
        }

    async def purge_sent(self, older_than_days: int = 7) -> int:
        """
        Delete records that were confirmed sent more than N days ago.

        Unsent records are never deleted.
        """
        cutoff = to_db_time(utcnow() - timedelta(days=older_than_days))
        count = await self.db.execute(
            "DELETE FROM outbox WHERE sent_at IS NOT NULL AND sent_at < $1",
            cutoff,
        )
        logger.info(f"Purged {count} sent outbox records older than {older_than_days} days")
        return count


async def outbox_counts(db: DatabaseAdapter) -> Dict[str, Any]:
    """Pending and sent counts of a store's outbox; needs no running relay."""
    row = await db.fetchrow(
        """
        SELECT
            SUM(CASE WHEN sent_at IS NULL THEN 1 ELSE 0 END) AS pending,
            SUM(CASE WHEN sent_at IS NOT NULL THEN 1 ELSE 0 END) AS sent,
            MIN(CASE WHEN sent_at IS NULL THEN enqueued_at END) AS oldest_pending
        FROM outbox
        """
    ) or {}
    return {
        "pending": int(row.get("pending") or 0),
        "sent": int(row.get("sent") or 0),
        "oldest_pending_at": row.get("oldest_pending"),
    }
