"""
Tests for transactional outbox writes.
"""

import pytest
from opentelemetry import trace

from src.core.errors import OutboxError
from src.core.events import AuctionEventType
from src.core.observability.tracing import context_from_headers, stamp_trace_headers
from src.core.outbox import (
    OutboxRecord,
    OutboxWriter,
    on_aggregate_changed,
    transactional_publish,
)


async def _outbox_rows(db):
    rows = await db.fetch("SELECT * FROM outbox ORDER BY seq")
    return [OutboxRecord.from_row(r) for r in rows]


class TestOutboxAtomicity:
    """A committed mutation has its record; a rolled-back one has none."""

    async def test_committed_change_has_record(self, auction_db):
        """A committed change leaves an unsent record."""
        async with auction_db.transaction() as tx:
            await tx.execute(
                "INSERT INTO inbox (consumer_id, message_id, processed_at) VALUES ($1, $2, $3)",
                "search", "m1", "2026-01-01T00:00:00.000000+00:00",
            )
            record = await on_aggregate_changed(tx, "a1", AuctionEventType.DELETED, {"id": "a1"})

        rows = await _outbox_rows(auction_db)
        assert [r.id for r in rows] == [record.id]
        assert rows[0].aggregate_id == "a1"
        assert rows[0].message_type == "AuctionDeleted"
        assert rows[0].payload == {"id": "a1"}
        assert not rows[0].is_sent

    async def test_rolled_back_change_has_no_record(self, auction_db):
        """A rolled back change leaves no record."""
        with pytest.raises(RuntimeError):
            async with auction_db.transaction() as tx:
                await tx.execute(
                    "INSERT INTO inbox (consumer_id, message_id, processed_at) VALUES ($1, $2, $3)",
                    "search", "m1", "2026-01-01T00:00:00.000000+00:00",
                )
                await on_aggregate_changed(tx, "a1", AuctionEventType.DELETED, {"id": "a1"})
                raise RuntimeError("business failure")

        assert await _outbox_rows(auction_db) == []
        assert await auction_db.fetchval("SELECT COUNT(*) FROM inbox") == 0

    async def test_append_requires_transaction(self, auction_db):
        """Appending outside a transaction raises OutboxError."""
        with pytest.raises(OutboxError):
            await OutboxWriter().append(auction_db, "a1", "AuctionDeleted", {"id": "a1"})

    async def test_unknown_event_type_rejected(self, auction_db):
        """Unknown message types are refused."""
        with pytest.raises(OutboxError):
            async with auction_db.transaction() as tx:
                await on_aggregate_changed(tx, "a1", "AuctionExploded", {})

        assert await _outbox_rows(auction_db) == []

    async def test_records_keep_enqueue_order(self, auction_db):
        """seq follows append order."""
        async with auction_db.transaction() as tx:
            for i in range(3):
                await on_aggregate_changed(tx, "a1", AuctionEventType.DELETED, {"id": "a1", "n": i})

        rows = await _outbox_rows(auction_db)
        assert [r.payload["n"] for r in rows] == [0, 1, 2]
        assert rows[0].seq < rows[1].seq < rows[2].seq

    async def test_headers_are_persisted(self, auction_db):
        """Headers round-trip through the outbox row."""
        async with auction_db.transaction() as tx:
            await on_aggregate_changed(
                tx, "a1", AuctionEventType.DELETED, {"id": "a1"}, headers={"compensated_from": "m0"}
            )

        rows = await _outbox_rows(auction_db)
        assert rows[0].headers["compensated_from"] == "m0"

    async def test_envelope_message_id_is_record_id(self, auction_db):
        """The envelope's message id is the record id."""
        async with auction_db.transaction() as tx:
            record = await on_aggregate_changed(tx, "a1", AuctionEventType.DELETED, {"id": "a1"})

        envelope = record.to_envelope()
        assert envelope.message_id == record.id
        assert envelope.aggregate_id == "a1"
        assert envelope.topic == "auction-deleted"


class TestTransactionalPublisher:
    """transactional_publish context manager."""

    async def test_emitted_records_tracked(self, auction_db):
        """The publisher remembers what it emitted."""
        async with transactional_publish(auction_db) as txn:
            await txn.emit("a1", AuctionEventType.DELETED, {"id": "a1"})
            await txn.emit("a2", "AuctionDeleted", {"id": "a2"})

        assert [r.aggregate_id for r in txn.emitted_records] == ["a1", "a2"]
        assert len(await _outbox_rows(auction_db)) == 2

    async def test_exception_discards_emits(self, auction_db):
        """An exception discards both the change and its records."""
        with pytest.raises(ValueError):
            async with transactional_publish(auction_db) as txn:
                await txn.emit("a1", AuctionEventType.DELETED, {"id": "a1"})
                raise ValueError("nope")

        assert await _outbox_rows(auction_db) == []


class TestTraceHeaders:
    """Trace context carried in outbox headers."""

    def test_existing_traceparent_is_kept(self):
        """A republished message stays on the trace of its first publish."""
        traceparent = "00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01"
        headers = stamp_trace_headers({"traceparent": traceparent, "correction_attempt": 1})

        assert headers["traceparent"] == traceparent
        assert headers["correction_attempt"] == 1

    def test_context_follows_headers(self):
        """The extracted context carries the publisher's trace id."""
        traceparent = "00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01"

        context = context_from_headers({"traceparent": traceparent, "correction_attempt": 1})

        span_context = trace.get_current_span(context).get_span_context()
        assert format(span_context.trace_id, "032x") == "0af7651916cd43dd8448eb211c80319c"
