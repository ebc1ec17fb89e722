"""
Tests for notification fan-out to SSE subscribers.
"""

import asyncio

import pytest
from fastapi import HTTPException

from src.api.shared.sse import KEEP_ALIVE, LiveEvent, SSEManager, StreamLimits
from src.core.events import AuctionEventType
from src.core.notifications import NotificationFanout
from tests.helpers import auction_created, bid_placed, envelope_for


@pytest.fixture
def manager():
    return SSEManager()


@pytest.fixture
def fanout(notify_db, manager):
    return NotificationFanout(notify_db, manager)


class TestNotificationFanout:

    async def test_event_pushed_to_connections(self, fanout, manager):
        """A consumed event reaches a subscriber under its message id."""
        conn = await manager.connect(user_id="alice")
        created = auction_created()
        envelope = envelope_for(AuctionEventType.CREATED, created)

        await fanout.handle(envelope)

        event = conn.queue.get_nowait()
        assert event.id == envelope.message_id
        assert event.type == "AuctionCreated"
        assert event.data["id"] == created.id
        assert event.auction_id == created.id

    async def test_redelivery_pushed_once(self, fanout, manager):
        """The inbox keeps a redelivered message from being pushed twice."""
        conn = await manager.connect()
        envelope = envelope_for(AuctionEventType.BID_PLACED, bid_placed("a1", 100))

        await fanout.handle(envelope)
        await fanout.handle(envelope)

        assert conn.queue.qsize() == 1

    async def test_auction_filter(self, fanout, manager):
        """Subscribers watching one auction only see its events."""
        watching = await manager.connect(auction_id="a1")
        other = await manager.connect(auction_id="a2")
        everything = await manager.connect()

        await fanout.handle(envelope_for(AuctionEventType.BID_PLACED, bid_placed("a1", 100)))

        assert watching.queue.qsize() == 1
        assert other.queue.qsize() == 0
        assert everything.queue.qsize() == 1

    def test_handles_created_bids_and_finish(self, fanout):
        """Fan-out binds to Created, BidPlaced and Finished."""
        assert set(fanout.definition().queues()) == {"AuctionCreated", "BidPlaced", "AuctionFinished"}


class TestSSEManager:

    def test_encode(self):
        """Events are framed with id, event name and JSON data."""
        event = LiveEvent(id="m1", type="BidPlaced", data={"amount": 1})
        assert event.encode() == 'id: m1\nevent: BidPlaced\ndata: {"amount": 1}\n\n'

    async def test_disconnect(self, manager):
        """A disconnected subscriber no longer receives events."""
        conn = await manager.connect(user_id="alice")
        await manager.disconnect(conn)

        assert manager.connection_count == 0
        assert await manager.broadcast("BidPlaced", {}) == 0

    async def test_full_queue_drops(self):
        """A subscriber that falls behind misses events instead of blocking."""
        manager = SSEManager(StreamLimits(queue_size=1))
        conn = await manager.connect()

        assert await manager.broadcast("BidPlaced", {"amount": 1}) == 1
        assert await manager.broadcast("BidPlaced", {"amount": 2}) == 0

        assert conn.dropped == 1
        assert conn.queue.get_nowait().data == {"amount": 1}

    async def test_per_user_limit(self):
        """Opening more streams than allowed for one user is refused."""
        manager = SSEManager(StreamLimits(max_per_user=1))
        await manager.connect(user_id="alice")

        with pytest.raises(HTTPException) as exc:
            await manager.connect(user_id="alice")

        assert exc.value.status_code == 429
        await manager.connect(user_id="carol")
        assert manager.connection_count == 2

    async def test_stream_sends_retry_keep_alive_and_events(self):
        """Idle streams get keep-alives; closing the stream disconnects."""
        manager = SSEManager(StreamLimits(heartbeat_interval=0.01))
        conn = await manager.connect()
        stream = manager.stream(conn)

        assert await stream.__anext__() == "retry: 3000\n\n"
        assert await stream.__anext__() == KEEP_ALIVE

        await manager.broadcast("BidPlaced", {"amount": 5}, event_id="m2")
        assert await asyncio.wait_for(stream.__anext__(), timeout=1) == 'id: m2\nevent: BidPlaced\ndata: {"amount": 5}\n\n'

        await stream.aclose()
        assert manager.connection_count == 0
