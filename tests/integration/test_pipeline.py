"""
End-to-end consistency flows through the runner: authority write,
outbox relay, broker, consumers, dead-lettering and compensation.
"""

import asyncio

import pytest

from src.api.shared.sse import SSEManager
from src.core.auctions import AuctionRepository, AuctionService, UpdateAuctionRequest
from src.core.bidding import BidPlacementService, BidStatus, BidValidationGateway
from src.core.broker import InMemoryBroker
from src.core.config import CoreSettings
from src.core.events import AuctionEventType
from src.core.faults import FaultSink, FaultState
from src.core.outbox import outbox_counts
from src.core.projection import ProjectionStore
from src.workers.consistency_runner import ConsistencyRunner
from tests.helpers import auction_finished, create_request, envelope_for


@pytest.fixture
async def runner(auction_db, search_db, bidding_db, notify_db, recording_sleep):
    settings = CoreSettings(outbox_processor_enabled=False)
    runner = ConsistencyRunner(
        settings=settings,
        stores={"auction": auction_db, "search": search_db, "bidding": bidding_db, "notify": notify_db},
        broker=InMemoryBroker(sleep=recording_sleep),
        broadcaster=SSEManager(),
    )
    await runner.setup()
    await runner.start()
    yield runner
    await runner.stop()


class TestAuctionPropagation:
    """Authority changes reach the search projection."""

    async def test_created_auction_is_projected(self, runner, auction_db, search_db):
        """A created auction reaches the projection and its record is sent."""
        projection = ProjectionStore(search_db)
        before = await projection.count()

        dto = await AuctionService(auction_db).create_auction("bob", create_request(reserve_price=20000))
        await runner.settle(timeout=10)

        assert await projection.count() == before + 1
        item = await projection.get(dto.id)
        assert item.reserve_price == 20000
        assert item.seller == "bob"
        counts = await outbox_counts(auction_db)
        assert counts["pending"] == 0
        assert counts["sent"] == 1

    async def test_update_and_delete_follow(self, runner, auction_db, search_db):
        """Updates and deletes reach the projection."""
        service = AuctionService(auction_db)
        projection = ProjectionStore(search_db)

        dto = await service.create_auction("bob", create_request())
        await runner.settle(timeout=10)
        await service.update_auction(dto.id, "bob", UpdateAuctionRequest(color="Red"))
        await runner.settle(timeout=10)
        assert (await projection.get(dto.id)).color == "Red"

        await service.delete_auction(dto.id, "bob")
        await runner.settle(timeout=10)
        assert await projection.get(dto.id) is None

    async def test_broker_outage_defers_publish(self, runner, auction_db, search_db):
        """Records wait in the outbox until the broker is back."""
        runner.broker.set_available(False)
        dto = await AuctionService(auction_db).create_auction("bob", create_request())

        await runner.settle(timeout=10)
        assert (await outbox_counts(auction_db))["pending"] == 1
        assert await ProjectionStore(search_db).get(dto.id) is None

        runner.broker.set_available(True)
        await runner.settle(timeout=10)
        assert await ProjectionStore(search_db).get(dto.id) is not None


class TestCompensation:
    """Dead-lettered business-rule failures are corrected and republished."""

    async def test_prohibited_model_corrected(self, runner, auction_db, search_db, recording_sleep):
        """A prohibited model is dead-lettered, corrected and projected."""
        dto = await AuctionService(auction_db).create_auction("bob", create_request(model="Foo"))

        await runner.settle(timeout=10)

        item = await ProjectionStore(search_db).get(dto.id)
        assert item is not None
        assert item.model == "FooBar"

        faults = await FaultSink(auction_db).list()
        assert [f.state for f in faults] == [FaultState.REPUBLISHED]
        assert faults[0].source_queue == "search-auction-created"
        assert faults[0].attempt_count == 5
        assert recording_sleep.calls.count(5.0) >= 4

        # The authority row itself is not rewritten
        assert (await AuctionRepository(auction_db).get(dto.id)).item.model == "Foo"

    async def test_negative_mileage_corrected(self, runner, auction_db, search_db):
        """Negative mileage is projected as 0 after correction."""
        dto = await AuctionService(auction_db).create_auction("bob", create_request(mileage=-10))

        await runner.settle(timeout=10)

        assert (await ProjectionStore(search_db).get(dto.id)).mileage == 0

    async def test_correction_after_delete_does_not_restore(self, runner, auction_db, search_db):
        """The corrected Created lands after the Deleted and is dropped."""
        service = AuctionService(auction_db)
        dto = await service.create_auction("bob", create_request(model="Foo"))
        await service.delete_auction(dto.id, "bob")

        await runner.settle(timeout=10)

        projection = ProjectionStore(search_db)
        assert await projection.get(dto.id) is None
        assert await projection.is_deleted(dto.id)
        faults = await FaultSink(auction_db).list()
        assert [f.state for f in faults] == [FaultState.REPUBLISHED]

    async def test_unfixable_failure_escalated(self, runner, auction_db):
        """A finish for an unknown auction is escalated from both queues."""
        # Finish for an auction the authority never had
        envelope = envelope_for(AuctionEventType.FINISHED, auction_finished("ghost", 100))

        await runner.broker.publish(envelope)
        await runner.broker.drain(timeout=10)

        escalated = await FaultSink(auction_db).list(state=FaultState.ESCALATED)
        assert {f.source_queue for f in escalated} == {"auction-auction-finished", "search-auction-finished"}
        assert all(f.message_id == envelope.message_id for f in escalated)


class TestBidding:
    """Bids flow back into the authority and the projection."""

    async def test_high_bid_reconciled(self, runner, auction_db, search_db, bidding_db):
        """The accepted high bid reaches the authority and the projection."""
        dto = await AuctionService(auction_db).create_auction("bob", create_request(reserve_price=20000))
        await runner.settle(timeout=10)

        bids = BidPlacementService(bidding_db, BidValidationGateway(auction_db))
        first = await bids.place_bid(dto.id, "alice", 25000)
        second = await bids.place_bid(dto.id, "carol", 21000)
        await runner.settle(timeout=10)

        assert first.bid_status == BidStatus.ACCEPTED
        assert second.bid_status == BidStatus.TOO_LOW
        assert (await AuctionRepository(auction_db).get(dto.id)).current_high_bid == 25000
        assert (await ProjectionStore(search_db).get(dto.id)).current_high_bid == 25000

    async def test_finish_reconciled(self, runner, auction_db, search_db):
        """A finish updates the authority and the projection."""
        dto = await AuctionService(auction_db).create_auction("bob", create_request(reserve_price=20000))
        await runner.settle(timeout=10)

        await runner.broker.publish(envelope_for(AuctionEventType.FINISHED, auction_finished(dto.id, 25000)))
        await runner.broker.drain(timeout=10)

        authority = await AuctionRepository(auction_db).get(dto.id)
        assert authority.status.value == "Finished"
        assert authority.winner == "alice"
        assert (await ProjectionStore(search_db).get(dto.id)).status == "Finished"

    async def test_notifications_pushed(self, runner, auction_db):
        """Subscribers receive the AuctionCreated push."""
        conn = await runner.broadcaster.connect(user_id="alice")

        dto = await AuctionService(auction_db).create_auction("bob", create_request())
        await runner.settle(timeout=10)

        event = conn.queue.get_nowait()
        assert event.type == "AuctionCreated"
        assert event.data["id"] == dto.id


class TestRunnerHealth:

    async def test_health_check(self, runner):
        """Health reports stopped relays as unhealthy."""
        health = await runner.health_check()

        assert health["relays"] == {"auction": False, "bidding": False}
        assert health["queues"] > 0
        assert health["status"] == "unhealthy"

    async def test_run_until_shutdown_requested(self, auction_db, search_db, bidding_db, notify_db):
        """run returns once shutdown is requested."""
        runner = ConsistencyRunner(
            settings=CoreSettings(outbox_processor_enabled=False),
            stores={"auction": auction_db, "search": search_db, "bidding": bidding_db, "notify": notify_db},
        )
        task = asyncio.create_task(runner.run())
        while not runner.broker.is_running:
            await asyncio.sleep(0.01)

        runner.request_shutdown()
        await asyncio.wait_for(task, timeout=5)

        assert not runner.broker.is_running
        assert auction_db.is_connected
