"""
Tests for authority-side mutations and their outbox records.
"""

from datetime import timedelta

import pytest

from src.core.auctions import AuctionService, UpdateAuctionRequest
from src.core.errors import AuctionForbiddenError, AuctionNotFoundError
from src.core.outbox import OutboxRecord
from tests.helpers import create_request


async def _outbox(db):
    return [OutboxRecord.from_row(r) for r in await db.fetch("SELECT * FROM outbox ORDER BY seq")]


@pytest.fixture
def service(auction_db):
    return AuctionService(auction_db)


class TestCreate:

    async def test_create_writes_row_and_event(self, service, auction_db):
        """Creating an auction stores the row and its AuctionCreated record."""
        dto = await service.create_auction("bob", create_request())

        assert dto.seller == "bob"
        assert dto.status == "Live"
        assert dto.created_at == dto.updated_at

        records = await _outbox(auction_db)
        assert len(records) == 1
        assert records[0].message_type == "AuctionCreated"
        assert records[0].aggregate_id == dto.id
        assert records[0].payload["model"] == "GT"
        assert records[0].payload["reserve_price"] == 20000

    async def test_get_and_list(self, service):
        """Auctions can be fetched by id and listed, optionally since a date."""
        dto = await service.create_auction("bob", create_request(make="Audi"))
        await service.create_auction("bob", create_request(make="Zonda"))

        assert (await service.get_auction(dto.id)).make == "Audi"
        assert [a.make for a in await service.list_auctions()] == ["Audi", "Zonda"]
        assert await service.list_auctions(dto.updated_at + timedelta(days=1)) == []

    async def test_get_missing(self, service):
        """Fetching an unknown auction raises AuctionNotFoundError."""
        with pytest.raises(AuctionNotFoundError):
            await service.get_auction("missing")


class TestUpdate:

    async def test_owner_update_bumps_version(self, service, auction_db):
        """The seller's update advances updated_at and emits AuctionUpdated."""
        dto = await service.create_auction("bob", create_request())

        updated = await service.update_auction(dto.id, "bob", UpdateAuctionRequest(color="Red"))

        assert updated.color == "Red"
        assert updated.model == dto.model
        assert updated.updated_at > dto.updated_at

        records = await _outbox(auction_db)
        assert [r.message_type for r in records] == ["AuctionCreated", "AuctionUpdated"]
        assert records[1].payload["color"] == "Red"

    async def test_non_owner_forbidden(self, service, auction_db):
        """Only the seller may update."""
        dto = await service.create_auction("bob", create_request())

        with pytest.raises(AuctionForbiddenError):
            await service.update_auction(dto.id, "mallory", UpdateAuctionRequest(color="Red"))

        assert (await service.get_auction(dto.id)).color == "White"
        assert len(await _outbox(auction_db)) == 1

    async def test_missing(self, service):
        """Updating an unknown auction raises AuctionNotFoundError."""
        with pytest.raises(AuctionNotFoundError):
            await service.update_auction("missing", "bob", UpdateAuctionRequest(color="Red"))


class TestDelete:

    async def test_owner_delete(self, service, auction_db):
        """Deleting removes the row and emits AuctionDeleted."""
        dto = await service.create_auction("bob", create_request())

        await service.delete_auction(dto.id, "bob")

        with pytest.raises(AuctionNotFoundError):
            await service.get_auction(dto.id)
        records = await _outbox(auction_db)
        assert records[-1].message_type == "AuctionDeleted"
        assert records[-1].payload == {"id": dto.id}

    async def test_non_owner_forbidden(self, service):
        """Only the seller may delete."""
        dto = await service.create_auction("bob", create_request())

        with pytest.raises(AuctionForbiddenError):
            await service.delete_auction(dto.id, "mallory")
