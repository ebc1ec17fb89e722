"""
HTTP surface of the services, exercised in-process through httpx's
ASGI transport with the app lifespan running.
"""

from contextlib import asynccontextmanager

import httpx
import pytest

from src.api.auction_service.main import create_app as create_auction_app
from src.api.bidding_service.main import create_app as create_bidding_app
from src.api.notification_service.main import create_app as create_notification_app
from src.api.search_service.main import create_app as create_search_app
from src.core.bidding import BidValidationGateway
from src.core.config import CoreSettings
from src.core.errors import ProhibitedModelError
from src.core.events import AuctionEventType
from src.core.faults import FaultCompensationConsumer
from src.core.projection import ProjectionConsumer
from tests.helpers import auction_created, auction_finished, create_request, dead_lettered, envelope_for

SETTINGS = CoreSettings(outbox_processor_enabled=False)


@asynccontextmanager
async def serve(app):
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


def as_user(name):
    return {"X-User-Name": name}


@pytest.fixture
async def auction_api(auction_db):
    app = create_auction_app(db=auction_db, settings=SETTINGS, observability=False)
    async with serve(app) as client:
        yield client


@pytest.fixture
async def search_api(search_db):
    app = create_search_app(db=search_db, settings=SETTINGS, sync_on_startup=False, observability=False)
    async with serve(app) as client:
        yield client


@pytest.fixture
async def bidding_api(bidding_db, auction_db):
    app = create_bidding_app(
        db=bidding_db, lookup=BidValidationGateway(auction_db), settings=SETTINGS, observability=False
    )
    async with serve(app) as client:
        yield client


async def _create(client, user="bob", **overrides):
    body = create_request(**overrides).model_dump(mode="json")
    resp = await client.post("/api/auctions", json=body, headers=as_user(user))
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestAuctionEndpoints:
    """CRUD on the authority service."""

    async def test_create_and_get(self, auction_api):
        """A created auction is returned with its trace id header."""
        created = await _create(auction_api, model="Corvette")

        resp = await auction_api.get(f"/api/auctions/{created['id']}")

        assert resp.status_code == 200
        assert resp.json()["model"] == "Corvette"
        assert resp.json()["seller"] == "bob"
        assert resp.json()["status"] == "Live"
        assert resp.headers.get("X-Trace-ID")

    async def test_list_since(self, auction_api):
        """The date parameter limits the listing to newer changes."""
        created = await _create(auction_api)

        everything = await auction_api.get("/api/auctions")
        since = await auction_api.get("/api/auctions", params={"date": created["updated_at"]})

        assert [a["id"] for a in everything.json()] == [created["id"]]
        assert since.json() == []

    async def test_create_requires_user(self, auction_api):
        """Creating without X-User-Name is 401."""
        body = create_request().model_dump(mode="json")

        resp = await auction_api.post("/api/auctions", json=body)

        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"

    async def test_invalid_body(self, auction_api):
        """An incomplete body is a 400 VALIDATION_ERROR."""
        resp = await auction_api.post("/api/auctions", json={"make": "Ford"}, headers=as_user("bob"))

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_update_by_owner(self, auction_api):
        """The seller can update their auction."""
        created = await _create(auction_api)

        resp = await auction_api.put(
            f"/api/auctions/{created['id']}", json={"color": "Red"}, headers=as_user("bob")
        )

        assert resp.status_code == 200
        assert resp.json()["color"] == "Red"

    async def test_update_by_other_user_forbidden(self, auction_api):
        """Another user gets 403 FORBIDDEN."""
        created = await _create(auction_api)

        resp = await auction_api.put(
            f"/api/auctions/{created['id']}", json={"color": "Red"}, headers=as_user("mallory")
        )

        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "FORBIDDEN"

    async def test_missing_auction(self, auction_api):
        """An unknown id is 404 AUCTION_NOT_FOUND."""
        resp = await auction_api.get("/api/auctions/missing")

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "AUCTION_NOT_FOUND"

    async def test_delete(self, auction_api):
        """Deleting returns 204 and the auction is gone."""
        created = await _create(auction_api)

        resp = await auction_api.delete(f"/api/auctions/{created['id']}", headers=as_user("bob"))

        assert resp.status_code == 204
        assert (await auction_api.get(f"/api/auctions/{created['id']}")).status_code == 404


class TestRpcEndpoint:

    async def test_get_auction(self, auction_api):
        """The RPC endpoint returns the bid validation snapshot."""
        created = await _create(auction_api, reserve_price=500)

        resp = await auction_api.post("/api/rpc/get-auction", json={"auction_id": created["id"]})

        assert resp.status_code == 200
        assert resp.json()["reserve_price"] == 500
        assert resp.json()["current_high_bid"] is None

    async def test_not_found(self, auction_api):
        """The RPC endpoint returns 404 for an unknown auction."""
        resp = await auction_api.post("/api/rpc/get-auction", json={"auction_id": "missing"})

        assert resp.status_code == 404


class TestAdminEndpoints:
    """Outbox status and escalated-fault operations."""

    async def test_outbox_stats(self, auction_api):
        """Outbox stats count the pending record."""
        await _create(auction_api)

        resp = await auction_api.get("/api/admin/outbox/stats")

        assert resp.status_code == 200
        assert resp.json()["pending"] == 1
        assert resp.json()["sent"] == 0

    async def test_fault_listing_and_retry(self, auction_api, auction_db):
        """Escalated faults can be listed and retried once."""
        compensation = FaultCompensationConsumer(auction_db)
        original = envelope_for(AuctionEventType.FINISHED, auction_finished("a1", 100))
        await compensation.handle(dead_lettered(original, RuntimeError("boom"), queue="auction-auction-finished"))

        listing = await auction_api.get("/api/admin/faults", params={"state": "Escalated"})
        assert listing.status_code == 200
        assert listing.json()["total"] == 1
        fault = listing.json()["faults"][0]
        assert fault["exception_type"] == "RuntimeError"
        assert "original_message" not in fault

        stats = await auction_api.get("/api/admin/faults/stats")
        assert stats.json()["by_state"] == {"Escalated": 1}

        retry = await auction_api.post(f"/api/admin/faults/{fault['id']}/retry", headers=as_user("ops"))
        assert retry.status_code == 200
        assert retry.json()["status"] == "republished"

        again = await auction_api.post(f"/api/admin/faults/{fault['id']}/retry", headers=as_user("ops"))
        assert again.status_code == 404

    async def test_corrected_fault_visible(self, auction_api, auction_db):
        """Corrected faults are listed as Republished."""
        compensation = FaultCompensationConsumer(auction_db)
        original = envelope_for(AuctionEventType.CREATED, auction_created(model="Foo"))
        await compensation.handle(dead_lettered(original, ProhibitedModelError("Foo")))

        resp = await auction_api.get("/api/admin/faults")

        assert resp.json()["faults"][0]["state"] == "Republished"

    async def test_unknown_fault(self, auction_api):
        """Retrying an unknown fault is 404 FAULT_NOT_FOUND."""
        resp = await auction_api.get("/api/admin/faults/missing")

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "FAULT_NOT_FOUND"


class TestSearchEndpoints:

    async def test_search_and_get(self, search_api, search_db):
        """Projected items are searchable and fetchable."""
        consumer = ProjectionConsumer(search_db)
        created = auction_created(make="Audi", model="R8")
        await consumer.on_auction_created(envelope_for(AuctionEventType.CREATED, created))

        page = await search_api.get("/api/search", params={"searchTerm": "audi", "pageSize": 10})
        item = await search_api.get(f"/api/search/{created.id}")

        assert page.status_code == 200
        assert page.json()["total_count"] == 1
        assert page.json()["results"][0]["id"] == created.id
        assert item.json()["model"] == "R8"

    async def test_missing_item(self, search_api):
        """An unknown item is 404 ITEM_NOT_FOUND."""
        resp = await search_api.get("/api/search/missing")

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "ITEM_NOT_FOUND"

    async def test_page_size_bounds(self, search_api):
        """pageSize below 1 is a 400."""
        resp = await search_api.get("/api/search", params={"pageSize": 0})

        assert resp.status_code == 400


class TestBidEndpoints:

    async def test_place_and_list(self, bidding_api, auction_api):
        """A placed bid shows up in the auction's bid list."""
        auction = await _create(auction_api)

        placed = await bidding_api.post(
            "/api/bids", json={"auction_id": auction["id"], "amount": 25000}, headers=as_user("alice")
        )
        listing = await bidding_api.get(f"/api/bids/{auction['id']}")

        assert placed.status_code == 201
        assert placed.json()["bid_status"] == "Accepted"
        assert [b["amount"] for b in listing.json()] == [25000]

    async def test_seller_bid_rejected(self, bidding_api, auction_api):
        """The seller bidding on their own auction is 400 BID_REJECTED."""
        auction = await _create(auction_api)

        resp = await bidding_api.post(
            "/api/bids", json={"auction_id": auction["id"], "amount": 25000}, headers=as_user("bob")
        )

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "BID_REJECTED"

    async def test_unknown_auction(self, bidding_api):
        """Bidding on an unknown auction is 404."""
        resp = await bidding_api.post(
            "/api/bids", json={"auction_id": "missing", "amount": 100}, headers=as_user("alice")
        )

        assert resp.status_code == 404


class TestHealthEndpoints:

    async def test_ready(self, auction_api):
        """Readiness reports the store, and no relay when none runs."""
        resp = await auction_api.get("/health/ready")

        assert resp.status_code == 200
        assert resp.json()["checks"]["database"] == "healthy"
        assert "outbox_relay" not in resp.json()["checks"]

    async def test_health_names_service(self, search_api):
        """Health names the service."""
        resp = await search_api.get("/health")

        assert resp.json()["service"] == "Search Service"

    async def test_notification_stats(self, notify_db):
        """Notification stats report open streams."""
        app = create_notification_app(db=notify_db, settings=SETTINGS, observability=False)
        async with serve(app) as client:
            resp = await client.get("/api/notifications/stats")

        assert resp.json()["total_connections"] == 0
