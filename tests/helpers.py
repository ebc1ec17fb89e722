"""Builders for requests, events and envelopes used across tests."""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from uuid import uuid4

from src.core.auctions import CreateAuctionRequest
from src.core.broker import InFlightMessage, RedeliveryPolicy
from src.core.events import (
    AuctionCreated,
    AuctionEventType,
    AuctionFinished,
    AuctionUpdated,
    BidPlaced,
    BidStatus,
    MessageEnvelope,
    to_payload,
)
from src.core.timeutil import utcnow


def create_request(**overrides: Any) -> CreateAuctionRequest:
    data: Dict[str, Any] = {
        "make": "Ford",
        "model": "GT",
        "year": 2020,
        "color": "White",
        "mileage": 50000,
        "image_url": "https://cdn.example.com/ford-gt.jpg",
        "reserve_price": 20000,
        "auction_end": utcnow() + timedelta(days=10),
    }
    data.update(overrides)
    return CreateAuctionRequest(**data)


def auction_created(auction_id: Optional[str] = None, **overrides: Any) -> AuctionCreated:
    now = utcnow()
    data: Dict[str, Any] = {
        "id": auction_id or str(uuid4()),
        "reserve_price": 20000,
        "seller": "bob",
        "created_at": now,
        "updated_at": now,
        "auction_end": now + timedelta(days=10),
        "status": "Live",
        "make": "Ford",
        "model": "GT",
        "year": 2020,
        "color": "White",
        "mileage": 50000,
    }
    data.update(overrides)
    return AuctionCreated(**data)


def auction_updated(auction_id: str, updated_at: datetime, **overrides: Any) -> AuctionUpdated:
    data: Dict[str, Any] = {
        "id": auction_id,
        "make": "Ford",
        "model": "GT",
        "year": 2021,
        "color": "Blue",
        "mileage": 60000,
        "updated_at": updated_at,
    }
    data.update(overrides)
    return AuctionUpdated(**data)


def bid_placed(auction_id: str, amount: int, status: BidStatus = BidStatus.ACCEPTED, bidder: str = "alice") -> BidPlaced:
    return BidPlaced(
        id=str(uuid4()),
        auction_id=auction_id,
        bidder=bidder,
        bid_time=utcnow(),
        amount=amount,
        bid_status=status.value,
    )


def auction_finished(auction_id: str, amount: Optional[int], winner: Optional[str] = "alice", **overrides: Any) -> AuctionFinished:
    data: Dict[str, Any] = {
        "item_sold": amount is not None,
        "auction_id": auction_id,
        "winner": winner if amount is not None else None,
        "seller": "bob",
        "amount": amount,
    }
    data.update(overrides)
    return AuctionFinished(**data)


def envelope_for(
    event_type: AuctionEventType,
    event,
    aggregate_id: Optional[str] = None,
    message_id: Optional[str] = None,
    headers: Optional[Dict[str, Any]] = None,
) -> MessageEnvelope:
    payload = to_payload(event)
    return MessageEnvelope(
        message_id=message_id or str(uuid4()),
        message_type=event_type.value,
        aggregate_id=aggregate_id or payload.get("id") or payload.get("auction_id", ""),
        payload=payload,
        headers=headers or {},
    )


def dead_lettered(envelope: MessageEnvelope, exc: Exception, queue: str = "search-auction-created", attempts: int = 5) -> MessageEnvelope:
    """The envelope as the broker dead-letters it after `attempts` failures."""
    message = InFlightMessage(envelope=envelope, queue=queue, policy=RedeliveryPolicy(max_attempts=attempts))
    for _ in range(attempts):
        message.begin_attempt()
        message.fail(exc)
    return message.dead_letter_envelope()
