"""
Event Models

Pydantic contracts for the domain events and the transport envelope that
carries them through the outbox and the broker.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Type
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError

from ..errors import PayloadValidationError
from ..timeutil import utcnow
from .taxonomy import AuctionEventType, topic_for


class AuctionCreated(BaseModel):
    """Full snapshot of a newly created auction."""

    id: str
    reserve_price: int = 0
    seller: str
    winner: Optional[str] = None
    sold_amount: Optional[int] = None
    current_high_bid: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    auction_end: datetime
    status: str
    make: str
    model: str
    year: int
    color: str
    mileage: int
    image_url: str = ""


class AuctionUpdated(BaseModel):
    """Item fields after a seller edit; updated_at is the logical timestamp."""

    id: str
    make: str
    model: str
    year: int
    color: str
    mileage: int
    updated_at: datetime


class AuctionDeleted(BaseModel):
    id: str


class BidStatus(str, Enum):
    ACCEPTED = "Accepted"
    TOO_LOW = "TooLow"
    FINISHED = "Finished"


class BidPlaced(BaseModel):
    id: str
    auction_id: str
    bidder: str
    bid_time: datetime
    amount: int
    bid_status: str

    @property
    def is_accepted(self) -> bool:
        return self.bid_status == BidStatus.ACCEPTED.value


class AuctionFinished(BaseModel):
    """Outcome of an ended auction; finished_at is the logical timestamp."""

    item_sold: bool
    auction_id: str
    winner: Optional[str] = None
    seller: str
    amount: Optional[int] = None
    finished_at: datetime = Field(default_factory=utcnow)


CONTRACTS: Dict[str, Type[BaseModel]] = {
    AuctionEventType.CREATED.value: AuctionCreated,
    AuctionEventType.UPDATED.value: AuctionUpdated,
    AuctionEventType.DELETED.value: AuctionDeleted,
    AuctionEventType.BID_PLACED.value: BidPlaced,
    AuctionEventType.FINISHED.value: AuctionFinished,
}


class MessageEnvelope(BaseModel):
    """
    Transport envelope for one domain event.

    message_id is stable across redeliveries and relay republishes; it is
    the key consumers deduplicate on. Headers carry transport metadata,
    e.g. the fault_* fields stamped on dead-lettered copies.
    """

    message_id: str = Field(default_factory=lambda: str(uuid4()))
    message_type: str
    aggregate_id: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)
    headers: Dict[str, Any] = Field(default_factory=dict)
    sent_at: datetime = Field(default_factory=utcnow)

    @property
    def topic(self) -> str:
        return topic_for(self.message_type)

    def with_headers(self, **headers: Any) -> "MessageEnvelope":
        """Copy of this envelope with extra headers merged in."""
        merged = {**self.headers, **headers}
        return self.model_copy(update={"headers": merged}, deep=True)


def parse_payload(envelope: MessageEnvelope) -> BaseModel:
    """
    Validate an envelope's payload against its contract.

    Raises:
        PayloadValidationError: unknown message type or contract mismatch
    """
    contract = CONTRACTS.get(envelope.message_type)
    if contract is None:
        raise PayloadValidationError(envelope.message_type, "unknown message type")
    try:
        return contract.model_validate(envelope.payload)
    except ValidationError as e:
        raise PayloadValidationError(envelope.message_type, str(e)) from e


def to_payload(event: BaseModel) -> Dict[str, Any]:
    """JSON-safe payload dict for an event contract."""
    return event.model_dump(mode="json")
