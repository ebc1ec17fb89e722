"""
Auction Event Contracts

Domain event taxonomy, payload contracts and the transport envelope.

Usage:
    from src.core.events import AuctionEventType, AuctionCreated, to_payload

    payload = to_payload(AuctionCreated(...))
    await on_aggregate_changed(tx, auction_id, AuctionEventType.CREATED.value, payload)
"""

from .taxonomy import (
    AuctionEventType,
    ALL_TOPICS,
    DEAD_LETTER_SUFFIX,
    topic_for,
    queue_for,
    dead_letter_topic,
    is_dead_letter_topic,
    validate_event_type,
)

from .models import (
    AuctionCreated,
    AuctionUpdated,
    AuctionDeleted,
    BidStatus,
    BidPlaced,
    AuctionFinished,
    CONTRACTS,
    MessageEnvelope,
    parse_payload,
    to_payload,
)


__all__ = [
    # Taxonomy
    "AuctionEventType",
    "ALL_TOPICS",
    "DEAD_LETTER_SUFFIX",
    "topic_for",
    "queue_for",
    "dead_letter_topic",
    "is_dead_letter_topic",
    "validate_event_type",
    # Models
    "AuctionCreated",
    "AuctionUpdated",
    "AuctionDeleted",
    "BidStatus",
    "BidPlaced",
    "AuctionFinished",
    "CONTRACTS",
    "MessageEnvelope",
    "parse_payload",
    "to_payload",
]
