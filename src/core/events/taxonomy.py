"""
Auction Event Taxonomy

Defines the domain message types and the deterministic broker names
derived from them.

Naming convention:
- message type: PascalCase contract name (AuctionCreated)
- topic: kebab-case of the message type (auction-created)
- queue: <consumer group>-<topic> (search-auction-created)
- dead-letter topic: <queue>-error (search-auction-created-error)
"""

import re
from enum import Enum
from typing import Dict


class AuctionEventType(str, Enum):
    """Domain events exchanged between the marketplace services."""
    CREATED = "AuctionCreated"
    UPDATED = "AuctionUpdated"
    DELETED = "AuctionDeleted"
    BID_PLACED = "BidPlaced"
    FINISHED = "AuctionFinished"


DEAD_LETTER_SUFFIX = "-error"

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def topic_for(message_type: str) -> str:
    """Topic name for a message type: AuctionCreated -> auction-created."""
    return _CAMEL_BOUNDARY.sub("-", message_type).lower()


def queue_for(consumer_group: str, message_type: str) -> str:
    """Durable queue name of a consumer group for a message type."""
    return f"{consumer_group}-{topic_for(message_type)}"


def dead_letter_topic(queue: str) -> str:
    """Dead-letter topic of a queue."""
    return f"{queue}{DEAD_LETTER_SUFFIX}"


def is_dead_letter_topic(topic: str) -> bool:
    return topic.endswith(DEAD_LETTER_SUFFIX)


ALL_TOPICS: Dict[str, str] = {e.value: topic_for(e.value) for e in AuctionEventType}


def validate_event_type(event_type: str) -> bool:
    """Check if event type is a known domain message type."""
    return event_type in ALL_TOPICS
