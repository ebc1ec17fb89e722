"""
Consumer Registration

Each consumer declares an explicit message-type -> handler table. The
table is bound to the broker as one queue per message type, named
`<group>-<topic>`, so every queue has its own dead-letter topic.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..broker.base import MessageBroker, MessageHandler, RedeliveryPolicy
from ..events.models import MessageEnvelope
from ..events.taxonomy import queue_for, topic_for
from ..observability.metrics import record_counter, record_histogram

logger = logging.getLogger(__name__)


def instrument(queue: str, handler: MessageHandler) -> MessageHandler:
    """Wrap a handler with consume metrics."""

    async def wrapped(envelope: MessageEnvelope) -> None:
        started = time.perf_counter()
        try:
            await handler(envelope)
        finally:
            record_histogram(
                "consumer_handle_duration_seconds",
                time.perf_counter() - started,
                {"queue": queue},
            )
        record_counter("messages_consumed_total", attributes={"queue": queue})

    wrapped.__name__ = getattr(handler, "__name__", "handler")
    return wrapped


@dataclass
class ConsumerDefinition:
    """
    A consumer group and its handler table.

    Usage:
        definition = ConsumerDefinition("search", {
            "AuctionCreated": consumer.on_auction_created,
            "AuctionUpdated": consumer.on_auction_updated,
        })
        definition.bind(broker)
    """

    group: str
    handlers: Dict[str, MessageHandler] = field(default_factory=dict)
    prefetch: int = 16
    policy: Optional[RedeliveryPolicy] = None

    def register(self, message_type: str, handler: MessageHandler) -> "ConsumerDefinition":
        if message_type in self.handlers:
            raise ValueError(f"{self.group}: handler for {message_type} already registered")
        self.handlers[message_type] = handler
        return self

    def queues(self) -> Dict[str, str]:
        """Queue name per handled message type."""
        return {mt: queue_for(self.group, mt) for mt in self.handlers}

    def bind(self, broker: MessageBroker) -> List[str]:
        """Declare one queue per message type on the broker; returns the queue names."""
        bound = []
        for message_type, handler in self.handlers.items():
            queue = queue_for(self.group, message_type)
            broker.bind(
                queue,
                [topic_for(message_type)],
                instrument(queue, handler),
                prefetch=self.prefetch,
                policy=self.policy,
            )
            bound.append(queue)
        logger.info(f"Consumer group '{self.group}' bound {len(bound)} queue(s)")
        return bound
