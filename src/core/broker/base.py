"""
Broker Fabric Interface

Topic/queue abstraction the relay publishes to and consumers bind to.
Queues are durable per consumer group and bound to one or more topics;
each queue delivers with a bounded redelivery policy and moves exhausted
messages to its dead-letter topic.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from ..events.models import MessageEnvelope

MessageHandler = Callable[[MessageEnvelope], Awaitable[None]]


@dataclass(frozen=True)
class RedeliveryPolicy:
    """Fixed-interval bounded redelivery."""

    max_attempts: int = 5
    interval: float = 5.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must not be negative")


class MessageBroker(ABC):
    """Abstract message broker."""

    @abstractmethod
    async def publish(self, envelope: MessageEnvelope, topic: Optional[str] = None) -> None:
        """
        Publish an envelope to its topic (or an explicit one).

        Returns once the broker has accepted the message.

        Raises:
            BrokerUnavailableError: the broker could not accept the message
        """

    @abstractmethod
    def bind(
        self,
        queue: str,
        topics: List[str],
        handler: MessageHandler,
        prefetch: int = 16,
        policy: Optional[RedeliveryPolicy] = None,
    ) -> None:
        """Declare a queue bound to topics and attach its handler."""

    @abstractmethod
    async def start(self) -> None:
        """Start delivering to bound handlers."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop delivering; handlers in progress are allowed to finish."""
