"""
Broker Fabric

Message broker interface, per-message redelivery state machine and the
in-process reference broker.
"""

from .base import MessageBroker, MessageHandler, RedeliveryPolicy
from .retry import DeliveryState, InFlightMessage, deliver_with_retry
from .memory import InMemoryBroker

__all__ = [
    "MessageBroker",
    "MessageHandler",
    "RedeliveryPolicy",
    "DeliveryState",
    "InFlightMessage",
    "deliver_with_retry",
    "InMemoryBroker",
]
