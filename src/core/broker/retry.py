"""
Per-message Delivery State Machine

    Pending -> InFlight -> Acknowledged
                        -> RetryScheduled -> InFlight -> ...
                        -> DeadLettered

A message is attempted at most `policy.max_attempts` times with a fixed
interval between attempts. The last failure moves it to DeadLettered,
after which it is published verbatim to the queue's dead-letter topic
with fault headers describing the failure.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from ..errors import classify_exception
from ..events.models import MessageEnvelope
from ..observability.metrics import record_counter
from ..timeutil import to_db_time, utcnow
from .base import MessageHandler, RedeliveryPolicy

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class DeliveryState(str, Enum):
    PENDING = "Pending"
    IN_FLIGHT = "InFlight"
    ACKNOWLEDGED = "Acknowledged"
    RETRY_SCHEDULED = "RetryScheduled"
    DEAD_LETTERED = "DeadLettered"


_TRANSITIONS = {
    DeliveryState.PENDING: {DeliveryState.IN_FLIGHT},
    DeliveryState.IN_FLIGHT: {
        DeliveryState.ACKNOWLEDGED,
        DeliveryState.RETRY_SCHEDULED,
        DeliveryState.DEAD_LETTERED,
    },
    DeliveryState.RETRY_SCHEDULED: {DeliveryState.IN_FLIGHT},
    DeliveryState.ACKNOWLEDGED: set(),
    DeliveryState.DEAD_LETTERED: set(),
}


@dataclass
class InFlightMessage:
    """Delivery bookkeeping for one message on one queue."""

    envelope: MessageEnvelope
    queue: str
    policy: RedeliveryPolicy = field(default_factory=RedeliveryPolicy)
    state: DeliveryState = DeliveryState.PENDING
    attempts: int = 0
    first_failed_at: Optional[datetime] = None
    last_error: Optional[Exception] = None
    history: List[DeliveryState] = field(default_factory=lambda: [DeliveryState.PENDING])

    @property
    def is_terminal(self) -> bool:
        return self.state in (DeliveryState.ACKNOWLEDGED, DeliveryState.DEAD_LETTERED)

    def _move(self, target: DeliveryState):
        if target not in _TRANSITIONS[self.state]:
            raise ValueError(f"Invalid delivery transition {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    def begin_attempt(self):
        self._move(DeliveryState.IN_FLIGHT)
        self.attempts += 1

    def acknowledge(self):
        self._move(DeliveryState.ACKNOWLEDGED)

    def fail(self, exc: Exception) -> DeliveryState:
        """Record a failed attempt; returns RetryScheduled or DeadLettered."""
        self.last_error = exc
        if self.first_failed_at is None:
            self.first_failed_at = utcnow()
        if self.attempts >= self.policy.max_attempts:
            self._move(DeliveryState.DEAD_LETTERED)
        else:
            self._move(DeliveryState.RETRY_SCHEDULED)
        return self.state

    def dead_letter_envelope(self) -> MessageEnvelope:
        """The original envelope, unchanged, with fault headers added."""
        exc = self.last_error
        return self.envelope.with_headers(
            fault_exception_type=type(exc).__name__ if exc else "",
            fault_exception_message=str(exc) if exc else "",
            fault_attempt_count=self.attempts,
            fault_first_failed_at=to_db_time(self.first_failed_at) if self.first_failed_at else None,
            fault_source_queue=self.queue,
            fault_category=classify_exception(exc).value if exc else "",
        )


async def deliver_with_retry(
    message: InFlightMessage,
    handler: MessageHandler,
    sleep: SleepFunc = asyncio.sleep,
) -> DeliveryState:
    """
    Run the handler until it succeeds or the policy is exhausted.

    Returns:
        ACKNOWLEDGED or DEAD_LETTERED
    """
    while True:
        message.begin_attempt()
        try:
            await handler(message.envelope)
        except Exception as e:
            state = message.fail(e)
            if state == DeliveryState.DEAD_LETTERED:
                logger.error(
                    f"Message {message.envelope.message_id} on {message.queue} failed "
                    f"{message.attempts} attempt(s); dead-lettering: {type(e).__name__}: {e}"
                )
                return state
            record_counter("messages_redelivered_total", attributes={"queue": message.queue})
            logger.warning(
                f"Message {message.envelope.message_id} on {message.queue} failed "
                f"attempt {message.attempts}/{message.policy.max_attempts}, "
                f"retrying in {message.policy.interval}s: {type(e).__name__}: {e}"
            )
            await sleep(message.policy.interval)
        else:
            message.acknowledge()
            return DeliveryState.ACKNOWLEDGED
