"""
Tests for the broker fabric: delivery state machine, bounded redelivery
and dead-lettering.
"""

import asyncio

import pytest

from src.core.broker import (
    DeliveryState,
    InFlightMessage,
    InMemoryBroker,
    RedeliveryPolicy,
    deliver_with_retry,
)
from src.core.errors import BrokerUnavailableError, ProhibitedModelError
from src.core.events import MessageEnvelope


def _envelope(**kwargs) -> MessageEnvelope:
    return MessageEnvelope(message_type="AuctionDeleted", aggregate_id="a1", payload={"id": "a1"}, **kwargs)


class TestDeliveryStateMachine:
    """InFlightMessage transitions."""

    def test_success_path(self):
        """Pending, InFlight, Acknowledged."""
        message = InFlightMessage(envelope=_envelope(), queue="q")
        message.begin_attempt()
        message.acknowledge()

        assert message.state == DeliveryState.ACKNOWLEDGED
        assert message.history == [DeliveryState.PENDING, DeliveryState.IN_FLIGHT, DeliveryState.ACKNOWLEDGED]
        assert message.is_terminal

    def test_retry_then_dead_letter(self):
        """Failures schedule retries until the last one dead-letters."""
        message = InFlightMessage(envelope=_envelope(), queue="q", policy=RedeliveryPolicy(max_attempts=2))

        message.begin_attempt()
        assert message.fail(RuntimeError("1")) == DeliveryState.RETRY_SCHEDULED
        message.begin_attempt()
        assert message.fail(RuntimeError("2")) == DeliveryState.DEAD_LETTERED
        assert message.attempts == 2

    def test_invalid_transition_rejected(self):
        """Acknowledging a message that is not in flight raises ValueError."""
        message = InFlightMessage(envelope=_envelope(), queue="q")
        with pytest.raises(ValueError):
            message.acknowledge()

    def test_terminal_state_is_final(self):
        """An acknowledged message cannot start another attempt."""
        message = InFlightMessage(envelope=_envelope(), queue="q")
        message.begin_attempt()
        message.acknowledge()
        with pytest.raises(ValueError):
            message.begin_attempt()

    def test_dead_letter_envelope_carries_fault_headers(self):
        """Dead letters keep the message id and add fault_* headers."""
        original = _envelope(headers={"traceparent": "x"})
        message = InFlightMessage(envelope=original, queue="search-auction-created", policy=RedeliveryPolicy(1))
        message.begin_attempt()
        message.fail(ProhibitedModelError("Foo"))

        dead = message.dead_letter_envelope()

        assert dead.message_id == original.message_id
        assert dead.payload == original.payload
        assert dead.headers["traceparent"] == "x"
        assert dead.headers["fault_exception_type"] == "ProhibitedModelError"
        assert dead.headers["fault_attempt_count"] == 1
        assert dead.headers["fault_source_queue"] == "search-auction-created"
        assert dead.headers["fault_category"] == "business_rule"
        assert dead.headers["fault_first_failed_at"]

    def test_policy_validation(self):
        """Zero attempts or a negative interval are refused."""
        with pytest.raises(ValueError):
            RedeliveryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RedeliveryPolicy(interval=-1)


class TestDeliverWithRetry:
    """Handler invocation under the redelivery policy."""

    async def test_exhausts_attempts_with_fixed_interval(self, recording_sleep):
        """Five attempts with four 5s waits between them."""
        calls = []

        async def handler(envelope):
            calls.append(envelope.message_id)
            raise RuntimeError("always")

        message = InFlightMessage(envelope=_envelope(), queue="q")
        state = await deliver_with_retry(message, handler, sleep=recording_sleep)

        assert state == DeliveryState.DEAD_LETTERED
        assert len(calls) == 5
        assert recording_sleep.calls == [5.0] * 4

    async def test_recovers_after_transient_failure(self, recording_sleep):
        """A handler that recovers is acknowledged."""
        attempts = []

        async def handler(envelope):
            attempts.append(1)
            if len(attempts) < 3:
                raise BrokerUnavailableError("flaky")

        message = InFlightMessage(envelope=_envelope(), queue="q")
        state = await deliver_with_retry(message, handler, sleep=recording_sleep)

        assert state == DeliveryState.ACKNOWLEDGED
        assert message.attempts == 3
        assert recording_sleep.calls == [5.0, 5.0]


class TestInMemoryBroker:
    """Routing, fan-out and dead-lettering."""

    async def test_each_queue_gets_a_copy(self, broker):
        """Every queue bound to a topic receives the message."""
        seen = {"q1": [], "q2": []}

        def make_handler(name):
            async def handler(envelope):
                seen[name].append(envelope.message_id)
            return handler

        broker.bind("q1", ["auction-deleted"], make_handler("q1"))
        broker.bind("q2", ["auction-deleted"], make_handler("q2"))
        await broker.start()

        envelope = _envelope()
        await broker.publish(envelope)
        await broker.drain(timeout=5)

        assert seen == {"q1": [envelope.message_id], "q2": [envelope.message_id]}
        assert broker.published_to("auction-deleted")[0].message_id == envelope.message_id

    async def test_unbound_topic_is_dropped(self, broker):
        """Publishing to a topic with no queue delivers nothing."""
        await broker.start()
        await broker.publish(_envelope())
        await broker.drain(timeout=5)

        assert len(broker.published) == 1

    async def test_dead_lettered_exactly_once(self, broker, recording_sleep):
        """A failing handler dead-letters the message once, after 5 attempts."""
        attempts = []
        dead_letters = []

        async def failing(envelope):
            attempts.append(envelope.message_id)
            raise ProhibitedModelError("Foo")

        async def error_consumer(envelope):
            dead_letters.append(envelope)

        broker.bind("search-auction-deleted", ["auction-deleted"], failing)
        broker.bind("compensation", ["search-auction-deleted-error"], error_consumer)
        await broker.start()

        envelope = _envelope()
        await broker.publish(envelope)
        await broker.drain(timeout=5)

        assert len(attempts) == 5
        assert recording_sleep.calls == [5.0] * 4
        assert len(dead_letters) == 1
        assert dead_letters[0].message_id == envelope.message_id
        assert dead_letters[0].headers["fault_attempt_count"] == 5
        assert len(broker.published_to("search-auction-deleted-error")) == 1

        stats = broker.get_stats()
        assert stats["queues"]["search-auction-deleted"]["dead_lettered"] == 1
        assert stats["queues"]["compensation"]["delivered"] == 1

    async def test_handler_mutation_does_not_leak_between_queues(self, broker):
        """Queues receive independent copies of the envelope."""
        received = []

        async def mutating(envelope):
            envelope.payload["id"] = "changed"

        async def reader(envelope):
            received.append(envelope.payload["id"])

        broker.bind("q1", ["auction-deleted"], mutating)
        broker.bind("q2", ["auction-deleted"], reader)
        await broker.start()

        await broker.publish(_envelope())
        await broker.drain(timeout=5)

        assert received == ["a1"]

    async def test_unavailable_broker_rejects_publish(self, broker):
        """Publishing while unavailable raises BrokerUnavailableError."""
        broker.set_available(False)
        with pytest.raises(BrokerUnavailableError):
            await broker.publish(_envelope())
        assert broker.published == []

        broker.set_available(True)
        await broker.publish(_envelope())
        assert len(broker.published) == 1

    async def test_duplicate_queue_rejected(self, broker):
        """A queue name can only be bound once."""
        async def handler(envelope):
            pass

        broker.bind("q1", ["auction-deleted"], handler)
        with pytest.raises(ValueError):
            broker.bind("q1", ["auction-created"], handler)
        with pytest.raises(ValueError):
            broker.bind("q2", [], handler)

    async def test_stop_lets_in_flight_handler_finish(self):
        """Stopping waits for the handler already running."""
        broker = InMemoryBroker()
        started = asyncio.Event()
        finished = []

        async def slow(envelope):
            started.set()
            await asyncio.sleep(0.05)
            finished.append(envelope.message_id)

        broker.bind("q1", ["auction-deleted"], slow, prefetch=2)
        await broker.start()
        await broker.publish(_envelope())
        await started.wait()

        await broker.stop()

        assert len(finished) == 1
        assert not broker.is_running
