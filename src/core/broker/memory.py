"""
In-Memory Broker

In-process implementation of the broker fabric: topic fan-out to bound
queues, `prefetch` concurrent workers per queue, bounded redelivery and
dead-lettering. Used by the single-process runner and by tests.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from ..errors import BrokerUnavailableError
from ..events.models import MessageEnvelope
from ..events.taxonomy import dead_letter_topic
from ..observability.metrics import record_counter
from ..observability.tracing import consumer_span
from .base import MessageBroker, MessageHandler, RedeliveryPolicy
from .retry import DeliveryState, InFlightMessage, SleepFunc, deliver_with_retry

logger = logging.getLogger(__name__)


@dataclass
class _QueueBinding:
    name: str
    topics: List[str]
    handler: MessageHandler
    prefetch: int
    policy: RedeliveryPolicy
    queue: "asyncio.Queue[MessageEnvelope]" = field(default_factory=asyncio.Queue)
    workers: List[asyncio.Task] = field(default_factory=list)
    delivered: int = 0
    dead_lettered: int = 0


class InMemoryBroker(MessageBroker):
    """
    In-process message broker.

    Usage:
        broker = InMemoryBroker()
        broker.bind("search-auction-created", ["auction-created"], handler)
        await broker.start()
        await broker.publish(envelope)
        await broker.drain()
        await broker.stop()

    Each bound queue receives its own copy of every message published to
    one of its topics. Messages published to a topic with no bound queue
    are dropped. `set_available(False)` simulates an outage: publish raises
    BrokerUnavailableError until availability is restored.
    """

    def __init__(
        self,
        default_policy: Optional[RedeliveryPolicy] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        self.default_policy = default_policy or RedeliveryPolicy()
        self._sleep = sleep or asyncio.sleep
        self._bindings: Dict[str, _QueueBinding] = {}
        self._routes: Dict[str, List[str]] = {}
        self._available = True
        self._running = False
        self._busy: Set[asyncio.Task] = set()
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

        # Every accepted publish as (topic, envelope), oldest first
        self.published: List[Tuple[str, MessageEnvelope]] = []

    @property
    def is_running(self) -> bool:
        return self._running

    def set_available(self, available: bool):
        self._available = available
        logger.info(f"InMemoryBroker availability set to {available}")

    def published_to(self, topic: str) -> List[MessageEnvelope]:
        """Envelopes accepted on a topic."""
        return [env for t, env in self.published if t == topic]

    async def publish(self, envelope: MessageEnvelope, topic: Optional[str] = None) -> None:
        if not self._available:
            raise BrokerUnavailableError(
                "Broker unavailable",
                {"message_id": envelope.message_id, "message_type": envelope.message_type},
            )
        self._route(topic or envelope.topic, envelope)

    def _route(self, topic: str, envelope: MessageEnvelope):
        self.published.append((topic, envelope))
        for queue_name in self._routes.get(topic, []):
            binding = self._bindings[queue_name]
            self._in_flight += 1
            self._idle.clear()
            binding.queue.put_nowait(envelope.model_copy(deep=True))

    def bind(
        self,
        queue: str,
        topics: List[str],
        handler: MessageHandler,
        prefetch: int = 16,
        policy: Optional[RedeliveryPolicy] = None,
    ) -> None:
        if queue in self._bindings:
            raise ValueError(f"Queue '{queue}' is already bound")
        if not topics:
            raise ValueError("At least one topic must be specified")

        binding = _QueueBinding(
            name=queue,
            topics=list(topics),
            handler=handler,
            prefetch=max(1, prefetch),
            policy=policy or self.default_policy,
        )
        self._bindings[queue] = binding
        for topic in topics:
            self._routes.setdefault(topic, []).append(queue)

        if self._running:
            self._spawn_workers(binding)

        logger.info(f"Bound queue {queue} to {topics} (prefetch={binding.prefetch})")

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for binding in self._bindings.values():
            self._spawn_workers(binding)
        logger.info(f"InMemoryBroker started with {len(self._bindings)} queue(s)")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False

        workers = [task for b in self._bindings.values() for task in b.workers]
        for task in workers:
            if task not in self._busy:
                task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        for binding in self._bindings.values():
            binding.workers.clear()
        logger.info("InMemoryBroker stopped")

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait until every routed message has been acknowledged or dead-lettered."""
        await asyncio.wait_for(self._idle.wait(), timeout=timeout)

    def _spawn_workers(self, binding: _QueueBinding):
        for i in range(binding.prefetch):
            task = asyncio.create_task(self._worker(binding), name=f"{binding.name}-{i}")
            binding.workers.append(task)

    async def _worker(self, binding: _QueueBinding):
        task = asyncio.current_task()
        while self._running:
            envelope = await binding.queue.get()
            self._busy.add(task)
            try:
                await self._deliver(binding, envelope)
            except Exception as e:
                logger.error(f"Unexpected delivery error on {binding.name}: {e}", exc_info=True)
            finally:
                self._busy.discard(task)
                binding.queue.task_done()
                self._in_flight -= 1
                if self._in_flight == 0:
                    self._idle.set()

    async def _deliver(self, binding: _QueueBinding, envelope: MessageEnvelope):
        message = InFlightMessage(envelope=envelope, queue=binding.name, policy=binding.policy)

        with consumer_span(
            binding.name,
            envelope.headers,
            message_type=envelope.message_type,
            message_id=envelope.message_id,
        ) as span:
            state = await deliver_with_retry(message, binding.handler, sleep=self._sleep)
            span.set_attribute("delivery.attempts", message.attempts)
            span.set_attribute("delivery.state", state.value)

        if state == DeliveryState.DEAD_LETTERED:
            binding.dead_lettered += 1
            record_counter("messages_dead_lettered_total", attributes={"queue": binding.name})
            self._route(dead_letter_topic(binding.name), message.dead_letter_envelope())
        else:
            binding.delivered += 1

    def get_stats(self) -> Dict[str, Any]:
        """Queue depths and delivery counts."""
        return {
            "running": self._running,
            "available": self._available,
            "in_flight": self._in_flight,
            "queues": {
                name: {
                    "topics": b.topics,
                    "depth": b.queue.qsize(),
                    "delivered": b.delivered,
                    "dead_lettered": b.dead_lettered,
                }
                for name, b in self._bindings.items()
            },
        }
