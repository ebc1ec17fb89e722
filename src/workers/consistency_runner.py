#!/usr/bin/env python3
"""
Consistency Runner

Runs the event-driven side of the marketplace in one process:
- the outbox relays of the auction and bidding stores (leased)
- the in-process broker and its redelivery/dead-letter handling
- the search projection consumer
- the auction high-bid/finish reconciler
- fault compensation on every dead-letter topic
- notification fan-out, when a broadcaster is attached

The HTTP services can be built over the same stores with create_apps();
they then leave relaying and consuming to this runner.

Usage:
    python -m src.workers.consistency_runner

Environment Variables:
    AUCTION_*, SEARCH_*, BIDDING_*, NOTIFY_*: store settings per prefix
    OUTBOX_POLL_INTERVAL, OUTBOX_BATCH_SIZE, RELAY_LEASE_SECONDS
    BROKER_RETRY_LIMIT, BROKER_RETRY_INTERVAL, CONSUMER_PREFETCH
    LOG_LEVEL, LOG_STRUCTURED, OTEL_EXPORTER_OTLP_ENDPOINT
"""

import sys
import signal
import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..core.auctions import AuctionReconciler
from ..core.bidding import BidValidationGateway
from ..core.broker import InMemoryBroker, MessageBroker, RedeliveryPolicy
from ..core.config import CoreSettings, get_settings
from ..core.database import DatabaseAdapter, DatabaseConfig, apply_schema, create_database
from ..core.faults import FaultCompensationConsumer, default_rules
from ..core.notifications import NotificationFanout
from ..core.notifications.fanout import Broadcaster
from ..core.observability import init_observability
from ..core.outbox import OutboxRelay, create_relay
from ..core.projection import ProjectionConsumer

logger = logging.getLogger(__name__)

STORES = ("auction", "search", "bidding", "notify")


class ConsistencyRunner:
    """
    Manages stores, broker, relays and consumers with graceful shutdown.

    Usage:
        runner = ConsistencyRunner()
        await runner.setup()
        await runner.start()
        ...
        await runner.stop()
    """

    def __init__(
        self,
        settings: Optional[CoreSettings] = None,
        stores: Optional[Dict[str, DatabaseAdapter]] = None,
        broker: Optional[MessageBroker] = None,
        broadcaster: Optional[Broadcaster] = None,
    ):
        self.settings = settings or get_settings()
        self.stores: Dict[str, DatabaseAdapter] = dict(stores or {})
        self._owned_stores: List[str] = []
        self.policy = RedeliveryPolicy(
            max_attempts=self.settings.broker_retry_limit,
            interval=self.settings.broker_retry_interval,
        )
        self.broker = broker or InMemoryBroker(default_policy=self.policy)
        self.broadcaster = broadcaster
        self.relays: Dict[str, OutboxRelay] = {}
        self.bound_queues: List[str] = []
        self._shutdown_event = asyncio.Event()
        self._shutdown_requested = False
        self._started = False

    async def setup(self):
        """Open missing stores, apply schemas and bind every consumer."""
        for name in STORES:
            if name not in self.stores:
                self.stores[name] = await create_database(DatabaseConfig.from_env(name.upper()))
                self._owned_stores.append(name)
            await apply_schema(self.stores[name], name)

        prefetch = self.settings.consumer_prefetch

        projection = ProjectionConsumer(self.stores["search"], self.settings.prohibited_models)
        reconciler = AuctionReconciler(self.stores["auction"])
        definitions = [
            projection.definition(prefetch=prefetch, policy=self.policy),
            reconciler.definition(prefetch=prefetch, policy=self.policy),
        ]
        if self.broadcaster is not None:
            fanout = NotificationFanout(self.stores["notify"], self.broadcaster)
            definitions.append(fanout.definition(prefetch=prefetch, policy=self.policy))

        source_queues = []
        for definition in definitions:
            self.bound_queues.extend(definition.bind(self.broker))
            source_queues.extend(definition.queues().values())

        compensation = FaultCompensationConsumer(
            self.stores["auction"],
            rules=default_rules(self.settings.safe_model_name),
            max_corrections=self.settings.max_corrections,
        )
        self.bound_queues.extend(
            compensation.bind(self.broker, source_queues, prefetch=prefetch, policy=self.policy)
        )

        self.relays = {
            "auction": create_relay(self.stores["auction"], self.broker, "auction-outbox-relay", self.settings),
            "bidding": create_relay(self.stores["bidding"], self.broker, "bidding-outbox-relay", self.settings),
        }

        logger.info(f"Consistency runner set up: {len(self.bound_queues)} queue(s), {len(self.relays)} relay(s)")

    async def start(self):
        """Start consumers before relays so nothing published is dropped."""
        await self.broker.start()
        if self.settings.outbox_processor_enabled:
            for relay in self.relays.values():
                await relay.start()
        else:
            logger.info("Outbox relays disabled: OUTBOX_PROCESSOR_ENABLED=false")
        self._started = True

    async def stop(self):
        """Stop relays (finishing their batch), then the broker, then close owned stores."""
        for relay in self.relays.values():
            await relay.stop()
        await self.broker.stop()
        for name in self._owned_stores:
            await self.stores[name].disconnect()
        self._owned_stores.clear()
        self._started = False

    async def settle(self, rounds: int = 3, timeout: Optional[float] = None):
        """
        Relay pending outbox records and wait for deliveries to settle.

        Each round relays both outboxes once and drains the broker, so
        events produced by consumers (corrections, reconciliations) are
        carried through as well.
        """
        for _ in range(rounds):
            published = 0
            for relay in self.relays.values():
                published += await relay.run_once()
            if isinstance(self.broker, InMemoryBroker):
                await self.broker.drain(timeout=timeout)
            if published == 0:
                return

    def create_apps(self) -> Dict[str, Any]:
        """HTTP services over this runner's stores, relaying left to the runner."""
        from ..api.auction_service.main import create_app as create_auction_app
        from ..api.bidding_service.main import create_app as create_bidding_app
        from ..api.notification_service.main import create_app as create_notification_app
        from ..api.search_service.main import create_app as create_search_app

        auction_app = create_auction_app(db=self.stores["auction"], settings=self.settings, observability=False)
        return {
            "auction": auction_app,
            "search": create_search_app(
                db=self.stores["search"], settings=self.settings, sync_on_startup=False, observability=False
            ),
            "bidding": create_bidding_app(
                db=self.stores["bidding"],
                lookup=BidValidationGateway(self.stores["auction"], timeout=self.settings.gateway_timeout),
                settings=self.settings,
                observability=False,
            ),
            "notification": create_notification_app(
                db=self.stores["notify"], sse=self.broadcaster, settings=self.settings, observability=False
            ),
        }

    def _setup_signal_handlers(self):
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_shutdown_signal, sig)

    def _handle_shutdown_signal(self, sig: signal.Signals):
        if self._shutdown_requested:
            logger.warning(f"Received {sig.name} again, forcing exit")
            sys.exit(1)

        logger.info(f"Received {sig.name}, initiating graceful shutdown")
        self._shutdown_requested = True
        self._shutdown_event.set()

    def request_shutdown(self):
        self._shutdown_requested = True
        self._shutdown_event.set()

    async def run(self):
        """Run until a shutdown signal arrives."""
        logger.info("Starting Consistency Runner")
        logger.info(f"  Poll interval: {self.settings.outbox_poll_interval}s")
        logger.info(f"  Batch size: {self.settings.outbox_batch_size}")
        logger.info(f"  Redelivery: {self.policy.max_attempts} x {self.policy.interval}s")

        self._setup_signal_handlers()

        try:
            await self.setup()
            await self.start()
            logger.info("Consistency Runner is running")
            await self._shutdown_event.wait()
        except Exception as e:
            logger.error(f"Consistency Runner error: {e}", exc_info=True)
            raise
        finally:
            logger.info("Stopping Consistency Runner")
            await self.stop()
            logger.info("Consistency Runner stopped")

    async def health_check(self) -> Dict[str, Any]:
        """Return health status for monitoring."""
        relays = {name: relay.is_running for name, relay in self.relays.items()}
        return {
            "status": "healthy" if self._started and all(relays.values()) else "unhealthy",
            "relays": relays,
            "queues": len(self.bound_queues),
            "shutdown_requested": self._shutdown_requested,
        }


async def main():
    """Main entry point."""
    settings = get_settings()
    init_observability("consistency-runner", settings)

    runner = ConsistencyRunner(settings)
    await runner.run()


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
