"""
Fault Compensation Consumer

Consumes dead-letter topics. A dead-lettered message is classified by
its fault_exception_type header; when a correction rule matches and the
message has not already been corrected, the corrected payload is appended
to the authority outbox and so re-enters normal delivery. Anything else
is escalated to the fault sink for an operator.

Claims are keyed `<source_queue>:<message_id>` in the inbox, in the same
transaction as the republish or escalation.
"""

import logging
from typing import Iterable, List, Optional

from ..broker.base import MessageBroker, RedeliveryPolicy
from ..consumers.registry import instrument
from ..database.adapter import DatabaseAdapter
from ..events.models import MessageEnvelope
from ..events.taxonomy import dead_letter_topic
from ..inbox.guard import InboxGuard
from ..observability.metrics import record_counter
from ..outbox.transactional import on_aggregate_changed
from .models import FaultRecord, FaultState
from .rules import CorrectionRule, default_rules, find_rule
from .sink import FaultSink

logger = logging.getLogger(__name__)

CONSUMER_ID = "auction-fault-compensation"


def compensation_queue(source_queue: str) -> str:
    """Queue of the compensation consumer for one source queue's dead letters."""
    return f"{CONSUMER_ID}-{dead_letter_topic(source_queue)}"


class FaultCompensationConsumer:
    """
    Usage:
        consumer = FaultCompensationConsumer(auction_db)
        consumer.bind(broker, ["search-auction-created", "search-auction-updated"])
    """

    def __init__(
        self,
        db: DatabaseAdapter,
        rules: Optional[List[CorrectionRule]] = None,
        max_corrections: int = 1,
    ):
        self.db = db
        self.sink = FaultSink(db)
        self.rules = rules if rules is not None else default_rules()
        self.max_corrections = max_corrections

    def bind(
        self,
        broker: MessageBroker,
        source_queues: Iterable[str],
        prefetch: int = 16,
        policy: Optional[RedeliveryPolicy] = None,
    ) -> List[str]:
        bound = []
        for source_queue in source_queues:
            queue = compensation_queue(source_queue)
            broker.bind(
                queue,
                [dead_letter_topic(source_queue)],
                instrument(queue, self.handle),
                prefetch=prefetch,
                policy=policy,
            )
            bound.append(queue)
        logger.info(f"Fault compensation bound to {len(bound)} dead-letter topic(s)")
        return bound

    async def handle(self, envelope: MessageEnvelope) -> None:
        fault = FaultRecord.from_envelope(envelope)
        claim_key = f"{fault.source_queue}:{envelope.message_id}"

        async with self.db.transaction() as tx:
            async with InboxGuard(tx, claim_key, CONSUMER_ID) as guard:
                if not guard.should_process:
                    return

                fault.state = FaultState.CLASSIFIED
                rule = find_rule(self.rules, fault.exception_type, fault.message_type)
                attempt = int(envelope.headers.get("correction_attempt") or 0)

                if rule is not None and attempt < self.max_corrections:
                    corrected = rule.apply(envelope.payload)
                    fault.state = FaultState.CORRECTED
                    record = await on_aggregate_changed(
                        tx,
                        envelope.aggregate_id or str(corrected.get("id", "")),
                        fault.message_type,
                        corrected,
                        headers={
                            "compensated_from": envelope.message_id,
                            "correction_attempt": attempt + 1,
                        },
                    )
                    fault.state = FaultState.REPUBLISHED
                    await self.sink.record(tx, fault)
                    record_counter("faults_republished_total", attributes={"exception_type": fault.exception_type})
                    logger.warning(
                        f"Corrected {fault.message_type} {envelope.message_id} from {fault.source_queue} "
                        f"({rule.description}); republished as {record.id}"
                    )
                else:
                    fault.state = FaultState.ESCALATED
                    await self.sink.record(tx, fault)
                    record_counter("faults_escalated_total", attributes={"exception_type": fault.exception_type})
                    logger.error(
                        f"Escalated {fault.message_type} {envelope.message_id} from {fault.source_queue}: "
                        f"{fault.exception_type}: {fault.exception_message}",
                        extra={"fault_id": fault.id, "message_id": envelope.message_id},
                    )
