"""
Outbox Models
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from ..events.models import MessageEnvelope
from ..timeutil import from_db_time, utcnow


class OutboxRecord(BaseModel):
    """
    A row of the outbox append log.

    Written in the same transaction as the aggregate mutation, marked sent
    once the relay has a broker confirmation, otherwise never mutated.
    `seq` is assigned by the store and gives enqueue order.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    aggregate_id: str
    message_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    headers: Dict[str, Any] = Field(default_factory=dict)
    enqueued_at: datetime = Field(default_factory=utcnow)
    sent_at: Optional[datetime] = None
    seq: Optional[int] = None

    @property
    def is_sent(self) -> bool:
        return self.sent_at is not None

    def to_envelope(self) -> MessageEnvelope:
        """Envelope for publishing; the message id is the record id."""
        return MessageEnvelope(
            message_id=self.id,
            message_type=self.message_type,
            aggregate_id=self.aggregate_id,
            payload=self.payload,
            headers=self.headers,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "OutboxRecord":
        payload = row["payload"]
        headers = row.get("headers") or "{}"
        return cls(
            id=row["id"],
            seq=row.get("seq"),
            aggregate_id=row["aggregate_id"],
            message_type=row["message_type"],
            payload=json.loads(payload) if isinstance(payload, str) else payload,
            headers=json.loads(headers) if isinstance(headers, str) else headers,
            enqueued_at=from_db_time(row["enqueued_at"]),
            sent_at=from_db_time(row.get("sent_at")),
        )
