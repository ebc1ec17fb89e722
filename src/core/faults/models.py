"""
Fault Models
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from ..events.models import MessageEnvelope
from ..timeutil import from_db_time, utcnow


class FaultState(str, Enum):
    """Received -> Classified -> {Corrected -> Republished | Escalated}"""
    RECEIVED = "Received"
    CLASSIFIED = "Classified"
    CORRECTED = "Corrected"
    REPUBLISHED = "Republished"
    ESCALATED = "Escalated"


class FaultRecord(BaseModel):
    """A dead-lettered message and what was done about it."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    message_id: str
    source_queue: str
    message_type: str
    exception_type: str = ""
    exception_message: str = ""
    attempt_count: int = 0
    first_failed_at: Optional[datetime] = None
    original_message: str
    state: FaultState = FaultState.RECEIVED
    recorded_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_envelope(cls, envelope: MessageEnvelope) -> "FaultRecord":
        """Build a record from the fault_* headers of a dead-lettered envelope."""
        headers = envelope.headers
        return cls(
            message_id=envelope.message_id,
            source_queue=str(headers.get("fault_source_queue", "")),
            message_type=envelope.message_type,
            exception_type=str(headers.get("fault_exception_type", "")),
            exception_message=str(headers.get("fault_exception_message", "")),
            attempt_count=int(headers.get("fault_attempt_count") or 0),
            first_failed_at=from_db_time(headers.get("fault_first_failed_at")),
            original_message=envelope.model_dump_json(),
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "FaultRecord":
        data = dict(row)
        data["first_failed_at"] = from_db_time(data.get("first_failed_at"))
        data["recorded_at"] = from_db_time(data["recorded_at"])
        return cls(**data)

    def original_envelope(self) -> MessageEnvelope:
        return MessageEnvelope.model_validate_json(self.original_message)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"original_message"})
