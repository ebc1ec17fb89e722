"""
Correction Rules

Table of known business-rule failures that can be corrected
automatically, keyed by exception type and message type.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from ..events.taxonomy import AuctionEventType

Payload = Dict[str, Any]


@dataclass(frozen=True)
class CorrectionRule:
    exception_type: str
    message_types: FrozenSet[str]
    correct: Callable[[Payload], Payload]
    description: str = ""

    def matches(self, exception_type: str, message_type: str) -> bool:
        return exception_type == self.exception_type and message_type in self.message_types

    def apply(self, payload: Payload) -> Payload:
        """Corrected copy of the payload; the original is left untouched."""
        return self.correct(dict(payload))


def _set_field(name: str, value: Any) -> Callable[[Payload], Payload]:
    def correct(payload: Payload) -> Payload:
        payload[name] = value
        return payload
    return correct


def default_rules(safe_model_name: str = "FooBar") -> List[CorrectionRule]:
    item_events = frozenset({AuctionEventType.CREATED.value, AuctionEventType.UPDATED.value})
    return [
        CorrectionRule(
            exception_type="ProhibitedModelError",
            message_types=item_events,
            correct=_set_field("model", safe_model_name),
            description=f"replace prohibited model with {safe_model_name}",
        ),
        CorrectionRule(
            exception_type="NegativeMileageError",
            message_types=item_events,
            correct=_set_field("mileage", 0),
            description="clamp negative mileage to 0",
        ),
    ]


def find_rule(rules: List[CorrectionRule], exception_type: str, message_type: str) -> Optional[CorrectionRule]:
    for rule in rules:
        if rule.matches(exception_type, message_type):
            return rule
    return None
