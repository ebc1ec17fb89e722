"""
Fault Compensation

Dead-letter handling: automatic correction and republish for known
business-rule failures, escalation to an operational sink otherwise.
"""

from .models import FaultRecord, FaultState
from .rules import CorrectionRule, default_rules, find_rule
from .sink import FaultSink
from .compensation import FaultCompensationConsumer, compensation_queue

__all__ = [
    "FaultRecord",
    "FaultState",
    "CorrectionRule",
    "default_rules",
    "find_rule",
    "FaultSink",
    "FaultCompensationConsumer",
    "compensation_queue",
]
