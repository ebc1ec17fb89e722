"""
Auction Consistency Core

Storage, event contracts, outbox/inbox, broker fabric and the consumers
that keep the marketplace stores consistent.
"""

from . import database
from . import events

__all__ = ["database", "events"]
