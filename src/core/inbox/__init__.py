"""
Inbox Pattern Implementation

Consumer-side deduplication keyed on (consumer_id, message_id).

Usage:
    from src.core.inbox import InboxGuard

    async with db.transaction() as tx:
        async with InboxGuard(tx, envelope.message_id, consumer_id="search") as guard:
            if guard.should_process:
                await apply(tx, event)
"""

from .guard import InboxGuard, is_processed, mark_processed

__all__ = [
    "InboxGuard",
    "is_processed",
    "mark_processed",
]
