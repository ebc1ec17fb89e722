"""
Search Projection

Denormalized, independently queryable copy of auctions maintained from
auction events.
"""

from .models import PagedResult, ProjectionItem, SearchParams
from .store import ProjectionStore
from .consumer import ProjectionConsumer, check_item_rules
from .sync import ProjectionSynchronizer

__all__ = [
    "PagedResult",
    "ProjectionItem",
    "SearchParams",
    "ProjectionStore",
    "ProjectionConsumer",
    "check_item_rules",
    "ProjectionSynchronizer",
]
