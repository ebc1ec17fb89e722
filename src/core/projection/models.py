"""
Projection Models

Denormalized auction copy held by the search store, plus the search
query and paged result shapes.
"""

import math
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ProjectionItem(BaseModel):
    """One row of `projection_items`, keyed by auction id."""

    id: str
    reserve_price: int = 0
    seller: str
    winner: Optional[str] = None
    sold_amount: Optional[int] = None
    current_high_bid: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    auction_end: datetime
    status: str
    make: str
    model: str
    year: int
    color: str
    mileage: int
    image_url: str = ""


class SearchParams(BaseModel):
    search_term: Optional[str] = None
    page_number: int = Field(default=1, ge=1)
    page_size: int = Field(default=4, ge=1, le=100)
    seller: Optional[str] = None
    winner: Optional[str] = None
    order_by: Optional[str] = None  # make | new | (auction end)
    filter_by: Optional[str] = None  # finished | endingSoon | (live)


class PagedResult(BaseModel):
    results: List[ProjectionItem] = Field(default_factory=list)
    page_count: int = 0
    total_count: int = 0

    @classmethod
    def build(cls, results: List[ProjectionItem], total_count: int, page_size: int) -> "PagedResult":
        return cls(
            results=results,
            page_count=math.ceil(total_count / page_size) if total_count else 0,
            total_count=total_count,
        )
