"""
Search API

Read-only queries over the projection store. The projection is eventually
consistent with the auction authority.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ...core.projection import PagedResult, ProjectionItem, ProjectionStore, SearchParams
from ..shared.exceptions import NotFoundError

router = APIRouter(prefix="/api/search", tags=["search"])


def get_projection_store(request: Request) -> ProjectionStore:
    return request.app.state.projection_store


def search_params(
    search_term: Optional[str] = Query(None, alias="searchTerm"),
    page_number: int = Query(1, ge=1, alias="pageNumber"),
    page_size: int = Query(4, ge=1, le=100, alias="pageSize"),
    seller: Optional[str] = None,
    winner: Optional[str] = None,
    order_by: Optional[str] = Query(None, alias="orderBy"),
    filter_by: Optional[str] = Query(None, alias="filterBy"),
) -> SearchParams:
    return SearchParams(
        search_term=search_term,
        page_number=page_number,
        page_size=page_size,
        seller=seller,
        winner=winner,
        order_by=order_by,
        filter_by=filter_by,
    )


@router.get("", response_model=PagedResult)
async def search_items(
    params: SearchParams = Depends(search_params),
    store: ProjectionStore = Depends(get_projection_store),
):
    """
    Search projected auctions.

    Query params: searchTerm, pageNumber, pageSize, seller, winner,
    orderBy (make | new | auction end), filterBy (finished | endingSoon | live).
    """
    return await store.search(params)


@router.get("/{item_id}", response_model=ProjectionItem)
async def get_item(item_id: str, store: ProjectionStore = Depends(get_projection_store)):
    item = await store.get(item_id)
    if item is None:
        raise NotFoundError("Item", item_id)
    return item
