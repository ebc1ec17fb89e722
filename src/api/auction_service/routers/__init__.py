"""Auction service routers."""

from .auctions import router as auctions_router
from .rpc import router as rpc_router
from .admin import router as admin_router

__all__ = ["auctions_router", "rpc_router", "admin_router"]
