"""
Auction Gateway Client

Bidding-side HTTP client for the authority's get-auction RPC.
"""

import logging
from typing import Optional

import httpx

from ..errors import AuctionNotFoundError, GatewayTimeoutError
from .models import AuctionSnapshot

logger = logging.getLogger(__name__)


class AuctionGatewayClient:
    """
    Usage:
        async with AuctionGatewayClient("http://auction-svc") as gateway:
            snapshot = await gateway.get_auction(auction_id)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def close(self):
        if self._owns_client:
            await self._client.aclose()

    async def get_auction(self, auction_id: str) -> AuctionSnapshot:
        """
        Raises:
            AuctionNotFoundError: 404 from the authority
            GatewayTimeoutError: client timeout or 504 from the authority
            httpx.HTTPError: any other transport or HTTP failure
        """
        try:
            resp = await self._client.post(
                f"{self.base_url}/api/rpc/get-auction",
                json={"auction_id": auction_id},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"get-auction RPC timed out for {auction_id}: {e}")
            raise GatewayTimeoutError(auction_id, self.timeout) from e

        if resp.status_code == 404:
            raise AuctionNotFoundError(auction_id)
        if resp.status_code == 504:
            raise GatewayTimeoutError(auction_id, self.timeout)
        resp.raise_for_status()

        return AuctionSnapshot.model_validate(resp.json())
