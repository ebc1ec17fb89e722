"""
Projection Synchronizer

Catches the search store up with the authority service at start-up by
fetching auctions changed since the newest projected row.
"""

import logging
from typing import Optional

import httpx

from ..database.adapter import DatabaseAdapter
from ..observability.tracing import traced
from .models import ProjectionItem
from .store import ProjectionStore

logger = logging.getLogger(__name__)


class ProjectionSynchronizer:
    """
    Pulls `GET /api/auctions?date=<latest>` from the authority service.

    Usage:
        sync = ProjectionSynchronizer(db, "http://auction-svc")
        upserted = await sync.sync()
    """

    def __init__(
        self,
        db: DatabaseAdapter,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.db = db
        self.store = ProjectionStore(db)
        self.base_url = base_url.rstrip("/")
        self._client = client
        self.timeout = timeout

    @traced("projection.sync")
    async def sync(self) -> int:
        """
        Upsert every auction the authority changed since our latest row.

        Returns:
            Number of rows inserted or replaced

        Raises:
            httpx.HTTPError: the authority service could not be reached
        """
        latest = await self.store.latest_updated_at()
        params = {"date": latest.isoformat()} if latest else {}

        if self._client is not None:
            resp = await self._client.get(f"{self.base_url}/api/auctions", params=params)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(f"{self.base_url}/api/auctions", params=params)
        resp.raise_for_status()

        items = [ProjectionItem.model_validate(data) for data in resp.json()]
        applied = 0
        if items:
            async with self.db.transaction() as tx:
                for item in items:
                    applied += await self.store.upsert(tx, item)

        logger.info(f"Projection sync: {len(items)} fetched, {applied} applied (since {latest})")
        return applied
