"""
Relay Lease

Leader election for outbox relay instances. Exactly one holder of a
runner name may publish; a lease that is not renewed within its expiry
becomes available to other instances.
"""

import logging
import os
import socket
from datetime import timedelta
from typing import Any, Dict, Optional
from uuid import uuid4

from ..database.adapter import DatabaseAdapter
from ..timeutil import to_db_time, utcnow

logger = logging.getLogger(__name__)


def default_owner_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


class RelayLease:
    """
    A renewable lease row in `relay_leases`.

    Usage:
        lease = RelayLease(db, runner_name="auction-outbox-relay")
        if await lease.acquire():
            ...  # publish
        await lease.release()
    """

    def __init__(
        self,
        db: DatabaseAdapter,
        runner_name: str = "outbox-relay",
        owner_id: Optional[str] = None,
        lease_seconds: int = 30,
    ):
        self.db = db
        self.runner_name = runner_name
        self.owner_id = owner_id or default_owner_id()
        self.lease_seconds = max(5, int(lease_seconds))
        self.held = False

    async def acquire(self) -> bool:
        """
        Take the lease if it is free, expired, or already ours.

        Renews the expiry when we already hold it.
        """
        now = utcnow()
        now_iso = to_db_time(now)
        exp_iso = to_db_time(now + timedelta(seconds=self.lease_seconds))
        pid = os.getpid()
        host = socket.gethostname()

        async with self.db.transaction() as tx:
            inserted = await tx.execute(
                """
                INSERT INTO relay_leases (runner_name, owner_id, lease_expires_at, heartbeat_at, pid, host)
                VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT (runner_name) DO NOTHING
                """,
                self.runner_name, self.owner_id, exp_iso, now_iso, pid, host,
            )
            if inserted == 1:
                acquired = True
            else:
                # Update only if expired or already owned by us
                updated = await tx.execute(
                    """
                    UPDATE relay_leases
                    SET owner_id = $1, lease_expires_at = $2, heartbeat_at = $3, pid = $4, host = $5
                    WHERE runner_name = $6 AND (lease_expires_at < $7 OR owner_id = $1)
                    """,
                    self.owner_id, exp_iso, now_iso, pid, host, self.runner_name, now_iso,
                )
                acquired = updated == 1

        if acquired and not self.held:
            logger.info(f"Relay lease acquired: {self.runner_name} by {self.owner_id}")
        elif not acquired and self.held:
            logger.warning(f"Relay lease lost: {self.runner_name} ({self.owner_id})")
        self.held = acquired
        return acquired

    async def heartbeat(self) -> bool:
        """Extend a lease we hold. Returns False if it was taken over."""
        now = utcnow()
        updated = await self.db.execute(
            """
            UPDATE relay_leases
            SET lease_expires_at = $1, heartbeat_at = $2
            WHERE runner_name = $3 AND owner_id = $4
            """,
            to_db_time(now + timedelta(seconds=self.lease_seconds)),
            to_db_time(now),
            self.runner_name,
            self.owner_id,
        )
        self.held = updated == 1
        return self.held

    async def release(self) -> None:
        """Expire the lease immediately so another instance can take it."""
        await self.db.execute(
            "UPDATE relay_leases SET lease_expires_at = $1 WHERE runner_name = $2 AND owner_id = $3",
            to_db_time(utcnow()),
            self.runner_name,
            self.owner_id,
        )
        if self.held:
            logger.info(f"Relay lease released: {self.runner_name}")
        self.held = False

    async def get(self) -> Optional[Dict[str, Any]]:
        """Current lease row, if any."""
        return await self.db.fetchrow(
            "SELECT * FROM relay_leases WHERE runner_name = $1", self.runner_name
        )
