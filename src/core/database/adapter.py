"""
Database Adapter

Unified async access to SQLite (aiosqlite) and PostgreSQL (asyncpg) so each
service store can run on either engine.

Features:
- PostgreSQL-style $1, $2 placeholders on both backends
- Explicit transactions that commit or roll back as a unit
- Affected row counts for conditional (compare-and-swap) updates
- Connection pooling for PostgreSQL
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

import aiosqlite
import asyncpg

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$(\d+)")


class DatabaseBackend(Enum):
    """Supported database backends."""
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class DatabaseConfig:
    """Database configuration for one service store."""

    def __init__(
        self,
        backend: DatabaseBackend = DatabaseBackend.SQLITE,
        sqlite_path: str = ":memory:",
        postgres_url: Optional[str] = None,
        name: str = "default",
    ):
        self.backend = backend
        self.sqlite_path = sqlite_path
        self.postgres_url = postgres_url
        self.name = name

    @classmethod
    def from_env(cls, prefix: str = "AUCTION") -> "DatabaseConfig":
        """
        Load configuration for a store from environment variables.

        Reads <PREFIX>_DATABASE_BACKEND, <PREFIX>_SQLITE_PATH and
        <PREFIX>_DATABASE_URL.
        """
        backend = os.getenv(f"{prefix}_DATABASE_BACKEND", "sqlite").lower()
        return cls(
            backend=DatabaseBackend.POSTGRESQL if backend == "postgresql" else DatabaseBackend.SQLITE,
            sqlite_path=os.getenv(f"{prefix}_SQLITE_PATH", f"{prefix.lower()}.db"),
            postgres_url=os.getenv(f"{prefix}_DATABASE_URL"),
            name=prefix.lower(),
        )

    def __repr__(self) -> str:
        return f"DatabaseConfig(name={self.name}, backend={self.backend.value})"


def _rowcount_from_status(status: str) -> int:
    """Parse asyncpg command status ("UPDATE 1", "INSERT 0 1") to a row count."""
    parts = (status or "").split()
    if parts and parts[-1].isdigit():
        return int(parts[-1])
    return 0


class Transaction:
    """
    A unit of work bound to one connection.

    Obtained from DatabaseAdapter.transaction(); exposes the same query
    methods as the adapter. Statements are not committed until the
    surrounding context exits cleanly.
    """

    def __init__(self, adapter: "DatabaseAdapter", conn: Any):
        self._adapter = adapter
        self._conn = conn

    @property
    def backend(self) -> DatabaseBackend:
        return self._adapter.backend

    async def fetch(self, query: str, *args) -> List[Dict[str, Any]]:
        return await self._adapter._fetch_on(self._conn, query, *args)

    async def fetchrow(self, query: str, *args) -> Optional[Dict[str, Any]]:
        rows = await self.fetch(query, *args)
        return rows[0] if rows else None

    async def fetchval(self, query: str, *args) -> Any:
        row = await self.fetchrow(query, *args)
        if row:
            return list(row.values())[0]
        return None

    async def execute(self, query: str, *args) -> int:
        return await self._adapter._execute_on(self._conn, query, *args)


class DatabaseAdapter:
    """
    Unified database adapter supporting both SQLite and PostgreSQL.

    Usage:
        db = DatabaseAdapter(DatabaseConfig.from_env("AUCTION"))
        await db.connect()

        rows = await db.fetch("SELECT * FROM auctions WHERE seller = $1", seller)

        async with db.transaction() as tx:
            await tx.execute("INSERT INTO auctions ...")
            await tx.execute("INSERT INTO outbox ...")

        await db.disconnect()

    Statements run through the adapter itself (outside transaction()) are
    committed immediately.
    """

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or DatabaseConfig()
        self._pg_pool: Optional[asyncpg.Pool] = None
        self._sqlite_conn: Optional[aiosqlite.Connection] = None
        # SQLite has a single connection; the lock serializes units of work on it.
        self._sqlite_lock = asyncio.Lock()
        self._connected = False

    @property
    def backend(self) -> DatabaseBackend:
        return self.config.backend

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Connect to the configured backend."""
        if self._connected:
            return

        logger.info(f"Connecting to database: {self.config}")

        if self.config.backend == DatabaseBackend.POSTGRESQL:
            if not self.config.postgres_url:
                raise ValueError(f"No DATABASE_URL configured for store '{self.config.name}'")
            self._pg_pool = await asyncpg.create_pool(
                self.config.postgres_url,
                min_size=2,
                max_size=10,
                command_timeout=60
            )
            logger.info("Connected to PostgreSQL")
        else:
            # Autocommit mode; transactions are opened explicitly with BEGIN.
            self._sqlite_conn = await aiosqlite.connect(
                self.config.sqlite_path,
                isolation_level=None
            )
            self._sqlite_conn.row_factory = aiosqlite.Row
            logger.info(f"Connected to SQLite: {self.config.sqlite_path}")

        self._connected = True

    async def disconnect(self) -> None:
        """Disconnect from the database."""
        if self._pg_pool:
            await self._pg_pool.close()
            self._pg_pool = None
            logger.info("Disconnected from PostgreSQL")

        if self._sqlite_conn:
            await self._sqlite_conn.close()
            self._sqlite_conn = None
            logger.info("Disconnected from SQLite")

        self._connected = False

    async def fetch(self, query: str, *args) -> List[Dict[str, Any]]:
        """
        Fetch multiple rows.

        Args:
            query: SQL query with $1, $2, etc. placeholders
            *args: Query parameters

        Returns:
            List of dictionaries representing rows
        """
        if not self._connected:
            await self.connect()

        if self._pg_pool:
            async with self._pg_pool.acquire() as conn:
                return await self._fetch_on(conn, query, *args)

        async with self._sqlite_lock:
            return await self._fetch_on(self._sqlite_conn, query, *args)

    async def fetchrow(self, query: str, *args) -> Optional[Dict[str, Any]]:
        """Fetch a single row."""
        rows = await self.fetch(query, *args)
        return rows[0] if rows else None

    async def fetchval(self, query: str, *args) -> Any:
        """Fetch a single value from the first column of the first row."""
        row = await self.fetchrow(query, *args)
        if row:
            return list(row.values())[0]
        return None

    async def execute(self, query: str, *args) -> int:
        """
        Execute a statement (INSERT, UPDATE, DELETE, DDL) and commit it.

        Returns:
            Number of affected rows
        """
        if not self._connected:
            await self.connect()

        if self._pg_pool:
            async with self._pg_pool.acquire() as conn:
                return await self._execute_on(conn, query, *args)

        async with self._sqlite_lock:
            return await self._execute_on(self._sqlite_conn, query, *args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """
        Context manager for transactions.

        Usage:
            async with db.transaction() as tx:
                await tx.execute("INSERT ...")
                await tx.execute("UPDATE ...")

        Commits when the block exits cleanly; rolls back and re-raises on
        any exception.
        """
        if not self._connected:
            await self.connect()

        if self._pg_pool:
            async with self._pg_pool.acquire() as conn:
                async with conn.transaction():
                    yield Transaction(self, conn)
            return

        async with self._sqlite_lock:
            conn = self._sqlite_conn
            await conn.execute("BEGIN")
            try:
                yield Transaction(self, conn)
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            else:
                await conn.execute("COMMIT")

    # Backend implementations

    async def _fetch_on(self, conn: Any, query: str, *args) -> List[Dict[str, Any]]:
        if self.backend == DatabaseBackend.POSTGRESQL:
            rows = await conn.fetch(query, *args)
            return [dict(row) for row in rows]

        async with conn.execute(self._convert_to_sqlite(query), args) as cursor:
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]

    async def _execute_on(self, conn: Any, query: str, *args) -> int:
        if self.backend == DatabaseBackend.POSTGRESQL:
            return _rowcount_from_status(await conn.execute(query, *args))

        cursor = await conn.execute(self._convert_to_sqlite(query), args)
        try:
            return max(cursor.rowcount, 0)
        finally:
            await cursor.close()

    def _convert_to_sqlite(self, query: str) -> str:
        """Convert $1, $2 placeholders to SQLite's numbered ?1, ?2 form."""
        return _PLACEHOLDER.sub(r"?\1", query)


async def create_database(config: DatabaseConfig) -> DatabaseAdapter:
    """Create and connect an adapter for one service store."""
    db = DatabaseAdapter(config)
    await db.connect()
    return db


# Global instance management, keyed by store name
_databases: Dict[str, DatabaseAdapter] = {}


async def get_database(prefix: str = "AUCTION") -> DatabaseAdapter:
    """Get the process-wide adapter for the store configured under PREFIX."""
    key = prefix.upper()
    if key not in _databases:
        _databases[key] = await create_database(DatabaseConfig.from_env(key))
    return _databases[key]


async def close_database(prefix: Optional[str] = None) -> None:
    """Close one global store, or all of them when no prefix is given."""
    keys = [prefix.upper()] if prefix else list(_databases)
    for key in keys:
        db = _databases.pop(key, None)
        if db:
            await db.disconnect()
