"""
Tests for the SQLite side of the database adapter.
"""

import pytest

from src.core.database import DatabaseAdapter, DatabaseConfig


@pytest.fixture
async def db():
    adapter = DatabaseAdapter(DatabaseConfig(sqlite_path=":memory:"))
    await adapter.connect()
    await adapter.execute("CREATE TABLE kv (k TEXT PRIMARY KEY, v INTEGER NOT NULL)")
    yield adapter
    await adapter.disconnect()


class TestDatabaseAdapter:
    """Placeholders, row counts and transactions."""

    async def test_dollar_placeholders(self, db):
        """$n placeholders work on SQLite."""
        await db.execute("INSERT INTO kv (k, v) VALUES ($1, $2)", "a", 1)
        assert await db.fetchval("SELECT v FROM kv WHERE k = $1", "a") == 1

    async def test_reused_placeholder(self, db):
        """A placeholder can appear twice in one statement."""
        await db.execute("INSERT INTO kv (k, v) VALUES ($1, $2)", "a", 1)
        row = await db.fetchrow("SELECT k FROM kv WHERE k = $1 OR k = $1", "a")
        assert row == {"k": "a"}

    async def test_execute_returns_rowcount(self, db):
        """execute returns the affected row count."""
        await db.execute("INSERT INTO kv (k, v) VALUES ($1, $2)", "a", 1)
        await db.execute("INSERT INTO kv (k, v) VALUES ($1, $2)", "b", 1)

        assert await db.execute("UPDATE kv SET v = 2 WHERE v = $1", 1) == 2
        assert await db.execute("UPDATE kv SET v = 3 WHERE k = $1", "missing") == 0

    async def test_on_conflict_do_nothing_reports_zero(self, db):
        """A skipped insert reports zero rows."""
        sql = "INSERT INTO kv (k, v) VALUES ($1, $2) ON CONFLICT (k) DO NOTHING"
        assert await db.execute(sql, "a", 1) == 1
        assert await db.execute(sql, "a", 2) == 0

    async def test_transaction_commits(self, db):
        """A clean transaction commits."""
        async with db.transaction() as tx:
            await tx.execute("INSERT INTO kv (k, v) VALUES ($1, $2)", "a", 1)
            assert await tx.fetchval("SELECT COUNT(*) FROM kv") == 1

        assert await db.fetchval("SELECT COUNT(*) FROM kv") == 1

    async def test_transaction_rolls_back_on_error(self, db):
        """An exception rolls the transaction back."""
        with pytest.raises(RuntimeError):
            async with db.transaction() as tx:
                await tx.execute("INSERT INTO kv (k, v) VALUES ($1, $2)", "a", 1)
                raise RuntimeError("abort")

        assert await db.fetchval("SELECT COUNT(*) FROM kv") == 0

    async def test_fetch_returns_dicts(self, db):
        """Rows come back as dicts."""
        await db.execute("INSERT INTO kv (k, v) VALUES ($1, $2)", "a", 1)
        rows = await db.fetch("SELECT k, v FROM kv")
        assert rows == [{"k": "a", "v": 1}]

    async def test_fetchrow_none_when_empty(self, db):
        """fetchrow returns None when nothing matches."""
        assert await db.fetchrow("SELECT k FROM kv") is None
        assert await db.fetchval("SELECT k FROM kv") is None
