"""
Shared Test Fixtures

Every store runs on its own in-memory SQLite database. The broker runs
with the default redelivery policy but a recording sleep, so redelivery
intervals are asserted without waiting for them.
"""

import pytest

from src.core.broker import InMemoryBroker
from src.core.database import DatabaseAdapter, DatabaseConfig, apply_schema


class RecordingSleep:
    """Async sleep stand-in that remembers every requested delay."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)


async def open_store(name: str) -> DatabaseAdapter:
    db = DatabaseAdapter(DatabaseConfig(sqlite_path=":memory:", name=name))
    await db.connect()
    await apply_schema(db, name)
    return db


@pytest.fixture
async def auction_db():
    db = await open_store("auction")
    yield db
    await db.disconnect()


@pytest.fixture
async def search_db():
    db = await open_store("search")
    yield db
    await db.disconnect()


@pytest.fixture
async def bidding_db():
    db = await open_store("bidding")
    yield db
    await db.disconnect()


@pytest.fixture
async def notify_db():
    db = await open_store("notify")
    yield db
    await db.disconnect()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
async def broker(recording_sleep):
    broker = InMemoryBroker(sleep=recording_sleep)
    yield broker
    await broker.stop()
