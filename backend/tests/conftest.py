"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; point them at SQLite and keep redis out of tests
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REALTIME_ENABLED"] = "false"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stockroom.core.database import Base, enable_sqlite_foreign_keys, get_db
from stockroom.main import app
# Import all models to ensure they're registered with Base.metadata
from stockroom.models.cycle_count import CycleCount, CycleCountEntry
from stockroom.models.inventory import InventoryItem
from stockroom.models.scan_log import ScanLog

TEST_DATABASE_URL = "sqlite+aiosqlite://"

ACTOR = "tester-1"


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine.sync_engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Create a test database session."""
    SessionLocal = sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with SessionLocal() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session):
    """Create a test client with database override."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"X-Actor-Id": ACTOR}


@pytest.fixture
def make_item(db_session):
    """Factory that persists an InventoryItem with sensible defaults."""
    counter = {"n": 0}

    async def _make_item(**overrides) -> InventoryItem:
        counter["n"] += 1
        data = {
            "barcode": f"0000000000{counter['n']:02d}",
            "name": f"Item {counter['n']}",
            "quantity": 1,
            "created_by": ACTOR,
        }
        data.update(overrides)
        item = InventoryItem(**data)
        db_session.add(item)
        await db_session.commit()
        return item

    return _make_item


@pytest_asyncio.fixture
async def zone_a_items(make_item):
    """Three items in zone A with quantities 10, 0 and 5, plus one elsewhere."""
    items = [
        await make_item(name="Widget A", zone="A", aisle="A-1", category="Widgets", quantity=10),
        await make_item(name="Gadget B", zone="A", aisle="A-2", category="Gadgets", quantity=0),
        await make_item(name="Part C", zone="A", aisle="A-1", category="Parts", quantity=5),
    ]
    await make_item(name="Elsewhere", zone="B", category="Widgets", quantity=7)
    return items
