"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from accounts_backend.app.main import app
from accounts_backend.app.db.session import get_db, Base
from accounts_backend.app.core.jwt import create_access_token
from accounts_backend.app.core.redis_client import get_redis
from accounts_backend.app.services.event_publisher import get_event_publisher
from accounts_backend.app.domain.settlement.engine import SettlementEngine
from accounts_backend.app.domain.inventory.service import InventoryService
from accounts_backend.app.models.customer import Customer
from accounts_backend.app.models.party import Party
from accounts_backend.app.models.inventory_item import InventoryItem
import accounts_backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

OWNER_ID = 1


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.published = []
        self._closed = False

    async def ping(self):
        return not self._closed

    async def publish(self, channel, message):
        if self._closed:
            raise ConnectionError("Redis connection closed")
        self.published.append((channel, message))
        return 1

    async def aclose(self):
        self._closed = True


class RecordingPublisher:
    """Collects published events in order so tests can assert on them."""

    def __init__(self):
        self.events = []

    async def publish(self, topic, key, payload):
        self.events.append((topic, key, payload))

    def topics(self):
        return [topic for topic, _, _ in self.events]

    def clear(self):
        self.events.clear()


_mock_redis = MockRedis()
_publisher = RecordingPublisher()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Apply overrides once for the session."""

    # Patch the global redis client used by the health check
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = _mock_redis

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return _mock_redis

    async def override_get_event_publisher():
        return _publisher

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_event_publisher] = override_get_event_publisher
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    _publisher.clear()
    _mock_redis.published.clear()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def publisher():
    return _publisher


@pytest.fixture
def mock_redis():
    return _mock_redis


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    token = create_access_token({"sub": "owner@example.com", "owner_id": OWNER_ID})
    return {"Authorization": f"Bearer {token}"}


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
async def customer(db_session):
    record = Customer(owner_id=OWNER_ID, name="Sharma Traders", credit_limit=0)
    db_session.add(record)
    await db_session.commit()
    return record


@pytest.fixture
async def party(db_session):
    record = Party(owner_id=OWNER_ID, name="Gupta Wholesale", gst_no="27AAACG1234F1Z5")
    db_session.add(record)
    await db_session.commit()
    return record


@pytest.fixture
async def item(db_session):
    """Widget with 10 in stock and a minimum of 5."""
    record = InventoryItem(
        owner_id=OWNER_ID,
        name="Widget",
        sku="WID-001",
        current_stock=10,
        minimum_stock=5,
        cost_price=40,
        selling_price=50,
    )
    db_session.add(record)
    await db_session.commit()
    return record


@pytest.fixture
def settlement(db_session, publisher):
    return SettlementEngine(db_session, publisher, sale_stock_reduction="on_payment")


@pytest.fixture
def inventory(db_session, publisher):
    return InventoryService(db_session, publisher)
