"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from fleet_backend.app.main import app
from fleet_backend.app.db.session import get_db, Base
from fleet_backend.app.core.locks import InProcessLockManager
from fleet_backend.app.domain.trips.allocation_coordinator import AllocationCoordinator
from fleet_backend.app.models.client import Client
from fleet_backend.app.models.driver import Driver
from fleet_backend.app.models.enums import TruckStatus, DriverStatus
from fleet_backend.app.models.truck import Truck
from fleet_backend.app.schemas.trip import TripCreate
from fleet_backend.app.services.fleet_registry import FleetRegistry
import fleet_backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


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
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None, px=None, nx=False):
        if self._closed:
            return False
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def eval(self, script, numkeys, *keys_and_args):
        # Only the lock release script runs here: compare-and-delete
        if self._closed:
            return 0
        key, token = keys_and_args[0], keys_and_args[1]
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def test_engine():
    return engine


# Domain services

@pytest.fixture
def lock_manager():
    return InProcessLockManager(timeout=1.0)


@pytest.fixture
def coordinator(lock_manager):
    return AllocationCoordinator(lock_manager)


@pytest.fixture
def fleet(lock_manager):
    return FleetRegistry(lock_manager)


# Fleet data factories

@pytest.fixture
def make_truck(db_session):
    counter = {"n": 0}

    async def _make(status=TruckStatus.AVAILABLE, total_mileage=0):
        counter["n"] += 1
        truck = Truck(
            license_plate=f"T-{counter['n']:03d}",
            model="Volvo FH",
            year=2022,
            status=status,
            total_mileage=total_mileage
        )
        db_session.add(truck)
        await db_session.commit()
        await db_session.refresh(truck)
        db_session.expunge(truck)
        return truck

    return _make


@pytest.fixture
def make_driver(db_session):
    counter = {"n": 0}

    async def _make(status=DriverStatus.ACTIVE):
        counter["n"] += 1
        driver = Driver(
            name=f"Driver {counter['n']}",
            email=f"driver{counter['n']}@example.com",
            phone="555-0100",
            license_number=f"DL-{counter['n']:05d}",
            status=status
        )
        db_session.add(driver)
        await db_session.commit()
        await db_session.refresh(driver)
        db_session.expunge(driver)
        return driver

    return _make


@pytest.fixture
def make_client(db_session):
    counter = {"n": 0}

    async def _make():
        counter["n"] += 1
        record = Client(
            name=f"Client {counter['n']}",
            email=f"client{counter['n']}@example.com",
            phone="555-0200",
            address="1 Depot Road"
        )
        db_session.add(record)
        await db_session.commit()
        await db_session.refresh(record)
        db_session.expunge(record)
        return record

    return _make


@pytest.fixture
def trip_payload():
    def _payload(truck_id, driver_id, client_id, **overrides):
        data = {
            "truck_id": truck_id,
            "driver_id": driver_id,
            "client_id": client_id,
            "origin": "Rotterdam",
            "destination": "Antwerp",
            "distance": 100.0,
            "estimated_cost": 450.0,
            "revenue": 900.0,
        }
        data.update(overrides)
        return TripCreate(**data)

    return _payload
