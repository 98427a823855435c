"""Shared fixtures: in-memory database and an HTTP client bound to the app."""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from bustrack.database import enable_sqlite_foreign_keys, get_db_session
from bustrack.main import app
from bustrack.models import Base, Bus, Driver, Route, RouteStop

# Wednesday, early afternoon: every categorical multiplier is neutral
FIXED_NOW = datetime(2026, 3, 4, 14, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def _override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _override_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest_asyncio.fixture
async def fleet(test_db: AsyncSession):
    """One active bus with a driver, and a route with three stops."""
    driver = Driver(
        first_name="Asha",
        last_name="Rao",
        email="asha.rao@example.com",
        license_number="DL-0001",
    )
    route = Route(
        route_number="42",
        route_name="Central - Airport",
        total_distance=18.5,
        estimated_duration=45,
        stops=[
            RouteStop(stop_number=1, name="Central", latitude=12.9716, longitude=77.5946, estimated_time=0),
            RouteStop(stop_number=2, name="Museum", latitude=12.9750, longitude=77.6050, estimated_time=12),
            RouteStop(stop_number=3, name="Airport", latitude=13.1986, longitude=77.7066, estimated_time=45),
        ],
    )
    test_db.add_all([driver, route])
    await test_db.flush()

    bus = Bus(
        bus_number="B-101",
        registration_number="KA-01-F-1010",
        bus_type="Express",
        capacity=50,
        status="active",
        current_driver_id=driver.id,
    )
    test_db.add(bus)
    await test_db.commit()
    return {"bus": bus, "route": route, "driver": driver}
