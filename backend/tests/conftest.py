"""Pytest configuration and fixtures for testing."""

import os

# Point settings at a throwaway database before the app is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "")

from datetime import datetime
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from naafe.main import app
from naafe.database import Base, get_db
from naafe.api.deps import get_coordinator
from naafe.services.lifecycle import LifecycleCoordinator
from naafe.services.payment_gateway import LedgerEscrowGateway


TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Negotiated service slot used throughout the tests
SERVICE_DATE = "2030-06-01"
SERVICE_TIME = "10:00"
SERVICE_AT = datetime(2030, 6, 1, 10, 0)

FULL_TERMS = {
    "price": 500,
    "date": SERVICE_DATE,
    "time": SERVICE_TIME,
    "materials": "paint",
    "scope": "two rooms",
}


class FakeClock:
    """Settable clock injected into the lifecycle coordinator."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2030, 5, 1, 12, 0))


@pytest.fixture
def gateway() -> LedgerEscrowGateway:
    return LedgerEscrowGateway()


@pytest.fixture
def coordinator(gateway, clock) -> LifecycleCoordinator:
    return LifecycleCoordinator(gateway=gateway, clock=clock)


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Create a fresh in-memory database for each test.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions bound to the test database, for tests that need more than one."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(db: AsyncSession, coordinator: LifecycleCoordinator) -> AsyncGenerator[AsyncClient, None]:
    """
    Create test client with database and coordinator overrides.
    """
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_coordinator] = lambda: coordinator

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def register(client: AsyncClient, name: str, email: str, roles: list[str]) -> tuple[dict, dict]:
    """
    Register a user.

    Returns:
        Tuple of (user_data, auth_headers)
    """
    response = await client.post(
        "/api/users",
        json={"name": name, "email": email, "roles": roles}
    )
    assert response.status_code == 201, response.text
    data = response.json()
    return data, {"X-User-Key": data["api_key"]}


@pytest.fixture
async def seeker(client: AsyncClient) -> tuple[dict, dict]:
    return await register(client, "Mona Seeker", "mona@example.com", ["seeker"])


@pytest.fixture
async def provider(client: AsyncClient) -> tuple[dict, dict]:
    return await register(client, "Karim Painter", "karim@example.com", ["provider"])


@pytest.fixture
async def other_provider(client: AsyncClient) -> tuple[dict, dict]:
    return await register(client, "Omar Painter", "omar@example.com", ["provider"])


@pytest.fixture
async def job_request(client: AsyncClient, seeker) -> dict:
    _, headers = seeker
    response = await client.post(
        "/api/job-requests",
        headers=headers,
        json={
            "title": "Paint two rooms",
            "description": "Living room and bedroom, white walls",
            "budget_min": 300,
            "budget_max": 800,
            "currency": "EGP"
        }
    )
    assert response.status_code == 201, response.text
    return response.json()


async def make_offer(client: AsyncClient, job_request: dict, headers: dict, price: int = 450) -> dict:
    response = await client.post(
        f"/api/job-requests/{job_request['id']}/offers",
        headers=headers,
        json={
            "price": price,
            "message": "Available this weekend",
            "estimated_time_days": 2,
            "available_dates": [SERVICE_DATE],
            "time_preferences": ["morning"]
        }
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
async def offer(client: AsyncClient, job_request, provider) -> dict:
    _, headers = provider
    return await make_offer(client, job_request, headers)


@pytest.fixture
async def agreed_offer(client: AsyncClient, offer, seeker, provider) -> dict:
    """Offer with all five terms set and confirmed by both parties."""
    _, seeker_headers = seeker
    _, provider_headers = provider

    response = await client.patch(
        f"/api/offers/{offer['id']}/negotiation",
        headers=provider_headers,
        json=FULL_TERMS
    )
    assert response.status_code == 200, response.text

    for headers in (seeker_headers, provider_headers):
        response = await client.post(f"/api/offers/{offer['id']}/confirm-negotiation", headers=headers)
        assert response.status_code == 200, response.text

    data = response.json()
    assert data["can_accept_offer"] is True
    return data


@pytest.fixture
async def accepted_offer(client: AsyncClient, agreed_offer, seeker) -> dict:
    _, headers = seeker
    response = await client.post(f"/api/offers/{agreed_offer['id']}/accept", headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
async def in_progress_offer(client: AsyncClient, accepted_offer, seeker) -> dict:
    _, headers = seeker
    response = await client.post(f"/api/offers/{accepted_offer['id']}/escrow", headers=headers)
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["status"] == "in_progress"
    return data
