"""
Shared fixtures for the test suite.

Strategy:
- The app runs against an in-memory SQLite database (aiosqlite, StaticPool)
  created fresh for every test and injected through ``get_db`` overrides.
- Geocoding never reaches the network: the resolver dependency is replaced
  by a ``GeocodingResolver`` over ``httpx.MockTransport``.
- The held-report registry is replaced per test so reports never leak
  between tests.
- Tokens are minted directly with ``create_access_token``; the login flow
  itself is covered in test_auth.py.
"""

from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["GEOCODING_ENABLED"] = "true"
os.environ["REPORT_TIMEZONE"] = "America/Sao_Paulo"

import uuid
from datetime import datetime
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from checkin_console.core.security import create_access_token, hash_password
from checkin_console.db.models import Base, CheckInEvent, Employee
from checkin_console.db.session import get_db
from checkin_console.main import app
from checkin_console.services.geocoding import (
    BigDataCloudProvider,
    GeocodingResolver,
    get_geocoding_resolver,
)
from checkin_console.services.report_state import ReportRegistry, get_report_registry

GEOCODER_URL = "https://geo.test/reverse"

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncSession:
    """Raw DB session for direct queries and seeding in tests."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Geocoding
# ---------------------------------------------------------------------------


def street_address_handler(request: httpx.Request) -> httpx.Response:
    """Answers like BigDataCloud with an address derived from the coordinates."""
    lat = request.url.params.get("latitude")
    lon = request.url.params.get("longitude")
    return httpx.Response(
        200,
        json={
            "street": f"Rua {lat}",
            "locality": f"Bairro {lon}",
            "city": "São Paulo",
            "principalSubdivision": "SP",
            "countryName": "Brasil",
        },
    )


def make_resolver(handler) -> GeocodingResolver:
    return GeocodingResolver(
        providers=[BigDataCloudProvider(url=GEOCODER_URL, language="pt")],
        transport=httpx.MockTransport(handler),
        timeout=1.0,
        enabled=True,
    )


@pytest_asyncio.fixture
async def resolver() -> GeocodingResolver:
    r = make_resolver(street_address_handler)
    yield r
    await r.aclose()


@pytest.fixture
def registry() -> ReportRegistry:
    return ReportRegistry()


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(session_factory, resolver, registry) -> AsyncClient:
    """HTTPX async client bound to the app with all external seams overridden."""

    async def _get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_geocoding_resolver] = lambda: resolver
    app.dependency_overrides[get_report_registry] = lambda: registry

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


async def create_employee(
    db: AsyncSession,
    *,
    username: str,
    email: str,
    password: str = "Senha123!",
    role: str = "security",
    phone: str | None = None,
    status: str = "active",
) -> Employee:
    employee = Employee(
        username=username,
        email=email,
        phone=phone,
        password_hash=hash_password(password),
        role=role,
        status=status,
    )
    db.add(employee)
    await db.commit()
    await db.refresh(employee)
    return employee


def auth_headers(employee: Employee) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(employee.id)})}"}


@pytest_asyncio.fixture
async def admin_user(db: AsyncSession) -> Employee:
    return await create_employee(
        db, username="Admin QA", email="admin@qa.test", password="Admin123!", role="admin"
    )


@pytest.fixture
def admin_headers(admin_user: Employee) -> dict:
    return auth_headers(admin_user)


@pytest_asyncio.fixture
async def guard_user(db: AsyncSession) -> Employee:
    return await create_employee(
        db,
        username="João Silva",
        email="joao@qa.test",
        role="vigia",
        phone="+55 11 99999-0000",
    )


@pytest.fixture
def guard_headers(guard_user: Employee) -> dict:
    return auth_headers(guard_user)


# ---------------------------------------------------------------------------
# Check-in events
# ---------------------------------------------------------------------------


async def add_event(
    db: AsyncSession,
    *,
    user_id: str | None,
    recorded_at: datetime | None = None,
    event_id: str | None = None,
    **payload: Any,
) -> CheckInEvent:
    """Insert a raw event; legacy fields (timestamp shapes, flat lat/lng) go in ``payload``."""
    row = CheckInEvent(
        id=event_id or uuid.uuid4().hex,
        user_id=user_id,
        recorded_at=recorded_at,
        payload=payload,
    )
    db.add(row)
    await db.commit()
    return row
