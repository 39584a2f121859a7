"""
Pytest fixtures for test database, client, residents and resources.

Each test gets a fresh SQLite file database under tmp_path. Point
TEST_DATABASE_URL at a PostgreSQL database to run the same suite against
the production dialect.

Requests and service calls each open their own session, like separate API
workers would, so a rollback in one never expires objects held by another.
"""

import os

# Must be set before the application settings are first read
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_ENABLED", "false")

from datetime import date, time
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from society_booking.core.config import Settings, get_settings
from society_booking.core.security import create_access_token
from society_booking.db.base import Base
from society_booking.db.session import build_engine, get_db
from society_booking.main import app
from society_booking.models import Reservation, Resource, User
from society_booking.services.admission_controller import AdmissionController
from society_booking.services.catalog_service import ResourceCatalog
from society_booking.services.conflict_checker import ReservationCandidate
from society_booking.services.directory import Actor, UserDirectory
from society_booking.services.interfaces.local_admission import LocalLockAdmission
from society_booking.services.ledger import ReservationLedger

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

BOOKING_DAY = date(2024, 6, 1)


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Create tables, yield the engine, then drop tables for isolation."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'society_booking_test.db'}"
    test_engine = build_engine(url, echo=False)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    return Settings(
        REDIS_ENABLED=False,
        ADMISSION_STRATEGY="local",
        RESERVATION_AUTO_CONFIRM=False,
        ADMIN_RESERVATIONS_AUTO_CONFIRM=True,
        ADMISSION_MAX_RETRIES=3,
        ADMISSION_LOCK_TIMEOUT_SECONDS=5.0,
    )


@pytest.fixture
def gate(settings: Settings) -> LocalLockAdmission:
    return LocalLockAdmission(timeout=settings.ADMISSION_LOCK_TIMEOUT_SECONDS)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, settings, gate) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a fresh DB session per request and the local gate installed."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    # ASGITransport does not run the lifespan hook that normally installs it
    app.state.admission_strategy = gate

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def submit(session_factory, settings, gate):
    """
    Run one submission through the admission controller in its own session.

    Keyword overrides: ``settings``, ``gate`` and ``ledger_factory`` (a
    callable taking the session) for fault injection.
    """

    async def _submit(candidate: ReservationCandidate, actor: Actor, **overrides) -> Reservation:
        async with session_factory() as session:
            ledger_factory = overrides.get("ledger_factory", ReservationLedger)
            controller = AdmissionController(
                session,
                ResourceCatalog(session),
                ledger_factory(session),
                UserDirectory(session),
                overrides.get("gate", gate),
                overrides.get("settings", settings),
            )
            return await controller.submit(candidate, actor)

    return _submit


def make_candidate(resource, user, start="10:00", end="12:00", day=BOOKING_DAY) -> ReservationCandidate:
    return ReservationCandidate(
        resource_id=resource.id,
        requester_id=user.id,
        booking_date=day,
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end),
    )


@pytest.fixture
def candidate():
    return make_candidate


async def _add(session: AsyncSession, obj):
    session.add(obj)
    await session.commit()
    await session.refresh(obj)
    return obj


@pytest_asyncio.fixture
async def resident(db_session: AsyncSession) -> User:
    return await _add(
        db_session,
        User(email="asha@society.test", full_name="Asha Rao", unit_number="A-101", role="resident"),
    )


@pytest_asyncio.fixture
async def neighbour(db_session: AsyncSession) -> User:
    return await _add(
        db_session,
        User(email="vikram@society.test", full_name="Vikram Shah", unit_number="B-204", role="resident"),
    )


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _add(
        db_session,
        User(email="secretary@society.test", full_name="Society Secretary", role="admin"),
    )


@pytest_asyncio.fixture
async def inactive_resident(db_session: AsyncSession) -> User:
    return await _add(
        db_session,
        User(email="moved.out@society.test", full_name="Former Owner", unit_number="C-303", is_active=False),
    )


@pytest_asyncio.fixture
async def guest_parking(db_session: AsyncSession) -> Resource:
    """Guest Parking Slot 1: capacity 1, one per resident per day, two days in a row."""
    return await _add(
        db_session,
        Resource(
            name="Guest Parking Slot 1",
            category="guest_parking",
            location="Basement B1",
            capacity=1,
            single_booking_per_user_per_day=True,
            max_consecutive_days=2,
        ),
    )


@pytest_asyncio.fixture
async def hall(db_session: AsyncSession) -> Resource:
    return await _add(db_session, Resource(name="Clubhouse Hall", category="hall", capacity=1))


@pytest_asyncio.fixture
async def pool(db_session: AsyncSession) -> Resource:
    """Swimming pool admitting three overlapping reservations."""
    return await _add(db_session, Resource(name="Swimming Pool", category="pool", capacity=3))


@pytest_asyncio.fixture
async def closed_garden(db_session: AsyncSession) -> Resource:
    return await _add(
        db_session,
        Resource(name="Terrace Garden", category="garden", capacity=1, is_active=False),
    )


def bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest.fixture
def resident_headers(resident: User) -> dict:
    return bearer(resident)


@pytest.fixture
def neighbour_headers(neighbour: User) -> dict:
    return bearer(neighbour)


@pytest.fixture
def admin_headers(admin: User) -> dict:
    return bearer(admin)


@pytest.fixture
def headers_for():
    """Authorization headers for any user created inside a test."""
    return bearer
