"""
BikeShop Service Hub - Test Configuration

Pytest fixtures and configuration.
"""

import os

# Tests run against in-memory SQLite; set before the app settings load
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "testing")

from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.database import Base, get_async_session
from app.models.service_request import (
    RequestStatus,
    ServiceRecord,
    ServiceRecordStatus,
    ServiceRequest,
)
from app.models.store import Store
from app.models.user import StaffStorePermission, User, UserRole
from app.utils.security import create_access_token
from main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh in-memory database and session for each test."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

async def _create_user(db: AsyncSession, role: UserRole, name: str, is_active: bool = True) -> User:
    user = User(
        id=uuid4(),
        email=f"{name}-{uuid4().hex[:6]}@example.com",
        first_name=name.title(),
        last_name="Tester",
        role=role,
        is_active=is_active,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.ADMIN, "admin")


@pytest_asyncio.fixture
async def store_owner(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.STORE_OWNER, "owner")


@pytest_asyncio.fixture
async def other_owner(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.STORE_OWNER, "rival")


@pytest_asyncio.fixture
async def customer(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.CUSTOMER, "customer")


@pytest_asyncio.fixture
async def other_customer(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.CUSTOMER, "stranger")


@pytest_asyncio.fixture
async def test_store(db_session: AsyncSession, store_owner: User) -> Store:
    """Create a store owned by store_owner."""
    store = Store(id=uuid4(), name="Spoke & Chain Cycles", owner_id=store_owner.id)
    db_session.add(store)
    await db_session.commit()
    return store


@pytest_asyncio.fixture
async def other_store(db_session: AsyncSession, other_owner: User) -> Store:
    store = Store(id=uuid4(), name="Downhill Repairs", owner_id=other_owner.id)
    db_session.add(store)
    await db_session.commit()
    return store


async def _create_staff(db: AsyncSession, store: Store, name: str, **grant) -> User:
    user = await _create_user(db, UserRole.STAFF, name)
    db.add(StaffStorePermission(user_id=user.id, store_id=store.id, **grant))
    await db.commit()
    return user


@pytest_asyncio.fixture
async def staff_user(db_session: AsyncSession, test_store: Store) -> User:
    """Staff on the default preset (no quotation or invoice rights)."""
    return await _create_staff(db_session, test_store, "mechanic")


@pytest_asyncio.fixture
async def senior_staff(db_session: AsyncSession, test_store: Store) -> User:
    return await _create_staff(db_session, test_store, "senior", preset="senior_staff")


@pytest_asyncio.fixture
async def billing_staff(db_session: AsyncSession, test_store: Store) -> User:
    """Staff with an explicit permission list covering billing."""
    return await _create_staff(
        db_session,
        test_store,
        "cashier",
        permissions=["view_invoices", "create_invoices", "update_invoices"],
    )


@pytest_asyncio.fixture
async def service_request(
    db_session: AsyncSession,
    test_store: Store,
    customer: User,
) -> ServiceRequest:
    """A pending service request at test_store."""
    request = ServiceRequest(
        id=uuid4(),
        customer_id=customer.id,
        store_id=test_store.id,
        bike_description="Trek Domane SL5",
        description="Gears slipping, brakes squeal",
        status=RequestStatus.PENDING,
    )
    db_session.add(request)
    await db_session.commit()
    return request


@pytest_asyncio.fixture
async def completed_record(
    db_session: AsyncSession,
    service_request: ServiceRequest,
) -> ServiceRecord:
    """A completed service record for service_request."""
    record = ServiceRecord(
        id=uuid4(),
        service_request_id=service_request.id,
        status=ServiceRecordStatus.COMPLETED,
        work_summary="Replaced chain and brake pads",
    )
    db_session.add(record)
    await db_session.commit()
    return record


@pytest.fixture
def auth_headers():
    """Build authorization headers for a user."""

    def _headers(user: User) -> dict:
        token = create_access_token(data={"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}

    return _headers
