"""Shared fixtures.

Every test gets its own file-backed SQLite database. ``NullPool`` gives each
session a separate connection, so two sessions can interleave the way two
concurrent requests would.
"""

import os

os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite://")
os.environ.setdefault("PAYMENT_GATEWAY", "sandbox")
os.environ.setdefault("ENVIRONMENT", "development")

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import messbook.models  # noqa: F401
from messbook import database
from messbook.database import Base
from messbook.gateways.sandbox import SandboxGateway
from messbook.models.listing import Listing
from messbook.models.user import User
from messbook.services.booking_service import booking_service
from messbook.services.gateway_service import gateway_service
from messbook.services.notification_service import notification_service


@pytest_asyncio.fixture
async def session_maker(tmp_path, monkeypatch):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'messbook.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maker = async_sessionmaker(engine, expire_on_commit=False)
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "async_session_maker", maker)
    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture(autouse=True)
def dispatched(monkeypatch):
    """Events handed to the worker after commit, in order."""
    events = []
    monkeypatch.setattr(notification_service, "dispatch", events.append)
    return events


@pytest.fixture(autouse=True)
def sandbox(monkeypatch):
    gateway = SandboxGateway()
    monkeypatch.setattr(gateway_service, "_gateways", {gateway.gateway_type: gateway})
    return gateway


@pytest_asyncio.fixture
async def users(db):
    owner = User(email="owner@example.com", name="Karim Owner", role="owner")
    renter = User(email="renter@example.com", name="Rahim Renter", role="renter", phone="01711111111")
    other_renter = User(email="other@example.com", name="Sadia Renter", role="renter")
    admin = User(email="admin@example.com", name="Admin", role="admin")
    suspended = User(email="suspended@example.com", name="Suspended", role="renter", is_active=False)
    db.add_all([owner, renter, other_renter, admin, suspended])
    await db.commit()
    return SimpleNamespace(
        owner=owner, renter=renter, other_renter=other_renter, admin=admin, suspended=suspended
    )


@pytest_asyncio.fixture
async def listing(db, users):
    listing = Listing(
        owner_id=users.owner.id,
        title="Seat in a 3-bed mess",
        address="Mirpur 10, Dhaka",
        monthly_rate=4500,
        advance_months=2,
    )
    db.add(listing)
    await db.commit()
    return listing


@pytest.fixture
def create_booking(db, listing, users):
    """Create and commit a pending booking for the default renter."""

    async def _create(renter=None, payable_amount=9000):
        booking = await booking_service.create(
            db,
            listing_id=listing.id,
            renter=renter or users.renter,
            check_in_date=(datetime.now(UTC) + timedelta(days=7)).date(),
            payable_amount=payable_amount,
            tenant_name="Rahim Renter",
            tenant_phone="01711111111",
            tenant_email="renter@example.com",
        )
        await db.commit()
        return booking

    return _create


@pytest_asyncio.fixture
async def client(session_maker):
    from messbook.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
