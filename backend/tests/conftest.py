"""
Pytest fixtures for test database, client, and seeded inventory.

Each test gets its own SQLite file so concurrent sessions exercise real
row locking. Set TEST_DATABASE_URL to run the suite against PostgreSQL.
"""

import os

# Must be set before boxoffice is imported: settings are read once.
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SWEEPER_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./boxoffice_test.db")

from datetime import timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from boxoffice.db.base import Base
from boxoffice.db.session import get_db
from boxoffice.db.types import utcnow
from boxoffice.main import app
from boxoffice.models import Event, PromoCode, TicketPriceTier, TicketType


def _sqlite_immediate_transactions(engine) -> None:
    """Take the write lock at BEGIN so concurrent writers queue instead of deadlocking."""

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_async_engine(url, echo=False)
    if url.startswith("sqlite"):
        _sqlite_immediate_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB dependency with a fresh test session per request."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _add(session_factory, *objects):
    async with session_factory() as session:
        session.add_all(objects)
        await session.commit()
    return objects


@pytest_asyncio.fixture
async def test_event(session_factory) -> Event:
    (event_,) = await _add(session_factory, Event(title="Test Concert"))
    return event_


@pytest_asyncio.fixture
async def other_event(session_factory) -> Event:
    (event_,) = await _add(session_factory, Event(title="Other Show"))
    return event_


@pytest_asyncio.fixture
async def general_admission(session_factory, test_event: Event) -> TicketType:
    """10 tickets at $100.00, no per-ticket fee."""
    (ticket_type,) = await _add(
        session_factory,
        TicketType(
            event_id=test_event.id,
            name="General Admission",
            capacity=10,
            price_cents=10000,
            fee_cents=0,
            currency="USD",
        ),
    )
    return ticket_type


@pytest_asyncio.fixture
async def last_seat(session_factory, test_event: Event) -> TicketType:
    """A category with a single ticket left to fight over."""
    (ticket_type,) = await _add(
        session_factory,
        TicketType(event_id=test_event.id, name="Front Row", capacity=1, price_cents=25000),
    )
    return ticket_type


@pytest_asyncio.fixture
async def limited_vip(session_factory, test_event: Event) -> TicketType:
    """VIP tickets capped at 2 per order, with a $5.00 per-ticket fee."""
    (ticket_type,) = await _add(
        session_factory,
        TicketType(
            event_id=test_event.id,
            name="VIP",
            capacity=20,
            price_cents=5000,
            fee_cents=500,
            per_order_limit=2,
        ),
    )
    return ticket_type


@pytest_asyncio.fixture
async def early_bird(session_factory, general_admission: TicketType) -> TicketPriceTier:
    """$80.00 for general admission until tomorrow."""
    now = utcnow()
    (tier,) = await _add(
        session_factory,
        TicketPriceTier(
            ticket_type_id=general_admission.id,
            starts_at=now - timedelta(days=1),
            ends_at=now + timedelta(days=1),
            min_qty=1,
            price_cents=8000,
        ),
    )
    return tier


@pytest_asyncio.fixture
async def promo_codes(session_factory, test_event: Event, other_event: Event) -> dict[str, PromoCode]:
    now = utcnow()
    codes = {
        "SAVE10": PromoCode(code="SAVE10", discount_type="percentage", discount_value=Decimal("10")),
        "FIVEOFF": PromoCode(code="FIVEOFF", discount_type="fixed", discount_value=Decimal("500")),
        "HUGE": PromoCode(code="HUGE", discount_type="fixed", discount_value=Decimal("1000000")),
        "OLD": PromoCode(
            code="OLD",
            discount_type="percentage",
            discount_value=Decimal("50"),
            ends_at=now - timedelta(days=1),
        ),
        "SOON": PromoCode(
            code="SOON",
            discount_type="percentage",
            discount_value=Decimal("50"),
            starts_at=now + timedelta(days=1),
        ),
        "PAUSED": PromoCode(
            code="PAUSED", discount_type="percentage", discount_value=Decimal("50"), active=False
        ),
        "USEDUP": PromoCode(
            code="USEDUP",
            discount_type="percentage",
            discount_value=Decimal("50"),
            max_uses=3,
            redemptions=3,
        ),
        "OTHERONLY": PromoCode(
            code="OTHERONLY",
            discount_type="percentage",
            discount_value=Decimal("50"),
            event_id=other_event.id,
        ),
    }
    await _add(session_factory, *codes.values())
    return codes


@pytest_asyncio.fixture
async def load_ticket_type(session_factory):
    """Read a ticket type's counters in a short-lived session of its own."""

    async def _load(ticket_type_id: int) -> TicketType:
        async with session_factory() as session:
            return await session.get(TicketType, ticket_type_id)

    return _load
