import uuid
from collections.abc import AsyncGenerator
from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from repairbid.common.clock import utcnow
from repairbid.common.enums import RequestStatus
from repairbid.db.base import Base
from repairbid.db.models import *  # noqa: F401,F403 - ensure all models loaded
from repairbid.tests.helpers import STOCKHOLM

# Use SQLite for testing - remap JSONB to JSON
TEST_DATABASE_URL = "sqlite+aiosqlite://"


# Make JSONB render as JSON for SQLite
@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(db_session):
    from repairbid.api.deps import get_db
    from repairbid.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_workshop(db_session):
    """Factory for persisted workshops; defaults to verified and active in central Stockholm."""
    from repairbid.db.models.workshop import Workshop

    async def _make(**overrides):
        values = {
            "id": uuid.uuid4(),
            "user_id": uuid.uuid4(),
            "company_name": f"Workshop {uuid.uuid4().hex[:6]}",
            "email": f"shop_{uuid.uuid4().hex[:8]}@test.com",
            "latitude": STOCKHOLM[0],
            "longitude": STOCKHOLM[1],
            "rating": 4.0,
            "review_count": 10,
            "is_verified": True,
            "is_active": True,
        }
        values.update(overrides)
        workshop = Workshop(**values)
        db_session.add(workshop)
        await db_session.flush()
        await db_session.refresh(workshop)
        return workshop

    return _make


@pytest.fixture
def make_request(db_session):
    """Factory for persisted repair requests; ``age`` backdates creation and expiry."""
    from repairbid.db.models.request import RepairRequest

    async def _make(age: timedelta = timedelta(0), **overrides):
        created_at = utcnow() - age
        values = {
            "id": uuid.uuid4(),
            "customer_id": uuid.uuid4(),
            "vehicle_id": uuid.uuid4(),
            "report_id": uuid.uuid4(),
            "latitude": STOCKHOLM[0],
            "longitude": STOCKHOLM[1],
            "address": "Drottninggatan 1",
            "city": "Stockholm",
            "postal_code": "111 51",
            "description": "Brake pads squeal",
            "status": RequestStatus.IN_BIDDING.value,
            "created_at": created_at,
            "expires_at": created_at + timedelta(hours=48),
        }
        values.update(overrides)
        request = RepairRequest(**values)
        db_session.add(request)
        await db_session.flush()
        await db_session.refresh(request)
        return request

    return _make

