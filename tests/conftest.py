"""Shared test fixtures — single in-memory test DB for all test modules."""
from __future__ import annotations

import os

os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Shared in-memory DB with StaticPool so every connection sees the same data
from sqlalchemy.pool import StaticPool

from storefront.db.engine import get_session
from storefront.db.tables import Base

TEST_DB_URL = "sqlite+aiosqlite:///file:test?mode=memory&cache=shared&uri=true"
ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}

test_engine = create_async_engine(
    TEST_DB_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSession = async_sessionmaker(test_engine, expire_on_commit=False, class_=AsyncSession)


async def override_get_session():
    async with TestSession() as session:
        yield session


# Import app and override BEFORE any test module imports app
from storefront.api.main import app  # noqa: E402

app.dependency_overrides[get_session] = override_get_session

# Counter projection opens its own sessions
import storefront.analytics.counters as _counters_mod  # noqa: E402
import storefront.db.engine as _engine_mod  # noqa: E402

_engine_mod.async_session = TestSession
_engine_mod.engine = test_engine
_counters_mod.async_session = TestSession


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create tables before each test, drop after."""
    import storefront.analytics.tables  # noqa: F401

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    from storefront.middleware.metrics import metrics
    from storefront.middleware.rate_limit import reset_store
    reset_store()
    metrics.reset()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def session():
    async with TestSession() as s:
        yield s


@pytest_asyncio.fixture
async def catalog(session):
    """A small active catalog: two categories (one nested), three products, a banner and a tag."""
    from storefront.db.tables import CategoryRow, HeroBannerRow, ProductRow, TagRow

    session.add_all([
        CategoryRow(id="c-furniture", name="Furniture", slug="furniture"),
        CategoryRow(id="c-chairs", name="Chairs", slug="chairs", parent_id="c-furniture"),
        CategoryRow(id="c-hidden", name="Hidden", slug="hidden", is_active=False),
    ])
    await session.flush()
    session.add_all([
        ProductRow(id="p1", name="Chair", slug="chair", category_id="c-chairs"),
        ProductRow(id="p2", name="Stool", slug="stool", category_id="c-chairs"),
        ProductRow(id="p3", name="Sofa", slug="sofa", category_id="c-furniture"),
        ProductRow(id="p-off", name="Retired", slug="retired", category_id="c-chairs", is_active=False),
        HeroBannerRow(id="b1", name="Summer Sale"),
        TagRow(id="t1", name="Oak", slug="oak"),
    ])
    await session.commit()
    return session


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
