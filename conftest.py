import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Load .env.test for local test database settings
from dotenv import load_dotenv

env_test_path = os.path.join(os.path.dirname(__file__), ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=True)

# Must be set before the limiter and Stripe client read settings.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_placeholder")

from libs.common.config import get_settings  # noqa: E402
from libs.db.base import Base  # noqa: E402

# Import all models so metadata includes every table
from services.inventory_service import models as _inventory_models  # noqa: F401,E402
from services.members_service import models as _member_models  # noqa: F401,E402
from services.workshops_service import models as _workshop_models  # noqa: F401,E402
from tests.helpers import FakeAuthAdmin, FakeStripeClient  # noqa: E402

# Clear cached settings to reload with new env vars
get_settings.cache_clear()
settings = get_settings()


@pytest_asyncio.fixture
async def test_engine():
    """
    Create a test engine that connects to the database.
    Tests are wrapped in transactions that are rolled back afterwards.
    """
    # Fix for running tests on host where host.docker.internal might not resolve
    db_url = settings.DATABASE_URL.replace("host.docker.internal", "localhost")

    engine = create_async_engine(db_url, future=True)

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except (OperationalError, OSError):
        await engine.dispose()
        pytest.skip("Database not available for tests")

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a database session that rolls back after the test.
    join_transaction_mode="create_savepoint" lets service code commit and
    roll back freely inside the outer transaction.
    """
    connection = await test_engine.connect()
    transaction = await connection.begin()

    session_factory = async_sessionmaker(
        bind=connection,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        join_transaction_mode="create_savepoint",
    )
    session = session_factory()

    try:
        yield session
    finally:
        await session.close()
        await transaction.rollback()
        await connection.close()


@pytest.fixture
def fake_stripe() -> FakeStripeClient:
    return FakeStripeClient()


@pytest.fixture
def fake_auth_admin() -> FakeAuthAdmin:
    return FakeAuthAdmin()


async def _service_client(app, db_session, overrides: dict):
    from libs.db.session import get_async_db

    app.dependency_overrides[get_async_db] = lambda: db_session
    for dependency, value in overrides.items():
        app.dependency_overrides[dependency] = (lambda v: lambda: v)(value)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def members_client(db_session, fake_stripe, fake_auth_admin):
    """AsyncClient for the members service with DB, Stripe and auth admin faked."""
    from libs.common.stripe_client import get_stripe_client
    from libs.common.supabase import get_auth_admin
    from services.members_service.app.main import app

    overrides = {get_stripe_client: fake_stripe, get_auth_admin: fake_auth_admin}
    async for ac in _service_client(app, db_session, overrides):
        yield ac


@pytest_asyncio.fixture
async def workshops_client(db_session, fake_stripe):
    from libs.common.stripe_client import get_stripe_client
    from services.workshops_service.app.main import app

    async for ac in _service_client(app, db_session, {get_stripe_client: fake_stripe}):
        yield ac


@pytest_asyncio.fixture
async def inventory_client(db_session):
    from services.inventory_service.app.main import app

    async for ac in _service_client(app, db_session, {}):
        yield ac


@pytest_asyncio.fixture
async def gateway_client() -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient for the gateway; swap ``clients.*_client`` to fake upstreams."""
    from services.gateway_service.app.main import app

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


@pytest.fixture
def auth_headers() -> dict:
    """
    Placeholder bearer header; auth itself is faked with dependency overrides
    (see tests.helpers.override_auth).
    """
    return {"Authorization": "Bearer mock-token"}
