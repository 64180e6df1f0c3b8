"""
Test fixtures for the authgate test suite.

This module provides shared fixtures used across all test files:

  - test_settings: Settings isolated from the environment and any .env file
  - db_engine / db_session: Fresh in-memory SQLite database for each test
  - app: A FastAPI app built by create_app() and wired to the test database
  - client: Async HTTP test client (unauthenticated)
  - authenticated_client: Test client with a registered regular user and token
  - second_authenticated_client: Another regular user, for cross-user tests
  - admin_client: Test client with a registered allow-listed (admin) user
  - gateway / ctx: The app's AuthGateway and a RequestContext for direct calls

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    Each test gets a completely fresh database, so no state leaks between
    tests. The in-memory engine holds a single connection, so a test should
    use either db_session or the HTTP clients, not both at once.
  - httpx's ASGITransport doesn't run the app's lifespan, so the fixture
    attaches the test session factory to app.state itself; get_db() then
    works exactly as it does in production.
  - Each authenticated client is its own AsyncClient, so a test can act as
    a regular user and an administrator side by side.
  - The admin_client registers an address from ADMIN_EMAILS, which exercises
    the real allow-list path rather than editing the database.
  - Rate limiting is off here; tests/test_rate_limit.py builds its own app.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.config import Settings
from authgate.database import Base, create_engine, create_session_factory, init_models
from authgate.main import create_app
from authgate.services.audit_log import RequestContext


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_SECRET_KEY = "test-secret-key-not-for-production"

ADMIN_EMAIL = "admin@example.com"
# Allow-listed but never registered by a fixture
OPS_EMAIL = "ops@example.com"

USER_CREDENTIALS = {
    "name": "Test User",
    "email": "testuser@example.com",
    "password": "SecurePass123!",
}
SECOND_USER_CREDENTIALS = {
    "name": "Second User",
    "email": "seconduser@example.com",
    "password": "SecurePass456!",
}
ADMIN_CREDENTIALS = {
    "name": "Admin User",
    "email": ADMIN_EMAIL,
    "password": "AdminPass123!",
}


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        LOG_LEVEL="WARNING",
        DATABASE_URL=TEST_DATABASE_URL,
        SECRET_KEY=TEST_SECRET_KEY,
        ADMIN_EMAILS=[ADMIN_EMAIL, OPS_EMAIL],
        RATE_LIMIT_ENABLED=False,
    )


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_engine(TEST_DATABASE_URL)
    await init_models(engine)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncSession:
    """Provide an async session bound to the test engine."""
    session_factory = create_session_factory(db_engine)
    async with session_factory() as session:
        yield session


@pytest.fixture
def app(test_settings, db_engine):
    application = create_app(test_settings)
    application.state.session_factory = create_session_factory(db_engine)
    return application


@pytest.fixture
def gateway(app):
    return app.state.gateway


@pytest.fixture
def ctx():
    return RequestContext(ip_address="127.0.0.1", user_agent="pytest")


def _make_client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _register_and_authorize(client: AsyncClient, credentials: dict) -> AsyncClient:
    response = await client.post("/api/auth/register", json=credentials)
    assert response.status_code == 200, f"Register failed: {response.text}"
    client.headers["Authorization"] = f"Bearer {response.json()['token']}"
    return client


@pytest_asyncio.fixture
async def client(app):
    """Async HTTP test client, no Authorization header."""
    async with _make_client(app) as ac:
        yield ac


@pytest_asyncio.fixture
async def authenticated_client(app):
    """
    Test client with a registered regular user.

    Registers through the real endpoint and sets the Authorization header
    for all subsequent requests.
    """
    async with _make_client(app) as ac:
        yield await _register_and_authorize(ac, USER_CREDENTIALS)


@pytest_asyncio.fixture
async def second_authenticated_client(app):
    """
    A second regular user for cross-user checks.

    Use alongside authenticated_client to verify that one user can't see
    another user's events.
    """
    async with _make_client(app) as ac:
        yield await _register_and_authorize(ac, SECOND_USER_CREDENTIALS)


@pytest_asyncio.fixture
async def admin_client(app):
    """
    Test client with an administrator.

    The address is on ADMIN_EMAILS, so registration alone assigns the admin
    role and the returned token carries it.
    """
    async with _make_client(app) as ac:
        yield await _register_and_authorize(ac, ADMIN_CREDENTIALS)
