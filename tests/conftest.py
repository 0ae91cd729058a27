"""
Global test fixtures for the portfolio ledger.

This module provides shared fixtures for all tests including:
- Mock MongoDB (mongomock-motor)
- Mock Redis (fakeredis)
- Authenticated users and tokens
- FastAPI test client with mocked startup
"""

import sys
from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))


# =============================================================================
# MongoDB Fixtures (mongomock)
# =============================================================================

@pytest_asyncio.fixture
async def mock_async_mongo_client():
    """
    Create an async mock MongoDB client using mongomock-motor.
    """
    try:
        from mongomock_motor import AsyncMongoMockClient
        client = AsyncMongoMockClient()
        yield client
        client.close()
    except ImportError:
        pytest.skip("mongomock-motor not installed")


@pytest_asyncio.fixture
async def mock_ledger_db(mock_async_mongo_client):
    """Provide mock ledger_db database."""
    db = mock_async_mongo_client["ledger_db"]
    await db.portfolios.create_index("user_id")
    await db.asset_allocations.create_index([("portfolio_id", 1), ("ticker", 1)], unique=True)
    await db.transactions.create_index([("portfolio_id", 1), ("date", 1)])
    yield db


@pytest_asyncio.fixture
async def mock_market_data_db(mock_async_mongo_client):
    """Provide mock market_data_db database."""
    db = mock_async_mongo_client["market_data_db"]
    await db.dividend_events.create_index([("ticker", 1), ("ex_date", 1), ("rate", 1)], unique=True)
    await db.monthly_prices.create_index([("ticker", 1), ("month", 1)], unique=True)
    yield db


# =============================================================================
# Redis Fixtures (fakeredis)
# =============================================================================

@pytest_asyncio.fixture
async def mock_async_redis():
    """
    Create an async mock Redis client using fakeredis.
    """
    try:
        import fakeredis.aioredis
        redis_client = fakeredis.aioredis.FakeRedis(decode_responses=True)
        yield redis_client
        await redis_client.flushall()
        await redis_client.aclose()
    except ImportError:
        pytest.skip("fakeredis with aioredis not installed")


# =============================================================================
# User Fixtures
# =============================================================================

@pytest.fixture
def test_user():
    """A free-tier user."""
    from app.models.user import User, UserRole
    return User(id="user-1", roles=[UserRole.USER])


@pytest.fixture
def premium_user():
    """A premium user with no portfolio limit."""
    from app.models.user import User, UserRole
    return User(id="user-premium", roles=[UserRole.PREMIUM_USER])


@pytest.fixture
def other_user():
    """A user that owns nothing the tests create."""
    from app.models.user import User, UserRole
    return User(id="user-2", roles=[UserRole.USER])


@pytest.fixture
def auth_token(test_user) -> str:
    """A valid JWT for test_user."""
    from app.core.security import create_access_token
    return create_access_token(test_user.id, list(test_user.roles))


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================

@pytest.fixture
def app():
    """
    Create FastAPI app for testing.

    Note: This imports the actual app and should be used with mocked
    database connections.
    """
    from app.main import app
    return app


@pytest.fixture
def client(app) -> Generator:
    """
    Create a TestClient for the FastAPI app.

    Startup registry sync and index creation are mocked so no MongoDB
    server is needed.
    """
    with patch("app.main.sync_registry", new=AsyncMock()), \
         patch("app.main.create_indexes", new=AsyncMock()), \
         patch("app.main.close_connections", new=AsyncMock()), \
         patch("app.main.close_quote_api", new=AsyncMock()):
        with TestClient(app) as c:
            yield c
    app.dependency_overrides.clear()


def make_authenticated_request(client: TestClient, method: str, url: str, token: str, **kwargs):
    """
    Helper to make authenticated requests with token as query param.

    Args:
        client: TestClient instance
        method: HTTP method (get, post, put, delete)
        url: Endpoint URL
        token: JWT token
        **kwargs: Additional arguments for the request

    Returns:
        Response object
    """
    separator = "&" if "?" in url else "?"
    authenticated_url = f"{url}{separator}token={token}"

    request_method = getattr(client, method.lower())
    return request_method(authenticated_url, **kwargs)
