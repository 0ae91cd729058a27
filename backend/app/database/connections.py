"""
Connection management for the ledger service.

One MongoDB client and one Redis client are shared per process. The Mongo
client is tz-aware so stored dates come back as UTC, and it fails fast when no
server is selectable so readiness checks don't hang. Services only reach the
databases declared under app.database.databases.
"""
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from redis.asyncio import Redis

from app.config import get_settings
from app.database.databases import ledger_db, market_data_db, system_db

KNOWN_DATABASES = frozenset({ledger_db.DB_NAME, market_data_db.DB_NAME, system_db.DB_NAME})

# Global connection instances
_mongo_client: Optional[AsyncIOMotorClient] = None
_redis_client: Optional[Redis] = None


def mongo_client_options() -> dict[str, Any]:
    """Client options shared by the API and the outbox worker."""
    settings = get_settings()
    return {
        "tz_aware": True,
        "appname": settings.mongo_app_name,
        "serverSelectionTimeoutMS": settings.mongo_server_selection_timeout_ms,
    }


async def get_mongo_client() -> AsyncIOMotorClient:
    """Get or create the shared MongoDB client."""
    global _mongo_client
    if _mongo_client is None:
        _mongo_client = AsyncIOMotorClient(get_settings().mongo_uri, **mongo_client_options())
    return _mongo_client


async def get_redis_client() -> Redis:
    """Get or create the shared Redis client (quote cache)."""
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        _redis_client = Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            socket_timeout=settings.redis_socket_timeout_seconds,
            decode_responses=True,
        )
    return _redis_client


async def ping_mongo() -> AsyncIOMotorClient:
    """Return the shared client once the server answers a ping."""
    client = await get_mongo_client()
    await client.admin.command("ping")
    return client


async def ping_redis() -> Redis:
    redis = await get_redis_client()
    await redis.ping()
    return redis


async def close_connections() -> None:
    """Close the shared clients; the next getter call reconnects."""
    global _mongo_client, _redis_client

    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


async def get_database(db_name: str) -> AsyncIOMotorDatabase:
    """
    Get one of the service's databases by name.

    Raises:
        ValueError: The name is not a declared database
    """
    if db_name not in KNOWN_DATABASES:
        raise ValueError(f"Unknown database: {db_name}")
    client = await get_mongo_client()
    return client[db_name]


async def get_ledger_database() -> AsyncIOMotorDatabase:
    return await get_database(ledger_db.DB_NAME)


async def get_market_data_database() -> AsyncIOMotorDatabase:
    return await get_database(market_data_db.DB_NAME)
