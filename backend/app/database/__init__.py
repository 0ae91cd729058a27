"""
Database module - MongoDB and Redis connections and database definitions.
"""
from app.database.connections import (
    get_mongo_client,
    get_redis_client,
    close_connections,
    get_database,
    get_ledger_database,
    get_market_data_database,
)
from app.database.databases import ledger_db, market_data_db, system_db

__all__ = [
    "get_mongo_client",
    "get_redis_client",
    "close_connections",
    "get_database",
    "get_ledger_database",
    "get_market_data_database",
    "ledger_db",
    "market_data_db",
    "system_db",
]
