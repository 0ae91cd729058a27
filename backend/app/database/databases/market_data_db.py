"""
Market data database configuration.
Caches dividend events and monthly closing prices fetched from the quote
provider.

Live quotes are cached in Redis, not here.
"""
from motor.motor_asyncio import AsyncIOMotorDatabase

DB_NAME = "market_data_db"


class Collections:
    """Collection names in market_data_db."""
    DIVIDEND_EVENTS = "dividend_events"
    DIVIDEND_SYNC = "dividend_sync"  # Last fetch time per ticker
    MONTHLY_PRICES = "monthly_prices"
    PRICE_HISTORY_SYNC = "price_history_sync"  # Last fetch time per ticker
    METADATA = "_metadata"

    INDEXES = {
        "dividend_events": [
            {"keys": [("ticker", 1), ("ex_date", 1), ("rate", 1)], "unique": True},
            {"keys": [("ticker", 1), ("ex_date", -1)]},
        ],
        "monthly_prices": [
            {"keys": [("ticker", 1), ("month", 1)], "unique": True},
        ],
    }


async def create_market_data_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create indexes for market data collections."""
    for collection_name, indexes in Collections.INDEXES.items():
        collection = db[collection_name]
        for index_def in indexes:
            keys = index_def["keys"]
            kwargs = {k: v for k, v in index_def.items() if k != "keys"}
            await collection.create_index(keys, **kwargs)


# Manifest for registry
DB_MANIFEST = {
    "db_name": DB_NAME,
    "purpose": "Dividend event and monthly price cache from the quote provider",
    "collections": [
        Collections.DIVIDEND_EVENTS,
        Collections.DIVIDEND_SYNC,
        Collections.MONTHLY_PRICES,
        Collections.PRICE_HISTORY_SYNC,
        Collections.METADATA,
    ],
    "access_level": "standard",
}
