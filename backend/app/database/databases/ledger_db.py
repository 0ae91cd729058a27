"""
Ledger database configuration.
Stores portfolio configurations, target allocations and the transaction ledger.

Structure:
- portfolios: Portfolio configuration, contribution policy and lease lock
- asset_allocations: Target weight per (portfolio, ticker)
- transactions: The ledger, manual and auto-suggested rows
- portfolio_metrics: Cached summary metrics (memoized view)
- outbox: Suggestion regeneration tasks
- backtest_seeds: Backtest configurations generated from live portfolios
- _metadata: Database metadata
"""
from motor.motor_asyncio import AsyncIOMotorDatabase

DB_NAME = "ledger_db"


class Collections:
    """Collection names in ledger_db."""
    PORTFOLIOS = "portfolios"
    ASSET_ALLOCATIONS = "asset_allocations"
    TRANSACTIONS = "transactions"
    PORTFOLIO_METRICS = "portfolio_metrics"
    OUTBOX = "outbox"
    BACKTEST_SEEDS = "backtest_seeds"
    METADATA = "_metadata"

    # Index definitions for each collection
    INDEXES = {
        "portfolios": [
            {"keys": [("user_id", 1)]},
        ],
        "asset_allocations": [
            {"keys": [("portfolio_id", 1), ("ticker", 1)], "unique": True},
            {"keys": [("portfolio_id", 1), ("is_active", 1)]},
        ],
        "transactions": [
            {"keys": [("portfolio_id", 1), ("date", 1)]},
            {"keys": [("portfolio_id", 1), ("status", 1)]},
            # One pending auto-suggestion per (portfolio, suggestion_key)
            {
                "keys": [("portfolio_id", 1), ("suggestion_key", 1)],
                "unique": True,
                "name": "uniq_pending_suggestion_key",
                "partialFilterExpression": {
                    "status": "PENDING",
                    "is_auto_suggested": True,
                },
            },
        ],
        "outbox": [
            {"keys": [("status", 1), ("available_at", 1)]},
            {"keys": [("portfolio_id", 1), ("kind", 1), ("status", 1)]},
        ],
        "backtest_seeds": [
            {"keys": [("source_portfolio_id", 1)]},
        ],
    }

    # Indexes from earlier schema versions, dropped on startup
    RETIRED_INDEXES = {
        "transactions": ["uniq_pending_auto_suggestion"],
    }


async def create_ledger_indexes(db: AsyncIOMotorDatabase) -> None:
    """Drop retired indexes and create indexes for ledger database collections."""
    for collection_name, names in Collections.RETIRED_INDEXES.items():
        collection = db[collection_name]
        existing = await collection.index_information()
        for name in names:
            if name in existing:
                await collection.drop_index(name)

    for collection_name, indexes in Collections.INDEXES.items():
        collection = db[collection_name]
        for index_def in indexes:
            keys = index_def["keys"]
            kwargs = {k: v for k, v in index_def.items() if k != "keys"}
            await collection.create_index(keys, **kwargs)


# Manifest for registry
DB_MANIFEST = {
    "db_name": DB_NAME,
    "purpose": "Portfolio configurations, allocations and transaction ledger",
    "collections": [
        Collections.PORTFOLIOS,
        Collections.ASSET_ALLOCATIONS,
        Collections.TRANSACTIONS,
        Collections.PORTFOLIO_METRICS,
        Collections.OUTBOX,
        Collections.BACKTEST_SEEDS,
        Collections.METADATA,
    ],
    "access_level": "standard",
}
