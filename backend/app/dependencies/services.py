"""
Service dependencies for routes.
"""
from app.database.connections import get_ledger_database, get_market_data_database, get_redis_client
from app.services.wiring import LedgerServices, build_services


async def get_services() -> LedgerServices:
    """Dependency to get the ledger service graph."""
    return build_services(
        await get_ledger_database(),
        await get_market_data_database(),
        await get_redis_client(),
    )
