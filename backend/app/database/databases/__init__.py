"""
Database definitions and collection constants.
"""
from app.database.databases import ledger_db, market_data_db, system_db

__all__ = ["ledger_db", "market_data_db", "system_db"]
