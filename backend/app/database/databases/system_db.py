"""
System database configuration.

system_db.db_registry holds one document per service database with its
collections and schema version. A version is bumped whenever a database's
documents or indexes change shape; the registry keeps the version it replaced
so an upgrade is visible after startup.
"""

DB_NAME = "system_db"

SCHEMA_VERSIONS = {
    "ledger_db": "1.1",  # transactions.suggestion_key
    "market_data_db": "1.1",  # monthly_prices
    DB_NAME: "1.0",
}


def schema_version(db_name: str) -> str:
    """Current schema version of a registered database."""
    return SCHEMA_VERSIONS[db_name]


class Collections:
    """Collection names in system_db."""
    DB_REGISTRY = "db_registry"
    METADATA = "_metadata"


# Manifest for registry
DB_MANIFEST = {
    "db_name": DB_NAME,
    "purpose": "Registry of ledger service databases and their schema versions",
    "collections": [Collections.DB_REGISTRY, Collections.METADATA],
    "access_level": "system",
}
