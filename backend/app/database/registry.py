"""
Database registry management.
Ensures all databases and collections are registered on startup.
"""
import logging
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorClient

from app.database.databases import ledger_db, market_data_db, system_db

logger = logging.getLogger(__name__)

# All database manifests
ALL_DB_MANIFESTS = [
    ledger_db.DB_MANIFEST,
    market_data_db.DB_MANIFEST,
    system_db.DB_MANIFEST,
]


async def sync_registry(client: AsyncIOMotorClient) -> None:
    """
    Synchronize the database registry on application startup.
    Ensures all databases are registered in system_db.db_registry.
    """
    sys_db = client[system_db.DB_NAME]
    registry_collection = sys_db[system_db.Collections.DB_REGISTRY]
    now = datetime.now(timezone.utc)

    for manifest in ALL_DB_MANIFESTS:
        db_name = manifest["db_name"]
        version = system_db.schema_version(db_name)

        fields = {
            "purpose": manifest["purpose"],
            "collections": manifest["collections"],
            "access_level": manifest["access_level"],
            "schema_version": version,
            "updated_at": now,
        }
        existing = await registry_collection.find_one({"_id": db_name})
        if existing and existing.get("schema_version") not in (None, version):
            fields["previous_schema_version"] = existing["schema_version"]
            logger.info("Schema of %s moved from %s to %s", db_name, existing["schema_version"], version)

        await registry_collection.update_one(
            {"_id": db_name},
            {"$set": fields, "$setOnInsert": {"created_at": now}},
            upsert=True,
        )

        # Every database carries a _metadata document
        metadata_collection = client[db_name]["_metadata"]
        await metadata_collection.update_one(
            {"_id": "db_metadata"},
            {
                "$set": {"db_name": db_name, "last_updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )


async def create_indexes(client: AsyncIOMotorClient) -> None:
    """Create necessary indexes for all databases."""
    await ledger_db.create_ledger_indexes(client[ledger_db.DB_NAME])
    await market_data_db.create_market_data_indexes(client[market_data_db.DB_NAME])
