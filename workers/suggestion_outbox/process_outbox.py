#!/usr/bin/env python3
"""
Suggestion Outbox Worker

Drains the ledger_db.outbox collection. Every ledger mutation enqueues a
`regenerate_suggestions` task; this worker rebuilds the portfolio's pending
contribution and dividend suggestions for each task it claims.
Designed for resilience:
- Tasks are claimed with a lease; a crashed worker's tasks are picked up again
- Failed tasks are retried with backoff, then marked failed
- Regeneration is idempotent per portfolio, so duplicate delivery is harmless

Usage:
    python process_outbox.py

Environment Variables:
    MONGODB_URI: MongoDB connection string
    REDIS_HOST / REDIS_PORT: Redis for the quote cache
    POLL_INTERVAL_SECONDS: Seconds to sleep when the outbox is empty (default: 5)
    BATCH_SIZE: Tasks handled per poll (default: 20)
    LOG_LEVEL: Logging level (default: INFO)
"""
import asyncio
import logging
import signal
import sys
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from redis.asyncio import Redis

from app.database.connections import mongo_client_options
from app.database.databases import ledger_db, market_data_db
from app.models.outbox import OutboxKind, OutboxTask
from app.services.outbox_service import OutboxService
from app.services.quote_service import QuoteAPI
from app.services.wiring import LedgerServices, build_services


# ==================== Configuration ====================

class WorkerConfig(BaseSettings):
    """Worker configuration from environment."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://mongodb:27017")

    # Redis
    redis_host: str = Field(default="redis")
    redis_port: int = Field(default=6379)

    # Polling
    poll_interval_seconds: float = Field(default=5.0)
    batch_size: int = Field(default=20)

    # Logging
    log_level: str = Field(default="INFO")


config = WorkerConfig()


# ==================== Logging Setup ====================

logging.basicConfig(
    level=getattr(logging, config.log_level.upper()),
    format="%(asctime)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("suggestion_outbox")


# ==================== Worker ====================

class OutboxWorker:
    """Suggestion regeneration outbox worker."""

    def __init__(self):
        self.mongo_client: Optional[AsyncIOMotorClient] = None
        self.redis: Optional[Redis] = None
        self.api = QuoteAPI()
        self.services: Optional[LedgerServices] = None
        self.outbox: Optional[OutboxService] = None
        self.running = False

    async def connect(self):
        """Connect to MongoDB and Redis."""
        self.mongo_client = AsyncIOMotorClient(config.mongodb_uri, **mongo_client_options())

        # Test connection
        await self.mongo_client.admin.command("ping")
        logger.info("Connected to MongoDB")

        self.redis = Redis(host=config.redis_host, port=config.redis_port, decode_responses=True)
        self.services = build_services(
            self.mongo_client[ledger_db.DB_NAME],
            self.mongo_client[market_data_db.DB_NAME],
            self.redis,
            self.api,
        )
        self.outbox = self.services.outbox

    async def disconnect(self):
        """Disconnect from MongoDB and Redis and close the quote client."""
        if self.mongo_client:
            self.mongo_client.close()
        if self.redis:
            await self.redis.aclose()
        await self.api.close()
        logger.info("Disconnected")

    async def handle_task(self, task: OutboxTask) -> None:
        """Handle one claimed task."""
        if task.kind != OutboxKind.REGENERATE_SUGGESTIONS.value:
            raise ValueError(f"Unknown outbox task kind: {task.kind}")

        created = await self.services.suggestions.regenerate_suggestions(task.portfolio_id)
        logger.info(
            "Regenerated portfolio %s (attempt %d): %d suggestions",
            task.portfolio_id, task.attempts, created,
        )

    async def process_once(self) -> int:
        """Handle one batch. Returns the number of completed tasks."""
        return await self.outbox.process_batch(self.handle_task, limit=config.batch_size)

    async def run(self):
        """Main worker loop."""
        self.running = True

        while self.running:
            try:
                completed = await self.process_once()
                if completed:
                    logger.info("Completed %d outbox tasks", completed)
                    continue

                await asyncio.sleep(config.poll_interval_seconds)

            except asyncio.CancelledError:
                logger.info("Worker cancelled")
                break
            except Exception as e:
                logger.error(f"Error in outbox loop: {e}")
                await asyncio.sleep(config.poll_interval_seconds)

    def stop(self):
        """Stop the worker gracefully."""
        logger.info("Stopping worker...")
        self.running = False


# ==================== Main Entry Point ====================

async def main():
    """Main entry point."""
    worker = OutboxWorker()

    # Signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def shutdown_handler(sig):
        logger.info(f"Received signal {sig.name}")
        worker.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: shutdown_handler(s))

    try:
        await worker.connect()
        await worker.run()
    except Exception as e:
        logger.error(f"Worker error: {e}")
        sys.exit(1)
    finally:
        await worker.disconnect()
        logger.info("Worker shutdown complete")


if __name__ == "__main__":
    logger.info("=" * 60)
    logger.info("Suggestion Outbox Worker")
    logger.info(f"Batch size: {config.batch_size}")
    logger.info(f"Poll interval: {config.poll_interval_seconds} seconds")
    logger.info("=" * 60)

    asyncio.run(main())
