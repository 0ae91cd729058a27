"""
Mongo-backed outbox for deferred suggestion regeneration.

Tasks are coalesced per (portfolio_id, kind) while pending, claimed with an
atomic find_one_and_update, and retried with linear backoff. Delivery is
at-least-once; handlers must be idempotent per portfolio.
"""
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from app.config import get_settings
from app.core.dates import utc_now
from app.database.databases import ledger_db
from app.models.outbox import OutboxKind, OutboxStatus, OutboxTask

logger = logging.getLogger(__name__)

TaskHandler = Callable[[OutboxTask], Awaitable[Any]]


class OutboxService:
    """Enqueue, claim and settle outbox tasks."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.outbox = db[ledger_db.Collections.OUTBOX]
        self.settings = get_settings()

    async def enqueue(
        self,
        portfolio_id: str,
        kind: OutboxKind = OutboxKind.REGENERATE_SUGGESTIONS,
        delay_seconds: float = 0.0,
    ) -> None:
        """Add a task, coalescing with an existing pending task for the same portfolio."""
        now = utc_now()
        await self.outbox.update_one(
            {
                "portfolio_id": portfolio_id,
                "kind": OutboxKind(kind).value,
                "status": OutboxStatus.PENDING.value,
            },
            {
                "$set": {"available_at": time.time() + delay_seconds, "updated_at": now},
                "$setOnInsert": {"attempts": 0, "created_at": now},
            },
            upsert=True,
        )
        logger.debug("Enqueued %s for portfolio %s", OutboxKind(kind).value, portfolio_id)

    async def claim_next(self) -> Optional[OutboxTask]:
        """
        Claim the oldest due task.

        Processing tasks whose lease expired (a crashed worker) are claimable
        again.
        """
        now = time.time()
        doc = await self.outbox.find_one_and_update(
            {
                "$or": [
                    {"status": OutboxStatus.PENDING.value, "available_at": {"$lte": now}},
                    {"status": OutboxStatus.PROCESSING.value, "locked_until": {"$lt": now}},
                ],
            },
            {
                "$set": {
                    "status": OutboxStatus.PROCESSING.value,
                    "locked_until": now + self.settings.outbox_processing_timeout_seconds,
                    "updated_at": utc_now(),
                },
                "$inc": {"attempts": 1},
            },
            sort=[("available_at", 1)],
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return None
        return OutboxTask(**{**doc, "_id": str(doc["_id"])})

    async def complete(self, task_id: str) -> None:
        await self.outbox.update_one(
            {"_id": ObjectId(task_id)},
            {"$set": {
                "status": OutboxStatus.DONE.value,
                "locked_until": None,
                "updated_at": utc_now(),
            }},
        )

    async def fail(self, task_id: str, error: str) -> None:
        """Schedule a retry, or mark the task failed after the last attempt."""
        doc = await self.outbox.find_one({"_id": ObjectId(task_id)})
        if not doc:
            return

        attempts = doc.get("attempts", 0)
        update: dict[str, Any] = {"last_error": error, "locked_until": None, "updated_at": utc_now()}
        newer = await self.outbox.count_documents({
            "_id": {"$ne": doc["_id"]},
            "portfolio_id": doc["portfolio_id"],
            "kind": doc["kind"],
            "status": OutboxStatus.PENDING.value,
        })
        if newer:
            # A fresh task was enqueued while this one ran; it supersedes the retry
            update["status"] = OutboxStatus.DONE.value
            logger.warning("Outbox task %s failed and was superseded: %s", task_id, error)
        elif attempts >= self.settings.outbox_max_attempts:
            update["status"] = OutboxStatus.FAILED.value
            logger.error("Outbox task %s failed permanently after %d attempts: %s", task_id, attempts, error)
        else:
            update["status"] = OutboxStatus.PENDING.value
            update["available_at"] = time.time() + self.settings.outbox_retry_delay_seconds * attempts
            logger.warning("Outbox task %s failed (attempt %d), retrying: %s", task_id, attempts, error)

        await self.outbox.update_one({"_id": ObjectId(task_id)}, {"$set": update})

    async def process_batch(self, handler: TaskHandler, limit: int = 10) -> int:
        """
        Claim and handle up to `limit` tasks.

        Returns:
            Number of tasks that completed
        """
        completed = 0
        for _ in range(limit):
            task = await self.claim_next()
            if task is None:
                break
            try:
                await handler(task)
            except Exception as e:
                await self.fail(task.id, f"{type(e).__name__}: {e}")
                continue
            await self.complete(task.id)
            completed += 1
        return completed

    async def delete_for_portfolio(self, portfolio_id: str) -> int:
        result = await self.outbox.delete_many({"portfolio_id": portfolio_id})
        return result.deleted_count
