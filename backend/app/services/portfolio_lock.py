"""
Per-portfolio lease lock stored on the portfolio document.

Acquisition is a single atomic find_one_and_update that only matches when the
lock is free or its lease expired, so concurrent handlers (in this process or
another) serialize on the same portfolio. Every acquisition bumps `version`.

Usage:
    async with PortfolioLock(portfolios_col, portfolio_id):
        balance = await ledger.get_current_cash_balance(portfolio_id)
        ...
"""
import asyncio
import logging
import time
import uuid
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument

from app.config import get_settings
from app.core.errors import NotFoundError, PortfolioBusyError
from app.services.access import parse_object_id

logger = logging.getLogger(__name__)


class PortfolioLock:
    """Async context manager holding a lease on one portfolio."""

    def __init__(
        self,
        portfolios: AsyncIOMotorCollection,
        portfolio_id: str,
        ttl_seconds: Optional[float] = None,
        wait_seconds: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ):
        settings = get_settings()
        self.portfolios = portfolios
        self.portfolio_id = portfolio_id
        self._oid = parse_object_id(portfolio_id)
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.lock_ttl_seconds
        self.wait_seconds = wait_seconds if wait_seconds is not None else settings.lock_wait_seconds
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.lock_poll_interval_seconds
        )
        self.token: Optional[str] = None
        self.version: Optional[int] = None

    async def _try_acquire(self, token: str) -> bool:
        now = time.time()
        doc = await self.portfolios.find_one_and_update(
            {
                "_id": self._oid,
                "$or": [
                    {"lock_until": None},
                    {"lock_until": {"$lt": now}},
                ],
            },
            {
                "$set": {"lock_until": now + self.ttl_seconds, "lock_token": token},
                "$inc": {"version": 1},
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return False
        self.version = doc.get("version")
        return True

    async def acquire(self) -> None:
        """
        Acquire the lease, polling until `wait_seconds` elapse.

        Raises:
            NotFoundError: Portfolio doesn't exist
            PortfolioBusyError: Lease still held by someone else at the deadline
        """
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.wait_seconds

        while True:
            if await self._try_acquire(token):
                self.token = token
                return

            if await self.portfolios.find_one({"_id": self._oid}, {"_id": 1}) is None:
                raise NotFoundError("Portfolio not found")

            if time.monotonic() >= deadline:
                raise PortfolioBusyError(
                    f"Portfolio {self.portfolio_id} is busy, retry shortly"
                )
            await asyncio.sleep(self.poll_interval)

    async def release(self) -> None:
        """Release the lease if we still hold it."""
        if self.token is None:
            return
        await self.portfolios.update_one(
            {"_id": self._oid, "lock_token": self.token},
            {"$set": {"lock_until": None, "lock_token": None}},
        )
        self.token = None

    async def __aenter__(self) -> "PortfolioLock":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()
