"""
Monthly price history with lazy-loading from the quote provider.

Month-end closes are cached in market_data_db.monthly_prices keyed by
(ticker, "YYYY-MM"); a ticker is refreshed when its last fetch is older than
`price_history_cache_hours`. Metrics use them to value past month-ends.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import UpdateOne

from app.config import get_settings
from app.core.dates import as_utc, utc_now
from app.database.databases import market_data_db
from app.services.quote_service import QuoteAPI, get_quote_api, normalize_ticker, parse_timestamp

logger = logging.getLogger(__name__)


def month_key(value: datetime) -> str:
    return as_utc(value).strftime("%Y-%m")


def transform_bar(ticker: str, raw: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Transform a raw provider bar into a MongoDB document."""
    date = parse_timestamp(raw.get("date"))
    try:
        close = float(raw.get("close"))
    except (TypeError, ValueError):
        return None
    if date is None or close <= 0:
        return None
    return {"ticker": ticker, "month": month_key(date), "close": close}


class PriceHistoryService:
    """Service for monthly closing prices."""

    def __init__(self, db: AsyncIOMotorDatabase, api: Optional[QuoteAPI] = None):
        self.db = db
        self.prices_col = db[market_data_db.Collections.MONTHLY_PRICES]
        self.sync_col = db[market_data_db.Collections.PRICE_HISTORY_SYNC]
        self.api = api
        self.settings = get_settings()

    async def _is_fresh(self, ticker: str) -> bool:
        sync_doc = await self.sync_col.find_one({"_id": ticker})
        if not sync_doc or not sync_doc.get("fetched_at"):
            return False
        age = utc_now() - as_utc(sync_doc["fetched_at"])
        return age < timedelta(hours=self.settings.price_history_cache_hours)

    async def upsert_bars(self, ticker: str, raw_bars: list[dict[str, Any]]) -> int:
        """Store provider bars for a ticker. The last bar of a month wins."""
        docs = {}
        for raw in raw_bars:
            doc = transform_bar(ticker, raw)
            if doc is not None:
                docs[doc["month"]] = doc

        now = utc_now()
        operations = [
            UpdateOne(
                {"ticker": ticker, "month": month},
                {"$set": {**doc, "fetched_at": now}},
                upsert=True,
            )
            for month, doc in docs.items()
        ]
        if operations:
            await self.prices_col.bulk_write(operations, ordered=False)

        await self.sync_col.update_one(
            {"_id": ticker},
            {"$set": {"fetched_at": now, "bar_count": len(operations)}},
            upsert=True,
        )
        return len(operations)

    async def refresh(self, ticker: str) -> int:
        """Fetch a ticker's monthly bars from the provider and cache them."""
        api = self.api or await get_quote_api()
        raw_bars = await api.get_monthly_history(ticker, years=self.settings.price_history_years)
        count = await self.upsert_bars(ticker, raw_bars)
        logger.info("Cached %d monthly closes for %s", count, ticker)
        return count

    async def get_monthly_closes(self, ticker: str) -> dict[str, float]:
        """
        Month-end closes for a ticker keyed by "YYYY-MM".

        A stale cache is refreshed first; if the provider is unreachable the
        cached closes are served as they are.
        """
        ticker = normalize_ticker(ticker)

        if not await self._is_fresh(ticker):
            try:
                await self.refresh(ticker)
            except httpx.HTTPError:
                logger.warning("Price history refresh failed for %s, serving cache", ticker, exc_info=True)

        docs = await self.prices_col.find({"ticker": ticker}).to_list(length=None)
        return {doc["month"]: float(doc["close"]) for doc in docs}
