"""
Dividend event service with lazy-loading from the quote provider.

Events are cached in market_data_db.dividend_events; a ticker is refreshed
from the provider when its last fetch is older than `dividend_cache_hours`.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import UpdateOne

from app.config import get_settings
from app.core.dates import as_utc, start_of_day, utc_now
from app.database.databases import market_data_db
from app.services.quote_service import QuoteAPI, get_quote_api, normalize_ticker, parse_timestamp

logger = logging.getLogger(__name__)


@dataclass
class DividendEvent:
    """Cash dividend announced for a ticker."""
    ticker: str
    ex_date: datetime
    rate: float
    payment_date: Optional[datetime] = None
    label: Optional[str] = None

    @property
    def effective_date(self) -> datetime:
        """Ledger date for the credit: payment date, else ex-date."""
        return self.payment_date or self.ex_date


def transform_dividend(ticker: str, raw: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Transform a raw provider dividend into a MongoDB document."""
    ex_date = parse_timestamp(raw.get("lastDatePrior")) or parse_timestamp(raw.get("exDate"))
    try:
        rate = float(raw.get("rate"))
    except (TypeError, ValueError):
        return None
    if ex_date is None or rate <= 0:
        return None

    payment_date = parse_timestamp(raw.get("paymentDate"))
    return {
        "ticker": ticker,
        "ex_date": start_of_day(ex_date),
        "payment_date": start_of_day(payment_date) if payment_date else None,
        "rate": rate,
        "label": raw.get("label"),
    }


class DividendService:
    """Service for dividend events with lazy-loading from the quote provider."""

    def __init__(self, db: AsyncIOMotorDatabase, api: Optional[QuoteAPI] = None):
        """Initialize with market data database."""
        self.db = db
        self.events_col = db[market_data_db.Collections.DIVIDEND_EVENTS]
        self.sync_col = db[market_data_db.Collections.DIVIDEND_SYNC]
        self.api = api
        self.settings = get_settings()

    async def _is_fresh(self, ticker: str) -> bool:
        sync_doc = await self.sync_col.find_one({"_id": ticker})
        if not sync_doc or not sync_doc.get("fetched_at"):
            return False
        age = utc_now() - as_utc(sync_doc["fetched_at"])
        return age < timedelta(hours=self.settings.dividend_cache_hours)

    async def upsert_events(self, ticker: str, raw_events: list[dict[str, Any]]) -> int:
        """Store provider events for a ticker. Returns the number of valid events."""
        now = utc_now()
        operations = []
        for raw in raw_events:
            doc = transform_dividend(ticker, raw)
            if doc is None:
                continue
            doc["fetched_at"] = now
            operations.append(UpdateOne(
                {"ticker": ticker, "ex_date": doc["ex_date"], "rate": doc["rate"]},
                {"$set": doc},
                upsert=True,
            ))

        if operations:
            await self.events_col.bulk_write(operations, ordered=False)

        await self.sync_col.update_one(
            {"_id": ticker},
            {"$set": {"fetched_at": now, "event_count": len(operations)}},
            upsert=True,
        )
        return len(operations)

    async def refresh(self, ticker: str) -> int:
        """Fetch a ticker's dividends from the provider and cache them."""
        api = self.api or await get_quote_api()
        raw_events = await api.get_dividends(ticker)
        count = await self.upsert_events(ticker, raw_events)
        logger.info("Cached %d dividend events for %s", count, ticker)
        return count

    async def get_dividend_events(
        self,
        ticker: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[DividendEvent]:
        """
        Get dividend events for a ticker with ex-date in [since, until].

        A stale cache is refreshed first; if the provider is unreachable the
        cached events are served as they are.
        """
        ticker = normalize_ticker(ticker)

        if not await self._is_fresh(ticker):
            try:
                await self.refresh(ticker)
            except httpx.HTTPError:
                logger.warning("Dividend refresh failed for %s, serving cache", ticker, exc_info=True)

        since = as_utc(since)
        until = as_utc(until)
        cursor = self.events_col.find({"ticker": ticker}).sort("ex_date", 1)
        docs = await cursor.to_list(length=None)

        events = []
        for doc in docs:
            ex_date = as_utc(doc["ex_date"])
            if since and ex_date < since:
                continue
            if until and ex_date > until:
                continue
            events.append(DividendEvent(
                ticker=ticker,
                ex_date=ex_date,
                rate=float(doc["rate"]),
                payment_date=as_utc(doc.get("payment_date")),
                label=doc.get("label"),
            ))
        return events
