"""
Quote provider client and Redis-cached price lookup.

The provider speaks the brapi.dev REST format:
- GET /quote/{ticker}                  -> results[0].regularMarketPrice
- GET /quote/{ticker}?dividends=true   -> results[0].dividendsData.cashDividends
- GET /quote/{ticker}?range=5y&interval=1mo -> results[0].historicalDataPrice

Prices are cached in Redis under `quote:{TICKER}` for `quote_cache_ttl_seconds`.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.config import get_settings
from app.core.dates import as_utc, utc_now
from app.core.errors import InvalidTickerError, LedgerError, QuoteUnavailableError

logger = logging.getLogger(__name__)


def normalize_ticker(ticker: str) -> str:
    return ticker.strip().upper()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse provider timestamps (ISO strings or epoch seconds)."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    try:
        return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return None


@dataclass
class PriceQuote:
    """Latest price for a ticker."""
    ticker: str
    price: float
    as_of: datetime


class QuoteAPI:
    """
    Async client for the quote provider REST API.
    """

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None):
        settings = get_settings()
        self.base_url = (base_url or settings.quote_api_url).rstrip("/")
        self.token = token if token is not None else settings.quote_api_token
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client with connection pooling."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=30.0,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get_first_result(
        self, ticker: str, params: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        client = await self._get_client()
        if self.token:
            params = {**params, "token": self.token}

        response = await client.get(f"{self.base_url}/quote/{ticker}", params=params)
        # Unknown symbols come back as 404 (or 400 on some plans)
        if response.status_code in (400, 404):
            return None
        response.raise_for_status()

        results = response.json().get("results") or []
        return results[0] if results else None

    async def get_quote(self, ticker: str) -> Optional[dict[str, Any]]:
        """
        Fetch the latest quote for a ticker.

        Returns:
            Raw quote dict, or None if the provider doesn't know the symbol
        """
        return await self._get_first_result(ticker, {})

    async def get_dividends(self, ticker: str) -> list[dict[str, Any]]:
        """
        Fetch historical cash dividends for a ticker.

        Returns:
            List of raw dividend dicts (rate, paymentDate, lastDatePrior, label)
        """
        result = await self._get_first_result(ticker, {"dividends": "true"})
        if not result:
            return []
        dividends_data = result.get("dividendsData") or {}
        return dividends_data.get("cashDividends") or []

    async def get_monthly_history(self, ticker: str, years: int = 5) -> list[dict[str, Any]]:
        """
        Fetch monthly price bars for a ticker.

        Returns:
            List of raw bars (date as epoch seconds, close)
        """
        result = await self._get_first_result(ticker, {"range": f"{years}y", "interval": "1mo"})
        if not result:
            return []
        return result.get("historicalDataPrice") or []


# Global instance
_quote_api: Optional[QuoteAPI] = None


async def get_quote_api() -> QuoteAPI:
    """Get or create global quote API client."""
    global _quote_api
    if _quote_api is None:
        _quote_api = QuoteAPI()
    return _quote_api


async def close_quote_api() -> None:
    """Close global quote API client."""
    global _quote_api
    if _quote_api is not None:
        await _quote_api.close()
        _quote_api = None


class QuoteService:
    """Price lookup and ticker validation backed by a Redis cache."""

    CACHE_KEY = "quote:{ticker}"

    def __init__(self, redis: Redis, api: Optional[QuoteAPI] = None):
        self.redis = redis
        self.api = api
        self.settings = get_settings()

    async def _api(self) -> QuoteAPI:
        if self.api is None:
            self.api = await get_quote_api()
        return self.api

    async def _read_cache(self, ticker: str) -> Optional[PriceQuote]:
        try:
            data = await self.redis.get(self.CACHE_KEY.format(ticker=ticker))
        except RedisError:
            logger.warning("Quote cache read failed for %s", ticker, exc_info=True)
            return None
        if not data:
            return None
        payload = json.loads(data)
        return PriceQuote(
            ticker=ticker,
            price=float(payload["price"]),
            as_of=parse_timestamp(payload["as_of"]) or utc_now(),
        )

    async def _write_cache(self, quote: PriceQuote) -> None:
        payload = json.dumps({"price": quote.price, "as_of": quote.as_of.isoformat()})
        try:
            await self.redis.set(
                self.CACHE_KEY.format(ticker=quote.ticker),
                payload,
                ex=self.settings.quote_cache_ttl_seconds,
            )
        except RedisError:
            logger.warning("Quote cache write failed for %s", quote.ticker, exc_info=True)

    async def get_ticker_price(self, ticker: str) -> PriceQuote:
        """
        Get the latest price for a ticker.

        Raises:
            InvalidTickerError: The provider doesn't know the symbol
            QuoteUnavailableError: The provider could not be reached
        """
        ticker = normalize_ticker(ticker)
        if not ticker:
            raise InvalidTickerError(ticker)

        cached = await self._read_cache(ticker)
        if cached is not None:
            return cached

        api = await self._api()
        try:
            raw = await api.get_quote(ticker)
        except httpx.HTTPError as e:
            raise QuoteUnavailableError(f"Quote provider error for {ticker}: {e}") from e

        price = (raw or {}).get("regularMarketPrice")
        if price is None or float(price) <= 0:
            raise InvalidTickerError(ticker)

        quote = PriceQuote(
            ticker=ticker,
            price=float(price),
            as_of=parse_timestamp(raw.get("regularMarketTime")) or utc_now(),
        )
        await self._write_cache(quote)
        return quote

    async def validate_ticker(self, ticker: str) -> str:
        """Validate a ticker exists and return its normalized form."""
        quote = await self.get_ticker_price(ticker)
        return quote.ticker

    async def get_latest_prices(self, tickers: list[str]) -> dict[str, float]:
        """
        Best-effort price lookup for many tickers.

        Tickers that fail validation or lookup are logged and omitted.
        """
        unique = sorted({normalize_ticker(t) for t in tickers if t})
        results = await asyncio.gather(
            *(self.get_ticker_price(t) for t in unique),
            return_exceptions=True,
        )

        prices: dict[str, float] = {}
        for ticker, result in zip(unique, results):
            if isinstance(result, LedgerError):
                logger.warning("No price for %s: %s", ticker, result.message)
            elif isinstance(result, BaseException):
                raise result
            else:
                prices[ticker] = result.price
        return prices
