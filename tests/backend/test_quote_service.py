"""
Tests for the quote provider client and the Redis-cached QuoteService.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest


class TestParseTimestamp:
    """Tests for provider timestamp parsing."""

    def test_iso_with_z(self):
        from app.services.quote_service import parse_timestamp

        parsed = parse_timestamp("2026-01-02T18:00:00.000Z")

        assert parsed.year == 2026
        assert parsed.hour == 18
        assert parsed.utcoffset().total_seconds() == 0

    def test_epoch_seconds(self):
        from app.services.quote_service import parse_timestamp

        assert parse_timestamp(0).year == 1970

    def test_garbage(self):
        from app.services.quote_service import parse_timestamp

        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None


class TestQuoteService:
    """Tests for cached price lookup and ticker validation."""

    @pytest.mark.asyncio
    async def test_price_is_cached_in_redis(self, mock_async_redis, mock_quote_api):
        from app.services.quote_service import QuoteService

        service = QuoteService(mock_async_redis, mock_quote_api)

        first = await service.get_ticker_price("aaa")
        second = await service.get_ticker_price("AAA")

        assert first.ticker == "AAA"
        assert first.price == 30.0
        assert second.price == 30.0
        assert mock_quote_api.get_quote.await_count == 1
        assert await mock_async_redis.get("quote:AAA") is not None

    @pytest.mark.asyncio
    async def test_unknown_ticker(self, mock_async_redis, mock_quote_api):
        from app.core.errors import InvalidTickerError
        from app.services.quote_service import QuoteService

        service = QuoteService(mock_async_redis, mock_quote_api)

        with pytest.raises(InvalidTickerError) as exc_info:
            await service.validate_ticker("nope")
        assert exc_info.value.ticker == "NOPE"

    @pytest.mark.asyncio
    async def test_blank_ticker(self, mock_async_redis, mock_quote_api):
        from app.core.errors import InvalidTickerError
        from app.services.quote_service import QuoteService

        service = QuoteService(mock_async_redis, mock_quote_api)

        with pytest.raises(InvalidTickerError):
            await service.get_ticker_price("   ")
        mock_quote_api.get_quote.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_outage(self, mock_async_redis, mock_quote_api):
        from app.core.errors import QuoteUnavailableError
        from app.services.quote_service import QuoteService

        mock_quote_api.get_quote.side_effect = httpx.ConnectError("connection refused")
        service = QuoteService(mock_async_redis, mock_quote_api)

        with pytest.raises(QuoteUnavailableError):
            await service.get_ticker_price("AAA")

    @pytest.mark.asyncio
    async def test_latest_prices_omit_failures(self, mock_async_redis, mock_quote_api):
        from app.services.quote_service import QuoteService

        service = QuoteService(mock_async_redis, mock_quote_api)

        prices = await service.get_latest_prices(["AAA", "bbb", "NOPE", "AAA"])

        assert prices == {"AAA": 30.0, "BBB": 100.0}

    @pytest.mark.asyncio
    async def test_redis_outage_falls_through_to_provider(self, mock_quote_api):
        from redis.exceptions import ConnectionError as RedisConnectionError
        from app.services.quote_service import QuoteService

        redis = MagicMock()
        redis.get = AsyncMock(side_effect=RedisConnectionError("down"))
        redis.set = AsyncMock(side_effect=RedisConnectionError("down"))
        service = QuoteService(redis, mock_quote_api)

        quote = await service.get_ticker_price("AAA")

        assert quote.price == 30.0


class TestQuoteAPI:
    """Tests for the provider REST client."""

    @staticmethod
    def _response(status_code, payload=None):
        request = httpx.Request("GET", "https://brapi.test/api/quote/AAA")
        return httpx.Response(status_code, json=payload or {}, request=request)

    @pytest.mark.asyncio
    async def test_get_quote_returns_first_result(self):
        from app.services.quote_service import QuoteAPI

        api = QuoteAPI(base_url="https://brapi.test/api", token="secret")
        payload = {"results": [{"symbol": "AAA", "regularMarketPrice": 30.0}]}

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = self._response(200, payload)
            quote = await api.get_quote("AAA")

        assert quote["regularMarketPrice"] == 30.0
        _, kwargs = mock_get.call_args
        assert kwargs["params"]["token"] == "secret"
        await api.close()

    @pytest.mark.asyncio
    async def test_unknown_symbol_is_none(self):
        from app.services.quote_service import QuoteAPI

        api = QuoteAPI(base_url="https://brapi.test/api", token="")

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = self._response(404, {"error": True})
            assert await api.get_quote("NOPE") is None
        await api.close()

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        from app.services.quote_service import QuoteAPI

        api = QuoteAPI(base_url="https://brapi.test/api", token="")

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = self._response(500)
            with pytest.raises(httpx.HTTPStatusError):
                await api.get_quote("AAA")
        await api.close()

    @pytest.mark.asyncio
    async def test_get_dividends(self):
        from app.services.quote_service import QuoteAPI

        api = QuoteAPI(base_url="https://brapi.test/api", token="")
        payload = {"results": [{"symbol": "AAA", "dividendsData": {"cashDividends": [{"rate": 0.5}]}}]}

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = self._response(200, payload)
            dividends = await api.get_dividends("AAA")

        assert dividends == [{"rate": 0.5}]
        _, kwargs = mock_get.call_args
        assert kwargs["params"]["dividends"] == "true"
        await api.close()

    @pytest.mark.asyncio
    async def test_get_monthly_history(self):
        from app.services.quote_service import QuoteAPI

        api = QuoteAPI(base_url="https://brapi.test/api", token="")
        bars = [{"date": 1767225600, "close": 31.5}]
        payload = {"results": [{"symbol": "AAA", "historicalDataPrice": bars}]}

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = self._response(200, payload)
            history = await api.get_monthly_history("AAA", years=2)

        assert history == bars
        _, kwargs = mock_get.call_args
        assert kwargs["params"]["range"] == "2y"
        assert kwargs["params"]["interval"] == "1mo"
        await api.close()

    @pytest.mark.asyncio
    async def test_monthly_history_of_unknown_symbol_is_empty(self):
        from app.services.quote_service import QuoteAPI

        api = QuoteAPI(base_url="https://brapi.test/api", token="")

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = self._response(404, {"error": True})
            assert await api.get_monthly_history("NOPE") == []
        await api.close()
