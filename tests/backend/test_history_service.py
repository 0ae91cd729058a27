"""
Tests for PriceHistoryService lazy-loading and transform_bar.
"""

from datetime import datetime, timezone

import httpx
import pytest


def _epoch(year, month, day=1):
    return int(datetime(year, month, day, tzinfo=timezone.utc).timestamp())


class TestTransformBar:
    """Tests for transforming provider bars into documents."""

    def test_transform(self):
        from app.services.history_service import transform_bar

        doc = transform_bar("AAA", {"date": _epoch(2026, 3), "close": "31.5"})

        assert doc == {"ticker": "AAA", "month": "2026-03", "close": 31.5}

    @pytest.mark.parametrize("raw", [
        {"close": 31.5},
        {"date": 1772323200, "close": None},
        {"date": 1772323200, "close": 0},
    ])
    def test_invalid_bars_are_dropped(self, raw):
        from app.services.history_service import transform_bar

        assert transform_bar("AAA", raw) is None


class TestPriceHistoryService:
    """Tests for the cached monthly close lookup."""

    @pytest.mark.asyncio
    async def test_closes_are_fetched_once(self, mock_market_data_db, mock_quote_api, price_history):
        from app.services.history_service import PriceHistoryService

        price_history["AAA"] = [
            {"date": _epoch(2026, 1), "close": 30.0},
            {"date": _epoch(2026, 2), "close": 32.0},
        ]
        service = PriceHistoryService(mock_market_data_db, mock_quote_api)

        closes = await service.get_monthly_closes("aaa")
        again = await service.get_monthly_closes("AAA")

        assert closes == {"2026-01": 30.0, "2026-02": 32.0}
        assert again == closes
        assert mock_quote_api.get_monthly_history.await_count == 1

    @pytest.mark.asyncio
    async def test_last_bar_of_a_month_wins(self, mock_market_data_db, mock_quote_api, price_history):
        from app.services.history_service import PriceHistoryService

        price_history["AAA"] = [
            {"date": _epoch(2026, 1, 1), "close": 30.0},
            {"date": _epoch(2026, 1, 30), "close": 33.0},
        ]
        service = PriceHistoryService(mock_market_data_db, mock_quote_api)

        await service.refresh("AAA")
        await service.refresh("AAA")

        assert await mock_market_data_db.monthly_prices.count_documents({"ticker": "AAA"}) == 1
        assert await service.get_monthly_closes("AAA") == {"2026-01": 33.0}

    @pytest.mark.asyncio
    async def test_provider_outage_serves_cache(self, mock_market_data_db, mock_quote_api, price_history):
        from app.services.history_service import PriceHistoryService

        price_history["AAA"] = [{"date": _epoch(2026, 1), "close": 30.0}]
        service = PriceHistoryService(mock_market_data_db, mock_quote_api)
        await service.refresh("AAA")
        await mock_market_data_db.price_history_sync.delete_many({})
        mock_quote_api.get_monthly_history.side_effect = httpx.ConnectError("connection refused")

        assert await service.get_monthly_closes("AAA") == {"2026-01": 30.0}
