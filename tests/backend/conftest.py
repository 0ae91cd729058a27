"""
Backend-specific test fixtures and configuration.

These fixtures extend the global fixtures with a mocked quote provider, a
fully wired service graph over mongomock/fakeredis and factories for seeding
portfolios and ledger rows.
"""

import sys
from pathlib import Path
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "backend"))


# =============================================================================
# Quote Provider Fixtures
# =============================================================================

@pytest.fixture
def quote_prices() -> dict:
    """
    Prices served by the mocked quote provider.

    Tickers missing from this dict are unknown to the provider. Mutate it in a
    test (and flush Redis) to move prices.
    """
    return {"AAA": 30.0, "BBB": 100.0, "CCC": 50.0}


@pytest.fixture
def dividend_data() -> dict:
    """Raw provider dividends per ticker (brapi cashDividends format)."""
    return {}


@pytest.fixture
def price_history() -> dict:
    """Raw provider monthly bars per ticker (brapi historicalDataPrice format)."""
    return {}


@pytest.fixture
def mock_quote_api(quote_prices, dividend_data, price_history):
    """
    Create a mocked QuoteAPI.

    get_quote answers in the provider's raw format, or None for unknown
    symbols; get_dividends and get_monthly_history return the entries in
    dividend_data and price_history.
    """
    from app.services.quote_service import QuoteAPI

    def _quote(ticker):
        price = quote_prices.get(ticker)
        if price is None:
            return None
        return {
            "symbol": ticker,
            "regularMarketPrice": price,
            "regularMarketTime": "2026-01-02T18:00:00.000Z",
        }

    api = MagicMock(spec=QuoteAPI)
    api.get_quote = AsyncMock(side_effect=_quote)
    api.get_dividends = AsyncMock(side_effect=lambda ticker: list(dividend_data.get(ticker, [])))
    api.get_monthly_history = AsyncMock(
        side_effect=lambda ticker, years=5: list(price_history.get(ticker, []))
    )
    api.close = AsyncMock()
    return api


# =============================================================================
# Service Graph Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def services(mock_ledger_db, mock_market_data_db, mock_async_redis, mock_quote_api):
    """Every ledger service wired over mongomock and fakeredis."""
    from app.services.wiring import build_services
    return build_services(mock_ledger_db, mock_market_data_db, mock_async_redis, mock_quote_api)


# =============================================================================
# Seeding Factories
# =============================================================================

@pytest.fixture
def make_portfolio(services, test_user):
    """
    Factory creating a portfolio through PortfolioService.

    Usage:
        portfolio = await make_portfolio({"AAA": 0.5, "BBB": 0.5}, monthly_contribution=100)
    """
    from app.schemas.portfolio import AssetInput, PortfolioCreate

    async def _make(
        assets: Optional[dict] = None,
        user=None,
        **kwargs,
    ):
        assets = assets or {"AAA": 1.0}
        request = PortfolioCreate(
            name=kwargs.pop("name", "Retirement"),
            assets=[AssetInput(ticker=t, target_weight=w) for t, w in assets.items()],
            **kwargs,
        )
        return await services.portfolios.create_portfolio(user or test_user, request)

    return _make


@pytest.fixture
def add_tx(mock_ledger_db):
    """
    Factory inserting a raw ledger row, bypassing validation.

    Returns the new transaction id as a string.
    """
    from app.core.dates import start_of_day, utc_now

    async def _add(
        portfolio_id: str,
        tx_type: str,
        amount: float,
        ticker: Optional[str] = None,
        price: Optional[float] = None,
        quantity: Optional[float] = None,
        status: str = "EXECUTED",
        date=None,
        auto: bool = False,
        **extra,
    ) -> str:
        doc = {
            "portfolio_id": portfolio_id,
            "date": start_of_day(date or utc_now()),
            "type": tx_type,
            "ticker": ticker,
            "amount": amount,
            "price": price,
            "quantity": quantity,
            "status": status,
            "is_auto_suggested": auto,
            "created_at": utc_now(),
            **extra,
        }
        result = await mock_ledger_db.transactions.insert_one(doc)
        return str(result.inserted_id)

    return _add


@pytest.fixture
def get_tx(mock_ledger_db):
    """Fetch a raw transaction document by string id."""
    from bson import ObjectId

    async def _get(transaction_id: str) -> dict:
        return await mock_ledger_db.transactions.find_one({"_id": ObjectId(transaction_id)})

    return _get
