"""
Tests for MetricsService (cached portfolio metrics).
"""

from datetime import timedelta

import pytest


class TestMetrics:
    """Tests for metric computation and caching."""

    @pytest.mark.asyncio
    async def test_value_invested_and_return(self, services, make_portfolio, add_tx, quote_prices):
        quote_prices["BBB"] = 120.0
        portfolio = await make_portfolio({"BBB": 1.0})
        await add_tx(portfolio.id, "CASH_CREDIT", 1000.0)
        await add_tx(portfolio.id, "BUY", 500.0, ticker="BBB", price=100.0, quantity=5)
        await add_tx(portfolio.id, "DIVIDEND", 10.0, ticker="BBB")
        await add_tx(portfolio.id, "CASH_DEBIT", 110.0)

        metrics = await services.metrics.update_metrics(portfolio.id)

        assert metrics.holdings_value == 600.0
        assert metrics.cash_balance == 400.0
        assert metrics.current_value == 1000.0
        assert metrics.total_invested == 1000.0
        assert metrics.total_withdrawn == 110.0
        assert metrics.total_dividends == 10.0
        assert metrics.positions == 1
        # (1000 + 110 - 1000) / 1000
        assert metrics.total_return == pytest.approx(0.11)

    @pytest.mark.asyncio
    async def test_invested_falls_back_to_purchases(self, services, make_portfolio, add_tx):
        """Without cash entries, purchases count as the invested capital."""
        portfolio = await make_portfolio({"AAA": 1.0})
        await add_tx(portfolio.id, "BUY", 300.0, ticker="AAA", price=30.0, quantity=10)

        metrics = await services.metrics.update_metrics(portfolio.id)

        assert metrics.total_invested == 300.0
        assert metrics.cash_balance == -300.0
        assert metrics.total_return == pytest.approx(-1.0)

    @pytest.mark.asyncio
    async def test_empty_portfolio(self, services, make_portfolio):
        portfolio = await make_portfolio()

        metrics = await services.metrics.update_metrics(portfolio.id)

        assert metrics.current_value == 0.0
        assert metrics.total_return == 0.0

    @pytest.mark.asyncio
    async def test_fresh_metrics_are_served_from_cache(
        self, services, make_portfolio, add_tx, mock_ledger_db, test_user
    ):
        portfolio = await make_portfolio()
        await services.metrics.update_metrics(portfolio.id)
        # Ledger changes behind the cache's back are not visible while fresh
        await add_tx(portfolio.id, "CASH_CREDIT", 500.0)

        metrics = await services.metrics.get_metrics(portfolio.id, test_user.id)

        assert metrics.cash_balance == 0.0

    @pytest.mark.asyncio
    async def test_stale_metrics_are_recomputed(self, services, make_portfolio, add_tx, mock_ledger_db, test_user):
        from app.core.dates import utc_now

        portfolio = await make_portfolio()
        await services.metrics.update_metrics(portfolio.id)
        await add_tx(portfolio.id, "CASH_CREDIT", 500.0)
        await mock_ledger_db.portfolio_metrics.update_one(
            {"_id": portfolio.id},
            {"$set": {"last_calculated_at": utc_now() - timedelta(minutes=30)}},
        )

        metrics = await services.metrics.get_metrics(portfolio.id, test_user.id)

        assert metrics.cash_balance == 500.0

    @pytest.mark.asyncio
    async def test_missing_metrics_are_computed(self, services, make_portfolio, add_tx, test_user):
        portfolio = await make_portfolio()
        await add_tx(portfolio.id, "CASH_CREDIT", 250.0)

        metrics = await services.metrics.get_metrics(portfolio.id, test_user.id)

        assert metrics.current_value == 250.0

    @pytest.mark.asyncio
    async def test_metrics_require_ownership(self, services, make_portfolio, other_user):
        from app.core.errors import NotFoundError

        portfolio = await make_portfolio()

        with pytest.raises(NotFoundError):
            await services.metrics.get_metrics(portfolio.id, other_user.id)


class TestRiskFunctions:
    """Tests for the pure risk metric helpers."""

    def test_annualized_return_needs_a_year(self):
        from app.services.metrics_service import annualized_return

        assert annualized_return(0.5, 11) is None
        assert annualized_return(0.21, 24) == pytest.approx(0.1)
        assert annualized_return(-1.5, 12) == -1.0

    def test_volatility_is_annualized_population_deviation(self):
        from app.services.metrics_service import annualized_volatility

        assert annualized_volatility([0.01]) is None
        # Mean 0, deviation 0.02
        assert annualized_volatility([0.02, -0.02]) == pytest.approx(0.02 * 12 ** 0.5)

    def test_sharpe_ratio(self):
        from app.services.metrics_service import sharpe_ratio

        assert sharpe_ratio(0.12, 0.2, 0.02) == pytest.approx(0.5)
        assert sharpe_ratio(None, 0.2, 0.0) is None
        assert sharpe_ratio(0.12, 0.0, 0.0) is None

    def test_max_drawdown(self):
        from app.services.metrics_service import max_drawdown

        assert max_drawdown([100.0]) is None
        assert max_drawdown([100.0, 120.0, 90.0, 130.0]) == pytest.approx(0.25)
        assert max_drawdown([100.0, 110.0]) == 0.0


class TestRiskMetrics:
    """Tests for risk metrics over the month-end evolution."""

    @pytest.mark.asyncio
    async def test_month_ends_use_cached_closes(
        self, services, make_portfolio, add_tx, price_history
    ):
        import statistics

        from app.core.dates import add_months, month_start, utc_now

        current = month_start(utc_now())
        start = add_months(current, -3)
        # The third month has no bar and reuses the previous close
        price_history["AAA"] = [
            {"date": int(start.timestamp()), "close": 40.0},
            {"date": int(add_months(start, 1).timestamp()), "close": 20.0},
        ]
        portfolio = await make_portfolio({"AAA": 1.0})
        await add_tx(portfolio.id, "CASH_CREDIT", 1000.0, date=start)
        await add_tx(portfolio.id, "BUY", 300.0, ticker="AAA", price=30.0, quantity=10, date=start)

        metrics = await services.metrics.update_metrics(portfolio.id)

        assert [p.value for p in metrics.evolution] == [1100.0, 900.0, 900.0, 1000.0]
        assert metrics.evolution[0].net_flow == 1000.0
        returns = [p.monthly_return for p in metrics.evolution[1:]]
        assert returns == pytest.approx([-200 / 1100, 0.0, 100 / 900])
        assert metrics.volatility == pytest.approx(statistics.pstdev(returns) * 12 ** 0.5)
        assert metrics.max_drawdown == pytest.approx(200 / 1100)
        # Less than a year of history
        assert metrics.annualized_return is None
        assert metrics.sharpe_ratio is None

    @pytest.mark.asyncio
    async def test_contributions_are_not_returns(self, services, make_portfolio, add_tx):
        from app.core.dates import add_months, month_start, utc_now

        current = month_start(utc_now())
        portfolio = await make_portfolio()
        await add_tx(portfolio.id, "CASH_CREDIT", 1000.0, date=add_months(current, -2))
        await add_tx(portfolio.id, "MONTHLY_CONTRIBUTION", 500.0, date=add_months(current, -1))
        await add_tx(portfolio.id, "CASH_DEBIT", 200.0, date=current)

        metrics = await services.metrics.update_metrics(portfolio.id)

        assert [p.value for p in metrics.evolution] == [1000.0, 1500.0, 1300.0]
        assert [p.monthly_return for p in metrics.evolution] == [None, 0.0, 0.0]
        assert metrics.max_drawdown == pytest.approx(200 / 1500)

    @pytest.mark.asyncio
    async def test_year_of_history_is_annualized(self, services, make_portfolio, add_tx):
        from app.core.dates import add_months, month_start, utc_now

        portfolio = await make_portfolio()
        await add_tx(portfolio.id, "CASH_CREDIT", 1000.0, date=add_months(month_start(utc_now()), -12))

        metrics = await services.metrics.update_metrics(portfolio.id)

        assert len(metrics.evolution) == 13
        assert metrics.annualized_return == pytest.approx(0.0)
        assert metrics.volatility == 0.0
        # No variation, no ratio
        assert metrics.sharpe_ratio is None
        assert metrics.max_drawdown == 0.0

    @pytest.mark.asyncio
    async def test_unknown_history_falls_back_to_average_cost(self, services, make_portfolio, add_tx):
        from app.core.dates import add_months, month_start, utc_now

        start = add_months(month_start(utc_now()), -1)
        portfolio = await make_portfolio({"AAA": 1.0})
        await add_tx(portfolio.id, "CASH_CREDIT", 500.0, date=start)
        await add_tx(portfolio.id, "BUY", 250.0, ticker="AAA", price=25.0, quantity=10, date=start)

        metrics = await services.metrics.update_metrics(portfolio.id)

        # Past month at cost, current month at the live quote of 30
        assert [p.value for p in metrics.evolution] == [500.0, 550.0]
        assert metrics.evolution[1].monthly_return == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_risk_metrics_survive_the_cache(self, services, make_portfolio, add_tx, test_user):
        from app.core.dates import add_months, month_start, utc_now

        portfolio = await make_portfolio()
        await add_tx(portfolio.id, "CASH_CREDIT", 1000.0, date=add_months(month_start(utc_now()), -12))
        await services.metrics.update_metrics(portfolio.id)

        cached = await services.metrics.get_metrics(portfolio.id, test_user.id)

        assert len(cached.evolution) == 13
        assert cached.max_drawdown == 0.0
