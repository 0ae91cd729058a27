"""
Portfolio metrics aggregator.

Metrics are a memoized view over the ledger stored in
ledger_db.portfolio_metrics (keyed by portfolio id). They are recomputed after
ledger mutations and whenever a cached row is older than
`metrics_freshness_minutes`.

Risk metrics come from the month-end evolution of the portfolio: past
month-ends are valued with cached monthly closes, the current month with live
quotes. Monthly returns are flow-adjusted so contributions and withdrawals do
not count as performance.
"""
import logging
import math
from datetime import timedelta
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.config import get_settings
from app.core.dates import add_months, as_utc, month_start, utc_now
from app.database.databases import ledger_db
from app.models.transaction import BUY_TYPES, CONTRIBUTION_TYPES, TRADE_TYPES, TransactionType, signed_amount
from app.schemas.portfolio import MonthlyValue, PortfolioMetricsResponse
from app.services.allocation_service import QUANTITY_EPSILON, AllocationEngine, build_positions
from app.services.history_service import PriceHistoryService, month_key

logger = logging.getLogger(__name__)


# ==================== Risk Metrics ====================

def flow_adjusted_return(previous: MonthlyValue, current: MonthlyValue) -> Optional[float]:
    """
    Month-over-month return net of contributions and withdrawals.

    r = (V_t - V_t-1 - flows_t) / V_t-1; a non-positive starting value has no
    return.
    """
    if previous.value <= 0:
        return None
    return (current.value - previous.value - current.net_flow) / previous.value


def annualized_return(total_return: float, months: int) -> Optional[float]:
    if months < 12:
        return None
    base = 1 + total_return
    if base <= 0:
        return -1.0
    return base ** (12 / months) - 1


def annualized_volatility(returns: list[float]) -> Optional[float]:
    """Population standard deviation of monthly returns, scaled to a year."""
    if len(returns) < 2:
        return None
    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    return math.sqrt(variance) * math.sqrt(12)


def sharpe_ratio(annualized: Optional[float], volatility: Optional[float], risk_free_rate: float) -> Optional[float]:
    if annualized is None or not volatility:
        return None
    return (annualized - risk_free_rate) / volatility


def max_drawdown(values: list[float]) -> Optional[float]:
    """Largest fractional fall from a running peak."""
    if len(values) < 2:
        return None
    worst = 0.0
    peak = values[0]
    for value in values:
        peak = max(peak, value)
        if peak > 0:
            worst = max(worst, (peak - value) / peak)
    return worst


def _close_for(closes: dict[str, float], month: str) -> Optional[float]:
    """Close of the month, else the most recent earlier close."""
    if month in closes:
        return closes[month]
    earlier = [m for m in closes if m < month]
    return closes[max(earlier)] if earlier else None


class MetricsService:
    """Service for cached portfolio metrics."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        engine: AllocationEngine,
        history: Optional[PriceHistoryService] = None,
    ):
        self.db = db
        self.metrics = db[ledger_db.Collections.PORTFOLIO_METRICS]
        self.engine = engine
        self.ledger = engine.ledger
        self.history = history
        self.settings = get_settings()

    async def build_evolution(
        self,
        settled: list[dict[str, Any]],
        current_value: float,
        cash_balance: float,
        trades_are_capital: bool = False,
    ) -> list[MonthlyValue]:
        """
        Month-end values from the first settled month through the current one.

        A holding without a close for a month is valued at the most recent
        earlier close, else at its average cost. When purchases are the
        capital (no cash entries), cash is left out of the value and trades
        are the flows.
        """
        if not settled:
            return []

        tickers = sorted({
            d["ticker"] for d in settled if d.get("ticker") and TransactionType(d["type"]) in TRADE_TYPES
        })
        closes: dict[str, dict[str, float]] = {}
        if self.history is not None:
            for ticker in tickers:
                closes[ticker] = await self.history.get_monthly_closes(ticker)

        flows: dict[str, float] = {}
        for doc in settled:
            tx_type = TransactionType(doc["type"])
            amount = float(doc["amount"])
            key = month_key(doc["date"])
            if trades_are_capital:
                if tx_type in BUY_TYPES:
                    flows[key] = flows.get(key, 0.0) + amount
                elif tx_type in TRADE_TYPES:
                    flows[key] = flows.get(key, 0.0) - amount
            elif tx_type in CONTRIBUTION_TYPES:
                flows[key] = flows.get(key, 0.0) + amount
            elif tx_type == TransactionType.CASH_DEBIT:
                flows[key] = flows.get(key, 0.0) - amount

        current = month_start(utc_now())
        month = month_start(settled[0]["date"])
        evolution = []
        while month <= current:
            key = month_key(month)
            if month == current:
                value, cash = current_value, cash_balance
            else:
                month_end = add_months(month, 1) - timedelta(microseconds=1)
                cash = round(sum(
                    signed_amount(d["type"], d["amount"]) for d in settled if as_utc(d["date"]) <= month_end
                ), 2)
                holdings_value = 0.0
                for ticker, position in build_positions(settled, as_of=month_end).items():
                    if position.quantity <= QUANTITY_EPSILON:
                        continue
                    price = _close_for(closes.get(ticker, {}), key) or position.avg_cost
                    holdings_value += position.quantity * price
                value = round(holdings_value + (0.0 if trades_are_capital else cash), 2)
            evolution.append(MonthlyValue(
                month=key,
                value=value,
                cash_balance=cash,
                net_flow=round(flows.get(key, 0.0), 2),
            ))
            month = add_months(month, 1)

        for previous, point in zip(evolution, evolution[1:]):
            point.monthly_return = flow_adjusted_return(previous, point)
        return evolution

    async def update_metrics(self, portfolio_id: str) -> PortfolioMetricsResponse:
        """Recompute and store metrics for a portfolio."""
        settled = await self.ledger.get_settled_transactions(portfolio_id)
        holdings = await self.engine.get_current_holdings(portfolio_id)

        totals = {t: 0.0 for t in TransactionType}
        for doc in settled:
            totals[TransactionType(doc["type"])] += float(doc["amount"])

        cash_balance = round(sum(signed_amount(d["type"], d["amount"]) for d in settled), 2)
        holdings_value = round(sum(h.market_value for h in holdings), 2)
        current_value = round(holdings_value + cash_balance, 2)

        total_invested = totals[TransactionType.CASH_CREDIT] + totals[TransactionType.MONTHLY_CONTRIBUTION]
        trades_are_capital = total_invested == 0
        if trades_are_capital:
            # Portfolios tracked without cash entries: purchases are the capital
            total_invested = sum(totals[t] for t in BUY_TYPES)
        total_withdrawn = totals[TransactionType.CASH_DEBIT]

        if total_invested > 0:
            total_return = (current_value + total_withdrawn - total_invested) / total_invested
        else:
            total_return = 0.0

        evolution = await self.build_evolution(
            settled,
            holdings_value if trades_are_capital else current_value,
            cash_balance,
            trades_are_capital=trades_are_capital,
        )
        returns = [p.monthly_return for p in evolution if p.monthly_return is not None]
        annualized = annualized_return(total_return, len(evolution))
        volatility = annualized_volatility(returns)

        metrics_doc = {
            "current_value": current_value,
            "holdings_value": holdings_value,
            "cash_balance": cash_balance,
            "total_invested": round(total_invested, 2),
            "total_withdrawn": round(total_withdrawn, 2),
            "total_dividends": round(totals[TransactionType.DIVIDEND], 2),
            "total_return": total_return,
            "positions": len(holdings),
            "annualized_return": annualized,
            "volatility": volatility,
            "sharpe_ratio": sharpe_ratio(annualized, volatility, self.settings.risk_free_rate),
            "max_drawdown": max_drawdown([p.value for p in evolution]),
            "evolution": [p.model_dump() for p in evolution],
            "last_calculated_at": utc_now(),
        }
        await self.metrics.update_one(
            {"_id": portfolio_id},
            {"$set": metrics_doc},
            upsert=True,
        )
        logger.debug("Updated metrics for portfolio %s: value %.2f", portfolio_id, current_value)
        return PortfolioMetricsResponse(portfolio_id=portfolio_id, **metrics_doc)

    async def get_metrics(self, portfolio_id: str, user_id: str) -> PortfolioMetricsResponse:
        """Cached metrics, refreshed when missing or stale."""
        await self.ledger.ensure_owner(portfolio_id, user_id)

        doc = await self.metrics.find_one({"_id": portfolio_id})
        if doc and doc.get("last_calculated_at"):
            age = utc_now() - as_utc(doc["last_calculated_at"])
            if age < timedelta(minutes=self.settings.metrics_freshness_minutes):
                doc.pop("_id")
                doc["last_calculated_at"] = as_utc(doc["last_calculated_at"])
                return PortfolioMetricsResponse(portfolio_id=portfolio_id, **doc)

        return await self.update_metrics(portfolio_id)

    async def delete_metrics(self, portfolio_id: str) -> None:
        await self.metrics.delete_one({"_id": portfolio_id})
