"""
Allocation engine: holdings, drift and transaction suggestions.

Everything here is derived from settled (CONFIRMED/EXECUTED) ledger rows and
live quotes. Suggestions are ephemeral; the suggestion service decides when
they are persisted as PENDING transactions.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.config import get_settings
from app.core.dates import add_months, as_utc, day_key, month_start, same_month, start_of_day, utc_now
from app.database.databases import ledger_db
from app.models.portfolio import RebalanceFrequency
from app.models.transaction import (
    BUY_TYPES,
    SELL_TYPES,
    TRADE_TYPES,
    TransactionStatus,
    TransactionType,
)
from app.schemas.suggestion import (
    ClosedPosition,
    CombinedRebalancing,
    DriftEntry,
    Holding,
    RebalancingCheck,
    Suggestion,
)
from app.services.dividend_service import DividendEvent, DividendService
from app.services.ledger_service import LedgerService
from app.services.quote_service import QuoteService

logger = logging.getLogger(__name__)

# Quantities below this are treated as a closed position
QUANTITY_EPSILON = 1e-9

# Manual dividend rows without an ex-date match an event in the same month
DIVIDEND_RATE_TOLERANCE = 0.01
DIVIDEND_TOTAL_TOLERANCE = 0.02


@dataclass
class Position:
    """Running position state while replaying the ledger."""
    ticker: str
    quantity: float = 0.0
    cost: float = 0.0
    invested: float = 0.0
    received: float = 0.0
    dividends: float = 0.0
    first_buy: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @property
    def avg_cost(self) -> float:
        return self.cost / self.quantity if self.quantity > QUANTITY_EPSILON else 0.0

    def apply(self, doc: dict[str, Any]) -> None:
        tx_type = TransactionType(doc["type"])
        date = as_utc(doc["date"])
        amount = float(doc.get("amount") or 0.0)
        quantity = float(doc.get("quantity") or 0.0)

        if tx_type in BUY_TYPES:
            self.quantity += quantity
            self.cost += amount
            self.invested += amount
            if self.first_buy is None:
                self.first_buy = date
            self.closed_at = None
        elif tx_type in SELL_TYPES:
            sold = min(quantity, self.quantity)
            self.cost -= self.avg_cost * sold
            self.quantity -= sold
            self.received += amount
            if self.quantity <= QUANTITY_EPSILON:
                self.quantity = 0.0
                self.cost = 0.0
                self.closed_at = date
        elif tx_type == TransactionType.DIVIDEND:
            self.dividends += amount


def build_positions(docs: Iterable[dict[str, Any]], as_of: Optional[datetime] = None) -> dict[str, Position]:
    """Replay chronologically sorted settled rows into per-ticker positions."""
    positions: dict[str, Position] = {}
    for doc in docs:
        ticker = doc.get("ticker")
        if not ticker:
            continue
        if as_of is not None and as_utc(doc["date"]) > as_of:
            break
        positions.setdefault(ticker, Position(ticker=ticker)).apply(doc)
    return positions


def compute_drift(holdings: Iterable[Holding], targets: dict[str, float]) -> list[DriftEntry]:
    """
    Current vs target weight over held and targeted tickers.

    Held tickers that are no longer targeted get a target of 0; targeted
    tickers that aren't held get a current weight of 0.
    """
    values = {h.ticker: h.market_value for h in holdings}
    total = sum(values.values())

    entries = []
    for ticker in sorted(set(values) | set(targets)):
        current = values.get(ticker, 0.0) / total if total > 0 else 0.0
        target = targets.get(ticker, 0.0)
        entries.append(DriftEntry(
            ticker=ticker,
            current_weight=current,
            target_weight=target,
            drift=current - target,
        ))
    return entries


def combine_rebalancing_suggestions(suggestions: Iterable[Suggestion]) -> list[CombinedRebalancing]:
    """Group rebalance sells and buys by date into one display unit each."""
    groups: dict[str, list[Suggestion]] = {}
    for s in suggestions:
        if s.type not in (TransactionType.SELL_REBALANCE.value, TransactionType.BUY_REBALANCE.value):
            continue
        groups.setdefault(day_key(s.date), []).append(s)

    combined = []
    for key in sorted(groups):
        items = groups[key]
        sells = [s for s in items if s.type == TransactionType.SELL_REBALANCE.value]
        buys = [s for s in items if s.type == TransactionType.BUY_REBALANCE.value]
        total_sold = round(sum(s.amount for s in sells), 2)
        total_bought = round(sum(s.amount for s in buys), 2)

        parts = []
        if sells:
            parts.append("sell " + ", ".join(s.ticker for s in sells))
        if buys:
            parts.append("buy " + ", ".join(s.ticker for s in buys))

        combined.append(CombinedRebalancing(
            date=items[0].date,
            sell_transactions=sells,
            buy_transactions=buys,
            total_sold=total_sold,
            total_bought=total_bought,
            net_cash_change=round(total_sold - total_bought, 2),
            reason="Rebalance: " + "; ".join(parts),
            cash_balance_before=items[0].cash_balance_before or 0.0,
            cash_balance_after=items[-1].cash_balance_after or 0.0,
        ))
    return combined


def pending_match_key(date: datetime, tx_type: str, ticker: Optional[str], quantity: Optional[float],
                   amount: Optional[float]) -> tuple:
    """De-duplication key: trades match on quantity, cash rows on amount."""
    if TransactionType(tx_type) in TRADE_TYPES:
        return (day_key(date), tx_type, ticker, round(float(quantity or 0.0), 6))
    return (day_key(date), tx_type, ticker, round(float(amount or 0.0), 2))


class AllocationEngine:
    """Computes holdings, drift and suggestions for a portfolio."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        ledger: LedgerService,
        quote_service: QuoteService,
        dividend_service: Optional[DividendService] = None,
    ):
        self.db = db
        self.assets = db[ledger_db.Collections.ASSET_ALLOCATIONS]
        self.transactions = db[ledger_db.Collections.TRANSACTIONS]
        self.ledger = ledger
        self.quote_service = quote_service
        self.dividend_service = dividend_service
        self.settings = get_settings()

    # ==================== Holdings ====================

    async def get_active_targets(self, portfolio_id: str) -> dict[str, float]:
        cursor = self.assets.find({"portfolio_id": portfolio_id, "is_active": True})
        docs = await cursor.to_list(length=None)
        return {d["ticker"]: float(d["target_weight"]) for d in docs}

    async def get_current_holdings(self, portfolio_id: str) -> list[Holding]:
        """
        Open positions priced at the latest quote, largest first.

        A ticker without a quote is priced at its average cost.
        """
        settled = await self.ledger.get_settled_transactions(portfolio_id)
        positions = [p for p in build_positions(settled).values() if p.quantity > QUANTITY_EPSILON]
        if not positions:
            return []

        prices = await self.quote_service.get_latest_prices([p.ticker for p in positions])
        targets = await self.get_active_targets(portfolio_id)

        holdings = []
        for p in positions:
            price = prices.get(p.ticker) or p.avg_cost
            market_value = price * p.quantity
            holdings.append(Holding(
                ticker=p.ticker,
                quantity=p.quantity,
                avg_cost=round(p.avg_cost, 4),
                current_price=price,
                market_value=round(market_value, 2),
                total_invested=round(p.cost, 2),
                unrealized_return=(market_value - p.cost) / p.cost if p.cost > 0 else 0.0,
            ))

        drifts = {d.ticker: d for d in compute_drift(holdings, targets)}
        for h in holdings:
            d = drifts[h.ticker]
            h.current_weight = d.current_weight
            h.target_weight = d.target_weight
            h.drift = d.drift
            h.needs_rebalancing = abs(d.drift) > self.settings.drift_threshold

        holdings.sort(key=lambda h: h.market_value, reverse=True)
        return holdings

    async def get_holdings(self, portfolio_id: str, user_id: str) -> list[Holding]:
        await self.ledger.ensure_owner(portfolio_id, user_id)
        return await self.get_current_holdings(portfolio_id)

    async def get_closed_positions(self, portfolio_id: str, user_id: str) -> list[ClosedPosition]:
        """Tickers whose quantity went back to zero, with realized results."""
        await self.ledger.ensure_owner(portfolio_id, user_id)
        settled = await self.ledger.get_settled_transactions(portfolio_id)

        closed = []
        for p in build_positions(settled).values():
            if p.quantity > QUANTITY_EPSILON or p.closed_at is None:
                continue
            total_received = p.received + p.dividends
            closed.append(ClosedPosition(
                ticker=p.ticker,
                total_invested=round(p.invested, 2),
                total_received=round(total_received, 2),
                realized_return=(total_received - p.invested) / p.invested if p.invested > 0 else 0.0,
                closed_at=p.closed_at,
            ))
        closed.sort(key=lambda c: c.closed_at, reverse=True)
        return closed

    async def _prices_for(self, tickers: Iterable[str], holdings: list[Holding]) -> dict[str, float]:
        """Held tickers use the holding's price; the rest are quoted."""
        prices = {h.ticker: h.current_price for h in holdings}
        missing = [t for t in tickers if t not in prices]
        if missing:
            prices.update(await self.quote_service.get_latest_prices(missing))
        return {t: p for t, p in prices.items() if p and p > 0}

    async def _existing_auto_keys(self, portfolio_id: str, types: Iterable[TransactionType]) -> set[tuple]:
        cursor = self.transactions.find({
            "portfolio_id": portfolio_id,
            "is_auto_suggested": True,
            "type": {"$in": [TransactionType(t).value for t in types]},
            "status": {"$in": [
                TransactionStatus.PENDING.value,
                TransactionStatus.CONFIRMED.value,
                TransactionStatus.REJECTED.value,
            ]},
        })
        docs = await cursor.to_list(length=None)
        return {
            pending_match_key(d["date"], d["type"], d.get("ticker"), d.get("quantity"), d.get("amount"))
            for d in docs
        }

    @staticmethod
    def _drop_existing(suggestions: list[Suggestion], existing: set[tuple]) -> list[Suggestion]:
        return [
            s for s in suggestions
            if pending_match_key(s.date, s.type, s.ticker, s.quantity, s.amount) not in existing
        ]

    # ==================== Rebalancing ====================

    async def get_rebalancing_suggestions(self, portfolio_id: str, user_id: str) -> list[Suggestion]:
        """
        Sell overweight and buy underweight assets back toward target.

        Nothing is suggested while contribution suggestions are still pending.
        """
        portfolio = await self.ledger.ensure_owner(portfolio_id, user_id)
        if not portfolio.get("tracking_started", True):
            return []

        pending_contributions = await self.transactions.count_documents({
            "portfolio_id": portfolio_id,
            "status": TransactionStatus.PENDING.value,
            "is_auto_suggested": True,
            "type": {"$in": [
                TransactionType.MONTHLY_CONTRIBUTION.value,
                TransactionType.CASH_CREDIT.value,
                TransactionType.BUY.value,
            ]},
        })
        if pending_contributions:
            logger.debug("Portfolio %s has pending contributions, skipping rebalancing", portfolio_id)
            return []

        holdings = await self.get_current_holdings(portfolio_id)
        targets = await self.get_active_targets(portfolio_id)
        cash = await self.ledger.get_current_cash_balance(portfolio_id)
        suggestions = await self.build_rebalancing(holdings, targets, cash)

        existing = await self._existing_auto_keys(
            portfolio_id, [TransactionType.SELL_REBALANCE, TransactionType.BUY_REBALANCE]
        )
        return self._drop_existing(suggestions, existing)

    async def build_rebalancing(
        self, holdings: list[Holding], targets: dict[str, float], cash: float
    ) -> list[Suggestion]:
        """Sell/buy suggestions for every asset outside the drift threshold."""
        holdings_value = sum(h.market_value for h in holdings)
        if holdings_value <= 0:
            return []

        by_ticker = {h.ticker: h for h in holdings}
        threshold = self.settings.drift_threshold
        drifts = [d for d in compute_drift(holdings, targets) if abs(d.drift) > threshold]
        prices = await self._prices_for([d.ticker for d in drifts], holdings)
        today = start_of_day(utc_now())

        sells = []
        buys = []
        for d in drifts:
            price = prices.get(d.ticker)
            if not price:
                continue
            held = by_ticker.get(d.ticker)
            current_qty = held.quantity if held else 0.0

            if d.drift > 0 and held:
                target_qty = math.floor(holdings_value * d.target_weight / price)
                quantity = round(current_qty - target_qty, 6)
                if quantity > 0:
                    sells.append((held.unrealized_return, d, price, quantity))
            elif d.drift < 0:
                target_qty = math.floor((holdings_value + cash) * d.target_weight / price)
                quantity = math.floor(target_qty - current_qty)
                if quantity > 0:
                    buys.append((d.drift, d, price, quantity))

        suggestions = []
        running = cash

        # Most profitable sells first
        for _, d, price, quantity in sorted(sells, key=lambda s: s[0], reverse=True):
            amount = round(price * quantity, 2)
            suggestions.append(Suggestion(
                date=today,
                type=TransactionType.SELL_REBALANCE,
                ticker=d.ticker,
                amount=amount,
                price=price,
                quantity=quantity,
                reason=f"{d.ticker} is {d.drift:+.1%} above its {d.target_weight:.1%} target",
                cash_balance_before=round(running, 2),
                cash_balance_after=round(running + amount, 2),
            ))
            running += amount

        # Most underweight buys first, only while cash lasts
        for _, d, price, quantity in sorted(buys, key=lambda b: b[0]):
            amount = round(price * quantity, 2)
            if amount > running + self.settings.cash_epsilon:
                logger.debug("Skipping rebalance buy of %s: %.2f exceeds cash %.2f", d.ticker, amount, running)
                continue
            suggestions.append(Suggestion(
                date=today,
                type=TransactionType.BUY_REBALANCE,
                ticker=d.ticker,
                amount=amount,
                price=price,
                quantity=quantity,
                reason=f"{d.ticker} is {abs(d.drift):.1%} below its {d.target_weight:.1%} target",
                cash_balance_before=round(running, 2),
                cash_balance_after=round(running - amount, 2),
            ))
            running -= amount

        return suggestions

    async def should_show_rebalancing(self, portfolio_id: str, user_id: str) -> RebalancingCheck:
        await self.ledger.ensure_owner(portfolio_id, user_id)
        holdings = await self.get_current_holdings(portfolio_id)
        targets = await self.get_active_targets(portfolio_id)
        drifts = compute_drift(holdings, targets)
        if not holdings or not drifts:
            return RebalancingCheck(should_show=False, max_drift=0.0, details="No holdings to rebalance")

        worst = max(drifts, key=lambda d: abs(d.drift))
        max_drift = abs(worst.drift)
        threshold = self.settings.drift_threshold
        if max_drift > threshold:
            details = f"{worst.ticker} drifted {worst.drift:+.1%} from its {worst.target_weight:.1%} target"
        else:
            details = f"All assets within {threshold:.1%} of target"
        return RebalancingCheck(should_show=max_drift > threshold, max_drift=max_drift, details=details)

    # ==================== Contributions ====================

    async def get_contribution_suggestions(self, portfolio_id: str, user_id: str) -> list[Suggestion]:
        """
        Contributions for every period without one, then BUYs for the available cash.

        Stale pending suggestions (marker unset or older than
        `suggestion_regeneration_days`) are discarded first.
        """
        portfolio = await self.ledger.ensure_owner(portfolio_id, user_id)
        if not portfolio.get("tracking_started", True):
            return []

        now = utc_now()
        last_generated = as_utc(portfolio.get("last_suggestions_generated_at"))
        stale_after = timedelta(days=self.settings.suggestion_regeneration_days)
        if last_generated is None or now - last_generated > stale_after:
            result = await self.transactions.delete_many({
                "portfolio_id": portfolio_id,
                "status": TransactionStatus.PENDING.value,
                "is_auto_suggested": True,
            })
            if result.deleted_count:
                logger.info("Discarded %d stale suggestions for portfolio %s", result.deleted_count, portfolio_id)

        docs = await self.transactions.find({"portfolio_id": portfolio_id}).to_list(length=None)
        contributions = self._contribution_periods(portfolio, last_generated, docs, now)

        cash = await self.ledger.get_current_cash_balance(portfolio_id)
        available = cash + sum(c.amount for c in contributions)
        running = cash
        for c in contributions:
            c.cash_balance_before = round(running, 2)
            running += c.amount
            c.cash_balance_after = round(running, 2)

        pending_buy = any(
            d["status"] == TransactionStatus.PENDING.value
            and d.get("is_auto_suggested")
            and d["type"] == TransactionType.BUY.value
            for d in docs
        )

        buys = []
        if available > self.settings.cash_epsilon and not pending_buy:
            holdings = await self.get_current_holdings(portfolio_id)
            targets = await self.get_active_targets(portfolio_id)
            buys = await self.allocate_cash(holdings, targets, available)

        existing = await self._existing_auto_keys(portfolio_id, [
            TransactionType.MONTHLY_CONTRIBUTION,
            TransactionType.CASH_CREDIT,
            TransactionType.BUY,
        ])
        suggestions = self._drop_existing(contributions + buys, existing)
        logger.debug(
            "Portfolio %s: %d contribution and %d buy suggestions",
            portfolio_id, len(contributions), len(buys),
        )
        return suggestions

    def _contribution_periods(
        self,
        portfolio: dict[str, Any],
        last_generated: Optional[datetime],
        docs: list[dict[str, Any]],
        now: datetime,
    ) -> list[Suggestion]:
        monthly_contribution = float(portfolio.get("monthly_contribution") or 0.0)
        if monthly_contribution <= 0:
            return []

        step = RebalanceFrequency(portfolio.get("rebalance_frequency") or "monthly").months
        start_day = start_of_day(portfolio["start_date"])
        first_period = month_start(start_day)

        # Align the anchor to the period grid that starts at start_date's month
        anchor = month_start(last_generated) if last_generated else first_period
        months_in = max(0, (anchor.year - first_period.year) * 12 + anchor.month - first_period.month)
        period = add_months(first_period, months_in // step * step)

        contribution_dates = [
            as_utc(d["date"]) for d in docs
            if d["type"] == TransactionType.MONTHLY_CONTRIBUTION.value
            or (d["type"] == TransactionType.CASH_CREDIT.value and d.get("is_auto_suggested"))
        ]

        suggestions = []
        while period <= now:
            period_end = add_months(period, step)
            if not any(period <= d < period_end for d in contribution_dates):
                suggestions.append(Suggestion(
                    date=max(period, start_day),
                    type=TransactionType.MONTHLY_CONTRIBUTION,
                    amount=monthly_contribution,
                    reason=f"Planned contribution for {period:%B %Y}",
                ))
            period = period_end
        return suggestions

    async def allocate_cash(
        self, holdings: list[Holding], targets: dict[str, float], available: float
    ) -> list[Suggestion]:
        """
        Spend available cash on underweight assets in whole shares.

        Cash is split proportionally to target weight, capped at each asset's
        deficit, then leftovers top up the largest remaining deficits.
        """
        prices = await self._prices_for(targets, holdings)
        values = {h.ticker: h.market_value for h in holdings}
        total_value = sum(values.values()) + available

        deficits = {}
        for ticker, weight in targets.items():
            deficit = total_value * weight - values.get(ticker, 0.0)
            if deficit > self.settings.cash_epsilon and ticker in prices:
                deficits[ticker] = deficit
        if not deficits:
            return []

        weight_sum = sum(targets[t] for t in deficits)
        quantities = {}
        for ticker, deficit in deficits.items():
            share = available * targets[ticker] / weight_sum if weight_sum > 0 else 0.0
            quantities[ticker] = math.floor(min(share, deficit) / prices[ticker])

        remaining = available - sum(quantities[t] * prices[t] for t in deficits)

        def gap(ticker: str) -> float:
            return deficits[ticker] - quantities[ticker] * prices[ticker]

        for ticker in sorted(deficits, key=gap, reverse=True):
            extra = math.floor(min(remaining, gap(ticker)) / prices[ticker])
            if extra > 0:
                quantities[ticker] += extra
                remaining -= extra * prices[ticker]

        for ticker in sorted(deficits, key=gap, reverse=True):
            if prices[ticker] <= remaining + 1e-9:
                quantities[ticker] += 1
                remaining -= prices[ticker]

        today = start_of_day(utc_now())
        running = available
        suggestions = []
        for ticker in sorted(deficits, key=lambda t: quantities[t] * prices[t], reverse=True):
            quantity = quantities[ticker]
            if quantity <= 0:
                continue
            amount = round(quantity * prices[ticker], 2)
            suggestions.append(Suggestion(
                date=today,
                type=TransactionType.BUY,
                ticker=ticker,
                amount=amount,
                price=prices[ticker],
                quantity=quantity,
                reason=f"Invest available cash toward {ticker}'s {targets[ticker]:.1%} target",
                cash_balance_before=round(running, 2),
                cash_balance_after=round(running - amount, 2),
            ))
            running -= amount
        return suggestions

    # ==================== Dividends ====================

    async def warm_market_data(self, portfolio_id: str) -> None:
        """
        Refresh the quote and dividend caches a regeneration will read.

        Best-effort: failures are logged and the suggestion pass falls back to
        whatever the caches hold.
        """
        try:
            settled = await self.ledger.get_settled_transactions(portfolio_id)
            positions = build_positions(settled)
            tickers = set(await self.get_active_targets(portfolio_id))
            tickers.update(t for t, p in positions.items() if p.quantity > QUANTITY_EPSILON)
            if tickers:
                await self.quote_service.get_latest_prices(sorted(tickers))
            if self.dividend_service is not None:
                now = utc_now()
                for ticker, p in sorted(positions.items()):
                    if p.first_buy is not None:
                        await self.dividend_service.get_dividend_events(
                            ticker, since=start_of_day(p.first_buy), until=now
                        )
        except Exception:
            logger.warning("Could not warm market data for portfolio %s", portfolio_id, exc_info=True)

    async def get_dividend_suggestions(self, portfolio_id: str, user_id: str) -> list[Suggestion]:
        """DIVIDEND credits for paid events on shares held at the ex-date."""
        await self.ledger.ensure_owner(portfolio_id, user_id)
        if self.dividend_service is None:
            raise RuntimeError("Dividend suggestions require a dividend service")

        settled = await self.ledger.get_settled_transactions(portfolio_id)
        first_buys = {
            ticker: p.first_buy
            for ticker, p in build_positions(settled).items()
            if p.first_buy is not None
        }
        if not first_buys:
            return []

        recorded = await self.transactions.find({
            "portfolio_id": portfolio_id,
            "type": TransactionType.DIVIDEND.value,
            "status": {"$ne": TransactionStatus.REJECTED.value},
        }).to_list(length=None)

        now = utc_now()
        seen = set()
        suggestions = []
        for ticker, first_buy in sorted(first_buys.items()):
            events = await self.dividend_service.get_dividend_events(
                ticker, since=start_of_day(first_buy), until=now
            )
            for event in events:
                key = (ticker, day_key(event.ex_date), round(event.rate, 6))
                if event.effective_date > now or key in seen:
                    continue
                position = build_positions(settled, as_of=event.ex_date).get(ticker)
                quantity = position.quantity if position else 0.0
                if quantity <= QUANTITY_EPSILON:
                    continue
                amount = round(event.rate * quantity, 2)
                if amount <= 0 or self._dividend_recorded(recorded, event, amount):
                    continue

                seen.add(key)
                suggestions.append(Suggestion(
                    date=start_of_day(event.effective_date),
                    type=TransactionType.DIVIDEND,
                    ticker=ticker,
                    amount=amount,
                    price=event.rate,
                    quantity=quantity,
                    reason=f"{event.label or 'Dividend'} of {event.rate:g} per share on {quantity:g} {ticker}",
                    ex_date=event.ex_date,
                ))

        suggestions.sort(key=lambda s: s.date)
        return suggestions

    @staticmethod
    def _dividend_recorded(recorded: list[dict[str, Any]], event: DividendEvent, amount: float) -> bool:
        for doc in recorded:
            if doc.get("ticker") != event.ticker:
                continue
            if doc.get("ex_date"):
                # Several distributions can share an ex-date; the rate tells them apart
                price = doc.get("price")
                if day_key(doc["ex_date"]) == day_key(event.ex_date) and (
                    price is None or abs(price - event.rate) <= event.rate * DIVIDEND_RATE_TOLERANCE
                ):
                    return True
                continue
            # Manual entries carry no ex-date; match on month and value
            if not same_month(doc["date"], event.effective_date):
                continue
            price = doc.get("price")
            if price and abs(price - event.rate) <= event.rate * DIVIDEND_RATE_TOLERANCE:
                return True
            if abs(float(doc["amount"]) - amount) <= amount * DIVIDEND_TOTAL_TOLERANCE:
                return True
        return False
