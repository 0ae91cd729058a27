"""
Portfolio service for portfolio configuration and target allocations.
"""
import logging
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.config import get_settings
from app.core.dates import as_utc, start_of_day, utc_now
from app.core.errors import (
    InvalidAllocationError,
    InvalidTickerError,
    LedgerError,
    NotFoundError,
    PortfolioLimitExceededError,
    ValidationError,
)
from app.database.databases import ledger_db
from app.models.portfolio import AssetAllocation
from app.models.user import User
from app.schemas.portfolio import (
    AssetAdd,
    AssetItemResult,
    AssetResponse,
    AssetsReplace,
    BacktestAsset,
    BacktestSeedRequest,
    BacktestSeedResponse,
    PortfolioCreate,
    PortfolioResponse,
    ReplaceAssetsResult,
)
from app.services.access import parse_object_id, to_portfolio_config
from app.services.quote_service import QuoteService, normalize_ticker
from app.services.suggestion_service import SuggestionService

logger = logging.getLogger(__name__)

# Allowed distance of a submitted weight sum from 1.0
WEIGHT_SUM_TOLERANCE = 0.01


def normalize_weights(weights: dict[str, float]) -> dict[str, float]:
    """Scale weights to sum to 1; an all-zero set is split equally."""
    total = sum(weights.values())
    if total <= 0:
        return {t: 1.0 / len(weights) for t in weights}
    return {t: w / total for t, w in weights.items()}


class PortfolioService:
    """Service for portfolio and allocation operations."""

    def __init__(self, db: AsyncIOMotorDatabase, quote_service: QuoteService, suggestions: SuggestionService):
        """Initialize with ledger database, quote service and the suggestion lifecycle."""
        self.db = db
        self.portfolios = db[ledger_db.Collections.PORTFOLIOS]
        self.assets = db[ledger_db.Collections.ASSET_ALLOCATIONS]
        self.transactions = db[ledger_db.Collections.TRANSACTIONS]
        self.seeds = db[ledger_db.Collections.BACKTEST_SEEDS]
        self.quote_service = quote_service
        self.suggestions = suggestions
        self.ledger = suggestions.ledger
        self.settings = get_settings()

    # ==================== Portfolio CRUD ====================

    async def create_portfolio(self, user: User, request: PortfolioCreate) -> PortfolioResponse:
        """
        Create a portfolio with its target allocation.

        Raises:
            PortfolioLimitExceededError: Free account already owns its portfolio
            InvalidTickerError: A ticker failed validation
            InvalidAllocationError: Duplicate tickers or weights not summing to 1
        """
        if not user.is_premium:
            owned = await self.portfolios.count_documents({"user_id": user.id})
            if owned >= self.settings.free_portfolio_limit:
                raise PortfolioLimitExceededError(
                    f"Free accounts are limited to {self.settings.free_portfolio_limit} portfolio(s)"
                )

        weights = {}
        for asset in request.assets:
            ticker = normalize_ticker(asset.ticker)
            if ticker in weights:
                raise InvalidAllocationError(f"Duplicate ticker: {ticker}")
            if asset.target_weight < 0:
                raise InvalidAllocationError(f"Weight for {ticker} must be non-negative")
            weights[ticker] = asset.target_weight

        total = sum(weights.values())
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise InvalidAllocationError(f"Target weights must sum to 1 (got {total:.4f})")

        # Validate every ticker before anything is written
        for ticker in weights:
            await self.quote_service.validate_ticker(ticker)
        weights = normalize_weights(weights)

        now = utc_now()
        portfolio_doc = {
            "user_id": user.id,
            "name": request.name,
            "description": request.description,
            "start_date": start_of_day(request.start_date or now),
            "monthly_contribution": request.monthly_contribution,
            "rebalance_frequency": request.rebalance_frequency.value,
            "tracking_started": True,
            "last_suggestions_generated_at": None,
            "version": 0,
            "created_at": now,
            "updated_at": now,
        }
        result = await self.portfolios.insert_one(portfolio_doc)
        portfolio_doc["_id"] = result.inserted_id
        portfolio_id = str(result.inserted_id)

        await self.assets.insert_many([
            {
                **AssetAllocation(portfolio_id=portfolio_id, ticker=ticker, target_weight=weight).model_dump(
                    exclude={"id"}
                ),
                "created_at": now,
                "updated_at": now,
            }
            for ticker, weight in weights.items()
        ])
        logger.info("Created portfolio %s for user %s with %d assets", portfolio_id, user.id, len(weights))

        assets = [AssetResponse(ticker=t, target_weight=w) for t, w in weights.items()]
        return self._portfolio_to_response(portfolio_doc, assets, 0.0)

    async def get_portfolio(self, portfolio_id: str, user_id: str) -> PortfolioResponse:
        """Get a portfolio by ID (must belong to user)."""
        doc = await self.ledger.ensure_owner(portfolio_id, user_id)
        assets = await self._active_assets(portfolio_id)
        cash_balance = await self.ledger.get_current_cash_balance(portfolio_id)
        return self._portfolio_to_response(doc, assets, cash_balance)

    async def list_portfolios(self, user_id: str) -> list[PortfolioResponse]:
        """List all portfolios for a user."""
        cursor = self.portfolios.find({"user_id": user_id}).sort("created_at", 1)
        docs = await cursor.to_list(length=100)

        responses = []
        for doc in docs:
            portfolio_id = str(doc["_id"])
            assets = await self._active_assets(portfolio_id)
            cash_balance = await self.ledger.get_current_cash_balance(portfolio_id)
            responses.append(self._portfolio_to_response(doc, assets, cash_balance))
        return responses

    async def delete_portfolio(self, portfolio_id: str, user_id: str) -> None:
        """Delete a portfolio and everything that hangs off it."""
        doc = await self.ledger.ensure_owner(portfolio_id, user_id)

        await self.portfolios.delete_one({"_id": doc["_id"]})
        await self.assets.delete_many({"portfolio_id": portfolio_id})
        deleted = await self.transactions.delete_many({"portfolio_id": portfolio_id})
        await self.suggestions.metrics.delete_metrics(portfolio_id)
        await self.suggestions.outbox.delete_for_portfolio(portfolio_id)
        logger.info("Deleted portfolio %s and %d transactions", portfolio_id, deleted.deleted_count)

    # ==================== Asset Allocation ====================

    async def _active_assets(self, portfolio_id: str) -> list[AssetResponse]:
        cursor = self.assets.find({"portfolio_id": portfolio_id, "is_active": True}).sort("ticker", 1)
        docs = await cursor.to_list(length=None)
        return [AssetResponse(ticker=d["ticker"], target_weight=d["target_weight"]) for d in docs]

    async def _after_allocation_change(self, portfolio_id: str) -> None:
        """Drop outstanding suggestions and schedule a rebuild."""
        await self.suggestions.delete_pending_transactions(portfolio_id)
        await self.portfolios.update_one(
            {"_id": parse_object_id(portfolio_id)},
            {
                "$set": {"last_suggestions_generated_at": None, "updated_at": utc_now()},
                "$inc": {"version": 1},
            },
        )
        try:
            await self.suggestions.outbox.enqueue(portfolio_id)
        except Exception:
            logger.warning("Regeneration enqueue failed for portfolio %s", portfolio_id, exc_info=True)

    async def _set_weights(self, portfolio_id: str, weights: dict[str, float]) -> None:
        now = utc_now()
        for ticker, weight in weights.items():
            await self.assets.update_one(
                {"portfolio_id": portfolio_id, "ticker": ticker},
                {
                    "$set": {"target_weight": weight, "is_active": True, "updated_at": now},
                    "$setOnInsert": {"created_at": now},
                },
                upsert=True,
            )

    async def add_asset(self, portfolio_id: str, user_id: str, request: AssetAdd) -> PortfolioResponse:
        """
        Add (or reactivate) an asset at `target_weight`.

        The other active weights are scaled by (1 - target_weight) so the
        allocation still sums to 1.
        """
        await self.ledger.ensure_owner(portfolio_id, user_id)
        ticker = await self.quote_service.validate_ticker(request.ticker)

        existing = await self.assets.find_one({"portfolio_id": portfolio_id, "ticker": ticker})
        if existing and existing.get("is_active"):
            raise InvalidAllocationError(f"{ticker} is already in the portfolio")

        active = await self.assets.find({"portfolio_id": portfolio_id, "is_active": True}).to_list(length=None)
        if active:
            weights = {d["ticker"]: d["target_weight"] * (1 - request.target_weight) for d in active}
            weights[ticker] = request.target_weight
        else:
            weights = {ticker: 1.0}
        await self._set_weights(portfolio_id, weights)
        await self._after_allocation_change(portfolio_id)

        logger.info("Added %s (%.2f%%) to portfolio %s", ticker, request.target_weight * 100, portfolio_id)
        return await self.get_portfolio(portfolio_id, user_id)

    async def remove_asset(self, portfolio_id: str, user_id: str, ticker: str) -> PortfolioResponse:
        """Deactivate an asset and renormalize the remaining weights."""
        await self.ledger.ensure_owner(portfolio_id, user_id)
        ticker = normalize_ticker(ticker)

        active = await self.assets.find({"portfolio_id": portfolio_id, "is_active": True}).to_list(length=None)
        if ticker not in {d["ticker"] for d in active}:
            raise NotFoundError(f"Asset {ticker} not found")
        remaining = {d["ticker"]: d["target_weight"] for d in active if d["ticker"] != ticker}
        if not remaining:
            raise InvalidAllocationError("A portfolio needs at least one asset")

        await self.assets.update_one(
            {"portfolio_id": portfolio_id, "ticker": ticker},
            {"$set": {"is_active": False, "updated_at": utc_now()}},
        )
        await self._set_weights(portfolio_id, normalize_weights(remaining))
        await self._after_allocation_change(portfolio_id)

        logger.info("Removed %s from portfolio %s", ticker, portfolio_id)
        return await self.get_portfolio(portfolio_id, user_id)

    async def replace_all_assets(
        self, portfolio_id: str, user_id: str, request: AssetsReplace
    ) -> ReplaceAssetsResult:
        """
        Replace the whole allocation, validating each asset independently.

        Failed items are reported and skipped; the valid ones are normalized.
        When every item fails nothing is changed.
        """
        await self.ledger.ensure_owner(portfolio_id, user_id)

        results: list[AssetItemResult] = []
        weights: dict[str, float] = {}
        seen = set()
        for item in request.assets:
            raw = normalize_ticker(item.ticker)
            try:
                if item.target_weight < 0:
                    raise InvalidAllocationError(f"Weight for {raw} must be non-negative")
                if raw in seen:
                    raise InvalidAllocationError(f"Duplicate ticker: {raw}")
                seen.add(raw)
                ticker = await self.quote_service.validate_ticker(raw)
            except LedgerError as e:
                results.append(AssetItemResult(ticker=raw, success=False, code=e.code, error=e.message))
                continue
            weights[ticker] = item.target_weight
            results.append(AssetItemResult(ticker=ticker, success=True))

        succeeded = len(weights)
        if not weights:
            return ReplaceAssetsResult(
                success=False,
                succeeded=0,
                failed=len(results),
                results=results,
                assets=await self._active_assets(portfolio_id),
            )

        weights = normalize_weights(weights)
        for result in results:
            if result.success:
                result.target_weight = weights[result.ticker]

        await self._set_weights(portfolio_id, weights)
        await self.assets.update_many(
            {"portfolio_id": portfolio_id, "is_active": True, "ticker": {"$nin": list(weights)}},
            {"$set": {"is_active": False, "updated_at": utc_now()}},
        )
        await self._after_allocation_change(portfolio_id)
        logger.info("Replaced allocation of portfolio %s with %d assets", portfolio_id, succeeded)

        return ReplaceAssetsResult(
            success=True,
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=results,
            assets=await self._active_assets(portfolio_id),
        )

    # ==================== Backtest Seed ====================

    async def generate_backtest_seed(
        self, portfolio_id: str, user_id: str, request: BacktestSeedRequest
    ) -> BacktestSeedResponse:
        """Build and store a backtest configuration from the live portfolio."""
        doc = await self.ledger.ensure_owner(portfolio_id, user_id)

        weights = {}
        excluded = []
        for asset in await self._active_assets(portfolio_id):
            try:
                ticker = await self.quote_service.validate_ticker(asset.ticker)
            except InvalidTickerError:
                logger.warning("Excluding %s from backtest of portfolio %s", asset.ticker, portfolio_id)
                excluded.append(asset.ticker)
                continue
            weights[ticker] = asset.target_weight
        if not weights:
            raise InvalidAllocationError("No valid assets to backtest")
        weights = normalize_weights(weights)

        initial_capital = request.initial_capital
        if initial_capital is None:
            metrics = await self.suggestions.metrics.update_metrics(portfolio_id)
            initial_capital = max(metrics.current_value, 0.0)

        start_date = start_of_day(request.start_date or doc["start_date"])
        end_date = start_of_day(request.end_date or utc_now())
        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date")

        monthly_contribution = request.monthly_contribution
        if monthly_contribution is None:
            monthly_contribution = doc.get("monthly_contribution", 0.0)

        seed_doc: dict[str, Any] = {
            "source_portfolio_id": portfolio_id,
            "user_id": user_id,
            "name": request.name or f"{doc['name']} backtest",
            "assets": [{"ticker": t, "allocation": w} for t, w in weights.items()],
            "start_date": start_date,
            "end_date": end_date,
            "initial_capital": round(initial_capital, 2),
            "monthly_contribution": monthly_contribution,
            "rebalance_frequency": doc.get("rebalance_frequency", "monthly"),
            "excluded_tickers": excluded,
            "created_at": utc_now(),
        }
        result = await self.seeds.insert_one(seed_doc)
        logger.info("Generated backtest seed %s from portfolio %s", result.inserted_id, portfolio_id)

        return BacktestSeedResponse(
            id=str(result.inserted_id),
            source_portfolio_id=portfolio_id,
            name=seed_doc["name"],
            assets=[BacktestAsset(**a) for a in seed_doc["assets"]],
            start_date=start_date,
            end_date=end_date,
            initial_capital=seed_doc["initial_capital"],
            monthly_contribution=monthly_contribution,
            rebalance_frequency=seed_doc["rebalance_frequency"],
            excluded_tickers=excluded,
            created_at=seed_doc["created_at"],
        )

    # ==================== Helpers ====================

    def _portfolio_to_response(
        self, doc: dict, assets: list[AssetResponse], cash_balance: float
    ) -> PortfolioResponse:
        """Convert MongoDB document to PortfolioResponse."""
        config = to_portfolio_config(doc)
        return PortfolioResponse(
            id=config.id,
            user_id=config.user_id,
            name=config.name,
            description=config.description,
            start_date=as_utc(config.start_date),
            monthly_contribution=config.monthly_contribution,
            rebalance_frequency=config.rebalance_frequency,
            tracking_started=config.tracking_started,
            last_suggestions_generated_at=as_utc(config.last_suggestions_generated_at),
            assets=assets,
            cash_balance=cash_balance,
            created_at=as_utc(config.created_at),
        )
