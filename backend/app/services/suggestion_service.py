"""
Suggestion lifecycle: materialization, confirm/reject and regeneration.

This service is the entry point for every ledger mutation made through the
API. After a mutation it runs the post-mutation hooks (audit snapshot replay,
suggestion marker reset, regeneration task, metrics refresh). Hooks are
best-effort: a failure is logged and never undoes the mutation.
"""
import logging
from datetime import timedelta
from typing import Optional, Union

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from app.core.dates import as_utc, start_of_day, utc_now
from app.core.errors import LedgerError, ValidationError
from app.database.databases import ledger_db
from app.models.outbox import OutboxKind
from app.models.transaction import (
    Transaction,
    TransactionStatus,
    TransactionType,
    TRADE_TYPES,
    is_debit,
    requires_ticker,
    suggestion_key,
)
from app.schemas.suggestion import (
    MaterializeResponse,
    Suggestion,
    SuggestionKind,
    SuggestionsResponse,
    SuggestionStatus,
)
from app.schemas.transaction import (
    BatchItemResult,
    BatchResult,
    TransactionCreate,
    TransactionResponse,
    TransactionUpdates,
)
from app.services.access import parse_object_id
from app.services.allocation_service import AllocationEngine, combine_rebalancing_suggestions
from app.services.ledger_service import LedgerService
from app.services.metrics_service import MetricsService
from app.services.outbox_service import OutboxService

logger = logging.getLogger(__name__)

REBALANCE_TYPES = (TransactionType.SELL_REBALANCE.value, TransactionType.BUY_REBALANCE.value)


class SuggestionService:
    """Service for the suggestion lifecycle and ledger mutations."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        ledger: LedgerService,
        engine: AllocationEngine,
        outbox: OutboxService,
        metrics: MetricsService,
    ):
        self.db = db
        self.portfolios = db[ledger_db.Collections.PORTFOLIOS]
        self.transactions = db[ledger_db.Collections.TRANSACTIONS]
        self.ledger = ledger
        self.engine = engine
        self.outbox = outbox
        self.metrics = metrics
        self.settings = ledger.settings

    # ==================== Post-mutation Hooks ====================

    async def reset_suggestion_marker(self, portfolio_id: str) -> None:
        """Force the next regeneration to start from scratch."""
        await self.portfolios.update_one(
            {"_id": parse_object_id(portfolio_id)},
            {"$set": {"last_suggestions_generated_at": None, "updated_at": utc_now()}},
        )

    async def after_ledger_change(self, portfolio_id: str) -> None:
        """Run the post-mutation hooks for a portfolio."""
        try:
            await self.ledger.recalculate_cash_balances(portfolio_id)
        except Exception:
            logger.warning("Cash snapshot replay failed for portfolio %s", portfolio_id, exc_info=True)

        try:
            await self.reset_suggestion_marker(portfolio_id)
        except Exception:
            logger.warning("Suggestion marker reset failed for portfolio %s", portfolio_id, exc_info=True)

        try:
            await self.outbox.enqueue(portfolio_id, OutboxKind.REGENERATE_SUGGESTIONS)
        except Exception:
            logger.warning("Regeneration enqueue failed for portfolio %s", portfolio_id, exc_info=True)

        try:
            await self.metrics.update_metrics(portfolio_id)
        except Exception:
            logger.warning("Metrics refresh failed for portfolio %s", portfolio_id, exc_info=True)

    # ==================== Materialization ====================

    @staticmethod
    def _validate_suggestion(suggestion: Suggestion) -> None:
        if requires_ticker(suggestion.type) and not suggestion.ticker:
            raise ValidationError(f"{suggestion.type} suggestion requires a ticker")
        if TransactionType(suggestion.type) in TRADE_TYPES:
            if not suggestion.price or not suggestion.quantity:
                raise ValidationError(f"{suggestion.type} suggestion requires price and quantity")

    async def create_pending_transactions(
        self, portfolio_id: str, user_id: str, suggestions: list[Suggestion]
    ) -> MaterializeResponse:
        """
        Persist suggestions as PENDING auto-suggested transactions.

        A suggestion matching an existing PENDING row on its suggestion key
        (date, type, ticker; dividends add ex-date and rate) resolves to that
        row instead of creating a new one.
        """
        await self.ledger.ensure_owner(portfolio_id, user_id)
        for suggestion in suggestions:
            self._validate_suggestion(suggestion)

        pending = await self.transactions.find({
            "portfolio_id": portfolio_id,
            "status": TransactionStatus.PENDING.value,
        }).to_list(length=None)
        index = {}
        for d in pending:
            stored_key = d.get("suggestion_key") or suggestion_key(
                d["date"], d["type"], d.get("ticker"), d.get("ex_date"), d.get("price")
            )
            index[stored_key] = str(d["_id"])

        now = utc_now()
        ids = []
        created = 0
        for suggestion in suggestions:
            tx_date = start_of_day(suggestion.date)
            key = suggestion_key(
                tx_date, suggestion.type, suggestion.ticker, suggestion.ex_date, suggestion.price
            )
            if key in index:
                ids.append(index[key])
                continue

            doc = Transaction(
                portfolio_id=portfolio_id,
                date=tx_date,
                type=suggestion.type,
                ticker=suggestion.ticker,
                amount=suggestion.amount,
                price=suggestion.price,
                quantity=suggestion.quantity,
                status=TransactionStatus.PENDING,
                is_auto_suggested=True,
                cash_balance_before=suggestion.cash_balance_before,
                cash_balance_after=suggestion.cash_balance_after,
                notes=suggestion.reason,
                ex_date=start_of_day(suggestion.ex_date) if suggestion.ex_date else None,
                created_at=now,
                suggestion_key=key,
            ).model_dump(exclude={"id"})
            try:
                result = await self.transactions.insert_one(doc)
            except DuplicateKeyError:
                existing = await self.transactions.find_one({
                    "portfolio_id": portfolio_id,
                    "suggestion_key": key,
                    "status": TransactionStatus.PENDING.value,
                    "is_auto_suggested": True,
                })
                if existing is None:
                    raise
                index[key] = str(existing["_id"])
                ids.append(index[key])
                continue

            index[key] = str(result.inserted_id)
            ids.append(index[key])
            created += 1

        if created:
            await self.portfolios.update_one(
                {"_id": parse_object_id(portfolio_id)},
                {"$set": {"last_suggestions_generated_at": now}},
            )
        logger.info("Materialized %d of %d suggestions for portfolio %s", created, len(suggestions), portfolio_id)
        return MaterializeResponse(transaction_ids=ids, created=created)

    async def delete_pending_transactions(self, portfolio_id: str, user_id: Optional[str] = None) -> int:
        """Hard-delete every PENDING transaction of a portfolio."""
        if user_id is not None:
            await self.ledger.ensure_owner(portfolio_id, user_id)
        result = await self.transactions.delete_many({
            "portfolio_id": portfolio_id,
            "status": TransactionStatus.PENDING.value,
        })
        if result.deleted_count:
            logger.info("Deleted %d pending transactions from portfolio %s", result.deleted_count, portfolio_id)
        return result.deleted_count

    async def regenerate_suggestions(self, portfolio_id: str) -> int:
        """
        Rebuild the pending suggestion set for a portfolio.

        Idempotent: outstanding auto-suggestions are dropped and recomputed
        under the portfolio lock. Returns the number of rows created.
        """
        portfolio = await self.portfolios.find_one({"_id": parse_object_id(portfolio_id)})
        if not portfolio:
            logger.info("Portfolio %s no longer exists, nothing to regenerate", portfolio_id)
            return 0
        user_id = portfolio["user_id"]

        # Provider calls happen before the lease so they cannot outlive it
        await self.engine.warm_market_data(portfolio_id)

        async with self.ledger.lock(portfolio_id):
            await self.transactions.delete_many({
                "portfolio_id": portfolio_id,
                "status": TransactionStatus.PENDING.value,
                "is_auto_suggested": True,
            })
            # Periods are recomputed from start_date, not from the last run
            await self.reset_suggestion_marker(portfolio_id)
            suggestions = await self.engine.get_contribution_suggestions(portfolio_id, user_id)
            suggestions += await self.engine.get_dividend_suggestions(portfolio_id, user_id)

            created = 0
            if suggestions:
                result = await self.create_pending_transactions(portfolio_id, user_id, suggestions)
                created = result.created
            await self.portfolios.update_one(
                {"_id": portfolio["_id"]},
                {"$set": {"last_suggestions_generated_at": utc_now()}},
            )

        logger.info("Regenerated %d suggestions for portfolio %s", created, portfolio_id)
        return created

    # ==================== Confirm / Reject ====================

    async def confirm_transaction(
        self,
        transaction_id: str,
        user_id: str,
        updates: Optional[Union[TransactionUpdates, dict]] = None,
        portfolio_id: Optional[str] = None,
    ) -> TransactionResponse:
        tx = await self.ledger.confirm_transaction(transaction_id, user_id, updates, portfolio_id)
        await self.after_ledger_change(tx.portfolio_id)
        return tx

    async def reject_transaction(
        self,
        transaction_id: str,
        user_id: str,
        reason: Optional[str] = None,
        portfolio_id: Optional[str] = None,
    ) -> TransactionResponse:
        return await self.ledger.reject_transaction(transaction_id, user_id, reason, portfolio_id)

    async def confirm_batch_transactions(
        self,
        transaction_ids: list[str],
        user_id: str,
        updates: Optional[dict[str, Union[TransactionUpdates, dict]]] = None,
        portfolio_id: Optional[str] = None,
    ) -> BatchResult:
        """
        Confirm each id independently.

        Rows are processed by date with credits before debits, so
        contributions and sells fund the buys confirmed after them.
        """
        updates = updates or {}
        ids = list(dict.fromkeys(transaction_ids))
        results: dict[str, BatchItemResult] = {}

        queue = []
        for tx_id in ids:
            try:
                doc = await self.ledger.get_owned_transaction(tx_id, user_id, portfolio_id)
            except LedgerError as e:
                results[tx_id] = BatchItemResult(id=tx_id, success=False, code=e.code, error=e.message)
                continue
            queue.append((doc, tx_id))
        queue.sort(key=lambda item: (as_utc(item[0]["date"]), is_debit(item[0]["type"]), item[0]["_id"]))

        touched = set()
        for doc, tx_id in queue:
            try:
                await self.ledger.confirm_transaction(tx_id, user_id, updates.get(tx_id), portfolio_id)
            except LedgerError as e:
                results[tx_id] = BatchItemResult(id=tx_id, success=False, code=e.code, error=e.message)
                continue
            results[tx_id] = BatchItemResult(id=tx_id, success=True)
            touched.add(doc["portfolio_id"])

        for pid in touched:
            await self.after_ledger_change(pid)
        return self._batch_result([results[tx_id] for tx_id in ids])

    async def reject_transactions_batch(
        self,
        transaction_ids: list[str],
        user_id: str,
        reason: Optional[str] = None,
        portfolio_id: Optional[str] = None,
    ) -> BatchResult:
        results = []
        for tx_id in dict.fromkeys(transaction_ids):
            try:
                await self.ledger.reject_transaction(tx_id, user_id, reason, portfolio_id)
            except LedgerError as e:
                results.append(BatchItemResult(id=tx_id, success=False, code=e.code, error=e.message))
                continue
            results.append(BatchItemResult(id=tx_id, success=True))
        return self._batch_result(results)

    @staticmethod
    def _batch_result(results: list[BatchItemResult]) -> BatchResult:
        succeeded = sum(1 for r in results if r.success)
        return BatchResult(
            success=succeeded > 0,
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=results,
        )

    async def execute_rebalancing(
        self, portfolio_id: str, user_id: str, suggestions: Optional[list[Suggestion]] = None
    ) -> BatchResult:
        """Materialize rebalance suggestions and confirm them, sells first."""
        if suggestions is None:
            suggestions = await self.engine.get_rebalancing_suggestions(portfolio_id, user_id)
        if not suggestions:
            raise ValidationError("No rebalancing suggestions to execute")
        for suggestion in suggestions:
            if suggestion.type not in REBALANCE_TYPES:
                raise ValidationError(f"{suggestion.type} is not a rebalancing transaction")

        materialized = await self.create_pending_transactions(portfolio_id, user_id, suggestions)
        return await self.confirm_batch_transactions(
            materialized.transaction_ids, user_id, portfolio_id=portfolio_id
        )

    # ==================== Manual Mutations ====================

    async def record_manual_transaction(
        self, portfolio_id: str, user_id: str, request: TransactionCreate
    ) -> TransactionResponse:
        tx = await self.ledger.create_manual_transaction(portfolio_id, user_id, request)
        await self.after_ledger_change(portfolio_id)
        return tx

    async def delete_transaction(
        self, transaction_id: str, user_id: str, portfolio_id: Optional[str] = None
    ) -> None:
        pid = await self.ledger.delete_transaction(transaction_id, user_id, portfolio_id)
        await self.after_ledger_change(pid)

    # ==================== Queries ====================

    async def list_suggestions(
        self, portfolio_id: str, user_id: str, kind: SuggestionKind
    ) -> SuggestionsResponse:
        kind = SuggestionKind(kind)
        combined = []
        if kind == SuggestionKind.REBALANCING:
            suggestions = await self.engine.get_rebalancing_suggestions(portfolio_id, user_id)
            combined = combine_rebalancing_suggestions(suggestions)
        elif kind == SuggestionKind.CONTRIBUTION:
            suggestions = await self.engine.get_contribution_suggestions(portfolio_id, user_id)
        else:
            suggestions = await self.engine.get_dividend_suggestions(portfolio_id, user_id)

        return SuggestionsResponse(
            portfolio_id=portfolio_id,
            kind=kind,
            suggestions=suggestions,
            combined=combined,
        )

    async def get_suggestion_status(self, portfolio_id: str, user_id: str) -> SuggestionStatus:
        portfolio = await self.ledger.ensure_owner(portfolio_id, user_id)
        last_generated = as_utc(portfolio.get("last_suggestions_generated_at"))
        window = timedelta(days=self.settings.suggestion_regeneration_days)
        is_recent = last_generated is not None and utc_now() - last_generated <= window
        cash_balance = await self.ledger.get_current_cash_balance(portfolio_id)

        return SuggestionStatus(
            portfolio_id=portfolio_id,
            last_suggestions_generated_at=last_generated,
            needs_regeneration=not is_recent,
            is_recent=is_recent,
            cash_balance=cash_balance,
            has_cash_available=cash_balance > self.settings.cash_epsilon,
        )
