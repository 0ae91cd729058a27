"""
Ledger core: transaction store and derived cash balance.

The cash balance is never stored as a source of truth. It is the signed sum of
every CONFIRMED or EXECUTED transaction, recomputed on demand. The
cash_balance_before/after snapshots kept on each row are advisory and can be
rebuilt at any time with `recalculate_cash_balances`.
"""
import logging
from typing import Any, Optional, Union

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import UpdateOne

from app.config import get_settings
from app.core.dates import as_utc, start_of_day, utc_now
from app.core.errors import InsufficientFundsError, NotFoundError, ValidationError
from app.database.databases import ledger_db
from app.models.transaction import (
    SETTLED_STATUSES,
    TRADE_TYPES,
    TransactionStatus,
    TransactionType,
    is_debit,
    requires_ticker,
    signed_amount,
)
from app.schemas.transaction import (
    TransactionCreate,
    TransactionHistory,
    TransactionResponse,
    TransactionUpdates,
)
from app.services.access import load_portfolio_doc, parse_object_id
from app.services.portfolio_lock import PortfolioLock
from app.services.quote_service import QuoteService

logger = logging.getLogger(__name__)

SETTLED = [s.value for s in SETTLED_STATUSES]


def sort_key(doc: dict[str, Any]) -> tuple:
    """Chronological order, insertion order within a day."""
    return (as_utc(doc["date"]), doc["_id"])


class LedgerService:
    """Service for the transaction ledger and cash balance."""

    def __init__(self, db: AsyncIOMotorDatabase, quote_service: Optional[QuoteService] = None):
        """Initialize with ledger database and an optional quote service for ticker checks."""
        self.db = db
        self.portfolios = db[ledger_db.Collections.PORTFOLIOS]
        self.transactions = db[ledger_db.Collections.TRANSACTIONS]
        self.quote_service = quote_service
        self.settings = get_settings()

    def lock(self, portfolio_id: str) -> PortfolioLock:
        return PortfolioLock(self.portfolios, portfolio_id)

    async def ensure_owner(self, portfolio_id: str, user_id: str) -> dict[str, Any]:
        """Return the portfolio document, or raise NotFoundError."""
        return await load_portfolio_doc(self.portfolios, portfolio_id, user_id)

    # ==================== Cash Balance ====================

    async def get_settled_transactions(self, portfolio_id: str) -> list[dict[str, Any]]:
        """CONFIRMED and EXECUTED rows in chronological order."""
        cursor = self.transactions.find({
            "portfolio_id": portfolio_id,
            "status": {"$in": SETTLED},
        })
        docs = await cursor.to_list(length=None)
        return sorted(docs, key=sort_key)

    async def get_current_cash_balance(self, portfolio_id: str) -> float:
        """Signed sum of every settled transaction."""
        docs = await self.get_settled_transactions(portfolio_id)
        balance = sum(signed_amount(d["type"], d["amount"]) for d in docs)
        return round(balance, 2)

    async def recalculate_cash_balances(self, portfolio_id: str) -> int:
        """
        Replay settled transactions from zero and rewrite their audit snapshots.

        Returns:
            Number of rows whose snapshot changed
        """
        docs = await self.get_settled_transactions(portfolio_id)

        operations = []
        running = 0.0
        for doc in docs:
            before = round(running, 2)
            running += signed_amount(doc["type"], doc["amount"])
            after = round(running, 2)
            if doc.get("cash_balance_before") == before and doc.get("cash_balance_after") == after:
                continue
            operations.append(UpdateOne(
                {"_id": doc["_id"]},
                {"$set": {"cash_balance_before": before, "cash_balance_after": after}},
            ))

        if operations:
            await self.transactions.bulk_write(operations, ordered=False)
        logger.debug("Recalculated %d cash snapshots for portfolio %s", len(operations), portfolio_id)
        return len(operations)

    async def _check_debit(self, portfolio_id: str, tx_type: str, amount: float) -> float:
        """Raise InsufficientFundsError if a debit would overdraw the portfolio."""
        balance = await self.get_current_cash_balance(portfolio_id)
        if is_debit(tx_type) and balance - amount < -self.settings.cash_epsilon:
            raise InsufficientFundsError(required=amount, available=balance)
        return balance

    # ==================== Confirm / Reject ====================

    async def get_owned_transaction(
        self, transaction_id: str, user_id: str, portfolio_id: Optional[str] = None
    ) -> dict[str, Any]:
        """Fetch a transaction whose portfolio belongs to the user."""
        doc = await self.transactions.find_one({
            "_id": parse_object_id(transaction_id, "Transaction"),
        })
        if not doc or (portfolio_id is not None and doc["portfolio_id"] != portfolio_id):
            raise NotFoundError("Transaction not found")

        owner = await self.portfolios.find_one({
            "_id": parse_object_id(doc["portfolio_id"]),
            "user_id": user_id,
        })
        if not owner:
            raise NotFoundError("Transaction not found")
        return doc

    @staticmethod
    def _validate_updates(
        doc: dict[str, Any], updates: Optional[Union[TransactionUpdates, dict]]
    ) -> dict[str, float]:
        if updates is None:
            return {}
        if isinstance(updates, TransactionUpdates):
            updates = updates.model_dump(exclude_none=True)

        changes = {}
        for field in ("amount", "price", "quantity"):
            value = updates.get(field)
            if value is None:
                continue
            if value <= 0:
                raise ValidationError(f"{field} must be positive")
            changes[field] = float(value)

        # Trades keep amount == price x quantity unless the amount is given
        if "amount" not in changes and TransactionType(doc["type"]) in TRADE_TYPES:
            if "price" in changes or "quantity" in changes:
                price = changes.get("price", doc.get("price"))
                quantity = changes.get("quantity", doc.get("quantity"))
                if price and quantity:
                    changes["amount"] = round(price * quantity, 2)
        return changes

    async def confirm_transaction(
        self,
        transaction_id: str,
        user_id: str,
        updates: Optional[Union[TransactionUpdates, dict]] = None,
        portfolio_id: Optional[str] = None,
    ) -> TransactionResponse:
        """
        Confirm a pending transaction, optionally correcting amount/price/quantity.

        Raises:
            NotFoundError: Transaction absent or not owned
            ValidationError: Not PENDING, or a non-positive override
            InsufficientFundsError: A debit would overdraw the portfolio
        """
        doc = await self.get_owned_transaction(transaction_id, user_id, portfolio_id)
        if doc["status"] != TransactionStatus.PENDING.value:
            raise ValidationError(f"Only PENDING transactions can be confirmed (status is {doc['status']})")
        changes = self._validate_updates(doc, updates)

        pid = doc["portfolio_id"]
        async with self.lock(pid):
            # Re-read under the lock; a concurrent confirm may have won
            doc = await self.transactions.find_one({"_id": doc["_id"]})
            if not doc:
                raise NotFoundError("Transaction not found")
            if doc["status"] != TransactionStatus.PENDING.value:
                raise ValidationError(f"Only PENDING transactions can be confirmed (status is {doc['status']})")

            amount = changes.get("amount", doc["amount"])
            balance = await self._check_debit(pid, doc["type"], amount)

            update = {
                **changes,
                "status": TransactionStatus.CONFIRMED.value,
                "confirmed_at": utc_now(),
                "cash_balance_before": balance,
                "cash_balance_after": round(balance + signed_amount(doc["type"], amount), 2),
            }
            result = await self.transactions.update_one(
                {"_id": doc["_id"], "status": TransactionStatus.PENDING.value},
                {"$set": update},
            )
            if result.modified_count == 0:
                raise ValidationError("Transaction is no longer pending")

        doc.update(update)
        logger.info(
            "Confirmed %s %s %.2f in portfolio %s",
            doc["type"], doc.get("ticker") or "", amount, pid,
        )
        return self._doc_to_response(doc)

    async def reject_transaction(
        self,
        transaction_id: str,
        user_id: str,
        reason: Optional[str] = None,
        portfolio_id: Optional[str] = None,
    ) -> TransactionResponse:
        """Reject a pending transaction. Has no balance effect."""
        doc = await self.get_owned_transaction(transaction_id, user_id, portfolio_id)
        if doc["status"] != TransactionStatus.PENDING.value:
            raise ValidationError(f"Only PENDING transactions can be rejected (status is {doc['status']})")

        update = {
            "status": TransactionStatus.REJECTED.value,
            "rejected_at": utc_now(),
            "rejection_reason": reason,
        }
        result = await self.transactions.update_one(
            {"_id": doc["_id"], "status": TransactionStatus.PENDING.value},
            {"$set": update},
        )
        if result.modified_count == 0:
            raise ValidationError("Transaction is no longer pending")

        doc.update(update)
        logger.info("Rejected %s %s in portfolio %s", doc["type"], doc.get("ticker") or "", doc["portfolio_id"])
        return self._doc_to_response(doc)

    # ==================== Manual Transactions ====================

    async def _validate_ticker(self, ticker: str) -> str:
        if self.quote_service is None:
            raise RuntimeError("Ticker validation requires a quote service")
        return await self.quote_service.validate_ticker(ticker)

    async def create_manual_transaction(
        self, portfolio_id: str, user_id: str, request: TransactionCreate
    ) -> TransactionResponse:
        """
        Record a manual (EXECUTED) transaction.

        With `auto_cash_credit`, a BUY larger than the available cash is
        preceded by a CASH_CREDIT covering the shortfall.
        """
        await self.ensure_owner(portfolio_id, user_id)
        tx_type = TransactionType(request.type)

        ticker = None
        if requires_ticker(tx_type):
            if not request.ticker:
                raise ValidationError(f"ticker is required for {tx_type.value}")
            ticker = await self._validate_ticker(request.ticker)

        if tx_type in TRADE_TYPES:
            if request.price is None or request.quantity is None:
                raise ValidationError("price and quantity are required for trades")
            amount = request.amount or round(request.price * request.quantity, 2)
        elif request.amount is not None:
            amount = request.amount
        elif request.price is not None and request.quantity is not None:
            amount = round(request.price * request.quantity, 2)
        else:
            raise ValidationError("amount is required")

        now = utc_now()
        tx_date = start_of_day(request.date or now)

        async with self.lock(portfolio_id):
            balance = await self.get_current_cash_balance(portfolio_id)
            shortfall = round(amount - balance, 2)

            if request.auto_cash_credit and tx_type == TransactionType.BUY and shortfall > self.settings.cash_epsilon:
                credit_doc = {
                    "portfolio_id": portfolio_id,
                    "date": tx_date,
                    "type": TransactionType.CASH_CREDIT.value,
                    "ticker": None,
                    "amount": shortfall,
                    "status": TransactionStatus.EXECUTED.value,
                    "is_auto_suggested": False,
                    "cash_balance_before": balance,
                    "cash_balance_after": round(balance + shortfall, 2),
                    "notes": f"Automatic cash credit for {ticker} purchase",
                    "created_at": now,
                }
                await self.transactions.insert_one(credit_doc)
                logger.info("Auto cash credit %.2f for portfolio %s", shortfall, portfolio_id)
                balance = round(balance + shortfall, 2)
            elif is_debit(tx_type) and balance - amount < -self.settings.cash_epsilon:
                raise InsufficientFundsError(required=amount, available=balance)

            tx_doc = {
                "portfolio_id": portfolio_id,
                "date": tx_date,
                "type": tx_type.value,
                "ticker": ticker,
                "amount": amount,
                "price": request.price,
                "quantity": request.quantity,
                "status": TransactionStatus.EXECUTED.value,
                "is_auto_suggested": False,
                "cash_balance_before": balance,
                "cash_balance_after": round(balance + signed_amount(tx_type, amount), 2),
                "notes": request.notes,
                "created_at": now,
            }
            result = await self.transactions.insert_one(tx_doc)
            tx_doc["_id"] = result.inserted_id

        logger.info("Recorded %s %s %.2f in portfolio %s", tx_type.value, ticker or "", amount, portfolio_id)
        return self._doc_to_response(tx_doc)

    async def delete_transaction(
        self, transaction_id: str, user_id: str, portfolio_id: Optional[str] = None
    ) -> str:
        """
        Delete a transaction. Returns its portfolio id.

        Raises:
            ValidationError: Confirmed suggested transactions are permanent
            InsufficientFundsError: Removing an inflow would overdraw the portfolio
        """
        doc = await self.get_owned_transaction(transaction_id, user_id, portfolio_id)
        if doc.get("is_auto_suggested") and doc["status"] == TransactionStatus.CONFIRMED.value:
            raise ValidationError("Confirmed suggested transactions cannot be deleted")

        pid = doc["portfolio_id"]
        async with self.lock(pid):
            if doc["status"] in SETTLED and not is_debit(doc["type"]):
                balance = await self.get_current_cash_balance(pid)
                if balance - doc["amount"] < -self.settings.cash_epsilon:
                    raise InsufficientFundsError(required=doc["amount"], available=balance)
            await self.transactions.delete_one({"_id": doc["_id"]})

        logger.info("Deleted %s transaction %s from portfolio %s", doc["type"], transaction_id, pid)
        return pid

    # ==================== Queries ====================

    async def get_transaction(
        self, transaction_id: str, user_id: str, portfolio_id: Optional[str] = None
    ) -> TransactionResponse:
        doc = await self.get_owned_transaction(transaction_id, user_id, portfolio_id)
        return self._doc_to_response(doc)

    async def list_transactions(
        self,
        portfolio_id: str,
        user_id: str,
        status: Optional[TransactionStatus] = None,
        tx_type: Optional[TransactionType] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> TransactionHistory:
        """Get paginated transaction history, newest first."""
        await self.ensure_owner(portfolio_id, user_id)

        query: dict = {"portfolio_id": portfolio_id}
        if status:
            query["status"] = TransactionStatus(status).value
        if tx_type:
            query["type"] = TransactionType(tx_type).value

        total = await self.transactions.count_documents(query)

        skip = (page - 1) * page_size
        cursor = self.transactions.find(query).sort([("date", -1), ("_id", -1)]).skip(skip).limit(page_size)
        docs = await cursor.to_list(length=page_size)

        return TransactionHistory(
            transactions=[self._doc_to_response(d) for d in docs],
            total=total,
            page=page,
            page_size=page_size,
            has_more=(skip + len(docs)) < total,
        )

    # ==================== Helpers ====================

    def _doc_to_response(self, doc: dict) -> TransactionResponse:
        """Convert transaction document to response."""
        return TransactionResponse(
            id=str(doc["_id"]),
            portfolio_id=doc["portfolio_id"],
            date=as_utc(doc["date"]),
            type=doc["type"],
            ticker=doc.get("ticker"),
            amount=doc["amount"],
            price=doc.get("price"),
            quantity=doc.get("quantity"),
            status=doc["status"],
            is_auto_suggested=doc.get("is_auto_suggested", False),
            cash_balance_before=doc.get("cash_balance_before"),
            cash_balance_after=doc.get("cash_balance_after"),
            notes=doc.get("notes"),
            ex_date=as_utc(doc.get("ex_date")),
            confirmed_at=as_utc(doc.get("confirmed_at")),
            rejected_at=as_utc(doc.get("rejected_at")),
            rejection_reason=doc.get("rejection_reason"),
            created_at=as_utc(doc.get("created_at")),
        )
