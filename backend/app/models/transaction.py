"""
Transaction model for the ledger.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from app.core.dates import day_key


class TransactionType(str, Enum):
    """Ledger movement kinds."""
    CASH_CREDIT = "CASH_CREDIT"
    CASH_DEBIT = "CASH_DEBIT"
    BUY = "BUY"
    SELL_WITHDRAWAL = "SELL_WITHDRAWAL"
    SELL_REBALANCE = "SELL_REBALANCE"
    BUY_REBALANCE = "BUY_REBALANCE"
    DIVIDEND = "DIVIDEND"
    MONTHLY_CONTRIBUTION = "MONTHLY_CONTRIBUTION"


class TransactionStatus(str, Enum):
    """Transaction lifecycle states."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    EXECUTED = "EXECUTED"
    REJECTED = "REJECTED"


CASH_INFLOW_TYPES = frozenset({
    TransactionType.CASH_CREDIT,
    TransactionType.MONTHLY_CONTRIBUTION,
    TransactionType.DIVIDEND,
    TransactionType.SELL_REBALANCE,
    TransactionType.SELL_WITHDRAWAL,
})

CASH_OUTFLOW_TYPES = frozenset({
    TransactionType.CASH_DEBIT,
    TransactionType.BUY,
    TransactionType.BUY_REBALANCE,
})

BUY_TYPES = frozenset({TransactionType.BUY, TransactionType.BUY_REBALANCE})
SELL_TYPES = frozenset({TransactionType.SELL_REBALANCE, TransactionType.SELL_WITHDRAWAL})
TRADE_TYPES = BUY_TYPES | SELL_TYPES
CONTRIBUTION_TYPES = frozenset({TransactionType.MONTHLY_CONTRIBUTION, TransactionType.CASH_CREDIT})

# Statuses that count towards balances and holdings
SETTLED_STATUSES = frozenset({TransactionStatus.CONFIRMED, TransactionStatus.EXECUTED})


def is_debit(tx_type: str) -> bool:
    """True when the transaction type takes cash out of the portfolio."""
    return TransactionType(tx_type) in CASH_OUTFLOW_TYPES


def signed_amount(tx_type: str, amount: float) -> float:
    """Apply the cash sign rule to a stored (positive) amount."""
    amount = float(amount or 0.0)
    return -amount if is_debit(tx_type) else amount


def requires_ticker(tx_type: str) -> bool:
    """Trades and dividends reference an asset; pure cash movements don't."""
    tx_type = TransactionType(tx_type)
    return tx_type in TRADE_TYPES or tx_type == TransactionType.DIVIDEND


def suggestion_key(
    date: datetime,
    tx_type: str,
    ticker: Optional[str] = None,
    ex_date: Optional[datetime] = None,
    rate: Optional[float] = None,
) -> str:
    """
    Identity of an auto-suggested row.

    Dividends are keyed by ex-date and rate as well, so distributions paid on
    the same day stay distinct rows.
    """
    tx_type = TransactionType(tx_type)
    parts = [tx_type.value, ticker or "", day_key(date)]
    if tx_type == TransactionType.DIVIDEND and ex_date is not None:
        parts += [day_key(ex_date), f"{float(rate or 0.0):.6f}"]
    return "|".join(parts)


class Transaction(BaseModel):
    """
    Transaction document model for MongoDB ledger_db.transactions collection.
    """
    id: Optional[str] = Field(None, alias="_id", description="MongoDB ObjectId as string")
    portfolio_id: str = Field(..., description="Parent portfolio ID")
    date: datetime = Field(..., description="Ledger date (midnight UTC)")
    type: TransactionType = Field(..., description="Movement kind")
    ticker: Optional[str] = Field(None, description="Absent for pure cash movements")
    amount: float = Field(..., gt=0, description="Positive amount; sign comes from type")
    price: Optional[float] = Field(None, gt=0, description="Price per share, or dividend per share")
    quantity: Optional[float] = Field(None, gt=0, description="Number of shares")
    status: TransactionStatus = Field(..., description="Lifecycle state")
    is_auto_suggested: bool = Field(default=False, description="Materialized from a suggestion")
    cash_balance_before: Optional[float] = Field(None, description="Advisory audit snapshot")
    cash_balance_after: Optional[float] = Field(None, description="Advisory audit snapshot")
    notes: Optional[str] = None
    ex_date: Optional[datetime] = Field(None, description="Dividend ex-date")
    confirmed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    suggestion_key: Optional[str] = Field(None, description="Identity of an auto-suggested row")
    created_at: Optional[datetime] = None

    class Config:
        populate_by_name = True
        use_enum_values = True
