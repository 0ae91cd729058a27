"""
Transaction request/response schemas.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.models.transaction import TransactionType


class TransactionCreate(BaseModel):
    """Manual transaction request."""
    type: TransactionType = Field(..., description="Movement kind")
    date: Optional[datetime] = Field(None, description="Ledger date (defaults to today)")
    ticker: Optional[str] = Field(None, max_length=20, description="Required for trades and dividends")
    amount: Optional[float] = Field(None, gt=0, description="Cash amount; derived from price x quantity for trades")
    price: Optional[float] = Field(None, gt=0, description="Price per share")
    quantity: Optional[float] = Field(None, gt=0, description="Number of shares")
    notes: Optional[str] = Field(None, max_length=500)
    auto_cash_credit: bool = Field(
        False,
        description="For BUY: record a CASH_CREDIT covering any shortfall first",
    )


class TransactionUpdates(BaseModel):
    """Corrections applied at confirm time."""
    amount: Optional[float] = None
    price: Optional[float] = None
    quantity: Optional[float] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BatchConfirmRequest(BaseModel):
    """Confirm several pending transactions."""
    transaction_ids: list[str] = Field(..., min_length=1)
    updates: dict[str, TransactionUpdates] = Field(
        default={},
        description="Optional per-id corrections",
    )


class BatchRejectRequest(BaseModel):
    transaction_ids: list[str] = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=500)


class TransactionResponse(BaseModel):
    """Transaction response."""
    id: str = Field(..., description="Transaction ID")
    portfolio_id: str = Field(..., description="Portfolio ID")
    date: datetime = Field(..., description="Ledger date")
    type: str = Field(..., description="Movement kind")
    ticker: Optional[str] = None
    amount: float = Field(..., description="Positive amount; sign comes from type")
    price: Optional[float] = None
    quantity: Optional[float] = None
    status: str = Field(..., description="Lifecycle state")
    is_auto_suggested: bool = False
    cash_balance_before: Optional[float] = None
    cash_balance_after: Optional[float] = None
    notes: Optional[str] = None
    ex_date: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None


class TransactionHistory(BaseModel):
    """Paginated transaction history response."""
    transactions: list[TransactionResponse] = Field(..., description="List of transactions")
    total: int = Field(..., description="Total number of transactions")
    page: int = Field(..., description="Current page")
    page_size: int = Field(..., description="Items per page")
    has_more: bool = Field(..., description="Whether more pages exist")


class BatchItemResult(BaseModel):
    """Outcome for one id in a batch."""
    id: str
    success: bool
    code: Optional[str] = None
    error: Optional[str] = None


class BatchResult(BaseModel):
    """Batch outcome; fails overall only when every item failed."""
    success: bool
    succeeded: int
    failed: int
    results: list[BatchItemResult]


class CashBalanceResponse(BaseModel):
    portfolio_id: str
    cash_balance: float


class RecalculateResponse(BaseModel):
    portfolio_id: str
    updated: int = Field(..., description="Transactions whose audit snapshot was rewritten")
    cash_balance: float
