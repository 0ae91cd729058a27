"""
Suggestion, holdings and drift schemas.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from app.models.transaction import TransactionType


class SuggestionKind(str, Enum):
    """Suggestion families exposed by the API."""
    REBALANCING = "rebalancing"
    CONTRIBUTION = "contribution"
    DIVIDENDS = "dividends"


class Suggestion(BaseModel):
    """Ephemeral transaction proposal; persisted only when materialized."""
    date: datetime
    type: TransactionType
    ticker: Optional[str] = None
    amount: float = Field(..., gt=0)
    price: Optional[float] = Field(None, gt=0)
    quantity: Optional[float] = Field(None, gt=0)
    reason: str = ""
    cash_balance_before: Optional[float] = None
    cash_balance_after: Optional[float] = None
    ex_date: Optional[datetime] = None

    class Config:
        use_enum_values = True


class CombinedRebalancing(BaseModel):
    """Sells and the buys they fund, shown as one unit."""
    date: datetime
    sell_transactions: list[Suggestion] = []
    buy_transactions: list[Suggestion] = []
    total_sold: float
    total_bought: float
    net_cash_change: float
    reason: str
    cash_balance_before: float
    cash_balance_after: float


class SuggestionsResponse(BaseModel):
    portfolio_id: str
    kind: SuggestionKind
    suggestions: list[Suggestion] = []
    combined: list[CombinedRebalancing] = Field(default=[], description="Rebalancing only")


class MaterializeRequest(BaseModel):
    suggestions: list[Suggestion] = Field(..., min_length=1)


class MaterializeResponse(BaseModel):
    transaction_ids: list[str]
    created: int


class SuggestionStatus(BaseModel):
    """Whether the suggestion set needs regeneration."""
    portfolio_id: str
    last_suggestions_generated_at: Optional[datetime] = None
    needs_regeneration: bool
    is_recent: bool
    cash_balance: float
    has_cash_available: bool


class DriftEntry(BaseModel):
    ticker: str
    current_weight: float
    target_weight: float
    drift: float = Field(..., description="current_weight - target_weight")


class Holding(BaseModel):
    """Open position priced at the latest quote."""
    ticker: str
    quantity: float
    avg_cost: float
    current_price: float
    market_value: float
    total_invested: float
    unrealized_return: float
    current_weight: float = 0.0
    target_weight: float = 0.0
    drift: float = 0.0
    needs_rebalancing: bool = False


class ClosedPosition(BaseModel):
    """Ticker whose quantity returned to zero."""
    ticker: str
    total_invested: float
    total_received: float
    realized_return: float
    closed_at: datetime


class RebalancingCheck(BaseModel):
    should_show: bool
    max_drift: float
    details: str
